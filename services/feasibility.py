import numpy as np

NO_FLOOD_DEPTH_FT = 0.13
ZERO_ALLOCATION_TOL = 1e-6

# (minimum depth in ft, share of current staffing that must be kept)
RETENTION_BANDS = (
    (5.0, 1.00),  # over the head
    (4.75, 0.75),  # neck-deep
    (4.0, 0.50),  # chest-deep
    (2.75, 0.40),  # waist-deep
    (1.5, 0.30),  # knee-deep
    (0.0, 0.10),  # gutter-deep
)


def required_retention(depth_ft: float) -> float:
    """Share of pre-disaster staffing a flooded zone must keep, by depth band."""
    for threshold, share in RETENTION_BANDS:
        if depth_ft >= threshold:
            return share
    return RETENTION_BANDS[-1][1]


def is_feasible(
    x: np.ndarray,
    flood_depth: np.ndarray,
    current: np.ndarray,
    num_zones: int,
    num_classes: int,
) -> bool:
    """
    Check a flattened candidate against the depth rules.

    - Zones below the no-flood threshold must receive nothing at all.
    - Flooded zones must keep, for every class, at least the band share of
      their current staffing.

    Returns on the first violating zone.
    """
    A = np.maximum(0.0, np.asarray(x, dtype=float).reshape(num_zones, num_classes))
    for i in range(num_zones):
        depth = flood_depth[i]
        if depth < NO_FLOOD_DEPTH_FT:
            if A[i].sum() > ZERO_ALLOCATION_TOL:
                return False
            continue

        required = required_retention(depth) * current[i]
        if np.any(A[i] < required):
            return False
    return True
