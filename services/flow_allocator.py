import logging
from typing import Optional, Tuple

import numpy as np

from utils.distance_matrix import compute_distance_matrix, coordinates_available

logger = logging.getLogger(__name__)


def scale_and_round_to_sum(values: np.ndarray, target_sum: int) -> np.ndarray:
    """
    Scale non-negative values so they sum to target_sum, then round with the
    largest-remainder method so the integer sum is exactly target_sum.
    All zeros when nothing is needed or nothing is available.
    """
    values = np.maximum(0.0, np.asarray(values, dtype=float))
    out = np.zeros(len(values), dtype=np.int64)
    total = values.sum()
    if target_sum <= 0 or total <= 1e-12:
        return out

    scaled = values * (target_sum / total)
    floors = np.floor(scaled)
    remainders = scaled - floors
    out = floors.astype(np.int64)
    budget = target_sum - int(out.sum())
    if budget > 0:
        order = np.argsort(-remainders, kind="stable")
        out[order[:budget]] += 1
    return out


def _split_self_flows(supplied: np.ndarray, targets: np.ndarray, flows: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    kept = np.minimum(supplied, targets)
    flows[np.arange(len(kept)), np.arange(len(kept))] += kept
    return supplied - kept, targets - kept


def _match_in_order(surplus: np.ndarray, deficit: np.ndarray, flows: np.ndarray) -> None:
    n = len(surplus)
    i_sur = i_def = 0
    while True:
        while i_sur < n and surplus[i_sur] <= 0:
            i_sur += 1
        while i_def < n and deficit[i_def] <= 0:
            i_def += 1
        if i_sur >= n or i_def >= n:
            break
        moved = min(surplus[i_sur], deficit[i_def])
        flows[i_sur, i_def] += moved
        surplus[i_sur] -= moved
        deficit[i_def] -= moved


def _match_nearest(surplus: np.ndarray, deficit: np.ndarray, flows: np.ndarray, dist: np.ndarray) -> None:
    while True:
        if not np.any(deficit > 0):
            break
        dst = int(np.argmax(deficit))
        sources = np.flatnonzero(surplus > 0)
        if sources.size == 0:
            break
        src = int(sources[np.argmin(dist[sources, dst])])
        moved = min(surplus[src], deficit[dst])
        flows[src, dst] += moved
        surplus[src] -= moved
        deficit[dst] -= moved


def allocate_flows(
    A: np.ndarray,
    current: np.ndarray,
    lat: Optional[np.ndarray] = None,
    lon: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Build zone-to-zone transfers that turn current staffing into the target allocation.

    Args:
        A: integer target allocation, shape (Z, C)
        current: current staffing, shape (Z, C)
        lat, lon: optional zone coordinates in degrees

    Returns:
        flows of shape (C, Z, Z); flows[c, src, dst] units of class c moved
        from src to dst, the diagonal holding the units each zone keeps.

    With complete, finite coordinates each deficit is served from the nearest
    surplus zone (largest deficit first). Otherwise surpluses and deficits are
    paired in zone order.
    """
    A = np.asarray(A, dtype=float)
    current = np.asarray(current, dtype=float)
    Z, C = A.shape
    flows = np.zeros((C, Z, Z), dtype=np.int64)

    dist = None
    if coordinates_available(lat, lon, Z):
        dist = compute_distance_matrix(lat, lon)
    logger.debug("Allocating flows for %d classes over %d zones (distance-aware: %s)", C, Z, dist is not None)

    for c in range(C):
        targets = np.maximum(0, np.rint(A[:, c])).astype(np.int64)
        supplied = scale_and_round_to_sum(current[:, c], int(targets.sum()))
        surplus, deficit = _split_self_flows(supplied, targets, flows[c])
        if dist is None:
            _match_in_order(surplus, deficit, flows[c])
        else:
            _match_nearest(surplus, deficit, flows[c], dist)
    return flows
