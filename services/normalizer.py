"""
Conversion of continuous allocation matrices into integer allocations whose
per-class totals never exceed floor(supply).
"""

import numpy as np

CAP_TOL = 1e-9
REMAINDER_TOL = 1e-12


def enforce_supply_and_round(A: np.ndarray, supply: np.ndarray) -> np.ndarray:
    """
    Round a (Z, C) matrix to non-negative integers, column by column.

    Columns above their cap are first scaled down proportionally. Floors are
    taken, then the leftover integer budget floor(cap + CAP_TOL) - sum(floors)
    is handed out one unit at a time by descending fractional remainder. Zones
    without a remainder never receive a unit.

    Caps within CAP_TOL below an integer count as that integer, so a supply of
    9.9999999995 left by floating-point arithmetic still allows 10 units.
    """
    A = np.asarray(A, dtype=float)
    if A.size == 0:
        return np.zeros_like(A, dtype=np.int64)
    Z, C = A.shape
    out = np.zeros((Z, C), dtype=np.int64)

    for c in range(C):
        cap = max(0.0, float(supply[c])) if c < len(supply) else 0.0
        col = np.maximum(0.0, A[:, c])
        used = col.sum()
        if used > cap + CAP_TOL and used > 0:
            col = col * (cap / used)

        floors = np.floor(col)
        remainders = col - floors
        floors = floors.astype(np.int64)

        budget = int(np.floor(cap + CAP_TOL)) - int(floors.sum())
        if budget > 0:
            # stable sort keeps zone order among equal remainders
            for i in np.argsort(-remainders, kind="stable"):
                if budget <= 0:
                    break
                if remainders[i] > REMAINDER_TOL:
                    floors[i] += 1
                    budget -= 1
        out[:, c] = floors
    return out
