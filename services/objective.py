import logging
import math
from typing import Optional

import numpy as np

from models import ObjectiveSettings, Scenario
from utils.distance_matrix import compute_distance_matrix, coordinates_available

logger = logging.getLogger(__name__)

NON_FINITE_SENTINEL = 1e30
FLOW_TOL = 1e-12


class AllocationObjective:
    """
    Minimization objective for a flattened (Z * C) allocation vector.

    fitness = coverage + prioritization - imbalance + demand satisfaction
    evaluate(x) = -fitness + penalties

    The vector is clipped to non-negative values and each class column is
    scaled down to its supply cap before scoring.
    """

    def __init__(self, scenario: Scenario, settings: Optional[ObjectiveSettings] = None):
        self.settings = settings or ObjectiveSettings()
        self.Z = scenario.num_zones
        self.C = scenario.num_classes
        self.r = scenario.r
        self.f = scenario.f
        self.E = scenario.E
        self.AC = scenario.AC
        self.lam = scenario.lam
        self.supply = scenario.supply
        self.current = scenario.current  # (Z, C)

        self.dist_km: Optional[np.ndarray] = None
        if self.settings.use_distance_penalty and self._distance_inputs_ok(scenario):
            self.dist_km = compute_distance_matrix(scenario.lat, scenario.lon)
        logger.debug("Objective built for %dx%d, distance penalty: %s", self.Z, self.C, self.distance_enabled)

        # Demand per (zone, class), independent of the candidate
        eps = self.settings.eps
        severity = np.maximum(0.0, self.r) * np.maximum(0.0, self.f)
        demand = np.outer(self.E * severity / (self.AC + eps), self.lam)
        self._demand_denom = np.maximum(demand, eps)
        self._log_priority = np.log1p(np.maximum(0.0, self.r))

    def _distance_inputs_ok(self, scenario: Scenario) -> bool:
        if not coordinates_available(scenario.lat, scenario.lon, self.Z):
            return False
        return self.current.shape == (self.Z, self.C) and bool(np.all(np.isfinite(self.current)))

    @property
    def distance_enabled(self) -> bool:
        return self.dist_km is not None

    def repair(self, x: np.ndarray) -> np.ndarray:
        """Reshape to (Z, C), clip negatives and scale over-supplied columns to their cap."""
        eps = self.settings.eps
        A = np.maximum(0.0, np.asarray(x, dtype=float).reshape(self.Z, self.C))
        used = A.sum(axis=0)
        over = used > self.supply + eps
        if np.any(over):
            scale = np.where(over, self.supply / (used + eps), 1.0)
            A = A * scale
        return A

    def sub_objectives(self, A: np.ndarray) -> dict:
        eps = self.settings.eps
        per_zone = A.sum(axis=1)
        total = per_zone.sum()

        coverage = np.count_nonzero(per_zone > 0) / self.Z
        prioritization = float((A * self._log_priority[:, None]).sum()) / max(total, eps)
        mean = per_zone.mean()
        imbalance = float(per_zone.std()) / (mean + eps)
        satisfaction = float(np.minimum(1.0, A / self._demand_denom).mean())
        return {
            "coverage": coverage,
            "prioritization": prioritization,
            "imbalance": imbalance,
            "demand_satisfaction": satisfaction,
        }

    def fitness(self, A: np.ndarray) -> float:
        s = self.sub_objectives(A)
        return s["coverage"] + s["prioritization"] - s["imbalance"] + s["demand_satisfaction"]

    def penalty(self, A: np.ndarray) -> float:
        settings = self.settings
        used = A.sum(axis=0)
        violation = np.maximum(0.0, used - self.supply)
        penalty = settings.supply_weight * float((violation ** 2).sum())

        if settings.target_total is not None:
            d = float(A.sum()) - settings.target_total
            penalty += settings.budget_weight * d * d

        if self.distance_enabled:
            penalty += settings.distance_weight * self.average_km_moved(A)
        return penalty

    def average_km_moved(self, A: np.ndarray) -> float:
        """
        Greedy transport estimate: for each class, repeatedly serve the largest
        deficit from the nearest zone with surplus.
        """
        moved_total = 0.0
        dist_sum = 0.0
        for c in range(self.C):
            demand = np.maximum(0.0, A[:, c] - self.current[:, c])
            surplus = np.maximum(0.0, self.current[:, c] - A[:, c])
            while True:
                if not np.any(demand > FLOW_TOL):
                    break
                dst = int(np.argmax(demand))
                sources = np.flatnonzero(surplus > FLOW_TOL)
                if sources.size == 0:
                    break
                src = int(sources[np.argmin(self.dist_km[sources, dst])])
                moved = min(surplus[src], demand[dst])
                moved_total += moved
                dist_sum += moved * self.dist_km[src, dst]
                surplus[src] -= moved
                demand[dst] -= moved
        return dist_sum / max(self.settings.eps, moved_total)

    def evaluate(self, x: np.ndarray) -> float:
        A = self.repair(x)
        fitness = self.fitness(A)
        penalty = self.penalty(A)
        if not (math.isfinite(fitness) and math.isfinite(penalty)):
            return NON_FINITE_SENTINEL
        return -fitness + penalty

    __call__ = evaluate
