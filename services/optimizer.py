import logging
from typing import List, Optional, Tuple, Union

import numpy as np

from models import AllocationResult, EFAParams, FAParams, FlowResult, ObjectiveSettings, Scenario
from services.extended_firefly import ExtendedFireflyAlgorithm
from services.feasibility import is_feasible
from services.firefly import FireflyAlgorithm
from services.flow_allocator import allocate_flows
from services.normalizer import enforce_supply_and_round
from services.objective import AllocationObjective

logger = logging.getLogger(__name__)

ALGORITHMS = ("fa", "efa")
CAPACITY_HEADROOM = 200


def build_bounds(scenario: Scenario) -> Tuple[np.ndarray, np.ndarray]:
    """
    Per-dimension search box for the flattened (zone, class) vector:
    lower = 0, upper = max(1, min(supply[c], AC[i] + 200)).
    """
    supply = scenario.supply
    AC = scenario.AC
    upper = np.maximum(1.0, np.minimum(supply[None, :], AC[:, None] + CAPACITY_HEADROOM))
    lower = np.zeros_like(upper)
    return lower.ravel(), upper.ravel()


def objective_settings_for(algorithm: str) -> ObjectiveSettings:
    # The baseline runs weigh personnel movement distance; the extended runs rely on filtering instead.
    return ObjectiveSettings(use_distance_penalty=(algorithm == "fa"))


def build_optimizer(
    algorithm: str,
    scenario: Scenario,
    params: Union[FAParams, EFAParams],
    objective: AllocationObjective,
    rng: Optional[np.random.Generator] = None,
) -> FireflyAlgorithm:
    lower, upper = build_bounds(scenario)

    if algorithm == "fa":
        return FireflyAlgorithm(
            objective,
            params.num_fireflies,
            lower,
            upper,
            gamma=params.gamma,
            beta0=params.beta0,
            alpha0=params.alpha0,
            alpha_final=params.alpha_final,
            generations=params.generations,
            rng=rng,
        )

    if algorithm == "efa":
        Z, C = scenario.num_zones, scenario.num_classes
        depth = scenario.f
        current = scenario.current

        def feasible(x: np.ndarray) -> bool:
            return is_feasible(x, depth, current, Z, C)

        efa = ExtendedFireflyAlgorithm(
            objective,
            feasible,
            params.num_fireflies,
            lower,
            upper,
            gamma=params.gamma,
            beta0=params.beta0,
            beta_min=params.beta_min,
            alpha0=params.alpha0,
            alpha_final=params.alpha_final,
            generations=params.generations,
            rng=rng,
        )
        # gamma is tuned for the normalized distance scale
        gamma = efa.tune_gamma_by_influence_radius(1.0, 0.6)
        logger.debug("EFA gamma tuned to %.4f for %d dimensions", gamma, efa.dimensions)
        return efa

    raise ValueError(f"Unknown algorithm: {algorithm}")


def finalize_allocation(best_solution: np.ndarray, scenario: Scenario, eps: float = 1e-6) -> np.ndarray:
    """Repair the best vector against supply caps and round it to an integer (Z, C) matrix."""
    A = np.maximum(0.0, np.asarray(best_solution, dtype=float).reshape(scenario.num_zones, scenario.num_classes))
    supply = scenario.supply
    used = A.sum(axis=0)
    over = used > supply + eps
    if np.any(over):
        A = A * np.where(over, supply / (used + eps), 1.0)
    return enforce_supply_and_round(A, supply)


def plan_flows(A: np.ndarray, scenario: Scenario) -> np.ndarray:
    return allocate_flows(A, scenario.current, scenario.lat, scenario.lon)


def build_allocation_rows(A: np.ndarray, scenario: Scenario) -> List[AllocationResult]:
    rows = []
    for i, zone in enumerate(scenario.zones):
        personnel = {cls.name: int(np.rint(A[i, c])) for c, cls in enumerate(scenario.classes)}
        rows.append(
            AllocationResult(
                zone_id=zone.zone_id,
                zone_name=zone.name,
                personnel=personnel,
                total=int(np.rint(A[i].sum())),
            )
        )
    return rows


def build_flow_rows(flows: np.ndarray, scenario: Scenario) -> List[FlowResult]:
    """Flatten a (C, Z, Z) flow array into rows, keeping only positive transfers."""
    rows = []
    for c, src, dst in zip(*np.nonzero(flows > 0)):
        cls = scenario.classes[c]
        origin = scenario.zones[src]
        destination = scenario.zones[dst]
        rows.append(
            FlowResult(
                class_id=cls.class_id,
                class_name=cls.name,
                from_zone_id=origin.zone_id,
                from_zone_name=origin.name,
                to_zone_id=destination.zone_id,
                to_zone_name=destination.name,
                units=int(flows[c, src, dst]),
            )
        )
    return rows
