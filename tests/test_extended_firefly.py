import math

import numpy as np
import pytest

from models import EFAParams
from services.extended_firefly import ExtendedFireflyAlgorithm
from services.feasibility import is_feasible
from services.objective import NON_FINITE_SENTINEL, AllocationObjective
from services.optimizer import build_optimizer


def sphere(x):
    return float(np.sum(x * x))


def make_efa(feasible=lambda x: True, seed=11, generations=10, dims=3):
    return ExtendedFireflyAlgorithm(
        sphere,
        feasible,
        num_fireflies=10,
        lower_bound=np.zeros(dims),
        upper_bound=np.full(dims, 10.0),
        gamma=1.0,
        beta0=1.0,
        beta_min=0.2,
        alpha0=0.6,
        alpha_final=0.05,
        generations=generations,
        rng=np.random.default_rng(seed),
    )


def test_gamma_from_influence_radius():
    efa = make_efa()
    gamma = efa.tune_gamma_by_influence_radius(1.0, 0.6)
    assert gamma == pytest.approx(0.5108, abs=1e-4)
    assert efa.gamma == gamma
    assert efa.attractiveness(1.0) == pytest.approx(0.6)


def test_beta_never_below_floor():
    efa = make_efa()
    assert efa.attractiveness(100.0) == 0.2
    assert efa.attractiveness(0.0) == 1.0


def test_inertia_schedule_endpoints():
    w = ExtendedFireflyAlgorithm.compute_self_adaptive_inertia_weight
    assert w(1, 100, 0.9, 0.4, 1.0) == pytest.approx(0.9)
    assert w(100, 100, 0.9, 0.4, 1.0) == pytest.approx(0.4)
    assert w(1, 1, 0.9, 0.4, 1.0) == pytest.approx(0.4)
    assert 0.4 < w(10, 100, 0.9, 0.4, 1.0) < 0.9
    assert math.isnan(w(5, 10, float("nan"), 0.4, 1.0))


def test_step_factor_decays_and_stays_non_negative():
    efa = make_efa()
    early = efa.compute_dynamic_step_factor(1, 50, 0.9, 3)
    late = efa.compute_dynamic_step_factor(50, 50, 0.9, 3)
    assert early > late >= 0.0
    assert math.isnan(efa.compute_dynamic_step_factor(1, 50, float("nan"), 3))


def test_normalized_distance():
    efa = make_efa()
    assert efa.distance(np.zeros(3), np.full(3, 10.0)) == pytest.approx(1.0)
    assert efa.distance(np.zeros(3), np.zeros(3)) == 0.0


def test_infeasible_candidates_get_infinite_brightness():
    efa = make_efa(feasible=lambda x: False)
    for i in range(efa.num_fireflies):
        efa._update_firefly(i)
    assert np.isinf(efa.brightness).all()
    # nothing feasible was ever seen, so the best stays at the sentinel
    assert efa.best_value == NON_FINITE_SENTINEL
    efa._random_walk_best()
    assert efa.best_value == NON_FINITE_SENTINEL


def test_hamming_distance_of_quantized_positions():
    efa = make_efa()
    assert efa.hamming_distance(np.zeros(3), np.zeros(3)) == 0
    assert efa.hamming_distance(np.zeros(3), np.full(3, 10.0)) == efa.string_length == 24


def test_diversity_control_reinitializes_duplicates():
    efa = make_efa()
    efa.fireflies[:] = 5.0
    count = efa.apply_diversity_control(0)
    assert 1 <= count <= efa.num_fireflies
    assert len({tuple(f) for f in efa.fireflies}) > 1


def test_snapshots_carry_diagnostics():
    efa = make_efa(generations=5)
    snapshots = list(efa.iterate())
    values = [s.best_value for s in snapshots]

    assert len(snapshots) == 5
    assert all(b <= a for a, b in zip(values, values[1:]))
    assert {"inertia", "step_factor", "avg_beta", "floored_beta_rate"} <= set(snapshots[0].diagnostics)
    assert snapshots[0].diagnostics["moves_toward"] + snapshots[0].diagnostics["random_walks"] == 100
    assert all(s.reinitialized >= 0 for s in snapshots)


def test_reinitialized_firefly_is_filtered():
    efa = make_efa(feasible=lambda x: False)
    efa._reinitialize_firefly(0)
    assert np.isinf(efa.brightness[0])
    assert efa.best_value == NON_FINITE_SENTINEL


@pytest.mark.parametrize("seed", range(5))
def test_best_solution_is_always_feasible(scenario, seed):
    params = EFAParams(generations=15, num_fireflies=12, seed=seed)
    objective = AllocationObjective(scenario)
    efa = build_optimizer("efa", scenario, params, objective, rng=np.random.default_rng(seed))
    efa.optimize()

    assert efa.best_value < NON_FINITE_SENTINEL
    assert is_feasible(efa.best_solution, scenario.f, scenario.current, scenario.num_zones, scenario.num_classes)
    assert efa.best_value == pytest.approx(objective(efa.best_solution))


def test_every_scored_best_is_feasible():
    # only vectors whose first coordinate is at least 5 count as feasible
    efa = make_efa(feasible=lambda x: x[0] >= 5.0, generations=20)
    for snapshot in efa.iterate():
        if snapshot.best_value < NON_FINITE_SENTINEL:
            assert snapshot.best_solution[0] >= 5.0
