"""
Run lifecycle for one algorithm.

A runner is driven by a single worker thread. The worker is the only writer of
run state; it publishes frozen snapshots (status, iteration history, results)
by swapping references under a lock, so readers never see partial updates.
Cancellation is cooperative: the stop flag is checked after every generation.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from models import EFAParams, FAParams, FlowResult, IterationResult, KPIs, Plan, RunStatus, Scenario
from services.exceptions import RunStopped
from services.objective import AllocationObjective
from services.optimizer import (
    build_allocation_rows,
    build_flow_rows,
    build_optimizer,
    finalize_allocation,
    objective_settings_for,
    plan_flows,
)
from services.rationals import generate_rationales
from services.validation import MultiRunValidation, ValidationReport, summarize_validations, validate_allocations

logger = logging.getLogger(__name__)

PRECISION = 12
LOG_EVERY = 50
MIN_RUNS = 2
MAX_RUNS = 100


class OptimizationRunner:
    def __init__(
        self,
        algorithm: str,
        params: Union[FAParams, EFAParams],
        load_scenario: Callable[[], Scenario],
    ):
        self.algorithm = algorithm
        self.params = params
        self._load_scenario = load_scenario

        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._status = RunStatus(total_iterations=params.generations)
        self._iterations: Tuple[IterationResult, ...] = ()
        self._plan: Optional[Plan] = None
        self._validation: Optional[ValidationReport] = None
        self._multi_results: Optional[Dict[str, Any]] = None
        self._multi_validation: Optional[MultiRunValidation] = None

    def _publish(self, **changes: Any) -> None:
        with self._lock:
            self._status = self._status.model_copy(update=changes)

    def status(self) -> RunStatus:
        with self._lock:
            status = self._status
        run_progress = status.current_iteration / max(1, status.total_iterations)
        if status.completed:
            progress = 1.0
        elif status.mode == "multiple":
            progress = (max(0, status.current_run - 1) + run_progress) / max(1, status.total_runs)
        else:
            progress = run_progress
        return status.model_copy(update={"progress": round(progress, 4)})

    def is_running(self) -> bool:
        return self.status().running

    @property
    def mode(self) -> str:
        return self.status().mode

    def iterations(self) -> List[IterationResult]:
        return list(self._iterations)

    def plan(self) -> Optional[Plan]:
        return self._plan

    def validation(self) -> Optional[ValidationReport]:
        return self._validation

    def multi_validation(self) -> Optional[MultiRunValidation]:
        return self._multi_validation

    def results(self) -> Dict[str, Any]:
        if self.mode == "multiple":
            return self._multi_results or {"error": "No successful runs completed"}
        if self._plan is None:
            return {"error": "No results available"}
        return self._plan.kpis.model_dump()

    def stop(self) -> None:
        self._stop.set()

    def _check_stopped(self) -> None:
        if self._stop.is_set():
            raise RunStopped()

    def run(self) -> None:
        """Execute one run. Failures are recorded on the status, not raised."""
        self._publish(status="running", running=True, mode="single", total_runs=1, current_run=1)
        self._iterations = ()
        self._plan = None
        self._validation = None
        try:
            plan, scenario = self._execute_single_run(self._rng(1), single=True)
            self._plan = plan
            self._validation = validate_allocations(scenario, plan.allocations)
            self._publish(status="completed", completed=True)
            logger.info("[%s] Single run completed", self.algorithm.upper())
        except RunStopped:
            logger.warning("[%s] Stopped by user", self.algorithm.upper())
            self._publish(status="stopped", stopped=True, error="Stopped by user.")
        except Exception as e:
            logger.exception("[%s] Run failed", self.algorithm.upper())
            self._publish(status="failed", error=f"Run error: {e}")
        finally:
            self._publish(running=False)

    def run_multiple(self, num_runs: int) -> None:
        """Execute ``num_runs`` independent runs in sequence and aggregate their statistics."""
        if num_runs < MIN_RUNS:
            raise ValueError(f"Number of runs must be at least {MIN_RUNS}")
        if num_runs > MAX_RUNS:
            raise ValueError(f"Number of runs cannot exceed {MAX_RUNS}")

        self._publish(
            status="running",
            running=True,
            mode="multiple",
            total_runs=num_runs,
            completed_runs=0,
            failed_runs=0,
            errors=[],
        )
        self._multi_results = None
        self._multi_validation = None
        rows: List[Dict[str, Any]] = []
        errors: List[str] = []
        stopped_at: Optional[int] = None
        reports: List[ValidationReport] = []
        started = time.perf_counter()
        logger.info("[%s] Starting %d runs", self.algorithm.upper(), num_runs)

        try:
            for run in range(1, num_runs + 1):
                if self._stop.is_set():
                    logger.warning("Multiple runs stopped by user at run %d", run)
                    stopped_at = run
                    break
                self._publish(current_run=run, current_iteration=0)
                self._iterations = ()
                try:
                    plan, scenario = self._execute_single_run(self._rng(run), single=False, run=run, total_runs=num_runs)
                except RunStopped:
                    logger.warning("Run %d stopped by user", run)
                    stopped_at = run
                    self._publish(stopped=True)
                    break
                except Exception as e:
                    logger.exception("Run %d failed", run)
                    errors.append(f"Run {run}: {e}")
                    self._publish(failed_runs=len(errors), errors=list(errors))
                    continue

                rows.append({"run_number": run, **plan.kpis.model_dump()})
                report = validate_allocations(scenario, plan.allocations)
                if report.error is None:
                    reports.append(report)
                self._publish(completed_runs=len(rows))
                logger.info("Run %d/%d completed successfully", run, num_runs)

            duration_ms = round((time.perf_counter() - started) * 1000.0, PRECISION)
            if rows:
                self._multi_results = aggregate_runs(rows, num_runs, errors, duration_ms, stopped_at_run=stopped_at)
            self._multi_validation = summarize_validations(reports)
            stopped = self._stop.is_set()
            self._publish(
                status="stopped" if stopped else "completed",
                completed=not stopped,
                total_duration_ms=duration_ms,
            )
            logger.info("Completed %d out of %d runs", len(rows), num_runs)
        finally:
            self._publish(running=False)

    def _rng(self, run: int) -> np.random.Generator:
        seed = self.params.seed
        return np.random.default_rng(None if seed is None else seed + run - 1)

    def _execute_single_run(
        self,
        rng: np.random.Generator,
        single: bool,
        run: int = 1,
        total_runs: int = 1,
    ) -> Tuple[Plan, Scenario]:
        scenario = self._load_scenario()
        objective = AllocationObjective(scenario, objective_settings_for(self.algorithm))
        optimizer = build_optimizer(self.algorithm, scenario, self.params, objective, rng=rng)
        logger.info(
            "[%s] Running optimizer over %d zones x %d classes (distance penalty: %s)",
            self.algorithm.upper(),
            scenario.num_zones,
            scenario.num_classes,
            objective.distance_enabled,
        )

        history: List[IterationResult] = []
        started = time.perf_counter()
        for snapshot in optimizer.iterate():
            self._check_stopped()
            best_value = round(snapshot.best_value, PRECISION)
            history.append(
                IterationResult(
                    generation=snapshot.generation,
                    fitness=-best_value,
                    best_value=best_value,
                    reinitialized=snapshot.reinitialized,
                    diagnostics=dict(snapshot.diagnostics),
                )
            )
            self._iterations = tuple(history)
            self._publish(current_iteration=snapshot.generation)
            if snapshot.generation % LOG_EVERY == 0:
                prefix = f"[Run {run}/{total_runs}] " if total_runs > 1 else ""
                logger.info("%sIter %d: Fitness Score (Maximization) = %s", prefix, snapshot.generation, -best_value)
        self._check_stopped()
        elapsed_ms = round((time.perf_counter() - started) * 1000.0, PRECISION)

        A = finalize_allocation(optimizer.best_solution, scenario)
        minimized = round(optimizer.best_value, PRECISION)
        kpis = KPIs(
            fitness_maximization=-minimized,
            fitness_minimization=minimized,
            total_iterations=self.params.generations,
            execution_time_ms=elapsed_ms,
        )

        flows: List[FlowResult] = []
        if single:
            flows = build_flow_rows(plan_flows(A, scenario), scenario)
            logger.info("Execution Time: %s ms", elapsed_ms)
            logger.info("Best Fitness Score (Maximization) = %s", kpis.fitness_maximization)
            logger.info("Best Fitness Score (Minimization) = %s", kpis.fitness_minimization)

        plan = Plan(
            algorithm=self.algorithm,
            kpis=kpis,
            best_solution=[float(v) for v in optimizer.best_solution],
            allocations=build_allocation_rows(A, scenario),
            flows=flows,
        )
        if single:
            plan.rationales = generate_rationales(plan, scenario)
        return plan, scenario


def aggregate_runs(
    rows: List[Dict[str, Any]],
    total_runs: int,
    errors: List[str],
    duration_ms: float,
    stopped_at_run: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Best / worst / average statistics over the successful runs of a multi-run.
    `errors` holds failures only; a stop is reported through `stopped_at_run`.
    """
    df = pd.DataFrame(rows)
    maximized = df["fitness_maximization"]
    minimized = df["fitness_minimization"]
    elapsed = df["execution_time_ms"]
    aggregated: Dict[str, Any] = {
        "total_runs": total_runs,
        "successful_runs": len(df),
        "failed_runs": len(errors),
        "total_duration_ms": duration_ms,
        "stopped": stopped_at_run is not None,
        "stopped_at_run": stopped_at_run,
        "fitness_maximization": {
            "best": float(maximized.max()),
            "worst": float(maximized.min()),
            "average": float(maximized.mean()),
        },
        "fitness_minimization": {
            "best": float(minimized.min()),
            "worst": float(minimized.max()),
            "average": float(minimized.mean()),
        },
        "execution_time": {
            "average": float(elapsed.mean()),
            "min": float(elapsed.min()),
            "max": float(elapsed.max()),
        },
        "runs": df[["run_number", "fitness_maximization", "fitness_minimization", "execution_time_ms"]].to_dict(
            orient="records"
        ),
    }
    if errors:
        aggregated["errors"] = list(errors)
    return aggregated
