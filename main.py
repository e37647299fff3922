import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, HTTPException, Query

from models import EFAParams, FAParams, PersonnelClass, Zone
from services.optimizer import ALGORITHMS
from services.runner import MAX_RUNS, MIN_RUNS, OptimizationRunner
from utils.data_loader import load_scenario

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Flood Response Allocation")


# Resolve data paths relative to this file unless overridden
BASE_DIR = Path(__file__).parent
DATA_DIR = Path(os.environ.get("FLOOD_DATA_DIR", BASE_DIR / "database"))
ZONES_PATH = DATA_DIR / "zones.csv"
CLASSES_PATH = DATA_DIR / "classes.csv"


def read_scenario():
    return load_scenario(str(ZONES_PATH), str(CLASSES_PATH))


# Load data at startup; every run reloads so edited CSVs are picked up
scenario = read_scenario()

# One worker per algorithm, so FA and EFA can run side by side but never twice at once
executors = {algo: ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{algo}-runner") for algo in ALGORITHMS}
runners: Dict[str, Optional[OptimizationRunner]] = {algo: None for algo in ALGORITHMS}
futures: Dict[str, Optional[Future]] = {algo: None for algo in ALGORITHMS}
start_lock = threading.Lock()


def _check_algorithm(algo: str) -> None:
    if algo not in ALGORITHMS:
        raise HTTPException(status_code=404, detail=f"Unknown algorithm '{algo}'")


def _is_running(algo: str) -> bool:
    future = futures[algo]
    return future is not None and not future.done()


def _finished_runner(algo: str) -> OptimizationRunner:
    """The runner of the last run, once it has stopped running."""
    _check_algorithm(algo)
    runner = runners[algo]
    if runner is None:
        raise HTTPException(status_code=404, detail="No optimization has been run yet")
    if _is_running(algo):
        raise HTTPException(status_code=400, detail="Optimization still running")
    return runner


def _start(algo: str, params: Union[FAParams, EFAParams], num_runs: Optional[int] = None) -> Dict[str, Any]:
    # check and submit atomically
    with start_lock:
        if _is_running(algo):
            raise HTTPException(status_code=409, detail="Optimization already running")

        runner = OptimizationRunner(algo, params, read_scenario)
        runners[algo] = runner
        if num_runs is None:
            futures[algo] = executors[algo].submit(runner.run)
        else:
            futures[algo] = executors[algo].submit(runner.run_multiple, num_runs)

    if num_runs is None:
        logger.info("[%s] Single run started", algo.upper())
        return {"message": f"{algo.upper()} optimization started", "params": params.model_dump(by_alias=True)}

    logger.info("[%s] %d runs started", algo.upper(), num_runs)
    return {
        "message": f"Multiple {algo.upper()} runs started",
        "runs": num_runs,
        "params": params.model_dump(by_alias=True),
    }


@app.get("/health")
def health() -> Dict[str, Any]:
    return {
        "status": "ok",
        "zones": scenario.num_zones,
        "classes": scenario.num_classes,
        "running": {algo: _is_running(algo) for algo in ALGORITHMS},
    }


@app.get("/zones")
def get_zones() -> List[Zone]:
    return list(scenario.zones)


@app.get("/classes")
def get_classes() -> List[PersonnelClass]:
    return list(scenario.classes)


@app.post("/fa/single/run")
def run_fa(params: Optional[FAParams] = None) -> Dict[str, Any]:
    return _start("fa", params or FAParams())


@app.post("/efa/single/run")
def run_efa(params: Optional[EFAParams] = None) -> Dict[str, Any]:
    return _start("efa", params or EFAParams())


@app.post("/fa/multiple/run")
def run_fa_multiple(
    runs: int = Query(default=10, ge=MIN_RUNS, le=MAX_RUNS),
    params: Optional[FAParams] = None,
) -> Dict[str, Any]:
    return _start("fa", params or FAParams(), num_runs=runs)


@app.post("/efa/multiple/run")
def run_efa_multiple(
    runs: int = Query(default=10, ge=MIN_RUNS, le=MAX_RUNS),
    params: Optional[EFAParams] = None,
) -> Dict[str, Any]:
    return _start("efa", params or EFAParams(), num_runs=runs)


@app.get("/{algo}/status")
def get_status(algo: str) -> Dict[str, Any]:
    _check_algorithm(algo)
    runner = runners[algo]
    if runner is None:
        return {"status": "idle", "running": False}
    return runner.status().model_dump()


@app.post("/{algo}/stop")
def stop_run(algo: str) -> Dict[str, str]:
    _check_algorithm(algo)
    runner = runners[algo]
    if runner is None or not _is_running(algo):
        return {"message": "No optimization running"}
    runner.stop()
    logger.warning("[%s] Stop requested", algo.upper())
    return {"message": "Stop requested"}


@app.get("/{algo}/results")
def get_results(algo: str) -> Dict[str, Any]:
    runner = _finished_runner(algo)
    status = runner.status()
    results = runner.results()
    if "error" in results and status.error:
        results["error"] = status.error
    return results


@app.get("/{algo}/iterations")
def get_iterations(algo: str) -> List[Dict[str, Any]]:
    _check_algorithm(algo)
    runner = runners[algo]
    if runner is None:
        raise HTTPException(status_code=404, detail="No optimization has been run yet")
    # the history is a published snapshot, so it can be read mid-run
    return [it.model_dump() for it in runner.iterations()]


@app.get("/{algo}/allocations")
def get_allocations(algo: str) -> Dict[str, Any]:
    runner = _finished_runner(algo)
    if runner.mode == "multiple":
        raise HTTPException(status_code=400, detail="Allocations are only available for single runs")
    plan = runner.plan()
    if plan is None:
        raise HTTPException(status_code=404, detail="No allocation available")
    return {
        "allocations": [a.model_dump() for a in plan.allocations],
        "rationales": plan.rationales,
    }


@app.get("/{algo}/flows")
def get_flows(algo: str) -> List[Dict[str, Any]]:
    runner = _finished_runner(algo)
    if runner.mode == "multiple":
        raise HTTPException(status_code=400, detail="Flows are only available for single runs")
    plan = runner.plan()
    if plan is None:
        raise HTTPException(status_code=404, detail="No flows available")
    return [f.model_dump() for f in plan.flows]


@app.get("/{algo}/validation")
def get_validation(algo: str) -> Dict[str, Any]:
    runner = _finished_runner(algo)
    if runner.mode == "multiple":
        summary = runner.multi_validation()
        if summary is None or summary.runs == 0:
            raise HTTPException(status_code=404, detail="No validation data available")
        return summary.model_dump()
    report = runner.validation()
    if report is None:
        raise HTTPException(status_code=404, detail="No validation data available")
    return report.model_dump()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
