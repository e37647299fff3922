import threading
from concurrent.futures import Future, ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient

import main

SMALL = {"generations": 10, "numFireflies": 10, "seed": 1}


@pytest.fixture
def client():
    for algo in main.ALGORITHMS:
        main.runners[algo] = None
        main.futures[algo] = None
    return TestClient(main.app)


def wait(algo):
    main.futures[algo].result(timeout=120)


def test_health_and_scenario(client):
    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["zones"] == 6
    assert health["running"] == {"fa": False, "efa": False}

    zones = client.get("/zones").json()
    assert [z["zone_id"] for z in zones] == ["Z1", "Z2", "Z3", "Z4", "Z5", "Z6"]
    classes = client.get("/classes").json()
    assert [c["class_id"] for c in classes] == ["SAR", "EMS"]


def test_nothing_run_yet(client):
    assert client.get("/fa/status").json() == {"status": "idle", "running": False}
    assert client.get("/fa/results").status_code == 404
    assert client.get("/efa/allocations").status_code == 404
    assert client.get("/efa/iterations").status_code == 404
    assert client.post("/fa/stop").json() == {"message": "No optimization running"}
    assert client.get("/ga/status").status_code == 404


def test_single_run_lifecycle(client):
    resp = client.post("/fa/single/run", json=SMALL)
    assert resp.status_code == 200
    assert resp.json()["params"]["numFireflies"] == 10
    wait("fa")

    status = client.get("/fa/status").json()
    assert status["status"] == "completed"
    assert status["progress"] == 1.0

    results = client.get("/fa/results").json()
    assert results["total_iterations"] == 10
    assert results["fitness_maximization"] == -results["fitness_minimization"]

    iterations = client.get("/fa/iterations").json()
    assert len(iterations) == 10

    allocations = client.get("/fa/allocations").json()
    assert len(allocations["allocations"]) == 6
    assert len(allocations["rationales"]) >= 6

    flows = client.get("/fa/flows").json()
    assert all(f["units"] > 0 for f in flows)

    validation = client.get("/fa/validation").json()
    assert validation["overall"]["total_zones"] == 6
    assert "quality_rating" in validation["overall"]


def test_efa_single_run(client):
    resp = client.post("/efa/single/run", json={**SMALL, "betaMin": 0.3})
    assert resp.status_code == 200
    wait("efa")
    assert client.get("/efa/status").json()["status"] == "completed"
    assert len(client.get("/efa/iterations").json()) == 10


def test_invalid_parameters_rejected(client):
    assert client.post("/fa/single/run", json={"generations": 5}).status_code == 422
    assert client.post("/efa/single/run", json={"beta0": 0.2, "betaMin": 0.5}).status_code == 422
    assert client.post("/fa/multiple/run", params={"runs": 1}, json=SMALL).status_code == 422
    assert client.post("/fa/multiple/run", params={"runs": 101}, json=SMALL).status_code == 422
    assert main.runners["fa"] is None


def test_multiple_runs(client):
    resp = client.post("/efa/multiple/run", params={"runs": 2}, json=SMALL)
    assert resp.status_code == 200
    assert resp.json()["runs"] == 2
    wait("efa")

    status = client.get("/efa/status").json()
    assert status["mode"] == "multiple"
    assert status["completed_runs"] == 2

    results = client.get("/efa/results").json()
    assert results["successful_runs"] == 2
    assert len(results["runs"]) == 2

    assert client.get("/efa/flows").status_code == 400
    assert client.get("/efa/allocations").status_code == 400
    assert client.get("/efa/validation").json()["runs"] == 2


def test_busy_algorithm(client):
    pending = Future()
    main.runners["fa"] = main.OptimizationRunner("fa", main.FAParams(), main.read_scenario)
    main.futures["fa"] = pending

    assert client.post("/fa/single/run", json=SMALL).status_code == 409
    assert client.get("/fa/results").status_code == 400
    assert client.post("/fa/stop").json() == {"message": "Stop requested"}
    # the other algorithm is unaffected
    assert client.get("/efa/results").status_code == 404
    pending.set_result(None)


def test_concurrent_starts_run_once(client, monkeypatch):
    release = threading.Event()
    started = []

    class BlockingRunner(main.OptimizationRunner):
        def run(self):
            started.append(self)
            release.wait(timeout=30)

    monkeypatch.setattr(main, "OptimizationRunner", BlockingRunner)

    def post(_):
        return TestClient(main.app).post("/fa/single/run", json=SMALL).status_code

    try:
        with ThreadPoolExecutor(max_workers=4) as pool:
            codes = sorted(pool.map(post, range(4)))
    finally:
        release.set()
    wait("fa")

    assert codes == [200, 409, 409, 409]
    assert started == [main.runners["fa"]]
