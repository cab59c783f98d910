import pytest
from fastapi.testclient import TestClient

from api.dependencies import set_runtime
from api.main import create_app
from lifecycle.cancellation import CancellationSignal


class FakeRuntime:
    def __init__(self):
        self.stop = CancellationSignal()

    def status(self):
        return {
            "identity": "operator-0",
            "lease_name": "mysql-operator-titanium",
            "state": "LEADING",
            "is_leader": True,
            "leader": "operator-0",
            "leader_transitions": 2,
            "stopping": self.stop.fired,
            "stop_reason": self.stop.reason,
        }

    def controller_status(self):
        return {"cluster": "running"}


@pytest.fixture
def runtime():
    runtime = FakeRuntime()
    set_runtime(runtime)
    yield runtime
    set_runtime(None)


@pytest.fixture
def client():
    return TestClient(create_app())


def test_healthz_without_runtime(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_system_routes_need_runtime(client):
    assert client.get("/system/leader").status_code == 503
    assert client.get("/system/controllers").status_code == 503


def test_leader(client, runtime):
    body = client.get("/system/leader").json()
    assert body["identity"] == "operator-0"
    assert body["state"] == "LEADING"
    assert body["is_leader"] is True
    assert body["leader_transitions"] == 2


def test_controllers(client, runtime):
    body = client.get("/system/controllers").json()
    assert body == {"count": 1, "controllers": {"cluster": "running"}}


def test_healthz_reports_stopping(client, runtime):
    runtime.stop.fire("SIGTERM")
    body = client.get("/healthz").json()
    assert body["status"] == "stopping"
    assert body["reason"] == "SIGTERM"


def test_task_routes(client):
    summary = client.get("/system/tasks/summary").json()
    assert summary["total"] == 0
    assert summary["summary"].startswith("Tasks:")

    tasks = client.get("/system/tasks").json()
    assert tasks == {"count": 0, "tasks": []}
