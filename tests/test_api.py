"""
Tests for the HTTP API
"""

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from replica_autoscaler.api.server import APIServer
from replica_autoscaler.core.registry import WorkloadRegistry
from replica_autoscaler.core.scheduler import EvaluationScheduler
from replica_autoscaler.events import EventRecorder, EventType
from replica_autoscaler.models import CycleResult, CycleStatus

from conftest import make_workload


@pytest.fixture
def autoscaler():
    autoscaler = Mock()
    autoscaler.registry = WorkloadRegistry()
    autoscaler.recorder = EventRecorder()
    autoscaler.run_cycle.side_effect = lambda workload_id, deadline: CycleResult(
        workload_id=workload_id, status=CycleStatus.UNCHANGED
    )
    autoscaler.registry.register(make_workload("web-app"))
    return autoscaler


@pytest.fixture
def scheduler(autoscaler):
    scheduler = EvaluationScheduler(autoscaler, autoscaler.registry)
    yield scheduler
    scheduler.shutdown()


@pytest.fixture
def client(autoscaler, scheduler):
    server = APIServer(autoscaler, scheduler, {"autoscaler": {"evaluation_interval": 15}})
    return TestClient(server.app)


class TestAPI:
    """Endpoints"""

    def test_root_and_health(self, client):
        assert client.get("/").json()["service"] == "Replica Autoscaler"

        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["details"]["workloads"] == 1

    def test_list_and_get_workloads(self, client):
        data = client.get("/workloads").json()
        assert data["count"] == 1
        assert data["workloads"][0]["workload_id"] == "web-app"

        assert client.get("/workloads/web-app").json()["spec"]["max_replicas"] == 10
        assert client.get("/workloads/missing").status_code == 404

    def test_register_workload(self, client, autoscaler):
        response = client.post("/workloads", json={
            "workloadId": "api",
            "minReplicas": 2,
            "maxReplicas": 6,
            "targetUtilizationPercent": 50,
            "resourceKind": "memory",
        })

        assert response.status_code == 201
        assert "api" in autoscaler.registry
        assert autoscaler.registry.spec("api").resource_kind.key == "memory"
        events = autoscaler.recorder.history("api")
        assert [e.event_type for e in events] == [EventType.WORKLOAD_REGISTERED]

    def test_register_invalid_workload(self, client, autoscaler):
        response = client.post("/workloads", json={
            "workloadId": "bad",
            "minReplicas": 5,
            "maxReplicas": 2,
        })

        assert response.status_code == 400
        assert "bad" not in autoscaler.registry

    def test_deactivate_and_enable(self, client, autoscaler):
        response = client.delete("/workloads/web-app")
        assert response.status_code == 200
        assert response.json()["workload"]["active"] is False
        assert autoscaler.registry.active() == []

        response = client.post("/workloads/web-app/enable")
        assert response.json()["workload"]["active"] is True

        assert client.delete("/workloads/missing").status_code == 404

    def test_events(self, client, autoscaler):
        autoscaler.recorder.record(EventType.SUCCESSFUL_RESCALE, "web-app", "new size: 3")

        data = client.get("/workloads/web-app/events").json()

        assert data["count"] == 1
        assert data["events"][0]["event_type"] == "SuccessfulRescale"

    def test_run_cycle(self, client, autoscaler):
        data = client.post("/cycle").json()

        assert data["count"] == 1
        assert data["results"][0]["status"] == "unchanged"
        autoscaler.run_cycle.assert_called_once()

    def test_config(self, client):
        assert client.get("/config").json() == {"autoscaler": {"evaluation_interval": 15}}
