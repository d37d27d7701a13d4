"""
Tests for service wiring
"""

from unittest.mock import patch

import pytest

from replica_autoscaler.core.executor import HttpScaleTarget
from replica_autoscaler.core.sampler import HttpMetricsSource
from replica_autoscaler.main import AutoscalerService


@pytest.fixture
def http_backends(monkeypatch):
    monkeypatch.setenv("METRICS_SOURCE", "http")
    monkeypatch.setenv("METRICS_HTTP_URL", "http://metrics:8000")
    monkeypatch.setenv("AUTOSCALER_SCALE_TARGET", "http")
    monkeypatch.setenv("AUTOSCALER_SCALE_HTTP_URL", "http://scaler:8000")
    monkeypatch.setenv("REDIS_ENABLED", "false")


@pytest.fixture
def quiet_service():
    with patch("replica_autoscaler.main.setup_logging"), patch("replica_autoscaler.main.signal.signal"):
        yield


def test_service_wires_http_backends_and_workloads(tmp_path, http_backends, quiet_service):
    config = tmp_path / "autoscaler.yaml"
    config.write_text(
        "metrics:\n"
        "  source: http\n"
        "  http_url: http://metrics:8000\n"
        "autoscaler:\n"
        "  scale_target: http\n"
        "  evaluation_interval: 20\n"
        "workloads:\n"
        "  - workloadId: web-app\n"
        "    maxReplicas: 10\n"
        "  - workloadId: broken\n"
        "    minReplicas: 5\n"
        "    maxReplicas: 2\n"
    )

    service = AutoscalerService(str(config), dry_run=True)

    assert isinstance(service.sampler.source, HttpMetricsSource)
    assert isinstance(service.executor.target, HttpScaleTarget)
    assert service.executor.dry_run
    assert service.scheduler.interval == 20
    assert [s.workload_id for s in service.registry.list()] == ["web-app"]
    assert service.redis is None
    service.cleanup()


def test_service_without_config_file(tmp_path, http_backends, quiet_service):
    service = AutoscalerService(str(tmp_path / "missing.yaml"))

    assert isinstance(service.sampler.source, HttpMetricsSource)
    assert len(service.registry) == 0
    service.cleanup()
