"""
Tests for the scale executor and its targets
"""

from unittest.mock import Mock

import pytest
import requests
from kubernetes.client.rest import ApiException

from replica_autoscaler.core.exceptions import (
    CycleTimeout,
    ExecutionConflict,
    ExecutionError,
    TransientExecutionError,
    WorkloadNotFound,
)
from replica_autoscaler.core.executor import (
    HttpScaleTarget,
    KubernetesScaleTarget,
    ScaleExecutor,
    ScaleTarget,
    classify_status,
)
from replica_autoscaler.models import ScaleDirection, ScalingDecision

from conftest import make_workload


def scale_up(desired: int = 5) -> ScalingDecision:
    return ScalingDecision(workload_id="web-app", current_replicas=2, desired_replicas=desired,
                           direction=ScaleDirection.UP, reason="test")


class TestClassifyStatus:
    """HTTP status to error mapping"""

    @pytest.mark.parametrize("status,error_type", [
        (409, ExecutionConflict),
        (404, WorkloadNotFound),
        (429, TransientExecutionError),
        (503, TransientExecutionError),
        (None, TransientExecutionError),
        (403, ExecutionError),
    ])
    def test_mapping(self, status, error_type):
        error = classify_status(status, "msg", "web-app")
        assert type(error) is error_type
        assert error.status == status

    def test_transient_flags(self):
        assert classify_status(409, "", "w").transient
        assert not classify_status(404, "", "w").transient
        assert not classify_status(422, "", "w").transient


class TestScaleExecutor:
    """Applying decisions with retries"""

    @pytest.fixture
    def target(self):
        target = Mock(spec=ScaleTarget)
        target.read_replicas.return_value = 5
        return target

    @pytest.fixture
    def sleep(self):
        return Mock()

    def make_executor(self, target, sleep, **kwargs):
        workload = make_workload()
        return ScaleExecutor(target, lambda _: workload, sleep=sleep, **kwargs)

    def test_apply_patches_and_reads_back(self, target, sleep):
        executor = self.make_executor(target, sleep)

        ack = executor.apply(scale_up(5))

        target.patch_replicas.assert_called_once()
        assert target.patch_replicas.call_args[0][1] == 5
        assert ack.requested_replicas == 5
        assert ack.observed_replicas == 5
        assert ack.attempts == 1
        assert ack.converged
        sleep.assert_not_called()

    def test_conflict_retried_with_backoff(self, target, sleep):
        target.patch_replicas.side_effect = [
            ExecutionConflict("conflict", "web-app", status=409),
            ExecutionConflict("conflict", "web-app", status=409),
            None,
        ]
        executor = self.make_executor(target, sleep)

        ack = executor.apply(scale_up())

        assert ack.attempts == 3
        assert [c[0][0] for c in sleep.call_args_list] == [pytest.approx(0.2), pytest.approx(0.4)]

    def test_transient_errors_exhaust_retries(self, target, sleep):
        target.patch_replicas.side_effect = TransientExecutionError("unavailable", "web-app", status=503)
        executor = self.make_executor(target, sleep)

        with pytest.raises(TransientExecutionError):
            executor.apply(scale_up())

        assert target.patch_replicas.call_count == 3
        assert sleep.call_count == 2

    def test_not_found_not_retried(self, target, sleep):
        target.patch_replicas.side_effect = WorkloadNotFound("gone", "web-app", status=404)
        executor = self.make_executor(target, sleep)

        with pytest.raises(WorkloadNotFound):
            executor.apply(scale_up())

        assert target.patch_replicas.call_count == 1
        sleep.assert_not_called()

    def test_fatal_error_not_retried(self, target, sleep):
        target.patch_replicas.side_effect = ExecutionError("forbidden", "web-app", status=403)
        executor = self.make_executor(target, sleep)

        with pytest.raises(ExecutionError):
            executor.apply(scale_up())

        assert target.patch_replicas.call_count == 1

    def test_retry_stops_at_deadline(self, target, sleep):
        target.patch_replicas.side_effect = TransientExecutionError("unavailable", "web-app", status=503)
        executor = self.make_executor(target, sleep, monotonic=lambda: 100.0)

        with pytest.raises(CycleTimeout):
            executor.apply(scale_up(), deadline=100.1)

        assert target.patch_replicas.call_count == 1

    def test_calls_bounded_by_time_left(self, target, sleep):
        executor = self.make_executor(target, sleep, monotonic=lambda: 100.0)

        executor.apply(scale_up(5), deadline=102.5)

        assert target.patch_replicas.call_args[1]["timeout"] == pytest.approx(2.5)
        assert target.read_replicas.call_args[1]["timeout"] == pytest.approx(2.5)

    def test_deadline_passed_before_patch(self, target, sleep):
        executor = self.make_executor(target, sleep, monotonic=lambda: 100.0)

        with pytest.raises(CycleTimeout):
            executor.apply(scale_up(), deadline=100.0)

        target.patch_replicas.assert_not_called()

    def test_observe_bounded_by_deadline(self, target, sleep):
        executor = self.make_executor(target, sleep, monotonic=lambda: 100.0)

        executor.observe(make_workload(), deadline=101.0)

        assert target.read_replicas.call_args[1]["timeout"] == pytest.approx(1.0)

    def test_dry_run_does_not_patch(self, target, sleep):
        executor = self.make_executor(target, sleep, dry_run=True)

        ack = executor.apply(scale_up(7))

        target.patch_replicas.assert_not_called()
        assert ack.dry_run
        assert ack.requested_replicas == 7
        assert ack.attempts == 0

    def test_read_back_failure_still_acknowledges(self, target, sleep):
        target.read_replicas.side_effect = TransientExecutionError("timeout", "web-app")
        executor = self.make_executor(target, sleep)

        ack = executor.apply(scale_up(5))

        assert ack.observed_replicas is None
        assert not ack.converged

    def test_observe(self, target, sleep):
        target.read_replicas.return_value = 3
        executor = self.make_executor(target, sleep)

        assert executor.observe(make_workload()) == 3

    def test_invalid_attempts(self, target):
        with pytest.raises(ValueError):
            ScaleExecutor(target, lambda _: None, max_attempts=0)


class TestKubernetesScaleTarget:
    """Scale subresource through AppsV1Api"""

    def test_patch_uses_scale_subresource(self):
        apps_api = Mock()
        target = KubernetesScaleTarget(apps_api=apps_api)

        target.patch_replicas(make_workload(), 4)

        apps_api.patch_namespaced_deployment_scale.assert_called_once_with(
            "web-app", "default", {"spec": {"replicas": 4}}, _request_timeout=5
        )

    def test_read_stateful_set(self):
        apps_api = Mock()
        scale = Mock()
        scale.spec.replicas = 3
        apps_api.read_namespaced_stateful_set_scale.return_value = scale
        target = KubernetesScaleTarget(apps_api=apps_api)

        assert target.read_replicas(make_workload(kind="StatefulSet", name="db")) == 3
        apps_api.read_namespaced_stateful_set_scale.assert_called_once_with("db", "default", _request_timeout=5)

    def test_request_timeout_capped(self):
        apps_api = Mock()
        target = KubernetesScaleTarget(apps_api=apps_api, request_timeout=5)

        target.patch_replicas(make_workload(), 4, timeout=1.5)
        assert apps_api.patch_namespaced_deployment_scale.call_args[1]["_request_timeout"] == 1.5

        target.patch_replicas(make_workload(), 4, timeout=30)
        assert apps_api.patch_namespaced_deployment_scale.call_args[1]["_request_timeout"] == 5

    def test_api_exception_classified(self):
        apps_api = Mock()
        apps_api.patch_namespaced_deployment_scale.side_effect = ApiException(status=409, reason="Conflict")
        target = KubernetesScaleTarget(apps_api=apps_api)

        with pytest.raises(ExecutionConflict):
            target.patch_replicas(make_workload(), 4)


class TestHttpScaleTarget:
    """Scale endpoint over HTTP"""

    def test_read_and_patch(self):
        session = Mock()
        response = Mock()
        response.json.return_value = {"replicas": 6}
        session.request.return_value = response
        target = HttpScaleTarget("http://scaler:8000", session=session)

        assert target.read_replicas(make_workload()) == 6
        target.patch_replicas(make_workload(), 7)

        session.request.assert_called_with("PATCH", "http://scaler:8000/workloads/web-app/scale",
                                           timeout=5, json={"replicas": 7})

    def test_http_error_classified(self):
        session = Mock()
        response = Mock()
        error = requests.exceptions.HTTPError("429 Too Many Requests")
        error.response = Mock(status_code=429)
        response.raise_for_status.side_effect = error
        session.request.return_value = response
        target = HttpScaleTarget("http://scaler:8000", session=session)

        with pytest.raises(TransientExecutionError):
            target.patch_replicas(make_workload(), 7)
