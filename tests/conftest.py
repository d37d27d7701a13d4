"""
Shared fixtures for the autoscaler tests
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from replica_autoscaler.models import MetricKind, MetricSample, UtilizationSnapshot, WorkloadSpec

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable wall clock and monotonic clock"""

    def __init__(self, start: datetime = T0):
        self.now = start
        self.mono = 1000.0

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return self.mono

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)
        self.mono += seconds


def make_workload(workload_id: str = "web-app", current: int = 2, min_replicas: int = 1,
                  max_replicas: int = 10, target: float = 70.0, **kwargs) -> WorkloadSpec:
    return WorkloadSpec(
        workload_id=workload_id,
        current_replicas=current,
        min_replicas=min_replicas,
        max_replicas=max_replicas,
        target_utilization_percent=target,
        **kwargs,
    )


def make_samples(utilizations: List[float], workload_id: str = "web-app",
                 kind: Optional[MetricKind] = None, request: float = 1000.0,
                 ready: bool = True, timestamp: datetime = T0) -> List[MetricSample]:
    """One sample per replica with usage = utilization% of the request"""
    kind = kind or MetricKind.cpu()
    return [
        MetricSample(
            workload_id=workload_id,
            replica_id=f"{workload_id}-{i}",
            kind=kind,
            raw_value=request * utilization / 100.0,
            requested_value=request,
            ready=ready,
            timestamp=timestamp,
        )
        for i, utilization in enumerate(utilizations)
    ]


def make_snapshot(value: float, workload_id: str = "web-app",
                  kind: Optional[MetricKind] = None, count: int = 2) -> UtilizationSnapshot:
    return UtilizationSnapshot(
        workload_id=workload_id,
        kind=kind or MetricKind.cpu(),
        aggregated_value=value,
        sample_count=count,
        excluded_count=0,
        window_start=T0,
        window_end=T0,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def workload():
    return make_workload()
