"""
Models package for autoscaler data structures
"""

from .metrics import (
    MetricKind,
    MetricKindName,
    MetricSample,
    UtilizationSnapshot,
)
from .workload import (
    MetricTarget,
    WorkloadSpec,
    ScaleDirection,
    ScalingDecision,
    StabilizationState,
    ScaleAck,
    CycleStatus,
    CycleResult,
)

__all__ = [
    "MetricKind",
    "MetricKindName",
    "MetricSample",
    "UtilizationSnapshot",
    "MetricTarget",
    "WorkloadSpec",
    "ScaleDirection",
    "ScalingDecision",
    "StabilizationState",
    "ScaleAck",
    "CycleStatus",
    "CycleResult",
]
