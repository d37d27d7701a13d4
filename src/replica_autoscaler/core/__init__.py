"""
Core autoscaler modules
"""

from .aggregator import UtilizationAggregator, build_reducer
from .autoscaler import Autoscaler
from .executor import ScaleExecutor, KubernetesScaleTarget, HttpScaleTarget
from .registry import WorkloadRegistry, WorkloadState
from .sampler import MetricSampler, KubernetesMetricsSource, HttpMetricsSource
from .scaling import ScalingDecisionEngine
from .scheduler import EvaluationScheduler
from .stabilization import StabilizationWindow

__all__ = [
    "UtilizationAggregator",
    "build_reducer",
    "Autoscaler",
    "ScaleExecutor",
    "KubernetesScaleTarget",
    "HttpScaleTarget",
    "WorkloadRegistry",
    "WorkloadState",
    "MetricSampler",
    "KubernetesMetricsSource",
    "HttpMetricsSource",
    "ScalingDecisionEngine",
    "EvaluationScheduler",
    "StabilizationWindow",
]
