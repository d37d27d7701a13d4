#!/usr/bin/env python3
"""
Utilization aggregator module

Turns raw per-replica samples into one utilization signal per metric kind.
Resource kinds (cpu, memory) are expressed as a percent of the replica's
request; custom kinds as the per-replica average value.
"""

import math
from typing import Dict, List, Optional, Tuple

from ..models import MetricKind, MetricKindName, MetricSample, UtilizationSnapshot
from .exceptions import InsufficientData
from .logging_config import get_logger

logger = get_logger(__name__)


class Reducer:
    """Reduces per-replica values to a single number"""

    name = "reducer"

    def reduce(self, values: List[float]) -> float:
        raise NotImplementedError


class MeanReducer(Reducer):
    """Arithmetic mean, no outlier trimming"""

    name = "mean"

    def reduce(self, values: List[float]) -> float:
        return sum(values) / len(values)


class TrimmedMeanReducer(Reducer):
    """Mean after dropping a fraction of the lowest and highest values"""

    name = "trimmed_mean"

    def __init__(self, fraction: float = 0.1):
        if not 0 <= fraction < 0.5:
            raise ValueError("trim fraction must be in [0, 0.5)")
        self.fraction = fraction

    def reduce(self, values: List[float]) -> float:
        ordered = sorted(values)
        cut = int(len(ordered) * self.fraction)
        kept = ordered[cut:len(ordered) - cut] if cut else ordered
        return sum(kept) / len(kept)


class PercentileReducer(Reducer):
    """Nearest-rank percentile"""

    name = "percentile"

    def __init__(self, percentile: float = 90):
        if not 0 < percentile <= 100:
            raise ValueError("percentile must be in (0, 100]")
        self.percentile = percentile

    def reduce(self, values: List[float]) -> float:
        ordered = sorted(values)
        rank = max(1, math.ceil(self.percentile / 100 * len(ordered)))
        return ordered[rank - 1]


def build_reducer(name: str, trim_fraction: float = 0.1, percentile: float = 90) -> Reducer:
    """Create a reducer from its configured name"""
    if name == "mean":
        return MeanReducer()
    if name == "trimmed_mean":
        return TrimmedMeanReducer(trim_fraction)
    if name == "percentile":
        return PercentileReducer(percentile)
    raise ValueError(f"Unknown aggregation strategy: {name}")


class ResourceUtilization:
    """Per-replica value for cpu/memory: usage as a percent of the request"""

    def replica_value(self, sample: MetricSample) -> Optional[float]:
        if not sample.ready:
            return None
        if not sample.requested_value:
            return None
        return sample.raw_value / sample.requested_value * 100.0


class CustomAverage:
    """Per-replica value for custom metrics: the raw value itself"""

    def replica_value(self, sample: MetricSample) -> Optional[float]:
        if not sample.ready:
            return None
        return sample.raw_value


class UtilizationAggregator:
    """Computes a UtilizationSnapshot from raw samples"""

    def __init__(self, reducer: Optional[Reducer] = None):
        self.reducer = reducer or MeanReducer()
        self._strategies = {
            MetricKindName.CPU: ResourceUtilization(),
            MetricKindName.MEMORY: ResourceUtilization(),
            MetricKindName.CUSTOM: CustomAverage(),
        }

    def aggregate(self, samples: List[MetricSample], kind: MetricKind) -> UtilizationSnapshot:
        """
        Aggregate samples of one metric kind

        Only the most recent sample of each replica counts. Replicas that are
        not ready, or (for resource kinds) have no request set, are excluded.

        Raises:
            InsufficientData: No replica remained after exclusion
        """
        latest: Dict[str, MetricSample] = {}
        for sample in samples:
            if sample.kind != kind:
                continue
            current = latest.get(sample.replica_id)
            if current is None or sample.timestamp >= current.timestamp:
                latest[sample.replica_id] = sample

        workload_id = next((s.workload_id for s in latest.values()), None)
        if not latest:
            raise InsufficientData(f"No {kind} samples to aggregate", workload_id)

        strategy = self._strategies[kind.kind]
        included: List[Tuple[MetricSample, float]] = []
        excluded = 0
        for sample in latest.values():
            value = strategy.replica_value(sample)
            if value is None:
                excluded += 1
                continue
            included.append((sample, value))

        if not included:
            raise InsufficientData(
                f"All {len(latest)} replicas excluded from {kind} aggregation (not ready or no request)",
                workload_id,
            )

        timestamps = [sample.timestamp for sample, _ in included]
        aggregated = self.reducer.reduce([value for _, value in included])

        snapshot = UtilizationSnapshot(
            workload_id=workload_id,
            kind=kind,
            aggregated_value=aggregated,
            sample_count=len(included),
            excluded_count=excluded,
            window_start=min(timestamps),
            window_end=max(timestamps),
        )
        logger.debug(
            f"[{workload_id}] {kind} {self.reducer.name}={aggregated:.2f} "
            f"over {len(included)} replicas ({excluded} excluded)"
        )
        return snapshot
