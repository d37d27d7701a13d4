#!/usr/bin/env python3
"""
Scaling engine module for making scaling decisions

desiredReplicas = ceil(currentReplicas * currentUtilization / targetUtilization),
shaped by a tolerance band, asymmetric per-cycle rate limits and finally
clamped to [minReplicas, maxReplicas].
"""

import math
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from ..models import (
    ScaleDirection,
    ScalingDecision,
    UtilizationSnapshot,
    WorkloadSpec,
)
from .exceptions import InsufficientData
from .logging_config import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScalingDecisionEngine:
    """
    Converts aggregated utilization into a desired replica count

    With tolerance=0 every ratio other than exactly 1.0 proposes
    ceil(current * value / target), the plain HPA formula; the default
    0.1 holds the count while the ratio is within 10% of the target.
    """

    def __init__(self, tolerance: float = 0.1,
                 scale_up_max_percent: float = 100.0,
                 scale_up_max_pods: int = 4,
                 scale_down_max_percent: float = 10.0,
                 clock: Callable[[], datetime] = _utcnow):
        """
        Initialize scaling engine

        Args:
            tolerance: Ratio band around 1.0 inside which no change is proposed
            scale_up_max_percent: Max replicas added per cycle, as a percent of current
            scale_up_max_pods: Max replicas added per cycle, absolute (the larger limit wins)
            scale_down_max_percent: Max replicas removed per cycle, as a percent of current
            clock: Returns the current time
        """
        if tolerance < 0:
            raise ValueError("tolerance must be >= 0")
        if scale_up_max_percent <= 0 or scale_down_max_percent <= 0:
            raise ValueError("rate limit percentages must be > 0")
        self.tolerance = tolerance
        self.scale_up_max_percent = scale_up_max_percent
        self.scale_up_max_pods = scale_up_max_pods
        self.scale_down_max_percent = scale_down_max_percent
        self.clock = clock

    @classmethod
    def from_settings(cls, autoscaler_settings) -> "ScalingDecisionEngine":
        return cls(
            tolerance=autoscaler_settings.tolerance,
            scale_up_max_percent=autoscaler_settings.scale_up_max_percent,
            scale_up_max_pods=autoscaler_settings.scale_up_max_pods,
            scale_down_max_percent=autoscaler_settings.scale_down_max_percent,
        )

    def decide(self, snapshot: UtilizationSnapshot, workload: WorkloadSpec,
               now: Optional[datetime] = None) -> ScalingDecision:
        """Decide the desired replica count from a single metric snapshot"""
        return self.decide_many([snapshot], workload, now=now)

    def decide_many(self, snapshots: List[UtilizationSnapshot], workload: WorkloadSpec,
                    scale_down_allowed: bool = True,
                    now: Optional[datetime] = None) -> ScalingDecision:
        """
        Decide the desired replica count from one snapshot per metric

        The largest per-metric proposal wins. When scale_down_allowed is
        False (some metrics could not be computed) a downward proposal is
        held at the current replica count.

        Raises:
            InsufficientData: No snapshots were given
        """
        if not snapshots:
            raise InsufficientData("No utilization snapshots to decide on", workload.workload_id)

        proposals = [self._propose(snapshot, workload) for snapshot in snapshots]
        proposed, reason = max(proposals, key=lambda p: p[0])
        metric_values = {str(s.kind): round(s.aggregated_value, 4) for s in snapshots}

        desired, limited_by = self._limit(workload, proposed, scale_down_allowed)
        current = workload.current_replicas

        if desired > current:
            direction = ScaleDirection.UP
        elif desired < current:
            direction = ScaleDirection.DOWN
        else:
            direction = ScaleDirection.NONE

        if limited_by:
            reason = f"{reason}; limited by {limited_by} ({proposed} -> {desired})"

        decision = ScalingDecision(
            workload_id=workload.workload_id,
            current_replicas=current,
            desired_replicas=desired,
            direction=direction,
            reason=reason,
            decided_at=now or self.clock(),
            metric_values=metric_values,
            limited_by=limited_by,
        )
        logger.debug(f"[{workload.workload_id}] decision {current} -> {desired} ({direction.value}): {reason}")
        return decision

    def _propose(self, snapshot: UtilizationSnapshot, workload: WorkloadSpec) -> Tuple[int, str]:
        """Unbounded replica proposal for one metric"""
        current = workload.current_replicas
        target = workload.target_for(snapshot.kind)
        value = snapshot.aggregated_value
        unit = "%" if snapshot.kind.is_resource else ""
        observed = f"{snapshot.kind} {value:.1f}{unit} (target {target:g}{unit})"

        if current == 0:
            return workload.min_replicas, f"{observed}; no running replicas, holding at minimum"

        ratio = value / target
        if abs(ratio - 1.0) <= self.tolerance:
            return current, f"{observed} within tolerance"

        proposed = math.ceil(round(current * ratio, 9))
        return proposed, f"{observed} proposes {proposed} replicas"

    def _limit(self, workload: WorkloadSpec, proposed: int,
               scale_down_allowed: bool) -> Tuple[int, Optional[str]]:
        """Apply the partial-metrics guard, rate limits and bounds"""
        current = workload.current_replicas
        desired = proposed
        limited_by = None

        if desired < current and not scale_down_allowed:
            desired = current
            limited_by = "missing metrics"

        if desired > current and current > 0:
            step = max(math.ceil(current * self.scale_up_max_percent / 100.0), self.scale_up_max_pods)
            if desired > current + step:
                desired = current + step
                limited_by = "scale-up rate limit"
        elif desired < current:
            step = max(1, math.floor(current * self.scale_down_max_percent / 100.0))
            if desired < current - step:
                desired = current - step
                limited_by = "scale-down rate limit"

        clamped = workload.clamp(desired)
        if clamped != desired:
            limited_by = "max_replicas" if clamped < desired else "min_replicas"
        return clamped, limited_by

