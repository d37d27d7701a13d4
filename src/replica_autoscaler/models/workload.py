#!/usr/bin/env python3
"""
Pydantic models for workloads, scaling decisions and cycle outcomes
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .metrics import MetricKind

SCALABLE_KINDS = ("Deployment", "StatefulSet", "ReplicaSet")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MetricTarget(BaseModel):
    """A metric and its target (utilization percent or per-replica average value)"""
    kind: MetricKind
    target: float = Field(..., gt=0)

    class Config:
        frozen = True

    @field_validator("kind", mode="before")
    @classmethod
    def _parse_kind(cls, value):
        return MetricKind.parse(value)


class WorkloadSpec(BaseModel):
    """
    A scalable workload and its autoscaling policy

    Mirrors the HPA spec: scaleTargetRef (namespace/name/kind), minReplicas,
    maxReplicas and metrics[].resource.target.averageUtilization. Accepts
    both snake_case and camelCase field names.
    """
    workload_id: str = Field(..., min_length=1, description="Unique workload identifier")
    namespace: str = Field("default", description="Namespace of the scale target")
    name: Optional[str] = Field(None, description="Scale target name, defaults to the workload id")
    kind: str = Field("Deployment", description="Scale target kind")

    current_replicas: int = Field(1, ge=0, description="Last known replica count")
    min_replicas: int = Field(1, ge=0, description="Lower replica bound")
    max_replicas: int = Field(..., ge=1, description="Upper replica bound")

    target_utilization_percent: float = Field(70.0, gt=0, description="Target for the primary metric")
    resource_kind: MetricKind = Field(default_factory=MetricKind.cpu, description="Primary metric kind")
    additional_metrics: List[MetricTarget] = Field(default_factory=list, description="Extra metrics, max wins")

    active: bool = Field(True, description="Inactive workloads are never evaluated")

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "forbid"

    @field_validator("resource_kind", mode="before")
    @classmethod
    def _parse_resource_kind(cls, value):
        return MetricKind.parse(value)

    @field_validator("kind")
    @classmethod
    def _check_kind(cls, value: str) -> str:
        if value not in SCALABLE_KINDS:
            raise ValueError(f"kind must be one of {', '.join(SCALABLE_KINDS)}")
        return value

    @model_validator(mode="after")
    def _check_bounds(self) -> "WorkloadSpec":
        if self.min_replicas > self.max_replicas:
            raise ValueError(
                f"min_replicas ({self.min_replicas}) must be <= max_replicas ({self.max_replicas})"
            )
        kinds = [str(t.kind) for t in self.metric_targets()]
        if len(kinds) != len(set(kinds)):
            raise ValueError(f"duplicate metric kinds: {kinds}")
        return self

    @property
    def target_name(self) -> str:
        return self.name or self.workload_id

    def metric_targets(self) -> List[MetricTarget]:
        """Primary metric target followed by the additional ones"""
        primary = MetricTarget(kind=self.resource_kind, target=self.target_utilization_percent)
        return [primary] + list(self.additional_metrics)

    def target_for(self, kind: MetricKind) -> float:
        for metric in self.metric_targets():
            if metric.kind == kind:
                return metric.target
        raise KeyError(f"{self.workload_id} has no target for metric {kind}")

    def clamp(self, replicas: int) -> int:
        return max(self.min_replicas, min(self.max_replicas, replicas))


class ScaleDirection(str, Enum):
    """Direction of a scaling decision"""
    UP = "up"
    DOWN = "down"
    NONE = "none"


class ScalingDecision(BaseModel):
    """Desired replica count for a workload, advisory until stabilized"""
    workload_id: str
    current_replicas: int = Field(..., ge=0)
    desired_replicas: int = Field(..., ge=0, description="Always within [min_replicas, max_replicas]")
    direction: ScaleDirection
    reason: str
    decided_at: datetime = Field(default_factory=_utcnow)
    metric_values: Dict[str, float] = Field(default_factory=dict, description="Aggregated value per metric")
    limited_by: Optional[str] = Field(None, description="Rate limit or bound that shaped the count")

    class Config:
        frozen = True


class StabilizationState(BaseModel):
    """Last accepted scale actions per direction for one workload"""
    workload_id: str
    last_scale_up_at: Optional[datetime] = None
    last_scale_down_at: Optional[datetime] = None

    class Config:
        frozen = True


class ScaleAck(BaseModel):
    """Acknowledgement that a replica count was applied"""
    workload_id: str
    requested_replicas: int = Field(..., ge=0)
    observed_replicas: Optional[int] = Field(None, ge=0, description="Replica count read back after patching")
    attempts: int = Field(1, ge=0)
    dry_run: bool = False
    applied_at: datetime = Field(default_factory=_utcnow)

    @property
    def converged(self) -> bool:
        return self.observed_replicas == self.requested_replicas


class CycleStatus(str, Enum):
    """Outcome of one evaluation cycle"""
    SCALED = "scaled"
    UNCHANGED = "unchanged"
    SUPPRESSED = "suppressed"
    SKIPPED = "skipped"
    FAILED = "failed"
    DISABLED = "disabled"
    TIMED_OUT = "timed_out"


class CycleResult(BaseModel):
    """Result of running one evaluation cycle for one workload"""
    workload_id: str
    status: CycleStatus
    decision: Optional[ScalingDecision] = None
    ack: Optional[ScaleAck] = None
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None
