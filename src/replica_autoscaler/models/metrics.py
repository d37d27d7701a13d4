#!/usr/bin/env python3
"""
Pydantic models for metric kinds, samples and utilization snapshots
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field, model_validator


class MetricKindName(str, Enum):
    """Names of the supported metric kinds"""
    CPU = "cpu"
    MEMORY = "memory"
    CUSTOM = "custom"


class MetricKind(BaseModel):
    """
    Tagged variant over the metric kinds: cpu | memory | custom(name)

    Resource kinds (cpu, memory) are measured against the container
    requests; custom kinds are measured against an absolute per-replica
    target value.
    """
    kind: MetricKindName
    name: Optional[str] = None

    class Config:
        frozen = True

    @model_validator(mode="after")
    def _check_name(self) -> "MetricKind":
        if self.kind == MetricKindName.CUSTOM and not self.name:
            raise ValueError("custom metric kinds require a name")
        if self.kind != MetricKindName.CUSTOM and self.name:
            raise ValueError(f"{self.kind.value} metric kind does not take a name")
        return self

    @classmethod
    def cpu(cls) -> "MetricKind":
        return cls(kind=MetricKindName.CPU)

    @classmethod
    def memory(cls) -> "MetricKind":
        return cls(kind=MetricKindName.MEMORY)

    @classmethod
    def custom(cls, name: str) -> "MetricKind":
        return cls(kind=MetricKindName.CUSTOM, name=name)

    @classmethod
    def parse(cls, value: Union[str, "MetricKind", dict]) -> "MetricKind":
        """Parse "cpu", "memory" or "custom:<name>" (or pass a MetricKind through)"""
        if isinstance(value, MetricKind):
            return value
        if isinstance(value, dict):
            return cls(**value)

        text = str(value).strip()
        if text.lower() == "cpu":
            return cls.cpu()
        if text.lower() == "memory":
            return cls.memory()
        if text.lower().startswith("custom:"):
            return cls.custom(text.split(":", 1)[1])
        raise ValueError(f"Unknown metric kind: {value!r}")

    @property
    def is_resource(self) -> bool:
        return self.kind in (MetricKindName.CPU, MetricKindName.MEMORY)

    @property
    def key(self) -> str:
        """Name used in metric payloads ("cpu", "memory" or the custom name)"""
        return self.name if self.kind == MetricKindName.CUSTOM else self.kind.value

    def __str__(self) -> str:
        if self.kind == MetricKindName.CUSTOM:
            return f"custom:{self.name}"
        return self.kind.value


class MetricSample(BaseModel):
    """One raw observation for one replica; immutable once recorded"""
    workload_id: str = Field(..., description="Workload the replica belongs to")
    replica_id: str = Field(..., description="Pod name or replica identifier")
    kind: MetricKind = Field(..., description="Metric kind of this sample")
    raw_value: float = Field(..., ge=0, description="Observed usage (millicores, bytes or custom units)")
    requested_value: Optional[float] = Field(None, ge=0, description="Requested amount for resource kinds")
    ready: bool = Field(True, description="Whether the replica was ready when sampled")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        frozen = True


class UtilizationSnapshot(BaseModel):
    """Aggregated utilization for one workload and metric kind"""
    workload_id: str
    kind: MetricKind
    # Percent of request for resource kinds, average value for custom kinds
    aggregated_value: float = Field(..., ge=0)
    sample_count: int = Field(..., ge=0, description="Replicas that contributed")
    excluded_count: int = Field(0, ge=0, description="Replicas excluded (not ready / no request)")
    window_start: datetime
    window_end: datetime
