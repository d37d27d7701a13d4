#!/usr/bin/env python3
"""
Base event classes for the autoscaler decision history
"""

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class EventType(str, Enum):
    """Event types, named after the reasons shown by kubectl describe hpa"""

    # Decisions
    DESIRED_REPLICAS_COMPUTED = "DesiredReplicasComputed"
    SUCCESSFUL_RESCALE = "SuccessfulRescale"
    SCALE_SUPPRESSED = "ScaleSuppressed"

    # Failures
    FAILED_GET_RESOURCE_METRIC = "FailedGetResourceMetric"
    INSUFFICIENT_METRICS = "InsufficientMetrics"
    FAILED_RESCALE = "FailedRescale"
    MISSED_CYCLE = "MissedCycle"

    # Lifecycle
    WORKLOAD_REGISTERED = "WorkloadRegistered"
    WORKLOAD_DISABLED = "WorkloadDisabled"


class EventSeverity(str, Enum):
    NORMAL = "Normal"
    WARNING = "Warning"


WARNING_EVENTS = {
    EventType.FAILED_GET_RESOURCE_METRIC,
    EventType.INSUFFICIENT_METRICS,
    EventType.FAILED_RESCALE,
    EventType.MISSED_CYCLE,
    EventType.WORKLOAD_DISABLED,
}


@dataclass
class Event:
    """One entry in a workload's decision history"""

    event_type: EventType
    workload_id: str
    message: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = "replica-autoscaler"
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def severity(self) -> EventSeverity:
        return EventSeverity.WARNING if self.event_type in WARNING_EVENTS else EventSeverity.NORMAL

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary"""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "workload_id": self.workload_id,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
            "data": self.data,
        }

    def to_json(self) -> str:
        """Convert event to JSON string"""
        return json.dumps(self.to_dict(), default=str)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        """Create event from dictionary"""
        timestamp: Optional[str] = data.get("timestamp")
        return cls(
            event_type=EventType(data["event_type"]),
            workload_id=data["workload_id"],
            message=data.get("message", ""),
            event_id=data.get("event_id", str(uuid.uuid4())),
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(timezone.utc),
            source=data.get("source", "replica-autoscaler"),
            data=data.get("data", {}),
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Event":
        """Create event from JSON string"""
        return cls.from_dict(json.loads(json_str))
