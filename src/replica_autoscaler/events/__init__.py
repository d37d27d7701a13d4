"""
Event history for autoscaling decisions
"""

from .base import Event, EventSeverity, EventType
from .recorder import EventRecorder, EventSink

__all__ = [
    "Event",
    "EventSeverity",
    "EventType",
    "EventRecorder",
    "EventSink",
]
