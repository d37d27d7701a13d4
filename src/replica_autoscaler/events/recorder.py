#!/usr/bin/env python3
"""
Event recorder: structured log lines plus a bounded per-workload history
"""

import json
import logging
import threading
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional

from .base import Event, EventSeverity, EventType

logger = logging.getLogger(__name__)


class EventSink:
    """Destination for recorded events besides the in-memory history"""

    def publish(self, event: Event) -> bool:
        raise NotImplementedError


class EventRecorder:
    """Records decision events for every workload"""

    def __init__(self, history_size: int = 100, sinks: Optional[List[EventSink]] = None):
        """
        Initialize the recorder

        Args:
            history_size: Events kept in memory per workload
            sinks: Extra destinations (e.g. a Redis stream)
        """
        self.history_size = history_size
        self.sinks = list(sinks or [])
        self._history: Dict[str, Deque[Event]] = defaultdict(lambda: deque(maxlen=self.history_size))
        self._lock = threading.Lock()

    def record(self, event_type: EventType, workload_id: str, message: str,
               **data: Any) -> Event:
        """Record an event, log it as a structured line and forward it to the sinks"""
        event = Event(event_type=event_type, workload_id=workload_id, message=message, data=data)

        with self._lock:
            self._history[workload_id].append(event)

        line = json.dumps({
            "event": event.event_type.value,
            "workload": workload_id,
            "message": message,
            **data,
        }, default=str)
        if event.severity == EventSeverity.WARNING:
            logger.warning(line)
        else:
            logger.info(line)

        for sink in self.sinks:
            try:
                sink.publish(event)
            except Exception as e:
                logger.error(f"Failed to publish event {event.event_id} to {type(sink).__name__}: {e}")

        return event

    def history(self, workload_id: str, limit: Optional[int] = None) -> List[Event]:
        """Most recent events for a workload, newest last"""
        with self._lock:
            events = list(self._history.get(workload_id, ()))
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    def forget(self, workload_id: str) -> None:
        with self._lock:
            self._history.pop(workload_id, None)
