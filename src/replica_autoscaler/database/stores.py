#!/usr/bin/env python3
"""
Redis-backed stabilization state store and event sink

Stabilization timestamps are written through after every committed scale
action so cooldowns survive a restart.
"""

import logging
from datetime import datetime
from typing import Optional

from ..events.base import Event
from ..events.recorder import EventSink
from ..models import StabilizationState
from .redis_client import RedisClient

logger = logging.getLogger(__name__)


class StabilizationStore:
    """Interface for persisting StabilizationState"""

    def load(self, workload_id: str) -> Optional[StabilizationState]:
        raise NotImplementedError

    def save(self, state: StabilizationState) -> bool:
        raise NotImplementedError


def _parse(value) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


class RedisStabilizationStore(StabilizationStore):
    """Stores one hash per workload: stabilization:<workload_id>"""

    def __init__(self, redis_client: RedisClient):
        self.redis = redis_client

    @staticmethod
    def _key(workload_id: str) -> str:
        return f"stabilization:{workload_id}"

    def load(self, workload_id: str) -> Optional[StabilizationState]:
        data = self.redis.hgetall(self._key(workload_id))
        if not data:
            return None
        try:
            return StabilizationState(
                workload_id=workload_id,
                last_scale_up_at=_parse(data.get("last_scale_up_at")),
                last_scale_down_at=_parse(data.get("last_scale_down_at")),
            )
        except ValueError as e:
            logger.warning(f"[{workload_id}] ignoring unreadable stabilization state: {e}")
            return None

    def save(self, state: StabilizationState) -> bool:
        return self.redis.hset_many(self._key(state.workload_id), {
            "last_scale_up_at": state.last_scale_up_at.isoformat() if state.last_scale_up_at else None,
            "last_scale_down_at": state.last_scale_down_at.isoformat() if state.last_scale_down_at else None,
        })


class RedisEventSink(EventSink):
    """Appends events to a Redis stream, trimmed to maxlen entries"""

    def __init__(self, redis_client: RedisClient, stream: str = "events", maxlen: int = 10000):
        self.redis = redis_client
        self.stream = stream
        self.maxlen = maxlen

    def publish(self, event: Event) -> bool:
        entry = event.to_dict()
        return self.redis.xadd(self.stream, entry, maxlen=self.maxlen) is not None
