"""
Database package for the replica autoscaler

Provides Redis persistence for stabilization state and the event stream.
"""

from .redis_client import RedisClient
from .stores import StabilizationStore, RedisStabilizationStore, RedisEventSink

__all__ = [
    "RedisClient",
    "StabilizationStore",
    "RedisStabilizationStore",
    "RedisEventSink",
]
