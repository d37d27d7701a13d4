#!/usr/bin/env python3
"""
Redis client for persisting stabilization state and the event stream
"""

import json
import logging
from typing import Any, Dict, Optional

import redis

logger = logging.getLogger(__name__)


class RedisClient:
    """Redis client wrapper for autoscaler state management"""

    def __init__(self, host: str = "localhost", port: int = 6379,
                 db: int = 0, password: Optional[str] = None,
                 decode_responses: bool = True, key_prefix: str = "autoscaler:",
                 connection_timeout: int = 5):
        """
        Initialize Redis client

        Args:
            host: Redis host
            port: Redis port
            db: Redis database number
            password: Redis password
            decode_responses: Whether to decode responses
            key_prefix: Prefix for all keys
            connection_timeout: Socket connect/read timeout in seconds
        """
        self.key_prefix = key_prefix
        self.client = None
        self.connect(host, port, db, password, decode_responses, connection_timeout)

    def connect(self, host: str, port: int, db: int, password: Optional[str],
                decode_responses: bool, connection_timeout: int = 5):
        """Connect to Redis"""
        try:
            self.client = redis.Redis(
                host=host,
                port=port,
                db=db,
                password=password,
                decode_responses=decode_responses,
                socket_connect_timeout=connection_timeout,
                socket_timeout=connection_timeout,
                retry_on_timeout=True
            )
            # Test connection
            self.client.ping()
            logger.info(f"Connected to Redis at {host}:{port}")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise

    def _make_key(self, key: str) -> str:
        """Add prefix to key"""
        return f"{self.key_prefix}{key}"

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except Exception as e:
            logger.error(f"Redis ping failed: {e}")
            return False

    def hset_many(self, key: str, mapping: Dict[str, Any]) -> bool:
        """Set several hash fields at once; None values delete the field"""
        try:
            redis_key = self._make_key(key)
            values = {k: v if isinstance(v, str) else json.dumps(v, default=str)
                      for k, v in mapping.items() if v is not None}
            empty = [k for k, v in mapping.items() if v is None]
            pipe = self.client.pipeline()
            if values:
                pipe.hset(redis_key, mapping=values)
            if empty:
                pipe.hdel(redis_key, *empty)
            pipe.execute()
            return True
        except Exception as e:
            logger.error(f"Failed to set hash fields on {key}: {e}")
            return False

    def hgetall(self, key: str) -> Dict[str, Any]:
        """Get all hash fields"""
        try:
            redis_key = self._make_key(key)
            data = self.client.hgetall(redis_key)
            result = {}
            for field, value in data.items():
                try:
                    result[field] = json.loads(value)
                except (json.JSONDecodeError, TypeError):
                    result[field] = value
            return result
        except Exception as e:
            logger.error(f"Failed to get hash fields for {key}: {e}")
            return {}

    def xadd(self, stream: str, fields: Dict[str, Any], maxlen: Optional[int] = None) -> Optional[str]:
        """Append an entry to a stream, keeping at most maxlen entries"""
        try:
            redis_key = self._make_key(stream)
            flattened = {k: v if isinstance(v, str) else json.dumps(v, default=str)
                         for k, v in fields.items()}
            return self.client.xadd(redis_key, flattened, maxlen=maxlen, approximate=True)
        except Exception as e:
            logger.error(f"Failed to append to stream {stream}: {e}")
            return None

    def close(self):
        """Close Redis connection"""
        if self.client:
            self.client.close()
            logger.info("Redis connection closed")
