"""
Redis connection client for the safe routing service.

Redis only backs the short-lived crime report cache, so every operation
degrades to a miss / no-op when the server cannot be reached.
"""

import json
import logging
import os
from typing import Any, Optional

import redis
from redis.exceptions import RedisError

from common.constants import REDIS_DB, REDIS_HOST, REDIS_PORT

logger = logging.getLogger(__name__)


class RedisClient:
    """Redis client wrapper with graceful degradation."""

    _instance: Optional["RedisClient"] = None

    def __init__(self, client: Optional[redis.Redis] = None):
        """
        Connect to Redis.

        Args:
            client: ready-made redis.Redis (tests); built from REDIS_* env vars otherwise
        """
        self._client: Optional[redis.Redis] = client
        if self._client is not None:
            return

        connection_kwargs = {
            "host": REDIS_HOST,
            "port": REDIS_PORT,
            "db": REDIS_DB,
            "decode_responses": True,
            "socket_connect_timeout": 2,
            "socket_timeout": 2,
        }
        username = os.getenv("REDIS_USERNAME")
        password = os.getenv("REDIS_PASSWORD")
        if username:
            connection_kwargs["username"] = username
        if password:
            connection_kwargs["password"] = password.strip()

        try:
            self._client = redis.Redis(**connection_kwargs)
            self._client.ping()
            logger.info(f"Redis connected: host={REDIS_HOST}, port={REDIS_PORT}, db={REDIS_DB}")
        except RedisError as e:
            # The cache is optional; keep the client and let calls fall through
            logger.warning(f"Redis unavailable at {REDIS_HOST}:{REDIS_PORT}: {e}")

    @classmethod
    def get_instance(cls) -> "RedisClient":
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @property
    def client(self) -> Optional[redis.Redis]:
        return self._client

    def is_connected(self) -> bool:
        if self._client is None:
            return False
        try:
            self._client.ping()
            return True
        except RedisError:
            return False

    def get_json(self, key: str) -> Optional[Any]:
        """Get JSON value from Redis (None on miss or error)."""
        if not self.is_connected():
            return None
        try:
            raw = self._client.get(key)
        except RedisError as e:
            logger.error(f"Redis GET error for key {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error(f"JSON deserialization error for key {key}: {e}")
            return None

    def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set JSON value in Redis with optional TTL (seconds)."""
        if not self.is_connected():
            return False
        try:
            payload = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.error(f"JSON serialization error for key {key}: {e}")
            return False
        try:
            if ttl:
                return bool(self._client.setex(key, ttl, payload))
            return bool(self._client.set(key, payload))
        except RedisError as e:
            logger.error(f"Redis SET error for key {key}: {e}")
            return False


def get_redis_client() -> RedisClient:
    """Get Redis client instance."""
    return RedisClient.get_instance()
