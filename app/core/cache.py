from __future__ import annotations

# redis connection manager shared by the nonce and session stores
import logging
import time
from threading import Lock
from typing import Optional

from redis import Connection, ConnectionPool, Redis, SSLConnection

from app.core.config import settings

logger = logging.getLogger(__name__)

REDIS_RECHECK_INTERVAL = 30  # seconds between reconnect attempts


class RedisConnectionManager:
    """Lazily builds one connection pool per process"""

    _instance: Optional['RedisConnectionManager'] = None
    _lock = Lock()

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if hasattr(self, '_initialized') and self._initialized:
            return
        self.pool: Optional[ConnectionPool] = None
        if settings.REDIS_HOST is not None and settings.REDIS_HOST.strip() != "":
            self.pool = ConnectionPool(
                host=settings.REDIS_HOST,
                port=settings.REDIS_PORT,
                socket_connect_timeout=0.5,
                socket_timeout=5,
                retry_on_timeout=False,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                decode_responses=True,
                connection_class=SSLConnection if settings.REDIS_SSL else Connection
            )
        self._last_failure: Optional[float] = None
        self._initialized = True

    @property
    def configured(self) -> bool:
        return self.pool is not None

    def client(self) -> Redis:
        """Return a client on the shared pool; raises if Redis is not configured."""
        if self.pool is None:
            raise RuntimeError("REDIS_HOST is not configured")
        return Redis(connection_pool=self.pool)

    def healthy(self) -> bool:
        """Ping Redis, backing off for REDIS_RECHECK_INTERVAL after a failure"""
        if self.pool is None:
            return False
        now = time.time()
        if self._last_failure is not None and now - self._last_failure < REDIS_RECHECK_INTERVAL:
            return False
        try:
            if self.client().ping():
                self._last_failure = None
                return True
        except Exception as e:
            logger.warning("redis ping failed: %s", e)
        self._last_failure = now
        return False


# Global singleton instance
redis_manager = RedisConnectionManager()
