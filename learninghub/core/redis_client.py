# learninghub/core/redis_client.py
from __future__ import annotations

"""
Learning Hub — Redis Client (Async)
===================================
Single source of truth for Redis access in the app.

What this provides
------------------
• Resilient connection manager with retries & backoff
• Pooled async client with health checks

Public API (imported as `redis_wrapper`)
----------------------------------------
- await redis_wrapper.connect() / await redis_wrapper.close() / await redis_wrapper.is_connected()
- redis_wrapper.client

Design notes
------------
• Redis only coordinates (send locks, per-account throttles). Durable MFA state
  lives in the database, so every caller degrades to fail-open when Redis is down.
• Locks and counters live in `learninghub.utils.redis_utils`.
"""

import asyncio
import logging
import os
import random
from typing import Any, Optional, Protocol
from urllib.parse import urlparse

import redis.asyncio as redis
from redis.exceptions import RedisError

from learninghub.core.config import settings

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# Tunables
# ─────────────────────────────────────────────────────────────────────────────
MAX_RETRIES = int(os.getenv("REDIS_CONNECT_MAX_RETRIES", "3"))
BASE_DELAY = float(os.getenv("REDIS_CONNECT_BASE_DELAY", "0.3"))  # seconds
HEALTH_CHECK_INTERVAL = int(os.getenv("REDIS_HEALTH_CHECK_INTERVAL", "30"))
SOCKET_TIMEOUT = float(os.getenv("REDIS_SOCKET_TIMEOUT", "3"))
SOCKET_CONNECT_TIMEOUT = float(os.getenv("REDIS_SOCKET_CONNECT_TIMEOUT", "3"))
POOL_MAX_CONNECTIONS = int(os.getenv("REDIS_POOL_MAX_CONNECTIONS", "32"))
CLIENT_NAME = os.getenv("REDIS_CLIENT_NAME", "learninghub-api")


class _RedisProto(Protocol):
    async def ping(self) -> Any: ...
    async def set(self, name: str, value: Any, *, ex: Optional[int] = None, nx: Optional[bool] = None) -> Any: ...
    async def get(self, name: str) -> Any: ...
    async def incr(self, name: str) -> Any: ...
    async def expire(self, name: str, time: int) -> Any: ...
    async def delete(self, *names: Any) -> Any: ...
    async def close(self) -> Any: ...


# ─────────────────────────────────────────────────────────────────────────────
# Client
# ─────────────────────────────────────────────────────────────────────────────
class RedisClient:
    """Singleton Redis connection manager (asyncio)."""

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self._client: Optional[_RedisProto] = None

    # ── lifecycle ────────────────────────────────────────────────────────────
    async def connect(self) -> None:
        """
        Establish a connection with retries.

        Steps
        -----
        - **[Step 1]** Reuse a healthy client when possible.
        - **[Step 2]** Attempt connection with backoff and jitter.
        """
        # ── [Step 1] Reuse an existing healthy client ───────────────────────
        if self._client:
            try:
                await self._client.ping()
                return
            except Exception:
                self._client = None  # stale client → reconnect

        attempt = 0
        last_err: Optional[Exception] = None

        # ── [Step 2] Retry with backoff ─────────────────────────────────────
        while attempt < MAX_RETRIES:
            attempt += 1
            try:
                self._client = redis.Redis.from_url(self.redis_url.strip(), **self._client_kwargs())
                await self._client.ping()
                logger.info("✅ Connected to Redis")
                return
            except Exception as e:  # noqa: BLE001
                last_err = e
                self._client = None
                delay = self._backoff(attempt)
                logger.warning(
                    "Redis connect attempt %s/%s failed: %s (retrying in %.2fs)",
                    attempt, MAX_RETRIES, repr(e), delay,
                )
                await asyncio.sleep(delay)

        logger.error("❌ Redis connection failed after %s retries.", MAX_RETRIES)
        raise RuntimeError("Redis connection failed") from last_err

    async def close(self) -> None:
        """Gracefully close connection & pool."""
        if not self._client:
            return
        try:
            await self._client.close()
            logger.info("🛑 Redis connection closed.")
        except RedisError as e:
            logger.warning("Error closing Redis connection: %s", e)
        finally:
            self._client = None

    async def is_connected(self) -> bool:
        """Return True if `PING` succeeds."""
        if not self._client:
            return False
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    @property
    def client(self) -> _RedisProto:
        """Low-level client; ensure `connect()` was called at startup."""
        if not self._client:
            raise RuntimeError("Redis client not initialized. Call connect() first.")
        return self._client

    # ── internals ───────────────────────────────────────────────────────────
    def _client_kwargs(self) -> dict:
        kwargs: dict = dict(
            decode_responses=True,
            health_check_interval=HEALTH_CHECK_INTERVAL,
            socket_keepalive=True,
            socket_timeout=SOCKET_TIMEOUT,
            socket_connect_timeout=SOCKET_CONNECT_TIMEOUT,
            retry_on_timeout=True,
            max_connections=POOL_MAX_CONNECTIONS,
            client_name=CLIENT_NAME,
        )
        if urlparse(self.redis_url).scheme == "rediss":
            if os.getenv("REDIS_SSL_CERT_REQS", "required").lower() == "none":  # dev only
                kwargs["ssl_cert_reqs"] = None
        return kwargs

    @staticmethod
    def _backoff(attempt: int) -> float:
        # Exponential backoff with jitter (cap at 3s)
        return min(3.0, BASE_DELAY * (2 ** (attempt - 1))) + random.uniform(0, 0.25)


redis_wrapper = RedisClient(settings.REDIS_URL)

__all__ = ["RedisClient", "redis_wrapper"]
