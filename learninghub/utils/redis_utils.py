# learninghub/utils/redis_utils.py
from __future__ import annotations

"""
Learning Hub — Redis utilities
==============================

What’s included:
• Per-account throttles (fixed window INCR + TTL)
• Small distributed lock (SET NX + token; safe release)

Every helper **fails open** when Redis is unavailable: durable MFA state is in
the database, Redis only smooths out bursts and concurrent sends.
"""

from typing import Optional
import logging
import secrets

from fastapi import HTTPException, status

from learninghub.core.redis_client import redis_wrapper

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────
# 🔤 Namespaces
# ──────────────────────────────────────────────
RATE_LIMIT_PREFIX = "rate-limit"
LOCK_PREFIX = "lock"

# KEYS[1] = key, ARGV[1] = token
_UNLOCK_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
  return redis.call('DEL', KEYS[1])
else
  return 0
end
"""


def _client():
    try:
        return redis_wrapper.client
    except RuntimeError:
        return None


# ──────────────────────────────────────────────
# ⏱️ Rate Limiting
# ──────────────────────────────────────────────
async def enforce_rate_limit(
    *,
    key_suffix: str,
    seconds: int,
    max_calls: int = 1,
    error_message: str = "Too many requests. Please try again later.",
) -> None:
    """
    Increment a counter and set TTL on first hit; 429 once `max_calls` is exceeded.
    If Redis is unavailable, we **fail-open** (do nothing).
    """
    rc = _client()
    if rc is None:
        return

    key = f"{RATE_LIMIT_PREFIX}:{key_suffix}"
    try:
        count = await rc.incr(key)
        if int(count) == 1:
            try:
                await rc.expire(key, int(seconds))
            except Exception:
                logger.debug("enforce_rate_limit: expire failed (best-effort).", exc_info=True)
        if int(count) > int(max_calls):
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=error_message,
                headers={"Retry-After": str(int(seconds))},
            )
    except HTTPException:
        raise
    except Exception:
        logger.debug("enforce_rate_limit: redis error (fail-open).", exc_info=True)


# ──────────────────────────────────────────────
# 🔐 Distributed lock (tokened)
# ──────────────────────────────────────────────
async def acquire_lock(*, key_suffix: str, ttl: int = 30) -> Optional[str]:
    """SET NX with TTL; token if acquired, else None. Without Redis → token (single-instance dev)."""
    rc = _client()
    token = secrets.token_urlsafe(16)
    if rc is None:
        return token
    key = f"{LOCK_PREFIX}:{key_suffix}"
    try:
        ok = await rc.set(key, token, ex=int(ttl), nx=True)
        return token if ok in (True, 1, b"OK", "OK") else None
    except Exception:
        logger.warning("acquire_lock: redis error; proceeding without lock", exc_info=True)
        return token


async def release_lock(*, key_suffix: str, token: str) -> bool:
    """Compare-and-delete using Lua when available; fallback to GET+DEL."""
    rc = _client()
    if rc is None:
        return True
    key = f"{LOCK_PREFIX}:{key_suffix}"
    if hasattr(rc, "eval"):
        try:
            res = await rc.eval(_UNLOCK_LUA, 1, key, token)
            return bool(int(res or 0))
        except Exception:
            logger.debug("release_lock: eval failed; falling back to GET+DEL.", exc_info=True)

    try:
        val = await rc.get(key)
        if isinstance(val, (bytes, bytearray)):
            val = val.decode("utf-8", errors="ignore")
        if val == token:
            await rc.delete(key)
            return True
    except Exception:
        logger.debug("release_lock: fallback compare-delete failed.", exc_info=True)
    return False


__all__ = ["enforce_rate_limit", "acquire_lock", "release_lock"]
