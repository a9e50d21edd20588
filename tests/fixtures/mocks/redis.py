from __future__ import annotations

"""
MockRedisClient (async) — test-grade, wrapper-compatible
========================================================
Covers the subset of Redis the app touches:

KV      : get/set(ex, nx)/incr/expire/ttl/delete
Lua     : eval() for the compare-token-then-DEL unlock script
Health  : ping/close/flushall

Design notes
------------
- Values are stored exactly as written. TTLs have second precision.
- Deterministic, minimal behavior; not a byte-for-byte Redis emulation.
- Installed on `learninghub.core.redis_client.redis_wrapper` by conftest.
"""

from typing import Any, Dict, Optional
import time


def _now() -> float:
    return time.time()


def _ensure_text(v) -> Optional[str]:
    if v is None:
        return None
    if isinstance(v, (bytes, bytearray)):
        return v.decode("utf-8", errors="replace")
    return str(v)


class MockRedisClient:
    def __init__(self) -> None:
        self.store: Dict[str, Any] = {}
        self.expirations: Dict[str, Optional[float]] = {}
        self._closed = False

    # ── expiry bookkeeping ──────────────────────────────────────────────────
    def _expired(self, key: str) -> bool:
        deadline = self.expirations.get(key)
        return deadline is not None and deadline <= _now()

    def _purge_expired(self) -> None:
        for key in [k for k in list(self.store) if self._expired(k)]:
            self.store.pop(key, None)
            self.expirations.pop(key, None)

    # ── health ──────────────────────────────────────────────────────────────
    async def ping(self) -> bool:
        return not self._closed

    async def close(self) -> None:
        self._closed = True

    async def flushall(self) -> None:
        self.store.clear()
        self.expirations.clear()

    # ── KV ──────────────────────────────────────────────────────────────────
    async def get(self, key: str) -> Optional[Any]:
        self._purge_expired()
        return self.store.get(key)

    async def set(self, key: str, value: Any, ex: Optional[int] = None, nx: bool = False) -> bool:
        self._purge_expired()
        if nx and key in self.store:
            return False
        self.store[key] = value
        self.expirations[key] = _now() + int(ex) if ex else None
        return True

    async def incr(self, key: str, amount: int = 1) -> int:
        self._purge_expired()
        value = int(self.store.get(key, 0)) + amount
        self.store[key] = value
        self.expirations.setdefault(key, None)
        return value

    async def expire(self, key: str, time_seconds: int) -> bool:
        if key not in self.store:
            return False
        self.expirations[key] = _now() + int(time_seconds)
        return True

    async def ttl(self, key: str) -> int:
        self._purge_expired()
        if key not in self.store:
            return -2
        deadline = self.expirations.get(key)
        if deadline is None:
            return -1
        return max(0, int(deadline - _now()))

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.expirations.pop(key, None)
        return removed

    # ── Lua ─────────────────────────────────────────────────────────────────
    async def eval(self, script: str, numkeys: int, *keys_and_args: Any) -> Any:
        """Only the unlock script (GET + compare token + DEL) is supported."""
        script_upper = script.upper()
        if "GET" in script_upper and "DEL" in script_upper and numkeys == 1:
            key, token = str(keys_and_args[0]), keys_and_args[1]
            if _ensure_text(await self.get(key)) == _ensure_text(token):
                return await self.delete(key)
            return 0
        raise NotImplementedError("MockRedisClient.eval: unsupported script")


__all__ = ["MockRedisClient"]
