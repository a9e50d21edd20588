from __future__ import annotations

"""
Learning Hub — HTTP Rate Limiting (SlowAPI)
===========================================

Highlights
----------
- **User/IP aware** keying: per-account once the session dependency sets
  `request.state.user_id`, else per-client-IP (XFF/X-Real-IP/client.host).
- **Exemptions**: health/docs paths and configurable trusted IPs.
- **Test/CI friendly**:
    - `RATE_LIMIT_NAMESPACE`: prefixes keys so parallel runs don't collide.
    - `RATE_LIMIT_TEST_BYPASS`: disables limits when truthy.
    - `X-RateLimit-Bypass: 1` header exempts a single request only when
      `RATE_LIMIT_ALLOW_BYPASS_HEADER` is truthy and `ENV` is not production.
- **Backends**: Redis via `RATELIMIT_STORAGE_URI` or in-memory fallback.

Route limits bound code guessing on the MFA endpoints; there is no per-code
lockout for TOTP.

Environment
-----------
RATE_LIMIT_ENABLED           default: "true"
DEFAULT_RATE_LIMIT           default: "100/minute"
RATELIMIT_STORAGE_URI        default: "" (falls back to "memory://")
RATELIMIT_STRATEGY           default: "moving-window"
RATE_LIMIT_SKIP_PATHS        default: "/healthz,/readyz,/docs,/openapi.json,/favicon.ico"
RATE_LIMIT_TRUSTED_IPS       default: "" (comma separated)
RATE_LIMIT_NAMESPACE         default: ""
RATE_LIMIT_TEST_BYPASS       default: ""
RATE_LIMIT_BYPASS_HEADER     default: "X-RateLimit-Bypass"
RATE_LIMIT_ALLOW_BYPASS_HEADER default: "" (ignored when ENV=production)

Usage
-----
    from learninghub.core.limiter import install_rate_limiter, rate_limit, rate_limit_exempt

    @router.post("/mfa/totp/verify")
    @rate_limit("10/minute")
    async def verify(request: Request, response: Response, ...): ...
"""

import os
from typing import Callable, Optional, List, Set

from dotenv import load_dotenv
from loguru import logger
from starlette.requests import Request
from slowapi import Limiter
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

# ──────────────────────────────────────────────────────────────
# ⚙️ Environment & defaults
# ──────────────────────────────────────────────────────────────
load_dotenv()

_TRUTHY = {"1", "true", "yes", "on"}

RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
DEFAULT_LIMIT = os.getenv("DEFAULT_RATE_LIMIT", "100/minute").strip()
STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "").strip()
STRATEGY = os.getenv("RATELIMIT_STRATEGY", "moving-window").strip()

SKIP_PATHS: List[str] = [
    p.strip()
    for p in os.getenv("RATE_LIMIT_SKIP_PATHS", "/healthz,/readyz,/docs,/openapi.json,/favicon.ico").split(",")
    if p.strip()
]

TRUSTED_IPS: Set[str] = {ip.strip() for ip in os.getenv("RATE_LIMIT_TRUSTED_IPS", "").split(",") if ip.strip()}

NAMESPACE = os.getenv("RATE_LIMIT_NAMESPACE", "").strip()
BYPASS_HEADER = os.getenv("RATE_LIMIT_BYPASS_HEADER", "X-RateLimit-Bypass")


# ──────────────────────────────────────────────────────────────
# 🧠 Keying & exemptions
# ──────────────────────────────────────────────────────────────
def _client_ip(request: Request) -> str:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        ip = xff.split(",")[0].strip()
        if ip:
            return ip
    xri = request.headers.get("x-real-ip")
    if xri:
        return xri.strip()
    return get_remote_address(request) or "unknown"


def _with_namespace(key: str) -> str:
    return f"{NAMESPACE}:{key}" if NAMESPACE else key


def get_user_rate_limit_key(request: Request) -> str:
    """`user:<id>` when authenticated, else `ip:<addr>` (namespaced)."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return _with_namespace(f"user:{user_id}")
    return _with_namespace(f"ip:{_client_ip(request)}")


def _bypass_header_allowed() -> bool:
    if os.getenv("ENV", "development").strip().lower() == "production":
        return False
    return os.getenv("RATE_LIMIT_ALLOW_BYPASS_HEADER", "").strip().lower() in _TRUTHY


def _path_is_skipped(path: str) -> bool:
    return any(path == prefix or path.startswith(prefix) for prefix in SKIP_PATHS)


def should_exempt_request(request: Optional[Request]) -> bool:
    """
    Exempt a request when the global switch is off, the path is skipped, the
    client IP is trusted, or a test bypass is active. The bypass header is
    honoured only when explicitly allowed outside production.
    """
    # Env flags are re-read per request so tests can toggle them.
    if os.getenv("RATE_LIMIT_ENABLED", "true").strip().lower() != "true":
        return True
    if request is None:
        return False
    if os.getenv("RATE_LIMIT_TEST_BYPASS", "").strip().lower() in _TRUTHY:
        return True
    if _bypass_header_allowed() and request.headers.get(BYPASS_HEADER, "").strip().lower() in _TRUTHY:
        return True
    if _path_is_skipped(request.url.path):
        return True
    return _client_ip(request) in TRUSTED_IPS


# ──────────────────────────────────────────────────────────────
# 🧰 Limiter instance (Redis / memory)
# ──────────────────────────────────────────────────────────────
def _build_default_limits() -> List[str]:
    return [chunk.strip() for chunk in DEFAULT_LIMIT.split(",") if chunk.strip()]


def _make_limiter() -> Optional[Limiter]:
    storage_uri = STORAGE_URI or "memory://"
    try:
        limiter = Limiter(
            key_func=get_user_rate_limit_key,
            default_limits=_build_default_limits(),
            headers_enabled=True,
            storage_uri=storage_uri,
            strategy=STRATEGY,
        )
    except Exception as e:
        logger.error(f"❌ Failed to init Limiter; limits disabled | err={e}")
        return None
    logger.info(
        f"✅ RateLimiter ready | enabled={RATE_LIMIT_ENABLED} | default={_build_default_limits()} "
        f"| storage={storage_uri} | trusted_ips={len(TRUSTED_IPS)} | ns={NAMESPACE or '-'}"
    )
    return limiter


limiter: Optional[Limiter] = _make_limiter()


# ──────────────────────────────────────────────────────────────
# 🎛 Decorators
# ──────────────────────────────────────────────────────────────
def _exempt_when(request: Optional[Request] = None) -> bool:
    """SlowAPI may or may not pass the request; fall back to its context var."""
    req = request
    if req is None and limiter is not None:
        try:
            req = limiter._request_context.get()  # type: ignore[attr-defined]
        except LookupError:
            req = None
    return should_exempt_request(req)


def _chain(decorators: List[Callable]) -> Callable:
    def _apply(fn: Callable) -> Callable:
        for deco in reversed(decorators):
            fn = deco(fn)
        return fn
    return _apply


def rate_limit(*limits: str) -> Callable:
    """
    Apply per-route limits with the exemptions above.

    Examples
    --------
    @rate_limit("10/minute")
    @rate_limit("5/second", "100/minute")
    """
    if limiter is None:
        def _noop(fn: Callable) -> Callable:
            return fn
        return _noop

    selected = list(limits) if limits else _build_default_limits()
    return _chain([limiter.limit(value, exempt_when=_exempt_when) for value in selected])


def rate_limit_exempt() -> Callable:
    """Explicitly exempt a route from limiting."""
    if limiter is None:
        def _noop(fn: Callable) -> Callable:
            return fn
        return _noop
    return limiter.exempt


# ──────────────────────────────────────────────────────────────
# 🔧 Installer
# ──────────────────────────────────────────────────────────────
def install_rate_limiter(app) -> None:
    """Attach SlowAPI middleware unless disabled by env."""
    if not limiter:
        logger.warning("RateLimiter not initialized; middleware not installed")
        return
    if not RATE_LIMIT_ENABLED:
        logger.info("RateLimiter disabled by env; middleware not installed")
        return

    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    logger.info("✅ SlowAPI middleware installed")


__all__ = ["limiter", "rate_limit", "rate_limit_exempt", "install_rate_limiter", "get_user_rate_limit_key"]
