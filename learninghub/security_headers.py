# learninghub/security_headers.py
from __future__ import annotations

"""
# Learning Hub — Security Headers & CORS

Security headers and CORS utilities for the JSON API.

## What you get
- **Headers**: HSTS, a locked-down CSP (the API serves no documents),
  X-Content-Type-Options, X-Frame-Options, Referrer-Policy, CORP/COOP.
- **CORS installer**: strict allow-list from settings (never `*`).
- **Cache helper**: `set_sensitive_cache()` marks MFA/auth responses
  `no-store` so secrets, provisioning URIs and tokens are never cached.

## Quick start
    from learninghub.security_headers import install_security, configure_cors

    app = FastAPI()
    install_security(app)   # HTTPS redirect (production) + headers middleware
    configure_cors(app)     # CORS allow-list from settings

## Env knobs
- ENABLE_HTTPS_REDIRECT (default: "true" in production, else "false")
- SECURITY_SKIP_PATHS (CSV; default "/docs,/redoc,/openapi.json")
- HSTS_MAX_AGE (31536000), HSTS_INCLUDE_SUBDOMAINS ("true")
- REFERRER_POLICY (default "no-referrer")
"""

import os
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple, List, Union

from fastapi import Request, Response
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send

from learninghub.core.config import settings


# ─────────────────────────────────────────────────────────────
# ⚙️ Configuration
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SecurityHeadersConfig:
    """Runtime configuration for security headers (env-driven)."""

    hsts_max_age: int = int(os.getenv("HSTS_MAX_AGE", "31536000"))
    hsts_include_subdomains: bool = os.getenv("HSTS_INCLUDE_SUBDOMAINS", "true").lower() == "true"
    csp: str = os.getenv("API_CSP", "default-src 'none'; frame-ancestors 'none'")
    referrer_policy: str = os.getenv("REFERRER_POLICY", "no-referrer")
    skip_paths_csv: str = os.getenv("SECURITY_SKIP_PATHS", "/docs,/redoc,/openapi.json")


_CFG = SecurityHeadersConfig()


# ─────────────────────────────────────────────────────────────
# 🧩 Middleware (headers + optional cache flags)
# ─────────────────────────────────────────────────────────────

class SecurityHeadersMiddleware:
    """
    ASGI middleware that applies security headers idempotently on every
    response, plus **sensitive cache** headers when a route flagged the
    `Request`. Docs paths are skipped so Swagger UI keeps working.
    """

    def __init__(self, app: ASGIApp, cfg: SecurityHeadersConfig = _CFG) -> None:
        self.app = app
        self.cfg = cfg
        self._skip_prefixes: Tuple[str, ...] = tuple(
            p.strip() for p in (cfg.skip_paths_csv or "").split(",") if p.strip()
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            return await self.app(scope, receive, send)

        path = scope.get("path", "")
        is_skipped = any(path.startswith(prefix) for prefix in self._skip_prefixes)
        state = scope.setdefault("state", {})

        async def send_wrapper(message):
            if message.get("type") == "http.response.start":
                raw_headers: List[Tuple[bytes, bytes]] = message.setdefault("headers", [])  # type: ignore[assignment]
                if not is_skipped:
                    _apply_headers_to_raw(raw_headers, self.cfg)
                if state.get("_sensitive_cache"):
                    _apply_sensitive_cache_to_raw(raw_headers)
            await send(message)

        await self.app(scope, receive, send_wrapper)


def _has_header(raw_headers: List[Tuple[bytes, bytes]], name: str) -> bool:
    lname = name.lower().encode("latin-1")
    return any(h[0].lower() == lname for h in raw_headers)


def _ensure(raw_headers: List[Tuple[bytes, bytes]], name: str, value: str) -> None:
    if not _has_header(raw_headers, name):
        raw_headers.append((name.encode("latin-1"), value.encode("latin-1")))


def _apply_headers_to_raw(raw_headers: List[Tuple[bytes, bytes]], cfg: SecurityHeadersConfig) -> None:
    hsts = f"max-age={cfg.hsts_max_age}"
    if cfg.hsts_include_subdomains:
        hsts += "; includeSubDomains"

    _ensure(raw_headers, "Strict-Transport-Security", hsts)
    _ensure(raw_headers, "Content-Security-Policy", cfg.csp)
    _ensure(raw_headers, "X-Content-Type-Options", "nosniff")
    _ensure(raw_headers, "X-Frame-Options", "DENY")
    _ensure(raw_headers, "Referrer-Policy", cfg.referrer_policy)
    _ensure(raw_headers, "Cross-Origin-Opener-Policy", "same-origin")
    _ensure(raw_headers, "Cross-Origin-Resource-Policy", "same-origin")


def _apply_sensitive_cache_to_raw(raw_headers: List[Tuple[bytes, bytes]]) -> None:
    _ensure(raw_headers, "Cache-Control", "no-store")
    _ensure(raw_headers, "Pragma", "no-cache")
    _ensure(raw_headers, "Expires", "0")


# ─────────────────────────────────────────────────────────────
# 🔓 Public helpers (idempotent; safe to call in routes)
# ─────────────────────────────────────────────────────────────

def set_sensitive_cache(target: Union[Response, Request]) -> None:
    """
    Mark a **Response** or **Request** as not cacheable.

    - `Response`: headers are set immediately.
    - `Request`: a flag read by the middleware at response start (covers
      error responses rendered by exception handlers).
    """
    if isinstance(target, Response):
        target.headers.setdefault("Cache-Control", "no-store")
        target.headers.setdefault("Pragma", "no-cache")
        target.headers.setdefault("Expires", "0")
        return

    if isinstance(target, Request):
        target.state._sensitive_cache = True
        return

    raise TypeError("set_sensitive_cache expects a Response or Request")


# ─────────────────────────────────────────────────────────────
# 🌐 CORS installer (allow-list, not '*')
# ─────────────────────────────────────────────────────────────

def configure_cors(
    app,
    *,
    allow_methods: Optional[Iterable[str]] = None,
    allow_headers: Optional[Iterable[str]] = None,
) -> None:
    """Install strict CORS from `settings.frontend_origins_list`.

    Bearer tokens travel in `Authorization`, so credentials (cookies) stay off.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.frontend_origins_list,
        allow_credentials=False,
        allow_methods=list(allow_methods or ["GET", "POST", "OPTIONS"]),
        allow_headers=list(allow_headers or ["Authorization", "Content-Type", "X-Request-ID"]),
        expose_headers=["Retry-After", "X-Request-ID"],
        max_age=3600,
    )


# ─────────────────────────────────────────────────────────────
# 🔐 HTTPS redirect + headers middleware
# ─────────────────────────────────────────────────────────────

def install_security(app) -> None:
    """Add HTTPS redirect (production by default) and the headers middleware."""
    default_redirect = "true" if settings.is_production else "false"
    if os.getenv("ENABLE_HTTPS_REDIRECT", default_redirect).lower() == "true":
        app.add_middleware(HTTPSRedirectMiddleware)

    app.add_middleware(SecurityHeadersMiddleware, cfg=_CFG)


__all__ = [
    "SecurityHeadersConfig",
    "SecurityHeadersMiddleware",
    "install_security",
    "configure_cors",
    "set_sensitive_cache",
]
