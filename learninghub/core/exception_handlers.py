from __future__ import annotations

"""
Exception handlers.

- `MfaError` → `{error, message, ...hints}` (the shape MFA clients branch on).
- Other HTTP errors → application/problem+json (RFC 7807).
- Anything unexpected → generic `server_error`; internals are logged, never returned.

Wired into the app by `register_exception_handlers` from learninghub/main.py.
"""

import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from learninghub.core.exceptions import MfaError

logger = logging.getLogger(__name__)


def _problem(title: str, detail: str, status_code: int, request: Request, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "type": "about:blank",
            "title": title,
            "detail": detail,
            "status": status_code,
            "instance": str(request.url),
        },
        media_type="application/problem+json",
        headers=headers,
    )


async def mfa_exception_handler(request: Request, exc: MfaError) -> JSONResponse:  # type: ignore
    response = JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=exc.headers)
    response.headers["Cache-Control"] = "no-store"
    return response


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:  # type: ignore
    if isinstance(exc, MfaError):
        return await mfa_exception_handler(request, exc)
    title = exc.__class__.__name__.replace("Exception", "").strip() or "Error"
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _problem(title, detail, exc.status_code, request, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:  # type: ignore
    detail = "Validation error"
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "type": "about:blank",
            "title": detail,
            "detail": detail,
            "status": status.HTTP_422_UNPROCESSABLE_ENTITY,
            "instance": str(request.url),
            "errors": exc.errors(),
        },
        media_type="application/problem+json",
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # type: ignore
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "server_error", "message": "An unexpected error occurred."},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach every handler above to `app`."""
    app.add_exception_handler(MfaError, mfa_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, global_exception_handler)  # type: ignore[arg-type]


__all__ = [
    "mfa_exception_handler",
    "http_exception_handler",
    "validation_exception_handler",
    "global_exception_handler",
    "register_exception_handlers",
]
