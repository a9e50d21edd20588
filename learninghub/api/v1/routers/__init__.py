"""
🧭 Learning Hub • API v1 Router Aggregator
=========================================

Exports the **combined `router`** (ready to include) and a factory for custom
mount points.

Quick usage
-----------
    from learninghub.api.v1.routers import router as v1_router
    app.include_router(v1_router, prefix="/api/v1")

Security notes
--------------
- 🔐 This layer is a pure aggregator; **auth & rate limits live in child routers**.
"""

from fastapi import APIRouter

from .auth.register_routes import build_auth_router


def build_v1_router() -> APIRouter:
    """
    Compose the API v1 surface into a single `APIRouter`.

    Currently:
      • Auth + MFA endpoints under `/auth`
    """
    r = APIRouter()
    r.include_router(build_auth_router(base_prefix="/auth"))
    return r


router = build_v1_router()

__all__ = ["router", "build_v1_router"]
