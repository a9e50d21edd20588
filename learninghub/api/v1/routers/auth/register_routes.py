# learninghub/api/v1/routers/auth/register_routes.py
from __future__ import annotations

# ── [Step 0] Child routers ────────────────────────────────────────────────────
from fastapi import APIRouter, Depends, Response

from learninghub.security_headers import set_sensitive_cache

from . import login, mfa, mfa_email, password_reset


def _no_store_dep(response: Response) -> None:
    # ── [Step 1] Apply cache-hardening headers for auth endpoints ─────────────
    set_sensitive_cache(response)


# ──────────────────────────────────────────────────────────────────────────────
# ⚙️  Factory: build the auth router with consistent defaults
#     - base_prefix: mount everything under a shared prefix
#     - add_no_store: apply Cache-Control: no-store on all included routes
# ──────────────────────────────────────────────────────────────────────────────
def build_auth_router(
    *,
    base_prefix: str = "/auth",
    add_no_store: bool = True,
) -> APIRouter:
    # ── [Step 2] Router skeleton with optional global dependency ──────────────
    dependencies = [Depends(_no_store_dep)] if add_no_store else None
    router = APIRouter(prefix=base_prefix, dependencies=dependencies)

    # ── [Step 3] Error shapes shared by the auth endpoints (OpenAPI) ──────────
    common_responses = {
        400: {"description": "invalid_code / no_code / code_expired / too_many_attempts"},
        401: {"description": "unauthenticated"},
        403: {"description": "step_up_required"},
        409: {"description": "no_factor"},
        429: {"description": "rate_limited"},
        503: {"description": "enrollment_unavailable"},
    }

    # ── [Step 4] Sessions ─────────────────────────────────────────────────────
    router.include_router(login.router, responses=common_responses)             # /login, /logout

    # ── [Step 5] MFA enrollment & step-up ─────────────────────────────────────
    router.include_router(mfa.router, responses=common_responses)               # /mfa/status, /mfa/totp/*, /mfa/email/enroll*
    router.include_router(mfa_email.router, responses=common_responses)         # /mfa/email/send-code, /verify-code, /session

    # ── [Step 6] Sensitive mutations ──────────────────────────────────────────
    router.include_router(password_reset.router, responses=common_responses)    # /password/reset

    return router


router = build_auth_router()
