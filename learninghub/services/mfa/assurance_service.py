# learninghub/services/mfa/assurance_service.py
from __future__ import annotations

"""
Assurance evaluator: is this request's session elevated enough?

- `elevated` when the provider reports `aal2` for the session (TOTP), or when
  an unexpired email MFA session marker exists for this exact session.
- Any provider/store error fails closed: the session is `base`, and factor
  state is treated as present so sensitive mutations stay gated.
"""

from datetime import datetime
from typing import Optional
import logging

from learninghub.core.exceptions import EnrollmentUnavailable
from learninghub.schemas.enums import AssuranceLevel, VerificationStatus
from learninghub.services.identity import IdentityProviderError
from learninghub.services.mfa import one_time_code_service
from learninghub.services.mfa.context import SessionContext
from learninghub.services.profile_service import get_mfa_profile

logger = logging.getLogger(__name__)


async def evaluate_assurance(ctx: SessionContext, now: Optional[datetime] = None) -> VerificationStatus:
    try:
        if await ctx.provider.get_assurance_level(ctx.session) == AssuranceLevel.AAL2:
            return VerificationStatus.ELEVATED
        marker = await one_time_code_service.check_session(ctx, now=now)
    except (IdentityProviderError, EnrollmentUnavailable) as exc:
        logger.warning("Assurance undetermined user=%s (%s); treating as base", ctx.user_id, type(exc).__name__)
        return VerificationStatus.BASE
    return VerificationStatus.ELEVATED if marker.verified else VerificationStatus.BASE


async def has_verified_factor(ctx: SessionContext) -> bool:
    """Verified TOTP factor, or email MFA recorded on the profile."""
    if get_mfa_profile(ctx.account).uses_email:
        return True
    try:
        factors = await ctx.provider.list_factors(ctx.user_id)
    except IdentityProviderError as exc:
        logger.warning("Factor lookup failed user=%s (%s); assuming enrolled", ctx.user_id, type(exc).__name__)
        return True
    return any(f.is_verified for f in factors)


async def requires_step_up(ctx: SessionContext, now: Optional[datetime] = None) -> bool:
    """True when the account has a verified factor and the session is only `base`."""
    if await evaluate_assurance(ctx, now=now) == VerificationStatus.ELEVATED:
        return False
    return await has_verified_factor(ctx)


__all__ = ["evaluate_assurance", "has_verified_factor", "requires_step_up"]
