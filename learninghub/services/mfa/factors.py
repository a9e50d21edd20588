# learninghub/services/mfa/factors.py
from __future__ import annotations

"""
Second-factor variants and their single verify capability.

`Factor = TotpFactor | EmailFactor`; `verify_factor(factor, ctx, code)` is
dispatched on the variant so the orchestrators never branch on method names.

TOTP codes are checked by the identity provider against a challenge. A
challenge id supplied by the client is reused while the provider still reports
it open for the same factor; otherwise (or when the provider drops it between
lookup and verify) a fresh challenge is opened. Email codes go to the
one-time code service.
"""

from dataclasses import dataclass
from functools import singledispatch
from typing import Optional, Union
from uuid import UUID
import logging

from learninghub.core.exceptions import EnrollmentUnavailable, InvalidCode
from learninghub.schemas.enums import MfaMethod
from learninghub.services.identity import (
    ChallengeNotFound,
    FactorNotFound,
    IdentityProviderError,
    ProviderInvalidCode,
)
from learninghub.services.mfa import one_time_code_service
from learninghub.services.mfa.context import SessionContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TotpFactor:
    factor_id: UUID


@dataclass(frozen=True)
class EmailFactor:
    pass


Factor = Union[TotpFactor, EmailFactor]


@dataclass(frozen=True)
class FactorVerification:
    method: MfaMethod
    challenge_id: Optional[str] = None


def _parse_challenge_id(raw: Optional[str]) -> Optional[UUID]:
    if not raw:
        return None
    try:
        return UUID(str(raw))
    except ValueError:
        return None


@singledispatch
async def verify_factor(factor, ctx: SessionContext, code: str, **kw) -> FactorVerification:
    raise TypeError(f"unsupported factor: {type(factor).__name__}")


@verify_factor.register
async def _(factor: TotpFactor, ctx: SessionContext, code: str, *, challenge_id: Optional[str] = None) -> FactorVerification:
    provider = ctx.provider

    # ── [Step 1] Reuse a still-open challenge, else open one ────────────────
    challenge = None
    reuse = _parse_challenge_id(challenge_id)
    try:
        if reuse is not None:
            try:
                info = await provider.get_challenge(reuse)
                if info.factor_id == factor.factor_id:
                    challenge = info
            except ChallengeNotFound:
                challenge = None
        if challenge is None:
            challenge = await provider.challenge(factor.factor_id)

        # ── [Step 2] Verify (one retry on a challenge that vanished) ────────
        try:
            await provider.verify(ctx.session, factor_id=factor.factor_id, challenge_id=challenge.id, code=code)
        except ChallengeNotFound:
            challenge = await provider.challenge(factor.factor_id)
            await provider.verify(ctx.session, factor_id=factor.factor_id, challenge_id=challenge.id, code=code)
    except ProviderInvalidCode:
        raise InvalidCode(challenge_id=str(challenge.id) if challenge else None)
    except (FactorNotFound, ChallengeNotFound):
        # Factor deleted underneath us (e.g. superseded enrollment).
        raise InvalidCode()
    except IdentityProviderError as exc:
        logger.warning("TOTP verification unavailable user=%s: %s", ctx.user_id, type(exc).__name__)
        raise EnrollmentUnavailable() from exc

    return FactorVerification(method=MfaMethod.TOTP, challenge_id=str(challenge.id))


@verify_factor.register
async def _(factor: EmailFactor, ctx: SessionContext, code: str, **kw) -> FactorVerification:
    await one_time_code_service.verify(ctx, code, now=kw.get("now"))
    return FactorVerification(method=MfaMethod.EMAIL)


__all__ = ["TotpFactor", "EmailFactor", "Factor", "FactorVerification", "verify_factor"]
