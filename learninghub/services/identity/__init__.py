"""Identity provider: sessions, assurance level, TOTP factors, passwords."""

from learninghub.services.identity.errors import (
    ChallengeNotFound,
    FactorNotFound,
    IdentityProviderError,
    InvalidCredentials,
    ProviderInvalidCode,
    ProviderUnavailable,
    SessionInvalid,
)
from learninghub.services.identity.provider import (
    ChallengeInfo,
    FactorInfo,
    IdentityProvider,
    ProviderSession,
    SqlIdentityProvider,
    TotpEnrollment,
)

__all__ = [
    "IdentityProvider",
    "SqlIdentityProvider",
    "ProviderSession",
    "FactorInfo",
    "TotpEnrollment",
    "ChallengeInfo",
    "IdentityProviderError",
    "ProviderUnavailable",
    "InvalidCredentials",
    "SessionInvalid",
    "FactorNotFound",
    "ChallengeNotFound",
    "ProviderInvalidCode",
]
