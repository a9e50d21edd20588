# learninghub/services/identity/errors.py
from __future__ import annotations

"""
Identity provider errors.

These never reach HTTP clients directly: the MFA orchestrators translate them
at their boundary (`EnrollmentUnavailable`, `InvalidCode`, `Unauthenticated`).
"""


class IdentityProviderError(Exception):
    """Base class for every provider failure."""


class ProviderUnavailable(IdentityProviderError):
    """Backing store failed (connection, timeout, constraint race)."""


class InvalidCredentials(IdentityProviderError):
    pass


class SessionInvalid(IdentityProviderError):
    """Token malformed/expired, or its session row revoked/expired."""


class FactorNotFound(IdentityProviderError):
    pass


class ChallengeNotFound(IdentityProviderError):
    """Challenge unknown, already consumed, expired or bound to another factor."""


class ProviderInvalidCode(IdentityProviderError):
    pass


__all__ = [
    "IdentityProviderError",
    "ProviderUnavailable",
    "InvalidCredentials",
    "SessionInvalid",
    "FactorNotFound",
    "ChallengeNotFound",
    "ProviderInvalidCode",
]
