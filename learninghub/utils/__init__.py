"""Utility helpers for the Learning Hub backend.

Submodules:
- redis_utils: per-key throttles and Redis-backed locks
- email_utils: templated delivery of MFA codes
"""

__all__: list[str] = []
