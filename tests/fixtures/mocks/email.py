from __future__ import annotations

from typing import List, Tuple

import pytest

from learninghub.services.mfa import one_time_code_service

FIXED_CODE = "123456"


@pytest.fixture(autouse=True)
def sent_codes(monkeypatch) -> List[Tuple[str, str, int]]:
    """Capture every MFA code email as `(to, code, expires_in_minutes)`."""
    outbox: List[Tuple[str, str, int]] = []

    async def mock_send_mfa_code_email(email: str, code: str, expires_in_minutes: int) -> None:
        outbox.append((email, code, expires_in_minutes))

    monkeypatch.setattr(one_time_code_service, "send_mfa_code_email", mock_send_mfa_code_email)
    return outbox


@pytest.fixture
def fixed_code(monkeypatch) -> str:
    """Pin the next issued email codes to `FIXED_CODE`."""
    monkeypatch.setattr(one_time_code_service, "generate_code", lambda length=6: FIXED_CODE)
    return FIXED_CODE


__all__ = ["FIXED_CODE", "sent_codes", "fixed_code"]
