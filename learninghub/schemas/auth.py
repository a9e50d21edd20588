# learninghub/schemas/auth.py

from pydantic import BaseModel, EmailStr, Field, constr, ConfigDict
from typing import Optional
from uuid import UUID
from datetime import datetime

from learninghub.schemas.enums import MfaFlowState, MfaMethod, VerificationStatus

# Codes are forwarded as-is to the verifier; only obviously bogus sizes are rejected here.
CodeStr = constr(strip_whitespace=True, min_length=1, max_length=16)


# ──────────────── Login ────────────────
class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=1024)


class MfaStatusResponse(BaseModel):
    """Next step for this session (re-evaluated on every call)."""
    state: MfaFlowState
    status: VerificationStatus
    method: Optional[MfaMethod] = None
    factor_id: Optional[UUID] = None
    redirect_to: Optional[str] = None
    expires_in: Optional[int] = None
    resend_available_in: Optional[int] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    mfa: MfaStatusResponse


class MessageResponse(BaseModel):
    message: str


# ──────────────── TOTP ────────────────
class TotpEnrollResponse(BaseModel):
    """Secret/URI are present only when a new factor was created."""
    already_enrolled: bool = False
    factor_id: Optional[UUID] = None
    secret: Optional[str] = None
    qr_code_url: Optional[str] = None
    redirect_to: Optional[str] = None


class TotpEnrollVerifyRequest(BaseModel):
    factor_id: UUID
    code: CodeStr


class TotpVerifyRequest(BaseModel):
    code: CodeStr
    challenge_id: Optional[str] = Field(None, max_length=64)


class VerifiedResponse(BaseModel):
    verified: bool = True
    redirect_to: Optional[str] = None
    challenge_id: Optional[str] = None


# ──────────────── Email ────────────────
class EmailEnrollResponse(BaseModel):
    email: EmailStr


class EmailCodeRequest(BaseModel):
    code: CodeStr


class SendCodeResponse(BaseModel):
    message: str = "Verification code sent."
    expires_in: int
    resend_available_in: int


class EmailSessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    verified: bool
    expires_at: Optional[datetime] = None


# ──────────────── Password Reset ────────────────
class PasswordResetRequest(BaseModel):
    new_password: constr(min_length=6, max_length=1024)


# ──────────────── Errors ────────────────
class MfaErrorResponse(BaseModel):
    error: str
    message: str
    retry_after: Optional[int] = None
    challenge_id: Optional[str] = None
