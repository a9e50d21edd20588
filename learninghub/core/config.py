# learninghub/core/config.py
from __future__ import annotations

"""
# Learning Hub — Centralized Configuration (Pydantic v2)

Single `settings` object with strongly-typed, environment-driven config.

## Goals
- Safe defaults for local/dev; explicit where prod needs secrets.
- CSV → list helpers for CORS/hosts.
- Every MFA tunable (code length, expiry, resend cooldown, caps) lives here so
  services never hard-code security windows.

## Usage
    from learninghub.core.config import settings
"""

import logging
from typing import Dict, List, Literal, Optional

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger(__name__)
load_dotenv()  # harmless in prod; convenient in dev


# ─────────────────────────────────────────────────────────────
# Small helpers
# ─────────────────────────────────────────────────────────────
def _split_csv(v: str | None) -> list[str]:
    """Split a comma-separated string into a trimmed list (empty-safe)."""
    if not v:
        return []
    return [s.strip() for s in str(v).split(",") if s and s.strip()]


# ─────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────
class Settings(BaseSettings):
    """
    Global application settings sourced from environment.

    Security:
        - Explicit secret for JWT signing and OTP peppering.
        - MFA windows are bounded with `ge`/`le` so a bad env value cannot
          produce a never-expiring code.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # don't crash on unknown keys
    )

    # ── App meta ──────────────────────────────────────────────
    PROJECT_NAME: str = "Learning Hub API"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENV: Literal["development", "staging", "production"] = "development"
    ENABLE_DOCS: bool = True

    # ── Security / JWT ────────────────────────────────────────
    JWT_SECRET_KEY: SecretStr = Field(...)
    JWT_ALGORITHM: Literal["HS256", "HS384", "HS512"] = "HS256"
    JWT_ISSUER: Optional[str] = None
    JWT_AUDIENCE: Optional[str] = None
    SESSION_TTL_HOURS: int = Field(12, ge=1, le=24 * 7)

    # ── MFA: TOTP ─────────────────────────────────────────────
    MFA_TOTP_ISSUER: str = "HIPAA Learning Hub"
    MFA_CODE_LENGTH: int = Field(6, ge=6, le=8)
    TOTP_STEP_SECONDS: int = Field(30, ge=15, le=120)
    MFA_CHALLENGE_TTL_SECONDS: int = Field(300, ge=30, le=900)

    # ── MFA: email one-time codes ─────────────────────────────
    MFA_EMAIL_CODE_TTL_MINUTES: int = Field(10, ge=1, le=60)
    MFA_EMAIL_RESEND_COOLDOWN_SECONDS: int = Field(60, ge=0, le=15 * 60)
    MFA_EMAIL_MAX_CODES_PER_PERIOD: int = Field(3, ge=1, le=50)
    MFA_EMAIL_RATE_PERIOD_MINUTES: int = Field(10, ge=1, le=24 * 60)
    MFA_EMAIL_MAX_ATTEMPTS_PER_CODE: int = Field(5, ge=0, le=100)  # 0 → unbounded
    MFA_EMAIL_SESSION_TTL_HOURS: int = Field(8, ge=1, le=72)
    MFA_EMAIL_SEND_LOCK_SECONDS: int = Field(10, ge=1, le=60)

    # ── Post-verification routing ─────────────────────────────
    ROLE_HOME_ROUTES: Dict[str, str] = Field(
        default_factory=lambda: {
            "platform_owner": "/platform",
            "org_admin": "/admin",
            "workforce_user": "/dashboard",
        }
    )
    DEFAULT_HOME_ROUTE: str = "/dashboard"
    MFA_ENROLL_ROUTE: str = "/mfa-select"
    LOGIN_ROUTE: str = "/login"

    # ── Redis / Rate limiting ─────────────────────────────────
    REDIS_URL: str = "redis://localhost:6379/0"
    DEFAULT_RATE_LIMIT: Optional[str] = None  # e.g., "200/minute"
    RATELIMIT_STORAGE_URI: Optional[str] = None  # fallback to REDIS_URL if unset

    # ── Database (PostgreSQL) ─────────────────────────────────
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: SecretStr = Field(SecretStr("postgres"))
    POSTGRES_DB: str = "learninghub"
    DATABASE_URL_OVERRIDE: Optional[str] = None  # full async DSN, e.g. sqlite+aiosqlite:///./dev.db

    # ── CORS ─────────────────────────────────────────────────
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = Field(
        default_factory=lambda: ["http://localhost:8080", "http://localhost:5173"]
    )
    FRONTEND_ORIGINS: Optional[str] = None  # CSV

    # ── Email (transactional code delivery) ───────────────────
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[SecretStr] = None
    EMAIL_FROM: str = "noreply@thelearninghub.example"
    EMAIL_FROM_NAME: str = "The Learning Hub"
    EMAIL_USE_TLS: bool = True

    # ── Validators / normalizers ──────────────────────────────
    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def _assemble_cors_origins(cls, v: str | List[str]):
        if isinstance(v, str):
            return _split_csv(v)
        return v

    @field_validator("FRONTEND_ORIGINS", mode="before")
    @classmethod
    def _normalize_frontend_csv(cls, v):
        return None if v is None else ",".join(_split_csv(str(v)))

    # ── Derived / convenience properties ─────────────────────
    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"

    @property
    def DATABASE_URL(self) -> str:
        """Sync DSN."""
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD.get_secret_value()}"
            f"@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def ASYNC_DATABASE_URL(self) -> str:
        """Async SQLAlchemy DSN (override wins)."""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")

    @property
    def frontend_origins_list(self) -> List[str]:
        """
        Preferred CORS allowlist:
        Priority → FRONTEND_ORIGINS (CSV) → BACKEND_CORS_ORIGINS (typed list).
        """
        if self.FRONTEND_ORIGINS:
            return _split_csv(self.FRONTEND_ORIGINS)
        return [str(u).rstrip("/") for u in (self.BACKEND_CORS_ORIGINS or [])]

    @property
    def ratelimit_storage(self) -> Optional[str]:
        """Storage URI for SlowAPI; prefer RATELIMIT_STORAGE_URI, else REDIS_URL."""
        return self.RATELIMIT_STORAGE_URI or (self.REDIS_URL if self.REDIS_URL else None)


# Singleton instance
settings = Settings()
