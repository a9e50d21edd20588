# learninghub/utils/email_utils.py

from __future__ import annotations

"""
Transactional Email Utilities for The Learning Hub
==================================================

Sends the one-time sign-in codes used by the email second factor via
FastAPI-Mail (async). Templates are rendered with Jinja2 from
`learninghub/email_templates/`; when a template is missing or fails to render
the message falls back to plaintext.

Highlights
----------
- Background-safe: senders **log** failures instead of raising, so a flaky
  SMTP relay never turns a code issuance into a 500.
- Dry-run in development: when SMTP is not configured (or ENV is not a
  production-ish environment) the message is logged without the code.
- Minimal recipient validation; upstream code owns full validation.

Environment / settings knobs
----------------------------
SMTP_HOST, SMTP_PORT, SMTP_USERNAME, SMTP_PASSWORD, EMAIL_USE_TLS
EMAIL_FROM, EMAIL_FROM_NAME
ENV                          # 'production'|'staging'|'development'
EMAIL_STRICT_LOCAL           # set to '0' → allow real sending in development

Public API
----------
- send_mfa_code_email(email, code, expires_in_minutes)   # async
"""

import logging
import os
from pathlib import Path
from typing import Optional

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema, MessageType
from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape

from learninghub.core.config import settings

# ──────────────────────────────────────────────────────────────────────────────
# 🔧 Configuration & Globals
# ──────────────────────────────────────────────────────────────────────────────

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "email_templates"

# NOTE: EMAIL_STRICT_LOCAL='0' means "allow sending outside production"
EMAIL_STRICT_LOCAL = os.getenv("EMAIL_STRICT_LOCAL", "1") == "0"

# Lazy singletons for FastAPI-Mail + Jinja2
_fastmail: Optional[FastMail] = None
_jinja_env: Optional[Environment] = None


def _jinja() -> Environment:
    global _jinja_env
    if _jinja_env is None:
        _jinja_env = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=select_autoescape(enabled_extensions=("html", "xml")),
        )
    return _jinja_env


def _conn_config() -> ConnectionConfig:
    """Build a FastAPI-Mail ConnectionConfig from settings.

    Port 465 means implicit TLS; anything else negotiates STARTTLS when
    `EMAIL_USE_TLS` is on.
    """
    use_ssl = settings.SMTP_PORT == 465
    password = settings.SMTP_PASSWORD.get_secret_value() if settings.SMTP_PASSWORD else ""
    return ConnectionConfig(
        MAIL_USERNAME=settings.SMTP_USERNAME or "",
        MAIL_PASSWORD=password,
        MAIL_FROM=settings.EMAIL_FROM,
        MAIL_PORT=settings.SMTP_PORT,
        MAIL_SERVER=settings.SMTP_HOST or "localhost",
        MAIL_FROM_NAME=settings.EMAIL_FROM_NAME,
        MAIL_STARTTLS=settings.EMAIL_USE_TLS and not use_ssl,
        MAIL_SSL_TLS=use_ssl,
        USE_CREDENTIALS=bool(settings.SMTP_USERNAME and password),
        SUPPRESS_SEND=False,
    )


def _fastmail_client() -> FastMail:
    """Lazily instantiate and cache the FastMail client."""
    global _fastmail
    if _fastmail is None:
        _fastmail = FastMail(_conn_config())
    return _fastmail


# ──────────────────────────────────────────────────────────────────────────────
# 🧭 Behavior toggles & utilities
# ──────────────────────────────────────────────────────────────────────────────

def _should_send_real_email() -> bool:
    """True when SMTP is configured and we're in staging/production,
    or when EMAIL_STRICT_LOCAL='0' opts development into real sends."""
    if not settings.SMTP_HOST:
        return False
    if settings.ENV in ("production", "staging"):
        return True
    return EMAIL_STRICT_LOCAL


def _mailto(to_email: str) -> str:
    addr = (to_email or "").strip()
    if not addr or "@" not in addr:
        raise ValueError("Invalid recipient email")
    return addr


def _render_template(template_name: str, context: dict) -> Optional[str]:
    """Render a template from TEMPLATE_DIR; None when missing or broken."""
    try:
        return _jinja().get_template(template_name).render(**context)
    except TemplateNotFound:
        return None
    except Exception:
        logger.exception("Template render failed: %s", template_name)
        return None


# ──────────────────────────────────────────────────────────────────────────────
# 📮  ASYNC: FastAPI-Mail sender (background-safe)
# ──────────────────────────────────────────────────────────────────────────────

async def _send_fastmail(to_email: str, subject: str, body: str, *, subtype: MessageType) -> None:
    """Send one message; never raises."""
    try:
        recipient = _mailto(to_email)
    except ValueError:
        logger.warning("📨 Refusing to send email: malformed recipient")
        return

    if not _should_send_real_email():
        # The body carries a live code; log the envelope only.
        logger.info("📨 [DRY-RUN] Email to=%s subject=%s", recipient, subject)
        return

    message = MessageSchema(
        subject=subject,
        recipients=[recipient],
        body=body,
        subtype=subtype,
    )
    try:
        await _fastmail_client().send_message(message)
        logger.info("📨 Email sent to %s (subject=%s)", recipient, subject)
    except Exception:
        logger.exception("❌ FastMail send failed (to=%s subject=%s) [non-fatal]", recipient, subject)


# ──────────────────────────────────────────────────────────────────────────────
# 📫  Public async APIs
# ──────────────────────────────────────────────────────────────────────────────

async def send_mfa_code_email(email: str, code: str, expires_in_minutes: int) -> None:
    """
    Deliver a one-time sign-in code for the email second factor.

    Steps
    -----
    1) Prefer the HTML template `mfa-code.html`.
    2) Fall back to plaintext when the template is unavailable.
    """
    subject = f"Your {settings.EMAIL_FROM_NAME} verification code"
    context = {
        "code": code,
        "expires_minutes": expires_in_minutes,
        "product_name": settings.EMAIL_FROM_NAME,
    }

    html = _render_template("mfa-code.html", context)
    if html:
        await _send_fastmail(email, subject, html, subtype=MessageType.html)
        return

    body = (
        f"Your verification code is: {code}\n\n"
        f"It expires in {expires_in_minutes} minutes. "
        "If you didn't try to sign in, contact your administrator."
    )
    await _send_fastmail(email, subject, body, subtype=MessageType.plain)


__all__ = ["send_mfa_code_email"]
