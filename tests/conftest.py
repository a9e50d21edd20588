# tests/conftest.py
"""
Global test bootstrap
- Points the app at an in-memory SQLite database and a test JWT secret
- Mounts a mock Redis client into learninghub.core.redis_client
- Makes SlowAPI rate-limiting test-friendly (bypass by default)
- Exposes a redis_client fixture + an opt-in ratelimit_on fixture
"""

from __future__ import annotations

import os
import random

import pytest

# ──────────────────────────────────────────────────────────────────────────────
# 🌱 Test env (set BEFORE importing the app so settings pick it up)
# ──────────────────────────────────────────────────────────────────────────────
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-learninghub-tests-only")
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENV", "development")
os.environ.setdefault("ENABLE_HTTPS_REDIRECT", "false")
os.environ.setdefault("EMAIL_STRICT_LOCAL", "1")
os.environ.setdefault("RATELIMIT_STORAGE_URI", "memory://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")
os.environ.setdefault("RATE_LIMIT_TEST_BYPASS", "1")
os.environ.setdefault("RATE_LIMIT_NAMESPACE", f"pytest-{random.getrandbits(32)}")

# ──────────────────────────────────────────────────────────────────────────────
# 🧪 Install mock Redis globally before any tests run
# ──────────────────────────────────────────────────────────────────────────────
from learninghub.core.limiter import limiter
from learninghub.core.redis_client import redis_wrapper
from tests.fixtures.mocks.redis import MockRedisClient

redis_wrapper._client = MockRedisClient()

# ──────────────────────────────────────────────────────────────────────────────
# 📦 Pull in the rest of the fixtures (db, app, users, email)
# ──────────────────────────────────────────────────────────────────────────────
from tests.fixtures.db import *          # noqa: F401,F403,E402
from tests.fixtures.app import *         # noqa: F401,F403,E402
from tests.fixtures.users import *       # noqa: F401,F403,E402
from tests.fixtures.mocks.email import * # noqa: F401,F403,E402


@pytest.fixture(autouse=True)
async def redis_client():
    """Fresh mock Redis state per test (locks and throttles never leak)."""
    client = redis_wrapper.client
    await client.flushall()
    yield client
    await client.flushall()


@pytest.fixture()
def ratelimit_on(monkeypatch):
    """Enforce SlowAPI limits for tests that assert 429s."""
    monkeypatch.setenv("RATE_LIMIT_TEST_BYPASS", "0")
    if limiter is not None:
        limiter.reset()
    yield
