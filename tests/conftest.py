"""Test configuration: environment defaults and shared fixtures."""

import os

import pytest

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("CACHE_USE_REDIS", "false")
os.environ.setdefault("AUDIT_ENABLED", "false")

from tests.support import FakeClock, FakeRedis  # noqa: E402


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
