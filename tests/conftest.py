"""Shared fixtures for the Spendwise API gateway test suite."""

import json
from datetime import datetime, timezone

import pytest

from src.config.settings import get_settings
from src.keys.codec import hash_secret
from src.keys.models import ApiKey
from src.security.auth import drain_background_tasks
from src.store.store import InMemoryStore

READ_SECRET = "spw_live_0123456789abcdef0123456789abcdef"
WRITE_SECRET = "spw_live_fedcba9876543210fedcba9876543210"
DISABLED_SECRET = "spw_live_disabled0000000000000000000000"

# Wednesday 2026-03-04 12:00:30 UTC
NOW = datetime(2026, 3, 4, 12, 0, 30, tzinfo=timezone.utc)


def make_key(secret: str = READ_SECRET, **overrides) -> ApiKey:
    """Build an ApiKey record matching ``secret``."""
    fields = {
        "id": "key-read",
        "key_hash": hash_secret(secret),
        "key_prefix": secret[:12],
        "name": "Test key",
        "scopes": ["read"],
        "rate_limit_per_minute": 2,
        "rate_limit_per_day": 1000,
    }
    fields.update(overrides)
    return ApiKey(**fields)


def bearer(secret: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {secret}"}


@pytest.fixture(autouse=True)
async def drain_touch_tasks():
    """Let fire-and-forget last_used_at writes finish inside the test's loop."""
    yield
    await drain_background_tasks()


@pytest.fixture(autouse=True)
def utc_windows(monkeypatch):
    """Cut day windows in UTC so expectations do not depend on the host zone."""
    monkeypatch.setenv("RATE_LIMIT_TIMEZONE", "UTC")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def read_key() -> ApiKey:
    return make_key()


@pytest.fixture
def store(read_key) -> InMemoryStore:
    """In-memory store holding an active read key, a read/write key and a disabled key."""
    return InMemoryStore(keys=[
        read_key,
        make_key(WRITE_SECRET, id="key-write", scopes=["read", "write"], rate_limit_per_minute=60),
        make_key(DISABLED_SECRET, id="key-disabled", is_active=False),
    ])


@pytest.fixture
def api_keys_json_file(tmp_path):
    """Create a temp api_keys.json file and return its path."""
    data = {
        "api_keys": [
            {
                "id": "key-a",
                "key_hash": hash_secret(READ_SECRET),
                "key_prefix": READ_SECRET[:12],
                "name": "Key A",
                "scopes": ["read"],
                "rate_limit_per_minute": 30,
                "rate_limit_per_day": 500,
                "expires_at": "2030-01-01T00:00:00Z",
            },
            {
                "id": "key-b",
                "key_hash": hash_secret(DISABLED_SECRET),
                "key_prefix": DISABLED_SECRET[:12],
                "name": "Key B",
                "is_active": False,
            },
        ]
    }
    path = tmp_path / "api_keys.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


@pytest.fixture
def override_settings(monkeypatch):
    """Factory fixture: set env vars and clear settings cache.

    Usage:
        override_settings(STORE_BACKEND="memory", API_KEY_TAG="spw_test_")
    """
    def _override(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key.upper(), str(value))
        # Clear lru_cache so Settings re-reads env
        get_settings.cache_clear()

    yield _override

    get_settings.cache_clear()
