"""Shared test fixtures and configuration.

Sets up fake environment variables so plantcare.config doesn't sys.exit(),
and provides common fixtures like a temp key-value DB and stores.
"""

import os

# Patch env vars BEFORE any plantcare imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("DEVICE_NAME", "test-device")

from datetime import datetime

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_plantcare.db")


@pytest.fixture
def kv_db(tmp_db_path):
    """Return a KeyValueDB instance backed by a temp file."""
    from plantcare.data.kv_store import KeyValueDB
    return KeyValueDB(db_path=tmp_db_path)


@pytest.fixture
def now():
    return datetime(2026, 10, 18, 10, 0)


@pytest.fixture
def store(kv_db, tmp_path):
    """DataStore seeded with the built-in rooms and plants."""
    from plantcare.data.store import DataStore
    return DataStore(kv_db, photos_dir=tmp_path / "photos")


@pytest.fixture
def empty_store(kv_db, tmp_path):
    """DataStore with no seed data."""
    from plantcare.data.store import DataStore
    return DataStore(kv_db, photos_dir=tmp_path / "photos", seed_defaults=False)
