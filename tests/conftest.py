"""
Pytest Configuration and Shared Fixtures

This module provides centralized fixtures for testing ParamGuard components.
"""

import logging
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

from paramguard.archive.config import set_config
from paramguard.archive.crypto import KdfParams, PasswordCipher
from paramguard.archive.lifecycle import LifecycleEngine
from paramguard.archive.store import InMemoryRecordStore, SQLiteRecordStore
from paramguard.utils.redaction import RedactingFilter


# =============================================================================
# Environment Setup
# =============================================================================


@pytest.fixture(autouse=True)
def clean_environment():
    """Ensure clean environment for each test."""
    original_env = os.environ.copy()

    yield

    os.environ.clear()
    os.environ.update(original_env)
    set_config(None)


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Undo logging configuration applied during a test."""
    root = logging.getLogger()
    original_level = root.level
    original_handlers = list(root.handlers)

    yield

    root.setLevel(original_level)
    for handler in list(root.handlers):
        if handler not in original_handlers:
            root.removeHandler(handler)
    for handler in root.handlers:
        for f in [f for f in handler.filters if isinstance(f, RedactingFilter)]:
            handler.removeFilter(f)


# =============================================================================
# Temporary Directory Fixtures
# =============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that's cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_db_path(temp_dir: Path) -> Path:
    """Provide a temporary database path."""
    return temp_dir / "archive.db"


# =============================================================================
# Clock & Crypto Fixtures
# =============================================================================


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current = self.current + delta


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fast_kdf() -> KdfParams:
    """Cheap Argon2 parameters so tests stay quick."""
    return KdfParams(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture
def cipher(fast_kdf) -> PasswordCipher:
    return PasswordCipher(fast_kdf)


# =============================================================================
# Store & Engine Fixtures
# =============================================================================


@pytest.fixture
def memory_store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def sqlite_store(temp_db_path) -> Generator[SQLiteRecordStore, None, None]:
    store = SQLiteRecordStore(temp_db_path)
    yield store
    store.close()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, temp_db_path):
    """Run a test against every store backend."""
    if request.param == "memory":
        yield InMemoryRecordStore()
    else:
        sqlite = SQLiteRecordStore(temp_db_path)
        yield sqlite
        sqlite.close()


@pytest.fixture
def engine(store, cipher, clock) -> LifecycleEngine:
    return LifecycleEngine(store=store, cipher=cipher, clock=clock)
