from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import pytest

from launcher_engine.clock import SteppingClock
from launcher_engine.lifecycle.service import ProfileLifecycleService
from launcher_engine.profile_store.connection import ProfileStoreConnection
from launcher_engine.profile_store.repository import ProfileRepository
from launcher_engine.profile_store.schema import SchemaManager
from launcher_engine.profile_store.settings import SettingsRepository


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock(start=datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def connection(tmp_path: Path) -> Iterator[ProfileStoreConnection]:
    """A connected store migrated to the current schema version."""
    conn = ProfileStoreConnection(tmp_path / "klauncher.db")
    conn.connect()
    SchemaManager(conn).ensure_schema()
    yield conn
    conn.close()


@pytest.fixture
def repository(connection: ProfileStoreConnection, clock: SteppingClock) -> ProfileRepository:
    return ProfileRepository(connection, clock=clock)


@pytest.fixture
def settings(connection: ProfileStoreConnection, clock: SteppingClock) -> SettingsRepository:
    return SettingsRepository(connection, clock=clock)


@pytest.fixture
def service(repository: ProfileRepository, tmp_path: Path) -> Iterator[ProfileLifecycleService]:
    svc = ProfileLifecycleService(repository, data_root=tmp_path)
    yield svc
    svc.shutdown()


@pytest.fixture(autouse=True)
def _reset_engine_logging() -> Iterator[None]:
    """Drop handlers installed by CLI runs so later tests do not write to closed streams."""
    yield
    engine_logger = logging.getLogger("launcher_engine")
    for handler in list(engine_logger.handlers):
        engine_logger.removeHandler(handler)
        handler.close()
    engine_logger.setLevel(logging.NOTSET)
