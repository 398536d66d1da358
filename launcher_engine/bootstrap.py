"""Startup wiring for the launcher engine.

Every component is constructed once here and handed to its dependents; there
are no module-level singletons. Startup order:

1. resolve paths
2. open the store (fatal on failure)
3. migrate the schema (fatal on failure)
4. build repositories and the lifecycle service
5. initialize the service (load or bootstrap the active profile)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .clock import Clock, SystemClock
from .errors import StorageError
from .lifecycle.service import DEFAULT_MAX_WORKERS, ProfileLifecycleService
from .paths_and_safety import LauncherPaths, resolve_launcher_paths
from .profile_store.connection import ProfileStoreConnection
from .profile_store.repository import ProfileRepository
from .profile_store.schema import SchemaManager
from .profile_store.settings import SettingsRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LauncherCore:
    """
    Fully wired engine components.

    Attributes
    ----------
    paths:
        Resolved filesystem layout.
    connection:
        Shared store connection.
    schema:
        Schema manager (already applied).
    profiles:
        Profile repository.
    settings:
        Settings repository.
    service:
        Initialized lifecycle service.
    """

    paths: LauncherPaths
    connection: ProfileStoreConnection
    schema: SchemaManager
    profiles: ProfileRepository
    settings: SettingsRepository
    service: ProfileLifecycleService

    def close(self) -> None:
        """Stop the service, then release the store handle."""
        self.service.shutdown()
        self.connection.close()

    def __enter__(self) -> LauncherCore:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()


def open_launcher(
    data_root: Path | None = None,
    *,
    clock: Clock | None = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> LauncherCore:
    """
    Open the store, migrate it, and return an initialized engine.

    Parameters
    ----------
    data_root:
        Optional override for the launcher data root.
    clock:
        Time source; defaults to :class:`SystemClock`.
    max_workers:
        Lifecycle worker pool size.

    Returns
    -------
    LauncherCore
        Ready-to-use components. Call ``close()`` when done.

    Raises
    ------
    StorageError
        If the store cannot be opened or migrated. Startup must abort.
    """
    clock = clock or SystemClock()
    paths = resolve_launcher_paths(data_root)
    logger.info("Opening launcher store at %s", paths.store_path)

    connection = ProfileStoreConnection(paths.store_path)
    try:
        connection.connect()
        schema = SchemaManager(connection, clock=clock)
        schema.ensure_schema()
    except StorageError:
        logger.critical("Launcher store unavailable; aborting startup", exc_info=True)
        connection.close()
        raise

    profiles = ProfileRepository(connection, clock=clock)
    settings = SettingsRepository(connection, clock=clock)
    service = ProfileLifecycleService(profiles, data_root=paths.data_root, max_workers=max_workers)
    try:
        service.initialize()
    except Exception:
        service.shutdown()
        connection.close()
        raise

    return LauncherCore(
        paths=paths,
        connection=connection,
        schema=schema,
        profiles=profiles,
        settings=settings,
        service=service,
    )
