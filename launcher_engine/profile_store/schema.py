"""SQLite schema and versioned migrations for the profile store.

Notes
-----
The current version is persisted as the ``schema_version`` row of the
``metadata`` table; a store without that row is version 0.

Each migration is an ordered tuple of statements. Every statement is
idempotent (``IF NOT EXISTS`` / ``INSERT OR IGNORE``) so a step interrupted
before its version bump can safely be re-applied. A step and its version bump
commit together in one transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final

from ..clock import Clock, SystemClock
from ..data_models import datetime_to_iso_utc
from ..errors import LauncherError, SchemaMigrationError
from .connection import ProfileStoreConnection

logger = logging.getLogger(__name__)

SCHEMA_VERSION_KEY: Final[str] = "schema_version"

METADATA_DDL = """
CREATE TABLE IF NOT EXISTS metadata (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
)
"""

SCHEMA_V1: Final[tuple[str, ...]] = (
    """
    CREATE TABLE IF NOT EXISTS user_profiles (
        id                   INTEGER PRIMARY KEY AUTOINCREMENT,
        name                 TEXT NOT NULL UNIQUE,
        display_name         TEXT NOT NULL,
        minecraft_username   TEXT,
        microsoft_account_id TEXT,
        profile_type         TEXT NOT NULL DEFAULT 'offline',
        java_path            TEXT,
        java_args            TEXT,
        min_memory_mb        INTEGER DEFAULT 512,
        max_memory_mb        INTEGER DEFAULT 2048,
        game_directory       TEXT,
        is_active            INTEGER NOT NULL DEFAULT 0,
        created_at           TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at           TEXT DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS launcher_settings (
        id          INTEGER PRIMARY KEY AUTOINCREMENT,
        key         TEXT NOT NULL UNIQUE,
        value       TEXT,
        value_type  TEXT NOT NULL DEFAULT 'string',
        description TEXT,
        created_at  TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at  TEXT DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS minecraft_versions (
        id                TEXT PRIMARY KEY,
        version_type      TEXT NOT NULL,
        release_time      TEXT,
        is_installed      INTEGER DEFAULT 0,
        installation_path TEXT,
        loader_type       TEXT,
        loader_version    TEXT,
        created_at        TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at        TEXT DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS microsoft_accounts (
        id                TEXT PRIMARY KEY,
        username          TEXT NOT NULL,
        access_token      TEXT,
        refresh_token     TEXT,
        token_expires_at  TEXT,
        minecraft_profile TEXT,
        is_active         INTEGER DEFAULT 0,
        created_at        TEXT DEFAULT CURRENT_TIMESTAMP,
        updated_at        TEXT DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS launcher_logs (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        level           TEXT NOT NULL,
        logger_name     TEXT NOT NULL,
        message         TEXT NOT NULL,
        exception_trace TEXT,
        user_profile_id INTEGER,
        created_at      TEXT DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (user_profile_id) REFERENCES user_profiles(id) ON DELETE SET NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_user_profiles_active ON user_profiles(is_active)",
    "CREATE INDEX IF NOT EXISTS idx_launcher_settings_key ON launcher_settings(key)",
    "CREATE INDEX IF NOT EXISTS idx_minecraft_versions_installed ON minecraft_versions(is_installed)",
    "CREATE INDEX IF NOT EXISTS idx_microsoft_accounts_active ON microsoft_accounts(is_active)",
    "CREATE INDEX IF NOT EXISTS idx_launcher_logs_created_at ON launcher_logs(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_launcher_logs_level ON launcher_logs(level)",
    """
    INSERT OR IGNORE INTO launcher_settings (key, value, value_type, description) VALUES
        ('theme', 'dark', 'string', 'Interface theme (dark/light)'),
        ('check_updates', 'true', 'boolean', 'Check for launcher updates automatically'),
        ('close_launcher_on_game_start', 'false', 'boolean', 'Close the launcher when the game starts'),
        ('default_java_path', '', 'string', 'Default Java executable path'),
        ('download_timeout_seconds', '300', 'integer', 'Download timeout in seconds'),
        ('max_concurrent_downloads', '4', 'integer', 'Maximum concurrent downloads'),
        ('launcher_version', '1.0.0', 'string', 'Launcher version')
    """,
)

# Single-active is enforced by the repository transaction; v2 adds a storage
# level guard. Rows that already violate it keep only the most recently
# updated active profile.
SCHEMA_V2: Final[tuple[str, ...]] = (
    """
    UPDATE user_profiles SET is_active = 0
    WHERE is_active = 1
      AND id <> (
        SELECT id FROM user_profiles
        WHERE is_active = 1
        ORDER BY updated_at DESC, id DESC
        LIMIT 1
      )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_user_profiles_single_active
    ON user_profiles(is_active) WHERE is_active = 1
    """,
    """
    INSERT OR IGNORE INTO launcher_settings (key, value, value_type, description) VALUES
        ('background_type', 'cosmic', 'string', 'Launcher background selection')
    """,
)


@dataclass(frozen=True, slots=True)
class Migration:
    """One versioned schema step."""

    version: int
    description: str
    statements: tuple[str, ...]


MIGRATIONS: Final[tuple[Migration, ...]] = (
    Migration(1, "initial schema", SCHEMA_V1),
    Migration(2, "single active profile index and background setting", SCHEMA_V2),
)

CURRENT_SCHEMA_VERSION: Final[int] = MIGRATIONS[-1].version


class SchemaManager:
    """
    Brings the store schema to the target version.

    Parameters
    ----------
    connection:
        Shared connection manager.
    migrations:
        Ordered migration list; defaults to :data:`MIGRATIONS`.
    clock:
        Time source for metadata timestamps.
    """

    def __init__(
        self,
        connection: ProfileStoreConnection,
        migrations: tuple[Migration, ...] = MIGRATIONS,
        clock: Clock | None = None,
    ) -> None:
        versions = [m.version for m in migrations]
        if versions != sorted(set(versions)) or (versions and versions[0] < 1):
            raise ValueError("Migration versions must be unique, ascending and start at 1 or later.")
        self._connection = connection
        self._migrations = migrations
        self._clock = clock or SystemClock()

    @property
    def target_version(self) -> int:
        return self._migrations[-1].version if self._migrations else 0

    def current_version(self) -> int:
        """
        Return the persisted schema version, 0 for an uninitialized store.

        An unparsable stored value is logged and treated as 0; re-applying the
        idempotent migrations repairs it.
        """
        with self._connection.transaction() as conn:
            conn.execute(METADATA_DDL)
            row = conn.execute(
                "SELECT value FROM metadata WHERE key = ?", (SCHEMA_VERSION_KEY,)
            ).fetchone()
        if row is None:
            return 0
        try:
            return int(row["value"])
        except (TypeError, ValueError):
            logger.warning("Unparsable schema_version %r, assuming 0", row["value"])
            return 0

    def ensure_schema(self) -> int:
        """
        Apply all pending migrations.

        Returns
        -------
        int
            The schema version after migration.

        Raises
        ------
        SchemaMigrationError
            If any migration step fails. The failed step is rolled back and the
            caller must abort startup.
        """
        try:
            current = self.current_version()
        except LauncherError as exc:
            logger.critical("Cannot read schema version: %s", exc)
            raise SchemaMigrationError(f"Cannot read schema version: {exc}") from exc

        target = self.target_version
        logger.info("Schema version: current=%d, target=%d", current, target)
        if current >= target:
            return current

        for migration in self._migrations:
            if migration.version <= current:
                continue
            self._apply(migration)
            current = migration.version

        logger.info("Schema migrated to version %d", current)
        return current

    def _apply(self, migration: Migration) -> None:
        logger.info("Applying migration %d: %s", migration.version, migration.description)
        now = datetime_to_iso_utc(self._clock.now())
        try:
            with self._connection.transaction() as conn:
                for statement in migration.statements:
                    conn.execute(statement)
                conn.execute(
                    "INSERT INTO metadata (key, value, created_at, updated_at) VALUES (?, ?, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                    "updated_at = excluded.updated_at",
                    (SCHEMA_VERSION_KEY, str(migration.version), now, now),
                )
        except LauncherError as exc:
            logger.critical("Migration %d failed: %s", migration.version, exc)
            raise SchemaMigrationError(
                f"Migration {migration.version} ({migration.description}) failed: {exc}"
            ) from exc
