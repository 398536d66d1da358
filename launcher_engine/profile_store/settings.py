"""Repository for ``launcher_settings`` key/value rows."""

from __future__ import annotations

import logging

from ..clock import Clock, SystemClock
from ..data_models import (
    BackgroundType,
    LauncherSetting,
    SettingValueType,
    datetime_to_iso_utc,
    encode_setting_value,
)
from ..errors import ValidationError
from .connection import ProfileStoreConnection

logger = logging.getLogger(__name__)

BACKGROUND_TYPE_KEY = "background_type"


class SettingsRepository:
    """
    Typed access to persisted launcher preferences.

    Parameters
    ----------
    connection:
        Shared connection manager. The schema must already be migrated.
    clock:
        Time source for ``updated_at``.
    """

    def __init__(self, connection: ProfileStoreConnection, clock: Clock | None = None) -> None:
        self._connection = connection
        self._clock = clock or SystemClock()

    def get(self, key: str) -> LauncherSetting | None:
        with self._connection.read() as conn:
            row = conn.execute(
                "SELECT key, value, value_type, description FROM launcher_settings WHERE key = ?",
                (key,),
            ).fetchone()
        return LauncherSetting.from_row(dict(row)) if row is not None else None

    def get_value(
        self, key: str, default: str | bool | int | None = None
    ) -> str | bool | int | None:
        """
        Return the decoded value of ``key``.

        Returns ``default`` when the key is absent or its stored value does not
        decode as the declared type (the latter is logged).
        """
        setting = self.get(key)
        if setting is None or setting.value is None:
            return default
        try:
            return setting.typed_value
        except ValueError:
            logger.warning("Setting %r has undecodable value %r", key, setting.value)
            return default

    def all(self) -> list[LauncherSetting]:
        with self._connection.read() as conn:
            rows = conn.execute(
                "SELECT key, value, value_type, description FROM launcher_settings ORDER BY key"
            ).fetchall()
        return [LauncherSetting.from_row(dict(r)) for r in rows]

    def set(
        self,
        key: str,
        value: str | bool | int,
        *,
        value_type: SettingValueType | None = None,
        description: str | None = None,
    ) -> LauncherSetting:
        """
        Insert or update a setting.

        Parameters
        ----------
        key:
            Setting key; must be non-blank.
        value:
            New value, encoded according to ``value_type``.
        value_type:
            Declared type. Defaults to the existing row's type, or STRING for a
            new key.
        description:
            Optional description; an existing description is kept when None.

        Raises
        ------
        ValidationError
            If the key is blank or the value does not match the type.
        """
        cleaned_key = (key or "").strip()
        if not cleaned_key:
            raise ValidationError("Setting key must not be empty.")

        stamp = datetime_to_iso_utc(self._clock.now())
        with self._connection.transaction() as conn:
            row = conn.execute(
                "SELECT value_type FROM launcher_settings WHERE key = ?", (cleaned_key,)
            ).fetchone()
            if value_type is None:
                value_type = (
                    SettingValueType(row["value_type"])
                    if row is not None and row["value_type"] in {t.value for t in SettingValueType}
                    else SettingValueType.STRING
                )
            try:
                encoded = encode_setting_value(value, value_type)
            except ValueError as exc:
                raise ValidationError(
                    f"Invalid value for setting {cleaned_key!r} ({value_type.value}): {value!r}"
                ) from exc

            conn.execute(
                "INSERT INTO launcher_settings (key, value, value_type, description, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                "value_type = excluded.value_type, "
                "description = COALESCE(excluded.description, launcher_settings.description), "
                "updated_at = excluded.updated_at",
                (cleaned_key, encoded, value_type.value, description, stamp, stamp),
            )
            stored = conn.execute(
                "SELECT key, value, value_type, description FROM launcher_settings WHERE key = ?",
                (cleaned_key,),
            ).fetchone()

        logger.info("Setting %r updated", cleaned_key)
        return LauncherSetting.from_row(dict(stored))

    def get_background_type(self) -> BackgroundType:
        value = self.get_value(BACKGROUND_TYPE_KEY)
        return BackgroundType.from_value(value if isinstance(value, str) else None)

    def set_background_type(self, background: BackgroundType) -> BackgroundType:
        self.set(BACKGROUND_TYPE_KEY, background.value, value_type=SettingValueType.STRING)
        return background
