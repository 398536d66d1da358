"""Data models for the launcher engine.

This module defines the typed representation of persisted launcher entities
(profiles and settings) together with the pure functions that map them to and
from database rows.

The mapping functions accept any ``Mapping[str, Any]`` so they can be tested
without a sqlite3 connection.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Self

from .paths_and_safety import profile_game_directory

ISO_8601_UTC_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

DEFAULT_MIN_MEMORY_MB = 512
DEFAULT_MAX_MEMORY_MB = 2048


class ProfileKind(str, Enum):
    """How a profile authenticates. Values are the persisted strings."""

    OFFLINE = "offline"
    MICROSOFT_ACCOUNT = "microsoft"
    MOJANG_ACCOUNT = "mojang"

    @classmethod
    def from_value(cls, value: str | None) -> ProfileKind:
        """Parse a persisted value, falling back to OFFLINE for unknown input."""
        for kind in cls:
            if kind.value == value:
                return kind
        return cls.OFFLINE


class BackgroundType(str, Enum):
    """Launcher background selection, persisted in its own settings row."""

    COSMIC = "cosmic"
    MATRIX = "matrix"
    CYBERPUNK = "cyberpunk"
    FOREST = "forest"
    OCEAN = "ocean"
    GRADIENT = "gradient"
    PARTICLES = "particles"
    CUSTOM = "custom"

    @classmethod
    def from_value(cls, value: str | None) -> BackgroundType:
        """Parse a persisted value, falling back to COSMIC for unknown input."""
        for background in cls:
            if background.value == value:
                return background
        return cls.COSMIC


class SettingValueType(str, Enum):
    """Declared type of a launcher setting value."""

    STRING = "string"
    BOOLEAN = "boolean"
    INTEGER = "integer"


def datetime_to_iso_utc(dt: datetime) -> str:
    """Serialize an aware datetime as a UTC ISO-8601 string with microseconds.

    Raises
    ------
    ValueError
        If `dt` is naive (has no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt.astimezone(timezone.utc).strftime(ISO_8601_UTC_FORMAT)


def datetime_from_iso_utc(value: str) -> datetime:
    """Parse a stored timestamp as an aware UTC datetime.

    Accepts the canonical ``...%fZ`` form as well as SQLite's
    ``CURRENT_TIMESTAMP`` form (``YYYY-MM-DD HH:MM:SS``), which is assumed UTC.
    """
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class Profile:
    """
    A launcher user profile.

    Attributes
    ----------
    id:
        Store-assigned identifier; None until persisted.
    name:
        Unique key chosen by the user; also the default game folder name.
    display_name:
        Presentation label, independent of ``name``.
    minecraft_username, microsoft_account_id:
        Optional external-identity linkage.
    profile_kind:
        Authentication kind.
    java_path, java_args:
        Optional runtime overrides, stored verbatim.
    min_memory_mb, max_memory_mb:
        Heap bounds; ``0 < min < max``.
    game_directory:
        Explicit game directory; when blank it is derived from ``name``.
    is_active:
        Whether this is the selected profile. At most one row is active.
    created_at, updated_at:
        Aware UTC timestamps assigned by the repository.
    """

    name: str
    display_name: str
    profile_kind: ProfileKind = ProfileKind.OFFLINE
    minecraft_username: str | None = None
    microsoft_account_id: str | None = None
    java_path: str | None = None
    java_args: str | None = None
    min_memory_mb: int = DEFAULT_MIN_MEMORY_MB
    max_memory_mb: int = DEFAULT_MAX_MEMORY_MB
    game_directory: str | None = None
    is_active: bool = False
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_online_profile(self) -> bool:
        return self.profile_kind in (ProfileKind.MICROSOFT_ACCOUNT, ProfileKind.MOJANG_ACCOUNT)

    @property
    def has_minecraft_account(self) -> bool:
        return bool(self.minecraft_username and self.minecraft_username.strip())

    def effective_game_directory(self, data_root: Path) -> Path:
        """
        Return the game directory to use on disk.

        Parameters
        ----------
        data_root:
            Launcher data root used for derivation when ``game_directory`` is blank.
        """
        if self.game_directory and self.game_directory.strip():
            return Path(self.game_directory)
        return profile_game_directory(self.name, data_root)


# Column order shared by INSERT and UPDATE statements in the repository.
PROFILE_WRITE_COLUMNS: tuple[str, ...] = (
    "name",
    "display_name",
    "minecraft_username",
    "microsoft_account_id",
    "profile_type",
    "java_path",
    "java_args",
    "min_memory_mb",
    "max_memory_mb",
    "game_directory",
)


def profile_to_params(profile: Profile) -> dict[str, Any]:
    """Map the user-writable fields of a Profile to column values."""
    return {
        "name": profile.name,
        "display_name": profile.display_name,
        "minecraft_username": profile.minecraft_username,
        "microsoft_account_id": profile.microsoft_account_id,
        "profile_type": profile.profile_kind.value,
        "java_path": profile.java_path,
        "java_args": profile.java_args,
        "min_memory_mb": int(profile.min_memory_mb),
        "max_memory_mb": int(profile.max_memory_mb),
        "game_directory": profile.game_directory,
    }


def profile_from_row(row: Mapping[str, Any]) -> Profile:
    """
    Map a ``user_profiles`` row to a Profile.

    Parameters
    ----------
    row:
        Any mapping keyed by column name (``sqlite3.Row`` works via ``dict(row)``).

    Returns
    -------
    Profile
        The mapped entity.
    """
    created_raw = row.get("created_at")
    updated_raw = row.get("updated_at")
    return Profile(
        id=int(row["id"]) if row.get("id") is not None else None,
        name=str(row["name"]),
        display_name=str(row["display_name"]),
        minecraft_username=_opt_str(row.get("minecraft_username")),
        microsoft_account_id=_opt_str(row.get("microsoft_account_id")),
        profile_kind=ProfileKind.from_value(row.get("profile_type")),
        java_path=_opt_str(row.get("java_path")),
        java_args=_opt_str(row.get("java_args")),
        min_memory_mb=int(row.get("min_memory_mb") or DEFAULT_MIN_MEMORY_MB),
        max_memory_mb=int(row.get("max_memory_mb") or DEFAULT_MAX_MEMORY_MB),
        game_directory=_opt_str(row.get("game_directory")),
        is_active=bool(row.get("is_active")),
        created_at=datetime_from_iso_utc(str(created_raw)) if created_raw else None,
        updated_at=datetime_from_iso_utc(str(updated_raw)) if updated_raw else None,
    )


def _opt_str(value: Any) -> str | None:
    return None if value is None else str(value)


@dataclass(frozen=True, slots=True)
class LauncherSetting:
    """A row of the ``launcher_settings`` table."""

    key: str
    value: str | None
    value_type: SettingValueType = SettingValueType.STRING
    description: str | None = None

    @property
    def typed_value(self) -> str | bool | int | None:
        """Decode ``value`` according to ``value_type``."""
        return decode_setting_value(self.value, self.value_type)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> Self:
        """Construct a :class:`LauncherSetting` from a row mapping."""
        raw_type = row.get("value_type") or SettingValueType.STRING.value
        try:
            value_type = SettingValueType(raw_type)
        except ValueError:
            value_type = SettingValueType.STRING
        return cls(
            key=str(row["key"]),
            value=_opt_str(row.get("value")),
            value_type=value_type,
            description=_opt_str(row.get("description")),
        )


def decode_setting_value(value: str | None, value_type: SettingValueType) -> str | bool | int | None:
    """
    Decode a stored setting string.

    Raises
    ------
    ValueError
        If the stored string does not match the declared type.
    """
    if value is None:
        return None
    if value_type is SettingValueType.BOOLEAN:
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes"}:
            return True
        if lowered in {"false", "0", "no", ""}:
            return False
        raise ValueError(f"Not a boolean setting value: {value!r}")
    if value_type is SettingValueType.INTEGER:
        return int(value.strip())
    return value


def encode_setting_value(value: str | bool | int, value_type: SettingValueType) -> str:
    """
    Encode a Python value for storage under the declared type.

    Raises
    ------
    ValueError
        If the value cannot be represented as ``value_type``.
    """
    if value_type is SettingValueType.BOOLEAN:
        if isinstance(value, bool):
            return "true" if value else "false"
        decoded = decode_setting_value(str(value), value_type)
        return "true" if decoded else "false"
    if value_type is SettingValueType.INTEGER:
        if isinstance(value, bool):
            raise ValueError("Boolean is not a valid integer setting value.")
        return str(int(value))
    return str(value)
