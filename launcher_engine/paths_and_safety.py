"""
Filesystem path policy and safety gates.

This module is the single choke point for deciding where the launcher reads and
writes data:

- Runtime data lives under a launcher "data root" (default: ``~/.klauncher``).
- The profile store database is a single file directly under the data root.
- Each profile owns a game directory tree; by default it lives under
  ``<data_root>/profiles/<name>``.
- Recursive deletion is only ever performed inside the data root.

Directory helpers here return or raise; best-effort policy (log and continue)
belongs to the lifecycle service, not to this module.
"""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from .errors import ValidationError

DATA_ROOT_ENV_VAR = "KLAUNCHER_DATA_ROOT"
STORE_FILE_NAME = "klauncher.db"
PROFILE_SUBDIRECTORIES: tuple[str, ...] = ("saves", "screenshots", "resourcepacks", "config")
PROFILE_CONFIG_FILES: tuple[str, ...] = ("options.txt", "servers.dat")

_INVALID_NAME_CHARS = r'\/:*?"<>|'


class SafetyViolationError(ValidationError):
    """Raised when a name or path is blocked by safety policy."""


@dataclass(frozen=True, slots=True)
class LauncherPaths:
    """
    Concrete resolved paths for a launcher installation.

    Attributes
    ----------
    data_root:
        Root directory for all launcher runtime data.
    store_path:
        SQLite database file.
    profiles_root:
        Parent of default per-profile game directories.
    logs_root:
        Rotating log files.
    """

    data_root: Path
    store_path: Path
    profiles_root: Path
    logs_root: Path


def default_data_root() -> Path:
    """
    Resolve the default launcher data root.

    Preference order:
    1) ``$KLAUNCHER_DATA_ROOT`` if set and non-blank
    2) ``~/.klauncher``
    """
    configured = os.environ.get(DATA_ROOT_ENV_VAR, "").strip()
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".klauncher"


def resolve_launcher_paths(data_root: Path | None = None) -> LauncherPaths:
    """
    Resolve and return all filesystem paths for the launcher.

    Parameters
    ----------
    data_root:
        Optional override for the data root.

    Returns
    -------
    LauncherPaths
        Resolved paths. Nothing is created on disk.
    """
    root = (data_root or default_data_root()).expanduser().resolve()
    return LauncherPaths(
        data_root=root,
        store_path=root / STORE_FILE_NAME,
        profiles_root=root / "profiles",
        logs_root=root / "logs",
    )


def validate_profile_name(name: str) -> str:
    """
    Validate that a profile name is usable as a single folder name.

    Parameters
    ----------
    name:
        Candidate profile name.

    Returns
    -------
    str
        The name, stripped of surrounding whitespace.

    Raises
    ------
    SafetyViolationError
        If the name is empty, ``.``/``..``, or contains path separators or
        characters that are invalid in folder names.
    """
    cleaned = (name or "").strip()
    if not cleaned:
        raise SafetyViolationError("Profile name must not be empty.")
    if cleaned in {".", ".."}:
        raise SafetyViolationError("Profile name must not be '.' or '..'.")
    if any(ch in cleaned for ch in _INVALID_NAME_CHARS):
        raise SafetyViolationError(f"Profile name contains invalid characters: {cleaned!r}")
    return cleaned


def profile_game_directory(name: str, data_root: Path) -> Path:
    """
    Derive the default game directory for a profile name.

    The derivation is deterministic: the same name always maps to
    ``<data_root>/profiles/<name>``.
    """
    paths = resolve_launcher_paths(data_root)
    candidate = (paths.profiles_root / validate_profile_name(name)).resolve()
    _assert_within(paths.profiles_root, candidate, purpose="profile game directory")
    return candidate


def ensure_profile_directories(game_directory: Path) -> None:
    """
    Create a profile's directory tree if it does not already exist.

    Parameters
    ----------
    game_directory:
        Root of the profile tree.

    Raises
    ------
    OSError
        If any directory cannot be created.
    """
    game_directory.mkdir(parents=True, exist_ok=True)
    for sub in PROFILE_SUBDIRECTORIES:
        (game_directory / sub).mkdir(parents=True, exist_ok=True)


def remove_profile_tree(game_directory: Path, data_root: Path) -> bool:
    """
    Recursively delete a profile directory tree that lives inside the data root.

    Parameters
    ----------
    game_directory:
        Directory to remove.
    data_root:
        Launcher data root; deletion outside it is refused.

    Returns
    -------
    bool
        True if a directory was removed, False if it did not exist.

    Raises
    ------
    SafetyViolationError
        If the directory lies outside the data root, or is (or contains) the
        data root, the profiles root, the logs root or the store file.
    OSError
        If removal fails.
    """
    paths = resolve_launcher_paths(data_root)
    target = game_directory.expanduser().resolve()
    if target == paths.data_root:
        raise SafetyViolationError(f"Refusing to delete the data root: {paths.data_root}")
    _assert_within(paths.data_root, target, purpose="profile tree deletion")
    for protected in (paths.profiles_root, paths.logs_root, paths.store_path):
        if protected == target or target in protected.parents:
            raise SafetyViolationError(f"Refusing to delete {target}: it holds {protected}")
    if not target.exists():
        return False
    shutil.rmtree(target)
    return True


def copy_if_exists(source: Path, destination: Path) -> bool:
    """
    Copy a single file if it exists, creating the destination parent.

    Returns
    -------
    bool
        True if the file was copied.
    """
    if not source.is_file():
        return False
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, destination)
    return True


def _assert_within(base: Path, candidate: Path, purpose: str) -> None:
    """Ensure candidate is within base after resolution."""
    try:
        candidate.resolve().relative_to(base.resolve())
    except ValueError as exc:
        raise SafetyViolationError(
            f"Unsafe path for {purpose}: {candidate} is not within {base}"
        ) from exc
