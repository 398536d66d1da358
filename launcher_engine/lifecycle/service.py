"""
Profile lifecycle service.

This is the application-facing façade over :class:`ProfileRepository`. It adds:

- asynchronous execution: mutating operations run on a small thread pool and
  return a :class:`concurrent.futures.Future`;
- an in-memory mirror of the active profile, refreshed only after a
  successful commit;
- the per-profile directory tree on disk (best-effort, never rolls back a
  committed database change);
- bootstrap of a ``default`` profile when the store is empty.

Threading model
---------------
- The repository serializes individual statements and transactions.
- This service additionally serializes its own mutating operations with one
  lock, so multi-step sequences (count, promote, delete) see a stable store.
- Read-only helpers run on the caller's thread.

Errors
------
Engine errors are re-raised through the future as the same type, tagged with
the operation name and chained to the original. Anything else is wrapped in
:class:`StorageError`.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Callable, TypeVar

from ..data_models import Profile, ProfileKind
from ..errors import (
    ConstraintViolationError,
    LauncherError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from ..paths_and_safety import (
    PROFILE_CONFIG_FILES,
    copy_if_exists,
    ensure_profile_directories,
    profile_game_directory,
    remove_profile_tree,
    validate_profile_name,
)
from ..profile_store.repository import ProfileRepository
from ..profile_store.validation import normalize_profile

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_PROFILE_NAME = "default"
DEFAULT_PROFILE_DISPLAY_NAME = "Default Profile"
DEFAULT_MAX_WORKERS = 2

# Fields edit_profile may change; identity, activity and timestamps are excluded.
EDITABLE_FIELDS = frozenset(
    {
        "name",
        "display_name",
        "profile_kind",
        "minecraft_username",
        "microsoft_account_id",
        "java_path",
        "java_args",
        "min_memory_mb",
        "max_memory_mb",
        "game_directory",
    }
)


class ProfileLifecycleService:
    """
    Async façade for profile management.

    Parameters
    ----------
    repository:
        Profile repository over a migrated store.
    data_root:
        Launcher data root; default game directories are derived under it and
        recursive deletes never leave it.
    max_workers:
        Size of the worker pool.
    """

    def __init__(
        self,
        repository: ProfileRepository,
        *,
        data_root: Path,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        self._repository = repository
        self._data_root = Path(data_root)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="klauncher-profile"
        )
        self._mutation_lock = threading.RLock()
        self._cache_lock = threading.Lock()
        self._active: Profile | None = None
        self._state_lock = threading.Lock()
        self._closed = False

    @property
    def data_root(self) -> Path:
        return self._data_root

    # ------------------------------------------------------------------
    # Synchronous API
    # ------------------------------------------------------------------

    def initialize(self) -> Profile:
        """
        Load the active profile into the cache, bootstrapping if needed.

        - Empty store: create the ``default`` OFFLINE profile, active.
        - Profiles but none active: promote the most recently created one.

        Returns
        -------
        Profile
            The active profile.
        """
        logger.info("Initializing profile lifecycle service")
        active = self._call("initialize", self._initialize)
        logger.info("Active profile: %r (id=%s)", active.name, active.id)
        return active

    def get_active_profile(self) -> Profile | None:
        """Return the cached active profile without touching the store."""
        with self._cache_lock:
            return self._active

    def get_all_profiles(self) -> list[Profile]:
        """Return every profile, newest first."""
        return self._call("get_all_profiles", self._repository.find_all)

    def load_profiles(self) -> Future[list[Profile]]:
        """Like :meth:`get_all_profiles`, but read on a worker thread."""
        return self._submit("get_all_profiles", self._repository.find_all)

    def get_profile(self, profile_id: int) -> Profile | None:
        return self._call("get_profile", self._repository.find_by_id, profile_id)

    def get_profile_by_name(self, name: str) -> Profile | None:
        return self._call("get_profile_by_name", self._repository.find_by_name, name)

    def shutdown(self) -> None:
        """Finish queued operations and stop the worker pool. Idempotent."""
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
        logger.info("Shutting down profile lifecycle service")
        self._executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    # Asynchronous API
    # ------------------------------------------------------------------

    def create_profile(
        self,
        name: str,
        display_name: str,
        kind: ProfileKind | str = ProfileKind.OFFLINE,
    ) -> Future[Profile]:
        """Create a profile and its directory tree."""
        return self._submit("create_profile", self._create_profile, name, display_name, kind)

    def set_active_profile(self, profile_id: int) -> Future[Profile]:
        """Make ``profile_id`` the active profile."""
        return self._submit("set_active_profile", self._set_active_profile, profile_id)

    def update_profile(self, profile: Profile) -> Future[Profile]:
        """Persist changes to an existing profile."""
        return self._submit("update_profile", self._update_profile, profile)

    def edit_profile(self, profile_id: int, **changes: object) -> Future[Profile]:
        """
        Apply field changes to the stored profile ``profile_id``.

        The lookup and the update both run on a worker thread, so a UI thread
        never waits on the store. Only names in :data:`EDITABLE_FIELDS` are
        accepted.
        """
        return self._submit("edit_profile", self._edit_profile, profile_id, changes)

    def delete_profile(self, profile_id: int) -> Future[bool]:
        """
        Delete a profile and, best-effort, its directory tree.

        The future resolves to False when ``profile_id`` does not exist and
        fails with :class:`ConstraintViolationError` for the last profile.
        """
        return self._submit("delete_profile", self._delete_profile, profile_id)

    def duplicate_profile(
        self, profile_id: int, new_name: str, new_display_name: str
    ) -> Future[Profile]:
        """Copy a profile's settings under a new name, with its config files."""
        return self._submit(
            "duplicate_profile", self._duplicate_profile, profile_id, new_name, new_display_name
        )

    # ------------------------------------------------------------------
    # Operation bodies (run on a worker thread)
    # ------------------------------------------------------------------

    def _initialize(self) -> Profile:
        with self._mutation_lock:
            active = self._repository.find_active()
            if active is None:
                if self._repository.count() == 0:
                    active = self._create_default_profile()
                else:
                    newest = self._repository.find_all()[0]
                    logger.warning("No active profile; promoting %r", newest.name)
                    active = self._repository.set_active(_require_id(newest))
            self._set_cache(active)
        return active

    def _create_default_profile(self) -> Profile:
        logger.info("Store is empty; creating default profile")
        profile = Profile(
            name=DEFAULT_PROFILE_NAME,
            display_name=DEFAULT_PROFILE_DISPLAY_NAME,
            profile_kind=ProfileKind.OFFLINE,
            game_directory=str(profile_game_directory(DEFAULT_PROFILE_NAME, self._data_root)),
            is_active=True,
        )
        saved = self._repository.create(profile)
        self._create_directories(saved)
        return saved

    def _create_profile(self, name: str, display_name: str, kind: ProfileKind | str) -> Profile:
        candidate = normalize_profile(
            Profile(name=name, display_name=display_name, profile_kind=_coerce_kind(kind))
        )
        logger.info("Creating profile %r (%s)", candidate.name, candidate.profile_kind.value)
        with self._mutation_lock:
            if self._repository.exists_by_name(candidate.name):
                raise ConstraintViolationError(f"A profile named {candidate.name!r} already exists.")
            game_directory = profile_game_directory(candidate.name, self._data_root)
            saved = self._repository.create(replace(candidate, game_directory=str(game_directory)))
        self._create_directories(saved)
        return saved

    def _set_active_profile(self, profile_id: int) -> Profile:
        with self._mutation_lock:
            if self._repository.find_by_id(profile_id) is None:
                raise NotFoundError(f"No profile with id {profile_id}.")
            active = self._repository.set_active(profile_id)
            self._set_cache(active)
        return active

    def _edit_profile(self, profile_id: int, changes: dict[str, object]) -> Profile:
        unknown = sorted(set(changes) - EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(unknown)}")
        with self._mutation_lock:
            current = self._repository.find_by_id(profile_id)
            if current is None:
                raise NotFoundError(f"No profile with id {profile_id}.")
            return self._update_profile(replace(current, **changes))  # type: ignore[arg-type]

    def _update_profile(self, profile: Profile) -> Profile:
        if profile.id is None:
            raise ValidationError("Cannot update a profile without an id.")
        normalize_profile(profile)
        with self._mutation_lock:
            updated = self._repository.update(profile)
            with self._cache_lock:
                if self._active is not None and self._active.id == updated.id:
                    self._active = updated
        return updated

    def _delete_profile(self, profile_id: int) -> bool:
        with self._mutation_lock:
            profile = self._repository.find_by_id(profile_id)
            if profile is None:
                logger.info("Profile id=%s does not exist; nothing to delete", profile_id)
                return False
            if self._repository.count() <= 1:
                raise ConstraintViolationError("Cannot delete the only remaining profile.")

            if profile.is_active:
                successor = next(p for p in self._repository.find_all() if p.id != profile_id)
                promoted = self._repository.set_active(_require_id(successor))
                self._set_cache(promoted)
                logger.info("Promoted %r before deleting active profile", promoted.name)

            deleted = self._repository.delete(profile_id)
            remaining = self._repository.find_all()

        if deleted:
            self._remove_directories(profile, remaining)
        return deleted

    def _duplicate_profile(self, profile_id: int, new_name: str, new_display_name: str) -> Profile:
        name = validate_profile_name(new_name)
        with self._mutation_lock:
            original = self._repository.find_by_id(profile_id)
            if original is None:
                raise NotFoundError(f"No profile with id {profile_id}.")
            if self._repository.exists_by_name(name):
                raise ConstraintViolationError(f"A profile named {name!r} already exists.")
            logger.info("Duplicating profile %r as %r", original.name, name)
            duplicate = replace(
                original,
                id=None,
                name=name,
                display_name=new_display_name,
                game_directory=str(profile_game_directory(name, self._data_root)),
                is_active=False,
                created_at=None,
                updated_at=None,
            )
            saved = self._repository.create(duplicate)
        self._create_directories(saved)
        self._copy_profile_files(original, saved)
        return saved

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _set_cache(self, profile: Profile | None) -> None:
        with self._cache_lock:
            self._active = profile

    def _create_directories(self, profile: Profile) -> None:
        try:
            game_directory = profile.effective_game_directory(self._data_root)
            ensure_profile_directories(game_directory)
        except (OSError, LauncherError) as exc:
            logger.warning("Could not create directories for profile %r: %s", profile.name, exc)
            return
        logger.debug("Created directories for profile %r at %s", profile.name, game_directory)

    def _remove_directories(self, profile: Profile, remaining: list[Profile]) -> None:
        try:
            game_directory = profile.effective_game_directory(self._data_root).resolve()
            shared_with = [
                p.name
                for p in remaining
                if _overlaps(p.effective_game_directory(self._data_root), game_directory)
            ]
            if shared_with:
                logger.warning(
                    "Keeping %s; still used by profile(s) %s", game_directory, ", ".join(shared_with)
                )
                return
            removed = remove_profile_tree(game_directory, self._data_root)
        except (OSError, LauncherError) as exc:
            logger.warning("Could not remove directories for profile %r: %s", profile.name, exc)
            return
        if removed:
            logger.debug("Removed directories for profile %r", profile.name)

    def _copy_profile_files(self, source: Profile, target: Profile) -> None:
        try:
            source_dir = source.effective_game_directory(self._data_root)
            target_dir = target.effective_game_directory(self._data_root)
        except LauncherError as exc:
            logger.warning("Could not resolve directories for copy: %s", exc)
            return
        if not source_dir.is_dir():
            return
        for file_name in PROFILE_CONFIG_FILES:
            try:
                copy_if_exists(source_dir / file_name, target_dir / file_name)
            except OSError as exc:
                logger.warning(
                    "Could not copy %s from %r to %r: %s", file_name, source.name, target.name, exc
                )

    def _submit(self, operation: str, fn: Callable[..., T], *args: object) -> Future[T]:
        with self._state_lock:
            if not self._closed:
                return self._executor.submit(self._call, operation, fn, *args)
        failed: Future[T] = Future()
        failed.set_exception(StorageError("Profile service is shut down.", operation=operation))
        return failed

    def _call(self, operation: str, fn: Callable[..., T], *args: object) -> T:
        try:
            return fn(*args)
        except LauncherError as exc:
            logger.error("%s failed: %s", operation, exc)
            raise exc.with_operation(operation) from exc
        except Exception as exc:
            logger.exception("%s failed unexpectedly", operation)
            raise StorageError(str(exc), operation=operation) from exc


def _coerce_kind(kind: ProfileKind | str) -> ProfileKind:
    if isinstance(kind, ProfileKind):
        return kind
    raw = str(kind).strip()
    if raw.upper() in ProfileKind.__members__:
        return ProfileKind[raw.upper()]
    try:
        return ProfileKind(raw.lower())
    except ValueError as exc:
        raise ValidationError(f"Unknown profile kind: {kind!r}") from exc


def _overlaps(directory: Path, target: Path) -> bool:
    """Return True if ``directory`` is ``target`` or lies inside it."""
    resolved = directory.resolve()
    return resolved == target or target in resolved.parents


def _require_id(profile: Profile) -> int:
    if profile.id is None:
        raise StorageError(f"Stored profile {profile.name!r} has no id.")
    return profile.id
