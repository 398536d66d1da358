"""Qt adapter for the engine ProfileLifecycleService.

The engine owns persistence and its own worker pool. The GUI talks to this
adapter through signals so it never blocks the UI thread and never sees SQLite
or engine internals.

Threading model
--------------
- Each request submits a lifecycle operation and returns immediately.
- When the operation's future completes (on an engine worker thread), the
  adapter emits a result signal. Qt delivers it to receivers living on the GUI
  thread as a queued call.
- Engine errors become ``error(operation, message)``; unknown ids become
  ``not_found(operation, profile_id)``.
"""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable

from PySide6.QtCore import QObject, Signal, Slot

from launcher_engine.data_models import Profile, ProfileKind
from launcher_engine.errors import NotFoundError
from launcher_engine.lifecycle.service import ProfileLifecycleService


@dataclass(frozen=True, slots=True)
class GuiProfile:
    """GUI-friendly representation of a profile."""

    profile_id: int
    name: str
    display_name: str
    kind: str
    min_memory_mb: int
    max_memory_mb: int
    is_active: bool

    @staticmethod
    def from_profile(profile: Profile) -> "GuiProfile":
        return GuiProfile(
            profile_id=int(profile.id or 0),
            name=profile.name,
            display_name=profile.display_name,
            kind=profile.profile_kind.value,
            min_memory_mb=profile.min_memory_mb,
            max_memory_mb=profile.max_memory_mb,
            is_active=profile.is_active,
        )


class ProfileServiceAdapter(QObject):
    """Qt adapter that forwards lifecycle futures onto signals."""

    profiles_loaded = Signal(object)  # list[GuiProfile]
    profile_created = Signal(object)  # GuiProfile
    profile_updated = Signal(object)  # GuiProfile
    profile_duplicated = Signal(object)  # GuiProfile
    active_profile_changed = Signal(object)  # GuiProfile
    profile_deleted = Signal(int, bool)  # profile_id, deleted
    not_found = Signal(str, int)  # operation, profile_id
    error = Signal(str, str)  # operation, message

    def __init__(self, service: ProfileLifecycleService) -> None:
        super().__init__()
        self._service = service

    def active_profile(self) -> GuiProfile | None:
        """Return the cached active profile without blocking."""
        active = self._service.get_active_profile()
        return GuiProfile.from_profile(active) if active is not None else None

    @Slot()
    def request_profiles(self) -> None:
        """List profiles and emit ``profiles_loaded``."""
        self._forward(
            self._service.load_profiles(),
            "get_all_profiles",
            lambda profiles: self.profiles_loaded.emit([GuiProfile.from_profile(p) for p in profiles]),
        )

    @Slot(str, str, str)
    def request_create(self, name: str, display_name: str, kind: str) -> None:
        """Create a profile and emit ``profile_created``."""
        future = self._service.create_profile(name, display_name, kind or ProfileKind.OFFLINE)
        self._forward(
            future,
            "create_profile",
            lambda p: self.profile_created.emit(GuiProfile.from_profile(p)),
        )

    @Slot(int)
    def request_activate(self, profile_id: int) -> None:
        """Make profile_id active and emit ``active_profile_changed``."""
        future = self._service.set_active_profile(profile_id)
        self._forward(
            future,
            "set_active_profile",
            lambda p: self.active_profile_changed.emit(GuiProfile.from_profile(p)),
            profile_id=profile_id,
        )

    @Slot(int, str, str, int, int)
    def request_update(
        self,
        profile_id: int,
        name: str,
        display_name: str,
        min_memory_mb: int,
        max_memory_mb: int,
    ) -> None:
        """Apply edits from the profile editor and emit ``profile_updated``."""
        future = self._service.edit_profile(
            profile_id,
            name=name,
            display_name=display_name,
            min_memory_mb=min_memory_mb,
            max_memory_mb=max_memory_mb,
        )
        self._forward(
            future,
            "update_profile",
            lambda p: self.profile_updated.emit(GuiProfile.from_profile(p)),
            profile_id=profile_id,
        )

    @Slot(int)
    def request_delete(self, profile_id: int) -> None:
        """Delete profile_id and emit ``profile_deleted``."""
        future = self._service.delete_profile(profile_id)
        self._forward(
            future,
            "delete_profile",
            lambda deleted: self.profile_deleted.emit(profile_id, bool(deleted)),
            profile_id=profile_id,
        )

    @Slot(int, str, str)
    def request_duplicate(self, profile_id: int, new_name: str, new_display_name: str) -> None:
        """Duplicate profile_id and emit ``profile_duplicated``."""
        future = self._service.duplicate_profile(profile_id, new_name, new_display_name)
        self._forward(
            future,
            "duplicate_profile",
            lambda p: self.profile_duplicated.emit(GuiProfile.from_profile(p)),
            profile_id=profile_id,
        )

    def _forward(
        self,
        future: Future,
        operation: str,
        on_success: Callable[[object], None],
        *,
        profile_id: int | None = None,
    ) -> None:
        def _done(done: Future) -> None:
            exc = done.exception()
            if exc is None:
                on_success(done.result())
            elif isinstance(exc, NotFoundError) and profile_id is not None:
                self.not_found.emit(operation, profile_id)
            else:
                self.error.emit(operation, str(exc))

        future.add_done_callback(_done)
