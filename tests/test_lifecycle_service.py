from __future__ import annotations

import threading
from concurrent.futures import Future
from dataclasses import replace
from pathlib import Path

import pytest

from launcher_engine.data_models import Profile, ProfileKind
from launcher_engine.errors import (
    ConstraintViolationError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from launcher_engine.lifecycle.service import (
    DEFAULT_PROFILE_DISPLAY_NAME,
    DEFAULT_PROFILE_NAME,
    ProfileLifecycleService,
)
from launcher_engine.profile_store.repository import ProfileRepository

TIMEOUT = 10


def test_initialize_creates_default_profile(service: ProfileLifecycleService, tmp_path: Path) -> None:
    active = service.initialize()

    assert active.name == DEFAULT_PROFILE_NAME
    assert active.display_name == DEFAULT_PROFILE_DISPLAY_NAME
    assert active.profile_kind is ProfileKind.OFFLINE
    assert active.is_active
    assert service.get_active_profile() == active
    assert [p.name for p in service.get_all_profiles()] == [DEFAULT_PROFILE_NAME]
    assert (tmp_path / "profiles" / DEFAULT_PROFILE_NAME / "saves").is_dir()


def test_initialize_is_idempotent(service: ProfileLifecycleService) -> None:
    first = service.initialize()
    second = service.initialize()

    assert first.id == second.id
    assert len(service.get_all_profiles()) == 1


def test_initialize_promotes_newest_when_none_active(
    repository: ProfileRepository, service: ProfileLifecycleService
) -> None:
    repository.create(Profile(name="older", display_name="Older"))
    repository.create(Profile(name="newer", display_name="Newer"))

    active = service.initialize()

    assert active.name == "newer"
    assert repository.count_active() == 1


def test_create_profile_assigns_directory_and_stays_inactive(
    service: ProfileLifecycleService, tmp_path: Path
) -> None:
    service.initialize()

    alice = service.create_profile("alice", "Alice", "MICROSOFT_ACCOUNT").result(TIMEOUT)

    assert alice.id is not None
    assert alice.profile_kind is ProfileKind.MICROSOFT_ACCOUNT
    assert alice.is_active is False
    assert alice.game_directory == str((tmp_path / "profiles" / "alice").resolve())
    assert (tmp_path / "profiles" / "alice" / "config").is_dir()
    assert service.get_active_profile().name == DEFAULT_PROFILE_NAME  # type: ignore[union-attr]


def test_create_profile_twice_fails_with_operation_name(service: ProfileLifecycleService) -> None:
    service.initialize()
    service.create_profile("alice", "Alice").result(TIMEOUT)

    with pytest.raises(ConstraintViolationError) as excinfo:
        service.create_profile("alice", "Alice again").result(TIMEOUT)

    assert excinfo.value.operation == "create_profile"
    assert isinstance(excinfo.value.__cause__, ConstraintViolationError)
    assert str(excinfo.value).startswith("create_profile: ")
    assert len(service.get_all_profiles()) == 2


def test_create_profile_rejects_unknown_kind(service: ProfileLifecycleService) -> None:
    service.initialize()

    with pytest.raises(ValidationError):
        service.create_profile("alice", "Alice", "steam").result(TIMEOUT)


def test_create_profile_rejects_unsafe_name(service: ProfileLifecycleService) -> None:
    service.initialize()

    with pytest.raises(ValidationError):
        service.create_profile("../escape", "Escape").result(TIMEOUT)
    assert len(service.get_all_profiles()) == 1


def test_set_active_profile_switches_and_updates_cache(
    service: ProfileLifecycleService, repository: ProfileRepository
) -> None:
    default = service.initialize()
    alice = service.create_profile("alice", "Alice").result(TIMEOUT)

    active = service.set_active_profile(alice.id or 0).result(TIMEOUT)

    assert active.id == alice.id
    assert service.get_active_profile() == active
    assert repository.find_by_id(default.id or 0).is_active is False  # type: ignore[union-attr]
    assert repository.count_active() == 1


def test_set_active_profile_missing_id(service: ProfileLifecycleService) -> None:
    default = service.initialize()

    with pytest.raises(NotFoundError) as excinfo:
        service.set_active_profile(999).result(TIMEOUT)

    assert excinfo.value.operation == "set_active_profile"
    assert service.get_active_profile() == default


def test_update_profile_refreshes_cached_active(service: ProfileLifecycleService) -> None:
    default = service.initialize()

    updated = service.update_profile(replace(default, display_name="Main", max_memory_mb=4096)).result(
        TIMEOUT
    )

    assert updated.display_name == "Main"
    assert service.get_active_profile() == updated


def test_update_profile_invalid_memory(service: ProfileLifecycleService) -> None:
    default = service.initialize()

    with pytest.raises(ValidationError):
        service.update_profile(replace(default, min_memory_mb=4096, max_memory_mb=1024)).result(TIMEOUT)
    assert service.get_profile(default.id or 0) == default


def test_delete_last_profile_is_refused(service: ProfileLifecycleService, tmp_path: Path) -> None:
    default = service.initialize()

    with pytest.raises(ConstraintViolationError):
        service.delete_profile(default.id or 0).result(TIMEOUT)

    assert service.get_profile(default.id or 0) is not None
    assert (tmp_path / "profiles" / DEFAULT_PROFILE_NAME).is_dir()


def test_delete_missing_profile_returns_false(service: ProfileLifecycleService) -> None:
    service.initialize()
    assert service.delete_profile(999).result(TIMEOUT) is False


def test_delete_inactive_profile_removes_directory(
    service: ProfileLifecycleService, tmp_path: Path
) -> None:
    default = service.initialize()
    alice = service.create_profile("alice", "Alice").result(TIMEOUT)
    (tmp_path / "profiles" / "alice" / "options.txt").write_text("x", encoding="utf-8")

    assert service.delete_profile(alice.id or 0).result(TIMEOUT) is True

    assert service.get_profile(alice.id or 0) is None
    assert not (tmp_path / "profiles" / "alice").exists()
    assert service.get_active_profile() == default


def test_delete_active_profile_promotes_newest_remaining(service: ProfileLifecycleService) -> None:
    default = service.initialize()
    service.create_profile("alice", "Alice").result(TIMEOUT)
    bob = service.create_profile("bob", "Bob").result(TIMEOUT)

    assert service.delete_profile(default.id or 0).result(TIMEOUT) is True

    active = service.get_active_profile()
    assert active is not None and active.id == bob.id
    assert service.get_profile(bob.id or 0).is_active  # type: ignore[union-attr]
    assert sum(p.is_active for p in service.get_all_profiles()) == 1


def test_delete_succeeds_when_directory_removal_fails(
    service: ProfileLifecycleService, monkeypatch: pytest.MonkeyPatch
) -> None:
    import launcher_engine.lifecycle.service as service_module

    service.initialize()
    alice = service.create_profile("alice", "Alice").result(TIMEOUT)

    def _boom(*_args: object) -> bool:
        raise OSError("directory is busy")

    monkeypatch.setattr(service_module, "remove_profile_tree", _boom)

    assert service.delete_profile(alice.id or 0).result(TIMEOUT) is True
    assert service.get_profile(alice.id or 0) is None


def test_create_succeeds_when_directory_creation_fails(
    service: ProfileLifecycleService, tmp_path: Path
) -> None:
    service.initialize()
    (tmp_path / "profiles" / "alice").write_text("not a directory", encoding="utf-8")

    alice = service.create_profile("alice", "Alice").result(TIMEOUT)

    assert service.get_profile(alice.id or 0) == alice


def test_duplicate_profile_copies_settings_and_files(
    service: ProfileLifecycleService, tmp_path: Path
) -> None:
    default = service.initialize()
    source = service.update_profile(
        replace(default, java_args="-XX:+UseG1GC", min_memory_mb=1024, max_memory_mb=3072)
    ).result(TIMEOUT)
    source_dir = tmp_path / "profiles" / DEFAULT_PROFILE_NAME
    (source_dir / "options.txt").write_text("fov:90\n", encoding="utf-8")
    (source_dir / "saves" / "world.dat").write_bytes(b"\x01")

    copy = service.duplicate_profile(default.id or 0, "copy", "Copy").result(TIMEOUT)

    assert copy.id != source.id
    assert copy.is_active is False
    assert (copy.java_args, copy.min_memory_mb, copy.max_memory_mb) == ("-XX:+UseG1GC", 1024, 3072)
    copy_dir = tmp_path / "profiles" / "copy"
    assert (copy_dir / "options.txt").read_text(encoding="utf-8") == "fov:90\n"
    assert not (copy_dir / "servers.dat").exists()
    assert not (copy_dir / "saves" / "world.dat").exists()
    assert service.get_active_profile().id == default.id  # type: ignore[union-attr]


def test_duplicate_profile_errors(service: ProfileLifecycleService) -> None:
    default = service.initialize()

    with pytest.raises(NotFoundError):
        service.duplicate_profile(999, "copy", "Copy").result(TIMEOUT)
    with pytest.raises(ConstraintViolationError):
        service.duplicate_profile(default.id or 0, DEFAULT_PROFILE_NAME, "Again").result(TIMEOUT)


def test_operations_after_shutdown_fail(service: ProfileLifecycleService) -> None:
    service.initialize()
    service.shutdown()
    service.shutdown()

    future = service.create_profile("late", "Late")

    error = future.exception(TIMEOUT)
    assert isinstance(error, StorageError)
    assert error.operation == "create_profile"


def test_delete_keeps_directories_holding_other_profiles(
    service: ProfileLifecycleService, tmp_path: Path
) -> None:
    """A profile pointed at a parent folder must not take sibling trees with it."""
    service.initialize()
    alice = service.create_profile("alice", "Alice").result(TIMEOUT)
    bob = service.create_profile("bob", "Bob").result(TIMEOUT)
    world = tmp_path / "profiles" / "bob" / "saves" / "world.dat"
    world.write_bytes(b"\x01")
    service.update_profile(replace(alice, game_directory=str(tmp_path / "profiles"))).result(TIMEOUT)

    assert service.delete_profile(alice.id or 0).result(TIMEOUT) is True

    assert service.get_profile(alice.id or 0) is None
    assert world.read_bytes() == b"\x01"
    assert (tmp_path / "profiles" / DEFAULT_PROFILE_NAME / "saves").is_dir()
    assert service.get_profile(bob.id or 0) is not None


def test_delete_refuses_profile_pointed_at_logs_root(
    service: ProfileLifecycleService, tmp_path: Path
) -> None:
    service.initialize()
    alice = service.create_profile("alice", "Alice").result(TIMEOUT)
    log_file = tmp_path / "logs" / "klauncher.log"
    log_file.parent.mkdir()
    log_file.write_text("keep me\n", encoding="utf-8")
    service.update_profile(replace(alice, game_directory=str(tmp_path / "logs"))).result(TIMEOUT)

    assert service.delete_profile(alice.id or 0).result(TIMEOUT) is True

    assert log_file.read_text(encoding="utf-8") == "keep me\n"


def test_edit_profile_merges_changes_on_worker(service: ProfileLifecycleService) -> None:
    default = service.initialize()

    edited = service.edit_profile(default.id or 0, display_name="Main", max_memory_mb=4096).result(TIMEOUT)

    assert edited.display_name == "Main"
    assert edited.max_memory_mb == 4096
    assert edited.java_path == default.java_path
    assert service.get_active_profile() == edited


def test_edit_profile_errors(service: ProfileLifecycleService) -> None:
    default = service.initialize()

    with pytest.raises(NotFoundError) as excinfo:
        service.edit_profile(999, display_name="Nobody").result(TIMEOUT)
    assert excinfo.value.operation == "edit_profile"
    with pytest.raises(ValidationError):
        service.edit_profile(default.id or 0, is_active=False).result(TIMEOUT)
    with pytest.raises(ValidationError):
        service.edit_profile(default.id or 0, min_memory_mb=0).result(TIMEOUT)


def test_load_profiles_resolves_on_worker(service: ProfileLifecycleService) -> None:
    service.initialize()
    assert [p.name for p in service.load_profiles().result(TIMEOUT)] == [DEFAULT_PROFILE_NAME]


def test_submissions_racing_shutdown_never_raise(service: ProfileLifecycleService) -> None:
    default = service.initialize()
    futures: list[Future[Profile]] = []
    raised: list[BaseException] = []
    start = threading.Barrier(5)

    def _submitter() -> None:
        start.wait()
        for _ in range(200):
            try:
                futures.append(service.set_active_profile(default.id or 0))
            except BaseException as exc:  # pragma: no cover - surfaced by the assertion below
                raised.append(exc)

    threads = [threading.Thread(target=_submitter) for _ in range(4)]
    for t in threads:
        t.start()
    start.wait()
    service.shutdown()
    for t in threads:
        t.join(timeout=30)

    assert not raised
    for future in futures:
        error = future.exception(TIMEOUT)
        assert error is None or (isinstance(error, StorageError) and error.operation == "set_active_profile")
