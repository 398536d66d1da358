from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from launcher_engine.clock import FixedClock
from launcher_engine.data_models import Profile, ProfileKind
from launcher_engine.errors import ConstraintViolationError, NotFoundError, ValidationError
from launcher_engine.profile_store.connection import ProfileStoreConnection
from launcher_engine.profile_store.repository import ProfileRepository


def _profile(name: str, /, **overrides: object) -> Profile:
    fields: dict[str, object] = {"name": name, "display_name": name.title()}
    fields.update(overrides)
    return Profile(**fields)  # type: ignore[arg-type]


def test_create_then_find_roundtrip(connection: ProfileStoreConnection) -> None:
    """Every field written by create should come back unchanged."""
    repo = ProfileRepository(connection, clock=FixedClock(datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)))
    created = repo.create(
        _profile(
            "alice",
            profile_kind=ProfileKind.MICROSOFT_ACCOUNT,
            minecraft_username="Alice",
            microsoft_account_id="ms-123",
            java_path="/opt/java/bin/java",
            java_args=" -XX:+UseG1GC ",
            min_memory_mb=1024,
            max_memory_mb=4096,
            game_directory="/games/alice",
        )
    )

    assert created.id is not None
    assert created.created_at == datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)
    assert repo.find_by_id(created.id) == created
    assert repo.find_by_name("alice") == created


def test_create_normalizes_and_defaults(repository: ProfileRepository) -> None:
    created = repository.create(_profile("  bob  ", display_name=" Bob ", game_directory="   "))

    assert created.name == "bob"
    assert created.display_name == "Bob"
    assert created.game_directory is None
    assert created.profile_kind is ProfileKind.OFFLINE
    assert (created.min_memory_mb, created.max_memory_mb) == (512, 2048)
    assert created.is_active is False


def test_duplicate_name_is_rejected(repository: ProfileRepository) -> None:
    repository.create(_profile("alice"))

    with pytest.raises(ConstraintViolationError, match="already exists"):
        repository.create(_profile("alice", display_name="Other"))
    assert repository.count() == 1


def test_find_all_orders_newest_first(repository: ProfileRepository) -> None:
    for name in ("first", "second", "third"):
        repository.create(_profile(name))

    assert [p.name for p in repository.find_all()] == ["third", "second", "first"]


def test_find_missing_returns_none(repository: ProfileRepository) -> None:
    assert repository.find_by_id(999) is None
    assert repository.find_by_name("nobody") is None
    assert repository.find_active() is None


def test_create_active_deactivates_others(repository: ProfileRepository) -> None:
    first = repository.create(_profile("first", is_active=True))
    second = repository.create(_profile("second", is_active=True))

    assert repository.count_active() == 1
    assert repository.find_active() == repository.find_by_id(second.id or 0)
    assert repository.find_by_id(first.id or 0).is_active is False  # type: ignore[union-attr]


def test_update_changes_fields_and_timestamp(repository: ProfileRepository) -> None:
    created = repository.create(_profile("alice"))
    edited = Profile(
        id=created.id,
        name="alice2",
        display_name="Alice Two",
        java_args="-Xss2M",
        min_memory_mb=1024,
        max_memory_mb=3072,
    )

    updated = repository.update(edited)

    assert updated.name == "alice2"
    assert updated.java_args == "-Xss2M"
    assert updated.max_memory_mb == 3072
    assert updated.created_at == created.created_at
    assert updated.updated_at is not None and created.updated_at is not None
    assert updated.updated_at > created.updated_at


def test_update_does_not_change_activity(repository: ProfileRepository) -> None:
    active = repository.create(_profile("alice", is_active=True))

    updated = repository.update(Profile(id=active.id, name="alice", display_name="A", is_active=False))

    assert updated.is_active is True


def test_update_missing_id_raises_not_found(repository: ProfileRepository) -> None:
    with pytest.raises(NotFoundError):
        repository.update(_profile("ghost", id=4242))


def test_update_without_id_raises_validation(repository: ProfileRepository) -> None:
    with pytest.raises(ValidationError):
        repository.update(_profile("ghost"))


def test_update_to_existing_name_is_rejected(repository: ProfileRepository) -> None:
    repository.create(_profile("alice"))
    bob = repository.create(_profile("bob"))

    with pytest.raises(ConstraintViolationError):
        repository.update(Profile(id=bob.id, name="alice", display_name="Bob"))
    assert repository.find_by_id(bob.id or 0).name == "bob"  # type: ignore[union-attr]


def test_delete_reports_whether_a_row_was_removed(repository: ProfileRepository) -> None:
    created = repository.create(_profile("alice"))

    assert repository.delete(created.id or 0) is True
    assert repository.delete(created.id or 0) is False
    assert repository.find_by_id(created.id or 0) is None


def test_exists_by_name_and_count(repository: ProfileRepository) -> None:
    assert repository.count() == 0
    repository.create(_profile("alice"))

    assert repository.exists_by_name("alice") is True
    assert repository.exists_by_name("bob") is False
    assert repository.count() == 1


@pytest.mark.parametrize(
    "overrides",
    [
        {"name": ""},
        {"name": "a/b"},
        {"display_name": "   "},
        {"min_memory_mb": 0},
        {"min_memory_mb": 2048, "max_memory_mb": 2048},
        {"min_memory_mb": 4096, "max_memory_mb": 1024},
    ],
)
def test_invalid_profiles_are_rejected_without_writing(
    repository: ProfileRepository, overrides: dict[str, object]
) -> None:
    with pytest.raises(ValidationError):
        repository.create(_profile("valid", **overrides))
    assert repository.count() == 0


def test_store_survives_reopen(tmp_path: Path, connection: ProfileStoreConnection) -> None:
    repo = ProfileRepository(connection)
    created = repo.create(_profile("alice", is_active=True))
    connection.close()

    with ProfileStoreConnection(tmp_path / "klauncher.db") as reopened:
        assert ProfileRepository(reopened).find_active() == created
