"""
SQLite repository for launcher profiles.

This module is the only place that issues SQL against ``user_profiles``.

Threading
---------
All methods go through :class:`ProfileStoreConnection`, which serializes
access to the shared handle. Mutations run inside ``BEGIN IMMEDIATE``
transactions, so ``set_active`` is observed either fully applied or not at all.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import replace
from typing import Sequence

from ..clock import Clock, SystemClock
from ..data_models import (
    PROFILE_WRITE_COLUMNS,
    Profile,
    datetime_to_iso_utc,
    profile_from_row,
    profile_to_params,
)
from ..errors import ConstraintViolationError, NotFoundError, StorageError, ValidationError
from .connection import ProfileStoreConnection
from .validation import normalize_profile

logger = logging.getLogger(__name__)

_SELECT_PROFILE = "SELECT * FROM user_profiles"
_ORDER_NEWEST_FIRST = "ORDER BY created_at DESC, id DESC"


class ProfileRepository:
    """
    CRUD and query operations over ``user_profiles``.

    Parameters
    ----------
    connection:
        Shared connection manager. The schema must already be migrated.
    clock:
        Time source for ``created_at``/``updated_at``.
    """

    def __init__(self, connection: ProfileStoreConnection, clock: Clock | None = None) -> None:
        self._connection = connection
        self._clock = clock or SystemClock()

    def create(self, profile: Profile) -> Profile:
        """
        Insert a new profile.

        If ``profile.is_active`` is set, every other profile is deactivated in
        the same transaction.

        Returns
        -------
        Profile
            The stored profile with ``id``, ``created_at`` and ``updated_at`` assigned.

        Raises
        ------
        ValidationError
            If any field is invalid.
        ConstraintViolationError
            If a profile with the same name already exists.
        """
        normalized = normalize_profile(profile)
        now = self._clock.now()
        stamp = datetime_to_iso_utc(now)
        params = profile_to_params(normalized)
        columns = (*PROFILE_WRITE_COLUMNS, "is_active", "created_at", "updated_at")
        values = (
            *(params[c] for c in PROFILE_WRITE_COLUMNS),
            1 if normalized.is_active else 0,
            stamp,
            stamp,
        )
        placeholders = ", ".join("?" for _ in columns)

        logger.debug("Creating profile %r", normalized.name)
        try:
            with self._connection.transaction() as conn:
                if normalized.is_active:
                    conn.execute("UPDATE user_profiles SET is_active = 0 WHERE is_active = 1")
                cur = conn.execute(
                    f"INSERT INTO user_profiles ({', '.join(columns)}) VALUES ({placeholders})",
                    values,
                )
                new_id = cur.lastrowid
        except ConstraintViolationError as exc:
            if _is_name_collision(exc):
                raise ConstraintViolationError(
                    f"A profile named {normalized.name!r} already exists."
                ) from exc
            raise

        if new_id is None:
            raise StorageError(f"Insert of profile {normalized.name!r} returned no id.")

        created = replace(normalized, id=int(new_id), created_at=now, updated_at=now)
        logger.info("Created profile %r (id=%d)", created.name, created.id)
        return created

    def find_by_id(self, profile_id: int) -> Profile | None:
        """Return the profile with ``profile_id``, or None."""
        return self._fetch_one(f"{_SELECT_PROFILE} WHERE id = ?", (profile_id,))

    def find_by_name(self, name: str) -> Profile | None:
        """Return the profile named ``name``, or None."""
        return self._fetch_one(f"{_SELECT_PROFILE} WHERE name = ?", (name,))

    def find_all(self) -> list[Profile]:
        """Return every profile, newest first."""
        with self._connection.read() as conn:
            rows = conn.execute(f"{_SELECT_PROFILE} {_ORDER_NEWEST_FIRST}").fetchall()
        profiles = [profile_from_row(dict(r)) for r in rows]
        logger.debug("Found %d profiles", len(profiles))
        return profiles

    def find_active(self) -> Profile | None:
        """Return the active profile, or None if no profile is active."""
        return self._fetch_one(f"{_SELECT_PROFILE} WHERE is_active = 1 LIMIT 1", ())

    def update(self, profile: Profile) -> Profile:
        """
        Persist changes to an existing profile.

        ``is_active`` is not written; activity only changes through
        :meth:`set_active`.

        Returns
        -------
        Profile
            The stored row after the update.

        Raises
        ------
        ValidationError
            If ``profile.id`` is missing or any field is invalid.
        NotFoundError
            If no row has ``profile.id``.
        ConstraintViolationError
            If the new name collides with another profile.
        """
        if profile.id is None:
            raise ValidationError("Cannot update a profile without an id.")
        normalized = normalize_profile(profile)
        params = profile_to_params(normalized)
        assignments = ", ".join(f"{c} = ?" for c in PROFILE_WRITE_COLUMNS)
        stamp = datetime_to_iso_utc(self._clock.now())

        logger.debug("Updating profile %r (id=%d)", normalized.name, profile.id)
        try:
            with self._connection.transaction() as conn:
                cur = conn.execute(
                    f"UPDATE user_profiles SET {assignments}, updated_at = ? WHERE id = ?",
                    (*(params[c] for c in PROFILE_WRITE_COLUMNS), stamp, profile.id),
                )
                if cur.rowcount == 0:
                    raise NotFoundError(f"No profile with id {profile.id}.")
                row = conn.execute(f"{_SELECT_PROFILE} WHERE id = ?", (profile.id,)).fetchone()
        except ConstraintViolationError as exc:
            if _is_name_collision(exc):
                raise ConstraintViolationError(
                    f"A profile named {normalized.name!r} already exists."
                ) from exc
            raise

        updated = profile_from_row(dict(row))
        logger.info("Updated profile %r (id=%d)", updated.name, profile.id)
        return updated

    def set_active(self, profile_id: int) -> Profile:
        """
        Make ``profile_id`` the single active profile.

        Runs as one transaction: (1) clear ``is_active`` on every row,
        (2) set it on the target. If step 2 fails the whole transaction rolls
        back, so the previously active profile stays active.

        Returns
        -------
        Profile
            The newly active profile.

        Raises
        ------
        NotFoundError
            If no row has ``profile_id``.
        """
        logger.debug("Setting active profile to id=%s", profile_id)
        stamp = datetime_to_iso_utc(self._clock.now())
        with self._connection.transaction() as conn:
            conn.execute(
                "UPDATE user_profiles SET is_active = 0, updated_at = ? WHERE is_active = 1",
                (stamp,),
            )
            cur = conn.execute(
                "UPDATE user_profiles SET is_active = 1, updated_at = ? WHERE id = ?",
                (stamp, profile_id),
            )
            if cur.rowcount == 0:
                raise NotFoundError(f"No profile with id {profile_id}.")
            row = conn.execute(f"{_SELECT_PROFILE} WHERE id = ?", (profile_id,)).fetchone()

        active = profile_from_row(dict(row))
        logger.info("Profile %r (id=%d) is now active", active.name, profile_id)
        return active

    def delete(self, profile_id: int) -> bool:
        """
        Delete a profile row.

        Returns
        -------
        bool
            True if a row was removed, False if ``profile_id`` did not exist.
        """
        logger.debug("Deleting profile id=%s", profile_id)
        with self._connection.transaction() as conn:
            cur = conn.execute("DELETE FROM user_profiles WHERE id = ?", (profile_id,))
            deleted = cur.rowcount > 0
        if deleted:
            logger.info("Deleted profile id=%d", profile_id)
        return deleted

    def exists_by_name(self, name: str) -> bool:
        with self._connection.read() as conn:
            row = conn.execute(
                "SELECT EXISTS(SELECT 1 FROM user_profiles WHERE name = ?)", (name,)
            ).fetchone()
        return bool(row[0])

    def count(self) -> int:
        with self._connection.read() as conn:
            row = conn.execute("SELECT COUNT(*) FROM user_profiles").fetchone()
        return int(row[0])

    def count_active(self) -> int:
        """Return how many profiles are flagged active (0 or 1 in a healthy store)."""
        with self._connection.read() as conn:
            row = conn.execute("SELECT COUNT(*) FROM user_profiles WHERE is_active = 1").fetchone()
        return int(row[0])

    def _fetch_one(self, sql: str, params: Sequence[object]) -> Profile | None:
        with self._connection.read() as conn:
            row: sqlite3.Row | None = conn.execute(sql, tuple(params)).fetchone()
        return profile_from_row(dict(row)) if row is not None else None


def _is_name_collision(exc: ConstraintViolationError) -> bool:
    return "user_profiles.name" in exc.message
