"""
Profile validation and normalization.

This module provides deterministic, field-only checks for profiles before they
reach the database. It performs no filesystem access.

Invariants
----------
- ``name`` is a safe single folder name (see ``validate_profile_name``)
- ``display_name`` is non-blank
- ``0 < min_memory_mb < max_memory_mb``
- Surrounding whitespace is stripped from names; a blank game directory becomes None
- Java and account fields are opaque and stored verbatim
"""

from __future__ import annotations

from dataclasses import replace

from ..data_models import Profile, ProfileKind
from ..errors import ValidationError
from ..paths_and_safety import validate_profile_name


def validate_memory_bounds(min_memory_mb: int, max_memory_mb: int) -> None:
    """
    Check the heap bound invariant.

    Raises
    ------
    ValidationError
        If ``min_memory_mb <= 0`` or ``max_memory_mb <= min_memory_mb``.
    """
    if isinstance(min_memory_mb, bool) or not isinstance(min_memory_mb, int):
        raise ValidationError(f"min_memory_mb must be an integer, got {min_memory_mb!r}.")
    if isinstance(max_memory_mb, bool) or not isinstance(max_memory_mb, int):
        raise ValidationError(f"max_memory_mb must be an integer, got {max_memory_mb!r}.")
    if min_memory_mb <= 0:
        raise ValidationError(f"min_memory_mb must be positive, got {min_memory_mb}.")
    if max_memory_mb <= min_memory_mb:
        raise ValidationError(
            f"max_memory_mb ({max_memory_mb}) must be greater than min_memory_mb ({min_memory_mb})."
        )


def normalize_profile(profile: Profile) -> Profile:
    """
    Normalize and validate a Profile.

    Parameters
    ----------
    profile:
        Raw profile from a caller.

    Returns
    -------
    Profile
        Normalized profile.

    Raises
    ------
    ValidationError
        If any field violates invariants.
    """
    name = validate_profile_name(profile.name)
    display_name = (profile.display_name or "").strip()
    if not display_name:
        raise ValidationError("Profile display name must not be empty.")
    if not isinstance(profile.profile_kind, ProfileKind):
        raise ValidationError(f"Unknown profile kind: {profile.profile_kind!r}")
    validate_memory_bounds(profile.min_memory_mb, profile.max_memory_mb)

    return replace(
        profile,
        name=name,
        display_name=display_name,
        game_directory=_blank_to_none(profile.game_directory),
    )


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
