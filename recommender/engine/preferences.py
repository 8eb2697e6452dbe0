"""Preference normalization — all downstream matching is case-insensitive."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Iterable

from recommender.engine.types import UserProfile


def normalize_labels(labels: Iterable[Any]) -> tuple[str, ...]:
    """Trim and lower-case string labels, dropping blanks and non-strings."""
    normalized = []
    for label in labels or ():
        if not isinstance(label, str):
            continue
        cleaned = label.strip().lower()
        if cleaned:
            normalized.append(cleaned)
    return tuple(normalized)


def normalize_user_preferences(user: UserProfile) -> UserProfile:
    """Return a copy of ``user`` with normalized genre and language lists."""
    return replace(
        user,
        favorite_genres=normalize_labels(user.favorite_genres),
        preferred_languages=normalize_labels(user.preferred_languages),
    )
