"""
Value types passed between recommendation engine stages.

Everything here is request-scoped: profiles are snapshots loaded per call,
candidates live only for the duration of one ranking.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from recommender.models.book import Book


@dataclass(frozen=True)
class ReadingRecord:
    book_id: int


@dataclass(frozen=True)
class RentalPreferences:
    prefers_trending: bool = True

    @classmethod
    def from_mapping(cls, data: Optional[dict[str, Any]]) -> Optional["RentalPreferences"]:
        if not isinstance(data, dict):
            return None
        return cls(prefers_trending=bool(data.get("prefers_trending", True)))


@dataclass(frozen=True)
class UserProfile:
    """Read-only snapshot of a user as seen by the engine."""

    id: int
    favorite_genres: tuple[Any, ...] = ()
    preferred_languages: tuple[Any, ...] = ()
    age: Optional[int] = None
    location: Optional[str] = None
    occupation: Optional[str] = None
    rental_preferences: Optional[RentalPreferences] = None
    reading_history: tuple[ReadingRecord, ...] = ()

    @property
    def has_genres(self) -> bool:
        return len(self.favorite_genres) > 0

    @property
    def has_languages(self) -> bool:
        return len(self.preferred_languages) > 0

    @property
    def has_demographics(self) -> bool:
        return self.age is not None or bool(self.location) or bool(self.occupation)

    @property
    def prefers_trending(self) -> bool:
        return self.rental_preferences is not None and self.rental_preferences.prefers_trending

    @property
    def read_book_ids(self) -> list[int]:
        return [record.book_id for record in self.reading_history]


@dataclass(frozen=True)
class RecommendationOptions:
    limit: int = 10
    include_trending: bool = True
    exclude_book_ids: tuple[int, ...] = ()
    debug: bool = False


@dataclass
class RetrievalResult:
    """Outcome of one retriever. ``error`` is set when the query failed."""

    name: str
    books: list[Book] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ScoredCandidate:
    book: Book
    score: float
    match_types: frozenset[str] = frozenset()


@dataclass
class RecommendationResult:
    books: list[Book]
    strategy: str  # direct | forced | combined | fallback | error
