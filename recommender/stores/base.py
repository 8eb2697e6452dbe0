"""
Catalog and user store interfaces used by the recommendation engine.

The engine never writes queries in a store's own language. It describes what
it wants with the frozen query objects below and a store implementation
translates them into parameterized predicates. User-supplied text is always
bound as a value, never spliced into a pattern.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol, Sequence

from recommender.engine.types import UserProfile
from recommender.models.book import Book


class TextMatch(str, enum.Enum):
    EXACT = "exact"  # case-insensitive full-string equality
    WORD = "word"  # value appears as a whole, space-delimited word
    CONTAINS = "contains"  # case-insensitive substring


class TextField(str, enum.Enum):
    GENRE = "genre"
    LANGUAGE = "language"


@dataclass(frozen=True)
class TextFilter:
    """Match ``field`` against any of ``values`` (OR), using ``match``."""

    field: TextField
    values: tuple[str, ...]
    match: TextMatch = TextMatch.EXACT


@dataclass(frozen=True)
class SortKey:
    field: str  # rating | rental_count | created_at | publication_year
    descending: bool = True


BY_RATING = (SortKey("rating"),)


@dataclass(frozen=True)
class BookQuery:
    """Declarative book lookup. All populated criteria are ANDed."""

    text: tuple[TextFilter, ...] = ()
    include_ids: Optional[frozenset[int]] = None
    exclude_ids: frozenset[int] = frozenset()
    read_by_user_ids: Optional[frozenset[int]] = None
    min_rating: Optional[float] = None
    min_rental_count: Optional[int] = None
    rented_since: Optional[datetime] = None
    in_stock: bool = True
    order_by: tuple[SortKey, ...] = ()
    limit: Optional[int] = None


@dataclass(frozen=True)
class PeerQuery:
    """Lookup of other users, for demographic and collaborative retrieval."""

    exclude_user_id: Optional[int] = None
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    location: Optional[str] = None
    occupation: Optional[str] = None
    read_any_of: Optional[frozenset[int]] = None
    limit: Optional[int] = None


class BookStore(Protocol):
    async def find(self, query: BookQuery) -> list[Book]:
        ...

    async def distinct(self, field: TextField) -> list[str]:
        ...


class UserStore(Protocol):
    async def find_by_id(self, user_id: int) -> Optional[UserProfile]:
        ...

    async def find(self, query: PeerQuery) -> Sequence[UserProfile]:
        ...
