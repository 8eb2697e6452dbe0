"""
Candidate retrievers — one catalog query per recommendation strategy.

Every retriever is wrapped by ``guarded`` so it returns a RetrievalResult
instead of raising: a failed query contributes an empty candidate list and
the failure is logged and counted.
"""

from __future__ import annotations

import functools
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Iterable, Optional, Sequence

import structlog
from prometheus_client import Counter

from recommender.engine.types import RetrievalResult, UserProfile
from recommender.models.book import Book
from recommender.stores.base import (
    BY_RATING,
    BookQuery,
    BookStore,
    PeerQuery,
    SortKey,
    TextField,
    TextFilter,
    TextMatch,
    UserStore,
)

logger = structlog.get_logger()

RETRIEVER_FAILURES = Counter(
    "recommendation_retriever_failures_total",
    "Candidate retriever queries that failed and contributed no candidates",
    ["retriever"],
)

GENRE_LIMIT = 30
LANGUAGE_LIMIT = 20
DEMOGRAPHIC_LIMIT = 15
DEMOGRAPHIC_PEER_LIMIT = 20
COLLABORATIVE_LIMIT = 20
COLLABORATIVE_PEER_LIMIT = 25
TRENDING_LIMIT = 15

AGE_WINDOW = 5
MIN_PEER_AGE = 13
TRENDING_WINDOW_DAYS = 30
TRENDING_MIN_RENTALS = 3


def guarded(name: str):
    """Turn a coroutine returning books into one returning a RetrievalResult."""

    def decorator(func: Callable[..., Awaitable[Iterable[Book]]]):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> RetrievalResult:
            try:
                books = await func(*args, **kwargs)
            except Exception as exc:
                RETRIEVER_FAILURES.labels(retriever=name).inc()
                logger.warning("retriever_failed", retriever=name, error=str(exc), exc_info=True)
                return RetrievalResult(name=name, error=exc)
            return RetrievalResult(name=name, books=list(books))

        return wrapper

    return decorator


def labels_overlap(value: Optional[str], labels: Sequence[str]) -> int:
    """Count labels contained in ``value`` or containing it, case-insensitively."""
    if not value:
        return 0
    value = value.lower()
    return sum(1 for label in labels if label and (label in value or value in label))


def personalize_trending(books: Sequence[Book], favorite_genres: Sequence[str]) -> list[Book]:
    """Re-rank trending books by genre affinity; the incoming order breaks ties."""
    return sorted(books, key=lambda book: -(1 + labels_overlap(book.genre, favorite_genres)))


class CandidateRetrievers:
    """The five independent candidate retrievers."""

    def __init__(
        self,
        books: BookStore,
        users: UserStore,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.books = books
        self.users = users
        self.clock = clock

    @guarded("genre")
    async def genre(self, user: UserProfile, exclude_ids: Iterable[int] = (), debug: bool = False) -> list[Book]:
        return await self._by_label(
            TextField.GENRE, user.favorite_genres, exclude_ids, GENRE_LIMIT, debug
        )

    @guarded("language")
    async def language(self, user: UserProfile, exclude_ids: Iterable[int] = (), debug: bool = False) -> list[Book]:
        return await self._by_label(
            TextField.LANGUAGE, user.preferred_languages, exclude_ids, LANGUAGE_LIMIT, debug
        )

    async def _by_label(
        self,
        field: TextField,
        labels: Sequence[str],
        exclude_ids: Iterable[int],
        limit: int,
        debug: bool,
    ) -> list[Book]:
        if not labels:
            if debug:
                logger.info("retriever_skipped", retriever=field.value, reason="no_preferences")
            return []

        books = await self.books.find(
            BookQuery(
                text=(TextFilter(field, tuple(labels), TextMatch.EXACT),),
                exclude_ids=frozenset(exclude_ids),
                limit=limit,
            )
        )

        if debug:
            logger.info("retriever_candidates", retriever=field.value, labels=list(labels), count=len(books))
            if not books:
                await self._check_labels(field, labels)
        return books

    async def _check_labels(self, field: TextField, labels: Sequence[str]) -> None:
        """Debug aid: show per-label exact hits and a partial match on the first label."""
        for label in labels:
            hits = await self.books.find(
                BookQuery(text=(TextFilter(field, (label,), TextMatch.EXACT),), limit=3)
            )
            logger.info(
                "label_check",
                field=field.value,
                label=label,
                exact_hits=len(hits),
                sample=hits[0].title if hits else None,
            )
        partial = await self.books.find(
            BookQuery(text=(TextFilter(field, (labels[0],), TextMatch.CONTAINS),), limit=3)
        )
        logger.info("label_check_partial", field=field.value, label=labels[0], hits=len(partial))

    @guarded("demographic")
    async def demographic(
        self, user: UserProfile, exclude_ids: Iterable[int] = (), debug: bool = False
    ) -> list[Book]:
        if not user.has_demographics:
            if debug:
                logger.info("retriever_skipped", retriever="demographic", reason="no_demographics")
            return []

        peer_query = PeerQuery(
            exclude_user_id=user.id,
            min_age=max(user.age - AGE_WINDOW, MIN_PEER_AGE) if user.age is not None else None,
            max_age=user.age + AGE_WINDOW if user.age is not None else None,
            location=user.location or None,
            occupation=user.occupation or None,
            limit=DEMOGRAPHIC_PEER_LIMIT,
        )
        peers = await self.users.find(peer_query)
        if debug:
            logger.info("demographic_peers", user_id=user.id, count=len(peers))
        if not peers:
            return []

        books = await self.books.find(
            BookQuery(
                read_by_user_ids=frozenset(peer.id for peer in peers),
                exclude_ids=frozenset(exclude_ids),
                order_by=BY_RATING,
                limit=DEMOGRAPHIC_LIMIT,
            )
        )
        if debug:
            logger.info("retriever_candidates", retriever="demographic", count=len(books))
        return books

    @guarded("collaborative")
    async def collaborative(
        self, user: UserProfile, exclude_ids: Iterable[int] = (), debug: bool = False
    ) -> list[Book]:
        read_ids = set(user.read_book_ids)
        if not read_ids:
            if debug:
                logger.info("retriever_skipped", retriever="collaborative", reason="no_reading_history")
            return []

        readers = await self.users.find(
            PeerQuery(
                exclude_user_id=user.id,
                read_any_of=frozenset(read_ids),
                limit=COLLABORATIVE_PEER_LIMIT,
            )
        )
        if debug:
            logger.info("collaborative_peers", user_id=user.id, count=len(readers))
        if not readers:
            return []

        unread = {
            record.book_id
            for reader in readers
            for record in reader.reading_history
            if record.book_id not in read_ids
        }
        if not unread:
            return []

        books = await self.books.find(
            BookQuery(
                include_ids=frozenset(unread),
                exclude_ids=frozenset(exclude_ids),
                order_by=BY_RATING,
                limit=COLLABORATIVE_LIMIT,
            )
        )
        if debug:
            logger.info("retriever_candidates", retriever="collaborative", count=len(books))
        return books

    @guarded("trending")
    async def trending(
        self,
        exclude_ids: Iterable[int] = (),
        user: Optional[UserProfile] = None,
        debug: bool = False,
    ) -> list[Book]:
        books = await self.books.find(
            BookQuery(
                rented_since=self.clock() - timedelta(days=TRENDING_WINDOW_DAYS),
                min_rental_count=TRENDING_MIN_RENTALS,
                exclude_ids=frozenset(exclude_ids),
                order_by=(SortKey("rental_count"), SortKey("rating")),
                limit=TRENDING_LIMIT,
            )
        )
        if debug:
            logger.info("retriever_candidates", retriever="trending", count=len(books))

        if user is not None and user.has_genres:
            return personalize_trending(books, user.favorite_genres)
        return books
