"""
Preference matchers that sit around the main retrievers.

The direct matcher is the fast path: books matching a favourite genre AND a
preferred language exactly. The forced matcher is the slow path, run only
when the exact retrievers starve; it relaxes matching to word and substring
containment and ranks what it finds by how closely it fits.
"""

from __future__ import annotations

from typing import Iterable

import structlog

from recommender.engine.retrievers import guarded, labels_overlap
from recommender.engine.types import UserProfile
from recommender.models.book import Book
from recommender.stores.base import (
    BY_RATING,
    BookQuery,
    BookStore,
    TextField,
    TextFilter,
    TextMatch,
)

logger = structlog.get_logger()

FORCED_QUERY_LIMIT = 5
DISTINCT_SAMPLE = 10


def forced_match_score(book: Book, user: UserProfile) -> int:
    genre = (book.genre or "").lower()
    language = (book.language or "").lower()

    score = 1
    if labels_overlap(genre, user.favorite_genres):
        score += 2
    if labels_overlap(language, user.preferred_languages):
        score += 2
    if genre and genre in user.favorite_genres:
        score += 1
    if language and language in user.preferred_languages:
        score += 1
    return score


def forced_queries(user: UserProfile, exclude_ids: frozenset[int], per_query_limit: int) -> list[BookQuery]:
    """Relaxed queries in execution order: single labels first, then genre x language pairs."""

    def query(*filters: TextFilter) -> BookQuery:
        return BookQuery(text=filters, exclude_ids=exclude_ids, limit=per_query_limit)

    queries = [
        query(TextFilter(TextField.GENRE, (genre,), TextMatch.CONTAINS))
        for genre in user.favorite_genres
    ]
    queries += [
        query(TextFilter(TextField.LANGUAGE, (language,), TextMatch.CONTAINS))
        for language in user.preferred_languages
    ]
    for genre in user.favorite_genres:
        for language in user.preferred_languages:
            for match in (TextMatch.WORD, TextMatch.CONTAINS):
                queries.append(
                    query(
                        TextFilter(TextField.GENRE, (genre,), match),
                        TextFilter(TextField.LANGUAGE, (language,), match),
                    )
                )
    return queries


class PreferenceMatchers:
    def __init__(self, books: BookStore):
        self.books = books

    @guarded("direct")
    async def direct(
        self,
        user: UserProfile,
        exclude_ids: Iterable[int] = (),
        limit: int = 10,
        debug: bool = False,
    ) -> list[Book]:
        if not (user.has_genres and user.has_languages):
            return []

        books = await self.books.find(
            BookQuery(
                text=(
                    TextFilter(TextField.GENRE, tuple(user.favorite_genres), TextMatch.EXACT),
                    TextFilter(TextField.LANGUAGE, tuple(user.preferred_languages), TextMatch.EXACT),
                ),
                exclude_ids=frozenset(exclude_ids),
                order_by=BY_RATING,
                limit=limit,
            )
        )

        if debug:
            logger.info(
                "direct_matches",
                genres=list(user.favorite_genres),
                languages=list(user.preferred_languages),
                count=len(books),
                sample=[(b.title, b.genre, b.language) for b in books[:3]],
            )
            if not books:
                genres = await self.books.distinct(TextField.GENRE)
                languages = await self.books.distinct(TextField.LANGUAGE)
                logger.info(
                    "catalog_labels",
                    genres=genres[:DISTINCT_SAMPLE],
                    genre_count=len(genres),
                    languages=languages[:DISTINCT_SAMPLE],
                    language_count=len(languages),
                )
        return books

    @guarded("forced")
    async def forced(
        self,
        user: UserProfile,
        exclude_ids: Iterable[int] = (),
        limit: int = 10,
        debug: bool = False,
    ) -> list[Book]:
        if not (user.has_genres or user.has_languages):
            return []

        queries = forced_queries(user, frozenset(exclude_ids), min(FORCED_QUERY_LIMIT, limit))
        if debug:
            logger.info("forced_match_queries", count=len(queries))

        found: dict[int, Book] = {}
        for query in queries:
            for book in await self.books.find(query):
                found.setdefault(book.id, book)
            if len(found) >= limit:
                break

        ranked = sorted(found.values(), key=lambda book: -forced_match_score(book, user))
        if debug:
            logger.info("forced_matches", count=len(ranked))
        return ranked[:limit]
