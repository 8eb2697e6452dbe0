"""Last-resort recommendations when the personalized pipeline yields nothing."""

from __future__ import annotations

from typing import Iterable, Optional

import structlog

from recommender.engine.types import UserProfile
from recommender.models.book import Book
from recommender.stores.base import (
    BY_RATING,
    BookQuery,
    BookStore,
    SortKey,
    TextField,
    TextFilter,
    TextMatch,
)

logger = structlog.get_logger()

POPULAR_MIN_RATING = 4.0


class GenericFallback:
    """Relaxed genre, relaxed language, highly rated, then newest in-stock books."""

    def __init__(self, books: BookStore):
        self.books = books

    def _attempts(
        self, limit: int, user: Optional[UserProfile], exclude_ids: frozenset[int]
    ) -> list[tuple[str, BookQuery]]:
        attempts = []
        if user is not None and user.has_genres:
            attempts.append(
                (
                    "relaxed_genre",
                    BookQuery(
                        text=(TextFilter(TextField.GENRE, tuple(user.favorite_genres), TextMatch.CONTAINS),),
                        exclude_ids=exclude_ids,
                        order_by=BY_RATING,
                        limit=limit,
                    ),
                )
            )
        if user is not None and user.has_languages:
            attempts.append(
                (
                    "relaxed_language",
                    BookQuery(
                        text=(TextFilter(TextField.LANGUAGE, tuple(user.preferred_languages), TextMatch.CONTAINS),),
                        exclude_ids=exclude_ids,
                        order_by=BY_RATING,
                        limit=limit,
                    ),
                )
            )
        attempts.append(
            (
                "highly_rated",
                BookQuery(min_rating=POPULAR_MIN_RATING, exclude_ids=exclude_ids, order_by=BY_RATING, limit=limit),
            )
        )
        attempts.append(
            (
                "newest",
                BookQuery(exclude_ids=exclude_ids, order_by=(SortKey("created_at"),), limit=limit),
            )
        )
        return attempts

    async def recommend(
        self,
        limit: int = 10,
        user: Optional[UserProfile] = None,
        exclude_ids: Iterable[int] = (),
    ) -> list[Book]:
        """Never raises; an internal failure yields an empty list."""
        try:
            for source, query in self._attempts(limit, user, frozenset(exclude_ids)):
                books = await self.books.find(query)
                if books:
                    logger.info("fallback_recommendations", source=source, count=len(books))
                    return books
        except Exception as exc:
            logger.error("fallback_recommendations_failed", error=str(exc), exc_info=True)
        return []
