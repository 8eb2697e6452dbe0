"""
Recommendation engine — orchestrates normalization, matching, retrieval,
scoring, and fallback for one user per call.

Pipeline:
1. Load and normalize the user (unknown users go straight to the fallback).
2. Direct genre+language matches; short-circuit when they fill the request.
3. Five candidate retrievers, run concurrently.
4. Forced (relaxed) matching when exact retrieval starves.
5. Weighted combination with bonus rules, then top-N.
6. Generic fallback when nothing survives.

Nothing is raised to the caller: any unexpected failure degrades to the
non-personalized fallback.
"""

from __future__ import annotations

import asyncio
import math
import time
from datetime import datetime
from typing import Callable, Iterable, Optional

import structlog
from prometheus_client import Histogram

from recommender.engine.fallback import GenericFallback
from recommender.engine.matchers import PreferenceMatchers
from recommender.engine.preferences import normalize_user_preferences
from recommender.engine.retrievers import CandidateRetrievers, guarded
from recommender.engine.scoring import score_and_combine
from recommender.engine.types import (
    RecommendationOptions,
    RecommendationResult,
    RetrievalResult,
    UserProfile,
)
from recommender.engine.weights import calculate_weights
from recommender.models.book import Book
from recommender.stores.base import BookQuery, BookStore, TextField, TextFilter, TextMatch, UserStore

logger = structlog.get_logger()

ENGINE_LATENCY = Histogram(
    "recommendation_engine_seconds",
    "Time spent computing recommendations for one user",
    ["strategy"],
)

DIRECT_MATCH_CAP = 20


class RecommendationEngine:
    """Rule-based, per-request recommendation pipeline over the book catalog."""

    def __init__(
        self,
        books: BookStore,
        users: UserStore,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.books = books
        self.users = users
        self.retrievers = (
            CandidateRetrievers(books, users, clock) if clock else CandidateRetrievers(books, users)
        )
        self.matchers = PreferenceMatchers(books)
        self.fallback = GenericFallback(books)

    async def get_recommendations_for_user(
        self, user_id: int, options: Optional[RecommendationOptions] = None
    ) -> list[Book]:
        return (await self.recommend(user_id, options)).books

    async def recommend(
        self, user_id: int, options: Optional[RecommendationOptions] = None
    ) -> RecommendationResult:
        """Recommendations plus the strategy that produced them."""
        options = options or RecommendationOptions()
        start = time.time()

        try:
            result = await self._run(user_id, options)
        except Exception as exc:
            logger.error("recommendation_pipeline_error", user_id=user_id, error=str(exc), exc_info=True)
            books = await self.fallback.recommend(options.limit, None, options.exclude_book_ids)
            result = RecommendationResult(books=books, strategy="error")

        latency = time.time() - start
        ENGINE_LATENCY.labels(strategy=result.strategy).observe(latency)
        logger.info(
            "recommendation_generated",
            user_id=user_id,
            n=len(result.books),
            strategy=result.strategy,
            latency_ms=round(latency * 1000, 2),
        )
        return result

    async def get_trending_books(
        self,
        exclude_ids: Iterable[int] = (),
        user: Optional[UserProfile] = None,
        debug: bool = False,
    ) -> list[Book]:
        """Recently popular books, re-ranked by genre affinity when a user is given."""
        normalized = normalize_user_preferences(user) if user is not None else None
        result = await self.retrievers.trending(tuple(exclude_ids), normalized, debug)
        return result.books

    async def get_fallback_recommendations(
        self,
        limit: int = 10,
        user: Optional[UserProfile] = None,
        exclude_ids: Iterable[int] = (),
    ) -> list[Book]:
        return await self.fallback.recommend(limit, user, exclude_ids)

    async def _run(self, user_id: int, options: RecommendationOptions) -> RecommendationResult:
        limit = options.limit
        exclude = tuple(options.exclude_book_ids)
        debug = options.debug

        profile = await self.users.find_by_id(user_id)
        if profile is None:
            logger.warning("recommendation_user_not_found", user_id=user_id)
            books = await self.fallback.recommend(limit, None, exclude)
            return RecommendationResult(books=books, strategy="fallback")

        user = normalize_user_preferences(profile)
        if debug:
            logger.info(
                "recommendation_preferences",
                user_id=user_id,
                favorite_genres=list(user.favorite_genres),
                preferred_languages=list(user.preferred_languages),
            )
            await self._check_exact_preferences(user)

        direct: list[Book] = []
        if user.has_genres and user.has_languages:
            direct = (
                await self.matchers.direct(user, exclude, min(limit * 2, DIRECT_MATCH_CAP), debug)
            ).books
            if len(direct) >= math.ceil(limit / 2):
                if debug:
                    logger.info("direct_matches_sufficient", count=len(direct), limit=limit)
                if len(direct) >= limit:
                    return RecommendationResult(books=direct[:limit], strategy="direct")

        trending_task = (
            self.retrievers.trending(exclude, user, debug)
            if options.include_trending
            else _skipped("trending")
        )
        genre, language, demographic, collaborative, trending = await asyncio.gather(
            self.retrievers.genre(user, exclude, debug),
            self.retrievers.language(user, exclude, debug),
            self.retrievers.demographic(user, exclude, debug),
            self.retrievers.collaborative(user, exclude, debug),
            trending_task,
        )
        if debug:
            logger.info(
                "retriever_summary",
                **{r.name: len(r.books) for r in (genre, language, demographic, collaborative, trending)},
                direct=len(direct),
                failed=[r.name for r in (genre, language, demographic, collaborative, trending) if not r.ok],
            )

        forced: list[Book] = []
        if (not genre.books or not language.books) and not direct:
            forced = (await self.matchers.forced(user, exclude, limit, debug)).books
            if len(forced) >= limit:
                return RecommendationResult(books=forced[:limit], strategy="forced")

        weights = calculate_weights(user)
        if debug:
            logger.info("recommendation_weights", **vars(weights))

        ranked = score_and_combine(
            user,
            weights,
            [*genre.books, *direct, *forced],
            language.books,
            demographic.books,
            collaborative.books,
            trending.books,
        )
        if debug:
            logger.info(
                "recommendation_top_scores",
                top=[
                    {
                        "title": c.book.title,
                        "score": round(c.score, 2),
                        "genre": c.book.genre,
                        "language": c.book.language,
                        "match_types": sorted(c.match_types),
                    }
                    for c in ranked[:5]
                ],
            )

        books = [candidate.book for candidate in ranked[:limit]]
        if not books:
            logger.info("recommendation_pipeline_empty", user_id=user_id)
            books = await self.fallback.recommend(limit, user, exclude)
            return RecommendationResult(books=books, strategy="fallback")
        return RecommendationResult(books=books, strategy="combined")

    @guarded("preference_check")
    async def _check_exact_preferences(self, user: UserProfile) -> list[Book]:
        """Debug aid: does the catalog hold any exact match for these preferences?"""
        genre_filter = TextFilter(TextField.GENRE, user.favorite_genres, TextMatch.EXACT)
        language_filter = TextFilter(TextField.LANGUAGE, user.preferred_languages, TextMatch.EXACT)
        filters = tuple(
            f for f, present in ((genre_filter, user.has_genres), (language_filter, user.has_languages)) if present
        )
        if not filters:
            return []

        matches = await self.books.find(BookQuery(text=filters, limit=5))
        logger.info(
            "exact_preference_check",
            count=len(matches),
            sample=[(b.title, b.genre, b.language) for b in matches],
        )
        if not matches:
            for name, text_filter, present in (
                ("genre", genre_filter, user.has_genres),
                ("language", language_filter, user.has_languages),
            ):
                if present:
                    hits = await self.books.find(BookQuery(text=(text_filter,), limit=3))
                    logger.info("exact_preference_check_partial", field=name, count=len(hits))
        return matches


async def _skipped(name: str) -> RetrievalResult:
    return RetrievalResult(name=name)
