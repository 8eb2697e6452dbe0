"""Recommendation endpoints — personalized top-N and trending books with Redis caching."""

from __future__ import annotations

import asyncio
import time
from functools import lru_cache
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError

from recommender.config import get_settings
from recommender.engine.pipeline import RecommendationEngine
from recommender.engine.preferences import normalize_labels
from recommender.engine.types import RecommendationOptions
from recommender.models.book import Book
from recommender.schemas.book import BookResponse
from recommender.schemas.recommendation import RecommendationResponse, TrendingResponse
from recommender.services.cache import get_cached, invalidate_user, recommendations_key, set_cached
from recommender.stores.base import BookQuery, SortKey, TextField, TextFilter, TextMatch
from recommender.stores.sql import SqlBookStore, SqlUserStore

logger = structlog.get_logger()
settings = get_settings()
router = APIRouter(prefix="/recommendations", tags=["Recommendations"])


@lru_cache()
def get_engine() -> RecommendationEngine:
    from recommender.database import async_session

    return RecommendationEngine(SqlBookStore(async_session), SqlUserStore(async_session))


def parse_exclude(
    exclude: Optional[str] = Query(None, description="Comma-separated book ids to leave out"),
) -> tuple[int, ...]:
    if not exclude:
        return ()
    try:
        return tuple(int(part) for part in exclude.split(",") if part.strip())
    except ValueError:
        raise HTTPException(status_code=422, detail="exclude must be a comma-separated list of book ids")


def _to_response(books: list[Book]) -> list[BookResponse]:
    return [BookResponse.model_validate(book) for book in books]


# Strategies that stand in for a personalized list and must not be cached
DEGRADED_STRATEGIES = {"trending", "error"}


async def _compute(
    engine: RecommendationEngine,
    user_id: int,
    limit: int,
    exclude_ids: tuple[int, ...],
    genre: Optional[str],
    debug: bool,
) -> tuple[RecommendationResponse, bool]:
    """Build the response and report whether it may be cached."""
    cacheable = True
    if genre:
        try:
            books = await engine.books.find(
                BookQuery(
                    text=(TextFilter(TextField.GENRE, (genre,), TextMatch.CONTAINS),),
                    exclude_ids=frozenset(exclude_ids),
                    limit=limit,
                )
            )
        except SQLAlchemyError as e:
            logger.error("genre_filter_error", error=str(e), user_id=user_id, genre=genre)
            books = []
            cacheable = False
        strategy = "genre_filter"
    else:
        options = RecommendationOptions(limit=limit, exclude_book_ids=exclude_ids, debug=debug)
        try:
            result = await asyncio.wait_for(
                engine.recommend(user_id, options),
                timeout=settings.recommendation_timeout_seconds,
            )
            books, strategy = result.books, result.strategy
        except asyncio.TimeoutError:
            # Degrade to trending rather than failing the request
            logger.warning(
                "recommendation_timeout",
                user_id=user_id,
                timeout_s=settings.recommendation_timeout_seconds,
            )
            books = (await engine.get_trending_books(exclude_ids))[:limit]
            strategy = "trending"
        cacheable = strategy not in DEGRADED_STRATEGIES

    response = RecommendationResponse(
        user_id=user_id,
        strategy=strategy,
        count=len(books),
        books=_to_response(books),
    )
    return response, cacheable


@router.get("/users/{user_id}", response_model=RecommendationResponse)
async def user_recommendations(
    user_id: int,
    limit: int = Query(settings.default_recommendation_limit, ge=1, le=settings.max_recommendation_limit),
    genre: Optional[str] = Query(None, min_length=1, max_length=100),
    debug: bool = False,
    exclude_ids: tuple[int, ...] = Depends(parse_exclude),
    engine: RecommendationEngine = Depends(get_engine),
):
    """
    Get personalized recommendations for a user.
    Non-debug results are cached in Redis.
    """
    cache_key = recommendations_key(user_id, limit, exclude_ids, genre)
    if not debug:
        cached = await get_cached(cache_key)
        if cached:
            logger.info("recommendation_cache_hit", user_id=user_id)
            return cached

    start_time = time.time()
    response, cacheable = await _compute(engine, user_id, limit, exclude_ids, genre, debug)
    latency_ms = (time.time() - start_time) * 1000
    logger.info(
        "recommendation_served",
        user_id=user_id,
        n=response.count,
        strategy=response.strategy,
        latency_ms=round(latency_ms, 2),
    )

    if cacheable and not debug:
        await set_cached(
            cache_key,
            response.model_dump(mode="json"),
            ttl_seconds=settings.recommendation_cache_ttl_seconds,
        )
    return response


@router.post("/users/{user_id}/refresh", response_model=RecommendationResponse)
async def refresh_recommendations(
    user_id: int,
    engine: RecommendationEngine = Depends(get_engine),
):
    """Drop cached lists for a user and recompute the default list."""
    await invalidate_user(user_id)
    limit = settings.default_recommendation_limit
    response, cacheable = await _compute(engine, user_id, limit, (), None, False)
    if cacheable:
        await set_cached(
            recommendations_key(user_id, limit, (), None),
            response.model_dump(mode="json"),
            ttl_seconds=settings.recommendation_cache_ttl_seconds,
        )
    logger.info("recommendations_refreshed", user_id=user_id, n=response.count, cached=cacheable)
    return response


@router.get("/trending", response_model=TrendingResponse)
async def trending_books(
    limit: int = Query(settings.default_recommendation_limit, ge=1, le=settings.max_recommendation_limit),
    user_id: Optional[int] = None,
    engine: RecommendationEngine = Depends(get_engine),
):
    """
    Trending books for a known user, re-ranked when they have favourite genres.
    Falls back to top-rated in-stock books.
    """
    try:
        if user_id is not None:
            profile = await engine.users.find_by_id(user_id)
            if profile is not None:
                books = (await engine.get_trending_books((), profile))[:limit]
                if books:
                    strategy = "personalized" if normalize_labels(profile.favorite_genres) else "trending"
                    return TrendingResponse(
                        user_id=user_id, strategy=strategy, count=len(books), books=_to_response(books)
                    )

        books = await engine.books.find(
            BookQuery(order_by=(SortKey("rating"), SortKey("publication_year")), limit=limit)
        )
        strategy = "top_rated" if books else "none"
    except SQLAlchemyError as e:
        logger.error("trending_books_error", error=str(e), user_id=user_id)
        return TrendingResponse(user_id=user_id, strategy="none", count=0, books=[])

    return TrendingResponse(user_id=user_id, strategy=strategy, count=len(books), books=_to_response(books))
