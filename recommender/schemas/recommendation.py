"""Recommendation response schemas."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from recommender.schemas.book import BookResponse


class RecommendationResponse(BaseModel):
    user_id: int
    strategy: str  # direct | forced | combined | fallback | error | genre_filter | trending
    count: int
    books: list[BookResponse]


class TrendingResponse(BaseModel):
    user_id: Optional[int] = None
    strategy: str  # personalized | trending | top_rated | none
    count: int
    books: list[BookResponse]
