"""Book schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class BookResponse(BaseModel):
    id: int
    title: str
    author: str
    genre: str
    language: str
    description: Optional[str]
    publication_year: Optional[int]
    rating: float
    stock_quantity: int
    rental_count: int
    last_rented: Optional[datetime]
    created_at: Optional[datetime]

    model_config = {"from_attributes": True}
