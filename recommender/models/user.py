"""User ORM model with reading preferences and demographics."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import JSON, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recommender.database import Base

if TYPE_CHECKING:
    from recommender.models.reading_history import ReadingHistoryEntry


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    occupation: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    favorite_genres: Mapped[list[Any]] = mapped_column(JSON, default=list)
    preferred_languages: Mapped[list[Any]] = mapped_column(JSON, default=list)
    # {"books_per_month": 1, "prefers_trending": true, "open_to_recommendations": true}
    rental_preferences: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    reading_history: Mapped[list["ReadingHistoryEntry"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="ReadingHistoryEntry.read_at",
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email}>"
