"""SQLAlchemy-backed book and user stores."""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import ColumnElement, String, distinct, false, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from recommender.engine.types import ReadingRecord, RentalPreferences, UserProfile
from recommender.models.book import Book
from recommender.models.reading_history import ReadingHistoryEntry
from recommender.models.user import User
from recommender.stores.base import BookQuery, PeerQuery, TextField, TextFilter, TextMatch

_TEXT_COLUMNS = {
    TextField.GENRE: Book.genre,
    TextField.LANGUAGE: Book.language,
}

_SORT_COLUMNS = {
    "rating": Book.rating,
    "rental_count": Book.rental_count,
    "created_at": Book.created_at,
    "publication_year": Book.publication_year,
}


def _text_clause(text_filter: TextFilter) -> ColumnElement[bool]:
    column = func.lower(_TEXT_COLUMNS[text_filter.field], type_=String)
    values = [v.lower() for v in text_filter.values if v]
    if not values:
        return false()

    if text_filter.match is TextMatch.EXACT:
        return column.in_(values)

    if text_filter.match is TextMatch.CONTAINS:
        return or_(*(column.contains(v, autoescape=True) for v in values))

    return or_(
        *(
            or_(
                column == v,
                column.startswith(f"{v} ", autoescape=True),
                column.endswith(f" {v}", autoescape=True),
                column.contains(f" {v} ", autoescape=True),
            )
            for v in values
        )
    )


def build_book_statement(query: BookQuery):
    """Translate a BookQuery into a SELECT over books."""
    stmt = select(Book)

    for text_filter in query.text:
        stmt = stmt.where(_text_clause(text_filter))
    if query.include_ids is not None:
        stmt = stmt.where(Book.id.in_(sorted(query.include_ids)))
    if query.exclude_ids:
        stmt = stmt.where(Book.id.not_in(sorted(query.exclude_ids)))
    if query.read_by_user_ids is not None:
        readers = select(ReadingHistoryEntry.book_id).where(
            ReadingHistoryEntry.user_id.in_(sorted(query.read_by_user_ids))
        )
        stmt = stmt.where(Book.id.in_(readers))
    if query.min_rating is not None:
        stmt = stmt.where(Book.rating >= query.min_rating)
    if query.min_rental_count is not None:
        stmt = stmt.where(Book.rental_count >= query.min_rental_count)
    if query.rented_since is not None:
        stmt = stmt.where(Book.last_rented >= query.rented_since)
    if query.in_stock:
        stmt = stmt.where(Book.stock_quantity > 0)

    ordering = []
    for key in query.order_by:
        column = _SORT_COLUMNS[key.field]
        ordering.append(column.desc().nulls_last() if key.descending else column.asc().nulls_last())
    # Stable, repeatable ordering for equal sort keys
    ordering.append(Book.id.asc())
    stmt = stmt.order_by(*ordering)

    if query.limit is not None:
        stmt = stmt.limit(query.limit)
    return stmt


def _as_tuple(value: Any) -> tuple[Any, ...]:
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return ()


def to_profile(user: User) -> UserProfile:
    return UserProfile(
        id=user.id,
        favorite_genres=_as_tuple(user.favorite_genres),
        preferred_languages=_as_tuple(user.preferred_languages),
        age=user.age,
        location=user.location,
        occupation=user.occupation,
        rental_preferences=RentalPreferences.from_mapping(user.rental_preferences),
        reading_history=tuple(
            ReadingRecord(book_id=entry.book_id)
            for entry in user.reading_history
        ),
    )


class SqlBookStore:
    """Book lookups. Each call uses its own session so calls can run concurrently."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find(self, query: BookQuery) -> list[Book]:
        async with self._session_factory() as session:
            result = await session.execute(build_book_statement(query))
            return list(result.scalars().all())

    async def distinct(self, field: TextField) -> list[str]:
        column = _TEXT_COLUMNS[field]
        async with self._session_factory() as session:
            result = await session.execute(select(distinct(column)).order_by(column))
            return [value for value in result.scalars().all() if value]


class SqlUserStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_by_id(self, user_id: int) -> Optional[UserProfile]:
        stmt = (
            select(User)
            .options(selectinload(User.reading_history))
            .where(User.id == user_id)
        )
        async with self._session_factory() as session:
            user = (await session.execute(stmt)).scalar_one_or_none()
            return to_profile(user) if user is not None else None

    async def find(self, query: PeerQuery) -> list[UserProfile]:
        stmt = select(User).options(selectinload(User.reading_history))

        if query.exclude_user_id is not None:
            stmt = stmt.where(User.id != query.exclude_user_id)
        if query.min_age is not None:
            stmt = stmt.where(User.age >= query.min_age)
        if query.max_age is not None:
            stmt = stmt.where(User.age <= query.max_age)
        if query.location:
            stmt = stmt.where(User.location == query.location)
        if query.occupation:
            stmt = stmt.where(User.occupation == query.occupation)
        if query.read_any_of is not None:
            readers = select(ReadingHistoryEntry.user_id).where(
                ReadingHistoryEntry.book_id.in_(sorted(query.read_any_of))
            )
            stmt = stmt.where(User.id.in_(readers))

        stmt = stmt.order_by(User.id.asc())
        if query.limit is not None:
            stmt = stmt.limit(query.limit)

        async with self._session_factory() as session:
            users = (await session.execute(stmt)).scalars().all()
            return [to_profile(user) for user in users]
