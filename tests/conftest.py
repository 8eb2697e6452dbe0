"""Shared test configuration and fixtures."""

from __future__ import annotations

import fnmatch
import itertools
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# Ensure the project root is on sys.path so `recommender` resolves
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Settings are cached on first import, so the test environment goes first
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CACHE_ENABLED", "false")
os.environ.setdefault("LOG_FORMAT", "console")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from recommender.config import get_settings  # noqa: E402
from recommender.database import Base, build_engine, build_sessionmaker  # noqa: E402
from recommender.engine.pipeline import RecommendationEngine  # noqa: E402
from recommender.models.book import Book  # noqa: E402
from recommender.models.reading_history import ReadingHistoryEntry  # noqa: E402
from recommender.models.user import User  # noqa: E402
from recommender.services import cache  # noqa: E402
from recommender.stores.sql import SqlBookStore, SqlUserStore  # noqa: E402

NOW = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


class CatalogBuilder:
    """Writes books, users, and reading history straight into the test database."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._emails = itertools.count(1)

    async def book(
        self,
        title: str = "Untitled",
        genre: str = "Fiction",
        language: str = "English",
        rating: float = 3.0,
        stock_quantity: int = 1,
        rental_count: int = 0,
        last_rented: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        author: str = "Anonymous",
        publication_year: Optional[int] = None,
    ) -> Book:
        book = Book(
            title=title,
            author=author,
            genre=genre,
            language=language,
            rating=rating,
            stock_quantity=stock_quantity,
            rental_count=rental_count,
            last_rented=last_rented,
            created_at=created_at or NOW,
            publication_year=publication_year,
        )
        async with self.session_factory() as session:
            session.add(book)
            await session.commit()
        return book

    async def books(self, count: int, **kwargs) -> list[Book]:
        title = kwargs.pop("title", "Book")
        return [await self.book(title=f"{title} {i}", **kwargs) for i in range(count)]

    async def user(
        self,
        favorite_genres=(),
        preferred_languages=(),
        age: Optional[int] = None,
        location: Optional[str] = None,
        occupation: Optional[str] = None,
        rental_preferences: Optional[dict] = None,
    ) -> int:
        n = next(self._emails)
        user = User(
            email=f"reader{n}@example.com",
            full_name=f"Reader {n}",
            favorite_genres=list(favorite_genres),
            preferred_languages=list(preferred_languages),
            age=age,
            location=location,
            occupation=occupation,
            rental_preferences=rental_preferences,
        )
        async with self.session_factory() as session:
            session.add(user)
            await session.commit()
        return user.id

    async def read(self, user_id: int, *books: Book) -> None:
        async with self.session_factory() as session:
            for book in books:
                session.add(ReadingHistoryEntry(user_id=user_id, book_id=book.id, read_at=NOW))
            await session.commit()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """A fresh SQLite catalog per test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_sessionmaker(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def catalog(session_factory):
    return CatalogBuilder(session_factory)


@pytest_asyncio.fixture
async def book_store(session_factory):
    return SqlBookStore(session_factory)


@pytest_asyncio.fixture
async def user_store(session_factory):
    return SqlUserStore(session_factory)


@pytest_asyncio.fixture
async def engine(book_store, user_store):
    return RecommendationEngine(book_store, user_store, clock=lambda: NOW)


class FakeRedis:
    """In-memory stand-in for the few redis.asyncio calls the cache makes."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    async def get(self, key):
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl

    async def delete(self, key):
        self.store.pop(key, None)

    async def scan_iter(self, match=None):
        for key in list(self.store):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key


@pytest.fixture
def fake_redis(monkeypatch):
    """Turn the cache on and point it at a FakeRedis."""
    fake = FakeRedis()
    monkeypatch.setattr(get_settings(), "cache_enabled", True)

    async def get_fake():
        return fake

    monkeypatch.setattr(cache, "get_redis", get_fake)
    return fake
