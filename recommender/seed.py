"""
Seed script — populates the database with a sample rental catalog, users,
and reading history for demo.
Run: python -m recommender.seed
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from recommender.config import get_settings
from recommender.database import Base, async_session, engine
from recommender.logging_config import setup_logging
from recommender.models.book import Book
from recommender.models.reading_history import ReadingHistoryEntry
from recommender.models.user import User

logger = structlog.get_logger()

# (title, author, genre, language, rating, stock, rentals, days since last rental, year)
SAMPLE_BOOKS = [
    ("Madhushala", "Harivansh Rai Bachchan", "Poetry", "Hindi", 4.9, 4, 12, 3, 1935),
    ("Rashmirathi", "Ramdhari Singh Dinkar", "Poetry", "Hindi", 4.8, 3, 9, 5, 1952),
    ("Kamayani", "Jaishankar Prasad", "Poetry", "Hindi", 4.6, 2, 4, 20, 1936),
    ("Yama", "Mahadevi Varma", "poetry", "hindi", 4.4, 1, 2, 45, 1940),
    ("Godaan", "Munshi Premchand", "Fiction", "Hindi", 4.7, 5, 15, 2, 1936),
    ("Gunahon Ka Devta", "Dharamvir Bharati", "Romance", "Hindi", 4.5, 3, 7, 10, 1949),
    ("Raag Darbari", "Shrilal Shukla", "Satire", "Hindi", 4.6, 0, 11, 4, 1968),
    ("Gitanjali", "Rabindranath Tagore", "Poetry", "Bengali", 4.9, 2, 6, 8, 1910),
    ("Pather Panchali", "Bibhutibhushan Bandyopadhyay", "Fiction", "Bengali", 4.5, 2, 3, 12, 1929),
    ("Leaves of Grass", "Walt Whitman", "Poetry", "English", 4.3, 3, 5, 15, 1855),
    ("The Waste Land", "T. S. Eliot", "Poetry", "English", 4.1, 2, 1, 90, 1922),
    ("Pride and Prejudice", "Jane Austen", "Romance", "English", 4.6, 6, 20, 1, 1813),
    ("Dune", "Frank Herbert", "Science Fiction", "English", 4.7, 4, 18, 6, 1965),
    ("Foundation", "Isaac Asimov", "Science Fiction", "English", 4.4, 3, 8, 9, 1951),
    ("Neuromancer", "William Gibson", "Science Fiction", "English", 4.0, 2, 2, 60, 1984),
    ("The Hobbit", "J. R. R. Tolkien", "Fantasy", "English", 4.8, 5, 25, 2, 1937),
    ("A Wizard of Earthsea", "Ursula K. Le Guin", "Fantasy", "English", 4.3, 2, 4, 25, 1968),
    ("Sapiens", "Yuval Noah Harari", "History", "English", 4.4, 7, 14, 3, 2011),
    ("Cien anos de soledad", "Gabriel Garcia Marquez", "Fiction", "Spanish", 4.8, 3, 10, 7, 1967),
    ("Veinte poemas de amor", "Pablo Neruda", "Poetry", "Spanish", 4.7, 2, 3, 14, 1924),
    ("Le Petit Prince", "Antoine de Saint-Exupery", "Fiction", "French", 4.6, 4, 6, 18, 1943),
    ("Les Fleurs du mal", "Charles Baudelaire", "Poetry", "French", 4.2, 1, 1, 120, 1857),
    ("Ponniyin Selvan", "Kalki Krishnamurthy", "Historical Fiction", "Tamil", 4.9, 3, 13, 4, 1955),
    ("The Old Man and the Sea", "Ernest Hemingway", "Fiction", "English", 3.9, 3, 3, 40, 1952),
]

SAMPLE_USERS = [
    {
        "email": "asha@example.com",
        "full_name": "Asha Verma",
        "age": 29,
        "location": "Delhi",
        "occupation": "teacher",
        "favorite_genres": ["Poetry"],
        "preferred_languages": ["Hindi"],
        "rental_preferences": {"books_per_month": 2, "prefers_trending": False},
        "history": ["Godaan"],
    },
    {
        "email": "rahul@example.com",
        "full_name": "Rahul Sen",
        "age": 31,
        "location": "Delhi",
        "occupation": "teacher",
        "favorite_genres": ["Fiction", " poetry "],
        "preferred_languages": ["Bengali", "Hindi"],
        "rental_preferences": {"prefers_trending": True},
        "history": ["Godaan", "Gitanjali", "Pather Panchali"],
    },
    {
        "email": "maya@example.com",
        "full_name": "Maya Iyer",
        "age": 24,
        "location": "Chennai",
        "occupation": "engineer",
        "favorite_genres": ["Science Fiction", "Fantasy"],
        "preferred_languages": ["English"],
        "rental_preferences": None,
        "history": ["Dune", "The Hobbit"],
    },
    {
        "email": "leo@example.com",
        "full_name": "Leo Garcia",
        "age": 40,
        "location": "Madrid",
        "occupation": "designer",
        "favorite_genres": [],
        "preferred_languages": [],
        "rental_preferences": {"prefers_trending": True},
        "history": [],
    },
    {
        "email": "nina@example.com",
        "full_name": "Nina Roy",
        "age": 26,
        "location": "Chennai",
        "occupation": "engineer",
        "favorite_genres": ["Fantasy"],
        "preferred_languages": [],
        "rental_preferences": None,
        "history": ["The Hobbit", "Foundation", "A Wizard of Earthsea", "Sapiens"],
    },
]


async def seed_catalog(session: AsyncSession, now: Optional[datetime] = None) -> dict[str, int]:
    """Insert the sample catalog, users, and reading history. Returns row counts."""
    now = now or datetime.now(timezone.utc)

    books: dict[str, Book] = {}
    for title, author, genre, language, rating, stock, rentals, days_ago, year in SAMPLE_BOOKS:
        book = Book(
            title=title,
            author=author,
            genre=genre,
            language=language,
            rating=rating,
            stock_quantity=stock,
            rental_count=rentals,
            last_rented=now - timedelta(days=days_ago),
            publication_year=year,
            created_at=now - timedelta(days=len(books)),
        )
        session.add(book)
        books[title] = book
    await session.flush()

    history_count = 0
    for data in SAMPLE_USERS:
        user = User(
            email=data["email"],
            full_name=data["full_name"],
            age=data["age"],
            location=data["location"],
            occupation=data["occupation"],
            favorite_genres=data["favorite_genres"],
            preferred_languages=data["preferred_languages"],
            rental_preferences=data["rental_preferences"],
        )
        session.add(user)
        await session.flush()
        for offset, title in enumerate(data["history"]):
            session.add(
                ReadingHistoryEntry(
                    user_id=user.id,
                    book_id=books[title].id,
                    read_at=now - timedelta(days=30 - offset),
                )
            )
            history_count += 1
    await session.flush()

    return {"books": len(books), "users": len(SAMPLE_USERS), "reading_history": history_count}


async def seed():
    """Seed the database with sample data."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        # Check if already seeded
        result = await session.execute(select(User).limit(1))
        if result.scalar_one_or_none():
            logger.info("seed_skipped", reason="already_seeded")
            return

        counts = await seed_catalog(session)
        await session.commit()
        logger.info("seed_complete", **counts)


if __name__ == "__main__":
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    asyncio.run(seed())
