"""SQLAlchemy async engine, session factory, and declarative base."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from recommender.config import get_settings


settings = get_settings()


def build_engine(dsn: str) -> AsyncEngine:
    if dsn.startswith("sqlite"):
        return create_async_engine(dsn, echo=False)
    return create_async_engine(
        dsn,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=300,
        echo=False,
    )


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_dsn)

async_session = build_sessionmaker(engine)


class Base(DeclarativeBase):
    pass
