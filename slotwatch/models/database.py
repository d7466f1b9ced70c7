"""
SQLAlchemy database models for the dedup cache.

The notified_keys table is append-only: a key, once stored, is never removed,
so a slot is notified at most once across all runs.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from slotwatch.config import settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class NotifiedKeyRecord(Base):
    """
    Database model for one already-notified availability slot.

    Columns:
        id: Auto-incrementing primary key.
        key: Joined identity "location|facility|YYYY-MM-DD|HH:MM-HH:MM|court".
        created_at: When the slot was first notified.
    """

    __tablename__ = "notified_keys"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(512), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


engine = create_async_engine(
    settings.database_url.replace("sqlite://", "sqlite+aiosqlite://")
    if settings.database_url.startswith("sqlite://")
    else settings.database_url,
    echo=False,
)

AsyncSessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
