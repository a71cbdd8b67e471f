"""SQL-backed watchlist storage."""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import WatchlistEntry
from ..models import ContentId

logger = logging.getLogger(__name__)


def to_content_id(value: str) -> ContentId:
    """Restore numeric identifiers that were stored as text."""

    # isdigit() also accepts characters such as "²" that int() rejects.
    if value.isascii() and value.isdecimal():
        return int(value)
    return value


class WatchlistRepository:
    """Reads and writes a user's saved titles, most recently added first."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list(self, user_id: str) -> list[ContentId]:
        async with self._session_factory() as session:
            stmt = (
                select(WatchlistEntry.movie_id)
                .where(WatchlistEntry.user_id == user_id)
                .order_by(WatchlistEntry.added_at.desc(), WatchlistEntry.id.desc())
            )
            result = await session.execute(stmt)
            return [to_content_id(row[0]) for row in result.all()]

    async def contains(self, user_id: str, movie_id: ContentId) -> bool:
        async with self._session_factory() as session:
            stmt = (
                select(WatchlistEntry.id)
                .where(
                    WatchlistEntry.user_id == user_id,
                    WatchlistEntry.movie_id == str(movie_id),
                )
                .limit(1)
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none() is not None

    async def add(self, user_id: str, movie_id: ContentId) -> bool:
        """Save a title; returns ``False`` when it was already on the list."""

        async with self._session_factory() as session:
            session.add(WatchlistEntry(user_id=user_id, movie_id=str(movie_id)))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                return False
        logger.info("Added %s to watchlist of %s", movie_id, user_id)
        return True

    async def remove(self, user_id: str, movie_id: ContentId) -> bool:
        async with self._session_factory() as session:
            stmt = delete(WatchlistEntry).where(
                WatchlistEntry.user_id == user_id,
                WatchlistEntry.movie_id == str(movie_id),
            )
            result = await session.execute(stmt)
            await session.commit()
        removed = bool(result.rowcount)
        if removed:
            logger.info("Removed %s from watchlist of %s", movie_id, user_id)
        return removed
