"""SQL-backed storage for user ratings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import Rating
from ..models import ContentId
from .watchlist import to_content_id


@dataclass(slots=True)
class UserRating:
    """Plain view of a stored rating."""

    movie_id: ContentId
    rating: int
    comment: str | None
    updated_at: datetime

    def to_payload(self) -> dict[str, object]:
        return {
            "movieId": self.movie_id,
            "rating": self.rating,
            "comment": self.comment,
            "updatedAt": self.updated_at.isoformat(),
        }


class RatingRepository:
    """One rating per user and title; re-rating overwrites the previous one."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list(self, user_id: str) -> list[UserRating]:
        async with self._session_factory() as session:
            stmt = (
                select(Rating)
                .where(Rating.user_id == user_id)
                .order_by(Rating.updated_at.desc(), Rating.id.desc())
            )
            result = await session.execute(stmt)
            return [self._to_view(record) for record in result.scalars().all()]

    async def get(self, user_id: str, movie_id: ContentId) -> UserRating | None:
        async with self._session_factory() as session:
            record = await self._find(session, user_id, movie_id)
            return self._to_view(record) if record is not None else None

    async def upsert(
        self,
        user_id: str,
        movie_id: ContentId,
        rating: int,
        comment: str | None = None,
    ) -> UserRating:
        if not 1 <= rating <= 5:
            raise ValueError("Ratings must be between 1 and 5")
        async with self._session_factory() as session:
            record = await self._find(session, user_id, movie_id)
            if record is None:
                record = Rating(user_id=user_id, movie_id=str(movie_id))
                session.add(record)
            record.rating = rating
            record.comment = comment
            record.updated_at = datetime.utcnow()
            await session.commit()
            return self._to_view(record)

    async def delete(self, user_id: str, movie_id: ContentId) -> bool:
        async with self._session_factory() as session:
            record = await self._find(session, user_id, movie_id)
            if record is None:
                return False
            await session.delete(record)
            await session.commit()
            return True

    @staticmethod
    async def _find(
        session: AsyncSession, user_id: str, movie_id: ContentId
    ) -> Rating | None:
        stmt = select(Rating).where(
            Rating.user_id == user_id, Rating.movie_id == str(movie_id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _to_view(record: Rating) -> UserRating:
        return UserRating(
            movie_id=to_content_id(record.movie_id),
            rating=record.rating,
            comment=record.comment,
            updated_at=record.updated_at,
        )
