"""Watchlist-driven recommendation aggregation."""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from contextlib import suppress
from itertools import chain
from typing import Any, Awaitable, Callable, Iterable, Protocol, Sequence, TypeVar

from ..config import Settings
from ..models import AggregationOutput, ContentId, ContentSummary
from ..utils import first_distinct, rank_bucket

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ContentService(Protocol):
    """Catalog lookups the engine fans out to."""

    async def details(self, content_id: ContentId) -> ContentSummary | None: ...

    async def recommendations_for(self, content_id: ContentId) -> list[ContentSummary]: ...

    async def similar_to(self, content_id: ContentId) -> list[ContentSummary]: ...

    async def discover(self, genre_ids: Iterable[int]) -> list[ContentSummary]: ...


class WatchlistProvider(Protocol):
    async def list(self, user_id: str) -> Sequence[ContentId]: ...


class RecommendationError(Exception):
    """Base class for errors surfaced by the aggregation engine."""


class WatchlistUnavailable(RecommendationError):
    """The watchlist could not be read, so no recommendations were produced."""

    def __init__(self, user_id: str):
        super().__init__(f"Watchlist for user {user_id} is unavailable")
        self.user_id = user_id


class AggregationEngine:
    """Builds the three recommendation buckets for one user session.

    Every call to :meth:`run` takes a new generation number before its first
    suspension point. A run only publishes when its generation is still the
    newest one and the engine has not been closed, so the most recently
    started run always wins regardless of which run finishes first. Stale
    runs are not cancelled; their network calls complete and the results are
    dropped.
    """

    def __init__(
        self,
        user_id: str,
        content_service: ContentService,
        watchlist_provider: WatchlistProvider,
        *,
        recommendation_seed_limit: int = 5,
        genre_seed_limit: int = 3,
        genre_tag_limit: int = 3,
        bucket_size: int = 20,
    ):
        self._user_id = user_id
        self._content = content_service
        self._watchlist = watchlist_provider
        self._recommendation_seed_limit = recommendation_seed_limit
        self._genre_seed_limit = genre_seed_limit
        self._genre_tag_limit = genre_tag_limit
        self._bucket_size = bucket_size
        self._generation = 0
        self._current: AggregationOutput | None = None
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        user_id: str,
        content_service: ContentService,
        watchlist_provider: WatchlistProvider,
    ) -> "AggregationEngine":
        return cls(
            user_id,
            content_service,
            watchlist_provider,
            recommendation_seed_limit=settings.recommendation_seed_limit,
            genre_seed_limit=settings.genre_seed_limit,
            genre_tag_limit=settings.genre_tag_limit,
            bucket_size=settings.recommendation_bucket_size,
        )

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def generation(self) -> int:
        """The generation handed to the most recent :meth:`run` call."""

        return self._generation

    @property
    def current(self) -> AggregationOutput | None:
        """The last published output, if any."""

        return self._current

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Mark the consuming context as gone; nothing is published afterwards."""

        self._closed = True

    async def run(
        self, snapshot: Sequence[ContentId] | None = None
    ) -> AggregationOutput | None:
        """Aggregate recommendations and publish them if still current.

        Returns the published output, or ``None`` when a newer run superseded
        this one or the engine was closed. Raises :class:`WatchlistUnavailable`
        when the watchlist cannot be read.
        """

        if self._closed:
            logger.debug("Ignoring run for closed engine of %s", self._user_id)
            return None

        self._generation += 1
        generation = self._generation

        if snapshot is None:
            try:
                snapshot = await self._watchlist.list(self._user_id)
            except Exception as exc:
                if not self._is_current(generation):
                    logger.debug(
                        "Watchlist failure for superseded generation %s of %s: %s",
                        generation,
                        self._user_id,
                        exc,
                    )
                    return None
                raise WatchlistUnavailable(self._user_id) from exc

        watchlist = tuple(snapshot)
        if not watchlist:
            return self._publish(AggregationOutput.empty(generation))
        if not self._is_current(generation):
            return self._discard(generation)

        logger.info(
            "Aggregating recommendations for %s from %s watchlist titles (generation %s)",
            self._user_id,
            len(watchlist),
            generation,
        )

        recommendation_seeds = watchlist[: self._recommendation_seed_limit]
        genre_seeds = watchlist[: self._genre_seed_limit]

        results = await asyncio.gather(
            *(self._fetch_seed_lists(content_id) for content_id in recommendation_seeds),
            *(self._fetch_details(content_id) for content_id in genre_seeds),
        )
        seed_lists: list[tuple[list[ContentSummary], list[ContentSummary]]] = list(
            results[: len(recommendation_seeds)]
        )
        details: list[ContentSummary | None] = list(results[len(recommendation_seeds) :])
        if not self._is_current(generation):
            return self._discard(generation)

        genre_tags = first_distinct(
            (genre_id for item in details if item is not None for genre_id in item.genre_ids),
            limit=self._genre_tag_limit,
        )
        popular: list[ContentSummary] = []
        if genre_tags:
            popular = await self._call(
                "discover", self._content.discover, genre_tags, default=[]
            )

        excluded = frozenset(watchlist)
        output = AggregationOutput(
            generation=generation,
            based_on_watchlist=rank_bucket(
                chain.from_iterable(recommended for recommended, _ in seed_lists),
                exclude=excluded,
                limit=self._bucket_size,
            ),
            similar_movies=rank_bucket(
                chain.from_iterable(similar for _, similar in seed_lists),
                exclude=excluded,
                limit=self._bucket_size,
            ),
            popular_in_genres=rank_bucket(
                popular, exclude=excluded, limit=self._bucket_size
            ),
        )
        return self._publish(output)

    def _is_current(self, generation: int) -> bool:
        return not self._closed and generation == self._generation

    def _publish(self, output: AggregationOutput) -> AggregationOutput | None:
        if not self._is_current(output.generation):
            return self._discard(output.generation)
        self._current = output
        logger.info(
            "Published recommendations for %s (generation %s): %s/%s/%s",
            self._user_id,
            output.generation,
            len(output.based_on_watchlist),
            len(output.similar_movies),
            len(output.popular_in_genres),
        )
        return output

    def _discard(self, generation: int) -> None:
        logger.debug(
            "Discarding generation %s for %s (current %s, closed=%s)",
            generation,
            self._user_id,
            self._generation,
            self._closed,
        )
        return None

    async def _fetch_seed_lists(
        self, content_id: ContentId
    ) -> tuple[list[ContentSummary], list[ContentSummary]]:
        recommended, similar = await asyncio.gather(
            self._call(
                "recommendations", self._content.recommendations_for, content_id, default=[]
            ),
            self._call("similar", self._content.similar_to, content_id, default=[]),
        )
        return recommended, similar

    async def _fetch_details(self, content_id: ContentId) -> ContentSummary | None:
        return await self._call("details", self._content.details, content_id, default=None)

    async def _call(
        self,
        source: str,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        default: T,
    ) -> T:
        """Run one content lookup, turning a failure into ``default``."""

        try:
            return await func(*args)
        except Exception as exc:
            logger.warning(
                "%s lookup for %s failed for user %s: %s",
                source.capitalize(),
                args[0] if args else "-",
                self._user_id,
                exc,
            )
            return default


class RecommendationService:
    """Keeps one aggregation engine per user session."""

    def __init__(
        self,
        settings: Settings,
        content_service: ContentService,
        watchlist_provider: WatchlistProvider,
    ):
        self._settings = settings
        self._content = content_service
        self._watchlist = watchlist_provider
        self._session_limit = settings.recommendation_session_limit
        # Least recently used first.
        self._engines: OrderedDict[str, AggregationEngine] = OrderedDict()
        self._refresh_jobs: set[asyncio.Task[None]] = set()

    @property
    def session_count(self) -> int:
        return len(self._engines)

    def engine_for(self, user_id: str) -> AggregationEngine:
        engine = self._engines.get(user_id)
        if engine is not None and not engine.closed:
            self._engines.move_to_end(user_id)
            return engine
        engine = AggregationEngine.from_settings(
            self._settings, user_id, self._content, self._watchlist
        )
        self._engines[user_id] = engine
        self._engines.move_to_end(user_id)
        self._evict_idle_sessions()
        return engine

    def _evict_idle_sessions(self) -> None:
        while len(self._engines) > self._session_limit:
            user_id, engine = self._engines.popitem(last=False)
            engine.close()
            logger.debug("Evicted recommendation session for %s", user_id)

    async def recommendations(self, user_id: str) -> AggregationOutput | None:
        """Return the published buckets, aggregating them on first access."""

        engine = self.engine_for(user_id)
        if engine.current is not None:
            return engine.current
        return await engine.run()

    async def refresh(self, user_id: str) -> AggregationOutput | None:
        return await self.engine_for(user_id).run()

    def request_refresh(self, user_id: str) -> None:
        """Start a background run; it supersedes any run still in flight."""

        engine = self.engine_for(user_id)

        async def _runner() -> None:
            try:
                await engine.run()
            except WatchlistUnavailable as exc:
                logger.warning("Background refresh for %s failed: %s", user_id, exc)
            except Exception as exc:  # pragma: no cover - background safety net
                logger.exception(
                    "Background refresh for %s failed: %s", user_id, exc
                )

        task = asyncio.create_task(_runner())
        self._refresh_jobs.add(task)
        task.add_done_callback(self._refresh_jobs.discard)

    def close_session(self, user_id: str) -> bool:
        engine = self._engines.pop(user_id, None)
        if engine is None:
            return False
        engine.close()
        return True

    async def stop(self) -> None:
        """Close every engine and wait for background runs to wind down."""

        for engine in self._engines.values():
            engine.close()
        self._engines.clear()
        jobs = list(self._refresh_jobs)
        for job in jobs:
            job.cancel()
        for job in jobs:
            with suppress(asyncio.CancelledError):
                await job
