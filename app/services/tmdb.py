"""Client for The Movie Database (TMDB) content catalog."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

import httpx

from ..config import Settings
from ..models import ContentId, ContentSummary

logger = logging.getLogger(__name__)


class ContentServiceError(RuntimeError):
    """Raised when a TMDB request cannot be completed."""


class TMDBClient:
    """Thin wrapper around the TMDB movie endpoints used for discovery."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        *,
        max_retries: int = 2,
    ):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client
        self._max_retries = max_retries

    async def details(self, content_id: ContentId) -> ContentSummary | None:
        """Return metadata for a single movie, or ``None`` when TMDB has no record."""

        payload = await self._get(f"/movie/{content_id}", allow_missing=True)
        if payload is None:
            return None
        return ContentSummary.from_tmdb_payload(payload)

    async def recommendations_for(self, content_id: ContentId) -> list[ContentSummary]:
        payload = await self._get(f"/movie/{content_id}/recommendations", page=1)
        return self._parse_results(payload)

    async def similar_to(self, content_id: ContentId) -> list[ContentSummary]:
        payload = await self._get(f"/movie/{content_id}/similar", page=1)
        return self._parse_results(payload)

    async def discover(self, genre_ids: Iterable[int]) -> list[ContentSummary]:
        """Return movies tagged with the genres, most popular first."""

        genres = ",".join(str(genre_id) for genre_id in genre_ids)
        if not genres:
            return []
        payload = await self._get(
            "/discover/movie",
            sort_by="popularity.desc",
            with_genres=genres,
            page=1,
        )
        return self._parse_results(payload)

    async def search(self, query: str) -> list[ContentSummary]:
        cleaned = (query or "").strip()
        if not cleaned:
            return []
        payload = await self._get(
            "/search/movie", query=cleaned, include_adult="false", page=1
        )
        return self._parse_results(payload)

    async def trending(self) -> list[ContentSummary]:
        payload = await self._get("/trending/movie/week")
        return self._parse_results(payload)

    async def _get(
        self, path: str, *, allow_missing: bool = False, **params: Any
    ) -> dict[str, Any] | None:
        query = {
            "api_key": self._settings.tmdb_api_key,
            "language": self._settings.tmdb_language,
            **params,
        }
        attempt = 0
        while True:
            try:
                response = await self._client.get(path, params=query)
            except httpx.HTTPError as exc:
                attempt += 1
                if attempt <= self._max_retries:
                    backoff = min(2 ** (attempt - 1), 5) * 0.5
                    logger.info(
                        "Transient error talking to TMDB (%s). Retrying %s in %.1fs",
                        exc.__class__.__name__,
                        path,
                        backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                raise ContentServiceError(f"TMDB request to {path} failed: {exc}") from exc

            if 500 <= response.status_code < 600:
                attempt += 1
                if attempt <= self._max_retries:
                    backoff = min(2 ** (attempt - 1), 5) * 0.5
                    logger.info(
                        "TMDB %s for %s. Retrying in %.1fs",
                        response.status_code,
                        path,
                        backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
            break

        if response.status_code == 404 and allow_missing:
            return None
        if response.status_code >= 400:
            raise ContentServiceError(
                f"TMDB request to {path} failed with {response.status_code}: {response.text}"
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise ContentServiceError(f"Unexpected non-JSON TMDB response for {path}") from exc
        if not isinstance(data, dict):
            raise ContentServiceError(f"Unexpected TMDB response structure for {path}")
        return data

    @staticmethod
    def _parse_results(payload: dict[str, Any] | None) -> list[ContentSummary]:
        if not payload:
            return []
        results = payload.get("results")
        if not isinstance(results, list):
            return []
        parsed: list[ContentSummary] = []
        for entry in results:
            if not isinstance(entry, dict) or entry.get("id") is None:
                continue
            try:
                parsed.append(ContentSummary.from_tmdb_payload(entry))
            except ValueError:
                logger.debug("Skipping malformed TMDB result: %s", entry)
        return parsed
