"""Entry point for the FastAPI-powered movie discovery service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .database import Database
from .models import AggregationOutput, RatingIn, WatchlistItemIn
from .services.ratings import RatingRepository
from .services.recommendations import RecommendationService, WatchlistUnavailable
from .services.tmdb import ContentServiceError, TMDBClient
from .services.watchlist import WatchlistRepository, to_content_id

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    if not settings.tmdb_api_key:
        raise RuntimeError("TMDB_API_KEY must be configured to start the service")

    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url).rstrip("/"),
            timeout=httpx.Timeout(15.0, connect=5.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    content_client = TMDBClient(settings, tmdb_http_client)
    watchlist = WatchlistRepository(database.session_factory)
    ratings = RatingRepository(database.session_factory)
    recommendation_service = RecommendationService(settings, content_client, watchlist)

    fastapi_app.state.content_client = content_client
    fastapi_app.state.watchlist = watchlist
    fastapi_app.state.ratings = ratings
    fastapi_app.state.recommendation_service = recommendation_service
    fastapi_app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await recommendation_service.stop()
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Watchlist-driven movie recommendations backed by TMDB",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def _state_attribute(fastapi_app: FastAPI, name: str, expected: type):
    value = getattr(fastapi_app.state, name, None)
    if not isinstance(value, expected):
        raise RuntimeError(f"{name.replace('_', ' ').capitalize()} not initialised")
    return value


def get_content_client(fastapi_app: FastAPI) -> TMDBClient:
    return _state_attribute(fastapi_app, "content_client", TMDBClient)


def get_watchlist(fastapi_app: FastAPI) -> WatchlistRepository:
    return _state_attribute(fastapi_app, "watchlist", WatchlistRepository)


def get_ratings(fastapi_app: FastAPI) -> RatingRepository:
    return _state_attribute(fastapi_app, "ratings", RatingRepository)


def get_recommendation_service(fastapi_app: FastAPI) -> RecommendationService:
    return _state_attribute(
        fastapi_app, "recommendation_service", RecommendationService
    )


def _recommendation_response(output: AggregationOutput | None) -> JSONResponse:
    if output is None:
        # A newer run for the same session took over; it will publish instead.
        return JSONResponse({"status": "superseded"}, status_code=202)
    return JSONResponse(output.to_payload())


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/api/search")
    async def search(query: str = "") -> dict[str, Any]:
        if not query.strip():
            raise HTTPException(status_code=400, detail="A search query is required")
        client = get_content_client(fastapi_app)
        try:
            results = await client.search(query)
        except ContentServiceError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {"results": [item.to_payload() for item in results]}

    @fastapi_app.get("/api/trending")
    async def trending() -> dict[str, Any]:
        client = get_content_client(fastapi_app)
        try:
            results = await client.trending()
        except ContentServiceError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {"results": [item.to_payload() for item in results]}

    @fastapi_app.get("/api/movies/{movie_id}")
    async def movie_details(movie_id: str) -> dict[str, Any]:
        client = get_content_client(fastapi_app)
        try:
            details = await client.details(to_content_id(movie_id))
        except ContentServiceError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        if details is None:
            raise HTTPException(status_code=404, detail=f"Movie {movie_id} not found")
        return details.to_payload()

    @fastapi_app.get("/api/users/{user_id}/watchlist")
    async def list_watchlist(user_id: str) -> dict[str, Any]:
        movie_ids = await get_watchlist(fastapi_app).list(user_id)
        return {"movieIds": movie_ids}

    @fastapi_app.post("/api/users/{user_id}/watchlist", status_code=201)
    async def add_to_watchlist(user_id: str, item: WatchlistItemIn) -> dict[str, Any]:
        created = await get_watchlist(fastapi_app).add(user_id, item.movie_id)
        if created:
            get_recommendation_service(fastapi_app).request_refresh(user_id)
        return {"movieId": to_content_id(str(item.movie_id)), "created": created}

    @fastapi_app.delete("/api/users/{user_id}/watchlist/{movie_id}", status_code=204)
    async def remove_from_watchlist(user_id: str, movie_id: str) -> Response:
        removed = await get_watchlist(fastapi_app).remove(
            user_id, to_content_id(movie_id)
        )
        if not removed:
            raise HTTPException(
                status_code=404, detail=f"Movie {movie_id} is not on the watchlist"
            )
        get_recommendation_service(fastapi_app).request_refresh(user_id)
        return Response(status_code=204)

    @fastapi_app.get("/api/users/{user_id}/ratings")
    async def list_ratings(user_id: str) -> dict[str, Any]:
        ratings = await get_ratings(fastapi_app).list(user_id)
        return {"ratings": [rating.to_payload() for rating in ratings]}

    @fastapi_app.put("/api/users/{user_id}/ratings/{movie_id}")
    async def rate_movie(user_id: str, movie_id: str, body: RatingIn) -> dict[str, Any]:
        rating = await get_ratings(fastapi_app).upsert(
            user_id, to_content_id(movie_id), body.rating, body.comment
        )
        return rating.to_payload()

    @fastapi_app.delete("/api/users/{user_id}/ratings/{movie_id}", status_code=204)
    async def delete_rating(user_id: str, movie_id: str) -> Response:
        deleted = await get_ratings(fastapi_app).delete(user_id, to_content_id(movie_id))
        if not deleted:
            raise HTTPException(status_code=404, detail=f"No rating for movie {movie_id}")
        return Response(status_code=204)

    @fastapi_app.get("/api/users/{user_id}/recommendations")
    async def recommendations(user_id: str) -> JSONResponse:
        service = get_recommendation_service(fastapi_app)
        try:
            output = await service.recommendations(user_id)
        except WatchlistUnavailable as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return _recommendation_response(output)

    @fastapi_app.post("/api/users/{user_id}/recommendations/refresh")
    async def refresh_recommendations(user_id: str) -> JSONResponse:
        service = get_recommendation_service(fastapi_app)
        try:
            output = await service.refresh(user_id)
        except WatchlistUnavailable as exc:
            raise HTTPException(status_code=503, detail=str(exc)) from exc
        return _recommendation_response(output)

    @fastapi_app.delete("/api/users/{user_id}/session", status_code=204)
    async def close_session(user_id: str) -> Response:
        get_recommendation_service(fastapi_app).close_session(user_id)
        return Response(status_code=204)


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
