from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.database import Database
from app.main import register_routes
from app.models import AggregationOutput, ContentId, ContentSummary
from app.services.ratings import RatingRepository
from app.services.recommendations import RecommendationService, WatchlistUnavailable
from app.services.tmdb import ContentServiceError, TMDBClient
from app.services.watchlist import WatchlistRepository


class DummyTMDBClient(TMDBClient):
    """TMDB client stub serving a fixed catalog."""

    def __init__(self) -> None:  # pragma: no cover - nothing to initialise
        # Deliberately skip super().__init__ to avoid touching the network.
        self.catalog = {
            550: ContentSummary(id=550, title="Fight Club", popularity=61.4),
            603: ContentSummary(id=603, title="The Matrix", popularity=88.4),
        }
        self.fail = False

    async def search(self, query: str) -> list[ContentSummary]:  # type: ignore[override]
        if self.fail:
            raise ContentServiceError("TMDB down")
        return [item for item in self.catalog.values() if query.lower() in item.title.lower()]

    async def trending(self) -> list[ContentSummary]:  # type: ignore[override]
        return list(self.catalog.values())

    async def details(self, content_id: ContentId) -> ContentSummary | None:  # type: ignore[override]
        return self.catalog.get(content_id)  # type: ignore[arg-type]


class DummyRecommendationService(RecommendationService):
    """Recommendation service stub returning canned outcomes."""

    def __init__(self) -> None:  # pragma: no cover - nothing to initialise
        self.outcome: AggregationOutput | None | Exception = AggregationOutput(
            generation=1,
            based_on_watchlist=(ContentSummary(id=603, title="The Matrix", popularity=88.4),),
        )
        self.refresh_requests: list[str] = []
        self.closed: list[str] = []

    async def _resolve(self) -> AggregationOutput | None:
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome

    async def recommendations(self, user_id: str) -> AggregationOutput | None:  # type: ignore[override]
        return await self._resolve()

    async def refresh(self, user_id: str) -> AggregationOutput | None:  # type: ignore[override]
        return await self._resolve()

    def request_refresh(self, user_id: str) -> None:  # type: ignore[override]
        self.refresh_requests.append(user_id)

    def close_session(self, user_id: str) -> bool:  # type: ignore[override]
        self.closed.append(user_id)
        return True


def build_app(tmp_path) -> tuple[FastAPI, DummyTMDBClient, DummyRecommendationService]:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        await database.create_all()
        try:
            yield
        finally:
            await database.dispose()

    app = FastAPI(lifespan=lifespan)
    register_routes(app)
    content = DummyTMDBClient()
    service = DummyRecommendationService()
    app.state.content_client = content
    app.state.watchlist = WatchlistRepository(database.session_factory)
    app.state.ratings = RatingRepository(database.session_factory)
    app.state.recommendation_service = service
    return app, content, service


def test_healthcheck(tmp_path) -> None:
    app, _, _ = build_app(tmp_path)
    with TestClient(app) as client:
        assert client.get("/healthz").json() == {"status": "ok"}


def test_search_requires_query_and_maps_upstream_errors(tmp_path) -> None:
    app, content, _ = build_app(tmp_path)
    with TestClient(app) as client:
        assert client.get("/api/search").status_code == 400

        response = client.get("/api/search", params={"query": "matrix"})
        assert response.status_code == 200
        assert [item["id"] for item in response.json()["results"]] == [603]

        content.fail = True
        assert client.get("/api/search", params={"query": "matrix"}).status_code == 502


def test_movie_details_returns_404_for_unknown_titles(tmp_path) -> None:
    app, _, _ = build_app(tmp_path)
    with TestClient(app) as client:
        assert client.get("/api/movies/550").json()["title"] == "Fight Club"
        assert client.get("/api/movies/1").status_code == 404


def test_watchlist_changes_schedule_a_refresh(tmp_path) -> None:
    app, _, service = build_app(tmp_path)
    with TestClient(app) as client:
        response = client.post("/api/users/alice/watchlist", json={"movieId": 550})
        assert response.status_code == 201
        assert response.json() == {"movieId": 550, "created": True}

        duplicate = client.post("/api/users/alice/watchlist", json={"movieId": 550})
        assert duplicate.json()["created"] is False

        assert client.get("/api/users/alice/watchlist").json() == {"movieIds": [550]}
        assert client.delete("/api/users/alice/watchlist/550").status_code == 204
        assert client.delete("/api/users/alice/watchlist/550").status_code == 404

    assert service.refresh_requests == ["alice", "alice"]


def test_ratings_round_trip(tmp_path) -> None:
    app, _, _ = build_app(tmp_path)
    with TestClient(app) as client:
        response = client.put(
            "/api/users/alice/ratings/550", json={"rating": 4, "comment": "Sharp"}
        )
        assert response.status_code == 200
        assert response.json()["rating"] == 4

        assert client.put("/api/users/alice/ratings/550", json={"rating": 9}).status_code == 422

        ratings = client.get("/api/users/alice/ratings").json()["ratings"]
        assert [(rating["movieId"], rating["comment"]) for rating in ratings] == [(550, "Sharp")]

        assert client.delete("/api/users/alice/ratings/550").status_code == 204
        assert client.delete("/api/users/alice/ratings/550").status_code == 404


def test_recommendation_endpoints_report_outcomes(tmp_path) -> None:
    app, _, service = build_app(tmp_path)
    with TestClient(app) as client:
        response = client.get("/api/users/alice/recommendations")
        assert response.status_code == 200
        payload = response.json()
        assert [item["id"] for item in payload["basedOnWatchlist"]] == [603]
        assert payload["similarMovies"] == []

        service.outcome = None
        refreshed = client.post("/api/users/alice/recommendations/refresh")
        assert refreshed.status_code == 202
        assert refreshed.json() == {"status": "superseded"}

        service.outcome = WatchlistUnavailable("alice")
        assert client.get("/api/users/alice/recommendations").status_code == 503

        assert client.delete("/api/users/alice/session").status_code == 204

    assert service.closed == ["alice"]


def test_added_ids_are_echoed_in_listing_form(tmp_path) -> None:
    app, _, _ = build_app(tmp_path)
    with TestClient(app) as client:
        created = client.post("/api/users/alice/watchlist", json={"movieId": "603"})
        assert created.json() == {"movieId": 603, "created": True}
        assert client.get("/api/users/alice/watchlist").json() == {"movieIds": [603]}

        text_id = client.post("/api/users/alice/watchlist", json={"movieId": "tt0133093"})
        assert text_id.json()["movieId"] == "tt0133093"
