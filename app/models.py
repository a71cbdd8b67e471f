"""Pydantic models describing content and recommendation payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field

ContentId = Union[int, str]
BucketName = Literal["basedOnWatchlist", "similarMovies", "popularInGenres"]

BUCKET_NAMES: tuple[BucketName, ...] = (
    "basedOnWatchlist",
    "similarMovies",
    "popularInGenres",
)

POSTER_BASE_URL = "https://image.tmdb.org/t/p/w500"


class ContentSummary(BaseModel):
    """Represents a single movie as returned by the content catalog."""

    model_config = ConfigDict(frozen=True)

    id: ContentId
    title: str = ""
    release_year: int | None = None
    popularity: float = Field(default=0.0, ge=0)
    poster_path: str | None = None
    genre_ids: tuple[int, ...] = ()
    overview: str | None = None
    vote_average: float | None = None

    @property
    def poster_url(self) -> str | None:
        if not self.poster_path:
            return None
        if self.poster_path.startswith("http"):
            return self.poster_path
        return f"{POSTER_BASE_URL}{self.poster_path}"

    @classmethod
    def from_tmdb_payload(cls, data: Mapping[str, Any]) -> "ContentSummary":
        """Normalise a TMDB movie object (list entry or detail payload)."""

        genre_ids: list[int] = []
        raw_genre_ids = data.get("genre_ids")
        if isinstance(raw_genre_ids, list):
            genre_ids.extend(
                int(value) for value in raw_genre_ids if isinstance(value, int)
            )
        raw_genres = data.get("genres")
        if isinstance(raw_genres, list):
            for genre in raw_genres:
                if isinstance(genre, Mapping) and isinstance(genre.get("id"), int):
                    genre_ids.append(int(genre["id"]))

        popularity = data.get("popularity")
        try:
            popularity_value = max(float(popularity), 0.0) if popularity is not None else 0.0
        except (TypeError, ValueError):
            popularity_value = 0.0

        vote_average = data.get("vote_average")
        return cls(
            id=data["id"],
            title=str(data.get("title") or data.get("name") or ""),
            release_year=_extract_year(data.get("release_date")),
            popularity=popularity_value,
            poster_path=data.get("poster_path") or None,
            genre_ids=tuple(dict.fromkeys(genre_ids)),
            overview=data.get("overview") or None,
            vote_average=float(vote_average) if isinstance(vote_average, (int, float)) else None,
        )

    def to_payload(self) -> dict[str, object]:
        """Return the JSON representation used by the HTTP API."""

        payload: dict[str, object] = {
            "id": self.id,
            "title": self.title,
            "popularity": self.popularity,
            "genreIds": list(self.genre_ids),
        }
        if self.release_year:
            payload["releaseYear"] = self.release_year
        if self.poster_url:
            payload["poster"] = self.poster_url
        if self.overview:
            payload["overview"] = self.overview
        if self.vote_average:
            payload["voteAverage"] = self.vote_average
        return payload


class AggregationOutput(BaseModel):
    """The three recommendation buckets published together for one run."""

    model_config = ConfigDict(frozen=True)

    generation: int
    based_on_watchlist: tuple[ContentSummary, ...] = ()
    similar_movies: tuple[ContentSummary, ...] = ()
    popular_in_genres: tuple[ContentSummary, ...] = ()
    generated_at: datetime = Field(default_factory=datetime.utcnow)

    @classmethod
    def empty(cls, generation: int) -> "AggregationOutput":
        return cls(generation=generation)

    def bucket(self, name: BucketName) -> tuple[ContentSummary, ...]:
        """Return a bucket by its public name."""

        if name == "basedOnWatchlist":
            return self.based_on_watchlist
        if name == "similarMovies":
            return self.similar_movies
        if name == "popularInGenres":
            return self.popular_in_genres
        raise KeyError(name)

    def is_empty(self) -> bool:
        return not any(self.bucket(name) for name in BUCKET_NAMES)

    def to_payload(self) -> dict[str, object]:
        return {
            "generation": self.generation,
            "generatedAt": self.generated_at.isoformat(),
            **{
                name: [item.to_payload() for item in self.bucket(name)]
                for name in BUCKET_NAMES
            },
        }


class WatchlistItemIn(BaseModel):
    """Request body for adding a title to the watchlist."""

    model_config = ConfigDict(populate_by_name=True)

    movie_id: ContentId = Field(alias="movieId")


class RatingIn(BaseModel):
    """Request body for rating a title."""

    rating: int = Field(ge=1, le=5)
    comment: str | None = Field(default=None, max_length=2_000)


def _extract_year(value: object) -> int | None:
    if not isinstance(value, str) or len(value) < 4:
        return None
    try:
        return int(value[:4])
    except ValueError:
        return None
