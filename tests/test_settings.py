"""Configuration settings behaviour tests."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.config import Settings


def test_recommendation_limits_default_to_reference_values() -> None:
    settings = Settings(_env_file=None)

    assert settings.recommendation_seed_limit == 5
    assert settings.genre_seed_limit == 3
    assert settings.genre_tag_limit == 3
    assert settings.recommendation_bucket_size == 20


def test_recommendation_limits_are_configurable() -> None:
    settings = Settings(
        _env_file=None,
        RECOMMENDATION_SEED_LIMIT=8,
        GENRE_SEED_LIMIT=2,
        RECOMMENDATION_BUCKET_SIZE=40,
    )

    assert settings.recommendation_seed_limit == 8
    assert settings.genre_seed_limit == 2
    assert settings.recommendation_bucket_size == 40


def test_non_positive_limits_are_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, RECOMMENDATION_SEED_LIMIT=0)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("es_es", "es-ES"), ("EN-us", "en-US"), ("fr", "fr"), ("  ", "en-US")],
)
def test_language_is_normalised(raw: str, expected: str) -> None:
    assert Settings(_env_file=None, TMDB_LANGUAGE=raw).tmdb_language == expected


def test_blank_api_key_is_treated_as_missing() -> None:
    assert Settings(_env_file=None, TMDB_API_KEY="  ").tmdb_api_key is None
