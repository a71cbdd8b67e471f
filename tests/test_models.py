from app.models import AggregationOutput, ContentSummary, WatchlistItemIn


def test_content_summary_from_tmdb_payload_normalises_fields():
    summary = ContentSummary.from_tmdb_payload(
        {
            "id": 27205,
            "title": "Inception",
            "release_date": "2010-07-15",
            "popularity": "83.5",
            "poster_path": "/inception.jpg",
            "genre_ids": [28, 878, 28],
            "overview": "A thief who steals corporate secrets.",
        }
    )

    assert summary.id == 27205
    assert summary.release_year == 2010
    assert summary.popularity == 83.5
    assert summary.genre_ids == (28, 878)
    assert summary.to_payload()["poster"] == "https://image.tmdb.org/t/p/w500/inception.jpg"


def test_content_summary_defaults_for_sparse_payloads():
    summary = ContentSummary.from_tmdb_payload(
        {"id": 1, "name": "Untitled", "release_date": "", "popularity": None}
    )

    assert summary.title == "Untitled"
    assert summary.release_year is None
    assert summary.popularity == 0.0
    assert summary.poster_url is None
    assert summary.to_payload() == {
        "id": 1,
        "title": "Untitled",
        "popularity": 0.0,
        "genreIds": [],
    }


def test_aggregation_output_payload_uses_bucket_names():
    output = AggregationOutput(
        generation=4,
        based_on_watchlist=(ContentSummary(id=1, title="One", popularity=2),),
    )

    payload = output.to_payload()

    assert payload["generation"] == 4
    assert [item["id"] for item in payload["basedOnWatchlist"]] == [1]
    assert payload["similarMovies"] == []
    assert payload["popularInGenres"] == []
    assert not output.is_empty()
    assert AggregationOutput.empty(5).is_empty()


def test_watchlist_item_accepts_camel_case_and_text_ids():
    assert WatchlistItemIn.model_validate({"movieId": 550}).movie_id == 550
    assert WatchlistItemIn.model_validate({"movie_id": "tt0137523"}).movie_id == "tt0137523"
