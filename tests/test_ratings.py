from datetime import datetime, timedelta, timezone

import pytest

from moviehub.cache import MemoryCache
from moviehub.ratings import RATING_CACHE_TTL, RatingService, parse_avg_ratings
from moviehub.store import MemoryHBaseClient, StoreError

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_client():
    return MemoryHBaseClient(["movie_ratings", "avg_ratings", "tags", "moviedata"])


def make_service(client):
    return RatingService(
        client, MemoryCache(cleanup_interval=0), clock=lambda: NOW, background=False
    )


def add_rating(client, movie_id, user_id, rating, timestamp="1000"):
    client.put(
        "movie_ratings",
        f"{movie_id}_{user_id}",
        {"data": {"rating": rating, "timestamp": timestamp}},
    )


@pytest.fixture
def client():
    c = make_client()
    add_rating(c, "7", "1", "2.0", "111")
    add_rating(c, "7", "2", "4.0", "222")
    add_rating(c, "7", "3", "3.0", "333")
    add_rating(c, "7", "4", "0", "444")
    c.put("movie_ratings", "7_5_x", {"data": {"rating": "5.0"}})
    add_rating(c, "70", "1", "1.0")
    return c


def test_calculate_movie_ratings(client):
    data = make_service(client).calculate_movie_ratings("7")
    assert [r["userId"] for r in data["ratings"]] == ["1", "2", "3"]
    assert data["count"] == 3
    assert data["minRating"] == 2.0
    assert data["maxRating"] == 4.0
    assert data["avgRating"] == 3.0
    assert data["ratings"][0] == {"userId": "1", "rating": 2.0, "timestamp": 111}


def test_calculate_movie_ratings_empty():
    data = make_service(make_client()).calculate_movie_ratings("99")
    assert data == {
        "ratings": [],
        "count": 0,
        "avgRating": 0.0,
        "minRating": 0.0,
        "maxRating": 0.0,
    }


def test_fetch_raw_ratings_list_skips_bad_rows(client):
    ratings = make_service(client).fetch_raw_ratings_list("7")
    assert all(r["rating"] > 0 for r in ratings)
    assert {r["userId"] for r in ratings} == {"1", "2", "3"}


def test_save_movie_stats_round_trip(client):
    service = make_service(client)
    stats = {"avgRating": 3.0, "count": 3, "minRating": 2.0, "maxRating": 4.0}
    service.save_movie_stats("7", stats)
    row = client.get("avg_ratings", "7")
    assert row.family_map()["stats"]["avg_rating"] == b"3.00"
    parsed, updated = parse_avg_ratings(row)
    assert parsed == stats
    assert updated == NOW


def test_save_movie_stats_missing_table_raises():
    service = make_service(MemoryHBaseClient(["movie_ratings"]))
    with pytest.raises(StoreError):
        service.save_movie_stats("7", {"avgRating": 1.0, "count": 1})


def test_parse_avg_ratings_bad_time():
    c = make_client()
    c.put("avg_ratings", "1", {"stats": {"avg_rating": "x", "updated_time": "yesterday"}})
    stats, updated = parse_avg_ratings(c.get("avg_ratings", "1"))
    assert updated is None
    assert stats["avgRating"] == 0.0
    assert stats["count"] == 0


def test_get_movie_ratings_uses_fresh_stats(client):
    fresh = (NOW - timedelta(hours=1)).isoformat()
    client.put(
        "avg_ratings",
        "7",
        {"stats": {"avg_rating": "4.50", "rating_count": "9", "min_rating": "1.0",
                   "max_rating": "5.0", "updated_time": fresh}},
    )
    data = make_service(client).get_movie_ratings("7")
    assert data["avgRating"] == 4.5
    assert data["count"] == 9
    assert [r["userId"] for r in data["ratings"]] == ["1", "2", "3"]


def test_get_movie_ratings_recomputes_stale_stats(client):
    stale = (NOW - RATING_CACHE_TTL - timedelta(hours=1)).isoformat()
    client.put(
        "avg_ratings",
        "7",
        {"stats": {"avg_rating": "4.50", "rating_count": "9", "updated_time": stale}},
    )
    data = make_service(client).get_movie_ratings("7")
    assert data["avgRating"] == 3.0
    assert data["count"] == 3
    stored, updated = parse_avg_ratings(client.get("avg_ratings", "7"))
    assert stored["count"] == 3
    assert updated == NOW


def test_get_movie_rating_stats_reads_and_caches(client):
    client.put(
        "avg_ratings",
        "7",
        {"stats": {"avg_rating": "4.25", "min_rating": "1.5", "max_rating": "5.0",
                   "rating_count": "8"}},
    )
    service = make_service(client)
    first = service.get_movie_rating_stats("7")
    assert first == {"avgRating": 4.25, "minRating": 1.5, "maxRating": 5.0,
                     "countRatings": 8.0}
    client.put("avg_ratings", "7", {"stats": {"avg_rating": "1.00"}})
    assert service.get_movie_rating_stats("7") == first


def test_get_movie_rating_stats_computes_missing(client):
    service = make_service(client)
    stats = service.get_movie_rating_stats("7")
    assert stats["countRatings"] == 3.0
    assert stats["minRating"] == 2.0
    stored, _ = parse_avg_ratings(client.get("avg_ratings", "7"))
    assert stored["count"] == 3


def test_get_movie_tags():
    c = make_client()
    c.put("tags", "5_42_1000", {"data": {"tag": "funny"}})
    c.put("tags", "5_420_1000", {"data": {"tag": "other"}})
    c.put("tags", "6_42_2000", {"data": {"tag": ""}})
    c.put("tags", "a_42_b_c", {"data": {"tag": "broken"}})
    service = make_service(c)
    tags = service.get_movie_tags("42")
    assert tags == [{"userId": "5", "movieId": "42", "tag": "funny", "timestamp": "1000"}]
    c.put("tags", "8_42_3000", {"data": {"tag": "late"}})
    assert service.get_movie_tags("42") == tags


def test_get_user_rating_generic_format():
    c = make_client()
    c.put("moviedata", "3", {"rating": {"rating": "4.5", "timestamp": "99"}})
    assert make_service(c).get_user_rating("3", "1") == (4.5, 99)


def test_get_user_rating_legacy_format():
    c = make_client()
    c.put("moviedata", "3", {"rating": {"rating:12": "2.5", "timestamp:12": "77"}})
    service = make_service(c)
    assert service.get_user_rating("3", "12") == (2.5, 77)
    assert service.get_user_rating("3", "13") == (0.0, 0)


def test_get_user_rating_missing_row_and_table():
    assert make_service(make_client()).get_user_rating("3", "1") == (0.0, 0)
    with pytest.raises(StoreError):
        make_service(MemoryHBaseClient()).get_user_rating("3", "1")