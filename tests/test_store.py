import pytest

from moviehub.store import Cell, MemoryHBaseClient, Result, StoreError


@pytest.fixture
def client():
    store = MemoryHBaseClient(["movies", "avg_ratings"])
    store.put("movies", "1", {"info": {"title": b"Toy Story (1995)", "genres": b"Animation|Comedy"}})
    store.put("movies", "2", {"info": {"title": b"Jumanji (1995)"}})
    store.put("movies", "10", {"info": {"title": b"GoldenEye (1995)"}})
    return store


def test_put_then_get_round_trip(client):
    result = client.get("movies", "1")
    assert result.row == "1"
    assert result.family_map() == {
        "info": {"title": b"Toy Story (1995)", "genres": b"Animation|Comedy"}
    }


def test_cells_are_ordered_by_family_and_qualifier(client):
    client.put("movies", "1", {"extra": {"b": b"2", "a": b"1"}})
    cells = client.get("movies", "1").cells
    order = [(cell.family, cell.qualifier) for cell in cells]
    assert order == sorted(order)
    assert all(isinstance(cell, Cell) for cell in cells) and cells


def test_get_missing_row_is_empty(client):
    result = client.get("movies", "9999")
    assert result.cells == ()
    assert result.row == ""
    assert result.family_map() == {}


def test_get_with_family_and_qualifier_filter(client):
    client.put("movies", "1", {"other": {"x": b"y"}})
    only_title = client.get("movies", "1", {"info": ["title"]})
    assert only_title.family_map() == {"info": {"title": b"Toy Story (1995)"}}
    whole_family = client.get("movies", "1", {"other": None})
    assert whole_family.family_map() == {"other": {"x": b"y"}}


def test_put_merges_into_existing_row(client):
    client.put("movies", "2", {"info": {"genres": "Adventure"}})
    assert client.get("movies", "2").family_map()["info"] == {
        "title": b"Jumanji (1995)",
        "genres": b"Adventure",
    }


def test_scan_returns_rows_in_byte_order(client):
    rows = [result.row for result in client.scan("movies")]
    assert rows == ["1", "10", "2"]


def test_scan_range_is_start_inclusive_stop_exclusive(client):
    rows = [result.row for result in client.scan("movies", "10", "2")]
    assert rows == ["10"]


def test_scan_limit_caps_rows(client):
    results = list(client.scan("movies", limit=2))
    assert [result.row for result in results] == ["1", "10"]


def test_scan_rejects_non_positive_limit(client):
    with pytest.raises(ValueError):
        client.scan("movies", limit=0)


def test_scan_skips_rows_without_matching_cells(client):
    client.put("movies", "3", {"other": {"x": b"y"}})
    rows = [result.row for result in client.scan("movies", families={"other": None})]
    assert rows == ["3"]


def test_unknown_table_raises(client):
    with pytest.raises(StoreError):
        client.get("nope", "1")
    with pytest.raises(StoreError):
        client.scan("nope")
    with pytest.raises(StoreError):
        client.put("nope", "1", {"f": {"q": b"v"}})


def test_empty_put_raises(client):
    with pytest.raises(StoreError):
        client.put("movies", "5", {})
    with pytest.raises(StoreError):
        client.put("movies", "5", {"info": {}})


def test_non_bytes_value_is_rejected(client):
    with pytest.raises(TypeError):
        client.put("movies", "5", {"info": {"title": 42}})


def test_result_family_map_from_cells():
    result = Result((Cell("7", "stats", "avg_rating", b"3.5"), Cell("7", "stats", "rating_count", b"4")))
    assert result.family_map() == {"stats": {"avg_rating": b"3.5", "rating_count": b"4"}}
    assert result.row == "7"