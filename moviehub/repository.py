"""Movie lookups and scans over the movie tables."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from .cache import MemoryCache
from .store import Families, HBaseClient, Result, StoreError

logger = logging.getLogger(__name__)

TOTAL_MOVIES = 9742
VALID_COMPRESSIONS = frozenset({"SNAPPY", "GZ", "LZO", "NONE"})
_COMPRESSED_FAMILIES = ("movie", "link", "rating", "tag")
_MISSING = object()
_INTEGER = re.compile(r"[+-]?[0-9]+")

FamilyData = dict[str, dict[str, bytes]]


def _text(value: bytes) -> str:
    return value.decode("utf-8", errors="replace")


def _parse_float(text: str) -> float | None:
    if not text or text != text.strip() or "_" in text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _parse_int(text: str) -> int | None:
    return int(text) if _INTEGER.fullmatch(text) else None


def _links(link_data: Mapping[str, bytes]) -> dict[str, str]:
    links: dict[str, str] = {}
    if "imdbId" in link_data:
        imdb_id = _text(link_data["imdbId"])
        links["imdbId"] = imdb_id
        links["imdbUrl"] = f"https://www.imdb.com/title/tt{imdb_id}/"
    if "tmdbId" in link_data:
        tmdb_id = _text(link_data["tmdbId"])
        links["tmdbId"] = tmdb_id
        links["tmdbUrl"] = f"https://www.themoviedb.org/movie/{tmdb_id}"
    return links


def parse_movie_data(movie_id: str, data: Mapping[str, Mapping[str, bytes]]) -> dict[str, Any]:
    """Turn ``{family: {qualifier: value}}`` into a movie description."""
    movie: dict[str, Any] = {"movieId": movie_id}

    info = data.get("info")
    if info is not None:
        if "title" in info:
            movie["title"] = _text(info["title"])
        if "genres" in info:
            movie["genres"] = _text(info["genres"]).split("|")

    if "external" in data:
        movie["links"] = _links(data["external"])
    elif "link" in data:
        movie["links"] = _links(data["link"])
    else:
        movie["links"] = {}

    if "stats" in data:
        stats = data["stats"]
        if "avg_rating" in stats:
            rating = _parse_float(_text(stats["avg_rating"]))
            if rating is not None:
                movie["avgRating"] = rating
        if "rating_count" in stats:
            count = _parse_int(_text(stats["rating_count"]))
            if count is not None:
                movie["ratingCount"] = count
    elif "rating" in data:
        rating_data = data["rating"]
        if "rating" in rating_data:
            rating = _parse_float(_text(rating_data["rating"]))
            if rating is not None:
                movie["avgRating"] = rating

    return movie


def enable_compression(compression: str) -> list[str]:
    """Return the shell commands that set ``compression`` on the movie data families.

    Raises ValueError for an unknown compression algorithm.
    """
    algorithm = compression.upper()
    if algorithm not in VALID_COMPRESSIONS:
        raise ValueError(
            f"invalid compression algorithm: {compression}. "
            "Valid options are: SNAPPY, GZ, LZO, NONE"
        )
    commands = [
        f"alter 'moviedata', {{NAME => '{family}', COMPRESSION => '{algorithm}'}}"
        for family in _COMPRESSED_FAMILIES
    ]
    logger.info("Run the compression commands in the HBase shell to set family compression")
    return commands


class MovieRepository:
    """Reads movies from the store, caching the expensive scans."""

    def __init__(self, client: HBaseClient, cache: MemoryCache | None = None) -> None:
        self.client = client
        self.cache = cache if cache is not None else MemoryCache(cleanup_interval=0)

    def _scan(
        self,
        table: str,
        start_row: str | None = None,
        stop_row: str | None = None,
        families: Families | None = None,
    ) -> Iterator[Result]:
        # A failing scan ends the iteration, keeping the rows read so far.
        try:
            yield from self.client.scan(table, start_row, stop_row, families)
        except StoreError as exc:
            logger.debug("scan of %s stopped: %s", table, exc)

    def _cached(self, key: str) -> Any:
        return self.cache.get(key, _MISSING)

    def check_connection(self) -> None:
        """Fetch a known row to check the store answers; raises StoreError if not."""
        try:
            self.client.get("movies", "1")
        except StoreError:
            logger.error("HBase connection failed")
            raise
        logger.info("HBase connection succeeded")

    def get_movie(self, movie_id: str) -> FamilyData | None:
        """Gather a movie's info, links and average rating; None if it does not exist."""
        result = self.client.get("movies", movie_id)
        if not result.cells:
            return None
        data = result.family_map()

        for table, family in (("links", "link"), ("avg_ratings", "rating")):
            try:
                extra = self.client.get(table, movie_id)
            except StoreError:
                continue
            for cell in extra.cells:
                data.setdefault(family, {})[cell.qualifier] = cell.value

        return data

    def get_movie_with_families(
        self, movie_id: str, families: Iterable[str]
    ) -> FamilyData | None:
        """Fetch the given families of a movie data row; None if absent."""
        wanted = {family: None for family in families}
        result = self.client.get("moviedata", movie_id, wanted)
        if not result.cells:
            return None
        return result.family_map()

    def get_movies_multiple(self, movie_ids: Iterable[str]) -> dict[str, FamilyData]:
        """Fetch several movies concurrently, leaving out missing or failing ones."""
        ids = list(movie_ids)
        if not ids:
            return {}

        def fetch(movie_id: str) -> FamilyData | None:
            try:
                return self.get_movie(movie_id)
            except StoreError:
                return None

        with ThreadPoolExecutor(max_workers=min(len(ids), 16)) as pool:
            fetched = list(pool.map(fetch, ids))
        return {movie_id: data for movie_id, data in zip(ids, fetched) if data is not None}

    def scan_movies(self, start_row: str, end_row: str, limit: int) -> list[Result]:
        """Scan ``movies`` from ``start_row`` up to ``end_row``, cached.

        ``limit`` is a fetch-size hint and part of the cache key.
        """
        key = f"scan_movies:{start_row}:{end_row}:{limit}"
        cached = self._cached(key)
        if cached is not _MISSING:
            return list(cached)
        results = list(self._scan("movies", start_row, end_row))
        self.cache.set(key, tuple(results))
        return results

    def scan_movies_with_families(
        self, start_row: str, end_row: str, families: Iterable[str], limit: int
    ) -> list[Result]:
        """Scan ``movies`` over a row range, reading only ``families``."""
        wanted = {family: None for family in families}
        return list(self._scan("movies", start_row, end_row, wanted))

    def scan_movies_by_genre(self, genre: str, limit: int) -> list[Result]:
        """Movie data rows whose ``movie:genres`` contains ``genre``, at most ``limit``."""
        results: list[Result] = []
        for result in self._scan("moviedata"):
            if any(
                cell.family == "movie"
                and cell.qualifier == "genres"
                and genre in _text(cell.value)
                for cell in result.cells
            ):
                results.append(result)
                if len(results) >= limit:
                    break
        return results

    def scan_movies_by_tag(self, tag: str, limit: int) -> list[Result]:
        """Movie data rows with a ``tag`` cell containing ``tag``, at most ``limit``."""
        results: list[Result] = []
        for result in self._scan("moviedata", families={"tag": None}):
            if any(cell.family == "tag" and tag in _text(cell.value) for cell in result.cells):
                results.append(result)
                if len(results) >= limit:
                    break
        return results

    def scan_movies_with_pagination(self, page: int, page_size: int) -> tuple[list[Result], int]:
        """One page of ``movies`` and the total number of movies."""
        start_row = str((page - 1) * page_size + 1)
        end_row = str(page * page_size + 1)
        return list(self._scan("movies", start_row, end_row)), TOTAL_MOVIES

    def get_movies_by_rating_range(
        self, min_rating: float, max_rating: float, limit: int
    ) -> list[str]:
        """Ids of movies whose average rating lies in the closed range, cached."""
        key = f"movies_by_rating:{min_rating:f}:{max_rating:f}:{limit}"
        cached = self._cached(key)
        if cached is not _MISSING:
            return list(cached)

        matched: list[str] = []
        for result in self._scan("avg_ratings", families={"stats": ["avg_rating"]}):
            if not result.cells:
                continue
            avg_rating = 0.0
            for cell in result.cells:
                if cell.family == "stats" and cell.qualifier == "avg_rating":
                    avg_rating = _parse_float(_text(cell.value)) or 0.0
                    break
            if min_rating <= avg_rating <= max_rating:
                matched.append(result.row)
                if len(matched) >= limit:
                    break

        self.cache.set(key, tuple(matched))
        return matched

    def get_movie_with_all_data(self, movie_id: str) -> dict[str, Any] | None:
        """The parsed movie data row, or None if absent."""
        result = self.client.get("moviedata", movie_id)
        if not result.cells:
            return None
        return parse_movie_data(movie_id, result.family_map())