"""Rating statistics, raw rating lists, tags and per-user ratings."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from .cache import MemoryCache
from .repository import _parse_float, _parse_int, _text
from .store import Families, HBaseClient, Result, StoreError

logger = logging.getLogger(__name__)

RATING_CACHE_TTL = timedelta(hours=24)
_MISSING = object()
_RATING_FAMILIES: Families = {"data": ["rating", "timestamp"]}


def _now() -> datetime:
    return datetime.now().astimezone()


def _format_rfc3339(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.astimezone()
    text = moment.isoformat(timespec="seconds")
    if text.endswith("+00:00"):
        text = text[:-6] + "Z"
    return text


def _parse_rfc3339(text: str) -> datetime | None:
    if len(text) < 11 or text[10] not in "Tt":
        return None
    if text[-1] in "Zz":
        text = text[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        return None
    return moment if moment.tzinfo is not None else None


def _float_or_zero(value: bytes) -> float:
    parsed = _parse_float(_text(value))
    return parsed if parsed is not None else 0.0


def _int_or_zero(value: bytes) -> int:
    parsed = _parse_int(_text(value))
    return parsed if parsed is not None else 0


def parse_avg_ratings(result: Result) -> tuple[dict[str, Any], datetime | None]:
    """Read the statistics of an ``avg_ratings`` row and when they were written.

    Unparseable values count as zero; an unparseable or missing update
    time gives None.
    """
    avg = minimum = maximum = 0.0
    count = 0
    updated: datetime | None = None
    for cell in result.cells:
        if cell.qualifier == "avg_rating":
            avg = _float_or_zero(cell.value)
        elif cell.qualifier == "rating_count":
            count = _int_or_zero(cell.value)
        elif cell.qualifier == "min_rating":
            minimum = _float_or_zero(cell.value)
        elif cell.qualifier == "max_rating":
            maximum = _float_or_zero(cell.value)
        elif cell.qualifier == "updated_time":
            updated = _parse_rfc3339(_text(cell.value))
    stats = {"avgRating": avg, "count": count, "minRating": minimum, "maxRating": maximum}
    return stats, updated


class RatingService:
    """Computes, stores and serves rating data.

    Freshly computed statistics are written back to ``avg_ratings`` on a
    background thread, or inline when ``background`` is false.
    """

    def __init__(
        self,
        client: HBaseClient,
        cache: MemoryCache | None = None,
        *,
        clock: Callable[[], datetime] = _now,
        background: bool = True,
    ) -> None:
        self.client = client
        self.cache = cache if cache is not None else MemoryCache(cleanup_interval=0)
        self._clock = clock
        self._background = background

    def _scan(self, table: str, start_row: str | None, stop_row: str | None, families: Families):
        # A failing scan ends the iteration, keeping the rows read so far.
        try:
            yield from self.client.scan(table, start_row, stop_row, families)
        except StoreError as exc:
            logger.debug("scan of %s stopped: %s", table, exc)

    def _save_logged(self, movie_id: str, stats: dict[str, Any]) -> None:
        try:
            self.save_movie_stats(movie_id, stats)
        except StoreError as exc:
            logger.error("saving statistics of movie %s failed: %s", movie_id, exc)

    def _save_later(self, movie_id: str, stats: dict[str, Any]) -> None:
        if self._background:
            threading.Thread(
                target=self._save_logged, args=(movie_id, stats), daemon=True
            ).start()
        else:
            self._save_logged(movie_id, stats)

    def get_movie_rating_stats(self, movie_id: str) -> dict[str, float]:
        """Average, minimum, maximum and count of a movie's ratings, cached.

        Statistics missing from ``avg_ratings`` are computed and stored.
        """
        key = f"movie_rating_stats:{movie_id}"
        cached = self.cache.get(key, _MISSING)
        if cached is not _MISSING:
            return dict(cached)

        result = self.client.get("avg_ratings", movie_id)
        if not result.cells:
            logger.info("rating statistics of movie %s not found, recalculating", movie_id)
            full = self.calculate_movie_ratings(movie_id)
            self._save_later(movie_id, full)
            stats = {
                "avgRating": full["avgRating"],
                "minRating": full["minRating"],
                "maxRating": full["maxRating"],
                "countRatings": float(full["count"]),
            }
            self.cache.set(key, stats)
            return dict(stats)

        avg = minimum = maximum = 0.0
        count = 0
        for cell in result.cells:
            if cell.family != "stats":
                continue
            if cell.qualifier == "avg_rating":
                avg = _float_or_zero(cell.value)
            elif cell.qualifier == "min_rating":
                minimum = _float_or_zero(cell.value)
            elif cell.qualifier == "max_rating":
                maximum = _float_or_zero(cell.value)
            elif cell.qualifier == "rating_count":
                count = _int_or_zero(cell.value)

        stats = {
            "avgRating": avg,
            "minRating": minimum,
            "maxRating": maximum,
            "countRatings": float(count),
        }
        self.cache.set(key, stats)
        return dict(stats)

    def get_movie_ratings(self, movie_id: str) -> dict[str, Any]:
        """A movie's ratings with their statistics.

        Statistics stored less than a day ago are reused; otherwise they are
        recomputed from the raw ratings and stored again.
        """
        try:
            result = self.client.get("avg_ratings", movie_id)
        except StoreError:
            result = Result()
        if result.cells:
            stats, updated = parse_avg_ratings(result)
            if updated is not None and self._clock() - updated < RATING_CACHE_TTL:
                logger.info("rating statistics cache hit: %s", movie_id)
                stats["ratings"] = self.fetch_raw_ratings_list(movie_id)
                return stats
            logger.info("rating statistics cache expired: %s", movie_id)

        logger.info("rating statistics cache miss, calculating: %s", movie_id)
        full = self.calculate_movie_ratings(movie_id)
        self._save_later(movie_id, full)
        return full

    def calculate_movie_ratings(self, movie_id: str) -> dict[str, Any]:
        """Compute a movie's statistics from its rows in ``movie_ratings``."""
        ratings = self.fetch_raw_ratings_list(movie_id)
        if not ratings:
            return {
                "ratings": [],
                "count": 0,
                "avgRating": 0.0,
                "minRating": 0.0,
                "maxRating": 0.0,
            }
        values = [entry["rating"] for entry in ratings]
        return {
            "ratings": ratings,
            "count": len(values),
            "avgRating": sum(values) / len(values),
            "minRating": min(values),
            "maxRating": max(values),
        }

    def fetch_raw_ratings_list(self, movie_id: str) -> list[dict[str, Any]]:
        """The positive ratings of a movie, as ``userId``, ``rating`` and ``timestamp``."""
        ratings: list[dict[str, Any]] = []
        for result in self._scan(
            "movie_ratings", f"{movie_id}_", f"{movie_id}_z", _RATING_FAMILIES
        ):
            if not result.cells:
                continue
            parts = result.row.split("_")
            if len(parts) != 2:
                continue
            rating = 0.0
            timestamp = 0
            for cell in result.cells:
                if cell.qualifier == "rating":
                    rating = _float_or_zero(cell.value)
                elif cell.qualifier == "timestamp":
                    timestamp = _int_or_zero(cell.value)
            if rating > 0:
                ratings.append({"userId": parts[1], "rating": rating, "timestamp": timestamp})
        return ratings

    def save_movie_stats(self, movie_id: str, stats: dict[str, Any]) -> None:
        """Write computed statistics to ``avg_ratings``; raises StoreError on failure."""
        avg = stats.get("avgRating")
        count = stats.get("count")
        minimum = stats.get("minRating")
        maximum = stats.get("maxRating")
        avg = avg if isinstance(avg, float) else 0.0
        count = count if isinstance(count, int) and not isinstance(count, bool) else 0
        minimum = minimum if isinstance(minimum, float) else 0.0
        maximum = maximum if isinstance(maximum, float) else 0.0

        values = {
            "stats": {
                "avg_rating": f"{avg:.2f}",
                "rating_count": str(count),
                "min_rating": f"{minimum:.1f}",
                "max_rating": f"{maximum:.1f}",
                "updated_time": _format_rfc3339(self._clock()),
            }
        }
        try:
            self.client.put("avg_ratings", movie_id, values)
        except StoreError as exc:
            raise StoreError(f"writing avg_ratings failed: {exc}") from exc
        logger.info(
            "stored rating statistics of movie %s: avg %.2f, count %d, min %.1f, max %.1f",
            movie_id,
            avg,
            count,
            minimum,
            maximum,
        )

    def get_movie_tags(self, movie_id: str) -> list[dict[str, Any]]:
        """The tags users gave a movie, from ``userId_movieId_timestamp`` rows, cached."""
        key = f"movie_tags:{movie_id}"
        cached = self.cache.get(key, _MISSING)
        if cached is not _MISSING:
            return [dict(tag) for tag in cached]

        tags: list[dict[str, Any]] = []
        marker = f"_{movie_id}_"
        for result in self._scan("tags", None, None, {"data": ["tag"]}):
            if not result.cells or marker not in result.row:
                continue
            parts = result.row.split("_")
            if len(parts) != 3:
                continue
            content = ""
            for cell in result.cells:
                if cell.family == "data" and cell.qualifier == "tag":
                    content = _text(cell.value)
            if content:
                tags.append(
                    {
                        "userId": parts[0],
                        "movieId": movie_id,
                        "tag": content,
                        "timestamp": parts[2],
                    }
                )

        self.cache.set(key, tuple(tags))
        return [dict(tag) for tag in tags]

    def get_user_rating(self, movie_id: str, user_id: str) -> tuple[float, int]:
        """A user's rating of a movie and its timestamp; ``(0.0, 0)`` when absent."""
        result = self.client.get("moviedata", movie_id, {"rating": None})
        if not result.cells:
            return 0.0, 0

        rating = 0.0
        timestamp = 0
        rating_data = result.family_map().get("rating")
        if rating_data is not None:
            if "rating" in rating_data:
                rating = _float_or_zero(rating_data["rating"])
                if "timestamp" in rating_data:
                    timestamp = _int_or_zero(rating_data["timestamp"])
                return rating, timestamp
            legacy_rating = rating_data.get(f"rating:{user_id}")
            if legacy_rating is not None:
                rating = _float_or_zero(legacy_rating)
            legacy_timestamp = rating_data.get(f"timestamp:{user_id}")
            if legacy_timestamp is not None:
                timestamp = _int_or_zero(legacy_timestamp)
        return rating, timestamp