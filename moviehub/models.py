"""Movie models and the catalogue queries that build them."""

from __future__ import annotations

import random
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .cache import MemoryCache
from .repository import TOTAL_MOVIES, MovieRepository, _parse_int, parse_movie_data
from .store import Result, StoreError

_MISSING = object()
_rng = random.Random()


def extract_year(title: str) -> int | None:
    """The year in a title ending in ``" (YYYY)"``, or None."""
    parts = title.split(" (")
    if len(parts) < 2:
        return None
    text = parts[-1]
    if text.endswith(")"):
        text = text[:-1]
    return _parse_int(text)


def generate_random_ids(maximum: int, count: int, rng: Any = None) -> list[int]:
    """``count`` distinct ids between 1 and ``maximum``; at most ``maximum`` of them."""
    generator = rng if rng is not None else _rng
    count = min(count, maximum)
    ids: set[int] = set()
    while len(ids) < count:
        ids.add(generator.randrange(maximum) + 1)
    return list(ids)


def _string_list(value: Any) -> tuple[str, ...] | None:
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return tuple(value)
    return None


@dataclass(frozen=True)
class Links:
    """External links of a movie."""

    imdb_id: str = ""
    imdb_url: str = ""
    tmdb_id: str = ""
    tmdb_url: str = ""

    @classmethod
    def from_mapping(cls, links: Mapping[str, Any]) -> Links:
        def text(key: str) -> str:
            value = links.get(key)
            return value if isinstance(value, str) else ""

        return cls(
            imdb_id=text("imdbId"),
            imdb_url=text("imdbUrl"),
            tmdb_id=text("tmdbId"),
            tmdb_url=text("tmdbUrl"),
        )

    def to_dict(self) -> dict[str, str]:
        pairs = (
            ("imdbId", self.imdb_id),
            ("imdbUrl", self.imdb_url),
            ("tmdbId", self.tmdb_id),
            ("tmdbUrl", self.tmdb_url),
        )
        return {key: value for key, value in pairs if value}


@dataclass(frozen=True)
class Movie:
    """A movie as served to clients."""

    movie_id: str
    title: str = ""
    genres: tuple[str, ...] | None = None
    year: int = 0
    avg_rating: float = 0.0
    links: Links = field(default_factory=Links)
    tags: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "movieId": self.movie_id,
            "title": self.title,
            "genres": list(self.genres) if self.genres is not None else None,
        }
        if self.year:
            data["year"] = self.year
        data["avgRating"] = self.avg_rating
        data["links"] = self.links.to_dict()
        if self.tags:
            data["tags"] = list(self.tags)
        return data


@dataclass(frozen=True)
class Rating:
    """One user's rating."""

    user_id: str
    rating: float

    def to_dict(self) -> dict[str, Any]:
        return {"userId": self.user_id, "rating": self.rating}


@dataclass(frozen=True)
class MovieDetail:
    """A movie with its ratings and summary statistics."""

    movie: Movie
    ratings: tuple[Rating, ...] = ()
    tagged_users: tuple[Mapping[str, str], ...] = ()
    stats: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"movie": self.movie.to_dict()}
        if self.ratings:
            data["ratings"] = [rating.to_dict() for rating in self.ratings]
        if self.tagged_users:
            data["taggedUsers"] = [dict(user) for user in self.tagged_users]
        if self.stats:
            data["stats"] = dict(self.stats)
        return data


@dataclass(frozen=True)
class MovieList:
    """One page of movies."""

    movies: tuple[Movie, ...]
    total_movies: int
    page: int
    per_page: int
    total_pages: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "movies": [movie.to_dict() for movie in self.movies],
            "totalMovies": self.total_movies,
            "page": self.page,
            "perPage": self.per_page,
            "totalPages": self.total_pages,
        }


def _movie_from(movie_id: str, data: Mapping[str, Any], *, with_links: bool) -> Movie:
    title = data.get("title")
    title_text = title if isinstance(title, str) else ""
    year = extract_year(title_text) if isinstance(title, str) else None
    avg = data.get("avgRating")
    links = data.get("links")
    return Movie(
        movie_id=movie_id,
        title=title_text,
        genres=_string_list(data.get("genres")),
        year=year or 0,
        avg_rating=avg if isinstance(avg, float) else 0.0,
        links=Links.from_mapping(links) if with_links and isinstance(links, Mapping) else Links(),
        tags=_string_list(data.get("uniqueTags")) or (),
    )


def _page_count(total: int, per_page: int) -> int:
    return (total + per_page - 1) // per_page


class MovieCatalog:
    """Movie listings, details, random picks and search, cached."""

    def __init__(
        self,
        repository: MovieRepository,
        cache: MemoryCache | None = None,
        *,
        rng: Any = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.repository = repository
        self.cache = cache if cache is not None else repository.cache
        self._rng = rng
        self._clock = clock

    def get_movie_by_id(self, movie_id: str) -> MovieDetail | None:
        """Details of a movie, or None if it does not exist."""
        key = f"movie_detail:{movie_id}"
        cached = self.cache.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        data = self.repository.get_movie(movie_id)
        if data is None:
            return None
        parsed = parse_movie_data(movie_id, data)
        movie = _movie_from(movie_id, parsed, with_links=True)

        ratings: tuple[Rating, ...] = ()
        raw_ratings = parsed.get("ratings")
        if isinstance(raw_ratings, list):
            ratings = tuple(
                Rating(entry["userId"], entry["rating"])
                for entry in raw_ratings
                if isinstance(entry, Mapping)
                and isinstance(entry.get("userId"), str)
                and isinstance(entry.get("rating"), float)
            )

        detail = MovieDetail(
            movie=movie,
            ratings=ratings,
            stats={"ratingCount": float(len(ratings)), "tagCount": float(len(movie.tags))},
        )
        self.cache.set(key, detail)
        return detail

    def get_movies_list(self, page: int, per_page: int) -> MovieList:
        """A page of movies by row key; the total is the catalogue size."""
        if per_page < 1:
            raise ValueError("per_page must be positive")
        start = (page - 1) * per_page + 1
        end = start + per_page
        results = self.repository.scan_movies(str(start), str(end), per_page)

        movies = []
        for result in results:
            movie_id = result.row
            if not movie_id:
                continue
            parsed = parse_movie_data(movie_id, result.family_map())
            movies.append(_movie_from(movie_id, parsed, with_links=True))

        return MovieList(
            movies=tuple(movies),
            total_movies=TOTAL_MOVIES,
            page=page,
            per_page=per_page,
            total_pages=_page_count(TOTAL_MOVIES, per_page),
        )

    def get_random_movies(self, count: int) -> list[Movie]:
        """Up to ``count`` random movies; the pick is kept for the current hour."""
        key = f"random_movies:{count}:{self._clock().hour}"
        cached = self.cache.get(key, _MISSING)
        if cached is not _MISSING:
            return list(cached)

        movies = []
        for number in generate_random_ids(TOTAL_MOVIES, count, self._rng):
            movie_id = str(number)
            try:
                data = self.repository.get_movie(movie_id)
            except StoreError:
                continue
            if data is None:
                continue
            parsed = parse_movie_data(movie_id, data)
            movies.append(_movie_from(movie_id, parsed, with_links=False))

        self.cache.set(key, tuple(movies))
        return movies

    def _scan_titles(self) -> Iterator[Result]:
        try:
            yield from self.repository.client.scan(
                "movies", None, None, {"info": ["title", "genres"]}
            )
        except StoreError:
            return

    def _fetch_parsed(self, movie_id: str) -> dict[str, Any] | None:
        try:
            data = self.repository.get_movie(movie_id)
        except StoreError:
            return None
        return parse_movie_data(movie_id, data or {})

    def search_movies(self, query: str, page: int, per_page: int) -> MovieList:
        """Movies whose title or a genre contains ``query``, ignoring case, paged."""
        if per_page < 1:
            raise ValueError("per_page must be positive")
        key = f"search:{query}:{page}:{per_page}"
        cached = self.cache.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        needle = query.lower()
        matched: list[Movie] = []
        for result in self._scan_titles():
            if not result.cells:
                continue
            movie_id = result.row
            title = genres = ""
            for cell in result.cells:
                if cell.family == "info":
                    if cell.qualifier == "title":
                        title = cell.value.decode("utf-8", errors="replace")
                    elif cell.qualifier == "genres":
                        genres = cell.value.decode("utf-8", errors="replace")

            if title and needle in title.lower():
                parsed = self._fetch_parsed(movie_id)
                if parsed is None:
                    continue
                genre_list = _string_list(parsed.get("genres"))
                if genre_list is None and genres:
                    genre_list = tuple(genres.split("|"))
                matched.append(self._search_hit(movie_id, title, genre_list, parsed))
                continue

            if genres:
                genre_list = tuple(genres.split("|"))
                for genre in genre_list:
                    if needle not in genre.lower():
                        continue
                    parsed = self._fetch_parsed(movie_id)
                    if parsed is None:
                        continue
                    matched.append(self._search_hit(movie_id, title, genre_list, parsed))
                    break

        total = len(matched)
        start = (page - 1) * per_page
        page_movies = tuple(matched[start : start + per_page]) if start < total else ()
        listing = MovieList(
            movies=page_movies,
            total_movies=total,
            page=page,
            per_page=per_page,
            total_pages=_page_count(total, per_page),
        )
        self.cache.set(key, listing)
        return listing

    @staticmethod
    def _search_hit(
        movie_id: str,
        title: str,
        genres: tuple[str, ...] | None,
        parsed: Mapping[str, Any],
    ) -> Movie:
        avg = parsed.get("avgRating")
        links = parsed.get("links")
        return Movie(
            movie_id=movie_id,
            title=title,
            genres=genres,
            year=extract_year(title) or 0,
            avg_rating=avg if isinstance(avg, float) else 0.0,
            links=Links.from_mapping(links) if isinstance(links, Mapping) else Links(),
        )