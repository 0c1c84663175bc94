# moviehub

moviehub is a small JSON web API, built with Flask, for browsing movies,
searching them and reading their ratings. Its data is read through a
wide-column store interface: tables of rows, and in each row cells grouped
by column family. Reads go through an in-memory cache with expiry. A
built-in HTML panel starts a background writer that sends random ratings,
so you can watch write load and see which movies get written most.

## Installation

```
pip install .
```

To install the test dependencies as well:

```
pip install ".[test]"
```

## Building and running the application

The Flask application is made by `moviehub.app.create_app`, from a movie
catalogue, a rating service, a cache and a write manager, all sharing one
store client:

```python
from moviehub.app import create_app
from moviehub.cache import MemoryCache
from moviehub.models import MovieCatalog
from moviehub.ratings import RatingService
from moviehub.repository import MovieRepository
from moviehub.store import MemoryHBaseClient
from moviehub.write_manager import WriteManager

client = MemoryHBaseClient(
    ["movies", "links", "avg_ratings", "movie_ratings", "ratings", "moviedata", "tags"]
)
client.put("movies", "1", {"info": {"title": "Toy Story (1995)", "genres": "Animation|Comedy"}})

cache = MemoryCache(default_expiration=300, cleanup_interval=600)
repository = MovieRepository(client, cache)
catalog = MovieCatalog(repository, cache)
ratings = RatingService(client, cache)
write_manager = WriteManager(client)

app = create_app(catalog, ratings, cache, write_manager)
app.run(port=5000)
```

`MemoryHBaseClient` only knows the tables it is given; a request to any
other table raises `moviehub.store.StoreError`.

## HTTP API

| Method | Path                      | Purpose                                                             |
|--------|---------------------------|---------------------------------------------------------------------|
| GET    | `/api/movies`             | Paged list (`page`, `per_page`; 12 per page by default, at most 50) |
| GET    | `/api/movies/<id>`        | Movie detail with links, tags, ratings and stats                    |
| GET    | `/api/movies/random`      | Random movies (`count`; 6 by default, at most 20)                   |
| POST   | `/api/movies/random`      | The same, with the count given as `{"count": n}` in a JSON body     |
| GET    | `/api/movies/search`      | Search titles and genres (`query`, `page`, `per_page`)              |
| GET    | `/api/ratings/movie/<id>` | All ratings for a movie, with count, average, minimum and maximum   |
| GET    | `/api/system/logs`        | Sample system log lines (`lines`; 20 by default, at most 100)       |
| GET    | `/api/system/cache`       | Cache statistics: entries, expired entries, hits, misses, hit rate  |
| GET    | `/api/write/panel`        | HTML control panel for the random writer                            |
| POST   | `/api/write/start`        | Start random rating writes                                          |
| POST   | `/api/write/stop`         | Stop random rating writes                                           |
| GET    | `/api/write/status`       | Whether the writer is running, and its most recent write log        |
| GET    | `/api/write/hotspots`     | The ten movie ids written most often                                |

Responses carry CORS headers allowing any origin. The "random" movies for
a given count are cached and stay the same within one hour of the clock.

## The modules

- `moviehub.config`: `get_config(environ=None)` builds a `Config` of
  `HBaseConfig` and `ServerConfig` from environment variables. Any variable
  that is unset or empty takes its default:

  | Variable           | Default        |
  |--------------------|----------------|
  | `HBASE_HOST`       | `192.168.2.24` |
  | `HBASE_ZKQUORUM`   | `192.168.2.24` |
  | `HBASE_ZKPORT`     | `2181`         |
  | `HBASE_MASTERPORT` | `16000`        |
  | `HBASE_THRIFTPORT` | `9090`         |
  | `SERVER_PORT`      | `5000`         |

- `moviehub.cache.MemoryCache`: a thread-safe cache with per-item expiry
  (durations in seconds), an optional background cleanup thread and hit
  statistics.
- `moviehub.store`: the `HBaseClient` interface (`get`, `scan`, `put`),
  `Cell`, `Result` and the in-memory `MemoryHBaseClient`.
- `moviehub.repository.MovieRepository`: movie lookups and scans;
  `parse_movie_data` turns family data into a movie description, and
  `enable_compression` returns the shell commands that set a compression
  algorithm on the movie data families.
- `moviehub.ratings.RatingService`: computes rating statistics, stores them
  in `avg_ratings` and reuses them for a day; also serves tags and per-user
  ratings.
- `moviehub.models.MovieCatalog`: builds the list, detail, random and
  search responses as `Movie`, `MovieDetail` and `MovieList` values.
- `moviehub.write_manager.WriteManager`: the random rating writer, with its
  log of the last hundred writes and per-movie write counts.
- `moviehub.panel.render_write_panel`: the HTML of the writer panel.

## What it does not do

- There is no command that starts the server; build the application with
  `create_app` as shown above and run it with Flask.
- There is no client for a real HBase cluster. `MemoryHBaseClient` is the
  only implementation of `HBaseClient`, and its data lives in memory only.
  `get_config` reads the connection settings, but nothing in the package
  connects with them.

## Running the tests

```
pytest
```