"""Background generation of random rating writes, with logs and hotspot counts."""

from __future__ import annotations

import logging
import queue
import random
import threading
import time
from collections import Counter, deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .ratings import _format_rfc3339, _now
from .store import HBaseClient, StoreError

logger = logging.getLogger(__name__)

MAX_LOGS = 100
QUEUE_FULL_ERROR = "write queue is full"


def write_rating(client: HBaseClient, movie_id: str, user_id: str, rating: float) -> None:
    """Store one rating in ``ratings`` and ``movie_ratings``; raises StoreError on failure."""
    timestamp = time.time_ns() // 1_000_000
    values = {"data": {"rating": f"{rating:.1f}", "timestamp": str(timestamp)}}

    try:
        client.put("ratings", f"{user_id}_{movie_id}", values)
    except StoreError as exc:
        raise StoreError(f"writing to ratings failed: {exc}") from exc

    try:
        client.put("movie_ratings", f"{movie_id}_{user_id}", values)
    except StoreError as exc:
        raise StoreError(f"writing to movie_ratings failed: {exc}") from exc


@dataclass(frozen=True)
class _Task:
    movie_id: str
    user_id: str
    rating: float
    entry: dict[str, Any]


class WriteManager:
    """Periodically writes random ratings through a pool of worker threads.

    Every ``interval`` seconds a batch of one to five random ratings is
    queued; ``workers`` threads write them. The last hundred writes are
    kept as log entries and every write is counted per movie.
    """

    def __init__(
        self,
        client: HBaseClient,
        *,
        rng: Any = None,
        clock: Callable[[], datetime] = _now,
        interval: float = 3.0,
        workers: int = 5,
        queue_size: int = 20,
        pause: Callable[[float], None] = time.sleep,
    ) -> None:
        if workers < 0:
            raise ValueError("workers must not be negative")
        if queue_size < 1:
            raise ValueError("queue_size must be positive")
        self.client = client
        self.interval = interval
        self.workers = workers
        self.queue_size = queue_size
        self._rng = rng if rng is not None else random.Random()
        self._clock = clock
        self._pause = pause
        self._lock = threading.Lock()
        self._running = False
        self._stop = threading.Event()
        self._queue: queue.Queue[_Task | None] | None = None
        self._logs: deque[dict[str, Any]] = deque(maxlen=MAX_LOGS)
        self._stats: Counter[str] = Counter()
        self.stats_since = clock()

    def start_random_writes(self) -> None:
        """Start generating writes; does nothing if already running."""
        with self._lock:
            if self._running:
                return
            self._running = True
            self._stop = threading.Event()
            self._stats = Counter()
            self._logs = deque(maxlen=MAX_LOGS)
            self.stats_since = self._clock()
            tasks: queue.Queue[_Task | None] = queue.Queue(maxsize=self.queue_size)
            self._queue = tasks
            stop = self._stop
        for number in range(self.workers):
            threading.Thread(
                target=self._work, args=(tasks,), name=f"rating-writer-{number}", daemon=True
            ).start()
        threading.Thread(
            target=self._tick, args=(stop, tasks), name="rating-ticker", daemon=True
        ).start()
        logger.info("random write service started")

    def stop_random_writes(self) -> None:
        """Stop generating writes; does nothing if not running."""
        with self._lock:
            if not self._running:
                return
            self._stop.set()
            self._running = False
            self._queue = None
        logger.info("random write service stopped")

    def is_running(self) -> bool:
        """Whether writes are being generated."""
        with self._lock:
            return self._running

    def get_logs(self) -> list[dict[str, Any]]:
        """Copies of the most recent write log entries, oldest first."""
        with self._lock:
            return [dict(entry) for entry in self._logs]

    def get_hotspots(self, limit: int) -> list[dict[str, Any]]:
        """The ``limit`` most written movies as ``movieId`` and ``count``, most first."""
        if limit < 0:
            raise ValueError("limit must not be negative")
        with self._lock:
            ranked = sorted(self._stats.items(), key=lambda item: -item[1])
        return [{"movieId": movie_id, "count": count} for movie_id, count in ranked[:limit]]

    def run_batch(self) -> list[dict[str, Any]]:
        """Queue one batch of random writes now and return copies of its log entries.

        Raises RuntimeError when the service is not running.
        """
        with self._lock:
            tasks = self._queue
        if tasks is None:
            raise RuntimeError("random writes are not running")
        return self._batch(tasks)

    def _batch(self, tasks: queue.Queue[_Task | None]) -> list[dict[str, Any]]:
        entries = []
        for _ in range(self._rng.randrange(5) + 1):
            movie_id = str(self._rng.randrange(100) + 1)
            user_id = str(self._rng.randrange(1000) + 1)
            rating = (self._rng.randrange(10) + 1) / 2.0
            entry: dict[str, Any] = {
                "timestamp": _format_rfc3339(self._clock()),
                "movieId": movie_id,
                "userId": user_id,
                "rating": rating,
                "status": "pending",
            }
            with self._lock:
                self._stats[movie_id] += 1
                self._logs.append(entry)
            entries.append(entry)
            try:
                tasks.put_nowait(_Task(movie_id, user_id, rating, entry))
            except queue.Full:
                logger.warning("write queue is full, dropping task")
                with self._lock:
                    entry["status"] = "failed"
                    entry["error"] = QUEUE_FULL_ERROR
        with self._lock:
            return [dict(entry) for entry in entries]

    def _tick(self, stop: threading.Event, tasks: queue.Queue[_Task | None]) -> None:
        while not stop.wait(self.interval):
            self._batch(tasks)
        for _ in range(self.workers):
            tasks.put(None)

    def _work(self, tasks: queue.Queue[_Task | None]) -> None:
        while True:
            task = tasks.get()
            if task is None:
                return
            try:
                write_rating(self.client, task.movie_id, task.user_id, task.rating)
            except Exception as exc:  # keep the worker alive whatever the store does
                logger.error("writing rating failed: %s", exc)
                with self._lock:
                    task.entry["status"] = "failed"
                    task.entry["error"] = str(exc)
            else:
                with self._lock:
                    task.entry["status"] = "success"
            self._pause((50 + self._rng.randrange(150)) / 1000)