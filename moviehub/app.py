"""The HTTP API: movie listings, ratings, system information and the random writer."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from flask import Flask, Response, jsonify, request

from .cache import MemoryCache
from .models import MovieCatalog
from .panel import CONTENT_TYPE, render_write_panel
from .ratings import RatingService, _format_rfc3339, _now
from .repository import _parse_int
from .store import StoreError
from .write_manager import WriteManager

logger = logging.getLogger(__name__)

DEFAULT_PER_PAGE = 12
MAX_PER_PAGE = 50
DEFAULT_RANDOM_COUNT = 6
MAX_RANDOM_COUNT = 20
DEFAULT_LOG_LINES = 20
MAX_LOG_LINES = 100
HOTSPOT_LIMIT = 10

_ALLOW_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS")
_ALLOW_HEADERS = (
    "Origin",
    "Content-Type",
    "Accept",
    "Authorization",
    "X-Cache-Check",
    "X-Requested-With",
)
_EXPOSE_HEADERS = ("Content-Length", "X-Cache-Hit")
_CORS_MAX_AGE = 12 * 60 * 60


def parse_bounded_int(value: str | None, default: int, maximum: int) -> int:
    """Parse a positive integer parameter, falling back to ``default`` and capping at ``maximum``."""
    parsed = _parse_int(value) if value is not None else None
    if parsed is None or parsed < 1:
        parsed = default
    return min(parsed, maximum)


def build_system_logs(lines: int, now: datetime) -> list[dict[str, Any]]:
    """``lines`` routine entries ten seconds apart from ten minutes ago, then three database entries."""
    start = now - timedelta(minutes=10)
    logs = [
        {
            "timestamp": _format_rfc3339(start + timedelta(seconds=10 * number)),
            "level": "INFO",
            "message": f"系统正常运行中，已处理 {number * 10 + 5} 个请求",
        }
        for number in range(lines)
    ]
    for minutes, message in (
        (3, "HBase 查询执行成功，扫描了 5000 行数据"),
        (2, "完成电影数据缓存更新，共缓存 1500 条记录"),
        (1, "用户评分数据同步完成，更新了 350 条评分"),
    ):
        logs.append(
            {
                "timestamp": _format_rfc3339(now - timedelta(minutes=minutes)),
                "level": "INFO",
                "message": message,
            }
        )
    return logs


def _error(status: int, message: str) -> tuple[Response, int]:
    return jsonify({"status": "error", "message": message}), status


def _page_params() -> tuple[int, int]:
    page = parse_bounded_int(request.args.get("page"), 1, 2**63 - 1)
    per_page = parse_bounded_int(request.args.get("per_page"), DEFAULT_PER_PAGE, MAX_PER_PAGE)
    return page, per_page


def _install_cors(app: Flask) -> None:
    @app.before_request
    def _preflight() -> Response | None:
        if request.method == "OPTIONS" and request.headers.get("Origin"):
            response = Response(status=204)
            response.headers["Access-Control-Allow-Methods"] = ",".join(_ALLOW_METHODS)
            response.headers["Access-Control-Allow-Headers"] = ",".join(_ALLOW_HEADERS)
            response.headers["Access-Control-Max-Age"] = str(_CORS_MAX_AGE)
            return response
        return None

    @app.after_request
    def _cors_headers(response: Response) -> Response:
        if request.headers.get("Origin"):
            response.headers["Access-Control-Allow-Origin"] = "*"
            response.headers["Access-Control-Allow-Credentials"] = "true"
            if request.method != "OPTIONS":
                response.headers["Access-Control-Expose-Headers"] = ",".join(_EXPOSE_HEADERS)
        return response


def create_app(
    catalog: MovieCatalog,
    ratings: RatingService,
    cache: MemoryCache,
    write_manager: WriteManager,
) -> Flask:
    """Build the Flask application serving the API under ``/api``."""
    app = Flask(__name__)
    app.json.sort_keys = False
    app.json.ensure_ascii = False
    _install_cors(app)

    def random_response(count: int) -> tuple[Response, int]:
        try:
            movies = catalog.get_random_movies(count)
        except StoreError as exc:
            logger.error("fetching random movies failed: %s", exc)
            return _error(500, "获取随机电影失败")
        return jsonify({"status": "success", "movies": [m.to_dict() for m in movies]}), 200

    @app.get("/api/movies")
    def get_movies():
        page, per_page = _page_params()
        try:
            listing = catalog.get_movies_list(page, per_page)
        except StoreError as exc:
            logger.error("fetching movie list failed: %s", exc)
            return _error(500, "获取电影列表失败")
        return jsonify(listing.to_dict())

    @app.get("/api/movies/<movie_id>")
    def get_movie(movie_id: str):
        if not movie_id:
            return _error(400, "电影ID不能为空")
        try:
            detail = catalog.get_movie_by_id(movie_id)
        except StoreError as exc:
            logger.error("fetching movie detail failed: %s", exc)
            return _error(500, "获取电影详情失败")
        if detail is None:
            return _error(404, "电影不存在")
        return jsonify(detail.to_dict())

    @app.get("/api/movies/random")
    def get_random_movies():
        count = parse_bounded_int(
            request.args.get("count"), DEFAULT_RANDOM_COUNT, MAX_RANDOM_COUNT
        )
        return random_response(count)

    @app.post("/api/movies/random")
    def random_movies_post():
        body = request.get_json(silent=True)
        count = body.get("count") if isinstance(body, dict) else None
        if not isinstance(count, int) or isinstance(count, bool) or count < 1:
            count = DEFAULT_RANDOM_COUNT
        return random_response(min(count, MAX_RANDOM_COUNT))

    @app.get("/api/movies/search")
    def search_movies():
        query = request.args.get("query", "")
        if not query:
            return _error(400, "搜索关键词不能为空")
        page, per_page = _page_params()
        try:
            listing = catalog.search_movies(query, page, per_page)
        except StoreError as exc:
            logger.error("searching movies failed: %s", exc)
            return _error(500, "搜索电影失败")
        return jsonify(listing.to_dict())

    @app.get("/api/ratings/movie/<movie_id>")
    def get_movie_ratings(movie_id: str):
        if not movie_id:
            return _error(400, "电影ID不能为空")
        try:
            data = ratings.get_movie_ratings(movie_id)
        except StoreError as exc:
            logger.error("fetching movie ratings failed: %s", exc)
            return _error(500, "获取电影评分失败")
        return jsonify(
            {
                "status": "success",
                "ratings": data.get("ratings", []),
                "count": data.get("count", 0),
                "avgRating": data.get("avgRating", 0.0),
                "minRating": data.get("minRating", 0.0),
                "maxRating": data.get("maxRating", 0.0),
            }
        )

    @app.get("/api/system/logs")
    def get_system_logs():
        lines = parse_bounded_int(request.args.get("lines"), DEFAULT_LOG_LINES, MAX_LOG_LINES)
        return jsonify({"status": "success", "logs": build_system_logs(lines, _now())})

    @app.get("/api/system/cache")
    def get_cache_stats():
        return jsonify({"status": "success", "data": {"stats": cache.stats()}})

    @app.get("/api/write/panel")
    def get_write_panel():
        return Response(render_write_panel(), status=200, content_type=CONTENT_TYPE)

    @app.post("/api/write/start")
    def start_random_writes():
        write_manager.start_random_writes()
        return jsonify({"status": "success", "message": "随机写入服务已启动"})

    @app.post("/api/write/stop")
    def stop_random_writes():
        write_manager.stop_random_writes()
        return jsonify({"status": "success", "message": "随机写入服务已停止"})

    @app.get("/api/write/status")
    def get_write_status():
        return jsonify(
            {
                "status": "success",
                "running": write_manager.is_running(),
                "logs": write_manager.get_logs(),
            }
        )

    @app.get("/api/write/hotspots")
    def get_hotspots():
        return jsonify(
            {"status": "success", "hotspots": write_manager.get_hotspots(HOTSPOT_LIMIT)}
        )

    return app