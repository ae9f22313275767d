"""Entry point for the FastAPI-powered tubecrawl service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, Awaitable, TypeVar

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .services.cache import CacheManager
from .services.channels import ChannelService
from .services.comments import CommentService
from .services.fetcher import BackgroundFetcher
from .services.innertube import UpstreamError
from .services.playlists import PlaylistService
from .services.resolver import ChannelResolver
from .services.search import SearchService
from .services.session import SessionManager
from .services.video_info import VideoInfoService
from .utils import coerce_bool

logging.basicConfig(level=settings.log_level_value)
logger = logging.getLogger(__name__)

T = TypeVar("T")

QUERY_REQUIRED = 'Query parameter "q" or "query" is required'


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            timeout=httpx.Timeout(settings.upstream_timeout_seconds, connect=10.0),
            follow_redirects=True,
        )
    )
    sessions = SessionManager(settings, http_client)
    fetcher = BackgroundFetcher(settings.wait_poll_interval_seconds)
    caches = CacheManager(settings, fetcher)
    resolver = ChannelResolver(sessions)
    comments = CommentService(settings, sessions, caches, fetcher)
    video_info = VideoInfoService(settings, sessions, caches, comments)

    fastapi_app.state.caches = caches
    fastapi_app.state.fetcher = fetcher
    fastapi_app.state.channel_service = ChannelService(
        settings, sessions, resolver, caches, fetcher
    )
    fastapi_app.state.playlist_service = PlaylistService(settings, sessions, caches, fetcher)
    fastapi_app.state.comment_service = comments
    fastapi_app.state.video_info_service = video_info
    fastapi_app.state.search_service = SearchService(
        settings, sessions, caches, fetcher, video_info
    )

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await fetcher.stop()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Cached, paginated YouTube channel, search and comment listings",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def _get_service(fastapi_app: FastAPI, name: str, expected: type[T]) -> T:
    service = getattr(fastapi_app.state, name, None)
    if not isinstance(service, expected):
        raise RuntimeError(f"{expected.__name__} not initialised")
    return service


def _query(request: Request, *names: str) -> str | None:
    for name in names:
        value = request.query_params.get(name)
        if value is not None and value.strip():
            return value.strip()
    return None


def _int_param(request: Request, *names: str) -> int | None:
    raw = _query(request, *names)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise HTTPException(
            status_code=400, detail=f"{names[0]} must be an integer"
        ) from exc


def _flag(request: Request, *names: str) -> bool:
    return any(coerce_bool(request.query_params.get(name)) for name in names)


def _required_query(request: Request) -> str:
    query = _query(request, "q", "query")
    if not query:
        raise HTTPException(status_code=400, detail=QUERY_REQUIRED)
    return query


async def _run(operation: Awaitable[T]) -> T:
    """Await a service call and translate domain errors into HTTP errors."""

    try:
        return await operation
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except UpstreamError as exc:
        logger.warning("Upstream failure: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.exception_handler(HTTPException)
    async def envelope_http_errors(_: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            {"success": False, "error": str(exc.detail)},
            status_code=exc.status_code,
        )

    def channels() -> ChannelService:
        return _get_service(fastapi_app, "channel_service", ChannelService)

    def playlists() -> PlaylistService:
        return _get_service(fastapi_app, "playlist_service", PlaylistService)

    def searches() -> SearchService:
        return _get_service(fastapi_app, "search_service", SearchService)

    def comments() -> CommentService:
        return _get_service(fastapi_app, "comment_service", CommentService)

    def videos() -> VideoInfoService:
        return _get_service(fastapi_app, "video_info_service", VideoInfoService)

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    # Channels -----------------------------------------------------------

    @fastapi_app.get("/api/channel/cache/status")
    async def channel_cache_status(request: Request) -> JSONResponse:
        identifier = _query(request, "id", "channel")
        if not identifier:
            raise HTTPException(status_code=400, detail="Channel id is required")
        return JSONResponse(await _run(channels().cache_status(identifier)))

    @fastapi_app.delete("/api/channel/cache")
    async def channel_cache_clear(request: Request) -> JSONResponse:
        identifier = _query(request, "id", "channel")
        return JSONResponse(await _run(channels().clear_cache(identifier)))

    @fastapi_app.get("/api/channel/playlist/{playlist_id}")
    async def playlist_videos(request: Request, playlist_id: str) -> JSONResponse:
        payload = await _run(
            playlists().get_playlist(
                playlist_id, _int_param(request, "start"), _int_param(request, "end")
            )
        )
        return JSONResponse(payload)

    @fastapi_app.get("/api/channel/{identifier}/videos")
    async def channel_videos(request: Request, identifier: str) -> JSONResponse:
        payload = await _run(
            channels().get_videos(
                identifier,
                _int_param(request, "start"),
                _int_param(request, "end"),
                all_videos=_flag(request, "all"),
            )
        )
        return JSONResponse(payload)

    @fastapi_app.get("/api/channel/{identifier}/playlists")
    async def channel_playlists(identifier: str) -> JSONResponse:
        return JSONResponse(await _run(channels().get_with_playlists(identifier)))

    @fastapi_app.post("/api/channel/{identifier}/prefetch")
    async def channel_prefetch(identifier: str) -> JSONResponse:
        return JSONResponse(await _run(channels().prefetch(identifier)))

    @fastapi_app.get("/api/channel/{identifier}")
    async def channel_info(identifier: str) -> JSONResponse:
        info = await _run(channels().get_info(identifier))
        return JSONResponse({"success": True, "channel": info.to_payload()})

    # Search -------------------------------------------------------------

    def _search_options(request: Request) -> dict[str, Any]:
        return {
            "sort": _query(request, "sort"),
            "duration": _query(request, "duration"),
            "upload_date": _query(request, "uploadDate", "upload_date"),
            "start": _int_param(request, "start"),
            "end": _int_param(request, "end"),
            "fetch_tags": _flag(request, "fetchTags", "fetch_tags"),
        }

    @fastapi_app.get("/api/search")
    async def search(request: Request) -> JSONResponse:
        query = _required_query(request)
        payload = await _run(
            searches().search(query, type=_query(request, "type"), **_search_options(request))
        )
        return JSONResponse(payload)

    @fastapi_app.get("/api/search/videos")
    async def search_videos(request: Request) -> JSONResponse:
        query = _required_query(request)
        return JSONResponse(
            await _run(searches().search_videos(query, **_search_options(request)))
        )

    @fastapi_app.get("/api/search/channels")
    async def search_channels(request: Request) -> JSONResponse:
        query = _required_query(request)
        payload = await _run(
            searches().search_channels(query, **_search_options(request))
        )
        return JSONResponse(payload)

    @fastapi_app.get("/api/search/playlists")
    async def search_playlists(request: Request) -> JSONResponse:
        query = _required_query(request)
        payload = await _run(
            searches().search_playlists(query, **_search_options(request))
        )
        return JSONResponse(payload)

    @fastapi_app.get("/api/search/tag")
    async def search_tag(request: Request) -> JSONResponse:
        tag = _query(request, "q", "query")
        if not tag:
            raise HTTPException(
                status_code=400, detail='Tag parameter "q" or "query" is required'
            )
        payload = await _run(
            searches().search_by_tag(
                tag,
                start=_int_param(request, "start"),
                end=_int_param(request, "end"),
                fetch_tags=_flag(request, "fetchTags", "fetch_tags"),
            )
        )
        return JSONResponse(payload)

    @fastapi_app.get("/api/search/suggestions")
    async def search_suggestions(request: Request) -> JSONResponse:
        query = _required_query(request)
        return JSONResponse(await _run(searches().suggestions(query)))

    @fastapi_app.get("/api/search/trending")
    async def trending(request: Request) -> JSONResponse:
        return JSONResponse(await _run(searches().trending(_query(request, "region"))))

    @fastapi_app.get("/api/search/cache/status")
    async def search_cache_status(request: Request) -> JSONResponse:
        query = _required_query(request)
        return JSONResponse(
            searches().cache_status(
                query,
                type=_query(request, "type"),
                sort=_query(request, "sort"),
                duration=_query(request, "duration"),
                upload_date=_query(request, "uploadDate", "upload_date"),
            )
        )

    @fastapi_app.delete("/api/search/cache")
    async def search_cache_clear(request: Request) -> JSONResponse:
        return JSONResponse(searches().clear_cache(_query(request, "q", "query")))

    @fastapi_app.delete("/api/search/comments/cache")
    async def comment_cache_clear(request: Request) -> JSONResponse:
        return JSONResponse(comments().clear_cache(_query(request, "videoId", "video_id")))

    # Videos -------------------------------------------------------------

    @fastapi_app.get("/api/search/video/{video_id}")
    async def video_info(request: Request, video_id: str) -> JSONResponse:
        include_comments = request.query_params.get("comments")
        payload = await _run(
            videos().get_video_info(
                video_id,
                include_comments=include_comments is None or coerce_bool(include_comments),
                comment_start=_int_param(request, "commentStart", "comment_start"),
                comment_end=_int_param(request, "commentEnd", "comment_end"),
                comment_sort=_query(request, "commentSort", "comment_sort") or "top",
            )
        )
        return JSONResponse(payload)

    @fastapi_app.get("/api/search/video/{video_id}/tags")
    async def video_tags(video_id: str) -> JSONResponse:
        tags = await _run(videos().get_tags(video_id))
        return JSONResponse({"success": True, "videoId": video_id, **tags})

    @fastapi_app.get("/api/search/video/{video_id}/related")
    async def related_videos(request: Request, video_id: str) -> JSONResponse:
        start = max(1, _int_param(request, "start") or 1)
        end = _int_param(request, "end")
        limit = end - start + 1 if end is not None else _int_param(request, "limit")
        payload = await _run(searches().find_related(video_id, start, limit))
        return JSONResponse(payload)

    @fastapi_app.get("/api/search/video/{video_id}/comments")
    async def video_comments(request: Request, video_id: str) -> JSONResponse:
        payload = await _run(
            comments().get_comments(
                video_id,
                _int_param(request, "start"),
                _int_param(request, "end"),
                _query(request, "sort", "sortBy"),
            )
        )
        return JSONResponse(payload)

    @fastapi_app.get("/api/search/video/{video_id}/comments/status")
    async def video_comments_status(request: Request, video_id: str) -> JSONResponse:
        return JSONResponse(comments().cache_status(video_id, _query(request, "sort")))


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
