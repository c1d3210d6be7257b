"""Entry point for the FastAPI-powered Stremio addon."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, get_args

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from .config import settings
from .database import Database
from .models import ContentType
from .services.library import LIBRARY_CATALOGS, LibraryService
from .services.metadata_addon import MetadataAddonClient
from .services.persistence import StateRepository
from .services.realdebrid import RealDebridClient, RealDebridError
from .services.resolver import CinemetaStrategy, MetadataResolver, TMDBStrategy
from .services.sync import SyncEngine
from .services.tmdb import TMDBClient
from .utils import coerce_bool, parse_extra
from .web import render_dashboard

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI

CONTENT_TYPES: frozenset[str] = frozenset(get_args(ContentType))
DISCOVERY_CATALOGS: dict[str, str] = {
    "trending": "Trending",
    "top_rated": "Top Rated",
    "netflix": "Netflix",
    "hbo": "HBO Max",
    "disney": "Disney+",
    "amazon": "Prime Video",
    "apple": "Apple TV+",
}


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    if not settings.rd_token:
        logger.error("RD_TOKEN is not configured; refusing to start")
        raise RuntimeError("RD_TOKEN must be set")

    exit_stack = AsyncExitStack()
    rd_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.rd_api_url),
            timeout=httpx.Timeout(20.0, connect=10.0),
        )
    )
    metadata_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(timeout=httpx.Timeout(15.0, connect=5.0))
    )
    tmdb: TMDBClient | None = None
    if settings.tmdb_api_key:
        tmdb_http_client = await exit_stack.enter_async_context(
            httpx.AsyncClient(
                base_url=str(settings.tmdb_api_url),
                timeout=httpx.Timeout(15.0, connect=5.0),
            )
        )
        tmdb = TMDBClient(settings, tmdb_http_client)
    else:
        logger.warning("TMDB_KEY is not set; discovery catalogs and TMDB lookups are disabled")

    database: Database | None = None
    repository: StateRepository | None = None
    if settings.persistence_enabled:
        database = Database(str(settings.database_url))
        await database.create_all()
        repository = StateRepository(database.session_factory)

    strategies: list[Any] = [
        CinemetaStrategy(
            MetadataAddonClient(metadata_http_client, str(settings.metadata_addon_url))
        )
    ]
    if tmdb is not None:
        strategies.append(TMDBStrategy(tmdb))
    resolver = MetadataResolver(
        strategies,
        ttl_seconds=settings.metadata_cache_seconds,
        timeout_seconds=settings.metadata_timeout_seconds,
    )
    rd_client = RealDebridClient(settings, rd_http_client)
    library_service = LibraryService(
        settings,
        SyncEngine(settings, rd_client),
        rd_client,
        resolver,
        tmdb_client=tmdb,
        repository=repository,
    )

    fastapi_app.state.library_service = library_service
    fastapi_app.state.database = database
    await library_service.start()

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await library_service.stop()
        if database is not None:
            await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Stremio addon serving the files of a Real-Debrid account",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_library_service(app: FastAPI) -> LibraryService:
    service = getattr(app.state, "library_service", None)
    if service is None:
        raise RuntimeError("Library service not initialised")
    return service


def build_manifest(app_name: str) -> dict[str, Any]:
    """Describe the addon's resources and catalogs to Stremio."""

    library_names = {"rd_series": "RD Series", "rd_movies": "RD Movies"}
    catalogs: list[dict[str, Any]] = [
        {
            "type": content_type,
            "id": catalog_id,
            "name": f"{app_name} · {library_names[catalog_id]}",
            "extra": [{"name": "showHidden", "isRequired": False}],
        }
        for catalog_id, content_type in LIBRARY_CATALOGS.items()
    ]
    for catalog_id, name in DISCOVERY_CATALOGS.items():
        for content_type in ("movie", "series"):
            catalogs.append(
                {
                    "type": content_type,
                    "id": catalog_id,
                    "name": name,
                    "extra": [{"name": "skip", "isRequired": False}],
                }
            )
    return {
        "id": "com.debridshelf.addon",
        "version": "1.0.0",
        "name": app_name,
        "description": "Your Real-Debrid downloads and torrents as a Stremio library.",
        "resources": ["catalog", "meta", "stream"],
        "types": ["movie", "series"],
        "idPrefixes": ["tt", "tmdb"],
        "catalogs": catalogs,
        "behaviorHints": {"configurable": False},
    }


def _require_type(content_type: str) -> ContentType:
    if content_type not in CONTENT_TYPES:
        raise HTTPException(status_code=400, detail="Unsupported content type")
    return content_type  # type: ignore[return-value]


def _form_value(form: Any, name: str) -> str:
    value = form.get(name)
    return value.strip() if isinstance(value, str) else ""


def _redirect_to_manager() -> RedirectResponse:
    return RedirectResponse("/manager", status_code=303)


def register_routes(fastapi_app: FastAPI) -> None:
    async def _catalog_endpoint(
        content_type: str, catalog_id: str, extra: str | None = None
    ) -> JSONResponse:
        resolved_type = _require_type(content_type)
        service = get_library_service(fastapi_app)
        try:
            payload = await service.catalog_payload(
                resolved_type, catalog_id, parse_extra(extra)
            )
        except Exception:
            logger.exception("Catalog %s/%s failed", content_type, catalog_id)
            payload = {"metas": []}
        return JSONResponse(payload)

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/manifest.json")
    async def manifest() -> dict[str, Any]:
        return build_manifest(settings.app_name)

    @fastapi_app.get("/catalog/{content_type}/{catalog_id}.json")
    async def catalog(content_type: str, catalog_id: str) -> JSONResponse:
        return await _catalog_endpoint(content_type, catalog_id)

    @fastapi_app.get("/catalog/{content_type}/{catalog_id}/{extra}.json")
    async def catalog_with_extra(
        content_type: str, catalog_id: str, extra: str
    ) -> JSONResponse:
        return await _catalog_endpoint(content_type, catalog_id, extra)

    @fastapi_app.get("/meta/{content_type}/{meta_id}.json")
    async def meta(content_type: str, meta_id: str) -> JSONResponse:
        resolved_type = _require_type(content_type)
        service = get_library_service(fastapi_app)
        payload = await service.meta_payload(resolved_type, meta_id)
        if payload is None:
            raise HTTPException(status_code=404, detail="Metadata not found")
        return JSONResponse(payload)

    @fastapi_app.get("/stream/{content_type}/{stream_id}.json")
    async def stream(request: Request, content_type: str, stream_id: str) -> JSONResponse:
        resolved_type = _require_type(content_type)
        service = get_library_service(fastapi_app)
        _, base_url = _resolve_external_base(request)
        try:
            payload = await service.stream_payload(resolved_type, stream_id, base_url)
        except Exception:
            logger.exception("Stream lookup for %s failed", stream_id)
            payload = {"streams": []}
        return JSONResponse(payload)

    @fastapi_app.get("/play/t/{torrent_id}/{file_index}")
    async def play_torrent_file(torrent_id: str, file_index: int) -> RedirectResponse:
        service = get_library_service(fastapi_app)
        try:
            url = await service.play_url(torrent_id, file_index)
        except RealDebridError as exc:
            logger.warning("Unrestricting torrent %s file %s failed: %s", torrent_id, file_index, exc)
            raise HTTPException(status_code=502, detail="Real-Debrid refused the link") from exc
        if url is None:
            raise HTTPException(status_code=404, detail="Unknown torrent file")
        return RedirectResponse(url, status_code=302)

    @fastapi_app.get("/manager", response_class=HTMLResponse)
    async def manager(showHidden: str | None = None) -> HTMLResponse:
        service = get_library_service(fastapi_app)
        show_hidden = coerce_bool(showHidden)
        view = service.build_groups(show_hidden=show_hidden)
        return HTMLResponse(
            render_dashboard(view, app_name=settings.app_name, show_hidden=show_hidden)
        )

    @fastapi_app.post("/manager/update-group")
    async def update_group(request: Request) -> RedirectResponse:
        service = get_library_service(fastapi_app)
        form = await request.form()
        group_key = _form_value(form, "groupKey")
        raw_id = _form_value(form, "imdbId")
        content_type = _form_value(form, "type")
        if group_key and raw_id:
            await service.assign_group(
                group_key,
                raw_id,
                content_type if content_type in CONTENT_TYPES else None,  # type: ignore[arg-type]
            )
        return _redirect_to_manager()

    @fastapi_app.post("/manager/toggle-hide")
    async def toggle_hide(request: Request) -> RedirectResponse:
        service = get_library_service(fastapi_app)
        form = await request.form()
        group_key = _form_value(form, "groupKey")
        if group_key:
            await service.toggle_hidden(group_key)
        return _redirect_to_manager()

    @fastapi_app.post("/manager/delete-rd")
    async def delete_rd(request: Request) -> RedirectResponse:
        service = get_library_service(fastapi_app)
        form = await request.form()
        ids = _form_value(form, "downloadIds")
        if ids:
            await service.delete_records(ids.split(","))
        return _redirect_to_manager()

    @fastapi_app.post("/manager/add-magnet")
    async def add_magnet(request: Request) -> RedirectResponse:
        service = get_library_service(fastapi_app)
        form = await request.form()
        magnet = _form_value(form, "magnet")
        if magnet:
            await service.add_magnet(magnet, _form_value(form, "imdbId") or None)
        return _redirect_to_manager()

    @fastapi_app.post("/manager/add-links")
    async def add_links(request: Request) -> RedirectResponse:
        service = get_library_service(fastapi_app)
        form = await request.form()
        links = _form_value(form, "links")
        if links:
            await service.add_links(links, _form_value(form, "imdbId") or None)
        return _redirect_to_manager()

    @fastapi_app.post("/manager/refresh")
    async def refresh() -> RedirectResponse:
        service = get_library_service(fastapi_app)
        if not await service.refresh():
            logger.info("Refresh requested while a sync is already running")
        return _redirect_to_manager()


def _resolve_external_base(request: Request) -> tuple[str, str]:
    headers = request.headers
    scheme = _first_forwarded_value(headers.get("x-forwarded-proto")) or request.url.scheme

    host = _first_forwarded_value(headers.get("x-forwarded-host"))
    if not host:
        host_header = headers.get("host")
        host = _first_forwarded_value(host_header) if host_header else None
    if not host:
        host = request.url.netloc

    port = _first_forwarded_value(headers.get("x-forwarded-port"))
    if port and ":" not in host:
        default_port = "443" if scheme == "https" else "80"
        if port != default_port:
            host = f"{host}:{port}"

    origin = f"{scheme}://{host}".rstrip("/")

    prefix = (
        _first_forwarded_value(headers.get("x-forwarded-prefix"))
        or request.scope.get("root_path")
        or ""
    )
    if prefix and not prefix.startswith("/"):
        prefix = f"/{prefix}"
    prefix = prefix.rstrip("/")

    base = f"{origin}{prefix}" if prefix else origin
    return origin, base


def _first_forwarded_value(header_value: str | None) -> str | None:
    if not header_value:
        return None
    return header_value.split(",", 1)[0].strip()


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
