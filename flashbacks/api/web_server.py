"""aiohttp web server exposing the slideshow, transit and weather feeds."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from aiohttp import web

from flashbacks.api.context import BackendContext
from flashbacks.api.responses import (
    DeparturesResponse,
    Endpoint,
    ErrorResponse,
    ExcludeResponse,
    HelpResponse,
    NextResponse,
    RefreshInfo,
    StateResponse,
    StopsResponse,
    WeatherTrendsResponse,
)
from flashbacks.clock import utc_now_iso
from flashbacks.log import new_request_id

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Expose-Headers": "X-Flashbacks-Refresh-In-Ms,X-Flashbacks-Refresh-At",
}
DEFAULT_STOPS_LIMIT = 50

ALBUM_ENDPOINTS = [
    Endpoint("/image/:id", "Serve image for stream id (0..STREAM_COUNT-1)."),
    Endpoint("/collage/sequence", "Serve collage from next images in the same album."),
    Endpoint("/collage/overview", "Serve overview collage from evenly spaced images in the album."),
    Endpoint("/state", "Return current set info (album, images, collages) and timing."),
    Endpoint("/next", "Force-create next set immediately."),
    Endpoint("/exclude", "Exclude current album and force-generate next set."),
]
WEATHER_ENDPOINTS = [
    Endpoint("/weather/trends", "Temperature & feels-like history samples."),
]
TRANSIT_ENDPOINTS = [
    Endpoint("/vvt/next", "Next departures from a stop (GTFS schedule)."),
    Endpoint("/vvt/stops", "Search stop names (GTFS)."),
    Endpoint("/vvt/debug", "Debug GTFS cache and stop matching."),
]
HELP_ENDPOINT = Endpoint("/help", "List available endpoints.")


@web.middleware
async def no_store_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Disable edge caching for every response."""
    response = await handler(request)
    response.headers["Cache-Control"] = "no-store"
    return response


def _json(body: dict, status: int = 200) -> web.Response:
    return web.json_response(body, status=status, headers=CORS_HEADERS)


def _int_query(request: web.Request, name: str, default: int) -> int:
    raw = request.query.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise web.HTTPBadRequest(text=f"Invalid {name}") from exc


class WebServer:
    """HTTP front end; every handler reads through the shared BackendContext."""

    def __init__(self, context: BackendContext) -> None:
        self.context = context
        self.app: web.Application | None = None
        self.runner: web.AppRunner | None = None
        self.site: web.TCPSite | None = None

    def create_app(self) -> web.Application:
        """Create and configure the web application."""
        app = web.Application(middlewares=[no_store_middleware])
        app.router.add_get("/image/{id}", self._handle_image)
        app.router.add_get("/collage/sequence", self._handle_collage_sequence)
        app.router.add_get("/collage/overview", self._handle_collage_overview)
        app.router.add_get("/state", self._handle_state)
        app.router.add_get("/next", self._handle_next)
        app.router.add_get("/exclude", self._handle_exclude)
        if self.context.transit is not None:
            app.router.add_get("/vvt/next", self._handle_vvt_next)
            app.router.add_get("/vvt/stops", self._handle_vvt_stops)
            app.router.add_get("/vvt/debug", self._handle_vvt_debug)
        if self.context.weather is not None:
            app.router.add_get("/weather/trends", self._handle_weather_trends)
        app.router.add_get("/help", self._handle_help)
        return app

    def endpoints(self) -> list[Endpoint]:
        endpoints = list(ALBUM_ENDPOINTS)
        if self.context.weather is not None:
            endpoints.extend(WEATHER_ENDPOINTS)
        if self.context.transit is not None:
            endpoints.extend(TRANSIT_ENDPOINTS)
        endpoints.append(HELP_ENDPOINT)
        return endpoints

    async def _handle_image(self, request: web.Request) -> web.Response:
        """GET /image/{id} - one window slot as a resized JPEG"""
        rid = new_request_id()
        stream_count = self.context.config.media.stream_count
        try:
            stream_id = int(request.match_info["id"])
        except ValueError:
            return web.Response(status=400, text="Bad stream id")
        if not 0 <= stream_id < stream_count:
            return web.Response(status=400, text="Bad stream id")

        try:
            active = await self.context.active_sets.get_or_refresh(rid)
            path = active.window[stream_id]
            body = await self.context.composer.slide(path)
        except Exception:
            logger.exception("[rid=%s] image failed: stream=%d", rid, stream_id)
            return web.Response(status=500, text="Internal error")

        logger.info("[rid=%s] SERVE stream=%d file=%s", rid, stream_id, active.window_rel[stream_id])
        refresh = RefreshInfo.for_set(active, self.context.active_sets.now())
        return web.Response(body=body, content_type="image/jpeg", headers=refresh.headers())

    async def _handle_collage_sequence(self, request: web.Request) -> web.Response:
        """GET /collage/sequence - tiles continuing after the displayed window"""
        rid = new_request_id()
        try:
            active = await self.context.active_sets.get_or_refresh(rid)
            body = await self.context.composer.sequence(active)
        except Exception:
            logger.exception("[rid=%s] collage/sequence failed", rid)
            return web.Response(status=500, text="Collage error")
        refresh = RefreshInfo.for_set(active, self.context.active_sets.now())
        return web.Response(body=body, content_type="image/jpeg", headers=refresh.headers())

    async def _handle_collage_overview(self, request: web.Request) -> web.Response:
        """GET /collage/overview - tiles sampled evenly across the album"""
        rid = new_request_id()
        try:
            active = await self.context.active_sets.get_or_refresh(rid)
            body = await self.context.composer.overview(active)
        except Exception:
            logger.exception("[rid=%s] collage/overview failed", rid)
            return web.Response(status=500, text="Collage error")
        return web.Response(body=body, content_type="image/jpeg")

    async def _handle_state(self, request: web.Request) -> web.Response:
        """GET /state - active set metadata for the overlay"""
        rid = new_request_id()
        media = self.context.config.media
        try:
            active = await self.context.active_sets.get_or_refresh(rid)
            flags = await self.context.composer.ensure_rotate_flags(active)
        except Exception:
            logger.exception("[rid=%s] state failed", rid)
            return _json(ErrorResponse("state_failed").to_dict(), status=500)

        response = StateResponse(
            generated_at=active.generated_at,
            expires_at=active.expires_at,
            refresh=RefreshInfo.for_set(active, self.context.active_sets.now()),
            album_expose_sec=media.expose_sec,
            stream_count=media.stream_count,
            window_rel=active.window_rel,
            rotate_flags=flags,
            picked=active.picked(),
            files_count=len(active.files),
        )
        return _json(response.to_dict())

    async def _handle_next(self, request: web.Request) -> web.Response:
        """GET /next - force a new active set"""
        rid = new_request_id()
        try:
            active = await self.context.active_sets.force_refresh(rid)
        except Exception:
            logger.exception("[rid=%s] next failed", rid)
            return _json(ErrorResponse("next_failed").to_dict(), status=500)

        response = NextResponse(
            generated_at=active.generated_at,
            expires_at=active.expires_at,
            refresh=RefreshInfo.for_set(active, self.context.active_sets.now()),
            window_rel=active.window_rel,
            picked=active.picked(),
        )
        return _json(response.to_dict())

    async def _handle_exclude(self, request: web.Request) -> web.Response:
        """GET /exclude - permanently skip the current album and rotate"""
        rid = new_request_id()
        current = self.context.active_sets.current
        if current is None:
            return _json(ErrorResponse("no_active_set").to_dict(), status=400)

        selection = current.selection
        await asyncio.to_thread(self.context.exclusions.add, selection.year, selection.event)
        try:
            active = await self.context.active_sets.force_refresh(rid)
        except Exception as exc:
            logger.exception("[rid=%s] exclude refresh failed", rid)
            return _json(ErrorResponse("exclude_refresh_failed", str(exc)).to_dict(), status=500)

        response = ExcludeResponse(excluded=self.context.exclusions.keys(), picked=active.picked())
        return _json(response.to_dict())

    async def _handle_vvt_next(self, request: web.Request) -> web.Response:
        """GET /vvt/next?stop=&stopId=&limit= - next departures"""
        transit = self.context.transit
        stop_name = request.query.get("stop") or transit.default_stop_name
        stop_id = request.query.get("stopId") or None
        limit = _int_query(request, "limit", self.context.config.transit.limit)
        try:
            board = await transit.next_departures(stop_name, limit, stop_id)
        except Exception:
            logger.exception("vvt/next failed: stop=%s stop_id=%s", stop_name, stop_id)
            return _json(ErrorResponse("vvt_failed").to_dict(), status=500)

        response = DeparturesResponse(
            stop_name=board.stop_name,
            stop_id=board.stop_id,
            updated_at=utc_now_iso(),
            items=[item.to_dict() for item in board.items],
        )
        return _json(response.to_dict())

    async def _handle_vvt_stops(self, request: web.Request) -> web.Response:
        """GET /vvt/stops?q=&limit= - stop name search"""
        transit = self.context.transit
        limit = _int_query(request, "limit", DEFAULT_STOPS_LIMIT)
        try:
            items = await transit.search_stops(request.query.get("q", ""), limit, request.query.get("stop"))
        except Exception:
            logger.exception("vvt/stops failed")
            return _json(ErrorResponse("vvt_failed").to_dict(), status=500)
        return _json(StopsResponse(items=items).to_dict())

    async def _handle_vvt_debug(self, request: web.Request) -> web.Response:
        """GET /vvt/debug - resolved stop and feed freshness"""
        transit = self.context.transit
        try:
            body = await transit.debug(request.query.get("stop"), request.query.get("stopId") or None)
        except Exception:
            logger.exception("vvt/debug failed")
            return _json(ErrorResponse("vvt_failed").to_dict(), status=500)
        return _json(body)

    async def _handle_weather_trends(self, request: web.Request) -> web.Response:
        """GET /weather/trends - retained temperature samples"""
        weather = self.context.weather
        samples = weather.samples()
        response = WeatherTrendsResponse(
            updated_at=utc_now_iso(),
            history_hours=weather.history_hours,
            interval_min=self.context.config.weather.interval_min,
            samples=[sample.to_dict() for sample in samples],
            current=samples[-1].to_dict() if samples else None,
        )
        return _json(response.to_dict())

    async def _handle_help(self, request: web.Request) -> web.Response:
        """GET /help - route catalogue"""
        return _json(HelpResponse(endpoints=self.endpoints()).to_dict())

    async def start(self, host: str = "0.0.0.0", port: int = 8099) -> None:
        """Start the backend services and the web server"""
        logger.info(f"Starting web server on {host}:{port}")
        await self.context.start()

        self.app = self.create_app()
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, host, port)
        await self.site.start()

        logger.info(f"Web server started on {host}:{port}")

    async def stop(self) -> None:
        """Stop the web server gracefully"""
        logger.info("Stopping web server...")
        if self.site:
            await self.site.stop()
        if self.runner:
            await self.runner.cleanup()
        await self.context.stop()
        logger.info("Web server stopped")


__all__ = ["CORS_HEADERS", "WebServer", "no_store_middleware"]
