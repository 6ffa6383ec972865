"""Backend context: every piece of shared state, created once at startup."""

from __future__ import annotations

from dataclasses import dataclass
import logging

from flashbacks.config import AppConfig
from flashbacks.data.exclusions import EXCLUDE_FILE_NAME, ExclusionStore
from flashbacks.data.gtfs_feed import GTFS_FILE_NAME, GTFSFeed
from flashbacks.data.listing_cache import AlbumFileCache, DirectoryCache
from flashbacks.data.weather_client import WeatherClient
from flashbacks.data.weather_sampler import WEATHER_FILE_NAME, WeatherSampler
from flashbacks.logic.active_set import ActiveSetManager
from flashbacks.logic.selection import SelectionEngine
from flashbacks.logic.transit import GTFSEngine
from flashbacks.rendering.composer import CollageComposer

logger = logging.getLogger(__name__)


@dataclass
class BackendContext:
    """Shared services handed to the web server at construction time."""

    config: AppConfig
    exclusions: ExclusionStore
    active_sets: ActiveSetManager
    composer: CollageComposer
    transit: GTFSEngine | None = None
    weather: WeatherSampler | None = None

    async def start(self) -> None:
        self.exclusions.load()
        if self.weather is not None:
            self.weather.load()
            self.weather.start()

    async def stop(self) -> None:
        if self.weather is not None:
            await self.weather.stop()


def build_context(config: AppConfig) -> BackendContext:
    """Wire caches, selection, collage and optional feature modules from config."""
    media = config.media
    cache_dir = media.cache_dir

    dir_cache = DirectoryCache(
        media.root_dir, cache_dir, config.cache.root_ttl_ms, config.cache.year_ttl_ms
    )
    file_cache = AlbumFileCache(
        media.root_dir, cache_dir, config.cache.event_ttl_ms, config.cache.max_scan_depth
    )
    exclusions = ExclusionStore(cache_dir / EXCLUDE_FILE_NAME)
    engine = SelectionEngine(media.root_dir, dir_cache, file_cache, exclusions, media.stream_count)

    transit = None
    if config.transit.enabled:
        feed = GTFSFeed(config.transit.gtfs_url, cache_dir / GTFS_FILE_NAME, config.transit.refresh_ms)
        transit = GTFSEngine(feed, config.transit.refresh_ms, config.transit.stop_name)

    weather = None
    if config.weather.enabled:
        client = WeatherClient(config.weather.latitude, config.weather.longitude, config.weather.unit)
        weather = WeatherSampler(
            client,
            cache_dir / WEATHER_FILE_NAME,
            config.weather.interval_seconds,
            config.weather.history_hours,
        )

    logger.info(
        "backend context ready: root=%s cache=%s transit=%s weather=%s",
        media.root_dir,
        cache_dir,
        transit is not None,
        weather is not None,
    )
    return BackendContext(
        config=config,
        exclusions=exclusions,
        active_sets=ActiveSetManager(engine, media.window_ms),
        composer=CollageComposer(config.collage, media.stream_count),
        transit=transit,
        weather=weather,
    )


__all__ = ["BackendContext", "build_context"]
