"""Configuration loader for the Flashbacks backend."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
import yaml

DAY_MS = 24 * 60 * 60 * 1000


@dataclass(frozen=True)
class MediaConfig:
    """Photo tree location and active-set timing."""

    root_dir: Path
    cache_dir: Path
    stream_count: int = 6
    album_expose_sec: int = 0
    set_window_ms: int = 2 * 60 * 1000

    @property
    def window_ms(self) -> int:
        if self.album_expose_sec > 0:
            return self.album_expose_sec * 1000
        return self.set_window_ms

    @property
    def expose_sec(self) -> int:
        if self.album_expose_sec > 0:
            return self.album_expose_sec
        return round(self.set_window_ms / 1000)


@dataclass(frozen=True)
class CacheConfig:
    """TTLs for the directory and album listing caches."""

    root_ttl_ms: int = 30 * DAY_MS
    year_ttl_ms: int = 180 * DAY_MS
    event_ttl_ms: int = 180 * DAY_MS
    max_scan_depth: int = 10


@dataclass(frozen=True)
class CollageConfig:
    """Collage grid and output encoding."""

    rows: int = 3
    cols: int = 3
    count: int = 9
    gap: int = 2
    width: int = 1920
    height: int = 1080
    quality: int = 82
    slide_quality: int = 82
    auto_rotate: bool = True
    background: tuple[int, int, int] = (0, 0, 0)


@dataclass(frozen=True)
class TransitConfig:
    """GTFS feed source and default stop."""

    enabled: bool = True
    gtfs_url: str = "https://www.stops.lt/vilnius/vilnius/gtfs.zip"
    refresh_ms: int = DAY_MS
    stop_name: str = "Umėdžių st."
    limit: int = 10


@dataclass(frozen=True)
class WeatherConfig:
    """Weather polling location and retention."""

    enabled: bool = True
    latitude: float = 54.6872
    longitude: float = 25.2797
    unit: str = "celsius"
    interval_min: int = 60
    history_hours: int = 72

    @property
    def interval_seconds(self) -> int:
        return max(5, self.interval_min) * 60


@dataclass(frozen=True)
class ServerConfig:
    """HTTP listener settings."""

    host: str = "0.0.0.0"
    port: int = 8099


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    log_dir: str | None = None


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    media: MediaConfig
    cache: CacheConfig
    collage: CollageConfig
    transit: TransitConfig
    weather: WeatherConfig
    server: ServerConfig
    log: LoggingConfig


def _require_key(mapping: dict[str, Any], key: str, context: str) -> Any:
    if key not in mapping:
        raise ValueError(f"Missing required key '{key}' in {context} config")
    return mapping[key]


def _section(data: dict[str, Any], name: str, required: bool = False) -> dict[str, Any]:
    if required:
        section = _require_key(data, name, name)
    else:
        section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' config must be a mapping")
    return section


def _pick(section: dict[str, Any], *names: str) -> dict[str, Any]:
    return {name: section[name] for name in names if name in section}


def load_config(path: str = "config/config.yaml") -> AppConfig:
    """Load application configuration from a YAML file."""
    load_dotenv()
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        raise ValueError(f"Config file not found: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError("Config file must contain a mapping at the top level")

    media_section = _section(data, "media", required=True)
    cache_section = _section(data, "cache")
    collage_section = _section(data, "collage")
    transit_section = _section(data, "transit")
    weather_section = _section(data, "weather")
    server_section = _section(data, "server")
    logging_section = _section(data, "logging")

    root_dir = os.environ.get("MEDIA_ROOT") or _require_key(media_section, "root_dir", "media")
    cache_dir = os.environ.get("CACHE_DIR") or media_section.get(
        "cache_dir", os.path.join("state", "flashbacks-cache")
    )
    media = MediaConfig(
        root_dir=Path(root_dir),
        cache_dir=Path(cache_dir),
        **_pick(media_section, "stream_count", "album_expose_sec", "set_window_ms"),
    )

    cache = CacheConfig(
        **_pick(cache_section, "root_ttl_ms", "year_ttl_ms", "event_ttl_ms", "max_scan_depth")
    )

    rows = collage_section.get("rows", CollageConfig.rows)
    cols = collage_section.get("cols", CollageConfig.cols)
    collage_fields = _pick(
        collage_section, "gap", "width", "height", "quality", "slide_quality", "auto_rotate"
    )
    if "background" in collage_section:
        collage_fields["background"] = tuple(collage_section["background"])
    collage = CollageConfig(
        rows=rows,
        cols=cols,
        count=collage_section.get("count", rows * cols),
        **collage_fields,
    )

    transit_fields = _pick(transit_section, "enabled", "gtfs_url", "refresh_ms", "stop_name", "limit")
    if os.environ.get("GTFS_URL"):
        transit_fields["gtfs_url"] = os.environ["GTFS_URL"]
    transit = TransitConfig(**transit_fields)

    weather = WeatherConfig(
        **_pick(
            weather_section,
            "enabled",
            "latitude",
            "longitude",
            "unit",
            "interval_min",
            "history_hours",
        )
    )

    server = ServerConfig(**_pick(server_section, "host", "port"))
    logging = LoggingConfig(**_pick(logging_section, "level", "log_dir"))

    return AppConfig(
        media=media,
        cache=cache,
        collage=collage,
        transit=transit,
        weather=weather,
        server=server,
        log=logging,
    )


__all__ = [
    "AppConfig",
    "CacheConfig",
    "CollageConfig",
    "LoggingConfig",
    "MediaConfig",
    "ServerConfig",
    "TransitConfig",
    "WeatherConfig",
    "load_config",
]
