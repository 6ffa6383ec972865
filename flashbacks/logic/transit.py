"""GTFS stop resolution, service calendars and next-departure computation."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
import logging
from typing import Any, Callable
import unicodedata

from flashbacks.clock import iso_from_ms, now_ms
from flashbacks.data.gtfs_feed import GTFSArchive, GTFSFeed

logger = logging.getLogger(__name__)

DAYS_AHEAD = 7
PAST_TOLERANCE_SECONDS = 60
CANDIDATE_FACTOR = 5
SECONDS_PER_DAY = 86400

WEEKDAY_COLUMNS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
EXCEPTION_ADDED = "1"
EXCEPTION_REMOVED = "2"

Row = dict[str, str]


@dataclass(frozen=True)
class StopMatch:
    """Stop ids resolved for a requested name (or id override)."""

    stop_ids: list[str]
    stop_name: str
    exact: int = 0
    prefix: int = 0
    contains: int = 0


@dataclass(frozen=True)
class DepartureEntry:
    """One computed arrival at the resolved stop."""

    route: str
    headsign: str
    minutes: int
    arrival_time: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "route": self.route,
            "headsign": self.headsign,
            "minutes": self.minutes,
            "arrivalTime": self.arrival_time,
        }


@dataclass
class GTFSSnapshot:
    """Indexed feed tables for one stop-name/stop-id cache key."""

    cache_key: str
    stop_name: str
    stop_ids: list[str]
    fetched_at: int
    expires_at: int
    stops_by_id: dict[str, Row] = field(default_factory=dict)
    routes_by_id: dict[str, Row] = field(default_factory=dict)
    trips_by_id: dict[str, Row] = field(default_factory=dict)
    calendar_by_service: dict[str, Row] = field(default_factory=dict)
    exceptions_by_service: dict[str, list[Row]] = field(default_factory=dict)
    stop_times_by_stop: dict[str, list[Row]] = field(default_factory=dict)

    @property
    def primary_stop_id(self) -> str | None:
        return self.stop_ids[0] if self.stop_ids else None


@dataclass(frozen=True)
class DepartureBoard:
    stop_name: str
    stop_id: str | None
    items: list[DepartureEntry]


def normalize_stop_name(name: str | None) -> str:
    """Strip diacritics, lower-case and collapse whitespace."""
    decomposed = unicodedata.normalize("NFD", str(name or ""))
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return " ".join(stripped.lower().split())


def cache_key(stop_name: str | None, stop_id: str | None) -> str:
    return f"{stop_name or ''}::{stop_id or ''}"


def resolve_stops(stops: list[Row], stop_name: str, stop_id_override: str | None = None) -> StopMatch:
    """Match stops by exact, then prefix, then substring on the normalized name.

    An explicit stop id bypasses name matching. No match yields an empty id list.
    """
    if stop_id_override:
        override = str(stop_id_override)
        resolved = stop_name
        for stop in stops:
            if stop.get("stop_id") == override and stop.get("stop_name"):
                resolved = stop["stop_name"]
                break
        return StopMatch(stop_ids=[override], stop_name=resolved)

    target = normalize_stop_name(stop_name)
    normalized = [(stop, normalize_stop_name(stop.get("stop_name"))) for stop in stops]
    exact = [stop for stop, name in normalized if name == target]
    prefix = [stop for stop, name in normalized if name.startswith(target)]
    contains = [stop for stop, name in normalized if target in name]
    candidates = exact or prefix or contains
    resolved = stop_name
    if candidates and candidates[0].get("stop_name"):
        resolved = candidates[0]["stop_name"]
    return StopMatch(
        stop_ids=[stop.get("stop_id", "") for stop in candidates],
        stop_name=resolved,
        exact=len(exact),
        prefix=len(prefix),
        contains=len(contains),
    )


def is_service_active(
    service: Row | None,
    exceptions: list[Row] | None,
    day: date,
) -> bool:
    """True when the service runs on `day`.

    A calendar exception for the exact date wins: "1" adds the day, "2" removes it.
    Otherwise the day must be inside [start_date, end_date] with its weekday flag set.
    """
    ymd = day.strftime("%Y%m%d")
    for exception in exceptions or []:
        if exception.get("date") == ymd:
            return exception.get("exception_type") == EXCEPTION_ADDED
    if service is None:
        return False
    start_date = service.get("start_date")
    end_date = service.get("end_date")
    if start_date and ymd < start_date:
        return False
    if end_date and ymd > end_date:
        return False
    return service.get(WEEKDAY_COLUMNS[day.weekday()]) == "1"


def parse_time_to_seconds(value: str | None) -> int | None:
    """Parse H:MM[:SS] (hours may exceed 23) into seconds after midnight."""
    parts = str(value or "").strip().split(":")
    if len(parts) < 2:
        return None
    try:
        numbers = [int(part) if part else 0 for part in parts[:3]]
    except ValueError:
        return None
    hours, minutes = numbers[0], numbers[1]
    seconds = numbers[2] if len(numbers) > 2 else 0
    return hours * 3600 + minutes * 60 + seconds


def build_snapshot(
    archive: GTFSArchive,
    stop_name: str,
    stop_id_override: str | None,
    fetched_at: int,
    refresh_ms: int,
) -> GTFSSnapshot:
    """Parse the feed tables and index them for the resolved stop."""
    stops = archive.read_table("stops.txt")
    routes = archive.read_table("routes.txt")
    trips = archive.read_table("trips.txt")
    calendar = archive.read_table("calendar.txt")
    calendar_dates = archive.read_table("calendar_dates.txt")
    logger.info(
        "gtfs rows loaded: stops=%d routes=%d trips=%d calendar=%d calendar_dates=%d",
        len(stops),
        len(routes),
        len(trips),
        len(calendar),
        len(calendar_dates),
    )

    match = resolve_stops(stops, stop_name, stop_id_override)
    logger.info(
        "gtfs stop match: name=%s override=%s exact=%d prefix=%d contains=%d ids=%s",
        stop_name,
        stop_id_override,
        match.exact,
        match.prefix,
        match.contains,
        match.stop_ids[:3],
    )

    exceptions_by_service: dict[str, list[Row]] = {}
    for row in calendar_dates:
        exceptions_by_service.setdefault(row.get("service_id", ""), []).append(row)

    stop_times_by_stop: dict[str, list[Row]] = {}
    if match.stop_ids:
        wanted = set(match.stop_ids)
        for row in archive.read_table("stop_times.txt"):
            stop_id = row.get("stop_id", "")
            if stop_id in wanted:
                stop_times_by_stop.setdefault(stop_id, []).append(
                    {"trip_id": row.get("trip_id", ""), "arrival_time": row.get("arrival_time", "")}
                )

    return GTFSSnapshot(
        cache_key=cache_key(stop_name, stop_id_override),
        stop_name=match.stop_name,
        stop_ids=match.stop_ids,
        fetched_at=fetched_at,
        expires_at=fetched_at + refresh_ms,
        stops_by_id={row.get("stop_id", ""): row for row in stops},
        routes_by_id={row.get("route_id", ""): row for row in routes},
        trips_by_id={row.get("trip_id", ""): row for row in trips},
        calendar_by_service={row.get("service_id", ""): row for row in calendar},
        exceptions_by_service=exceptions_by_service,
        stop_times_by_stop=stop_times_by_stop,
    )


def _route_label(snapshot: GTFSSnapshot, trip: Row) -> str:
    route_id = trip.get("route_id", "")
    route = snapshot.routes_by_id.get(route_id)
    if route is None:
        return route_id
    return route.get("route_short_name") or route.get("route_id", "")


def compute_departures(snapshot: GTFSSnapshot, now: datetime, limit: int) -> list[DepartureEntry]:
    """Next `limit` arrivals at the primary stop over today and the following six days."""
    stop_id = snapshot.primary_stop_id
    if stop_id is None or limit <= 0:
        return []
    stop_times = snapshot.stop_times_by_stop.get(stop_id, [])
    now_seconds = now.hour * 3600 + now.minute * 60 + now.second
    today = now.date()

    found: list[DepartureEntry] = []
    for day_offset in range(DAYS_AHEAD):
        if len(found) >= limit * CANDIDATE_FACTOR:
            break
        day = today + timedelta(days=day_offset)
        for stop_time in stop_times:
            trip = snapshot.trips_by_id.get(stop_time["trip_id"])
            if trip is None:
                continue
            service_id = trip.get("service_id", "")
            if not is_service_active(
                snapshot.calendar_by_service.get(service_id),
                snapshot.exceptions_by_service.get(service_id),
                day,
            ):
                continue
            arrival_seconds = parse_time_to_seconds(stop_time["arrival_time"])
            if arrival_seconds is None:
                continue
            diff_seconds = day_offset * SECONDS_PER_DAY + arrival_seconds - now_seconds
            if diff_seconds < -PAST_TOLERANCE_SECONDS:
                continue
            found.append(
                DepartureEntry(
                    route=_route_label(snapshot, trip),
                    headsign=trip.get("trip_headsign", ""),
                    minutes=max(0, diff_seconds // 60),
                    arrival_time=stop_time["arrival_time"],
                )
            )

    found.sort(key=lambda entry: (entry.minutes, entry.arrival_time))
    return found[:limit]


class GTFSEngine:
    """Keeps one indexed snapshot per stop key and answers departure queries."""

    def __init__(
        self,
        feed: GTFSFeed,
        refresh_ms: int,
        default_stop_name: str,
        clock: Callable[[], int] = now_ms,
        local_now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._feed = feed
        self._refresh_ms = refresh_ms
        self._default_stop_name = default_stop_name
        self._clock = clock
        self._local_now = local_now
        self._snapshot: GTFSSnapshot | None = None

    @property
    def feed(self) -> GTFSFeed:
        return self._feed

    @property
    def default_stop_name(self) -> str:
        return self._default_stop_name

    async def load(self, stop_name: str | None = None, stop_id: str | None = None) -> GTFSSnapshot:
        """Return the cached snapshot for this stop key or rebuild it."""
        stop_name = stop_name or self._default_stop_name
        key = cache_key(stop_name, stop_id)
        snapshot = self._snapshot
        if snapshot is not None and snapshot.expires_at > self._clock() and snapshot.cache_key == key:
            logger.debug("gtfs cache HIT: key=%s", key)
            return snapshot
        snapshot = await asyncio.to_thread(self._build, stop_name, stop_id)
        self._snapshot = snapshot
        return snapshot

    def _build(self, stop_name: str, stop_id: str | None) -> GTFSSnapshot:
        self._feed.ensure_fresh()
        with self._feed.open() as archive:
            return build_snapshot(archive, stop_name, stop_id, self._clock(), self._refresh_ms)

    async def next_departures(
        self,
        stop_name: str | None = None,
        limit: int = 10,
        stop_id: str | None = None,
    ) -> DepartureBoard:
        snapshot = await self.load(stop_name, stop_id)
        effective_name = snapshot.stop_name or stop_name or self._default_stop_name
        if snapshot.primary_stop_id is None:
            return DepartureBoard(stop_name=effective_name, stop_id=None, items=[])
        items = compute_departures(snapshot, self._local_now(), limit)
        return DepartureBoard(stop_name=effective_name, stop_id=snapshot.primary_stop_id, items=items)

    async def search_stops(
        self,
        query: str | None,
        limit: int = 50,
        stop_name: str | None = None,
    ) -> list[dict[str, str]]:
        """Stops whose normalized name contains the normalized query."""
        snapshot = await self.load(stop_name)
        target = normalize_stop_name(query)
        found: list[dict[str, str]] = []
        for stop_id, stop in snapshot.stops_by_id.items():
            name = stop.get("stop_name", "")
            if not target or target in normalize_stop_name(name):
                found.append({"stop_id": stop_id, "stop_name": name})
        return found[: max(0, limit)]

    async def debug(self, stop_name: str | None = None, stop_id: str | None = None) -> dict[str, Any]:
        requested = stop_name or self._default_stop_name
        snapshot = await self.load(requested, stop_id)
        primary = snapshot.primary_stop_id
        return {
            "gtfsUrl": self._feed.url,
            "gtfsPath": str(self._feed.path),
            "updatedAt": iso_from_ms(snapshot.fetched_at),
            "expiresAt": iso_from_ms(snapshot.expires_at),
            "stopName": requested,
            "stopId": primary,
            "stopSample": snapshot.stops_by_id.get(primary) if primary else None,
            "stopIds": snapshot.stop_ids[:5],
            "stopTimesCount": len(snapshot.stop_times_by_stop.get(primary, [])) if primary else 0,
        }


__all__ = [
    "DepartureBoard",
    "DepartureEntry",
    "GTFSEngine",
    "GTFSSnapshot",
    "StopMatch",
    "build_snapshot",
    "cache_key",
    "compute_departures",
    "is_service_active",
    "normalize_stop_name",
    "parse_time_to_seconds",
    "resolve_stops",
]
