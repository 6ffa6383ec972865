"""Fixed response records for each JSON route."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from flashbacks.logic.active_set import ActiveSet


@dataclass(frozen=True)
class RefreshInfo:
    refresh_at: str
    refresh_in_ms: int

    @classmethod
    def for_set(cls, active: ActiveSet, now: int) -> RefreshInfo:
        return cls(refresh_at=active.refresh_at_iso, refresh_in_ms=active.refresh_in_ms(now))

    def headers(self) -> dict[str, str]:
        return {
            "X-Flashbacks-Refresh-In-Ms": str(self.refresh_in_ms),
            "X-Flashbacks-Refresh-At": self.refresh_at,
        }


@dataclass(frozen=True)
class StateResponse:
    """Active-set metadata for the display overlay."""

    generated_at: str
    expires_at: int
    refresh: RefreshInfo
    album_expose_sec: int
    stream_count: int
    window_rel: list[str]
    rotate_flags: list[bool]
    picked: dict[str, Any]
    files_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "generatedAt": self.generated_at,
            "expiresAt": self.expires_at,
            "refreshAt": self.refresh.refresh_at,
            "refreshInMs": self.refresh.refresh_in_ms,
            "albumExposeSec": self.album_expose_sec,
            "streamCount": self.stream_count,
            "windowRel": self.window_rel,
            "rotateFlags": self.rotate_flags,
            "picked": self.picked,
            "filesCount": self.files_count,
        }


@dataclass(frozen=True)
class NextResponse:
    generated_at: str
    expires_at: int
    refresh: RefreshInfo
    window_rel: list[str]
    picked: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "generatedAt": self.generated_at,
            "expiresAt": self.expires_at,
            "refreshAt": self.refresh.refresh_at,
            "refreshInMs": self.refresh.refresh_in_ms,
            "windowRel": self.window_rel,
            "picked": self.picked,
        }


@dataclass(frozen=True)
class ExcludeResponse:
    excluded: list[str]
    picked: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"excluded": self.excluded, "picked": self.picked}


@dataclass(frozen=True)
class DeparturesResponse:
    stop_name: str
    stop_id: str | None
    updated_at: str
    items: list[dict[str, Any]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "stopName": self.stop_name,
            "stopId": self.stop_id,
            "updatedAt": self.updated_at,
            "items": self.items,
        }


@dataclass(frozen=True)
class StopsResponse:
    items: list[dict[str, str]]

    def to_dict(self) -> dict[str, Any]:
        return {"items": self.items}


@dataclass(frozen=True)
class WeatherTrendsResponse:
    updated_at: str
    history_hours: float
    interval_min: int
    samples: list[dict[str, Any]]
    current: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        body = {
            "updatedAt": self.updated_at,
            "historyHours": self.history_hours,
            "intervalMin": self.interval_min,
            "samples": self.samples,
        }
        if self.current is not None:
            body["current"] = self.current
        return body


@dataclass(frozen=True)
class Endpoint:
    path: str
    description: str
    method: str = "GET"

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "method": self.method, "description": self.description}


@dataclass(frozen=True)
class HelpResponse:
    endpoints: list[Endpoint] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"endpoints": [endpoint.to_dict() for endpoint in self.endpoints]}


@dataclass(frozen=True)
class ErrorResponse:
    error: str
    err: str | None = None

    def to_dict(self) -> dict[str, Any]:
        body = {"error": self.error}
        if self.err is not None:
            body["err"] = self.err
        return body


__all__ = [
    "DeparturesResponse",
    "Endpoint",
    "ErrorResponse",
    "ExcludeResponse",
    "HelpResponse",
    "NextResponse",
    "RefreshInfo",
    "StateResponse",
    "StopsResponse",
    "WeatherTrendsResponse",
]
