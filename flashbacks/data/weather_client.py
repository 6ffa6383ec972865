"""Open-Meteo current-conditions client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import requests

OPEN_METEO_BASE = "https://api.open-meteo.com/v1/forecast"


class WeatherClientError(Exception):
    """Raised when a weather request fails or returns unusable data."""


@dataclass(frozen=True)
class CurrentConditions:
    """Temperature and apparent temperature at fetch time."""

    temperature: float
    feels_like: float


class WeatherClient:
    """Thin wrapper around the Open-Meteo forecast endpoint using requests."""

    def __init__(self, latitude: float, longitude: float, unit: str = "celsius") -> None:
        self._latitude = latitude
        self._longitude = longitude
        self._unit = unit
        self._timeout_seconds = 10

    def get_current(self) -> CurrentConditions:
        """Fetch the current temperature and feels-like reading."""
        params = {
            "latitude": self._latitude,
            "longitude": self._longitude,
            "current": "temperature_2m,apparent_temperature",
            "temperature_unit": self._unit,
            "timezone": "auto",
        }
        current = self._get(params).get("current")
        if not isinstance(current, dict):
            raise WeatherClientError("Weather response missing current conditions")
        temperature = current.get("temperature_2m")
        feels_like = current.get("apparent_temperature")
        if not _is_number(temperature) or not _is_number(feels_like):
            raise WeatherClientError("Weather response missing temperature fields")
        return CurrentConditions(temperature=float(temperature), feels_like=float(feels_like))

    def _get(self, params: dict[str, Any]) -> dict[str, Any]:
        try:
            response = requests.get(OPEN_METEO_BASE, params=params, timeout=self._timeout_seconds)
        except requests.RequestException as exc:
            raise WeatherClientError(f"Weather request failed: {exc}") from exc

        if response.status_code != 200:
            raise WeatherClientError(f"Weather request failed: Status {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise WeatherClientError("Weather response was not valid JSON") from exc
        if not isinstance(data, dict):
            raise WeatherClientError("Weather response was not a JSON object")
        return data


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


__all__ = ["CurrentConditions", "WeatherClient", "WeatherClientError"]
