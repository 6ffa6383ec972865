"""Periodic weather poller with a retention-trimmed sample history."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Any, Callable

from flashbacks.clock import now_ms
from flashbacks.data.listing_cache import read_cache_file, write_cache_file
from flashbacks.data.weather_client import WeatherClient, WeatherClientError

logger = logging.getLogger(__name__)

WEATHER_FILE_NAME = "weather-trends.json"
HOUR_MS = 60 * 60 * 1000


@dataclass(frozen=True)
class WeatherSample:
    """One polled reading; `ts` is epoch milliseconds."""

    ts: int
    temp: float
    feels: float

    def to_dict(self) -> dict[str, Any]:
        return {"ts": self.ts, "temp": self.temp, "feels": self.feels}

    @classmethod
    def from_dict(cls, data: Any) -> WeatherSample | None:
        if not isinstance(data, dict):
            return None
        ts, temp, feels = data.get("ts"), data.get("temp"), data.get("feels")
        if not all(isinstance(value, (int, float)) for value in (ts, temp, feels)):
            return None
        return cls(ts=int(ts), temp=float(temp), feels=float(feels))


class WeatherSampler:
    """Asyncio task that appends one sample per interval and persists the history."""

    def __init__(
        self,
        client: WeatherClient,
        path: Path,
        interval_seconds: float,
        history_hours: float,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._client = client
        self._path = Path(path)
        self._interval_seconds = interval_seconds
        self._history_hours = history_hours
        self._clock = clock
        self._samples: list[WeatherSample] = []
        self._task: asyncio.Task | None = None

    @property
    def history_hours(self) -> float:
        return self._history_hours

    def load(self) -> None:
        """Load persisted samples, dropping malformed and expired entries."""
        data = read_cache_file(self._path)
        loaded = [WeatherSample.from_dict(item) for item in data] if isinstance(data, list) else []
        self._samples = self._trim([sample for sample in loaded if sample is not None])
        logger.info("weather history loaded: samples=%d", len(self._samples))

    def samples(self) -> list[WeatherSample]:
        """Current samples after retention trimming."""
        self._samples = self._trim(self._samples)
        return list(self._samples)

    def latest(self) -> WeatherSample | None:
        samples = self.samples()
        return samples[-1] if samples else None

    async def record_once(self) -> WeatherSample | None:
        """Fetch one reading; on failure log and keep the history unchanged."""
        try:
            conditions = await asyncio.to_thread(self._client.get_current)
        except WeatherClientError as exc:
            logger.warning("weather sample failed: %s", exc)
            return None
        sample = WeatherSample(ts=self._clock(), temp=conditions.temperature, feels=conditions.feels_like)
        self._samples = self._trim(self._samples + [sample])
        await asyncio.to_thread(write_cache_file, self._path, [item.to_dict() for item in self._samples])
        return sample

    def start(self) -> None:
        """Start the background sampling task."""
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._run_loop(), name="weather_sampler")

    async def stop(self) -> None:
        """Cancel the sampling task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run_loop(self) -> None:
        while True:
            try:
                await self.record_once()
            except Exception:
                logger.exception("weather sampling pass failed; retrying next interval")
            await asyncio.sleep(self._interval_seconds)

    def _trim(self, samples: list[WeatherSample]) -> list[WeatherSample]:
        cutoff = self._clock() - self._history_hours * HOUR_MS
        return [sample for sample in samples if sample.ts >= cutoff]


__all__ = ["WEATHER_FILE_NAME", "WeatherSample", "WeatherSampler"]
