"""Persisted set of permanently skipped albums."""

from __future__ import annotations

import logging
from pathlib import Path

from flashbacks.data.listing_cache import read_cache_file, write_cache_file

logger = logging.getLogger(__name__)

EXCLUDE_FILE_NAME = "exclude.json"


def event_key(year: str, event: str) -> str:
    return f"{year}/{event}"


class ExclusionStore:
    """Set of "year/event" keys, loaded once and rewritten on every addition."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._keys: set[str] = set()
        self._order: list[str] = []

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> None:
        """Load keys from disk; a missing or malformed file leaves the set empty."""
        if not self._path.exists():
            return
        data = read_cache_file(self._path)
        if not isinstance(data, list):
            logger.warning("failed to load exclusions: path=%s", self._path)
            return
        for key in data:
            self._remember(str(key))
        logger.info("loaded exclusions: count=%d", len(self._order))

    def is_excluded(self, year: str, event: str) -> bool:
        return event_key(year, event) in self._keys

    def add(self, year: str, event: str) -> str:
        """Exclude one album and persist the full set."""
        key = event_key(year, event)
        self._remember(key)
        write_cache_file(self._path, self.keys())
        logger.info("album excluded: key=%s total=%d", key, len(self._order))
        return key

    def keys(self) -> list[str]:
        return list(self._order)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._order)

    def _remember(self, key: str) -> None:
        if key not in self._keys:
            self._keys.add(key)
            self._order.append(key)


__all__ = ["EXCLUDE_FILE_NAME", "ExclusionStore", "event_key"]
