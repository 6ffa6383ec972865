"""Random year -> event -> file-window album picker."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import random

from flashbacks.clock import utc_now_iso
from flashbacks.data.exclusions import ExclusionStore
from flashbacks.data.listing_cache import AlbumFileCache, DirectoryCache
from flashbacks.logic.retry import RetryExhausted, retry_until

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 15


class NoAvailableAlbum(Exception):
    """Raised when no album with images can be selected."""


@dataclass(frozen=True)
class Selection:
    """One picked album and the window of files shown from it."""

    year: str
    event: str
    start_index: int
    picked_at: str
    files: list[str]
    window: list[str]
    window_rel: list[str]
    from_cache: bool = False


def pick_window(files: list[str], size: int, rng: random.Random | None = None) -> tuple[int, list[str]]:
    """Pick a uniform start index and return it with `size` consecutive, wrapping files."""
    if not files:
        return 0, []
    rng = rng or random
    start_index = rng.randrange(len(files))
    window = [files[(start_index + offset) % len(files)] for offset in range(size)]
    return start_index, window


class SelectionEngine:
    """Uniform random album picker over the cached photo tree."""

    def __init__(
        self,
        root_dir: Path,
        dir_cache: DirectoryCache,
        file_cache: AlbumFileCache,
        exclusions: ExclusionStore,
        window_size: int,
        max_attempts: int = MAX_ATTEMPTS,
        rng: random.Random | None = None,
    ) -> None:
        self._root_dir = Path(root_dir)
        self._dir_cache = dir_cache
        self._file_cache = file_cache
        self._exclusions = exclusions
        self._window_size = window_size
        self._max_attempts = max_attempts
        self._rng = rng or random.Random()

    @property
    def window_size(self) -> int:
        return self._window_size

    def pick(self, rid: str = "-") -> Selection:
        """Pick a new album selection or raise NoAvailableAlbum."""
        years = self._dir_cache.get(self._root_dir)
        logger.info("[rid=%s] root dir list: count=%d cached=%s", rid, len(years.entries), years.from_cache)
        if not years.entries:
            raise NoAvailableAlbum("No top-level folders found (after exclude).")

        def attempt(number: int) -> Selection | None:
            return self._try_pick(rid, number, years.entries)

        try:
            return retry_until(attempt, self._max_attempts)
        except RetryExhausted as exc:
            raise NoAvailableAlbum(
                f"Failed to find any album with images after {exc.attempts} attempts."
            ) from exc

    def _try_pick(self, rid: str, number: int, years: list[str]) -> Selection | None:
        year = self._rng.choice(years)
        year_dir = self._root_dir / year
        events = self._dir_cache.get(year_dir)
        if not events.entries:
            logger.info("[rid=%s] no events in year: year=%s attempt=%d", rid, year, number)
            return None

        allowed = [name for name in events.entries if not self._exclusions.is_excluded(year, name)]
        if not allowed:
            logger.info("[rid=%s] all events excluded: year=%s total=%d", rid, year, len(events.entries))
            return None

        event = self._rng.choice(allowed)
        album = self._file_cache.get(year_dir / event)
        if not album.entries:
            logger.info("[rid=%s] event has 0 images: %s/%s attempt=%d", rid, year, event, number)
            return None

        start_index, window = pick_window(album.entries, self._window_size, self._rng)
        logger.info(
            "[rid=%s] picked %s/%s: start=%d files=%d cached=%s",
            rid,
            year,
            event,
            start_index,
            len(album.entries),
            album.from_cache,
        )
        return Selection(
            year=year,
            event=event,
            start_index=start_index,
            picked_at=utc_now_iso(),
            files=album.entries,
            window=window,
            window_rel=[self._file_cache.relative(path) for path in window],
            from_cache=album.from_cache,
        )


__all__ = ["MAX_ATTEMPTS", "NoAvailableAlbum", "Selection", "SelectionEngine", "pick_window"]
