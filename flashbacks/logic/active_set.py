"""The single live album selection and its expiry lifecycle."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import random
from typing import Any, Callable

from flashbacks.clock import iso_from_ms, now_ms
from flashbacks.logic.selection import Selection, SelectionEngine

logger = logging.getLogger(__name__)

REFRESH_JITTER_MAX_MS = 10_000


@dataclass
class ActiveSet:
    """Currently displayed selection plus memoized collage bytes and rotation flags."""

    selection: Selection
    generated_at: str
    expires_at: int
    refresh_jitter_ms: int
    collage_overview: bytes | None = None
    collage_sequence: bytes | None = None
    rotate_flags: list[bool] | None = None

    @property
    def files(self) -> list[str]:
        return self.selection.files

    @property
    def window(self) -> list[str]:
        return self.selection.window

    @property
    def window_rel(self) -> list[str]:
        return self.selection.window_rel

    @property
    def start_index(self) -> int:
        return self.selection.start_index

    @property
    def refresh_at_ms(self) -> int:
        return self.expires_at + self.refresh_jitter_ms

    @property
    def refresh_at_iso(self) -> str:
        return iso_from_ms(self.refresh_at_ms)

    def refresh_in_ms(self, now: int) -> int:
        return max(0, self.refresh_at_ms - now)

    def is_live(self, now: int) -> bool:
        return now < self.expires_at

    def picked(self) -> dict[str, Any]:
        return {
            "year": self.selection.year,
            "event": self.selection.event,
            "startIndex": self.selection.start_index,
            "pickedAt": self.selection.picked_at,
        }


class ActiveSetManager:
    """Owns the active set: reuses it while live, reselects when absent or expired."""

    def __init__(
        self,
        engine: SelectionEngine,
        window_ms: int,
        clock: Callable[[], int] = now_ms,
        rng: random.Random | None = None,
    ) -> None:
        self._engine = engine
        self._window_ms = window_ms
        self._clock = clock
        self._rng = rng or random.Random()
        self._current: ActiveSet | None = None

    @property
    def current(self) -> ActiveSet | None:
        return self._current

    def now(self) -> int:
        return self._clock()

    async def get_or_refresh(self, rid: str = "-") -> ActiveSet:
        """Return the live set, selecting a new one if it is absent or expired."""
        current = self._current
        if current is not None and current.is_live(self._clock()):
            logger.debug("[rid=%s] active set HIT: expires_in_ms=%d", rid, current.expires_at - self._clock())
            return current
        active = await self._select(rid)
        logger.info("[rid=%s] active set NEW: picked=%s", rid, active.picked())
        return active

    async def force_refresh(self, rid: str = "-") -> ActiveSet:
        """Replace the active set unconditionally."""
        active = await self._select(rid)
        logger.info("[rid=%s] active set FORCED: picked=%s", rid, active.picked())
        return active

    async def _select(self, rid: str) -> ActiveSet:
        selection = await asyncio.to_thread(self._engine.pick, rid)
        active = self._wrap(selection)
        self._current = active
        return active

    def _wrap(self, selection: Selection) -> ActiveSet:
        now = self._clock()
        return ActiveSet(
            selection=selection,
            generated_at=iso_from_ms(now),
            expires_at=now + self._window_ms,
            refresh_jitter_ms=self._rng.randrange(REFRESH_JITTER_MAX_MS),
        )


__all__ = ["ActiveSet", "ActiveSetManager", "REFRESH_JITTER_MAX_MS"]
