"""Millisecond wall-clock helpers shared by caches and the active set."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import time


def now_ms() -> int:
    return int(time.time() * 1000)


def iso_from_ms(value_ms: int) -> str:
    """Format epoch milliseconds as an ISO-8601 UTC string with a trailing Z."""
    seconds, millis = divmod(int(value_ms), 1000)
    stamp = datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(milliseconds=millis)
    return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now_iso() -> str:
    return iso_from_ms(now_ms())


__all__ = ["iso_from_ms", "now_ms", "utc_now_iso"]
