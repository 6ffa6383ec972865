"""Tile selection for the overview and sequence collages."""

from __future__ import annotations


def collage_count(total: int, rows: int, cols: int, configured: int) -> int:
    """Number of tiles: bounded by grid capacity, album size and configured count."""
    return min(rows * cols, total, configured)


def pick_overview_files(files: list[str], count: int) -> list[str]:
    """Evenly sample `count` files across the whole album, always starting at the first."""
    if not files or count <= 0:
        return []
    total = len(files)
    want = min(count, total)
    if want >= total:
        return list(files)
    step = total / want
    return [files[int(i * step)] for i in range(want)]


def pick_sequence_files(files: list[str], start_index: int, count: int, offset: int) -> list[str]:
    """Take `count` files continuing after the displayed window, wrapping at the end."""
    if not files or count <= 0:
        return []
    total = len(files)
    want = min(count, total)
    start = min(start_index + offset, total - 1)
    return [files[(start + i) % total] for i in range(want)]


__all__ = ["collage_count", "pick_overview_files", "pick_sequence_files"]
