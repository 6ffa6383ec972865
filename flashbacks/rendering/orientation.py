"""EXIF orientation inspection for client-side rotation hints."""

from __future__ import annotations

from PIL import Image

EXIF_ORIENTATION_TAG = 0x0112
# 3 = upside down, 6 and 8 = sideways.
ROTATED_ORIENTATIONS = frozenset({3, 6, 8})


def read_orientation(path: str) -> int | None:
    with Image.open(path) as image:
        value = image.getexif().get(EXIF_ORIENTATION_TAG)
    return value if isinstance(value, int) else None


def needs_rotation(path: str) -> bool:
    """True when the embedded orientation is sideways or upside down."""
    try:
        return read_orientation(path) in ROTATED_ORIENTATIONS
    except (OSError, ValueError):
        return False


def rotate_flags(paths: list[str]) -> list[bool]:
    return [needs_rotation(path) for path in paths]


__all__ = ["EXIF_ORIENTATION_TAG", "ROTATED_ORIENTATIONS", "needs_rotation", "read_orientation", "rotate_flags"]
