"""Grid collage and single-slide JPEG composition."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from io import BytesIO
import logging

from PIL import Image, ImageOps

from flashbacks.config import CollageConfig
from flashbacks.logic.active_set import ActiveSet
from flashbacks.rendering.orientation import rotate_flags
from flashbacks.rendering.sampling import collage_count, pick_overview_files, pick_sequence_files

logger = logging.getLogger(__name__)


class CollageError(Exception):
    """Raised when the active set has no files to build a collage from."""


@dataclass(frozen=True)
class TileGeometry:
    """Cell size and grid shape for a collage canvas."""

    rows: int
    cols: int
    tile_width: int
    tile_height: int
    gap: int

    @property
    def capacity(self) -> int:
        return self.rows * self.cols

    def origin(self, index: int) -> tuple[int, int]:
        """Top-left (x, y) of the cell at `index`, filled row by row."""
        row = index // self.cols
        col = index % self.cols
        return col * (self.tile_width + self.gap), row * (self.tile_height + self.gap)


def tile_geometry(config: CollageConfig) -> TileGeometry:
    gap = max(0, config.gap)
    return TileGeometry(
        rows=config.rows,
        cols=config.cols,
        tile_width=(config.width - gap * (config.cols - 1)) // config.cols,
        tile_height=(config.height - gap * (config.rows - 1)) // config.rows,
        gap=gap,
    )


def _open_rgb(path: str, auto_rotate: bool) -> Image.Image:
    with Image.open(path) as source:
        image = ImageOps.exif_transpose(source) if auto_rotate else source.copy()
    return image.convert("RGB")


def _encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def compose_collage(files: list[str], config: CollageConfig) -> Image.Image:
    """Tile `files` onto a fixed-size canvas, crop-to-fill per cell."""
    geometry = tile_geometry(config)
    canvas = Image.new("RGB", (config.width, config.height), config.background)
    for index, path in enumerate(files[: geometry.capacity]):
        tile = ImageOps.fit(
            _open_rgb(path, config.auto_rotate),
            (geometry.tile_width, geometry.tile_height),
            method=Image.Resampling.LANCZOS,
        )
        canvas.paste(tile, geometry.origin(index))
    return canvas


def build_collage(files: list[str], config: CollageConfig) -> bytes:
    return _encode_jpeg(compose_collage(files, config), config.quality)


def render_slide(path: str, config: CollageConfig) -> bytes:
    """Re-encode one image bounded to the output size, never enlarged."""
    image = _open_rgb(path, config.auto_rotate)
    image.thumbnail((config.width, config.height), Image.Resampling.LANCZOS)
    return _encode_jpeg(image, config.slide_quality)


class CollageComposer:
    """Builds collages and rotation flags for an active set, memoized on the set."""

    def __init__(self, config: CollageConfig, window_size: int) -> None:
        self._config = config
        self._window_size = window_size

    @property
    def config(self) -> CollageConfig:
        return self._config

    def tile_count(self, files: list[str]) -> int:
        return collage_count(len(files), self._config.rows, self._config.cols, self._config.count)

    def overview_files(self, active: ActiveSet) -> list[str]:
        return pick_overview_files(active.files, self.tile_count(active.files))

    def sequence_files(self, active: ActiveSet) -> list[str]:
        return pick_sequence_files(
            active.files, active.start_index, self.tile_count(active.files), self._window_size
        )

    async def overview(self, active: ActiveSet) -> bytes:
        if active.collage_overview is None:
            files = self._require_files(active, self.overview_files)
            data = await asyncio.to_thread(build_collage, files, self._config)
            active.collage_overview = data
            logger.info("overview collage built: tiles=%d bytes=%d", len(files), len(data))
        return active.collage_overview

    async def sequence(self, active: ActiveSet) -> bytes:
        if active.collage_sequence is None:
            files = self._require_files(active, self.sequence_files)
            data = await asyncio.to_thread(build_collage, files, self._config)
            active.collage_sequence = data
            logger.info("sequence collage built: tiles=%d bytes=%d", len(files), len(data))
        return active.collage_sequence

    async def slide(self, path: str) -> bytes:
        return await asyncio.to_thread(render_slide, path, self._config)

    async def ensure_rotate_flags(self, active: ActiveSet) -> list[bool]:
        """Inspect orientation of the window files once per active set."""
        if active.rotate_flags is None:
            active.rotate_flags = await asyncio.to_thread(rotate_flags, list(active.window))
        return active.rotate_flags

    @staticmethod
    def _require_files(active: ActiveSet, picker) -> list[str]:
        if not active.files:
            raise CollageError("No files for collage")
        return picker(active)


__all__ = [
    "CollageComposer",
    "CollageError",
    "TileGeometry",
    "build_collage",
    "compose_collage",
    "render_slide",
    "tile_geometry",
]
