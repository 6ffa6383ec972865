"""TTL-cached directory and album listings mirrored under a cache root."""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import os
from pathlib import Path
import tempfile
import time
from typing import Any, Callable

from flashbacks.clock import now_ms, utc_now_iso

logger = logging.getLogger(__name__)

DIRS_FILE_NAME = "_dirs.json"
FILES_FILE_NAME = "_files.json"
SORT_KEY = "filename"

EXCLUDED_TOPLEVEL = frozenset({"#Recycle"})
EXCLUDED_DIR_NAMES = frozenset({".picasaoriginals", "@eadir", "#recycle"})
IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png"})


@dataclass(frozen=True)
class CacheLookup:
    """Result of a cache lookup: the entries and whether they came from disk."""

    entries: list[str]
    from_cache: bool
    elapsed_ms: int


def read_cache_file(path: Path) -> Any | None:
    """Return the parsed JSON payload, or None if the file is missing or corrupt."""
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return json.load(handle)
    except (OSError, ValueError):
        return None


def write_cache_file(path: Path, payload: Any) -> None:
    """Write payload atomically via a temp file; failures are logged, not raised."""
    tmp_path: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        # Each writer gets its own temp file so concurrent scans never share a handle.
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=path.name + ".", suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)
        tmp_path = None
    except OSError as exc:
        logger.warning("cache write failed, continuing without cache: path=%s err=%s", path, exc)
    finally:
        if tmp_path is not None:
            _remove_quietly(tmp_path)


def _remove_quietly(path: str | Path) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("temp file cleanup failed: path=%s err=%s", path, exc)


def _is_hidden(name: str) -> bool:
    return name.startswith(".")


def _is_excluded_dir(name: str) -> bool:
    return _is_hidden(name) or name.lower() in EXCLUDED_DIR_NAMES


def list_dirs(abs_dir: Path) -> list[str]:
    """List visible, non-denylisted child directory names (non-recursive)."""
    try:
        with os.scandir(abs_dir) as entries:
            return [
                entry.name
                for entry in entries
                if entry.is_dir() and not _is_excluded_dir(entry.name)
            ]
    except OSError as exc:
        logger.warning("listing directory failed: dir=%s err=%s", abs_dir, exc)
        return []


def scan_album_files(abs_dir: Path, max_depth: int = 10) -> list[str]:
    """Recursively collect image files under abs_dir, sorted into timeline order."""
    found: list[str] = []

    def walk(current: str, depth: int) -> None:
        if depth > max_depth:
            return
        try:
            with os.scandir(current) as it:
                entries = list(it)
        except OSError:
            return
        for entry in entries:
            if _is_hidden(entry.name):
                continue
            if entry.is_dir():
                if entry.name.lower() in EXCLUDED_DIR_NAMES:
                    continue
                walk(entry.path, depth + 1)
            elif entry.is_file():
                if os.path.splitext(entry.name)[1].lower() in IMAGE_EXTENSIONS:
                    found.append(entry.path)

    walk(str(abs_dir), 0)
    found.sort()
    return found


class _MirroredCache:
    """Shared path mirroring between the photo tree and the cache root."""

    file_name = DIRS_FILE_NAME

    def __init__(self, root_dir: Path, cache_dir: Path, clock: Callable[[], int] = now_ms) -> None:
        self._root_dir = Path(root_dir)
        self._cache_dir = Path(cache_dir)
        self._clock = clock

    def relative(self, abs_path: Path | str) -> str:
        """Path relative to the media root with forward slashes ("" for the root)."""
        rel = os.path.relpath(abs_path, self._root_dir)
        if rel == ".":
            return ""
        return rel.replace(os.sep, "/")

    def cache_path(self, abs_dir: Path) -> Path:
        rel = self.relative(abs_dir)
        base = self._cache_dir / rel if rel else self._cache_dir
        return base / self.file_name

    def _is_fresh(self, record: Any, key: str) -> bool:
        if not isinstance(record, dict):
            return False
        expires_at = record.get("expiresAt")
        if not isinstance(expires_at, (int, float)) or not expires_at:
            return False
        return self._clock() < expires_at and isinstance(record.get(key), list)


class DirectoryCache(_MirroredCache):
    """Cached child-directory listings for the root and year levels."""

    file_name = DIRS_FILE_NAME

    def __init__(
        self,
        root_dir: Path,
        cache_dir: Path,
        root_ttl_ms: int,
        year_ttl_ms: int,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        super().__init__(root_dir, cache_dir, clock)
        self._root_ttl_ms = root_ttl_ms
        self._year_ttl_ms = year_ttl_ms

    def get(self, abs_dir: Path) -> CacheLookup:
        """Return child directory names for abs_dir, scanning on miss or expiry."""
        started = time.monotonic()
        is_root = Path(abs_dir) == self._root_dir
        level = "root" if is_root else "year"
        cache_path = self.cache_path(abs_dir)
        record = read_cache_file(cache_path)
        if self._is_fresh(record, "dirs"):
            dirs = [str(name) for name in record["dirs"]]
            logger.debug("%s cache HIT: dir=%s dirs=%d", level, self.relative(abs_dir), len(dirs))
            return CacheLookup(dirs, True, _elapsed_ms(started))

        logger.info(
            "%s cache MISS: dir=%s present=%s", level, self.relative(abs_dir), record is not None
        )
        dirs = list_dirs(Path(abs_dir))
        if is_root:
            dirs = [name for name in dirs if name not in EXCLUDED_TOPLEVEL]
        ttl_ms = self._root_ttl_ms if is_root else self._year_ttl_ms
        write_cache_file(
            cache_path,
            {"dirs": dirs, "expiresAt": self._clock() + ttl_ms, "updatedAt": utc_now_iso()},
        )
        return CacheLookup(dirs, False, _elapsed_ms(started))


class AlbumFileCache(_MirroredCache):
    """Cached recursive image listings for event folders."""

    file_name = FILES_FILE_NAME

    def __init__(
        self,
        root_dir: Path,
        cache_dir: Path,
        ttl_ms: int,
        max_depth: int = 10,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        super().__init__(root_dir, cache_dir, clock)
        self._ttl_ms = ttl_ms
        self._max_depth = max_depth

    def get(self, abs_dir: Path) -> CacheLookup:
        """Return sorted absolute image paths for abs_dir, scanning on miss or expiry."""
        started = time.monotonic()
        cache_path = self.cache_path(abs_dir)
        record = read_cache_file(cache_path)
        # An empty cached list counts as a miss so newly filled albums are picked up.
        if self._is_fresh(record, "files") and record["files"]:
            files = [str(name) for name in record["files"]]
            logger.debug("album cache HIT: album=%s files=%d", self.relative(abs_dir), len(files))
            return CacheLookup(files, True, _elapsed_ms(started))

        logger.info("album cache MISS: album=%s present=%s", self.relative(abs_dir), record is not None)
        files = scan_album_files(Path(abs_dir), self._max_depth)
        write_cache_file(
            cache_path,
            {
                "files": files,
                "sortKey": SORT_KEY,
                "expiresAt": self._clock() + self._ttl_ms,
                "updatedAt": utc_now_iso(),
            },
        )
        return CacheLookup(files, False, _elapsed_ms(started))


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


__all__ = [
    "AlbumFileCache",
    "CacheLookup",
    "DirectoryCache",
    "EXCLUDED_DIR_NAMES",
    "EXCLUDED_TOPLEVEL",
    "IMAGE_EXTENSIONS",
    "list_dirs",
    "read_cache_file",
    "scan_album_files",
    "write_cache_file",
]
