from __future__ import annotations

import json
from pathlib import Path
import threading

from conftest import write_image
from flashbacks.data.listing_cache import (
    AlbumFileCache,
    DirectoryCache,
    read_cache_file,
    scan_album_files,
    write_cache_file,
)

NOW = 1_700_000_000_000
DAY_MS = 24 * 60 * 60 * 1000


class FakeClock:
    def __init__(self, value: int = NOW) -> None:
        self.value = value

    def __call__(self) -> int:
        return self.value


def _dir_cache(root: Path, cache_dir: Path, clock: FakeClock) -> DirectoryCache:
    return DirectoryCache(root, cache_dir, root_ttl_ms=30 * DAY_MS, year_ttl_ms=180 * DAY_MS, clock=clock)


def test_scan_album_files_filters_and_sorts(tmp_path) -> None:
    album = tmp_path / "album"
    write_image(album / "b.jpg", (1, 2, 3))
    write_image(album / "A.JPEG", (1, 2, 3))
    write_image(album / "nested" / "c.png", (1, 2, 3))
    (album / "notes.txt").write_text("skip", encoding="utf-8")
    write_image(album / ".hidden.jpg", (1, 2, 3))
    write_image(album / "@eaDir" / "thumb.jpg", (1, 2, 3))
    write_image(album / ".picasaoriginals" / "orig.jpg", (1, 2, 3))

    files = scan_album_files(album)

    assert files == sorted(files)
    assert [Path(path).name for path in files] == ["A.JPEG", "b.jpg", "c.png"]


def test_scan_album_files_depth_ceiling(tmp_path) -> None:
    album = tmp_path / "album"
    write_image(album / "top.jpg", (1, 2, 3))
    write_image(album / "one" / "two" / "deep.jpg", (1, 2, 3))

    files = scan_album_files(album, max_depth=1)

    assert [Path(path).name for path in files] == ["top.jpg"]


def test_root_listing_scans_then_hits_cache(photo_root, tmp_path) -> None:
    cache_dir = tmp_path / "cache"
    cache = _dir_cache(photo_root, cache_dir, FakeClock())

    first = cache.get(photo_root)
    second = cache.get(photo_root)

    assert sorted(first.entries) == ["2019", "2020", "2021"]
    assert first.from_cache is False
    assert second.from_cache is True
    assert sorted(second.entries) == sorted(first.entries)
    record = json.loads((cache_dir / "_dirs.json").read_text(encoding="utf-8"))
    assert record["expiresAt"] == NOW + 30 * DAY_MS
    assert "updatedAt" in record


def test_year_listing_uses_year_ttl_and_mirrored_path(photo_root, tmp_path) -> None:
    cache_dir = tmp_path / "cache"
    cache = _dir_cache(photo_root, cache_dir, FakeClock())

    result = cache.get(photo_root / "2019")

    assert sorted(result.entries) == ["Birthday", "Lake"]
    record = read_cache_file(cache_dir / "2019" / "_dirs.json")
    assert record["expiresAt"] == NOW + 180 * DAY_MS


def test_fresh_entry_returned_unchanged(photo_root, tmp_path) -> None:
    cache_dir = tmp_path / "cache"
    write_cache_file(cache_dir / "_dirs.json", {"dirs": ["only-cached"], "expiresAt": NOW + 1})
    cache = _dir_cache(photo_root, cache_dir, FakeClock())

    result = cache.get(photo_root)

    assert result.entries == ["only-cached"]
    assert result.from_cache is True


def test_expired_entry_triggers_rescan(photo_root, tmp_path) -> None:
    cache_dir = tmp_path / "cache"
    write_cache_file(cache_dir / "_dirs.json", {"dirs": ["only-cached"], "expiresAt": NOW})
    cache = _dir_cache(photo_root, cache_dir, FakeClock())

    result = cache.get(photo_root)

    assert result.from_cache is False
    assert sorted(result.entries) == ["2019", "2020", "2021"]


def test_corrupt_cache_file_is_a_miss(photo_root, tmp_path) -> None:
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    (cache_dir / "_dirs.json").write_text("{not json", encoding="utf-8")
    cache = _dir_cache(photo_root, cache_dir, FakeClock())

    result = cache.get(photo_root)

    assert result.from_cache is False
    assert "2020" in result.entries


def test_unwritable_cache_still_returns_scan(photo_root, tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    cache = _dir_cache(photo_root, blocker, FakeClock())

    result = cache.get(photo_root)

    assert sorted(result.entries) == ["2019", "2020", "2021"]
    assert result.from_cache is False


def test_album_files_cached_with_sort_key(photo_root, tmp_path) -> None:
    cache_dir = tmp_path / "cache"
    clock = FakeClock()
    cache = AlbumFileCache(photo_root, cache_dir, ttl_ms=180 * DAY_MS, clock=clock)
    album = photo_root / "2020" / "Hike"

    first = cache.get(album)
    second = cache.get(album)

    assert len(first.entries) == 8
    assert first.entries == sorted(first.entries)
    assert all(Path(path).is_absolute() for path in first.entries)
    assert second.from_cache is True
    record = read_cache_file(cache_dir / "2020" / "Hike" / "_files.json")
    assert record["sortKey"] == "filename"
    assert record["files"] == first.entries

    clock.value = NOW + 180 * DAY_MS
    assert cache.get(album).from_cache is False


def test_empty_album_cache_entry_is_rescanned(photo_root, tmp_path) -> None:
    cache_dir = tmp_path / "cache"
    write_cache_file(cache_dir / "2021" / "Winter" / "_files.json", {"files": [], "expiresAt": NOW + DAY_MS})
    cache = AlbumFileCache(photo_root, cache_dir, ttl_ms=DAY_MS, clock=FakeClock())

    result = cache.get(photo_root / "2021" / "Winter")

    assert result.from_cache is False
    assert len(result.entries) == 4


def test_relative_paths_use_forward_slashes(photo_root, tmp_path) -> None:
    cache = AlbumFileCache(photo_root, tmp_path / "cache", ttl_ms=DAY_MS)

    assert cache.relative(photo_root) == ""
    assert cache.relative(photo_root / "2019" / "Lake" / "img_00.jpg") == "2019/Lake/img_00.jpg"


def test_concurrent_writes_leave_valid_json(tmp_path) -> None:
    path = tmp_path / "cache" / "_dirs.json"
    writers = 5
    payloads = [{"dirs": [f"year-{n}"] * (n * 50 + 1), "expiresAt": NOW} for n in range(writers)]

    for _ in range(40):
        barrier = threading.Barrier(writers)

        def write(payload: dict) -> None:
            barrier.wait()
            write_cache_file(path, payload)

        threads = [threading.Thread(target=write, args=(payload,)) for payload in payloads]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert read_cache_file(path) in payloads

    assert [entry.name for entry in path.parent.iterdir()] == ["_dirs.json"]


def test_failed_write_removes_temp_file(tmp_path) -> None:
    path = tmp_path / "cache" / "_files.json"
    path.mkdir(parents=True)

    write_cache_file(path, {"files": ["a.jpg"]})

    assert path.is_dir()
    assert [entry.name for entry in path.parent.iterdir()] == ["_files.json"]
