"""Locally cached copy of a remote zipped GTFS feed."""

from __future__ import annotations

import logging
import os
from pathlib import Path
import tempfile
from typing import Callable
import zipfile

import requests

from flashbacks.clock import now_ms
from flashbacks.data.csv_table import parse_csv

logger = logging.getLogger(__name__)

GTFS_FILE_NAME = "gtfs.zip"
DOWNLOAD_CHUNK_BYTES = 64 * 1024


class FeedDownloadError(Exception):
    """Raised when the GTFS archive cannot be downloaded."""


class GTFSArchive:
    """Read-only view over the tables of a GTFS zip."""

    def __init__(self, path: Path) -> None:
        self._zip = zipfile.ZipFile(path)

    @property
    def names(self) -> list[str]:
        return self._zip.namelist()

    def read_text(self, name: str) -> str:
        """Return the decoded table, or "" if the archive has no such entry."""
        try:
            data = self._zip.read(name)
        except KeyError:
            return ""
        return data.decode("utf-8", errors="replace")

    def read_table(self, name: str) -> list[dict[str, str]]:
        return parse_csv(self.read_text(name))

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> GTFSArchive:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class GTFSFeed:
    """Downloads the feed archive when the cached copy is older than refresh_ms."""

    def __init__(
        self,
        url: str,
        path: Path,
        refresh_ms: int,
        clock: Callable[[], int] = now_ms,
        timeout_seconds: int = 60,
    ) -> None:
        self._url = url
        self._path = Path(path)
        self._refresh_ms = refresh_ms
        self._clock = clock
        self._timeout_seconds = timeout_seconds

    @property
    def url(self) -> str:
        return self._url

    @property
    def path(self) -> Path:
        return self._path

    def age_ms(self) -> float | None:
        try:
            mtime = self._path.stat().st_mtime
        except FileNotFoundError:
            return None
        return self._clock() - mtime * 1000

    def is_stale(self) -> bool:
        age = self.age_ms()
        return age is None or age > self._refresh_ms

    def ensure_fresh(self) -> None:
        """Re-download the archive if it is missing or past its refresh age."""
        age = self.age_ms()
        logger.info(
            "gtfs zip status: exists=%s age_ms=%s refresh_ms=%d", age is not None, age, self._refresh_ms
        )
        if self.is_stale():
            self.download()

    def download(self) -> None:
        """Fetch the archive (redirects followed) and atomically replace the cached copy."""
        logger.info("gtfs downloading: url=%s", self._url)
        try:
            response = requests.get(self._url, timeout=self._timeout_seconds, stream=True)
        except requests.RequestException as exc:
            raise FeedDownloadError(f"GTFS download failed: {exc}") from exc

        try:
            if response.status_code >= 400:
                raise FeedDownloadError(f"GTFS download failed: {response.status_code}")
            self._write_archive(response)
        finally:
            response.close()
        logger.info("gtfs downloaded: path=%s", self._path)

    def _write_archive(self, response: requests.Response) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=self._path.name + ".", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_BYTES):
                    if chunk:
                        handle.write(chunk)
            os.replace(tmp_name, self._path)
        except requests.RequestException as exc:
            _discard(tmp_name)
            raise FeedDownloadError(f"GTFS download interrupted: {exc}") from exc
        except OSError as exc:
            _discard(tmp_name)
            raise FeedDownloadError(f"GTFS archive write failed: {exc}") from exc

    def open(self) -> GTFSArchive:
        return GTFSArchive(self._path)


def _discard(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


__all__ = ["FeedDownloadError", "GTFSArchive", "GTFSFeed", "GTFS_FILE_NAME"]
