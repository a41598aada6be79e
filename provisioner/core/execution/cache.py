"""
Download cache — installer artifacts kept between runs.

Entries are keyed by the URL's basename: ``https://host/a/chrome.deb``
lives at ``<cache>/chrome.deb``. Callers pass ``filename`` when two
URLs share a basename (several projects publish ``install.sh``). A file that is present is trusted as
complete, so the only way a file appears is a finished download
renamed into place. Partial downloads stay in ``.part`` temp files and
are removed on failure.
"""

from __future__ import annotations

import contextlib
import fcntl
import logging
import os
import tempfile
import urllib.request
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import IO
from urllib.parse import unquote, urlparse

from provisioner.core.errors import NetworkError
from provisioner.core.models.cache import CacheEntry

logger = logging.getLogger(__name__)

_CHUNK = 64 * 1024
_LOCK_FILE = ".lock"
_TEMP_PREFIX = ".download-"
_TEMP_SUFFIX = ".part"
_USER_AGENT = "provisioner/0.1"

# (url, timeout) -> readable binary stream, usable as a context manager
Opener = Callable[[str, int], IO[bytes]]


def _urlopen(url: str, timeout: int) -> IO[bytes]:
    req = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
    return urllib.request.urlopen(req, timeout=timeout)


def cache_key(url: str) -> str:
    """File name an URL is stored under."""
    name = Path(unquote(urlparse(url).path)).name
    return name or "download"


class DownloadCache:
    """Basename-addressed download store.

    Args:
        directory: Cache directory (created on first write).
        opener: Callable used to fetch URLs; injectable for tests.
        timeout: Network timeout in seconds.
    """

    def __init__(
        self,
        directory: Path,
        opener: Opener | None = None,
        timeout: int = 120,
    ):
        self._dir = Path(directory)
        self._opener = opener or _urlopen
        self._timeout = timeout

    @property
    def directory(self) -> Path:
        return self._dir

    def path_for(self, url: str, filename: str = "") -> Path:
        """Where ``url`` is stored. ``filename`` overrides the URL basename."""
        if filename and Path(filename).name != filename:
            raise ValueError(f"Cache filename must be a plain name: {filename!r}")
        return self._dir / (filename or cache_key(url))

    def lookup(self, url: str, filename: str = "") -> CacheEntry | None:
        """Return the entry for ``url`` if it is already cached."""
        path = self.path_for(url, filename)
        if not path.is_file():
            return None
        return CacheEntry(url=url, filepath=str(path), size_bytes=path.stat().st_size)

    def fetch(self, url: str, filename: str = "") -> CacheEntry:
        """Return the cached entry for ``url``, downloading it on a miss.

        Raises:
            NetworkError: The download failed. No entry is created.
        """
        entry = self.lookup(url, filename)
        if entry is not None:
            logger.info("Cache hit: %s", entry.filepath)
            return entry

        self._dir.mkdir(parents=True, exist_ok=True)
        with self._locked():
            # Another process may have finished the same download meanwhile
            entry = self.lookup(url, filename)
            if entry is not None:
                return entry
            return self._download(url, filename)

    def _download(self, url: str, filename: str = "") -> CacheEntry:
        dest = self.path_for(url, filename)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._dir, prefix=_TEMP_PREFIX, suffix=_TEMP_SUFFIX,
        )
        tmp = Path(tmp_name)
        logger.info("Downloading %s → %s", url, dest)
        try:
            size = 0
            with os.fdopen(fd, "wb") as out, self._opener(url, self._timeout) as resp:
                for chunk in iter(lambda: resp.read(_CHUNK), b""):
                    out.write(chunk)
                    size += len(chunk)
            os.replace(tmp, dest)
        except Exception as e:
            tmp.unlink(missing_ok=True)
            raise NetworkError(f"Download of {url} failed: {e}") from e

        logger.debug("Cached %s (%d bytes)", dest, size)
        return CacheEntry(url=url, filepath=str(dest), size_bytes=size, fetched=True)

    @contextlib.contextmanager
    def _locked(self) -> Iterator[None]:
        """Exclusive lock over the temp-file-then-rename sequence."""
        with open(self._dir / _LOCK_FILE, "w") as lock:
            fcntl.flock(lock, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock, fcntl.LOCK_UN)

    def entries(self) -> list[Path]:
        """Cached artifacts, excluding the lock and in-flight temp files."""
        if not self._dir.is_dir():
            return []
        return sorted(
            p for p in self._dir.iterdir()
            if p.is_file() and not p.name.startswith(".")
        )

    def remove(self, url: str, filename: str = "") -> bool:
        path = self.path_for(url, filename)
        if path.is_file():
            path.unlink()
            return True
        return False

    def clear(self) -> int:
        """Delete every cached artifact and stale temp file. Returns the count removed."""
        if not self._dir.is_dir():
            return 0
        removed = 0
        for p in self._dir.iterdir():
            if p.is_file() and p.name != _LOCK_FILE:
                p.unlink()
                removed += 1
        logger.info("Cleared %d cached files from %s", removed, self._dir)
        return removed
