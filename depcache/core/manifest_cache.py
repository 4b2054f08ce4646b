"""In-process cache of parsed lock files, invalidated by modification time."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

ManifestReader = Callable[[Path], dict[str, str]]


@dataclass
class ManifestCacheEntry:
    """Parsed package versions of one file."""

    versions: dict[str, str] = field(default_factory=dict)
    read_at: float = 0.0
    mtime_ns: int = 0


class ManifestCache:
    """Read-through cache of package -> version mappings.

    An entry stays valid while the file's modification time matches the
    one recorded when it was parsed. There is no TTL and no size bound;
    entries live as long as the cache object.
    """

    def __init__(self, reader: ManifestReader, logger: logging.Logger | None = None):
        """Initialize the manifest cache.

        Args:
            reader: Parses a manifest or lock file into package versions
            logger: Logger to report through (default: module logger)
        """
        self._reader = reader
        self._logger = logger or logging.getLogger(__name__)
        self._entries: dict[Path, ManifestCacheEntry] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(path: Path) -> Path:
        return path.absolute()

    def is_valid(self, path: Path) -> bool:
        """Check whether a cached parse of ``path`` is still current.

        Args:
            path: Manifest or lock file

        Returns:
            True if an entry exists and the file's mtime is unchanged
        """
        entry = self.get_entry(path)
        return entry is not None and self._is_current(path, entry)

    @staticmethod
    def _is_current(path: Path, entry: ManifestCacheEntry) -> bool:
        try:
            return path.stat().st_mtime_ns == entry.mtime_ns
        except OSError:
            return False

    def update(self, path: Path) -> dict[str, str]:
        """Parse ``path`` and replace any cached entry.

        Args:
            path: Manifest or lock file

        Returns:
            The freshly parsed versions

        Raises:
            Whatever the reader raises for unreadable or malformed files
        """
        # stat before reading so a concurrent write shows up as stale next time
        mtime_ns = path.stat().st_mtime_ns
        versions = self._reader(path)
        entry = ManifestCacheEntry(versions=dict(versions), read_at=time.time(), mtime_ns=mtime_ns)
        with self._lock:
            self._entries[self._key(path)] = entry
        self._logger.debug("Parsed %s (%d packages)", path, len(versions))
        return dict(entry.versions)

    def get(self, path: Path) -> dict[str, str]:
        """Get the versions for ``path``, parsing it only when stale.

        Args:
            path: Manifest or lock file

        Returns:
            Mapping of package name to version
        """
        entry = self.get_entry(path)
        if entry is not None and self._is_current(path, entry):
            self._logger.debug("Using cached parse of %s", path)
            return dict(entry.versions)
        return self.update(path)

    def get_entry(self, path: Path) -> ManifestCacheEntry | None:
        """Get the raw cache entry for ``path`` without checking staleness."""
        with self._lock:
            return self._entries.get(self._key(path))

    def invalidate(self, path: Path) -> bool:
        """Drop the cached entry for ``path``.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            return self._entries.pop(self._key(path), None) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
