"""Shared on-disk package cache."""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import stat
from dataclasses import dataclass
from pathlib import Path

from depcache.cache.keys import CacheKey
from depcache.cache.links import create_link, is_link, remove_path, same_location
from depcache.utils.filesystem import ensure_directory
from depcache.utils.platform import get_env, get_home_directory

CACHE_DIR_ENV = "DEPCACHE_DIR"
DEFAULT_MAX_SIZE = 5 * 1024**3  # 5 GB


def default_cache_dir() -> Path:
    """Get the default cache root.

    Returns:
        ``$DEPCACHE_DIR`` if set, otherwise ``~/.depcache/cache``
    """
    override = get_env(CACHE_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return get_home_directory() / ".depcache" / "cache"


@dataclass
class CacheEntry:
    """A version-level directory found in the cache."""

    key: CacheKey
    path: Path
    size: int
    last_access: float
    linked: bool = False


class Cache:
    """Directory-based package cache shared between projects.

    Cache structure:
        root/
            <ecosystem>/
                <package>/
                    <version>/    # Package contents, or a link to them

    There is no index file: directory existence and file timestamps are
    the entire cache state. Filesystem errors never escape from the public
    methods; they are logged and reported through the return value.
    """

    def __init__(self, root: Path | None = None, logger: logging.Logger | None = None):
        """Initialize the cache, creating the root directory if needed.

        Args:
            root: Cache root directory (default: :func:`default_cache_dir`)
            logger: Logger to report through (default: module logger)
        """
        self._root = root if root is not None else default_cache_dir()
        self._logger = logger or logging.getLogger(__name__)
        ensure_directory(self._root)
        self._logger.debug("Initialized cache at %s", self._root)

    @property
    def root(self) -> Path:
        """Get the cache root directory."""
        return self._root

    def entry_path(self, key: CacheKey) -> Path:
        """Get the directory of the cache entry for a key."""
        return self._root.joinpath(*key.segments)

    def is_cached(self, key: CacheKey) -> bool:
        """Check if a key has a usable cache entry.

        Args:
            key: Cache key to look up

        Returns:
            True if the entry exists and passes the integrity check
        """
        return self.entry_path(key).exists() and self.verify_integrity(key)

    def verify_integrity(self, key: CacheKey) -> bool:
        """Check that a cache entry is a readable, non-empty directory.

        Checksums are not verified.

        Args:
            key: Cache key to check

        Returns:
            True if the entry looks complete
        """
        path = self.entry_path(key)
        try:
            if not path.is_dir():
                return False
            with os.scandir(path) as it:
                return any(True for _ in it)
        except OSError as e:
            self._logger.debug("Integrity check failed for %s: %s", key, e)
            return False

    def link_from_cache(self, key: CacheKey, target: Path) -> bool:
        """Link a cached package into a project.

        Whatever exists at ``target`` is removed first (a link is removed
        without touching what it points to).

        Args:
            key: Cache key of the package
            target: Path in the project where the package should appear

        Returns:
            True if ``target`` now resolves to the cache entry
        """
        entry = self.entry_path(key)
        if not self.is_cached(key):
            self._logger.debug("Cannot link %s: not cached", key)
            return False

        try:
            if same_location(target, entry):
                self._logger.debug("%s already resolves to %s", target, entry)
                return True
            remove_path(target)
            ensure_directory(target.parent)
            create_link(entry, target)
        except OSError as e:
            self._logger.warning("Failed to link %s from cache to %s: %s", key, target, e)
            return False

        self._logger.info("Linked from cache: %s -> %s", entry, target)
        return True

    def link_to_cache(self, key: CacheKey, source: Path) -> bool:
        """Register an installed package directory as a cache entry.

        The entry becomes a link to ``source``. Calling this again with the
        same source leaves the cache unchanged.

        Args:
            key: Cache key of the package
            source: Directory holding the installed package

        Returns:
            True if the entry now resolves to ``source``
        """
        entry = self.entry_path(key)
        if not source.exists():
            self._logger.warning("Cannot cache %s: %s does not exist", key, source)
            return False

        try:
            if same_location(entry, source):
                self._logger.debug("%s is already cached from %s", key, source)
                return True
            ensure_directory(entry.parent)
            remove_path(entry)
            create_link(source.resolve(), entry)
        except OSError as e:
            self._logger.warning("Failed to add %s to cache from %s: %s", key, source, e)
            return False

        self._logger.info("Added to cache: %s -> %s", entry, source)
        return True

    def store(self, key: CacheKey, source: Path) -> bool:
        """Move a package directory into the cache as a real entry.

        If the entry already exists it is left untouched and ``source`` is
        not moved.

        Args:
            key: Cache key of the package
            source: Directory to move into the cache

        Returns:
            True if the entry exists afterwards
        """
        entry = self.entry_path(key)
        try:
            if entry.exists():
                self._logger.debug("%s already stored at %s", key, entry)
                return True
            if is_link(entry):
                # Dangling link left behind by a removed project
                remove_path(entry)
            ensure_directory(entry.parent)
            shutil.move(str(source), str(entry))
        except OSError as e:
            self._logger.warning("Failed to store %s from %s: %s", key, source, e)
            return False

        self._logger.info("Stored in cache: %s", entry)
        return True

    def clean_package(self, key: CacheKey) -> bool:
        """Remove a package version from the cache.

        Args:
            key: Cache key to remove

        Returns:
            True if anything was removed
        """
        entry = self.entry_path(key)
        try:
            removed = remove_path(entry)
        except OSError as e:
            self._logger.warning("Failed to remove %s from cache: %s", key, e)
            return False

        if removed:
            self._logger.info("Removed %s from cache", key)
            self._prune_empty_parents(entry)
        return removed

    def entries(self) -> list[CacheEntry]:
        """List every version-level entry with its size and last access time.

        Returns:
            Cache entries in no particular order
        """
        found: list[CacheEntry] = []
        for ecosystem_dir in self._subdirectories(self._root):
            for package_dir in self._subdirectories(ecosystem_dir):
                for version_dir in self._subdirectories(package_dir):
                    try:
                        key = CacheKey.from_segments(
                            ecosystem_dir.name, package_dir.name, version_dir.name
                        )
                    except ValueError:
                        self._logger.debug("Ignoring foreign cache path %s", version_dir)
                        continue
                    linked = is_link(version_dir)
                    size, last_access = self._measure(version_dir, linked)
                    found.append(
                        CacheEntry(
                            key=key,
                            path=version_dir,
                            size=size,
                            last_access=last_access,
                            linked=linked,
                        )
                    )
        return found

    def get_cache_size(self) -> int:
        """Get the total size of all cache entries in bytes.

        Only bytes stored under the cache root count; an entry that links
        to a project directory counts 0 bytes.
        """
        return sum(entry.size for entry in self.entries())

    def cleanup(self, max_size_bytes: int = DEFAULT_MAX_SIZE) -> bool:
        """Evict least recently used entries until the cache fits a size bound.

        Eviction works on whole version-level entries: an entry's size is
        the sum of its files and its access time is the most recent access
        of any of its files. Linked entries hold no bytes under the root and
        are never evicted for size.

        Args:
            max_size_bytes: Maximum total size to keep

        Returns:
            True if the cache is within the bound afterwards
        """
        entries = sorted(self.entries(), key=lambda e: (e.last_access, str(e.path)))
        total = sum(entry.size for entry in entries)
        self._logger.debug(
            "Cache holds %d entries (%d bytes), limit %d bytes",
            len(entries),
            total,
            max_size_bytes,
        )

        evicted = 0
        for entry in entries:
            if total <= max_size_bytes:
                break
            if entry.size == 0:
                continue
            try:
                if remove_path(entry.path):
                    total -= entry.size
                    evicted += 1
                    self._logger.debug("Evicted %s (%d bytes)", entry.key, entry.size)
                    self._prune_empty_parents(entry.path)
            except OSError as e:
                self._logger.warning("Failed to evict %s: %s", entry.key, e)

        if evicted:
            self._logger.info("Evicted %d cache entries, %d bytes remain", evicted, total)
        return total <= max_size_bytes

    def clear(self) -> int:
        """Remove every cache entry.

        Returns:
            Number of entries removed
        """
        removed = 0
        for entry in self.entries():
            if self.clean_package(entry.key):
                removed += 1
        self._logger.info("Cleared %d cache entries", removed)
        return removed

    def _subdirectories(self, path: Path) -> list[Path]:
        try:
            return sorted(p for p in path.iterdir() if p.is_dir() or is_link(p))
        except OSError as e:
            self._logger.debug("Cannot list %s: %s", path, e)
            return []

    def _measure(self, entry: Path, linked: bool = False) -> tuple[int, float]:
        """Sum regular file sizes under an entry and find the latest access.

        A linked entry is not followed: its files live outside the cache root.
        """
        if linked:
            try:
                return 0, os.lstat(entry).st_atime
            except OSError:
                return 0, 0.0

        size = 0
        last_access: float | None = None
        for dirpath, _dirnames, filenames in os.walk(entry):
            for filename in filenames:
                try:
                    st = os.stat(os.path.join(dirpath, filename), follow_symlinks=False)
                except OSError:
                    # Removed while scanning
                    continue
                if not stat.S_ISREG(st.st_mode):
                    continue
                size += st.st_size
                if last_access is None or st.st_atime > last_access:
                    last_access = st.st_atime

        if last_access is None:
            try:
                last_access = os.lstat(entry).st_atime
            except OSError:
                last_access = 0.0
        return size, last_access

    def _prune_empty_parents(self, entry: Path) -> None:
        """Remove the package and ecosystem directories once they are empty."""
        for parent in (entry.parent, entry.parent.parent):
            if parent == self._root:
                break
            with contextlib.suppress(OSError):
                parent.rmdir()
