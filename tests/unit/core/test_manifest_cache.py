"""Tests for depcache.core.manifest_cache module."""

import json
import os
from pathlib import Path

import pytest

from depcache.core.manifest_cache import ManifestCache


class CountingReader:
    """Reader that parses {"name": "version"} JSON and counts its calls."""

    def __init__(self):
        self.calls = 0

    def __call__(self, path: Path) -> dict[str, str]:
        self.calls += 1
        return json.loads(path.read_text())


def write_manifest(path: Path, versions: dict[str, str], mtime_ns: int) -> None:
    """Write a manifest and pin its modification time."""
    path.write_text(json.dumps(versions))
    os.utime(path, ns=(mtime_ns, mtime_ns))


@pytest.fixture
def reader() -> CountingReader:
    return CountingReader()


@pytest.fixture
def manifest(temp_dir: Path) -> Path:
    path = temp_dir / "composer.lock"
    write_manifest(path, {"left-pad": "1.0.0"}, 1_000_000_000_000_000_000)
    return path


class TestManifestCache:
    """Tests for ManifestCache."""

    def test_empty_cache_is_invalid(self, reader: CountingReader, manifest: Path):
        """Nothing is valid before the first parse."""
        cache = ManifestCache(reader)

        assert cache.is_valid(manifest) is False
        assert cache.get_entry(manifest) is None
        assert len(cache) == 0

    def test_get_parses_once(self, reader: CountingReader, manifest: Path):
        """A second get with an unchanged file uses the cached parse."""
        cache = ManifestCache(reader)

        assert cache.get(manifest) == {"left-pad": "1.0.0"}
        assert cache.get(manifest) == {"left-pad": "1.0.0"}

        assert reader.calls == 1
        assert cache.is_valid(manifest) is True

    def test_changed_mtime_forces_reparse(self, reader: CountingReader, manifest: Path):
        """A newer modification time makes the entry stale."""
        cache = ManifestCache(reader)
        cache.get(manifest)

        write_manifest(manifest, {"left-pad": "1.1.0"}, 1_000_000_000_000_000_001)

        assert cache.is_valid(manifest) is False
        assert cache.get(manifest) == {"left-pad": "1.1.0"}
        assert reader.calls == 2

    def test_update_always_parses(self, reader: CountingReader, manifest: Path):
        """update() ignores any cached entry."""
        cache = ManifestCache(reader)
        cache.update(manifest)
        cache.update(manifest)

        assert reader.calls == 2

    def test_entry_records_mtime(self, reader: CountingReader, manifest: Path):
        """The entry stores the file's nanosecond modification time."""
        cache = ManifestCache(reader)
        cache.get(manifest)

        entry = cache.get_entry(manifest)
        assert entry is not None
        assert entry.mtime_ns == 1_000_000_000_000_000_000
        assert entry.read_at > 0

    def test_returned_mapping_is_a_copy(self, reader: CountingReader, manifest: Path):
        """Mutating a result does not corrupt the cache."""
        cache = ManifestCache(reader)
        cache.get(manifest)["left-pad"] = "9.9.9"

        assert cache.get(manifest) == {"left-pad": "1.0.0"}

    def test_deleted_file_is_invalid(self, reader: CountingReader, manifest: Path):
        """A removed file invalidates its entry."""
        cache = ManifestCache(reader)
        cache.get(manifest)
        manifest.unlink()

        assert cache.is_valid(manifest) is False

    def test_invalidate(self, reader: CountingReader, manifest: Path):
        """invalidate() drops the entry and reports whether one existed."""
        cache = ManifestCache(reader)
        cache.get(manifest)

        assert cache.invalidate(manifest) is True
        assert cache.invalidate(manifest) is False
        assert len(cache) == 0

    def test_reader_errors_propagate(self, temp_dir: Path):
        """Parse errors from the reader are not swallowed."""

        def failing_reader(path: Path) -> dict[str, str]:
            raise ValueError("malformed")

        path = temp_dir / "composer.lock"
        path.write_text("{}")
        cache = ManifestCache(failing_reader)

        with pytest.raises(ValueError, match="malformed"):
            cache.get(path)
        assert len(cache) == 0

    def test_relative_and_absolute_paths_share_entry(
        self,
        reader: CountingReader,
        manifest: Path,
        monkeypatch: pytest.MonkeyPatch,
    ):
        """Entries are keyed by absolute path."""
        cache = ManifestCache(reader)
        cache.get(manifest)
        monkeypatch.chdir(manifest.parent)

        assert cache.is_valid(Path(manifest.name)) is True
