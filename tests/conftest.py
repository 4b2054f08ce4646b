"""Shared fixtures for depcache tests."""

import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest
from helpers import FakeInstaller, write_composer_lock

from depcache.cache.store import Cache
from depcache.ecosystems.composer import ComposerPlugin


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory."""
    path = Path(tempfile.mkdtemp(prefix="depcache_test_"))
    yield path
    if path.exists():
        shutil.rmtree(path)


@pytest.fixture
def cache(temp_dir: Path) -> Cache:
    """Create an empty cache in the temporary directory."""
    return Cache(temp_dir / "cache")


@pytest.fixture
def temp_project(temp_dir: Path) -> Path:
    """Create an empty project directory."""
    project_dir = temp_dir / "project"
    project_dir.mkdir()
    return project_dir


@pytest.fixture
def fake_installer() -> FakeInstaller:
    """Installer double that always succeeds."""
    return FakeInstaller()


@pytest.fixture
def composer_plugin(cache: Cache, fake_installer: FakeInstaller) -> ComposerPlugin:
    """Composer plugin wired to the fake installer."""
    return ComposerPlugin(cache, installer=fake_installer)


@pytest.fixture
def composer_project(temp_project: Path) -> Path:
    """Composer project pinning two packages."""
    write_composer_lock(temp_project, {"left-pad": "1.0.0", "acme/widgets": "2.3.1"})
    return temp_project
