"""Test doubles and file builders shared by depcache tests."""

import json
from collections.abc import Callable
from pathlib import Path

from depcache.cache.keys import CacheKey
from depcache.cache.store import Cache
from depcache.ecosystems.base import InstallOutcome


class FakeInstaller:
    """Installer double that writes package directories instead of running a tool.

    install_one creates <install_dir>/<package>/ with a small file. Packages
    listed in ``fail`` report failure. install_all installs ``bulk_packages``
    and writes the tool's installed-packages file through ``write_installed``.
    """

    def __init__(
        self,
        install_dir: str = "vendor",
        fail: set[str] | None = None,
        bulk_packages: dict[str, str] | None = None,
        write_installed: Callable[[Path, dict[str, str]], None] | None = None,
    ):
        self.install_dir = install_dir
        self.fail = fail or set()
        self.bulk_packages = bulk_packages or {}
        self.write_installed = write_installed
        self.calls: list[tuple[str, str]] = []
        self.bulk_calls = 0

    def install_one(self, directory: Path, package: str, version: str) -> InstallOutcome:
        self.calls.append((package, version))
        if package in self.fail:
            return InstallOutcome.failed(f"simulated failure for {package}")
        self._write_package(directory, package, version)
        return InstallOutcome.ok()

    def install_all(self, directory: Path) -> InstallOutcome:
        self.bulk_calls += 1
        if "*" in self.fail:
            return InstallOutcome.failed("simulated bulk failure")
        for package, version in self.bulk_packages.items():
            self._write_package(directory, package, version)
        if self.write_installed is not None:
            self.write_installed(directory, self.bulk_packages)
        return InstallOutcome.ok()

    def _write_package(self, directory: Path, package: str, version: str) -> None:
        package_dir = directory / self.install_dir / package
        package_dir.mkdir(parents=True, exist_ok=True)
        (package_dir / "VERSION").write_text(f"{package} {version}\n")


def write_composer_lock(
    directory: Path, packages: dict[str, str], dev: dict[str, str] | None = None
) -> Path:
    """Write composer.json and composer.lock pinning the given packages."""
    (directory / "composer.json").write_text(
        json.dumps({"require": dict(packages)})
    )
    lock = {
        "packages": [{"name": name, "version": version} for name, version in packages.items()],
        "packages-dev": [
            {"name": name, "version": version} for name, version in (dev or {}).items()
        ],
    }
    lock_path = directory / "composer.lock"
    lock_path.write_text(json.dumps(lock, indent=4))
    return lock_path


def write_composer_installed(directory: Path, packages: dict[str, str]) -> None:
    """Write vendor/composer/installed.json in the Composer 2 format."""
    installed = directory / "vendor" / "composer" / "installed.json"
    installed.parent.mkdir(parents=True, exist_ok=True)
    installed.write_text(
        json.dumps(
            {"packages": [{"name": name, "version": version} for name, version in packages.items()]}
        )
    )


def make_entry(cache: Cache, ecosystem: str, package: str, version: str, size: int = 10) -> Path:
    """Create a real cache entry holding one file of ``size`` bytes."""
    entry = cache.entry_path(CacheKey(ecosystem, package, version))
    entry.mkdir(parents=True, exist_ok=True)
    (entry / "data.bin").write_bytes(b"x" * size)
    return entry

