"""Composer (PHP) ecosystem plugin.

Composer declares dependencies in composer.json, pins them in
composer.lock and installs each package into vendor/<vendor>/<name>.
"""

from pathlib import Path
from typing import Any

from depcache.config.parser import ConfigError, load_json
from depcache.ecosystems import PluginRegistry
from depcache.ecosystems.base import (
    EcosystemPlugin,
    Installer,
    ManifestParseError,
    SubprocessInstaller,
    read_json_manifest,
)

LOCK_SECTIONS = ("packages", "packages-dev")


class ComposerInstaller(SubprocessInstaller):
    """Runs the composer executable."""

    def __init__(self, executable: str = "composer", env: dict[str, str] | None = None):
        super().__init__(executable, env)

    def one_arguments(self, package: str, version: str) -> list[str]:
        return [
            "update",
            package,
            "--with",
            f"{package}:{version}",
            "--no-interaction",
            "--no-progress",
            "--no-scripts",
        ]

    def all_arguments(self) -> list[str]:
        return ["install", "--no-interaction", "--no-progress"]


class ComposerPlugin(EcosystemPlugin):
    """Plugin for PHP projects managed by Composer."""

    @property
    def name(self) -> str:
        return "composer"

    @property
    def install_directory(self) -> str:
        return "vendor"

    @property
    def lock_file_name(self) -> str:
        return "composer.lock"

    def dependency_files(self) -> list[str]:
        return ["composer.json", "composer.lock"]

    def default_installer(self) -> Installer:
        return ComposerInstaller()

    def detect(self, directory: Path) -> bool:
        return (directory / "composer.json").is_file()

    def read_versions(self, path: Path) -> dict[str, str]:
        """Read package versions from composer.lock.

        Both "packages" and "packages-dev" are included.
        """
        data = read_json_manifest(path)
        versions: dict[str, str] = {}
        for section in LOCK_SECTIONS:
            packages = data.get(section, [])
            if not isinstance(packages, list):
                raise ManifestParseError(path, f'"{section}" must be a list')
            versions.update(self._collect_packages(packages, path))
        return versions

    def installed_versions(self, directory: Path) -> dict[str, str]:
        """Read vendor/composer/installed.json.

        Composer 1 writes a plain list, Composer 2 an object with a
        "packages" list.
        """
        installed = directory / self.install_directory / "composer" / "installed.json"
        if not installed.exists():
            return {}

        try:
            data: Any = load_json(installed)
        except ConfigError as e:
            raise ManifestParseError(installed, str(e)) from e

        packages = data.get("packages", []) if isinstance(data, dict) else data

        if not isinstance(packages, list):
            raise ManifestParseError(installed, '"packages" must be a list')
        return self._collect_packages(packages, installed)

    def _collect_packages(self, packages: list[Any], path: Path) -> dict[str, str]:
        versions: dict[str, str] = {}
        for index, package in enumerate(packages):
            if not isinstance(package, dict):
                self.logger.warning("Skipping malformed package #%d in %s", index, path)
                continue
            name = package.get("name")
            version = package.get("version")
            if not isinstance(name, str) or not isinstance(version, str) or not name or not version:
                self.logger.warning(
                    "Skipping package #%d in %s: missing name or version", index, path
                )
                continue
            versions[name] = version
        return versions


def register(registry: PluginRegistry) -> None:
    """Register the Composer plugin."""
    registry.register("composer", ComposerPlugin)
