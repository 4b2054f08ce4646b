"""npm (Node.js) ecosystem plugin.

npm declares dependencies in package.json, pins them in
package-lock.json and installs each package into node_modules/<name>.
Only top-level packages are cached; nested node_modules trees stay
inside the package that owns them.
"""

from pathlib import Path
from typing import Any

from depcache.ecosystems import PluginRegistry
from depcache.ecosystems.base import (
    EcosystemPlugin,
    Installer,
    ManifestParseError,
    SubprocessInstaller,
    read_json_manifest,
)

_MODULES_PREFIX = "node_modules/"


class NpmInstaller(SubprocessInstaller):
    """Runs the npm executable."""

    def __init__(self, executable: str = "npm", env: dict[str, str] | None = None):
        super().__init__(executable, env)

    def one_arguments(self, package: str, version: str) -> list[str]:
        return ["install", f"{package}@{version}", "--no-save", "--no-audit", "--no-fund"]

    def all_arguments(self) -> list[str]:
        return ["install", "--no-audit", "--no-fund"]


class NpmPlugin(EcosystemPlugin):
    """Plugin for Node.js projects managed by npm."""

    @property
    def name(self) -> str:
        return "npm"

    @property
    def install_directory(self) -> str:
        return "node_modules"

    @property
    def lock_file_name(self) -> str:
        return "package-lock.json"

    def dependency_files(self) -> list[str]:
        return ["package.json", "package-lock.json"]

    def default_installer(self) -> Installer:
        return NpmInstaller()

    def detect(self, directory: Path) -> bool:
        return (directory / "package.json").is_file()

    def read_versions(self, path: Path) -> dict[str, str]:
        """Read top-level package versions from package-lock.json.

        Lockfile v2/v3 list packages under "packages" keyed by their
        node_modules path; v1 lists them under "dependencies".
        """
        return self._versions_from_lock(read_json_manifest(path), path)

    def installed_versions(self, directory: Path) -> dict[str, str]:
        """Read node_modules/.package-lock.json written by npm 7+."""
        hidden_lock = directory / self.install_directory / ".package-lock.json"
        if not hidden_lock.exists():
            return {}
        return self._versions_from_lock(read_json_manifest(hidden_lock), hidden_lock)

    def _versions_from_lock(self, data: dict[str, Any], path: Path) -> dict[str, str]:
        if "packages" in data:
            packages = data["packages"]
            if not isinstance(packages, dict):
                raise ManifestParseError(path, '"packages" must be an object')
            return self._collect_packages(packages, path)

        dependencies = data.get("dependencies", {})
        if not isinstance(dependencies, dict):
            raise ManifestParseError(path, '"dependencies" must be an object')
        return self._collect_dependencies(dependencies, path)

    def _collect_packages(self, packages: dict[str, Any], path: Path) -> dict[str, str]:
        versions: dict[str, str] = {}
        for location, info in packages.items():
            # "" is the root project itself
            if not location.startswith(_MODULES_PREFIX):
                continue
            name = location[len(_MODULES_PREFIX) :]
            if f"/{_MODULES_PREFIX}" in f"/{name}":
                continue  # nested
            if not isinstance(info, dict) or info.get("link"):
                continue
            version = info.get("version")
            if not isinstance(version, str) or not version:
                self.logger.warning("Skipping %s in %s: missing version", name, path)
                continue
            versions[name] = version
        return versions

    def _collect_dependencies(self, dependencies: dict[str, Any], path: Path) -> dict[str, str]:
        versions: dict[str, str] = {}
        for name, info in dependencies.items():
            version = info.get("version") if isinstance(info, dict) else None
            if not isinstance(version, str) or not version:
                self.logger.warning("Skipping %s in %s: missing version", name, path)
                continue
            versions[name] = version
        return versions


def register(registry: PluginRegistry) -> None:
    """Register the npm plugin."""
    registry.register("npm", NpmPlugin)
