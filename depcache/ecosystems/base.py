"""Abstract base class for ecosystem plugins.

An ecosystem plugin knows how to recognise a project that uses a package
ecosystem, where that ecosystem installs packages, how to read its lock
file, and how to ask the ecosystem's own tool to install packages. The
orchestrator never contains ecosystem-specific logic.
"""

from __future__ import annotations

import contextlib
import logging
import shutil
import subprocess
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Any, Protocol

from depcache.cache.keys import CacheKey
from depcache.cache.store import Cache
from depcache.config.parser import ConfigError, load_json
from depcache.core.manifest_cache import ManifestCache

logger = logging.getLogger(__name__)

# Held around every call into an external tool that is not safe to run
# concurrently (shared caches, lock file rewrites).
_EXTERNAL_TOOL_LOCK = threading.Lock()


class ManifestParseError(Exception):
    """Error when a manifest or lock file is present but malformed."""

    def __init__(self, path: Path, message: str):
        self.path = path
        super().__init__(f"Cannot parse {path}: {message}")


@dataclass
class InstallOutcome:
    """Result reported by an external installer."""

    success: bool
    message: str = ""

    @classmethod
    def ok(cls, message: str = "") -> InstallOutcome:
        return cls(True, message)

    @classmethod
    def failed(cls, message: str) -> InstallOutcome:
        return cls(False, message)


class Installer(Protocol):
    """Installs packages using an ecosystem's own tooling."""

    def install_one(self, directory: Path, package: str, version: str) -> InstallOutcome:
        """Install a single package version into a project."""
        ...

    def install_all(self, directory: Path) -> InstallOutcome:
        """Install every dependency of a project in one run."""
        ...


class SubprocessInstaller(ABC):
    """Installer that shells out to a package manager executable."""

    def __init__(self, executable: str, env: dict[str, str] | None = None):
        """Initialize the installer.

        Args:
            executable: Name or path of the package manager executable
            env: Optional environment for the child process
        """
        self.executable = executable
        self.env = env

    @abstractmethod
    def one_arguments(self, package: str, version: str) -> list[str]:
        """Arguments that install a single package version."""
        ...

    @abstractmethod
    def all_arguments(self) -> list[str]:
        """Arguments that install every dependency of a project."""
        ...

    def install_one(self, directory: Path, package: str, version: str) -> InstallOutcome:
        return self._run(self.one_arguments(package, version), directory)

    def install_all(self, directory: Path) -> InstallOutcome:
        return self._run(self.all_arguments(), directory)

    def _run(self, args: list[str], cwd: Path) -> InstallOutcome:
        executable = shutil.which(self.executable) or self.executable
        cmd = [executable, *args]
        logger.debug("Running: %s (in %s)", " ".join(cmd), cwd)
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                env=self.env,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError:
            logger.error("%s is not installed or not in PATH", self.executable)
            return InstallOutcome.failed(f"{self.executable} is not installed or not in PATH")
        except OSError as e:
            return InstallOutcome.failed(f"Cannot run {self.executable}: {e}")

        if result.returncode != 0:
            detail = result.stderr.strip() or result.stdout.strip()
            return InstallOutcome.failed(
                f"{' '.join(cmd)} exited with code {result.returncode}: {detail}"
            )
        return InstallOutcome.ok()


class EcosystemPlugin(ABC):
    """Abstract base class for ecosystem plugins.

    Subclasses describe one package ecosystem:
    - Project detection and dependency files
    - Lock file format
    - Install directory layout
    - The default external installer

    The installer is injected at construction so tests can replace the
    real package manager with a deterministic double.
    """

    # Serialize calls into the external tool across the whole process
    serial_installs: bool = True

    def __init__(
        self,
        cache: Cache,
        installer: Installer | None = None,
        logger: logging.Logger | None = None,
    ):
        """Initialize the plugin.

        Args:
            cache: Shared package cache
            installer: External installer (default: the ecosystem's CLI tool)
            logger: Logger to report through (default: plugin module logger)
        """
        self.cache = cache
        self.installer: Installer = installer or self.default_installer()
        self.logger = logger or logging.getLogger(type(self).__module__)
        self.manifest_cache = ManifestCache(self.read_versions, logger=self.logger)

    # =========================================================================
    # Metadata
    # =========================================================================

    @property
    @abstractmethod
    def name(self) -> str:
        """Ecosystem name, used as the first cache key component."""
        ...

    @property
    @abstractmethod
    def install_directory(self) -> str:
        """Directory (relative to the project) where packages are installed."""
        ...

    @property
    @abstractmethod
    def lock_file_name(self) -> str:
        """File name of the lock file that pins package versions."""
        ...

    @abstractmethod
    def dependency_files(self) -> list[str]:
        """File names that declare this ecosystem's dependencies."""
        ...

    @abstractmethod
    def default_installer(self) -> Installer:
        """Create the installer used when none is injected."""
        ...

    # =========================================================================
    # Project inspection
    # =========================================================================

    @abstractmethod
    def detect(self, directory: Path) -> bool:
        """Check whether a directory is a project of this ecosystem.

        Args:
            directory: Project directory

        Returns:
            True if the ecosystem is in use
        """
        ...

    @abstractmethod
    def read_versions(self, path: Path) -> dict[str, str]:
        """Parse a lock file into package versions.

        Malformed individual entries are skipped with a warning.

        Args:
            path: Lock file path

        Returns:
            Mapping of package name to pinned version

        Raises:
            ManifestParseError: If the file cannot be parsed at all
        """
        ...

    @abstractmethod
    def installed_versions(self, directory: Path) -> dict[str, str]:
        """Read which package versions the ecosystem tool has installed.

        Used after a bulk install to find what landed in the install
        directory.

        Args:
            directory: Project directory

        Returns:
            Mapping of package name to installed version
        """
        ...

    def lock_file(self, directory: Path) -> Path:
        """Get the lock file path for a project."""
        return directory / self.lock_file_name

    def has_dependency_file(self, directory: Path) -> bool:
        """Check whether any dependency file exists in a project."""
        return any((directory / name).exists() for name in self.dependency_files())

    def required_versions(self, directory: Path) -> dict[str, str]:
        """Get the pinned package versions of a project.

        Parsed lock files are memoized until they change on disk.

        Args:
            directory: Project directory

        Returns:
            Mapping of package name to version, empty when there is no lock file

        Raises:
            ManifestParseError: If the lock file is malformed or cannot be read
        """
        lock_file = self.lock_file(directory)
        if not lock_file.exists():
            return {}
        try:
            return self.manifest_cache.get(lock_file)
        except OSError as e:
            raise ManifestParseError(lock_file, f"cannot read: {e}") from e

    def package_path(self, directory: Path, package: str) -> Path:
        """Get where a package lives inside a project's install directory.

        Raises:
            ValueError: If the package name would escape the install directory
        """
        relative = PurePath(package)
        if relative.is_absolute() or ".." in relative.parts or not relative.parts:
            raise ValueError(f"Unsafe package name: {package!r}")
        return directory / self.install_directory / relative

    def cache_key(self, package: str, version: str) -> CacheKey:
        """Build the cache key for a package version of this ecosystem."""
        return CacheKey(self.name, package, version)

    # =========================================================================
    # External installs
    # =========================================================================

    def install_one(self, directory: Path, package: str, version: str) -> InstallOutcome:
        """Install a single package version with the external installer."""
        with self._external_call():
            self.logger.debug("Installing %s %s with %s tooling", package, version, self.name)
            return self.installer.install_one(directory, package, version)

    def install_all(self, directory: Path) -> InstallOutcome:
        """Install every dependency with the external installer in one run."""
        with self._external_call():
            self.logger.debug("Running bulk %s install in %s", self.name, directory)
            return self.installer.install_all(directory)

    @contextlib.contextmanager
    def _external_call(self) -> Iterator[None]:
        if not self.serial_installs:
            yield
            return
        with _EXTERNAL_TOOL_LOCK:
            yield

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


def read_json_manifest(path: Path) -> dict[str, Any]:
    """Load a JSON manifest or lock file.

    Raises:
        ManifestParseError: If the file is unreadable or not a JSON object
    """
    try:
        data = load_json(path)
    except ConfigError as e:
        raise ManifestParseError(path, str(e)) from e
    if not isinstance(data, dict):
        raise ManifestParseError(path, "expected a JSON object")
    return data
