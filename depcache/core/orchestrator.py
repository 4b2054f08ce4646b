"""Dependency install orchestrator.

This module contains the Orchestrator which makes every pinned package of
one ecosystem available in a project. It prefers linking from the shared
cache and only falls back to the ecosystem's installer when it has to.
All ecosystem-specific decisions are delegated to the plugin.
"""

from __future__ import annotations

import concurrent.futures
import logging
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from depcache.cache.links import is_link, remove_path, same_location
from depcache.cache.store import Cache
from depcache.config.parser import ConfigError
from depcache.core.pool import WorkerPool
from depcache.ecosystems.base import EcosystemPlugin

PackageState = Literal["already-linked", "cache-hit", "installed", "linked", "failed", "timed-out"]
ProgressCallback = Callable[[str, float], None]
PackageWork = Callable[[Path, str, str], "InstallResult"]


@dataclass
class InstallResult:
    """Terminal outcome for one package."""

    package: str
    version: str
    success: bool
    state: PackageState
    message: str = ""


@dataclass
class InstallSummary:
    """Outcome of installing or linking one ecosystem's dependencies."""

    ecosystem: str
    results: list[InstallResult] = field(default_factory=list)
    error: str | None = None

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def success(self) -> bool:
        return self.error is None and all(r.success for r in self.results)

    @property
    def failures(self) -> list[tuple[str, str]]:
        """(package, reason) for every failed package."""
        return [(r.package, r.message) for r in self.results if not r.success]

    @property
    def failed_packages(self) -> list[str]:
        return [r.package for r in self.results if not r.success]


class Orchestrator:
    """Installs one ecosystem's dependencies through the shared cache.

    Each package goes through the same sequence:
    1. Already present in the project: register it in the cache
    2. Cached: link it into the project
    3. Otherwise: install it with the plugin, then register it in the cache

    Packages are processed in parallel on a WorkerPool. A failing package
    never stops the others; the summary reports every outcome.
    """

    def __init__(
        self,
        cache: Cache,
        plugin: EcosystemPlugin,
        max_workers: int | None = None,
        timeout: float | None = None,
        progress_callback: ProgressCallback | None = None,
        logger: logging.Logger | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            cache: Shared package cache
            plugin: Ecosystem plugin to install for
            max_workers: Parallel package tasks (default: CPU count)
            timeout: Seconds to wait for all packages before reporting the
                unfinished ones as timed out (None waits indefinitely).
                Running installs are not interrupted and report their
                real outcome; only queued packages are timed out.
            progress_callback: Called with (package, fraction done) as
                packages finish
            logger: Logger to report through (default: module logger)
        """
        self.cache = cache
        self.plugin = plugin
        self.max_workers = max_workers
        self.timeout = timeout
        self.progress_callback = progress_callback
        self._logger = logger or logging.getLogger(__name__)

    def install_dependencies(self, directory: Path) -> InstallSummary:
        """Make every dependency of a project available.

        Without a lock file the plugin performs one bulk install whose
        result is then moved into the cache.

        Args:
            directory: Project directory

        Returns:
            InstallSummary with one result per package

        Raises:
            ConfigError: If the project has no dependency file at all
            ManifestParseError: If the lock file is malformed
        """
        directory = directory.absolute()
        self._require_dependency_file(directory)

        if not self.plugin.lock_file(directory).exists():
            self._logger.info(
                "No %s in %s, running a bulk install", self.plugin.lock_file_name, directory
            )
            return self.bulk_install(directory)

        versions = self.plugin.required_versions(directory)
        if not versions:
            self._logger.info("No %s dependencies to install", self.plugin.name)
            return InstallSummary(self.plugin.name)

        self._logger.info(
            "Installing %d %s package(s) in %s", len(versions), self.plugin.name, directory
        )
        return self._run(directory, versions, self._install_package)

    def link_dependencies(self, directory: Path) -> InstallSummary:
        """Link every dependency of a project from the cache without installing.

        Args:
            directory: Project directory

        Returns:
            InstallSummary; packages missing from the cache fail

        Raises:
            ConfigError: If the project has no dependency file at all
            ManifestParseError: If the lock file is malformed
        """
        directory = directory.absolute()
        self._require_dependency_file(directory)

        versions = self.plugin.required_versions(directory)
        if not versions:
            return InstallSummary(self.plugin.name)
        return self._run(directory, versions, self._link_package)

    def bulk_install(self, directory: Path) -> InstallSummary:
        """Install everything with one external run, then move it into the cache.

        Each installed package is moved to its versioned cache entry and
        linked back into the install directory. Entries that already exist
        in the cache are kept and the fresh copy is replaced by a link.

        Args:
            directory: Project directory

        Returns:
            InstallSummary with one result per installed package
        """
        directory = directory.absolute()
        summary = InstallSummary(self.plugin.name)

        outcome = self.plugin.install_all(directory)
        if not outcome.success:
            self._logger.error("Bulk %s install failed: %s", self.plugin.name, outcome.message)
            summary.error = outcome.message or "bulk install failed"
            return summary

        installed = self.plugin.installed_versions(directory)
        for index, (package, version) in enumerate(installed.items(), start=1):
            try:
                result = self._adopt_package(directory, package, version)
            except (OSError, ValueError) as e:
                self._logger.error("Failed to cache %s %s: %s", package, version, e)
                result = InstallResult(package, version, False, "failed", str(e))
            summary.results.append(result)
            self._report_progress(package, index / len(installed))

        self._log_summary(summary)
        return summary

    # =========================================================================
    # Per-package state machine
    # =========================================================================

    def _install_package(self, directory: Path, package: str, version: str) -> InstallResult:
        key = self.plugin.cache_key(package, version)
        target = self.plugin.package_path(directory, package)

        if is_link(target) and not same_location(target, self.cache.entry_path(key)):
            # Points at another version or at nothing; never install through it
            self._logger.info("Removing stale link %s", target)
            remove_path(target)

        if target.exists():
            self._logger.info("Package %s already installed in %s", package, target)
            if not self.cache.link_to_cache(key, target):
                self._logger.warning("Failed to link existing package to cache: %s", package)
            return InstallResult(package, version, True, "already-linked")

        if self.cache.is_cached(key):
            self._logger.info("Package %s found in cache, linking to project", package)
            if self.cache.link_from_cache(key, target):
                return InstallResult(package, version, True, "cache-hit")
            self._logger.warning("Failed to link %s from cache, installing instead", package)

        self._logger.info("Installing package %s version %s", package, version)
        outcome = self.plugin.install_one(directory, package, version)
        if not outcome.success:
            message = outcome.message or "install failed"
            self._logger.error("Failed to install package %s: %s", package, message)
            return InstallResult(package, version, False, "failed", message)

        if not target.exists():
            self._logger.warning("Installed %s but %s does not exist", package, target)
        elif not self.cache.link_to_cache(key, target):
            self._logger.warning("Package installed but failed to link to cache: %s", package)
        return InstallResult(package, version, True, "installed")

    def _link_package(self, directory: Path, package: str, version: str) -> InstallResult:
        key = self.plugin.cache_key(package, version)
        target = self.plugin.package_path(directory, package)

        if self.cache.link_from_cache(key, target):
            return InstallResult(package, version, True, "linked")

        reason = "link failed" if self.cache.is_cached(key) else "not in cache"
        self._logger.error("Failed to link package %s: %s", package, reason)
        return InstallResult(package, version, False, "failed", reason)

    def _adopt_package(self, directory: Path, package: str, version: str) -> InstallResult:
        key = self.plugin.cache_key(package, version)
        source = self.plugin.package_path(directory, package)

        if same_location(source, self.cache.entry_path(key)):
            return InstallResult(package, version, True, "already-linked")
        if not source.exists():
            return InstallResult(
                package, version, False, "failed", f"{source} missing after install"
            )
        if not self.cache.store(key, source):
            return InstallResult(package, version, False, "failed", "could not move into cache")
        if not self.cache.link_from_cache(key, source):
            return InstallResult(
                package, version, False, "failed", "stored in cache but could not link back"
            )
        return InstallResult(package, version, True, "installed")

    # =========================================================================
    # Parallel execution
    # =========================================================================

    def _run(self, directory: Path, versions: dict[str, str], work: PackageWork) -> InstallSummary:
        summary = InstallSummary(self.plugin.name)
        results: dict[Future[InstallResult], InstallResult] = {}
        done_count = 0
        running: dict[Future[InstallResult], tuple[str, str]] = {}

        with WorkerPool(self.max_workers) as pool:
            futures = {
                pool.enqueue(work, directory, package, version): (package, version)
                for package, version in versions.items()
            }
            try:
                for future in concurrent.futures.as_completed(futures, timeout=self.timeout):
                    package, version = futures[future]
                    results[future] = self._collect(future, package, version)
                    done_count += 1
                    self._report_progress(package, done_count / len(futures))
            except concurrent.futures.TimeoutError:
                self._logger.error(
                    "Timed out after %ss with %d of %d %s package(s) finished",
                    self.timeout,
                    done_count,
                    len(futures),
                    self.plugin.name,
                )
                for future, (package, version) in futures.items():
                    if future not in results:
                        if not future.cancel():
                            running[future] = (package, version)
                        results[future] = InstallResult(
                            package, version, False, "timed-out", f"timed out after {self.timeout}s"
                        )

        # Shutdown waits for tasks that were already running; keep their real outcome
        for future, (package, version) in running.items():
            if future.done():
                results[future] = self._collect(future, package, version)

        summary.results = [results[future] for future in futures]
        self._log_summary(summary)
        return summary

    def _collect(self, future: Future[InstallResult], package: str, version: str) -> InstallResult:
        try:
            return future.result()
        except Exception as e:
            self._logger.error("Package %s failed: %s", package, e)
            return InstallResult(package, version, False, "failed", str(e))

    def _report_progress(self, package: str, fraction: float) -> None:
        if self.progress_callback is not None:
            self.progress_callback(package, fraction)

    def _require_dependency_file(self, directory: Path) -> None:
        if not self.plugin.has_dependency_file(directory):
            names = ", ".join(self.plugin.dependency_files())
            raise ConfigError(f"No dependency file ({names}) found in {directory}", directory)

    def _log_summary(self, summary: InstallSummary) -> None:
        self._logger.info(
            "%s: %d succeeded, %d failed",
            summary.ecosystem,
            summary.success_count,
            summary.failure_count,
        )
