"""Project model and the detect-then-install flow."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from depcache.cache.store import Cache
from depcache.config.parser import ConfigError, load_settings
from depcache.config.schemas import Settings
from depcache.core.orchestrator import InstallSummary, Orchestrator, ProgressCallback
from depcache.ecosystems import PluginRegistry
from depcache.ecosystems.base import EcosystemPlugin, ManifestParseError

logger = logging.getLogger(__name__)


class Project:
    """A directory whose dependencies depcache manages.

    Settings come from an optional depcache.yaml in the directory.
    """

    def __init__(self, root: Path, settings: Settings | None = None):
        """Initialize a Project.

        Args:
            root: Path to the project directory
            settings: Project settings (default: built-in defaults)
        """
        self._root = root.resolve()
        self._settings = settings or Settings()

    @classmethod
    def load(cls, path: Path | None = None) -> Project:
        """Load a project from disk.

        Args:
            path: Project directory, or None for the current directory

        Returns:
            Loaded Project instance

        Raises:
            ConfigError: If the directory does not exist or its settings are invalid
        """
        path = Path.cwd() if path is None else path.resolve()
        if not path.is_dir():
            raise ConfigError(f"Directory does not exist: {path}", path)
        return cls(path, load_settings(path))

    @property
    def root(self) -> Path:
        """Get the project directory."""
        return self._root

    @property
    def settings(self) -> Settings:
        """Get the project settings."""
        return self._settings

    @settings.setter
    def settings(self, value: Settings) -> None:
        self._settings = value

    def __repr__(self) -> str:
        return f"Project(root={self._root!r})"


@dataclass
class RunSummary:
    """Outcome of a run over every detected ecosystem."""

    summaries: list[InstallSummary] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(s.success for s in self.summaries)

    @property
    def package_count(self) -> int:
        return sum(len(s.results) for s in self.summaries)

    @property
    def failure_count(self) -> int:
        return sum(s.failure_count + (1 if s.error else 0) for s in self.summaries)


def detect_ecosystems(directory: Path, plugins: list[EcosystemPlugin]) -> list[EcosystemPlugin]:
    """Filter plugins down to the ecosystems used in a directory.

    Args:
        directory: Project directory
        plugins: Candidate plugins

    Returns:
        Plugins whose ``detect`` matched, in their original order
    """
    detected = [plugin for plugin in plugins if plugin.detect(directory)]
    logger.debug(
        "Detected ecosystems in %s: %s",
        directory,
        ", ".join(p.name for p in detected) or "none",
    )
    return detected


def install_project(
    project: Project,
    registry: PluginRegistry,
    cache: Cache,
    link_only: bool = False,
    progress_callback: ProgressCallback | None = None,
) -> RunSummary:
    """Install (or only link) dependencies for every ecosystem in a project.

    Ecosystems are handled one after another. A configuration or parse
    error in one ecosystem is recorded as that ecosystem's failure and
    the remaining ecosystems still run.

    Args:
        project: Project to install into
        registry: Registry providing the available plugins
        cache: Shared package cache
        link_only: Only link from the cache, never run an installer
        progress_callback: Called with (package, fraction done)

    Returns:
        RunSummary with one InstallSummary per detected ecosystem

    Raises:
        ConfigError: If no known ecosystem is detected
    """
    settings = project.settings
    plugins = [p for p in registry.create_all(cache) if settings.is_enabled(p.name)]
    detected = detect_ecosystems(project.root, plugins)
    if not detected:
        raise ConfigError(f"No known package ecosystem detected in {project.root}", project.root)

    run = RunSummary()
    for plugin in detected:
        orchestrator = Orchestrator(
            cache,
            plugin,
            max_workers=settings.max_workers or None,
            timeout=settings.timeout,
            progress_callback=progress_callback,
        )
        try:
            if link_only:
                summary = orchestrator.link_dependencies(project.root)
            else:
                summary = orchestrator.install_dependencies(project.root)
        except (ConfigError, ManifestParseError) as e:
            logger.error("%s: %s", plugin.name, e)
            summary = InstallSummary(plugin.name, error=str(e))
        run.summaries.append(summary)

    return run
