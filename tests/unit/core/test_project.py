"""Tests for depcache.core.project module."""

import json
from pathlib import Path

import pytest
from helpers import FakeInstaller, write_composer_lock

from depcache.cache.store import Cache
from depcache.config.parser import ConfigError
from depcache.config.schemas import Settings
from depcache.core.manifest_cache import ManifestCache
from depcache.core.orchestrator import InstallResult, InstallSummary
from depcache.core.project import Project, RunSummary, detect_ecosystems, install_project
from depcache.ecosystems import PluginRegistry
from depcache.ecosystems.composer import ComposerPlugin
from depcache.ecosystems.npm import NpmPlugin


@pytest.fixture
def registry(fake_installer: FakeInstaller) -> PluginRegistry:
    """Registry with both built-in ecosystems wired to fake installers."""
    registry = PluginRegistry()
    registry.register("composer", lambda cache: ComposerPlugin(cache, installer=fake_installer))
    registry.register(
        "npm", lambda cache: NpmPlugin(cache, installer=FakeInstaller(install_dir="node_modules"))
    )
    return registry


def write_npm_lock(directory: Path, packages: dict[str, str]) -> None:
    (directory / "package.json").write_text(json.dumps({"name": "app"}))
    lock = {
        "lockfileVersion": 3,
        "packages": {
            "": {"name": "app"},
            **{f"node_modules/{name}": {"version": version} for name, version in packages.items()},
        },
    }
    (directory / "package-lock.json").write_text(json.dumps(lock))


class TestProject:
    """Tests for Project."""

    def test_load_without_settings_file(self, temp_project: Path):
        """A project without depcache.yaml uses default settings."""
        project = Project.load(temp_project)

        assert project.root == temp_project.resolve()
        assert project.settings == Settings()

    def test_load_with_settings_file(self, temp_project: Path):
        """depcache.yaml is read into the project's settings."""
        (temp_project / "depcache.yaml").write_text("max_workers: 3\necosystems: [npm]\n")

        project = Project.load(temp_project)

        assert project.settings.max_workers == 3
        assert project.settings.ecosystems == ["npm"]

    def test_load_defaults_to_cwd(self, temp_project: Path, monkeypatch: pytest.MonkeyPatch):
        """Without a path the current directory is loaded."""
        monkeypatch.chdir(temp_project)

        assert Project.load().root == temp_project.resolve()

    def test_load_missing_directory(self, temp_dir: Path):
        """Loading a missing directory is a configuration error."""
        with pytest.raises(ConfigError, match="Directory does not exist"):
            Project.load(temp_dir / "missing")

    def test_settings_can_be_replaced(self, temp_project: Path):
        """CLI overrides replace the settings object."""
        project = Project(temp_project)
        project.settings = Settings(max_workers=8)

        assert project.settings.max_workers == 8


class TestRunSummary:
    """Tests for RunSummary."""

    def test_aggregates_ecosystems(self):
        """Counts add up across ecosystems; errors count as failures."""
        run = RunSummary(
            [
                InstallSummary(
                    "composer",
                    results=[
                        InstallResult("a", "1", True, "installed"),
                        InstallResult("b", "1", False, "failed", "boom"),
                    ],
                ),
                InstallSummary("npm", error="bulk install failed"),
            ]
        )

        assert run.success is False
        assert run.package_count == 2
        assert run.failure_count == 2

    def test_empty_run_succeeds(self):
        assert RunSummary().success is True


class TestDetectEcosystems:
    """Tests for detect_ecosystems()."""

    def test_detects_by_dependency_file(
        self, cache: Cache, registry: PluginRegistry, temp_project: Path
    ):
        """Only ecosystems whose files are present are returned."""
        (temp_project / "package.json").write_text("{}")

        detected = detect_ecosystems(temp_project, registry.create_all(cache))

        assert [p.name for p in detected] == ["npm"]

    def test_keeps_registration_order(
        self, cache: Cache, registry: PluginRegistry, temp_project: Path
    ):
        """Several detected ecosystems keep their registry order."""
        (temp_project / "package.json").write_text("{}")
        (temp_project / "composer.json").write_text("{}")

        detected = detect_ecosystems(temp_project, registry.create_all(cache))

        assert [p.name for p in detected] == ["composer", "npm"]


class TestInstallProject:
    """Tests for install_project()."""

    def test_installs_every_detected_ecosystem(
        self, cache: Cache, registry: PluginRegistry, temp_project: Path
    ):
        """Composer and npm dependencies are installed in one run."""
        write_composer_lock(temp_project, {"left-pad": "1.0.0"})
        write_npm_lock(temp_project, {"lodash": "4.17.21", "@types/node": "20.1.0"})

        run = install_project(Project.load(temp_project), registry, cache)

        assert run.success
        assert [s.ecosystem for s in run.summaries] == ["composer", "npm"]
        assert run.package_count == 3
        assert (temp_project / "node_modules" / "@types" / "node" / "VERSION").exists()

    def test_no_ecosystem_detected(
        self, cache: Cache, registry: PluginRegistry, temp_project: Path
    ):
        """A directory without any known dependency file is an error."""
        with pytest.raises(ConfigError, match="No known package ecosystem detected"):
            install_project(Project.load(temp_project), registry, cache)

    def test_respects_enabled_ecosystems(
        self, cache: Cache, registry: PluginRegistry, temp_project: Path
    ):
        """Ecosystems missing from settings.ecosystems are skipped."""
        write_composer_lock(temp_project, {"left-pad": "1.0.0"})
        write_npm_lock(temp_project, {"lodash": "4.17.21"})
        project = Project(temp_project, Settings(ecosystems=["npm"]))

        run = install_project(project, registry, cache)

        assert [s.ecosystem for s in run.summaries] == ["npm"]
        assert not (temp_project / "vendor").exists()

    def test_parse_error_does_not_stop_other_ecosystems(
        self, cache: Cache, registry: PluginRegistry, temp_project: Path
    ):
        """A malformed lock file fails only its own ecosystem."""
        (temp_project / "composer.json").write_text("{}")
        (temp_project / "composer.lock").write_text("[broken")
        write_npm_lock(temp_project, {"lodash": "4.17.21"})

        run = install_project(Project.load(temp_project), registry, cache)

        assert run.success is False
        composer, npm = run.summaries
        assert composer.error is not None
        assert "composer.lock" in composer.error
        assert npm.success

    def test_vanished_lock_file_does_not_stop_other_ecosystems(
        self,
        cache: Cache,
        registry: PluginRegistry,
        temp_project: Path,
        monkeypatch: pytest.MonkeyPatch,
    ):
        """A lock file removed mid-run fails only its own ecosystem."""
        write_composer_lock(temp_project, {"left-pad": "1.0.0"})
        write_npm_lock(temp_project, {"lodash": "4.17.21"})
        original_get = ManifestCache.get

        def get(self, path: Path) -> dict[str, str]:
            if path.name == "composer.lock":
                raise FileNotFoundError(2, "No such file or directory", str(path))
            return original_get(self, path)

        monkeypatch.setattr(ManifestCache, "get", get)

        run = install_project(Project.load(temp_project), registry, cache)

        composer, npm = run.summaries
        assert composer.error is not None
        assert "cannot read" in composer.error
        assert npm.success

    def test_link_only(
        self,
        cache: Cache,
        registry: PluginRegistry,
        fake_installer: FakeInstaller,
        temp_project: Path,
    ):
        """link_only never runs an installer."""
        write_composer_lock(temp_project, {"left-pad": "1.0.0"})

        run = install_project(Project.load(temp_project), registry, cache, link_only=True)

        assert run.success is False
        assert run.summaries[0].failures == [("left-pad", "not in cache")]
        assert fake_installer.calls == []
