"""Main CLI application for depcache."""

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from depcache import __version__
from depcache.cache.keys import CacheKey
from depcache.cache.store import CACHE_DIR_ENV, Cache
from depcache.config.parser import ConfigError
from depcache.config.schemas import Settings
from depcache.core.project import Project, RunSummary, detect_ecosystems, install_project
from depcache.ecosystems import PluginRegistry, create_default_registry
from depcache.utils.filesystem import format_size, parse_size
from depcache.utils.platform import get_env

# Create the main Typer app
app = typer.Typer(
    name="depcache",
    help="Shared dependency cache and install orchestrator",
    add_completion=False,
    no_args_is_help=True,
)
cache_app = typer.Typer(help="Inspect and maintain the shared cache", no_args_is_help=True)
app.add_typer(cache_app, name="cache")

console = Console()
error_console = Console(stderr=True)

# Set up logger for the depcache package
logger = logging.getLogger("depcache")

PathOption = Annotated[
    Path | None,
    typer.Option(
        "--path",
        "-p",
        help="Project directory (defaults to current directory)",
    ),
]
CacheDirOption = Annotated[
    Path | None,
    typer.Option(
        "--cache-dir",
        "-c",
        help=f"Cache root (overrides ${CACHE_DIR_ENV} and depcache.yaml)",
    ),
]


def setup_logging(verbosity: int) -> None:
    """Configure logging based on verbosity level.

    Args:
        verbosity: 0=WARNING, 1=INFO, 2+=DEBUG
    """
    if verbosity == 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logger.setLevel(level)

    # Only add handler if not already configured
    if not logger.handlers:
        handler = RichHandler(
            console=error_console,
            show_time=verbosity >= 2,
            show_path=verbosity >= 3,
            rich_tracebacks=True,
        )
        handler.setLevel(level)
        logger.addHandler(handler)
    else:
        for h in logger.handlers:
            h.setLevel(level)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(f"[red]Error:[/red] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]⚠[/yellow] {message}")


def build_registry() -> PluginRegistry:
    """Create the plugin registry for this process."""
    return create_default_registry()


def get_project(path: Path | None = None) -> Project:
    """Load the target project, exiting on configuration errors."""
    try:
        return Project.load(path)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1) from e


def open_cache(cache_dir: Path | None = None, settings: Settings | None = None) -> Cache:
    """Open the shared cache.

    Precedence: --cache-dir, then the environment variable, then
    depcache.yaml, then the default location.
    """
    if cache_dir is None and get_env(CACHE_DIR_ENV) is None and settings is not None:
        cache_dir = settings.cache_dir
    try:
        return Cache(cache_dir)
    except OSError as e:
        print_error(f"Cannot open cache: {e}")
        raise typer.Exit(1) from e


def report_run(run: RunSummary) -> None:
    """Print per-package failures and the final summary line."""
    for summary in run.summaries:
        if summary.error:
            print_error(f"{summary.ecosystem}: {summary.error}")
        for package, reason in summary.failures:
            print_error(f"{summary.ecosystem}: failed to install {package}: {reason}")

    if run.success:
        console.print(
            f"Dependencies installed successfully for all detected package managers "
            f"({run.package_count} package(s))."
        )
    else:
        console.print(
            f"One or more dependency installations failed ({run.failure_count} failure(s))."
        )


def log_progress(package: str, fraction: float) -> None:
    """Progress callback that reports through the logger."""
    logger.info("[%3d%%] %s", int(fraction * 100), package)


@app.callback()
def callback(
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            count=True,
            help="Increase verbosity (-v info, -vv debug)",
        ),
    ] = 0,
) -> None:
    """depcache - shared dependency cache and install orchestrator."""
    setup_logging(verbose)


@app.command()
def version() -> None:
    """Show the depcache version."""
    console.print(f"depcache {__version__}")


@app.command()
def install(
    path: PathOption = None,
    cache_dir: CacheDirOption = None,
    workers: Annotated[
        int | None,
        typer.Option(
            "--workers",
            "-w",
            min=0,
            help="Parallel package installs (0 = number of CPUs)",
        ),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option(
            "--timeout",
            "-t",
            min=1,
            help="Seconds to wait for each ecosystem's packages",
        ),
    ] = None,
    link_only: Annotated[
        bool,
        typer.Option(
            "--link-only",
            help="Only link packages from the cache, never run an installer",
        ),
    ] = False,
) -> None:
    """Install dependencies for every detected ecosystem.

    Packages already in the shared cache are linked into the project;
    the rest are installed with the ecosystem's own tool and then added
    to the cache.
    """
    project = get_project(path)

    updates: dict[str, object] = {}
    if workers is not None:
        updates["max_workers"] = workers
    if timeout is not None:
        updates["timeout"] = timeout
    if updates:
        project.settings = project.settings.model_copy(update=updates)

    cache = open_cache(cache_dir, project.settings)

    try:
        run = install_project(
            project,
            build_registry(),
            cache,
            link_only=link_only,
            progress_callback=log_progress,
        )
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    report_run(run)
    if not run.success:
        raise typer.Exit(1)


@app.command()
def link(
    path: PathOption = None,
    cache_dir: CacheDirOption = None,
) -> None:
    """Link dependencies from the cache without installing anything."""
    install(path=path, cache_dir=cache_dir, workers=None, timeout=None, link_only=True)


@app.command()
def ecosystems(
    path: PathOption = None,
    cache_dir: CacheDirOption = None,
) -> None:
    """List supported ecosystems and which ones a project uses."""
    project = get_project(path)
    registry = build_registry()

    plugins = registry.create_all(open_cache(cache_dir, project.settings))
    detected = {p.name for p in detect_ecosystems(project.root, plugins)}

    table = Table(title="Ecosystems")
    table.add_column("Name", style="cyan")
    table.add_column("Dependency files", style="dim")
    table.add_column("Install directory")
    table.add_column("Detected", style="green")

    for plugin in plugins:
        table.add_row(
            plugin.name,
            ", ".join(plugin.dependency_files()),
            plugin.install_directory,
            "yes" if plugin.name in detected else "",
        )

    console.print(table)


@cache_app.command("path")
def cache_path(path: PathOption = None, cache_dir: CacheDirOption = None) -> None:
    """Show the cache root directory."""
    settings = get_project(path).settings
    console.print(str(open_cache(cache_dir, settings).root))


@cache_app.command("size")
def cache_size(path: PathOption = None, cache_dir: CacheDirOption = None) -> None:
    """Show the total size of the cache."""
    cache = open_cache(cache_dir, get_project(path).settings)
    size = cache.get_cache_size()
    console.print(f"{format_size(size)} ({size} bytes) in {cache.root}")


@cache_app.command("list")
def cache_list(
    path: PathOption = None,
    cache_dir: CacheDirOption = None,
    ecosystem: Annotated[
        str | None,
        typer.Option("--ecosystem", "-e", help="Only show one ecosystem"),
    ] = None,
) -> None:
    """List cached package versions."""
    cache = open_cache(cache_dir, get_project(path).settings)
    entries = [e for e in cache.entries() if ecosystem is None or e.key.ecosystem == ecosystem]

    if not entries:
        console.print("Cache is empty")
        return

    table = Table(title=f"Cached packages in {cache.root}")
    table.add_column("Ecosystem", style="cyan")
    table.add_column("Package")
    table.add_column("Version", style="green")
    table.add_column("Size", justify="right")
    table.add_column("Linked", style="dim")

    for entry in sorted(entries, key=lambda e: (e.key.ecosystem, e.key.package, e.key.version)):
        table.add_row(
            entry.key.ecosystem,
            entry.key.package,
            entry.key.version,
            format_size(entry.size),
            "yes" if entry.linked else "",
        )

    console.print(table)


@cache_app.command("clean")
def cache_clean(
    ecosystem: Annotated[str, typer.Argument(help="Ecosystem name (e.g., composer)")],
    package: Annotated[str, typer.Argument(help="Package name")],
    package_version: Annotated[str, typer.Argument(metavar="VERSION", help="Package version")],
    path: PathOption = None,
    cache_dir: CacheDirOption = None,
) -> None:
    """Remove one package version from the cache."""
    cache = open_cache(cache_dir, get_project(path).settings)
    try:
        key = CacheKey(ecosystem, package, package_version)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1) from e

    if cache.clean_package(key):
        print_success(f"Removed {key}")
    else:
        print_warning(f"Not cached: {key}")


@cache_app.command("prune")
def cache_prune(
    max_size: Annotated[
        str | None,
        typer.Option(
            "--max-size",
            "-m",
            help="Size to shrink the cache to (e.g., 500MB, 5GB; default: max_cache_size)",
        ),
    ] = None,
    path: PathOption = None,
    cache_dir: CacheDirOption = None,
) -> None:
    """Evict least recently used packages until the cache fits a size."""
    settings = get_project(path).settings
    if max_size is None:
        limit = settings.max_cache_size
    else:
        try:
            limit = parse_size(max_size)
        except ValueError as e:
            print_error(str(e))
            raise typer.Exit(1) from e

    cache = open_cache(cache_dir, settings)
    before = cache.get_cache_size()
    within = cache.cleanup(limit)
    after = cache.get_cache_size()

    if within:
        print_success(f"Cache is {format_size(after)} (freed {format_size(before - after)})")
    else:
        print_error(f"Cache is still {format_size(after)}, above {format_size(limit)}")
        raise typer.Exit(1)


@cache_app.command("clear")
def cache_clear(
    path: PathOption = None,
    cache_dir: CacheDirOption = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Do not ask for confirmation"),
    ] = False,
) -> None:
    """Remove every package from the cache."""
    cache = open_cache(cache_dir, get_project(path).settings)
    if not yes and not typer.confirm(f"Remove every package from {cache.root}?"):
        raise typer.Exit(1)

    removed = cache.clear()
    print_success(f"Removed {removed} package version(s)")


def main() -> None:
    """Entry point for the depcache console script."""
    app()
