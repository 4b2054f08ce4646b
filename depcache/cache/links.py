"""Directory links between the cache and project install directories.

Two backends exist: symbolic links on POSIX systems and directory
junctions on Windows (which do not need elevated privileges). The backend
is chosen once at import time; callers only use :func:`create_link`,
:func:`is_link` and :func:`remove_path`.
"""

import logging
import os
import shutil
import subprocess
from collections.abc import Callable
from pathlib import Path

from depcache.utils.platform import is_windows

logger = logging.getLogger(__name__)


def _create_symlink(target: Path, link: Path) -> None:
    os.symlink(target, link, target_is_directory=True)


def _create_junction(target: Path, link: Path) -> None:
    cmd = ["cmd", "/c", "mklink", "/J", str(link), str(target)]
    logger.debug("Running: %s", " ".join(cmd))
    result = subprocess.run(cmd, capture_output=True, text=True, check=False)
    if result.returncode != 0:
        detail = result.stderr.strip() or result.stdout.strip()
        raise OSError(f"mklink /J failed for {link}: {detail}")


_create: Callable[[Path, Path], None] = _create_junction if is_windows() else _create_symlink


def create_link(target: Path, link: Path) -> None:
    """Create a directory link at ``link`` pointing to ``target``.

    Args:
        target: Existing directory the link should resolve to
        link: Path of the link to create (must not exist)

    Raises:
        OSError: If the link cannot be created
    """
    _create(target, link)


def is_link(path: Path) -> bool:
    """Check whether a path is a symlink or a directory junction."""
    if path.is_symlink():
        return True
    is_junction = getattr(path, "is_junction", None)
    return bool(is_junction and is_junction())


def remove_path(path: Path) -> bool:
    """Remove a link, directory tree or file.

    Links are removed without touching what they point to.

    Args:
        path: Path to remove

    Returns:
        True if something was removed, False if nothing existed

    Raises:
        OSError: If removal fails
    """
    if is_link(path):
        if is_windows() and path.is_dir():
            os.rmdir(path)
        else:
            path.unlink()
        return True
    if not path.exists():
        return False
    if path.is_dir():
        shutil.rmtree(path)
    else:
        path.unlink()
    return True


def same_location(first: Path, second: Path) -> bool:
    """Check whether two paths resolve to the same existing directory."""
    try:
        return first.exists() and second.exists() and os.path.samefile(first, second)
    except OSError:
        return False
