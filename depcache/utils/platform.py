"""Platform and OS detection utilities."""

import os
import platform
from pathlib import Path
from typing import Literal

PlatformOS = Literal["windows", "linux", "macos"]


def get_os() -> PlatformOS:
    """Get the current operating system.

    Returns:
        One of: "windows", "linux", "macos"
    """
    system = platform.system().lower()
    if system == "darwin":
        return "macos"
    elif system == "windows":
        return "windows"
    else:
        return "linux"


def is_windows() -> bool:
    """Check if the current OS is Windows.

    Returns:
        True if running on Windows
    """
    return get_os() == "windows"


def get_home_directory() -> Path:
    """Get the user's home directory.

    Uses USERPROFILE on Windows and HOME elsewhere, falling back to
    the expansion of ``~``.

    Returns:
        Path to the home directory
    """
    var = "USERPROFILE" if is_windows() else "HOME"
    home = os.environ.get(var)
    if home:
        return Path(home)
    return Path(os.path.expanduser("~"))


def get_env(name: str, default: str | None = None) -> str | None:
    """Get an environment variable, treating empty values as unset.

    Args:
        name: Environment variable name
        default: Default value if not set

    Returns:
        Environment variable value or default
    """
    value = os.environ.get(name)
    if not value:
        return default
    return value


def cpu_count() -> int:
    """Get the number of available CPUs (at least 1)."""
    return os.cpu_count() or 1
