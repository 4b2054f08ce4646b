"""Filesystem utilities for depcache."""

import re
from pathlib import Path

_SIZE_UNITS = {
    "": 1,
    "B": 1,
    "K": 1024,
    "KB": 1024,
    "M": 1024**2,
    "MB": 1024**2,
    "G": 1024**3,
    "GB": 1024**3,
    "T": 1024**4,
    "TB": 1024**4,
}

_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([A-Za-z]*)\s*$")


def ensure_directory(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists

    Returns:
        The directory path
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def parse_size(value: str | int) -> int:
    """Parse a human-readable size into bytes.

    Accepts plain integers or strings such as "512", "200MB", "5GB" or
    "1.5G". Units are binary (1K = 1024 bytes).

    Args:
        value: Size as an integer or string

    Returns:
        Size in bytes

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Size must not be negative: {value}")
        return value

    match = _SIZE_PATTERN.match(value)
    if not match:
        raise ValueError(f"Invalid size: {value!r}")

    number, unit = match.groups()
    unit = unit.upper()
    if unit not in _SIZE_UNITS:
        raise ValueError(f"Unknown size unit {unit!r} in {value!r}")
    return int(float(number) * _SIZE_UNITS[unit])


def format_size(size: int) -> str:
    """Format a byte count for display (e.g., "1.5 MB")."""
    amount = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if amount < 1024:
            return f"{int(amount)} {unit}" if unit == "B" else f"{amount:.1f} {unit}"
        amount /= 1024
    return f"{amount:.1f} TB"
