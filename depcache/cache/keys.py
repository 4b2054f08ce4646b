"""Cache keys and their on-disk path segments.

A cache entry lives at ``root/<ecosystem>/<package>/<version>``. Each
component is escaped into a single path segment: characters in
``[A-Za-z0-9._-]`` are kept as-is and every other byte of the UTF-8
encoding becomes ``%XX``. Because ``%`` is itself escaped, the encoding
is reversible and two different keys never share a directory
(``acme/widgets`` -> ``acme%2Fwidgets``, ``acme_widgets`` -> ``acme_widgets``).
"""

from __future__ import annotations

import string
from dataclasses import dataclass

SAFE_CHARACTERS = frozenset(string.ascii_letters + string.digits + "-_.")

# Segments that would be interpreted by the filesystem
_RESERVED_SEGMENTS = {".": "%2E", "..": "%2E%2E"}


def escape_segment(value: str) -> str:
    """Escape a key component into a single safe path segment.

    Args:
        value: Raw component (ecosystem, package name or version)

    Returns:
        Escaped segment; identical to ``value`` when it only uses the
        safe alphabet (except for the reserved names ``.`` and ``..``)
    """
    if value in _RESERVED_SEGMENTS:
        return _RESERVED_SEGMENTS[value]

    parts: list[str] = []
    for char in value:
        if char in SAFE_CHARACTERS:
            parts.append(char)
        else:
            parts.extend(f"%{byte:02X}" for byte in char.encode("utf-8"))
    return "".join(parts)


def unescape_segment(segment: str) -> str:
    """Reverse :func:`escape_segment`.

    Raises:
        ValueError: If the segment contains a malformed escape
    """
    data = bytearray()
    index = 0
    while index < len(segment):
        char = segment[index]
        if char == "%":
            hex_digits = segment[index + 1 : index + 3]
            if len(hex_digits) != 2 or any(c not in string.hexdigits for c in hex_digits):
                raise ValueError(f"Malformed escape in path segment: {segment!r}")
            data.append(int(hex_digits, 16))
            index += 3
        else:
            data.extend(char.encode("utf-8"))
            index += 1
    return data.decode("utf-8")


@dataclass(frozen=True)
class CacheKey:
    """Identifies one cached package version."""

    ecosystem: str
    package: str
    version: str

    def __post_init__(self) -> None:
        for field_name in ("ecosystem", "package", "version"):
            if not getattr(self, field_name):
                raise ValueError(f"Cache key {field_name} must not be empty")

    @property
    def segments(self) -> tuple[str, str, str]:
        """Escaped path segments for this key."""
        return (
            escape_segment(self.ecosystem),
            escape_segment(self.package),
            escape_segment(self.version),
        )

    @classmethod
    def from_segments(cls, ecosystem: str, package: str, version: str) -> CacheKey:
        """Rebuild a key from escaped on-disk directory names."""
        return cls(
            unescape_segment(ecosystem),
            unescape_segment(package),
            unescape_segment(version),
        )

    def __str__(self) -> str:
        return f"{self.ecosystem}:{self.package}@{self.version}"
