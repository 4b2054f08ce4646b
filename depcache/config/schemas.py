"""Pydantic schemas for depcache configuration.

This module defines the data model for depcache.yaml, the optional
per-project settings file.
"""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from depcache.utils.filesystem import parse_size

DEFAULT_TIMEOUT_SECONDS = 600
DEFAULT_MAX_CACHE_SIZE = 5 * 1024**3


class Settings(BaseModel):
    """Settings from depcache.yaml.

    Example:
        cache_dir: ~/.cache/depcache
        max_workers: 8
        timeout: 300
        max_cache_size: 10GB
        ecosystems: [composer]
    """

    cache_dir: Path | None = None
    max_workers: int = Field(default=0, ge=0)
    timeout: float | None = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    max_cache_size: int = DEFAULT_MAX_CACHE_SIZE
    ecosystems: list[str] | None = None

    model_config = {"extra": "forbid"}

    @field_validator("cache_dir")
    @classmethod
    def expand_cache_dir(cls, v: Path | None) -> Path | None:
        """Expand ``~`` in the cache directory."""
        if v is None:
            return None
        return v.expanduser()

    @field_validator("max_cache_size", mode="before")
    @classmethod
    def parse_max_cache_size(cls, v: object) -> int:
        """Accept sizes such as "5GB" as well as plain byte counts."""
        if isinstance(v, bool) or not isinstance(v, int | str):
            raise ValueError("max_cache_size must be a byte count or a size like '5GB'")
        return parse_size(v)

    def is_enabled(self, ecosystem: str) -> bool:
        """Check whether an ecosystem may be used in this project."""
        return self.ecosystems is None or ecosystem in self.ecosystems
