"""Ecosystem plugins for depcache.

This module provides the plugin registry. A registry is created by the
process entry point and passed to whatever needs it; there is no
module-level registry.
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from depcache.cache.store import Cache
    from depcache.ecosystems.base import EcosystemPlugin

logger = logging.getLogger(__name__)

PluginConstructor = Callable[["Cache"], "EcosystemPlugin"]

# Known ecosystem modules - add new ecosystems here
_ECOSYSTEM_MODULES = [
    "depcache.ecosystems.composer",
    "depcache.ecosystems.npm",
]


class PluginRegistry:
    """Ordered mapping of ecosystem names to plugin constructors.

    Registration is expected to happen at startup, before plugins are
    created; the registration order is the order plugins are created and
    run in.

    Usage:
        registry = PluginRegistry()
        registry.register("composer", ComposerPlugin)
        plugins = registry.create_all(cache)
    """

    def __init__(self) -> None:
        self._constructors: dict[str, PluginConstructor] = {}
        self._created = False

    def register(self, name: str, constructor: PluginConstructor) -> None:
        """Register a plugin constructor.

        Args:
            name: Ecosystem name (e.g., "composer")
            constructor: Callable taking the shared Cache and returning a plugin

        Raises:
            ValueError: If the name is already registered
        """
        if name in self._constructors:
            raise ValueError(f"Ecosystem already registered: {name}")
        if self._created:
            logger.warning("Ecosystem %s registered after plugins were created", name)
        self._constructors[name] = constructor
        logger.debug("Registered ecosystem %s", name)

    def names(self) -> list[str]:
        """List registered ecosystem names in registration order."""
        return list(self._constructors)

    def create(self, name: str, cache: Cache) -> EcosystemPlugin:
        """Create a single plugin by name.

        Raises:
            ValueError: If the ecosystem is not registered
        """
        if name not in self._constructors:
            available = ", ".join(self._constructors) or "none"
            raise ValueError(f"Unknown ecosystem: {name}. Available ecosystems: {available}")
        self._created = True
        return self._constructors[name](cache)

    def create_all(self, cache: Cache) -> list[EcosystemPlugin]:
        """Create every registered plugin around a shared cache.

        Args:
            cache: Cache instance handed to each constructor

        Returns:
            Plugins in registration order
        """
        self._created = True
        return [constructor(cache) for constructor in self._constructors.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._constructors

    def __len__(self) -> int:
        return len(self._constructors)


def create_default_registry() -> PluginRegistry:
    """Create a registry holding every built-in ecosystem.

    Each module in the known module list exposes ``register(registry)``.
    """
    registry = PluginRegistry()
    for module_name in _ECOSYSTEM_MODULES:
        module = importlib.import_module(module_name)
        module.register(registry)
    return registry
