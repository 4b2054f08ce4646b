"""depcache - shared dependency cache and install orchestrator."""

__version__ = "0.1.0"
