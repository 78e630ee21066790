"""Command line interface (python -m livestock_import.cli / livestock-import)."""

from .__main__ import main

__all__ = ["main"]
