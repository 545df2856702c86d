"""Tracked-symbol membership and round-robin cursor persistence."""

from .sqlite import SymbolRegistry

__all__ = ["SymbolRegistry"]
