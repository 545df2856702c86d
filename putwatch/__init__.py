"""Ranked, continuously refreshed view of short-dated put contracts."""

from __future__ import annotations

from typing import Any


def build_service(*args: Any, **kwargs: Any):  # pragma: no cover - thin wrapper
    """Lazily import the service factory so light imports stay cheap."""

    from .config import build_service as _impl

    return _impl(*args, **kwargs)


__all__ = ["build_service"]
