from __future__ import annotations

import re

from putwatch.errors import ValidationError

_SYMBOL_PATTERN = re.compile(r"^[A-Z][A-Z0-9.\-]{0,9}$")


def normalize_symbol(raw: object) -> str:
    """Return the canonical uppercase form of a ticker or raise ``ValidationError``."""

    if raw is None:
        raise ValidationError("Symbol is required")
    symbol = str(raw).strip().upper()
    if not symbol:
        raise ValidationError("Symbol is required")
    if not _SYMBOL_PATTERN.match(symbol):
        raise ValidationError(f"Invalid symbol: {raw!r}")
    return symbol


__all__ = ["normalize_symbol"]
