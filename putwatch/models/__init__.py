from .option import OptionContract, OptionScore, ScoredContract, classify_score
from .symbols import normalize_symbol
from .tracking import (
    PREFERRED_PRIORITY,
    STANDARD_PRIORITY,
    RefreshCursor,
    RefreshStatistics,
    TrackedSymbol,
    priority_for,
)

__all__ = [
    "OptionContract",
    "OptionScore",
    "PREFERRED_PRIORITY",
    "RefreshCursor",
    "RefreshStatistics",
    "STANDARD_PRIORITY",
    "ScoredContract",
    "TrackedSymbol",
    "classify_score",
    "normalize_symbol",
    "priority_for",
]
