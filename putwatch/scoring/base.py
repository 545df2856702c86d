from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Protocol

from putwatch.models.option import OptionContract


@dataclass(frozen=True)
class ScoreContext:
    """Information passed to each factor scorer."""

    contract: OptionContract
    current_price: float
    days_to_expiry: int
    config: Dict[str, object]

    def get_weight(self, scorer_key: str, default: float) -> float:
        return float(self.config.get("weights", {}).get(scorer_key, default))  # type: ignore[union-attr]


class FactorScorer(Protocol):
    """Protocol each scoring factor must implement.

    ``default_weight`` is the maximum number of points the factor contributes.
    """

    key: str
    default_weight: float

    def score(self, context: ScoreContext, weight: float) -> float:
        """Return the factor's points in ``[0, weight]``."""
