from __future__ import annotations

from typing import Dict

DEFAULT_SCORER_CONFIG: Dict[str, object] = {
    "weights": {
        "premium": 25.0,
        "theta": 20.0,
        "strike": 15.0,
        "dte": 15.0,
        "iv": 15.0,
        "liquidity": 10.0,
    },
    "spread": {
        "tolerance": 0.08,
        "max_penalty": 15.0,
    },
    "score_bounds": {
        "min": 0.0,
        "max": 100.0,
    },
}


def merge_config(overrides: Dict[str, object] | None) -> Dict[str, object]:
    merged: Dict[str, object] = {
        key: dict(value) if isinstance(value, dict) else value
        for key, value in DEFAULT_SCORER_CONFIG.items()
    }
    if not overrides:
        return merged
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            section = dict(merged[key])  # type: ignore[arg-type]
            section.update(value)
            merged[key] = section
        else:
            merged[key] = value
    return merged
