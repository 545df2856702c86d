"""Client implementations for external market data providers."""

from __future__ import annotations

from importlib import import_module
from typing import Any, Dict, Type

from putwatch.errors import ConfigurationError

from .base import MarketDataClient

_CLIENT_REGISTRY: Dict[str, str] = {
    "yfinance": "putwatch.adapters.yfinance:YFinanceMarketDataClient",
}


def create_client(provider: str, **settings: Any) -> MarketDataClient:
    """Instantiate a market data client by name.

    Args:
        provider: The name of the provider to load (case-insensitive).
        **settings: Keyword arguments forwarded to the client constructor.

    Raises:
        ConfigurationError: If the provider name is unknown.
    """

    normalized = provider.strip().lower()
    try:
        dotted_path = _CLIENT_REGISTRY[normalized]
    except KeyError as exc:
        raise ConfigurationError(f"Unknown market data provider: {provider}") from exc

    module_name, class_name = dotted_path.split(":", 1)
    module = import_module(module_name)
    client_cls: Type[MarketDataClient] = getattr(module, class_name)
    return client_cls(**settings)


__all__ = ["MarketDataClient", "create_client"]
