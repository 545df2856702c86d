import pytest
from pydantic import ValidationError as SettingsError

from putwatch.cache import DataKind
from putwatch.config import build_settings, get_settings, reset_settings_cache
from putwatch.config.loader import ENVIRONMENT_VARIABLE
from putwatch.errors import ConfigurationError


@pytest.fixture(autouse=True)
def clear_settings_cache():
    reset_settings_cache()
    yield
    reset_settings_cache()


def test_dev_settings_load(monkeypatch):
    monkeypatch.setenv(ENVIRONMENT_VARIABLE, "dev")
    settings = get_settings()

    assert settings.env == "dev"
    assert "AAPL" in settings.get_watchlist()
    assert settings.get_watchlist("preferred") == ["SPY", "AAPL"]
    assert settings.adapter.provider == "yfinance"
    assert settings.cache.ttl_for(DataKind.LATEST) == 120
    assert settings.scoring.weights["premium"] == 25.0
    assert settings.scheduler.max_consecutive_failures == 3


def test_prod_settings_override(monkeypatch):
    monkeypatch.setenv(ENVIRONMENT_VARIABLE, "prod")
    settings = get_settings()

    assert "IWM" in settings.get_watchlist("default")
    assert settings.cache.ttl_for(DataKind.LATEST) == 60
    # Not overridden in prod.yaml, so the default applies.
    assert settings.cache.ttl_for(DataKind.PERFORMANCE) == 600
    assert settings.scheduler.interval_seconds == 30
    assert settings.adapter.settings["max_retries"] == 4


def test_missing_environment_raises(monkeypatch):
    monkeypatch.setenv(ENVIRONMENT_VARIABLE, "unknown")
    with pytest.raises(FileNotFoundError):
        get_settings()


def test_settings_are_memoised():
    assert get_settings("dev") is get_settings("DEV")


def test_scoring_overrides_merge_with_defaults():
    settings = build_settings({"scoring": {"weights": {"theta": 30}}})

    engine_config = settings.scoring_dict()
    assert engine_config["weights"]["theta"] == 30.0
    assert engine_config["weights"]["premium"] == 25.0
    assert engine_config["spread"]["max_penalty"] == 15.0


def test_negative_weights_are_rejected():
    with pytest.raises(SettingsError):
        build_settings({"scoring": {"weights": {"theta": -1}}})


def test_unknown_cache_kind_is_rejected():
    with pytest.raises(SettingsError):
        build_settings({"cache": {"ttl_seconds": {"quotes": 10}}})


def test_watchlist_symbols_are_normalised():
    settings = build_settings({"watchlists": {"default": ["aapl", " msft "]}})
    assert settings.get_watchlist() == ["AAPL", "MSFT"]


def test_unsupported_storage_backend():
    settings = build_settings({"storage": {"backend": "postgres"}})
    with pytest.raises(ConfigurationError):
        settings.storage.require_sqlite()


def test_settings_are_frozen():
    settings = build_settings()
    with pytest.raises(SettingsError):
        settings.env = "prod"


def test_adapter_retries_must_fit_scheduler_fetch_timeout():
    with pytest.raises(SettingsError, match="fetch timeout"):
        build_settings(
            {
                "adapter": {"settings": {"max_retries": 3, "request_timeout_seconds": 30}},
                "scheduler": {"fetch_timeout_seconds": 20},
            }
        )


@pytest.mark.parametrize("env", ["dev", "prod"])
def test_shipped_configs_fit_the_fetch_timeout(env):
    settings = get_settings(env)
    assert settings.adapter.request_budget_seconds() <= settings.scheduler.fetch_timeout_seconds
