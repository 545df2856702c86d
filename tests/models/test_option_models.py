from __future__ import annotations

from datetime import date

import pytest

from putwatch.errors import ValidationError
from putwatch.models import OptionContract, normalize_symbol


def test_contract_accepts_provider_field_names():
    contract = OptionContract.model_validate(
        {
            "contractName": "XYZ250418P00095000",
            "strike": "95",
            "expirationDate": "2025-04-18T00:00:00Z",
            "lastPrice": 1.1,
            "bid": 1.0,
            "ask": 1.2,
            "volume": None,
            "openInterest": float("nan"),
            "impliedVolatility": 31.5,
            "theta": float("nan"),
        }
    )

    assert contract.strike == 95.0
    assert contract.expiration == date(2025, 4, 18)
    assert contract.volume == 0
    assert contract.open_interest == 0
    assert contract.theta is None
    assert contract.mid_price == pytest.approx(1.1)
    assert contract.has_greeks is False


def test_mid_price_falls_back_to_last_price():
    contract = OptionContract(strike=95.0, expiration=date(2025, 4, 18), last_price=0.4)
    assert contract.mid_price == 0.4


@pytest.mark.parametrize("raw, expected", [("aapl", "AAPL"), (" brk.b ", "BRK.B"), ("BF-B", "BF-B")])
def test_normalize_symbol(raw, expected):
    assert normalize_symbol(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "1ABC", "TOOLONGSYMBOL", "AA PL"])
def test_normalize_symbol_rejects_garbage(raw):
    with pytest.raises(ValidationError):
        normalize_symbol(raw)
