from __future__ import annotations

import random
from datetime import date, datetime, timedelta, timezone

import pytest

from putwatch.errors import ValidationError
from putwatch.models.option import OptionContract
from putwatch.scoring import PutScoringEngine, annualized_return, classify_return, days_to_expiry, spread_penalty

NOW = datetime(2025, 3, 1, 15, 0, tzinfo=timezone.utc)


def build_golden_contract(**overrides) -> OptionContract:
    payload = {
        "contractName": "XYZ250405P00100000",
        "strike": 100.0,
        "expirationDate": "2025-04-05",
        "lastPrice": 5.1,
        "bid": 5.0,
        "ask": 5.2,
        "volume": 500,
        "openInterest": 1000,
        "impliedVolatility": 40.0,
        "theta": -0.03,
    }
    payload.update(overrides)
    return OptionContract.model_validate(payload)


def test_golden_contract_breakdown():
    engine = PutScoringEngine()
    score = engine.score(build_golden_contract(), 100.0, now=NOW)

    assert score.premium_score == pytest.approx(14.33, abs=0.01)
    assert score.theta_score == 6.0
    assert score.strike_score == 15.0
    assert score.dte_score == 14.5
    assert score.iv_score == 10.0
    assert score.liquidity_score == pytest.approx(7.39, abs=0.01)
    assert score.spread_penalty == 0.0
    assert score.total == pytest.approx(67.22, abs=0.01)
    assert score.classification == "good"


def test_days_to_expiry_rounds_up_partial_days():
    assert days_to_expiry(date(2025, 4, 5), NOW) == 35
    assert days_to_expiry(date(2025, 3, 2), NOW) == 1
    assert days_to_expiry(date(2025, 3, 1), NOW) == 0


def test_clock_is_used_when_now_is_omitted():
    engine = PutScoringEngine(clock=lambda: NOW)
    assert engine.score(build_golden_contract(), 100.0).dte_score == 14.5


def test_missing_theta_scores_zero():
    engine = PutScoringEngine()
    score = engine.score(build_golden_contract(theta=None), 100.0, now=NOW)
    assert score.theta_score == 0.0


def test_wide_spread_is_penalised():
    engine = PutScoringEngine()
    tight = engine.score(build_golden_contract(), 100.0, now=NOW)
    wide = engine.score(build_golden_contract(bid=4.0, ask=6.0), 100.0, now=NOW)

    # (6 - 4) / 6 = 33.3% spread, 25.3 points over tolerance * 200 capped at 15
    assert wide.spread_penalty == 15.0
    assert wide.total < tight.total


def test_spread_penalty_is_zero_without_ask():
    assert spread_penalty(1.0, 0.0) == 0.0
    assert spread_penalty(1.0, 1.05) == 0.0
    assert spread_penalty(0.9, 1.0) == pytest.approx(4.0)


@pytest.mark.parametrize(
    "dte, expected",
    [
        (10, 0.0),
        (24, 13.5),
        (25, 11.0),
        (29, 14.2),
        (30, 13.5),
        (37, 14.9),
        (45, 13.5),
        (48, 12.6),
        (50, 11.0),
        (60, 10.0),
        (90, 0.0),
    ],
)
def test_dte_factor_is_piecewise(dte, expected):
    engine = PutScoringEngine()
    contract = build_golden_contract(expirationDate=(NOW + timedelta(days=dte)).date().isoformat())
    # Expiration at 00:00 UTC is 15h earlier than NOW + dte days, so ceil() gives dte back.
    score = engine.score(contract, 100.0, now=NOW)
    assert score.dte_score == pytest.approx(expected, abs=0.01)


def test_strike_distance_reduces_score():
    engine = PutScoringEngine()
    at_money = engine.score(build_golden_contract(strike=100.0), 100.0, now=NOW)
    far = engine.score(build_golden_contract(strike=90.0), 100.0, now=NOW)

    assert at_money.strike_score == 15.0
    assert far.strike_score == 0.0


def test_iv_is_capped_at_weight():
    engine = PutScoringEngine()
    score = engine.score(build_golden_contract(impliedVolatility=250.0), 100.0, now=NOW)
    assert score.iv_score == 15.0


def test_rejects_non_positive_inputs():
    engine = PutScoringEngine()
    with pytest.raises(ValidationError):
        engine.score(build_golden_contract(strike=0), 100.0, now=NOW)
    with pytest.raises(ValidationError):
        engine.score(build_golden_contract(), 0.0, now=NOW)


def test_weight_override_changes_total():
    contract = build_golden_contract()
    baseline = PutScoringEngine().score(contract, 100.0, now=NOW)
    capped = PutScoringEngine({"weights": {"premium": 10.0}}).score(contract, 100.0, now=NOW)

    assert capped.premium_score == 10.0
    assert capped.total == pytest.approx(baseline.total - (14.33 - 10.0), abs=0.02)
    assert PutScoringEngine({"weights": {"premium": 10.0}}).config["weights"]["theta"] == 20.0


def test_custom_score_bounds_are_respected():
    engine = PutScoringEngine({"score_bounds": {"min": 10.0, "max": 50.0}})
    high = engine.score(build_golden_contract(), 100.0, now=NOW)
    worthless = build_golden_contract(
        bid=0.0,
        ask=0.0,
        theta=None,
        impliedVolatility=0,
        volume=0,
        openInterest=0,
        strike=60.0,
        expirationDate="2025-12-31",
    )
    low = engine.score(worthless, 100.0, now=NOW)

    assert high.total == 50.0
    assert low.total == 10.0


def test_random_contracts_stay_within_bounds():
    rng = random.Random(1234)
    engine = PutScoringEngine()
    for _ in range(500):
        bid = rng.uniform(0, 30)
        contract = OptionContract(
            strike=rng.uniform(1, 500),
            expiration=(NOW + timedelta(days=rng.randint(0, 120))).date(),
            bid=bid,
            ask=bid + rng.uniform(0, 10),
            volume=rng.randint(0, 50_000),
            open_interest=rng.randint(0, 100_000),
            implied_volatility=rng.uniform(0, 300),
            theta=rng.choice([None, rng.uniform(-1, 0.2)]),
        )
        score = engine.score(contract, rng.uniform(1, 500), now=NOW)
        assert 0.0 <= score.total <= 100.0
        for value in score.factor_scores().values():
            assert value >= 0.0


def test_rank_orders_best_first():
    engine = PutScoringEngine()
    contracts = [
        build_golden_contract(contractName="weak", bid=0.5, ask=1.5, impliedVolatility=10.0),
        build_golden_contract(contractName="strong"),
    ]
    ranked = engine.rank(contracts, 100.0, now=NOW)

    assert [item.contract.contract_name for item in ranked] == ["strong", "weak"]
    assert ranked[0].days_to_expiry == 35


@pytest.mark.parametrize(
    "total, label",
    [(80, "excellent"), (79.99, "good"), (65, "good"), (50, "moderate"), (35, "weak"), (34.9, "poor")],
)
def test_classification_thresholds(total, label):
    assert PutScoringEngine.classify(total) == label


def test_annualized_return_uses_margin_collateral():
    # 1.0 / (100 * 0.2) = 5% over 30 days
    assert annualized_return(1.0, 100.0, 30) == pytest.approx(60.83, abs=0.01)
    assert annualized_return(1.0, 100.0, 0) == 0.0
    assert classify_return(15) == "high"
    assert classify_return(8) == "medium"
    assert classify_return(7.9) == "low"


def test_enabled_scorers_lists_every_factor():
    assert PutScoringEngine().enabled_scorers == ["premium", "theta", "strike", "dte", "iv", "liquidity"]
