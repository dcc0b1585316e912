from __future__ import annotations

from decimal import Decimal

import pytest

from src.models import TradeDirection
from src.risk import RiskCalculator, RiskEstimator, is_submittable, suggest_direction


def test_long_margin_and_liquidation() -> None:
    result = RiskCalculator.compute("0.01", "10", "60000", TradeDirection.LONG)

    assert result.valid
    assert result.required_margin == Decimal("60")
    # offset = 60000 * (1 - 0.1 * 0.9) = 54600
    assert result.liquidation_price == Decimal("5400")


def test_short_liquidation_mirrors_long() -> None:
    result = RiskCalculator.compute(Decimal("0.01"), Decimal("10"), Decimal("60000"), "SHORT")

    assert result.valid
    assert result.required_margin == Decimal("60")
    assert result.liquidation_price == Decimal("114600")


def test_margin_is_exact_for_decimal_inputs() -> None:
    result = RiskCalculator.compute("0.1", "3", "30000.30", "LONG")

    assert result.required_margin == Decimal("0.1") * Decimal("30000.30") / Decimal("3")


@pytest.mark.parametrize(
    ("size", "leverage", "price"),
    [
        (0, 10, 60000),
        (-1, 10, 60000),
        (0.01, 0, 60000),
        (0.01, -5, 60000),
        (0.01, 10, 0),
        (0.01, 10, -1),
        ("", 10, 60000),
        (0.01, "abc", 60000),
        (0.01, 10, float("nan")),
        (None, 10, 60000),
    ],
)
def test_invalid_inputs_are_not_valid(size, leverage, price) -> None:  # type: ignore[no-untyped-def]
    result = RiskCalculator.compute(size, leverage, price, TradeDirection.LONG)

    assert not result.valid
    assert result.required_margin == 0
    assert result.liquidation_price == 0


def test_unknown_direction_is_not_valid() -> None:
    assert not RiskCalculator.compute(1, 10, 100, "SIDEWAYS").valid


def test_lowercase_direction_is_accepted() -> None:
    assert RiskCalculator.compute(1, 10, 100, "short").valid


def test_compute_is_idempotent() -> None:
    first = RiskCalculator.compute("0.5", "7", "2500.5", "LONG")
    second = RiskCalculator.compute("0.5", "7", "2500.5", "LONG")

    assert first == second


def test_estimator_keeps_last_valid_estimate() -> None:
    estimator = RiskEstimator()
    good = estimator.update("0.01", "10", "60000", "LONG")
    assert estimator.last_valid

    bad = estimator.update("0.01", "10", "0", "LONG")

    assert not bad.valid
    assert not estimator.last_valid
    assert estimator.estimate == good


def test_estimator_replaces_estimate_on_new_valid_input() -> None:
    estimator = RiskEstimator()
    estimator.update("0.01", "10", "60000", "LONG")

    latest = estimator.update("0.02", "10", "60000", "LONG")

    assert estimator.estimate == latest
    assert latest.required_margin == Decimal("120")


def test_is_submittable_requires_positive_size() -> None:
    assert is_submittable("0.001")
    assert not is_submittable(0)
    assert not is_submittable("-1")
    assert not is_submittable("")
    assert not is_submittable(None)


def test_suggest_direction() -> None:
    assert suggest_direction(61000, 60000) is TradeDirection.LONG
    assert suggest_direction(59000, 60000) is TradeDirection.SHORT
    assert suggest_direction(60000, 60000) is None
    assert suggest_direction(None, 60000) is None
