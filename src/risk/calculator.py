"""Margin and liquidation-price estimates for a staged trade.

These are simplified estimates. They ignore fees, funding and the exchange's
maintenance margin tiers, so the liquidation price shown is indicative only.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from src.models import RiskEstimate, TradeDirection, to_decimal

LIQUIDATION_BUFFER = Decimal("0.9")


class RiskCalculator:
    """Stateless margin / liquidation estimator."""

    @staticmethod
    def compute(
        size: Any,
        leverage: Any,
        price: Any,
        direction: TradeDirection | str,
    ) -> RiskEstimate:
        size_d = to_decimal(size)
        leverage_d = to_decimal(leverage)
        price_d = to_decimal(price)
        try:
            side = TradeDirection(str(getattr(direction, "value", direction)).upper())
        except ValueError:
            return RiskEstimate.invalid()
        if size_d <= 0 or leverage_d <= 0 or price_d <= 0:
            return RiskEstimate.invalid()

        required_margin = size_d * price_d / leverage_d
        offset = price_d * (1 - (1 / leverage_d) * LIQUIDATION_BUFFER)
        if side is TradeDirection.LONG:
            liquidation_price = price_d - offset
        else:
            liquidation_price = price_d + offset
        return RiskEstimate(
            required_margin=required_margin,
            liquidation_price=liquidation_price,
            valid=True,
        )


class RiskEstimator:
    """Keeps the last valid estimate while inputs are being edited.

    Invalid input (a cleared size field, a zero price while the quote loads)
    reports ``valid=False`` for that update but does not discard the last
    good numbers.
    """

    def __init__(self) -> None:
        self.estimate: RiskEstimate | None = None
        self.last_valid: bool = False

    def update(
        self,
        size: Any,
        leverage: Any,
        price: Any,
        direction: TradeDirection | str,
    ) -> RiskEstimate:
        result = RiskCalculator.compute(size, leverage, price, direction)
        self.last_valid = result.valid
        if result.valid:
            self.estimate = result
        return result


def is_submittable(size: Any) -> bool:
    """The trade form may be submitted whenever size is positive."""
    return to_decimal(size) > 0


def suggest_direction(prediction_price: Any, current_price: Any) -> TradeDirection | None:
    predicted = to_decimal(prediction_price)
    current = to_decimal(current_price)
    if predicted <= 0 or current <= 0:
        return None
    if predicted > current:
        return TradeDirection.LONG
    if predicted < current:
        return TradeDirection.SHORT
    return None
