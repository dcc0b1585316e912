"""Collaborator contracts consumed by the cockpit core."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol

from src.models import OrderResult, Prediction, TradeOrderRequest

# Signs an exchange action. Receives the action payload and nonce (ms) and
# returns the signature object ``{"r": ..., "s": ..., "v": ...}``.
OrderSigner = Callable[[dict[str, Any], int], Awaitable[dict[str, Any]]]


class Exchange(Protocol):
    async def fetch_account_info(self) -> dict[str, Any]: ...

    async def fetch_positions(self) -> list[dict[str, Any]]: ...

    async def fetch_current_price(self, symbol: str) -> dict[str, Any]: ...

    async def check_api_config(self) -> bool: ...

    async def place_market_order(self, request: TradeOrderRequest) -> OrderResult: ...


class PredictionSource(Protocol):
    async def fetch_predictions(self) -> list[Prediction]: ...
