from __future__ import annotations

import asyncio
import re
import shutil
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import uuid4

import pytest

from src.cockpit import Cockpit
from src.config.preferences import PreferencesStore
from src.config.settings import Settings
from src.errors import ExchangeError
from src.models import OrderResult, Prediction, TradeOrderRequest
from src.storage.templates import TemplateStore
from src.storage.trade_log import InMemoryTradeLogBackend, TradeLogStore


def _safe_node_name(name: str) -> str:
    # Windows-safe-ish: keep alnum, dash, underscore, dot.
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
    return name or "test"


@pytest.fixture
def workspace_tmp_path(request: pytest.FixtureRequest) -> Path:
    """Temp dir rooted in the workspace (not system temp).

    This repo's environment can deny access to dirs created under the system temp
    directory; using a workspace-local temp dir avoids that.
    """
    root = Path.cwd() / ".pytest_tmp_workspace" / _safe_node_name(request.node.name) / uuid4().hex
    root.mkdir(parents=True, exist_ok=True)
    try:
        yield root
    finally:
        shutil.rmtree(root, ignore_errors=True)



@dataclass
class FakeExchange:
    price: str = "60000"
    configured: bool = True
    account_error: str | None = None
    order_error: str | None = None
    calls: dict[str, int] = field(default_factory=dict)
    orders: list[TradeOrderRequest] = field(default_factory=list)
    account_gate: asyncio.Event | None = None

    def _count(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    async def fetch_account_info(self) -> dict[str, Any]:
        self._count("account_info")
        if self.account_gate is not None:
            await self.account_gate.wait()
        if self.account_error:
            raise ExchangeError(self.account_error)
        return {"marginSummary": {"accountValue": "1000.0"}}

    async def fetch_positions(self) -> list[dict[str, Any]]:
        self._count("positions")
        return [{"position": {"coin": "BTC", "szi": "0.01"}}]

    async def fetch_current_price(self, symbol: str) -> dict[str, Any]:
        self._count("price")
        return {"symbol": symbol, "price": self.price}

    async def check_api_config(self) -> bool:
        return self.configured

    async def place_market_order(self, request: TradeOrderRequest) -> OrderResult:
        self.orders.append(request)
        if self.order_error:
            raise ExchangeError(self.order_error)
        return OrderResult(
            order_id="1001",
            status="filled",
            filled_size=request.size,
            average_price=Decimal("60005"),
        )


@dataclass
class FakePredictions:
    error: str | None = None

    async def fetch_predictions(self) -> list[Prediction]:
        if self.error:
            raise ExchangeError(self.error)
        return [Prediction(topic_id=14, price=61000.0, timestamp=1_700_000_000_000, timeframe="5m")]


@pytest.fixture
def fake_exchange() -> FakeExchange:
    return FakeExchange()


@pytest.fixture
def fake_predictions() -> FakePredictions:
    return FakePredictions()


@pytest.fixture
def cockpit(fake_exchange: FakeExchange, fake_predictions: FakePredictions) -> Cockpit:
    """Cockpit over in-memory stores and fake connectors."""
    return Cockpit(
        settings=Settings(_env_file=None),
        exchange=fake_exchange,
        predictions=fake_predictions,
        trade_log=TradeLogStore(InMemoryTradeLogBackend()),
        templates=TemplateStore(),
        preferences=PreferencesStore(),
    )
