from __future__ import annotations

import asyncio
from typing import Any

import pytest

from src.errors import ExchangeError
from src.models import ActionResult
from src.sync.aggregator import aggregate


@pytest.mark.asyncio
async def test_three_failures_one_success() -> None:
    async def account_info() -> Any:
        raise ExchangeError("Hyperliquid API returned HTTP 502")

    async def positions() -> ActionResult[Any]:
        return ActionResult.fail("Failed to fetch positions: timeout")

    async def predictions() -> Any:
        raise RuntimeError("")

    async def logs() -> ActionResult[Any]:
        return ActionResult.ok("Successfully fetched trade log entries.", [{"id": "1"}])

    snapshot = await aggregate(
        {
            "account_info": account_info,
            "positions": positions,
            "predictions": predictions,
            "logs": logs,
        }
    )

    data = [o.data for o in snapshot.outcomes.values() if o.data is not None]
    errors = [o.error for o in snapshot.outcomes.values() if o.error is not None]
    assert data == [[{"id": "1"}]]
    assert len(errors) == 3
    assert snapshot.account_info.error == "Hyperliquid API returned HTTP 502"
    assert snapshot.positions.error == "Failed to fetch positions: timeout"
    assert snapshot.predictions.error == "Failed to load predictions."
    assert snapshot.logs.ok


@pytest.mark.asyncio
async def test_slow_source_does_not_block_others() -> None:
    order: list[str] = []

    async def slow() -> str:
        await asyncio.sleep(0.02)
        order.append("slow")
        return "slow"

    async def fast() -> str:
        order.append("fast")
        return "fast"

    snapshot = await aggregate({"slow": slow, "fast": fast})

    assert order == ["fast", "slow"]
    assert snapshot["slow"].data == "slow"
    assert snapshot["fast"].data == "fast"
    assert snapshot.errors == {}


@pytest.mark.asyncio
async def test_envelope_without_message_uses_error_field() -> None:
    async def source() -> ActionResult[Any]:
        return ActionResult(is_success=False, message="", error="db locked")

    snapshot = await aggregate({"logs": source})

    assert snapshot.logs.error == "db locked"


@pytest.mark.asyncio
async def test_empty_data_without_error() -> None:
    async def source() -> ActionResult[Any]:
        return ActionResult.ok("nothing yet")

    snapshot = await aggregate({"positions": source})

    assert snapshot.positions.data is None
    assert snapshot.positions.error is None
    assert "positions" in snapshot
    assert snapshot.positions.to_dict() == {"data": None, "error": None}
