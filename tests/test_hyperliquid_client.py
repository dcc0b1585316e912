from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, Callable

import httpx
import pytest

from src.config.settings import Settings
from src.connectors.hyperliquid import HyperliquidRestClient, format_price, symbol_to_coin
from src.errors import ExchangeError
from src.models import TradeOrderRequest
from src.monitoring.metrics import Metrics

ACCOUNT = "0x00000000000000000000000000000000000000aa"

META = {
    "universe": [
        {"name": "ETH", "szDecimals": 4, "maxLeverage": 25},
        {"name": "BTC", "szDecimals": 5, "maxLeverage": 40},
    ]
}

STATE = {
    "marginSummary": {"accountValue": "1000.0", "totalMarginUsed": "60.0"},
    "withdrawable": "940.0",
    "assetPositions": [
        {"type": "oneWay", "position": {"coin": "BTC", "szi": "0.01", "entryPx": "60000.0"}},
        {"type": "oneWay", "position": {"coin": "ETH", "szi": "0.0", "entryPx": None}},
    ],
}


class ExchangeStub:
    def __init__(self, order_response: Any = None) -> None:
        self.requests: list[tuple[str, dict[str, Any]]] = []
        self.order_response = order_response or {
            "status": "ok",
            "response": {
                "type": "order",
                "data": {
                    "statuses": [{"filled": {"totalSz": "0.01", "avgPx": "60012.0", "oid": 9001}}]
                },
            },
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append((request.url.path, body))
        if request.url.path == "/exchange":
            return httpx.Response(200, json=self.order_response)
        kind = body["type"]
        if kind == "allMids":
            return httpx.Response(200, json={"BTC": "60000.0", "ETH": "3000.0"})
        if kind == "meta":
            return httpx.Response(200, json=META)
        if kind == "clearinghouseState":
            return httpx.Response(200, json=STATE)
        return httpx.Response(400, json={"error": "unknown type"})


async def _signer(action: dict[str, Any], nonce: int) -> dict[str, Any]:
    return {"r": "0x1", "s": "0x2", "v": 27}


def _client(
    handler: Callable[[httpx.Request], httpx.Response],
    signer: Any = _signer,
    account: str = ACCOUNT,
) -> HyperliquidRestClient:
    settings = Settings(hyperliquid_account_address=account)
    return HyperliquidRestClient(settings, signer=signer, transport=httpx.MockTransport(handler))


def _request(direction: str = "LONG", size: str = "0.01") -> TradeOrderRequest:
    return TradeOrderRequest.from_dict(
        {"symbol": "BTC-PERP", "direction": direction, "size": size, "leverage": 10}
    )


def test_symbol_to_coin() -> None:
    assert symbol_to_coin("BTC-PERP") == "BTC"
    assert symbol_to_coin("eth") == "ETH"


@pytest.mark.parametrize(
    ("price", "sz_decimals", "expected"),
    [
        (Decimal("61200"), 5, "61200"),
        (Decimal("61234.56"), 5, "61235"),
        (Decimal("1234.567"), 2, "1234.6"),
        (Decimal("0.123456789"), 0, "0.12346"),
        (Decimal("123456.7"), 0, "123457"),
        (Decimal("3.1415926"), 5, "3.1"),
    ],
)
def test_format_price(price: Decimal, sz_decimals: int, expected: str) -> None:
    assert format_price(price, sz_decimals) == expected


@pytest.mark.asyncio
async def test_fetch_current_price() -> None:
    client = _client(ExchangeStub())

    quote = await client.fetch_current_price("BTC-PERP")

    assert quote == {"symbol": "BTC-PERP", "price": "60000.0"}
    await client.close()


@pytest.mark.asyncio
async def test_unknown_coin_raises() -> None:
    client = _client(ExchangeStub())

    with pytest.raises(ExchangeError, match="DOGE"):
        await client.fetch_current_price("DOGE-PERP")
    await client.close()


@pytest.mark.asyncio
async def test_account_info_and_positions() -> None:
    stub = ExchangeStub()
    client = _client(stub)

    info = await client.fetch_account_info()
    positions = await client.fetch_positions()

    assert info["marginSummary"]["accountValue"] == "1000.0"
    assert len(positions) == 2
    assert stub.requests[0] == ("/info", {"type": "clearinghouseState", "user": ACCOUNT})
    await client.close()


@pytest.mark.asyncio
async def test_account_info_requires_address() -> None:
    client = _client(ExchangeStub(), account="")

    with pytest.raises(ExchangeError, match="account address"):
        await client.fetch_account_info()
    await client.close()


@pytest.mark.asyncio
async def test_check_api_config() -> None:
    configured = _client(ExchangeStub())
    no_signer = _client(ExchangeStub(), signer=None)
    no_account = _client(ExchangeStub(), account="")

    assert await configured.check_api_config()
    assert not await no_signer.check_api_config()
    assert not await no_account.check_api_config()
    for client in (configured, no_signer, no_account):
        await client.close()


@pytest.mark.asyncio
async def test_place_market_order_long() -> None:
    stub = ExchangeStub()
    client = _client(stub)

    result = await client.place_market_order(_request("LONG"))

    assert result.order_id == "9001"
    assert result.status == "filled"
    assert result.average_price == Decimal("60012.0")
    path, body = stub.requests[-1]
    assert path == "/exchange"
    order = body["action"]["orders"][0]
    assert order == {
        "a": 1,
        "b": True,
        "p": "61200",
        "s": "0.01",
        "r": False,
        "t": {"limit": {"tif": "Ioc"}},
    }
    assert body["action"]["grouping"] == "na"
    assert body["signature"] == {"r": "0x1", "s": "0x2", "v": 27}
    assert isinstance(body["nonce"], int)
    await client.close()


@pytest.mark.asyncio
async def test_place_market_order_short_prices_below_mid() -> None:
    stub = ExchangeStub()
    client = _client(stub)

    await client.place_market_order(_request("SHORT"))

    order = stub.requests[-1][1]["action"]["orders"][0]
    assert order["b"] is False
    assert order["p"] == "58800"
    await client.close()


@pytest.mark.asyncio
async def test_meta_is_cached() -> None:
    stub = ExchangeStub()
    client = _client(stub)

    await client.place_market_order(_request())
    await client.place_market_order(_request())

    meta_calls = [b for p, b in stub.requests if p == "/info" and b.get("type") == "meta"]
    assert len(meta_calls) == 1
    await client.close()


@pytest.mark.asyncio
async def test_resting_order() -> None:
    stub = ExchangeStub(
        {"status": "ok", "response": {"type": "order", "data": {"statuses": [{"resting": {"oid": 42}}]}}}
    )
    client = _client(stub)

    result = await client.place_market_order(_request())

    assert result.order_id == "42"
    assert result.status == "resting"
    assert result.average_price is None
    await client.close()


@pytest.mark.asyncio
async def test_order_status_error_raises() -> None:
    stub = ExchangeStub(
        {
            "status": "ok",
            "response": {
                "type": "order",
                "data": {"statuses": [{"error": "Insufficient margin to place order."}]},
            },
        }
    )
    client = _client(stub)

    with pytest.raises(ExchangeError, match="Insufficient margin"):
        await client.place_market_order(_request())
    await client.close()


@pytest.mark.asyncio
async def test_rejected_action_raises() -> None:
    client = _client(ExchangeStub({"status": "err", "response": "User or API Wallet does not exist."}))

    with pytest.raises(ExchangeError, match="does not exist"):
        await client.place_market_order(_request())
    await client.close()


@pytest.mark.asyncio
async def test_size_rounding_to_zero_is_rejected() -> None:
    stub = ExchangeStub()
    client = _client(stub)

    with pytest.raises(ExchangeError, match="rounds to zero"):
        await client.place_market_order(_request(size="0.000001"))
    assert all(path != "/exchange" for path, _ in stub.requests)
    await client.close()


@pytest.mark.asyncio
async def test_order_without_signer_is_rejected() -> None:
    stub = ExchangeStub()
    client = _client(stub, signer=None)

    with pytest.raises(ExchangeError):
        await client.place_market_order(_request())
    assert stub.requests == []
    await client.close()


class TrustingClient(HyperliquidRestClient):
    async def check_api_config(self) -> bool:
        return True


@pytest.mark.asyncio
async def test_missing_signer_never_posts_an_order() -> None:
    stub = ExchangeStub()
    client = TrustingClient(
        Settings(hyperliquid_account_address=ACCOUNT), signer=None, transport=httpx.MockTransport(stub)
    )

    with pytest.raises(ExchangeError, match="not configured"):
        await client.place_market_order(_request())
    assert all(path != "/exchange" for path, _ in stub.requests)
    await client.close()


@pytest.mark.asyncio
async def test_client_error_is_not_retried() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(422, text="Failed to deserialize the JSON body")

    metrics = Metrics()
    client = _client(handler)
    client.set_metrics(metrics)

    with pytest.raises(ExchangeError, match="HTTP 422"):
        await client.fetch_current_price("BTC-PERP")
    assert calls == 1
    assert metrics.registry.get_sample_value("rest_error_total", {"service": "hyperliquid"}) == 1
    await client.close()


@pytest.mark.asyncio
async def test_server_error_is_retried() -> None:
    responses = [httpx.Response(502), httpx.Response(200, json={"BTC": "61000"})]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    client = _client(handler)

    quote = await client.fetch_current_price("BTC-PERP")

    assert quote["price"] == "61000"
    assert responses == []
    await client.close()
