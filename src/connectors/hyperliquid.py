"""Async Hyperliquid REST client."""

from __future__ import annotations

import asyncio
import json
import time
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Any

import httpx
import structlog

from src.config.settings import Settings
from src.connectors.base import OrderSigner
from src.errors import ExchangeError
from src.models import OrderResult, TradeDirection, TradeOrderRequest
from src.monitoring.metrics import Metrics

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
MAX_PRICE_SIG_FIGS = 5
MAX_PERP_DECIMALS = 6


def symbol_to_coin(symbol: str) -> str:
    """Map a UI symbol such as ``BTC-PERP`` to the exchange coin name ``BTC``."""
    coin = symbol.strip().upper()
    for suffix in ("-PERP", "-USD", "/USD", "-USDC"):
        if coin.endswith(suffix):
            return coin[: -len(suffix)]
    return coin


class HyperliquidRestClient:
    """Hyperliquid perpetuals client for the info and exchange endpoints."""

    def __init__(
        self,
        settings: Settings,
        signer: OrderSigner | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.base_url = settings.hyperliquid_base_url
        self.account_address = settings.hyperliquid_account_address
        self.signer = signer
        self.retry_attempts = settings.hyperliquid.retry_attempts
        self.slippage = Decimal(settings.hyperliquid.market_slippage_bps) / Decimal(10_000)
        self.http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.hyperliquid.request_timeout_sec,
            transport=transport,
        )
        self._asset_meta: dict[str, tuple[int, int]] | None = None
        self.metrics: Metrics | None = None
        self.log = structlog.get_logger(__name__)

    def set_metrics(self, metrics: Metrics) -> None:
        self.metrics = metrics

    async def close(self) -> None:
        await self.http.aclose()

    async def check_api_config(self) -> bool:
        """True when an account address and an order signer are available."""
        return bool(self.account_address) and self.signer is not None

    async def fetch_account_info(self) -> dict[str, Any]:
        return await self._clearinghouse_state()

    async def fetch_positions(self) -> list[dict[str, Any]]:
        state = await self._clearinghouse_state()
        positions = state.get("assetPositions") or []
        open_count = sum(
            1 for p in positions if float((p.get("position") or {}).get("szi") or 0) != 0
        )
        self.log.debug("positions_fetched", total=len(positions), open=open_count)
        return positions

    async def fetch_current_price(self, symbol: str) -> dict[str, Any]:
        coin = symbol_to_coin(symbol)
        mids = await self._info({"type": "allMids"})
        if coin not in mids:
            raise ExchangeError(f"Asset {coin} not found")
        return {"symbol": symbol, "price": str(mids[coin])}

    async def place_market_order(self, request: TradeOrderRequest) -> OrderResult:
        """Place an IOC limit order priced through the mid by the configured slippage.

        Leverage on Hyperliquid is an account setting per asset; the request's
        leverage is only used for estimates.
        """
        if not await self.check_api_config():
            raise ExchangeError("Hyperliquid API secret not configured or invalid.")
        coin = symbol_to_coin(request.symbol)
        asset_index, sz_decimals = await self._asset(coin)
        quote = await self.fetch_current_price(request.symbol)
        mid = Decimal(quote["price"])
        is_buy = request.direction == TradeDirection.LONG
        limit_px = mid * (1 + self.slippage) if is_buy else mid * (1 - self.slippage)
        size = Decimal(request.size).quantize(Decimal(1).scaleb(-sz_decimals), rounding=ROUND_DOWN)
        if size <= 0:
            raise ExchangeError(f"Order size rounds to zero at {sz_decimals} decimals")

        action = {
            "type": "order",
            "orders": [
                {
                    "a": asset_index,
                    "b": is_buy,
                    "p": format_price(limit_px, sz_decimals),
                    "s": _to_wire(size),
                    "r": False,
                    "t": {"limit": {"tif": "Ioc"}},
                }
            ],
            "grouping": "na",
        }
        signer = self.signer
        if signer is None:
            raise ExchangeError("Hyperliquid API secret not configured or invalid.")
        nonce = int(time.time() * 1000)
        signature = await signer(action, nonce)
        self.log.info(
            "order_submitting",
            coin=coin,
            is_buy=is_buy,
            size=str(size),
            limit_px=action["orders"][0]["p"],
        )
        response = await self._post(
            "/exchange",
            {"action": action, "nonce": nonce, "signature": signature},
            retry_network=False,
        )
        return _parse_order_response(response)

    async def _clearinghouse_state(self) -> dict[str, Any]:
        if not self.account_address:
            raise ExchangeError("Hyperliquid account address not configured.")
        return await self._info({"type": "clearinghouseState", "user": self.account_address})

    async def _asset(self, coin: str) -> tuple[int, int]:
        if self._asset_meta is None:
            meta = await self._info({"type": "meta"})
            self._asset_meta = {
                asset["name"].upper(): (index, int(asset.get("szDecimals", 0)))
                for index, asset in enumerate(meta.get("universe", []))
            }
        if coin not in self._asset_meta:
            raise ExchangeError(f"Asset {coin} not found")
        return self._asset_meta[coin]

    async def _info(self, payload: dict[str, Any]) -> Any:
        return await self._post("/info", payload)

    async def _post(
        self,
        path: str,
        payload: dict[str, Any],
        retry_network: bool = True,
    ) -> Any:
        monitoring = self.settings.monitoring
        request_type = payload.get("type") or (payload.get("action") or {}).get("type")
        for attempt in range(self.retry_attempts):
            start = time.perf_counter()
            try:
                if monitoring.log_http:
                    self.log.info(
                        "rest_request",
                        path=path,
                        request_type=request_type,
                        attempt=attempt + 1,
                    )
                response = await self.http.post(path, json=payload)
                latency_ms = (time.perf_counter() - start) * 1000
                self._observe(latency_ms)
                if response.status_code in RETRYABLE_STATUS and attempt + 1 < self.retry_attempts:
                    self.log.warning(
                        "rest_http_error_retrying",
                        path=path,
                        status_code=response.status_code,
                        latency_ms=round(latency_ms, 2),
                    )
                    await asyncio.sleep(2**attempt)
                    continue
                response.raise_for_status()
                data = response.json()
                if monitoring.log_http:
                    entry: dict[str, Any] = {
                        "path": path,
                        "status_code": response.status_code,
                        "latency_ms": round(latency_ms, 2),
                    }
                    if monitoring.log_http_responses and monitoring.log_http_max_body_chars > 0:
                        entry["response_preview"] = _preview_json(
                            data, monitoring.log_http_max_body_chars
                        )
                    self.log.info("rest_response", **entry)
                return data
            except httpx.HTTPStatusError as exc:
                self._error()
                self.log.error(
                    "rest_http_error",
                    path=path,
                    status_code=exc.response.status_code,
                    error=_truncate(exc.response.text, monitoring.log_http_max_body_chars),
                )
                raise ExchangeError(
                    f"Hyperliquid API returned HTTP {exc.response.status_code}"
                ) from exc
            except httpx.RequestError as exc:
                self._error()
                if not retry_network or attempt + 1 >= self.retry_attempts:
                    self.log.error("rest_request_error", path=path, error=str(exc))
                    raise ExchangeError(f"Network error contacting Hyperliquid: {exc}") from exc
                self.log.warning(
                    "rest_request_error_retrying", path=path, attempt=attempt + 1, error=str(exc)
                )
                await asyncio.sleep(2**attempt)
        raise ExchangeError(f"Hyperliquid request to {path} failed after retries")

    def _observe(self, latency_ms: float) -> None:
        if self.metrics:
            self.metrics.rest_request_latency_ms.labels(service="hyperliquid").observe(latency_ms)

    def _error(self) -> None:
        if self.metrics:
            self.metrics.rest_error_total.labels(service="hyperliquid").inc()


def format_price(price: Decimal, sz_decimals: int) -> str:
    """Round to 5 significant figures and at most ``6 - szDecimals`` decimals."""
    if price <= 0:
        raise ExchangeError("Computed order price is not positive")
    max_decimals = max(MAX_PERP_DECIMALS - sz_decimals, 0)
    if price >= Decimal(10) ** MAX_PRICE_SIG_FIGS:
        rounded = price.quantize(Decimal(1), rounding=ROUND_HALF_UP)
    else:
        integer_digits = price.adjusted() + 1
        sig_decimals = max(MAX_PRICE_SIG_FIGS - integer_digits, 0)
        rounded = price.quantize(
            Decimal(1).scaleb(-min(sig_decimals, max_decimals)), rounding=ROUND_HALF_UP
        )
    return _to_wire(rounded)


def _to_wire(value: Decimal) -> str:
    text = format(value.normalize(), "f")
    return text


def _parse_order_response(response: Any) -> OrderResult:
    if not isinstance(response, dict):
        raise ExchangeError(f"Unexpected order response: {response!r}")
    if response.get("status") != "ok":
        raise ExchangeError(str(response.get("response") or "Order rejected"))
    statuses = (((response.get("response") or {}).get("data") or {}).get("statuses")) or []
    if not statuses:
        raise ExchangeError("Order response contained no statuses")
    status = statuses[0]
    if "error" in status:
        raise ExchangeError(str(status["error"]))
    if "filled" in status:
        filled = status["filled"]
        return OrderResult(
            order_id=str(filled["oid"]),
            status="filled",
            filled_size=Decimal(str(filled.get("totalSz", "0"))),
            average_price=Decimal(str(filled["avgPx"])) if filled.get("avgPx") else None,
        )
    if "resting" in status:
        return OrderResult(order_id=str(status["resting"]["oid"]), status="resting")
    raise ExchangeError(f"Unrecognized order status: {status!r}")


def _preview_json(data: Any, max_chars: int) -> str:
    try:
        raw = json.dumps(data, ensure_ascii=True, default=str)
    except TypeError:
        raw = str(data)
    return _truncate(raw, max_chars)


def _truncate(text: str, max_chars: int) -> str:
    if max_chars <= 0 or len(text) <= max_chars:
        return text
    return text[: max_chars - 3] + "..."
