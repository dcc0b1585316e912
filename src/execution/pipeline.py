"""Trade submission: validate, quote, place, and always record the attempt."""

from __future__ import annotations

import asyncio
import time
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import structlog

from src.config.preferences import PreferencesStore
from src.config.settings import TradingConfig
from src.connectors.base import Exchange
from src.errors import CockpitError, ExchangeError, UnknownError, ValidationError
from src.models import (
    ActionResult,
    OrderResult,
    RiskEstimate,
    TradeDirection,
    TradeOrderRequest,
    TradeStatus,
    TradeSubmission,
    to_decimal,
)
from src.risk.calculator import RiskCalculator, is_submittable
from src.storage.templates import TemplateStore
from src.storage.trade_log import TradeLogStore

if TYPE_CHECKING:
    from src.monitoring.metrics import Metrics

# Stored in place of a missing symbol or direction so rejected attempts still log.
UNKNOWN_FIELD = "UNKNOWN"


class TradeSubmissionPipeline:
    """Run one trade attempt end to end.

    ``submit`` never raises (cancellation aside). The returned envelope's
    ``data`` is always a ``TradeSubmission``, so callers can see both the
    trade outcome and whether the audit write went through.
    """

    def __init__(
        self,
        exchange: Exchange,
        trade_log: TradeLogStore,
        trading: TradingConfig | None = None,
        preferences: PreferencesStore | None = None,
        templates: TemplateStore | None = None,
    ) -> None:
        self.exchange = exchange
        self.trade_log = trade_log
        self.trading = trading or TradingConfig()
        self.preferences = preferences
        self.templates = templates
        self._metrics: Metrics | None = None
        self.log = structlog.get_logger(__name__)

    def set_metrics(self, metrics: Metrics) -> None:
        self._metrics = metrics

    async def submit(
        self, request: TradeOrderRequest | dict[str, Any]
    ) -> ActionResult[TradeSubmission]:
        if isinstance(request, dict):
            request = TradeOrderRequest.from_dict(request)
        start = time.perf_counter()
        log = self.log.bind(
            symbol=request.symbol,
            direction=_direction_text(request.direction),
            size=str(request.size),
            leverage=str(request.leverage),
            template=request.template,
        )
        extra: dict[str, Any] = {}
        risk: RiskEstimate | None = None
        order: OrderResult | None = None
        entry_price = Decimal(0)
        failure: CockpitError | None = None

        try:
            await self._validate(request, extra)
            if not await self.exchange.check_api_config():
                raise ExchangeError("Hyperliquid API not configured or invalid.")
            quote_price = await self._quote(request.symbol)
            if quote_price > 0:
                risk = RiskCalculator.compute(
                    request.size, request.leverage, quote_price, request.direction
                )
                extra["quote_price"] = str(quote_price)
            order = await self._place(request)
            if order.average_price is not None and order.average_price > 0:
                entry_price = order.average_price
            else:
                entry_price = quote_price
            extra["order_status"] = order.status
        except asyncio.CancelledError:
            raise
        except CockpitError as exc:
            failure = exc
        except Exception as exc:
            log.exception("trade_submission_unexpected_error", error=str(exc))
            failure = UnknownError(
                f"Unexpected error during trade submission: {str(exc) or exc.__class__.__name__}"
            )

        status = TradeStatus.FAILED if failure else TradeStatus.SUCCESS
        error_message = failure.message if failure else None
        order_id = order.order_id if order and not failure else None
        if failure:
            entry_price = Decimal(0)

        log_result = await self.trade_log.create(
            {
                "symbol": request.symbol.strip() or UNKNOWN_FIELD,
                "direction": _direction_text(request.direction).strip() or UNKNOWN_FIELD,
                "size": float(request.size),
                "entry_price": float(entry_price),
                "status": status,
                "hyperliquid_order_id": order_id,
                "error_message": error_message,
            }
        )
        log_error = None
        if not log_result.is_success:
            log_error = log_result.message
            log.error("trade_log_write_failed", error=log_result.error, trade_status=status.value)
            if self._metrics:
                self._metrics.trade_log_write_failures_total.inc()
        if self._metrics:
            self._metrics.trade_attempts_total.labels(status=status.value).inc()

        submission = TradeSubmission(
            request=request,
            status=status,
            order_id=order_id,
            entry_price=entry_price,
            risk=risk,
            error_message=error_message,
            log_entry=log_result.data if log_result.is_success else None,
            log_error=log_error,
            extra=extra,
        )
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        if failure:
            log.warning(
                "trade_submission_failed",
                category=failure.category,
                error=error_message,
                logged=log_error is None,
                latency_ms=latency_ms,
            )
            return ActionResult.fail(
                f"Trade execution failed: {error_message}",
                error=error_message,
                data=submission,
            )
        log.info(
            "trade_submitted",
            order_id=order_id,
            entry_price=str(entry_price),
            order_status=extra.get("order_status"),
            logged=log_error is None,
            latency_ms=latency_ms,
        )
        message = f"Trade executed successfully. Order ID: {order_id}."
        if log_error:
            message += f" Trade log entry was not saved: {log_error}"
        return ActionResult.ok(message, submission)

    async def _validate(self, request: TradeOrderRequest, extra: dict[str, Any]) -> None:
        if self.preferences is not None and not self.preferences.load().trade_switch_enabled:
            raise ValidationError("Trading is disabled by the master trade switch.")
        if not request.symbol.strip():
            raise ValidationError("Symbol is required.")
        if not isinstance(request.direction, TradeDirection):
            raise ValidationError(f"Invalid trade direction: {request.direction or 'missing'}.")
        if not is_submittable(request.size):
            raise ValidationError("Trade size must be greater than zero.")
        leverage = to_decimal(request.leverage)
        low = Decimal(str(self.trading.min_leverage))
        high = Decimal(str(self.trading.max_leverage))
        if leverage < low or leverage > high:
            raise ValidationError(
                f"Leverage must be between {low.normalize():f} and {high.normalize():f}."
            )
        if request.template and self.templates is not None:
            template = await self.templates.get(request.template)
            if template is None:
                template = await self.templates.find_by_name(request.template)
            if template is not None:
                extra["template"] = template.name
                self.log.info("trade_template_applied", template_id=template.id, name=template.name)
            else:
                self.log.warning("trade_template_unknown", template=request.template)

    async def _quote(self, symbol: str) -> Decimal:
        if not self.trading.quote_before_submit:
            return Decimal(0)
        try:
            quote = await self.exchange.fetch_current_price(symbol)
        except asyncio.CancelledError:
            raise
        except CockpitError:
            raise
        except Exception as exc:
            raise ExchangeError(f"Failed to fetch current price: {exc}") from exc
        price = to_decimal((quote or {}).get("price"))
        if price <= 0:
            raise ExchangeError(f"No valid price available for {symbol}.")
        return price

    async def _place(self, request: TradeOrderRequest) -> OrderResult:
        try:
            result = await self.exchange.place_market_order(request)
        except asyncio.CancelledError:
            raise
        except ExchangeError:
            raise
        except Exception as exc:
            raise ExchangeError(str(exc) or exc.__class__.__name__) from exc
        if isinstance(result, OrderResult):
            return result
        if isinstance(result, dict) and result.get("order_id"):
            return OrderResult(
                order_id=str(result["order_id"]),
                status=str(result.get("status") or "filled"),
                average_price=to_decimal(result.get("average_price")) or None,
            )
        raise ExchangeError("Exchange returned no order id.")


def _direction_text(direction: Any) -> str:
    return str(getattr(direction, "value", direction) or "")
