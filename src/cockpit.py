"""Cockpit service: wires connectors, stores, feeds and the trade pipeline."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

import structlog

from src.config.preferences import AppPreferences, PreferencesStore
from src.config.settings import Settings
from src.connectors.allora import AlloraClient
from src.connectors.base import Exchange, OrderSigner, PredictionSource
from src.connectors.hyperliquid import HyperliquidRestClient
from src.execution.pipeline import TradeSubmissionPipeline
from src.models import (
    ActionResult,
    ConnectionStatus,
    FetchState,
    Prediction,
    RiskEstimate,
    TradeDirection,
    TradeLogEntry,
    TradeOrderRequest,
    TradeSubmission,
    to_decimal,
)
from src.monitoring.metrics import Metrics
from src.risk.calculator import RiskCalculator, suggest_direction
from src.storage.templates import TemplateStore
from src.storage.trade_log import (
    InMemoryTradeLogBackend,
    JsonlTradeLogBackend,
    TradeLogStore,
)
from src.sync.aggregator import AggregatedSnapshot, aggregate
from src.sync.fetcher import PeriodicFetcher
from src.sync.status import StatusDeriver

log = structlog.get_logger(__name__)

ACCOUNT_FEEDS = ("account_info", "positions", "price")


class Cockpit:
    """Envelope-returning facade used by the operator API and the runtime."""

    def __init__(
        self,
        settings: Settings,
        exchange: Exchange,
        predictions: PredictionSource,
        trade_log: TradeLogStore,
        templates: TemplateStore,
        preferences: PreferencesStore,
        metrics: Metrics | None = None,
    ) -> None:
        self.settings = settings
        self.exchange = exchange
        self.predictions = predictions
        self.trade_log = trade_log
        self.templates = templates
        self.preferences = preferences
        self.metrics = metrics
        self.pipeline = TradeSubmissionPipeline(
            exchange=exchange,
            trade_log=trade_log,
            trading=settings.trading,
            preferences=preferences,
            templates=templates,
        )
        if metrics:
            self.pipeline.set_metrics(metrics)
        self.fetchers: dict[str, PeriodicFetcher[Any]] = {}
        self.derivers: dict[str, StatusDeriver] = {}
        self.snapshot: AggregatedSnapshot | None = None
        self._refresh_tasks: set[asyncio.Task[None]] = set()

    async def fetch_account_info(self) -> ActionResult[dict[str, Any]]:
        return await _envelope(
            "account_info",
            self.exchange.fetch_account_info,
            "Successfully fetched account info.",
            "Failed to fetch account info",
        )

    async def fetch_positions(self) -> ActionResult[list[dict[str, Any]]]:
        return await _envelope(
            "positions",
            self.exchange.fetch_positions,
            "Successfully fetched positions.",
            "Failed to fetch positions",
        )

    async def fetch_predictions(self) -> ActionResult[list[Prediction]]:
        return await _envelope(
            "predictions",
            self.predictions.fetch_predictions,
            "Successfully fetched Allora predictions.",
            "Failed to fetch Allora predictions",
        )

    async def fetch_current_price(self, symbol: str | None = None) -> ActionResult[dict[str, Any]]:
        target = symbol or self.settings.trading.default_symbol
        return await _envelope(
            "price",
            lambda: self.exchange.fetch_current_price(target),
            f"Successfully fetched current price for {target}.",
            f"Failed to fetch current price for {target}",
        )

    async def check_api_config(self) -> ActionResult[bool]:
        result = await _envelope(
            "api_config",
            self.exchange.check_api_config,
            "Hyperliquid API configuration checked.",
            "Failed to check Hyperliquid API configuration",
        )
        if result.is_success and not result.data:
            return ActionResult.fail(
                "Hyperliquid API secret not configured or invalid.", data=False
            )
        return result

    async def list_trade_logs(self, limit: Any = 50) -> ActionResult[list[TradeLogEntry]]:
        return await self.trade_log.list(limit)

    async def submit_trade(
        self, request: TradeOrderRequest | dict[str, Any]
    ) -> ActionResult[TradeSubmission]:
        result = await self.pipeline.submit(request)
        if result.is_success:
            # Balances and positions changed; refresh without delaying the result.
            self._schedule_refresh(*ACCOUNT_FEEDS)
        return result

    async def estimate_risk(
        self,
        size: Any,
        leverage: Any,
        direction: TradeDirection | str | None = None,
        price: Any = None,
        prediction_price: Any = None,
    ) -> ActionResult[dict[str, Any]]:
        """Estimate margin and liquidation price, quoting the market when no price is given."""
        current = to_decimal(price)
        if current <= 0:
            quote = await self.fetch_current_price()
            if not quote.is_success:
                return ActionResult.fail(quote.message, error=quote.error)
            current = to_decimal((quote.data or {}).get("price"))
        suggested = (
            suggest_direction(prediction_price, current) if prediction_price is not None else None
        )
        side = direction or suggested
        estimate = (
            RiskCalculator.compute(size, leverage, current, side)
            if side is not None
            else RiskEstimate.invalid()
        )
        data = {
            "price": current,
            "direction": side,
            "suggested_direction": suggested,
            "estimate": estimate,
        }
        if not estimate.valid:
            return ActionResult.fail(
                "Size, leverage, price and direction are required for an estimate.",
                data=data,
            )
        return ActionResult.ok("Risk estimate computed.", data)

    async def load_initial_snapshot(self) -> AggregatedSnapshot:
        self.snapshot = await aggregate(
            {
                "account_info": self.fetch_account_info,
                "positions": self.fetch_positions,
                "predictions": self.fetch_predictions,
                "logs": self.list_trade_logs,
            }
        )
        return self.snapshot

    def start_feeds(
        self,
        preferences: AppPreferences | None = None,
        seed: dict[str, Any] | None = None,
    ) -> None:
        """Start one poller per feed, seeded from ``seed`` or the initial snapshot."""
        if self.fetchers:
            raise RuntimeError("feeds already started")
        prefs = preferences or self.preferences.load()
        seed = seed or {}
        sources: dict[str, tuple[Callable[[], Awaitable[ActionResult[Any]]], int]] = {
            "account_info": (self.fetch_account_info, prefs.account_refresh_interval),
            "positions": (self.fetch_positions, prefs.account_refresh_interval),
            "price": (self.fetch_current_price, prefs.account_refresh_interval),
            "predictions": (self.fetch_predictions, prefs.prediction_refresh_interval),
        }
        for name, (fetch_fn, interval_ms) in sources.items():
            initial = seed.get(name)
            if initial is None and self.snapshot is not None and name in self.snapshot:
                initial = self.snapshot[name].data
            fetcher: PeriodicFetcher[Any] = PeriodicFetcher(
                name, initial_data=initial, metrics=self.metrics
            )
            deriver = StatusDeriver(name, metrics=self.metrics).attach(fetcher)
            deriver.update(fetcher.state)
            fetcher.start(fetch_fn, interval_ms)
            self.fetchers[name] = fetcher
            self.derivers[name] = deriver
        log.info(
            "feeds_started",
            feeds=sorted(self.fetchers),
            account_interval_ms=prefs.account_refresh_interval,
            prediction_interval_ms=prefs.prediction_refresh_interval,
        )

    async def stop_feeds(self) -> None:
        fetchers = list(self.fetchers.values())
        self.fetchers = {}
        refreshes = list(self._refresh_tasks)
        for task in refreshes:
            task.cancel()
        await asyncio.gather(*refreshes, return_exceptions=True)
        await asyncio.gather(*(f.aclose() for f in fetchers))
        if fetchers:
            log.info("feeds_stopped", count=len(fetchers))

    def feed_state(self, name: str) -> FetchState[Any] | None:
        fetcher = self.fetchers.get(name)
        return fetcher.state if fetcher else None

    def statuses(self) -> dict[str, dict[str, Any]]:
        report: dict[str, dict[str, Any]] = {}
        for name, deriver in self.derivers.items():
            fetcher = self.fetchers.get(name)
            state = fetcher.state if fetcher else FetchState()
            report[name] = {
                "status": deriver.status.value,
                "ever_succeeded": deriver.ever_succeeded,
                "is_loading": state.is_loading,
                "error": state.error,
                "running": bool(fetcher and fetcher.running),
            }
        return report

    def overall_status(self) -> ConnectionStatus:
        statuses = {d.status for d in self.derivers.values()}
        for status in (
            ConnectionStatus.ERROR,
            ConnectionStatus.CONNECTING,
            ConnectionStatus.CONNECTED,
        ):
            if status in statuses:
                return status
        return ConnectionStatus.IDLE

    async def update_preferences(self, **changes: Any) -> AppPreferences:
        """Persist new preferences; running feeds restart when an interval changed."""
        updated = self.preferences.update(**changes)
        interval_keys = {"account_refresh_interval", "prediction_refresh_interval"}
        if self.fetchers and interval_keys & {k for k, v in changes.items() if v is not None}:
            seed = {name: f.state.data for name, f in self.fetchers.items()}
            await self.stop_feeds()
            self.start_feeds(updated, seed=seed)
        return updated

    async def close(self) -> None:
        await self.stop_feeds()
        for client in (self.exchange, self.predictions):
            closer = getattr(client, "close", None)
            if closer is not None:
                await closer()

    def _schedule_refresh(self, *names: str) -> None:
        fetchers = [self.fetchers[n] for n in names if n in self.fetchers]
        if not fetchers:
            return
        task = asyncio.get_running_loop().create_task(self._refresh(fetchers))
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    async def _refresh(self, fetchers: list[PeriodicFetcher[Any]]) -> None:
        results = await asyncio.gather(*(f.refresh() for f in fetchers), return_exceptions=True)
        for fetcher, result in zip(fetchers, results):
            if isinstance(result, Exception):
                log.warning("feed_refresh_failed", feed=fetcher.name, error=str(result))


async def _envelope(
    name: str,
    call: Callable[[], Awaitable[Any]],
    success_message: str,
    failure_prefix: str,
) -> ActionResult[Any]:
    try:
        data = await call()
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
        log.warning("action_failed", action=name, error=message)
        return ActionResult.fail(f"{failure_prefix}: {message}", error=message)
    return ActionResult.ok(success_message, data)


def build_cockpit(
    settings: Settings,
    signer: OrderSigner | None = None,
    metrics: Metrics | None = None,
) -> Cockpit:
    """Build a cockpit from settings using the Hyperliquid and Allora clients."""
    exchange = HyperliquidRestClient(settings, signer=signer)
    predictions = AlloraClient(settings)
    if metrics:
        exchange.set_metrics(metrics)
        predictions.set_metrics(metrics)
    storage = settings.storage
    if storage.backend == "memory":
        backend: InMemoryTradeLogBackend | JsonlTradeLogBackend = InMemoryTradeLogBackend()
        templates = TemplateStore()
        preferences = PreferencesStore()
    else:
        backend = JsonlTradeLogBackend(storage.trade_log_path)
        templates = TemplateStore(storage.templates_path)
        preferences = PreferencesStore(storage.preferences_path)
    log.info(
        "cockpit_built",
        backend=storage.backend,
        exchange_url=settings.hyperliquid_base_url,
        signer_configured=signer is not None,
    )
    return Cockpit(
        settings=settings,
        exchange=exchange,
        predictions=predictions,
        trade_log=TradeLogStore(backend),
        templates=templates,
        preferences=preferences,
        metrics=metrics,
    )
