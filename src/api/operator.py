"""Operator API for inspecting feeds, estimating risk and submitting trades."""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel

from src.cockpit import Cockpit
from src.errors import ValidationError
from src.models import ActionResult, to_jsonable

log = structlog.get_logger(__name__)


class TradeRequestBody(BaseModel):
    symbol: str | None = None
    direction: str = ""
    size: Decimal = Decimal(0)
    leverage: Decimal | None = None
    template: str | None = None


class RiskRequestBody(BaseModel):
    size: Decimal
    leverage: Decimal
    direction: str | None = None
    price: Decimal | None = None
    prediction_price: Decimal | None = None


class PreferencesBody(BaseModel):
    prediction_refresh_interval: int | None = None
    account_refresh_interval: int | None = None
    alerts_enabled: bool | None = None
    trade_switch_enabled: bool | None = None


class TemplateBody(BaseModel):
    name: str = ""
    size: Decimal | None = None
    leverage: Decimal | None = None


def _envelope(result: ActionResult[Any]) -> dict[str, Any]:
    return result.to_dict()


def create_app(cockpit: Cockpit, run_feeds: bool = False) -> FastAPI:
    """Create the FastAPI application around a cockpit.

    With ``run_feeds`` the app loads the initial snapshot and starts the
    pollers on startup, and stops them (closing connectors) on shutdown.
    """
    started_at = {"time": time.time()}

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> Any:
        started_at["time"] = time.time()
        if run_feeds:
            snapshot = await cockpit.load_initial_snapshot()
            if snapshot.errors:
                log.warning("initial_snapshot_partial", errors=snapshot.errors)
            cockpit.start_feeds()
        try:
            yield
        finally:
            if run_feeds:
                await cockpit.close()

    app = FastAPI(
        title="Trading Cockpit Operator API",
        description="Account sync, risk estimates and audited trade submission",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.cockpit = cockpit

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Get service health."""
        settings = cockpit.settings
        prefs = cockpit.preferences.load()
        return {
            "status": "healthy",
            "uptime_sec": time.time() - started_at["time"],
            "connection": cockpit.overall_status().value,
            "testnet": settings.hyperliquid.use_testnet,
            "trade_switch_enabled": prefs.trade_switch_enabled,
            "api_port": settings.monitoring.api_port,
            "metrics_port": settings.monitoring.metrics_port,
        }

    @app.get("/status")
    async def status() -> dict[str, Any]:
        """Get per-feed connectivity status."""
        return {"overall": cockpit.overall_status().value, "feeds": cockpit.statuses()}

    @app.get("/snapshot")
    async def snapshot() -> dict[str, Any]:
        """Get the latest data of every feed, falling back to the initial snapshot."""
        initial = cockpit.snapshot.outcomes if cockpit.snapshot else {}
        feeds: dict[str, Any] = {}
        for name in ("account_info", "positions", "price", "predictions", "logs"):
            state = cockpit.feed_state(name)
            if state is not None:
                feeds[name] = {
                    "data": to_jsonable(state.data),
                    "error": state.error,
                    "is_loading": state.is_loading,
                }
            elif name in initial:
                feeds[name] = {
                    "data": to_jsonable(initial[name].data),
                    "error": initial[name].error,
                    "is_loading": False,
                }
        return {
            "feeds": feeds,
            "initial_errors": cockpit.snapshot.errors if cockpit.snapshot else {},
        }

    @app.post("/risk")
    async def risk(body: RiskRequestBody) -> dict[str, Any]:
        """Estimate required margin and liquidation price."""
        result = await cockpit.estimate_risk(
            size=body.size,
            leverage=body.leverage,
            direction=body.direction.upper() if body.direction else None,
            price=body.price,
            prediction_price=body.prediction_price,
        )
        return _envelope(result)

    @app.get("/trades")
    async def trades(
        limit: int = Query(default=50, description="Number of recent trade log entries"),
    ) -> dict[str, Any]:
        """Get recent trade log entries, newest first."""
        return _envelope(await cockpit.list_trade_logs(limit))

    @app.post("/trades")
    async def submit_trade(body: TradeRequestBody) -> dict[str, Any]:
        """Submit a market order; the attempt is logged whatever the outcome."""
        payload = body.model_dump()
        payload["symbol"] = body.symbol or cockpit.settings.trading.default_symbol
        if body.leverage is None:
            payload["leverage"] = cockpit.settings.trading.default_leverage
        return _envelope(await cockpit.submit_trade(payload))

    @app.get("/preferences")
    async def get_preferences() -> dict[str, Any]:
        return cockpit.preferences.load().model_dump()

    @app.put("/preferences")
    async def put_preferences(body: PreferencesBody) -> dict[str, Any]:
        try:
            updated = await cockpit.update_preferences(**body.model_dump(exclude_none=True))
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=exc.message) from exc
        return updated.model_dump()

    @app.get("/templates")
    async def list_templates() -> dict[str, Any]:
        return _envelope(await cockpit.templates.list())

    @app.post("/templates")
    async def create_template(body: TemplateBody) -> dict[str, Any]:
        return _envelope(await cockpit.templates.create(body.name, body.size, body.leverage))

    @app.put("/templates/{template_id}")
    async def update_template(template_id: str, body: TemplateBody) -> dict[str, Any]:
        result = await cockpit.templates.update(
            template_id,
            name=body.name or None,
            size=body.size,
            leverage=body.leverage,
        )
        return _envelope(result)

    @app.delete("/templates/{template_id}")
    async def delete_template(template_id: str) -> dict[str, Any]:
        return _envelope(await cockpit.templates.delete(template_id))

    @app.get("/")
    async def root() -> dict[str, Any]:
        """Root endpoint with API info."""
        return {
            "name": "Trading Cockpit Operator API",
            "version": "0.1.0",
            "endpoints": {
                "health": "GET /health",
                "status": "GET /status",
                "snapshot": "GET /snapshot",
                "risk": "POST /risk",
                "trades": "GET /trades?limit=N, POST /trades",
                "preferences": "GET /preferences, PUT /preferences",
                "templates": "GET/POST /templates, PUT/DELETE /templates/{id}",
            },
        }

    return app
