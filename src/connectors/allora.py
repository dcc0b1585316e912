"""Async client for Allora network price predictions."""

from __future__ import annotations

import asyncio
import math
import time
from typing import Any

import httpx
import structlog

from src.config.settings import Settings
from src.errors import ExchangeError
from src.models import Prediction
from src.monitoring.metrics import Metrics


class AlloraClient:
    """Fetches price inferences for the configured token, one request per timeframe."""

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.config = settings.allora
        self.api_key = settings.allora_api_key
        self.http = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.request_timeout_sec,
            headers={"x-api-key": self.api_key} if self.api_key else None,
            transport=transport,
        )
        self.metrics: Metrics | None = None
        self.log = structlog.get_logger(__name__)

    def set_metrics(self, metrics: Metrics) -> None:
        self.metrics = metrics

    async def close(self) -> None:
        await self.http.aclose()

    async def fetch_predictions(self, timeframes: list[str] | None = None) -> list[Prediction]:
        """Fetch every timeframe concurrently; any failure fails the whole call."""
        if not self.api_key:
            raise ExchangeError("ALLORA_API_KEY environment variable is not set.")
        wanted = list(self.config.timeframes if timeframes is None else timeframes)
        results = await asyncio.gather(
            *(self._fetch_timeframe(tf) for tf in wanted), return_exceptions=True
        )
        predictions: list[Prediction] = []
        failures: list[str] = []
        for timeframe, result in zip(wanted, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                message = getattr(result, "message", None) or str(result)
                failures.append(f"{timeframe}: {message}")
            else:
                predictions.append(result)
        if failures:
            self.log.warning("allora_predictions_partial_failure", failures=failures)
            raise ExchangeError(f"Failed to fetch some Allora predictions: {'; '.join(failures)}")
        if not predictions:
            raise ExchangeError("No valid prediction data could be fetched.")
        self.log.debug(
            "allora_predictions_fetched",
            token=self.config.token,
            timeframes=[p.timeframe for p in predictions],
        )
        return predictions

    async def _fetch_timeframe(self, timeframe: str) -> Prediction:
        path = (
            f"/v2/allora/consumer/price/{self.config.chain_slug}/"
            f"{self.config.token}/{timeframe}"
        )
        start = time.perf_counter()
        try:
            response = await self.http.get(path)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            self._error()
            raise ExchangeError(
                f"Allora API returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.RequestError as exc:
            self._error()
            raise ExchangeError(f"Network error contacting Allora: {exc}") from exc
        except ValueError as exc:
            self._error()
            raise ExchangeError(f"Allora returned invalid JSON for {timeframe}") from exc
        finally:
            if self.metrics:
                self.metrics.rest_request_latency_ms.labels(service="allora").observe(
                    (time.perf_counter() - start) * 1000
                )
        if self.settings.monitoring.log_http:
            self.log.info("rest_response", service="allora", path=path, timeframe=timeframe)
        return parse_inference(payload, timeframe)

    def _error(self) -> None:
        if self.metrics:
            self.metrics.rest_error_total.labels(service="allora").inc()


def parse_inference(payload: Any, timeframe: str) -> Prediction:
    """Parse an Allora consumer response into a ``Prediction``."""
    data = payload.get("data", payload) if isinstance(payload, dict) else None
    inference = data.get("inference_data") if isinstance(data, dict) else None
    if not isinstance(inference, dict):
        raise ExchangeError(f"Incomplete inference data received for {timeframe} timeframe.")
    raw_price = inference.get("network_inference_normalized") or inference.get(
        "network_inference"
    )
    topic_id = inference.get("topic_id")
    timestamp = inference.get("timestamp")
    if not raw_price or not topic_id or timestamp is None:
        raise ExchangeError(f"Incomplete inference data received for {timeframe} timeframe.")
    try:
        price = float(raw_price)
        parsed_topic = int(topic_id)
        timestamp_ms = int(float(timestamp) * 1000)
    except (TypeError, ValueError) as exc:
        raise ExchangeError(f"Unparseable inference data for {timeframe} timeframe.") from exc
    if not math.isfinite(price):
        raise ExchangeError(f"Unparseable inference data for {timeframe} timeframe.")

    return Prediction(
        topic_id=parsed_topic,
        price=price,
        timestamp=timestamp_ms,
        timeframe=timeframe,
        confidence_interval_values=_float_list(inference.get("confidence_interval_values")),
        confidence_interval_percentiles=_str_list(
            inference.get("confidence_interval_percentiles")
        ),
    )


def _float_list(values: Any) -> list[float] | None:
    if not isinstance(values, list):
        return None
    try:
        return [float(v) for v in values]
    except (TypeError, ValueError):
        return None


def _str_list(values: Any) -> list[str] | None:
    if not isinstance(values, list):
        return None
    return [str(v) for v in values]
