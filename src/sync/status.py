"""Sticky connectivity status derived from a feed's fetch state."""

from __future__ import annotations

from typing import Any, Callable

import structlog

from src.models import ConnectionStatus, FetchState
from src.monitoring.metrics import Metrics
from src.sync.fetcher import PeriodicFetcher

StatusListener = Callable[[ConnectionStatus], None]


class StatusDeriver:
    """
    Map ``FetchState`` updates onto ``idle/connecting/connected/error``.

    Until the feed has succeeded once, loading shows as ``connecting``. After
    that, background refreshes keep the indicator on ``connected`` and only a
    failure moves it, to ``error``.
    """

    def __init__(self, name: str = "feed", metrics: Metrics | None = None) -> None:
        self.name = name
        self.status = ConnectionStatus.IDLE
        self.ever_succeeded = False
        self.metrics = metrics
        self._listeners: list[StatusListener] = []
        self.log = structlog.get_logger(__name__).bind(feed=name)

    def attach(self, fetcher: PeriodicFetcher[Any]) -> "StatusDeriver":
        fetcher.subscribe(self.update)
        return self

    def on_change(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def update(self, state: FetchState[Any]) -> ConnectionStatus:
        if state.data is not None and state.error is None:
            self.ever_succeeded = True

        if self.ever_succeeded:
            next_status = ConnectionStatus.ERROR if state.error else ConnectionStatus.CONNECTED
        elif state.is_loading:
            next_status = ConnectionStatus.CONNECTING
        elif state.error:
            next_status = ConnectionStatus.ERROR
        elif state.data is not None:
            next_status = ConnectionStatus.CONNECTED
        else:
            next_status = ConnectionStatus.IDLE

        if next_status is not self.status:
            self.log.info(
                "status_changed",
                previous=self.status.value,
                status=next_status.value,
                error=state.error,
            )
            self.status = next_status
            if self.metrics:
                self.metrics.set_connection_status(self.name, next_status)
            for listener in self._listeners:
                listener(next_status)
        return self.status
