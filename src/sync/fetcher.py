"""Cancellable periodic polling over one async data source."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Generic, TypeVar

import structlog

from src.models import ActionResult, FetchState
from src.monitoring.metrics import Metrics

T = TypeVar("T")

FetchFn = Callable[[], Awaitable[Any]]
StateListener = Callable[[FetchState[Any]], Awaitable[None] | None]


class FetchFailed(Exception):
    """Raised internally when a fetch returns an unsuccessful envelope."""


class PollerHandle:
    """Disposal handle returned by ``PeriodicFetcher.start``."""

    def __init__(self, fetcher: "PeriodicFetcher[Any]") -> None:
        self._fetcher = fetcher

    @property
    def active(self) -> bool:
        return self._fetcher.running

    def dispose(self) -> None:
        self._fetcher.stop()


class PeriodicFetcher(Generic[T]):
    """
    Poll ``fetch_fn`` on an interval and keep a ``FetchState``.

    - Scheduled ticks never overlap: a tick that fires while a call is still
      pending is skipped.
    - Every request carries a sequence number; a response older than the
      last applied one is dropped.
    - A failure keeps the last good ``data`` and only sets ``error``.
    - After ``stop()`` no response touches the state.
    """

    def __init__(
        self,
        name: str,
        initial_data: T | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self.name = name
        self.state: FetchState[T] = FetchState(data=initial_data)
        self.metrics = metrics
        self._fetch_fn: FetchFn | None = None
        self._interval_sec: float | None = None
        self._timer_task: asyncio.Task[None] | None = None
        self._request_tasks: set[asyncio.Task[None]] = set()
        self._listeners: list[StateListener] = []
        self._next_sequence = 0
        self._applied_sequence = 0
        self._in_flight = 0
        self._stopped = False
        self.log = structlog.get_logger(__name__).bind(feed=name)

    @property
    def running(self) -> bool:
        return self._timer_task is not None and not self._stopped

    @property
    def in_flight(self) -> int:
        return self._in_flight

    def subscribe(self, listener: StateListener) -> None:
        """Register a callback invoked with every published state."""
        self._listeners.append(listener)

    def start(self, fetch_fn: FetchFn, interval_ms: int | None) -> PollerHandle:
        """Fetch immediately, then every ``interval_ms``.

        ``interval_ms`` of ``None`` or ``0`` performs the initial fetch only.
        Must be called from inside a running event loop.
        """
        if self._stopped:
            raise RuntimeError(f"fetcher {self.name} was stopped and cannot be restarted")
        if self._timer_task is not None:
            raise RuntimeError(f"fetcher {self.name} already started")
        self._fetch_fn = fetch_fn
        self._interval_sec = interval_ms / 1000 if interval_ms else None
        self._timer_task = asyncio.get_running_loop().create_task(
            self._run_timer(), name=f"poller:{self.name}"
        )
        self.log.info("poller_started", interval_ms=interval_ms)
        return PollerHandle(self)

    def stop(self) -> None:
        """Cancel the timer and every pending request; the instance goes inert."""
        if self._stopped:
            return
        self._stopped = True
        if self._timer_task is not None:
            self._timer_task.cancel()
        for task in list(self._request_tasks):
            task.cancel()
        self.log.info("poller_stopped", pending_requests=len(self._request_tasks))

    async def aclose(self) -> None:
        """Stop and wait until the cancelled tasks have unwound."""
        self.stop()
        tasks = [t for t in [self._timer_task, *self._request_tasks] if t is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def refresh(self) -> None:
        """Issue a request now, even if a scheduled one is still pending."""
        if self._fetch_fn is None:
            raise RuntimeError(f"fetcher {self.name} has no fetch function; call start() first")
        if self._stopped:
            return
        await self._fetch_once()

    async def _run_timer(self) -> None:
        self._spawn_tick()
        if self._interval_sec is None:
            return
        while not self._stopped:
            await asyncio.sleep(self._interval_sec)
            self._spawn_tick()

    def _spawn_tick(self) -> None:
        if self._stopped:
            return
        if self._in_flight > 0:
            self.log.debug("fetch_tick_skipped", in_flight=self._in_flight)
            if self.metrics:
                self.metrics.fetch_skipped_total.labels(feed=self.name).inc()
            return
        task = asyncio.get_running_loop().create_task(self._fetch_once())
        self._request_tasks.add(task)
        task.add_done_callback(self._request_tasks.discard)

    async def _fetch_once(self) -> None:
        assert self._fetch_fn is not None
        self._next_sequence += 1
        sequence = self._next_sequence
        self._in_flight += 1
        await self._publish(
            FetchState(
                data=self.state.data,
                error=self.state.error,
                is_loading=True,
                sequence=self.state.sequence,
            )
        )
        start = time.perf_counter()
        data: Any = None
        error: str | None = None
        try:
            data = _unwrap(await self._fetch_fn())
        except asyncio.CancelledError:
            self._in_flight -= 1
            raise
        except Exception as exc:
            error = str(exc) or exc.__class__.__name__
        self._in_flight -= 1
        latency_ms = (time.perf_counter() - start) * 1000

        if self._stopped:
            self.log.debug("fetch_ignored_after_stop", sequence=sequence)
            return
        if sequence <= self._applied_sequence:
            self.log.info(
                "fetch_stale_discarded",
                sequence=sequence,
                applied_sequence=self._applied_sequence,
            )
            if self.metrics:
                self.metrics.fetch_stale_discarded_total.labels(feed=self.name).inc()
            if self._in_flight == 0 and self.state.is_loading:
                await self._publish(
                    FetchState(
                        data=self.state.data,
                        error=self.state.error,
                        is_loading=False,
                        sequence=self.state.sequence,
                    )
                )
            return

        self._applied_sequence = sequence
        if self.metrics:
            self.metrics.fetch_latency_ms.labels(feed=self.name).observe(latency_ms)
        if error is None:
            if self.metrics:
                self.metrics.fetch_success_total.labels(feed=self.name).inc()
            next_state = FetchState(
                data=data, error=None, is_loading=self._in_flight > 0, sequence=sequence
            )
        else:
            self.log.warning("fetch_failed", sequence=sequence, error=error)
            if self.metrics:
                self.metrics.fetch_failure_total.labels(feed=self.name).inc()
            next_state = FetchState(
                data=self.state.data,
                error=error,
                is_loading=self._in_flight > 0,
                sequence=sequence,
            )
        await self._publish(next_state)

    async def _publish(self, state: FetchState[T]) -> None:
        self.state = state
        for listener in self._listeners:
            try:
                result = listener(state)
                if asyncio.iscoroutine(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                self.log.exception(
                    "fetch_listener_failed",
                    listener=getattr(listener, "__name__", repr(listener)),
                )


def _unwrap(result: Any) -> Any:
    if isinstance(result, ActionResult):
        if not result.is_success:
            raise FetchFailed(result.message or result.error or "Fetch failed")
        return result.data
    return result
