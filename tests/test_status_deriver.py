from __future__ import annotations

import asyncio

import pytest

from src.models import ConnectionStatus, FetchState
from src.monitoring.metrics import Metrics
from src.sync.fetcher import PeriodicFetcher
from src.sync.status import StatusDeriver

LOADING = FetchState(is_loading=True)
FAILED = FetchState(error="timeout")
SUCCESS = FetchState(data={"equity": "100"})


def _run(deriver: StatusDeriver, states: list[FetchState]) -> list[ConnectionStatus]:
    return [deriver.update(state) for state in states]


def test_starts_idle() -> None:
    deriver = StatusDeriver()

    assert deriver.status is ConnectionStatus.IDLE
    assert deriver.update(FetchState()) is ConnectionStatus.IDLE


def test_errors_then_success() -> None:
    deriver = StatusDeriver()

    assert _run(deriver, [FAILED, FAILED, SUCCESS]) == [
        ConnectionStatus.ERROR,
        ConnectionStatus.ERROR,
        ConnectionStatus.CONNECTED,
    ]
    assert deriver.ever_succeeded


def test_loading_after_success_stays_connected() -> None:
    deriver = StatusDeriver()
    deriver.update(SUCCESS)

    loading_with_data = FetchState(data={"equity": "100"}, is_loading=True)
    failed_with_data = FetchState(data={"equity": "100"}, error="timeout")

    assert _run(deriver, [loading_with_data, failed_with_data]) == [
        ConnectionStatus.CONNECTED,
        ConnectionStatus.ERROR,
    ]


def test_loading_before_first_success_is_connecting() -> None:
    deriver = StatusDeriver()

    assert _run(deriver, [LOADING, FAILED, LOADING]) == [
        ConnectionStatus.CONNECTING,
        ConnectionStatus.ERROR,
        ConnectionStatus.CONNECTING,
    ]
    assert not deriver.ever_succeeded


def test_recovers_to_connected_after_error() -> None:
    deriver = StatusDeriver()

    assert _run(deriver, [SUCCESS, FAILED, LOADING, SUCCESS]) == [
        ConnectionStatus.CONNECTED,
        ConnectionStatus.ERROR,
        ConnectionStatus.CONNECTED,
        ConnectionStatus.CONNECTED,
    ]


def test_change_listener_and_gauge() -> None:
    metrics = Metrics()
    deriver = StatusDeriver("account_info", metrics=metrics)
    changes: list[ConnectionStatus] = []
    deriver.on_change(changes.append)

    _run(deriver, [LOADING, LOADING, SUCCESS, FAILED])

    assert changes == [
        ConnectionStatus.CONNECTING,
        ConnectionStatus.CONNECTED,
        ConnectionStatus.ERROR,
    ]
    gauge = metrics.registry.get_sample_value("connection_status", {"feed": "account_info"})
    assert gauge == 3


@pytest.mark.asyncio
async def test_attached_to_fetcher() -> None:
    async def fetch() -> str:
        return "ok"

    fetcher: PeriodicFetcher[str] = PeriodicFetcher("predictions")
    deriver = StatusDeriver("predictions").attach(fetcher)
    seen: list[ConnectionStatus] = []
    deriver.on_change(seen.append)

    fetcher.start(fetch, None)
    for _ in range(50):
        if fetcher.state.data == "ok":
            break
        await asyncio.sleep(0)

    assert seen == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]
    await fetcher.aclose()
