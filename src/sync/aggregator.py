"""One-shot concurrent fetch of independent sources for the initial snapshot."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping

import structlog

from src.models import ActionResult

log = structlog.get_logger(__name__)

SourceFn = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class SourceOutcome:
    data: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {"data": self.data, "error": self.error}


@dataclass(frozen=True)
class AggregatedSnapshot:
    """Per-source outcomes; one failing source never hides the others."""

    outcomes: dict[str, SourceOutcome] = field(default_factory=dict)

    def __getitem__(self, name: str) -> SourceOutcome:
        return self.outcomes[name]

    def __contains__(self, name: object) -> bool:
        return name in self.outcomes

    @property
    def errors(self) -> dict[str, str]:
        return {name: o.error for name, o in self.outcomes.items() if o.error is not None}

    @property
    def account_info(self) -> SourceOutcome:
        return self.outcomes.get("account_info", SourceOutcome())

    @property
    def positions(self) -> SourceOutcome:
        return self.outcomes.get("positions", SourceOutcome())

    @property
    def predictions(self) -> SourceOutcome:
        return self.outcomes.get("predictions", SourceOutcome())

    @property
    def logs(self) -> SourceOutcome:
        return self.outcomes.get("logs", SourceOutcome())


async def aggregate(sources: Mapping[str, SourceFn]) -> AggregatedSnapshot:
    """Run every source concurrently and wait for all of them to settle.

    Sources may raise or return an ``ActionResult``; neither ends the batch.
    There is no retry and no timeout beyond what each source applies itself.
    """
    names = list(sources)
    results = await asyncio.gather(
        *(_call(sources[name]) for name in names), return_exceptions=True
    )
    outcomes: dict[str, SourceOutcome] = {}
    for name, result in zip(names, results):
        outcome = _settle(name, result)
        if outcome.error is not None:
            log.warning("initial_source_failed", source=name, error=outcome.error)
        outcomes[name] = outcome
    log.info(
        "initial_snapshot_loaded",
        sources=names,
        failed=sorted(n for n, o in outcomes.items() if o.error is not None),
    )
    return AggregatedSnapshot(outcomes=outcomes)


async def _call(source: SourceFn) -> Any:
    return await source()


def _settle(name: str, result: Any) -> SourceOutcome:
    fallback = f"Failed to load {name.replace('_', ' ')}."
    if isinstance(result, BaseException):
        if isinstance(result, asyncio.CancelledError):
            return SourceOutcome(error=f"{fallback} (cancelled)")
        message = getattr(result, "message", None) or str(result)
        return SourceOutcome(error=message or fallback)
    if isinstance(result, ActionResult):
        if result.is_success:
            return SourceOutcome(data=result.data)
        return SourceOutcome(error=result.message or result.error or fallback)
    return SourceOutcome(data=result)
