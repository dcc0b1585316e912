"""Feed synchronization: polling, status derivation, initial snapshot."""

from src.sync.aggregator import AggregatedSnapshot, SourceOutcome, aggregate
from src.sync.fetcher import PeriodicFetcher, PollerHandle
from src.sync.status import StatusDeriver

__all__ = [
    "AggregatedSnapshot",
    "SourceOutcome",
    "aggregate",
    "PeriodicFetcher",
    "PollerHandle",
    "StatusDeriver",
]
