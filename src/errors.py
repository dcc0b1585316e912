"""Error taxonomy shared by the cockpit core."""

from __future__ import annotations


class CockpitError(Exception):
    """Base class for categorized cockpit failures."""

    category = "unknown"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(CockpitError):
    """Malformed or missing input, detected before any external call."""

    category = "validation"


class PersistenceError(CockpitError):
    """Known failure from a persistence backend."""

    category = "persistence"

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        super().__init__(message)


class ExchangeError(CockpitError):
    """Order rejected by the exchange or a network failure talking to it."""

    category = "exchange"


class UnknownError(CockpitError):
    """Anything that does not fit the categories above."""
