"""Append-only audit log of trade attempts."""

from __future__ import annotations

import asyncio
import errno
import time
from decimal import Decimal
from pathlib import Path
from typing import Any, Protocol
from uuid import uuid4

import orjson
import structlog

from src.errors import PersistenceError, UnknownError, ValidationError
from src.models import ActionResult, TradeLogEntry, utc_now

DEFAULT_LIST_LIMIT = 50

REQUIRED_TEXT_FIELDS = ("symbol", "direction", "status")
NUMERIC_FIELDS = ("size", "entry_price")
OPTIONAL_FIELDS = ("hyperliquid_order_id", "error_message")


class TradeLogBackend(Protocol):
    """Persistence collaborator; assigns ``id`` and ``timestamp``."""

    async def insert(self, record: dict[str, Any]) -> TradeLogEntry: ...

    async def find_many(self, limit: int) -> list[TradeLogEntry]: ...


class InMemoryTradeLogBackend:
    """Process-local backend, used for dry runs and tests."""

    def __init__(self) -> None:
        self._entries: list[TradeLogEntry] = []

    async def insert(self, record: dict[str, Any]) -> TradeLogEntry:
        entry = TradeLogEntry(id=uuid4().hex, timestamp=utc_now(), **record)
        self._entries.append(entry)
        return entry

    async def find_many(self, limit: int) -> list[TradeLogEntry]:
        return _newest_first(self._entries)[:limit]


class JsonlTradeLogBackend:
    """Trade log stored as one JSON object per line."""

    def __init__(self, log_path: str) -> None:
        self.log_path = Path(log_path)
        self.entries_file = self.log_path / "trades.jsonl"

    async def insert(self, record: dict[str, Any]) -> TradeLogEntry:
        entry = TradeLogEntry(id=uuid4().hex, timestamp=utc_now(), **record)
        await asyncio.to_thread(self._append, entry)
        return entry

    async def find_many(self, limit: int) -> list[TradeLogEntry]:
        entries = await asyncio.to_thread(self._read_all)
        return _newest_first(entries)[:limit]

    def _append(self, entry: TradeLogEntry) -> None:
        try:
            self.log_path.mkdir(parents=True, exist_ok=True)
            with open(self.entries_file, "ab") as handle:
                handle.write(orjson.dumps(entry.to_dict()) + b"\n")
        except OSError as exc:
            raise PersistenceError(_os_code(exc), f"trade log write failed: {exc}") from exc

    def _read_all(self) -> list[TradeLogEntry]:
        if not self.entries_file.exists():
            return []
        entries: list[TradeLogEntry] = []
        try:
            with open(self.entries_file, "rb") as handle:
                for line_no, line in enumerate(handle, start=1):
                    if not line.strip():
                        continue
                    try:
                        entries.append(TradeLogEntry.from_dict(orjson.loads(line)))
                    except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                        raise PersistenceError(
                            "CORRUPT_RECORD", f"trade log line {line_no} unreadable: {exc}"
                        ) from exc
        except OSError as exc:
            raise PersistenceError(_os_code(exc), f"trade log read failed: {exc}") from exc
        return entries


class TradeLogStore:
    """Validate, sanitize and persist trade attempts; list them newest first.

    Neither method raises. Both return an ``ActionResult``.
    """

    def __init__(self, backend: TradeLogBackend) -> None:
        self.backend = backend
        self.log = structlog.get_logger(__name__)

    async def create(self, entry: dict[str, Any]) -> ActionResult[TradeLogEntry]:
        start = time.perf_counter()
        try:
            record = self._sanitize(entry)
            stored = await self.backend.insert(record)
        except ValidationError as exc:
            self.log.warning("trade_log_validation_failed", error=exc.message, entry=_preview(entry))
            return ActionResult.fail(exc.message, error=exc.message)
        except PersistenceError as exc:
            self.log.error("trade_log_persistence_failed", code=exc.code, error=exc.message)
            return ActionResult.fail(
                "Database error occurred while logging trade.",
                error=f"Persistence error ({exc.code}): {exc.message}",
            )
        except Exception as exc:
            failure = UnknownError(str(exc) or exc.__class__.__name__)
            self.log.exception("trade_log_unknown_failure", error=failure.message)
            return ActionResult.fail(
                "Failed to log trade entry due to an error.", error=failure.message
            )
        self.log.info(
            "trade_logged",
            id=stored.id,
            symbol=stored.symbol,
            direction=stored.direction,
            status=stored.status,
            hyperliquid_order_id=stored.hyperliquid_order_id,
            latency_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return ActionResult.ok(f"Trade logged successfully with status: {stored.status}.", stored)

    async def list(self, limit: Any = DEFAULT_LIST_LIMIT) -> ActionResult[list[TradeLogEntry]]:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            self.log.warning("trade_log_invalid_limit", limit=repr(limit), using=DEFAULT_LIST_LIMIT)
            limit = DEFAULT_LIST_LIMIT
        try:
            entries = await self.backend.find_many(limit)
        except PersistenceError as exc:
            self.log.error("trade_log_fetch_failed", code=exc.code, error=exc.message)
            return ActionResult.fail(
                "Database error occurred while fetching trade log entries.",
                error=f"Persistence error ({exc.code}): {exc.message}",
            )
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            self.log.exception("trade_log_fetch_unknown_failure", error=message)
            return ActionResult.fail(
                f"Failed to fetch trade log entries: {message}", error=UnknownError(message).message
            )
        return ActionResult.ok("Successfully fetched trade log entries.", entries)

    @staticmethod
    def _sanitize(entry: dict[str, Any]) -> dict[str, Any]:
        missing = [
            name
            for name in REQUIRED_TEXT_FIELDS
            if not isinstance(_text(entry.get(name)), str) or not _text(entry.get(name)).strip()
        ]
        non_numeric = [name for name in NUMERIC_FIELDS if not _is_number(entry.get(name))]
        if missing or non_numeric:
            details = ", ".join([*(f"{m} missing" for m in missing), *(f"{n} not numeric" for n in non_numeric)])
            raise ValidationError(f"Missing required fields for trade log entry: {details}.")
        record: dict[str, Any] = {
            "symbol": _text(entry["symbol"]).strip(),
            "direction": _text(entry["direction"]).strip(),
            "status": _text(entry["status"]).strip(),
            "size": float(entry["size"]),
            "entry_price": float(entry["entry_price"]),
        }
        for name in OPTIONAL_FIELDS:
            value = entry.get(name)
            record[name] = str(value) if value else None
        return record


def _text(value: Any) -> Any:
    # Enum members (TradeDirection, TradeStatus) are stored by value.
    return getattr(value, "value", value)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, Decimal):
        return value.is_finite()
    return isinstance(value, (int, float)) and value == value


def _newest_first(entries: list[TradeLogEntry]) -> list[TradeLogEntry]:
    # Stable sort on reversed insertion order keeps the later of two equal timestamps first.
    return sorted(reversed(entries), key=lambda e: e.timestamp, reverse=True)


def _os_code(exc: OSError) -> str:
    if exc.errno is not None:
        return errno.errorcode.get(exc.errno, f"OS{exc.errno}")
    return "OSERROR"


def _preview(entry: Any) -> Any:
    if not isinstance(entry, dict):
        return repr(entry)
    return {key: str(_text(value)) for key, value in entry.items()}
