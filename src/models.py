"""Shared data models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class TradeDirection(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class TradeStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class ConnectionStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ActionResult(Generic[T]):
    """Uniform result envelope returned by every core-facing operation."""

    is_success: bool
    message: str
    data: T | None = None
    error: str | None = None

    @classmethod
    def ok(cls, message: str, data: T | None = None) -> "ActionResult[T]":
        return cls(is_success=True, message=message, data=data)

    @classmethod
    def fail(
        cls, message: str, error: str | None = None, data: T | None = None
    ) -> "ActionResult[T]":
        return cls(is_success=False, message=message, data=data, error=error or message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"is_success": self.is_success, "message": self.message}
        if self.data is not None:
            payload["data"] = to_jsonable(self.data)
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True)
class FetchState(Generic[T]):
    """Snapshot of one polled feed."""

    data: T | None = None
    error: str | None = None
    is_loading: bool = False
    sequence: int = 0


@dataclass(frozen=True)
class RiskEstimate:
    required_margin: Decimal
    liquidation_price: Decimal
    valid: bool

    @classmethod
    def invalid(cls) -> "RiskEstimate":
        return cls(required_margin=Decimal(0), liquidation_price=Decimal(0), valid=False)


@dataclass(frozen=True)
class TradeOrderRequest:
    symbol: str
    direction: TradeDirection
    size: Decimal
    leverage: Decimal
    template: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TradeOrderRequest":
        """Build a request from loosely typed input without validating it.

        Unparseable numbers become ``Decimal(0)`` so the pipeline can still
        reject and log the attempt.
        """
        raw_direction = str(data.get("direction") or "").upper()
        try:
            direction = TradeDirection(raw_direction)
        except ValueError:
            direction = raw_direction  # type: ignore[assignment]
        return cls(
            symbol=str(data.get("symbol") or ""),
            direction=direction,
            size=to_decimal(data.get("size")),
            leverage=to_decimal(data.get("leverage")),
            template=data.get("template") or None,
        )


@dataclass(frozen=True)
class OrderResult:
    order_id: str
    status: str
    filled_size: Decimal | None = None
    average_price: Decimal | None = None


@dataclass(frozen=True)
class TradeLogEntry:
    id: str
    timestamp: datetime
    symbol: str
    direction: str
    size: float
    entry_price: float
    status: str
    hyperliquid_order_id: str | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["timestamp"] = self.timestamp.astimezone(timezone.utc).isoformat()
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TradeLogEntry":
        ts = data["timestamp"]
        if isinstance(ts, str):
            ts = datetime.fromisoformat(ts.replace("Z", "+00:00"))
        return cls(
            id=str(data["id"]),
            timestamp=ts,
            symbol=data["symbol"],
            direction=data["direction"],
            size=float(data["size"]),
            entry_price=float(data["entry_price"]),
            status=data["status"],
            hyperliquid_order_id=data.get("hyperliquid_order_id"),
            error_message=data.get("error_message"),
        )


@dataclass(frozen=True)
class TradeTemplate:
    id: str
    name: str
    size: float
    leverage: float
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "size": self.size,
            "leverage": self.leverage,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TradeTemplate":
        return cls(
            id=data["id"],
            name=data["name"],
            size=float(data["size"]),
            leverage=float(data["leverage"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )


@dataclass(frozen=True)
class Prediction:
    topic_id: int
    price: float
    timestamp: int  # milliseconds
    timeframe: str
    confidence_interval_values: list[float] | None = None
    confidence_interval_percentiles: list[str] | None = None


@dataclass(frozen=True)
class TradeSubmission:
    """Outcome of one trade attempt, including how its audit write went."""

    request: TradeOrderRequest
    status: TradeStatus
    order_id: str | None = None
    entry_price: Decimal = Decimal(0)
    risk: RiskEstimate | None = None
    error_message: str | None = None
    log_entry: TradeLogEntry | None = None
    log_error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


def to_decimal(value: Any) -> Decimal:
    """Coerce a user-supplied number into a Decimal, 0 when unparseable."""
    if isinstance(value, bool) or value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value if value.is_finite() else Decimal(0)
    try:
        parsed = Decimal(str(value).strip())
    except (ArithmeticError, ValueError):
        return Decimal(0)
    return parsed if parsed.is_finite() else Decimal(0)


def to_jsonable(value: Any) -> Any:
    """Convert models, enums and Decimals into JSON-compatible values."""
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if hasattr(value, "__dataclass_fields__"):
        return {key: to_jsonable(item) for key, item in vars(value).items()}
    return value
