"""Persistence for trade attempts and trade templates."""

from src.storage.templates import TemplateStore
from src.storage.trade_log import (
    InMemoryTradeLogBackend,
    JsonlTradeLogBackend,
    TradeLogBackend,
    TradeLogStore,
)

__all__ = [
    "TemplateStore",
    "InMemoryTradeLogBackend",
    "JsonlTradeLogBackend",
    "TradeLogBackend",
    "TradeLogStore",
]
