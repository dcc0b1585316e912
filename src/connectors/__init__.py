"""Exchange and prediction connectors module."""

from src.connectors.allora import AlloraClient
from src.connectors.base import Exchange, OrderSigner, PredictionSource
from src.connectors.hyperliquid import HyperliquidRestClient

__all__ = [
    "AlloraClient",
    "Exchange",
    "HyperliquidRestClient",
    "OrderSigner",
    "PredictionSource",
]
