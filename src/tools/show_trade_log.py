"""CLI to print recent trade log entries."""

from __future__ import annotations

import argparse
import asyncio

from src.config.settings import load_settings
from src.storage.trade_log import JsonlTradeLogBackend, TradeLogStore


def _format_row(entry) -> str:  # type: ignore[no-untyped-def]
    order = entry.hyperliquid_order_id or "-"
    line = (
        f"{entry.timestamp.isoformat()}  {entry.status:<7}  {entry.direction:<5}  "
        f"{entry.symbol:<10}  size={entry.size:g}  entry={entry.entry_price:g}  order={order}"
    )
    if entry.error_message:
        line += f"  error={entry.error_message}"
    return line


def main() -> None:
    parser = argparse.ArgumentParser(description="Show the most recent trade attempts.")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument("--limit", type=int, default=50, help="Number of entries to show")
    args = parser.parse_args()

    settings = load_settings(args.config)
    store = TradeLogStore(JsonlTradeLogBackend(settings.storage.trade_log_path))
    result = asyncio.run(store.list(args.limit))
    if not result.is_success:
        print(f"{result.message} ({result.error})")
        raise SystemExit(1)
    entries = result.data or []
    if not entries:
        print("No trade log entries.")
        return
    for entry in entries:
        print(_format_row(entry))


if __name__ == "__main__":
    main()
