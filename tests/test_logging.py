from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest
import structlog

from src.monitoring.logging import REDACTED, configure_logging, redact_secrets


@pytest.fixture
def restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        if handler not in saved_handlers:
            root.removeHandler(handler)
            handler.close()
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)
    structlog.reset_defaults()


def test_redact_secrets_masks_nested_payloads() -> None:
    payload = {"action": {"type": "order"}, "nonce": 1, "signature": {"r": "0x1"}}
    event = {"event": "rest_request", "payload": payload, "API_KEY": "k", "path": "/exchange"}

    redacted = redact_secrets(None, "info", event)

    assert redacted["payload"]["signature"] == REDACTED
    assert redacted["payload"]["action"] == {"type": "order"}
    assert redacted["API_KEY"] == REDACTED
    assert redacted["path"] == "/exchange"
    assert payload["signature"] == {"r": "0x1"}


def test_errors_are_copied_to_rotating_file(workspace_tmp_path: Path, restore_logging: None) -> None:
    configure_logging("INFO", str(workspace_tmp_path))
    log = structlog.get_logger("cockpit.test")

    log.info("feeds_started")
    log.error("trade_log_write_failed", signature="0xdeadbeef")
    for handler in logging.getLogger().handlers:
        handler.flush()

    content = (workspace_tmp_path / "errors.log").read_text(encoding="utf-8")
    assert "trade_log_write_failed" in content
    assert "feeds_started" not in content
    assert "0xdeadbeef" not in content
    assert logging.getLogger("httpx").level == logging.WARNING
