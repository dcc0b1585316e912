"""Structured logging for the cockpit runtime.

Events are rendered as JSON lines and handed to stdlib logging, which prints
them on stdout and copies errors to a rotating ``errors.log``. Fields that
can carry credentials (order signatures, API keys) are masked first.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Mapping, MutableMapping

import structlog

from src.config.settings import MonitoringConfig

REDACTED = "***"
SENSITIVE_KEYS = frozenset(
    {"signature", "api_key", "api_secret", "x-api-key", "secret", "private_key"}
)
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask sensitive keys, including inside nested request payload dicts."""
    for key in list(event_dict):
        event_dict[key] = _redact(key, event_dict[key])
    return event_dict


def _redact(key: Any, value: Any) -> Any:
    if str(key).lower() in SENSITIVE_KEYS:
        return REDACTED
    if isinstance(value, Mapping):
        # Copy: the mapping may be a live request payload.
        return {k: _redact(k, v) for k, v in value.items()}
    return value


def _error_file_handler(logs_path: str, monitoring: MonitoringConfig | None) -> logging.Handler:
    log_dir = Path(logs_path)
    log_dir.mkdir(parents=True, exist_ok=True)
    monitoring = monitoring or MonitoringConfig()
    handler = RotatingFileHandler(
        log_dir / "errors.log",
        maxBytes=monitoring.error_log_max_bytes,
        backupCount=monitoring.error_log_backup_count,
        encoding="utf-8",
    )
    handler.setLevel(logging.ERROR)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def configure_logging(
    log_level: str = "INFO",
    logs_path: str | None = None,
    monitoring: MonitoringConfig | None = None,
) -> None:
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    if logs_path:
        logging.getLogger().addHandler(_error_file_handler(logs_path, monitoring))
    # The connectors emit their own rest_request / rest_response events.
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
    )
