"""User-adjustable dashboard preferences.

Preferences are read once when a session starts and written only when the
user changes them. Missing keys fall back to the defaults below.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from src.errors import ValidationError

DEFAULT_PREDICTION_INTERVAL_MS = 60_000
DEFAULT_ACCOUNT_INTERVAL_MS = 30_000


class AppPreferences(BaseModel):
    """Dashboard refresh intervals and feature switches."""

    prediction_refresh_interval: int = Field(default=DEFAULT_PREDICTION_INTERVAL_MS, ge=0)
    account_refresh_interval: int = Field(default=DEFAULT_ACCOUNT_INTERVAL_MS, ge=0)
    alerts_enabled: bool = True
    trade_switch_enabled: bool = True

    model_config = {"extra": "ignore"}


class PreferencesStore:
    """Key-value preference file backed by YAML."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else None
        self._current: AppPreferences | None = None
        self.log = structlog.get_logger(__name__)

    def load(self) -> AppPreferences:
        if self._current is not None:
            return self._current
        raw: dict[str, Any] = {}
        if self.path and self.path.exists():
            try:
                with open(self.path) as handle:
                    raw = yaml.safe_load(handle) or {}
            except (OSError, yaml.YAMLError) as exc:
                self.log.warning("preferences_read_failed", path=str(self.path), error=str(exc))
                raw = {}
        try:
            self._current = AppPreferences(**raw)
        except PydanticValidationError as exc:
            self.log.warning("preferences_invalid_using_defaults", error=str(exc))
            self._current = AppPreferences()
        return self._current

    def update(self, **changes: Any) -> AppPreferences:
        current = self.load()
        merged = current.model_dump()
        merged.update({key: value for key, value in changes.items() if value is not None})
        try:
            updated = AppPreferences(**merged)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid preferences: {exc.errors()[0]['msg']}") from exc
        self._current = updated
        if self.path:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as handle:
                yaml.safe_dump(updated.model_dump(), handle, default_flow_style=False)
        self.log.info("preferences_updated", changes=sorted(changes))
        return updated
