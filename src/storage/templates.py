"""Saved size/leverage presets for the trade form."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from uuid import uuid4

import orjson
import structlog

from src.errors import PersistenceError, ValidationError
from src.models import ActionResult, TradeTemplate, to_decimal, utc_now


class TemplateStore:
    """Trade templates kept in memory and mirrored to a JSON file when a path is given."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else None
        self._templates: dict[str, TradeTemplate] | None = None
        self.log = structlog.get_logger(__name__)

    async def list(self) -> ActionResult[list[TradeTemplate]]:
        try:
            templates = sorted(self._load().values(), key=lambda t: t.name.lower())
        except PersistenceError as exc:
            return _persistence_failure("fetch trade templates", exc)
        return ActionResult.ok("Successfully fetched trade templates.", templates)

    async def get(self, template_id: str) -> TradeTemplate | None:
        try:
            return self._load().get(template_id)
        except PersistenceError as exc:
            self.log.warning("template_lookup_failed", code=exc.code, error=exc.message)
            return None

    async def find_by_name(self, name: str) -> TradeTemplate | None:
        try:
            templates = self._load().values()
        except PersistenceError as exc:
            self.log.warning("template_lookup_failed", code=exc.code, error=exc.message)
            return None
        wanted = name.strip().lower()
        return next((t for t in templates if t.name.lower() == wanted), None)

    async def create(self, name: Any, size: Any, leverage: Any) -> ActionResult[TradeTemplate]:
        try:
            clean_name = _validate_name(name, "Template name is required.")
            clean_size = _validate_positive(size, "Template size must be a positive number.")
            clean_leverage = _validate_positive(
                leverage, "Template leverage must be a positive number."
            )
            templates = self._load()
            if any(t.name.lower() == clean_name.lower() for t in templates.values()):
                return ActionResult.fail(
                    "Failed to create template: A template with this name already exists. "
                    "Please choose a unique name.",
                    error=f"Unique constraint violation on field: name ({clean_name})",
                )
            now = utc_now()
            template = TradeTemplate(
                id=uuid4().hex,
                name=clean_name,
                size=clean_size,
                leverage=clean_leverage,
                created_at=now,
                updated_at=now,
            )
            templates[template.id] = template
            self._save(templates)
        except ValidationError as exc:
            return ActionResult.fail(f"Failed to create template: {exc.message}", error=exc.message)
        except PersistenceError as exc:
            return _persistence_failure("create trade template", exc)
        self.log.info("template_created", id=template.id, name=template.name)
        return ActionResult.ok(f'Template "{template.name}" created successfully.', template)

    async def update(
        self,
        template_id: str,
        name: Any = None,
        size: Any = None,
        leverage: Any = None,
    ) -> ActionResult[TradeTemplate]:
        try:
            templates = self._load()
            current = templates.get(template_id)
            if current is None:
                return ActionResult.fail(
                    "Failed to update template: Template not found.",
                    error=f"Record to update not found (ID: {template_id})",
                )
            new_name = (
                _validate_name(name, "Template name cannot be empty.")
                if name is not None
                else current.name
            )
            if any(
                t.id != template_id and t.name.lower() == new_name.lower()
                for t in templates.values()
            ):
                return ActionResult.fail(
                    "Failed to update template: A template with this name already exists. "
                    "Please choose a unique name.",
                    error=f"Unique constraint violation on field: name ({new_name})",
                )
            updated = TradeTemplate(
                id=current.id,
                name=new_name,
                size=(
                    _validate_positive(size, "Template size must be a positive number.")
                    if size is not None
                    else current.size
                ),
                leverage=(
                    _validate_positive(leverage, "Template leverage must be a positive number.")
                    if leverage is not None
                    else current.leverage
                ),
                created_at=current.created_at,
                updated_at=utc_now(),
            )
            templates[template_id] = updated
            self._save(templates)
        except ValidationError as exc:
            return ActionResult.fail(f"Failed to update template: {exc.message}", error=exc.message)
        except PersistenceError as exc:
            return _persistence_failure("update trade template", exc)
        self.log.info("template_updated", id=updated.id, name=updated.name)
        return ActionResult.ok(f'Template "{updated.name}" updated successfully.', updated)

    async def delete(self, template_id: str) -> ActionResult[dict[str, str]]:
        try:
            templates = self._load()
            removed = templates.pop(template_id, None)
            if removed is None:
                return ActionResult.fail(
                    "Failed to delete template: Template not found.",
                    error=f"Record to delete not found (ID: {template_id})",
                )
            self._save(templates)
        except PersistenceError as exc:
            return _persistence_failure("delete trade template", exc)
        self.log.info("template_deleted", id=template_id, name=removed.name)
        return ActionResult.ok(f'Template "{removed.name}" deleted successfully.', {"id": template_id})

    def _load(self) -> dict[str, TradeTemplate]:
        if self._templates is not None:
            return self._templates
        templates: dict[str, TradeTemplate] = {}
        if self.path and self.path.exists():
            try:
                raw = orjson.loads(self.path.read_bytes() or b"[]")
                for item in raw:
                    template = TradeTemplate.from_dict(item)
                    templates[template.id] = template
            except OSError as exc:
                raise PersistenceError("READ_FAILED", str(exc)) from exc
            except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                raise PersistenceError("CORRUPT_RECORD", str(exc)) from exc
        self._templates = templates
        return templates

    def _save(self, templates: dict[str, TradeTemplate]) -> None:
        self._templates = templates
        if not self.path:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = [t.to_dict() for t in templates.values()]
            self.path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
        except OSError as exc:
            raise PersistenceError("WRITE_FAILED", str(exc)) from exc


def _validate_name(value: Any, message: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(message)
    return value.strip()


def _validate_positive(value: Any, message: str) -> float:
    number = to_decimal(value)
    if number <= 0:
        raise ValidationError(message)
    return float(number)


def _persistence_failure(action: str, exc: PersistenceError) -> ActionResult[Any]:
    structlog.get_logger(__name__).error("template_store_failed", code=exc.code, error=exc.message)
    return ActionResult.fail(
        f"Failed to {action}.", error=f"Persistence error ({exc.code}): {exc.message}"
    )
