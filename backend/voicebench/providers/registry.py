"""Template registry.

Holds built-in templates plus operator-defined ones. Reads go against an
immutable snapshot; every mutation builds a new snapshot under a lock and swaps
it in, so a reader never observes a half-applied change.
"""
import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx
from pydantic import ValidationError

from ..config import logger
from ..errors import ConfigurationError, ConflictError, NotEditableError, NotFoundError
from ..models import Template
from .templates import builtin_templates


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TemplateRegistry:
    def __init__(self, storage_path: Optional[Union[str, Path]] = None):
        self._storage_path = Path(storage_path) if storage_path else None
        self._templates: Mapping[str, Template] = {}
        self._lock = threading.Lock()
        self._initialized = False

    def initialize(self) -> None:
        """Load built-ins, then persisted user templates. Runs once."""
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            templates: Dict[str, Template] = dict(builtin_templates())
            for template in self._load_user_templates():
                if template.id in templates:
                    logger.warning(f"Ignoring stored user template '{template.id}': id is reserved by a built-in")
                    continue
                templates[template.id] = template
            self._templates = templates
            self._initialized = True
            logger.info(f"Template registry initialized with {len(templates)} templates")

    # Reads

    def get(self, template_id: str) -> Optional[Template]:
        self.initialize()
        return self._templates.get(template_id)

    def get_all(self) -> List[Template]:
        self.initialize()
        return list(self._templates.values())

    def get_builtin(self) -> List[Template]:
        return [t for t in self.get_all() if t.is_builtin]

    def get_custom(self) -> List[Template]:
        return [t for t in self.get_all() if not t.is_builtin]

    def has(self, template_id: str) -> bool:
        self.initialize()
        return template_id in self._templates

    # Mutations

    def add(self, template: Template) -> Template:
        self.initialize()
        with self._lock:
            existing = self._templates.get(template.id)
            if existing is not None and existing.is_builtin:
                raise ConflictError(f"Template id '{template.id}' is already used by a built-in template")
            now = _now()
            new_template = template.model_copy(
                update={
                    "is_builtin": False,
                    "created_at": existing.created_at if existing else (template.created_at or now),
                    "updated_at": now,
                },
                deep=True,
            )
            self._swap({**self._templates, new_template.id: new_template})
        logger.info(f"Added user template '{new_template.id}'")
        return new_template

    def update(self, template_id: str, updates: Mapping[str, Any]) -> Template:
        self.initialize()
        with self._lock:
            current = self._templates.get(template_id)
            if current is None:
                raise NotFoundError(f"Template '{template_id}' not found")
            if current.is_builtin:
                raise NotEditableError(f"Built-in template '{template_id}' cannot be modified")
            merged = {**current.model_dump(), **dict(updates)}
            merged.update({"id": template_id, "is_builtin": False, "updated_at": _now()})
            updated = Template.model_validate(merged)
            self._swap({**self._templates, template_id: updated})
        logger.info(f"Updated user template '{template_id}'")
        return updated

    def remove(self, template_id: str) -> bool:
        self.initialize()
        with self._lock:
            current = self._templates.get(template_id)
            if current is None:
                return False
            if current.is_builtin:
                raise NotEditableError(f"Built-in template '{template_id}' cannot be removed")
            self._swap({k: v for k, v in self._templates.items() if k != template_id})
        logger.info(f"Removed user template '{template_id}'")
        return True

    def import_many(self, data: Union[str, List[Any], Dict[str, Any]]) -> List[Template]:
        """Upsert user templates from a raw list (or its JSON text).

        Entries without id/name, entries failing validation and entries that
        collide with a built-in are logged and skipped one by one.
        """
        entries = _coerce_list(data)
        imported: List[Template] = []
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("id") or not entry.get("name"):
                logger.warning(f"Skipping invalid template entry: {entry!r:.200}")
                continue
            existing = self.get(entry["id"])
            if existing is not None and existing.is_builtin:
                logger.warning(f"Skipping import of built-in template id '{entry['id']}'")
                continue
            try:
                template = Template.model_validate({**entry, "is_builtin": False})
            except ValidationError as e:
                logger.warning(f"Skipping template '{entry['id']}': {e.error_count()} validation errors")
                continue
            try:
                if existing is not None:
                    fields = template.model_dump(exclude={"id", "created_at", "updated_at"})
                    imported.append(self.update(template.id, fields))
                else:
                    imported.append(self.add(template))
            except (ConflictError, NotEditableError) as e:
                # A built-in took the id between the check and the write
                logger.warning(f"Skipping template '{entry['id']}': {e}")
        logger.info(f"Imported {len(imported)} of {len(entries)} templates")
        return imported

    def export_user_defined(self) -> str:
        return json.dumps([t.model_dump() for t in self.get_custom()], indent=2, ensure_ascii=False)

    def export_all(self) -> str:
        return json.dumps([t.model_dump() for t in self.get_all()], indent=2, ensure_ascii=False)

    async def load_from_url(self, url: str, client: Optional[httpx.AsyncClient] = None) -> List[Template]:
        """Fetch and validate a remote template list. Nothing is registered."""
        try:
            if client is None:
                async with httpx.AsyncClient() as own_client:
                    resp = await own_client.get(url, timeout=30.0)
            else:
                resp = await client.get(url, timeout=30.0)
        except httpx.HTTPError as e:
            raise ConfigurationError(f"Failed to load templates from {url}: {e}") from e
        if resp.status_code >= 400:
            raise ConfigurationError(f"Failed to load templates from {url}: HTTP {resp.status_code} {resp.reason_phrase}")
        try:
            entries = _coerce_list(resp.json())
        except ValueError as e:
            raise ConfigurationError(f"Remote templates at {url} are not valid JSON") from e
        templates: List[Template] = []
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("id") or not entry.get("name"):
                raise ConfigurationError("Invalid template format: missing id or name")
            try:
                templates.append(Template.model_validate({**entry, "is_builtin": False}))
            except ValidationError as e:
                raise ConfigurationError(f"Invalid template '{entry['id']}': {e}") from e
        logger.info(f"Loaded {len(templates)} templates from {url}")
        return templates

    # Internals

    def _swap(self, templates: Dict[str, Template]) -> None:
        # Caller holds the lock. Persist first so a failed write leaves the old snapshot.
        self._save_user_templates([t for t in templates.values() if not t.is_builtin])
        self._templates = templates

    def _load_user_templates(self) -> List[Template]:
        if self._storage_path is None or not self._storage_path.exists():
            return []
        try:
            with open(self._storage_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load user templates from {self._storage_path}: {e}")
            return []
        loaded = []
        for entry in _coerce_list(raw):
            try:
                loaded.append(Template.model_validate({**entry, "is_builtin": False}))
            except (ValidationError, TypeError) as e:
                logger.warning(f"Skipping stored template entry: {e}")
        return loaded

    def _save_user_templates(self, templates: List[Template]) -> None:
        if self._storage_path is None:
            return
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump([t.model_dump() for t in templates], f, indent=2, ensure_ascii=False)
        tmp_path.replace(self._storage_path)


def _coerce_list(data: Any) -> List[Any]:
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError as e:
            raise ConfigurationError("Invalid JSON template payload") from e
    if isinstance(data, dict):
        data = data.get("templates") or []
    if not isinstance(data, list):
        return []
    return data
