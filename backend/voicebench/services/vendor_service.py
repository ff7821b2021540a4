import json
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from ..config import logger
from ..db import dict_factory, get_db_connection
from ..errors import ConfigurationError, ConflictError, NotEditableError, NotFoundError
from ..models import MASK, SYSTEM_OVERRIDE_FIELDS, VendorConfig, mask_auth_header
from ..providers.system_presets import apply_overrides, get_system_vendors, is_system_id


class VendorService:
    """Vendor configurations: operator-created rows plus environment-provisioned presets.

    System vendors are never stored in full. Their row in ``vendor_configs`` only
    holds the allow-listed overrides, merged over the preset at lookup time.
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        self.db_path = db_path

    def _rows(self, is_system: bool) -> Dict[str, Dict[str, Any]]:
        conn = get_db_connection(self.db_path)
        conn.row_factory = dict_factory
        cursor = conn.cursor()
        try:
            cursor.execute(
                "SELECT * FROM vendor_configs WHERE is_system = ? ORDER BY created_at, rowid",
                (1 if is_system else 0,),
            )
            return {row["id"]: json.loads(row["config_json"]) for row in cursor.fetchall()}
        finally:
            conn.close()

    def _save(self, vendor_id: str, name: str, template_type: str, payload: Dict[str, Any], is_system: bool) -> None:
        conn = get_db_connection(self.db_path)
        cursor = conn.cursor()
        try:
            cursor.execute(
                """
                INSERT INTO vendor_configs (id, name, template_type, config_json, is_system)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    template_type = excluded.template_type,
                    config_json = excluded.config_json,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (vendor_id, name, template_type, json.dumps(payload), 1 if is_system else 0),
            )
            conn.commit()
        finally:
            conn.close()

    def list_vendors(self, include_disabled: bool = True) -> List[VendorConfig]:
        overrides = self._rows(is_system=True)
        vendors = [apply_overrides(v, overrides.get(v.id)) for v in get_system_vendors()]
        for vendor_id, payload in self._rows(is_system=False).items():
            try:
                vendors.append(VendorConfig(**payload))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable vendor config '{vendor_id}': {e}")
        if not include_disabled:
            vendors = [v for v in vendors if v.enabled]
        return vendors

    def list_masked(self) -> List[Dict[str, Any]]:
        return [v.masked() for v in self.list_vendors()]

    def get(self, vendor_id: str) -> VendorConfig:
        for vendor in self.list_vendors():
            if vendor.id == vendor_id:
                return vendor
        raise NotFoundError(f"Vendor not found: {vendor_id}")

    def create(self, data: Dict[str, Any]) -> VendorConfig:
        data = dict(data)
        data.setdefault("id", f"vendor-{uuid.uuid4().hex[:12]}")
        if is_system_id(data["id"]):
            raise ConflictError(f"Vendor id '{data['id']}' is reserved for system vendors")
        data["is_system"] = False
        try:
            vendor = VendorConfig(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid vendor configuration: {e}") from e
        if vendor.id in self._rows(is_system=False):
            raise ConflictError(f"Vendor '{vendor.id}' already exists")
        self._save(vendor.id, vendor.name, vendor.template_type, vendor.model_dump(), is_system=False)
        logger.info(f"Created vendor {vendor.id} ({vendor.template_type})")
        return vendor

    def update(self, vendor_id: str, updates: Dict[str, Any]) -> VendorConfig:
        updates = {k: v for k, v in updates.items() if k not in ("id", "is_system")}
        current = self.get(vendor_id)

        if current.is_system:
            blocked = sorted(k for k in updates if k not in SYSTEM_OVERRIDE_FIELDS)
            if blocked:
                raise NotEditableError(
                    f"System vendor '{vendor_id}' only accepts changes to {', '.join(SYSTEM_OVERRIDE_FIELDS)}; "
                    f"got {', '.join(blocked)}"
                )
            stored = self._rows(is_system=True).get(vendor_id, {})
            stored.update(updates)
            try:
                VendorConfig(**{**current.model_dump(), **stored})
            except ValidationError as e:
                raise ConfigurationError(f"Invalid override for system vendor '{vendor_id}': {e}") from e
            self._save(vendor_id, current.name, current.template_type, stored, is_system=True)
            return self.get(vendor_id)

        # Masked secrets echoed back by a client keep the stored value
        for secret in ("api_key", "app_id"):
            if updates.get(secret) == MASK:
                updates.pop(secret)
        if "auth_header" in updates and updates["auth_header"] == mask_auth_header(current.auth_header):
            updates.pop("auth_header")
        if isinstance(updates.get("request_headers"), dict):
            updates["request_headers"] = {
                k: current.request_headers.get(k, v) if v == MASK else v
                for k, v in updates["request_headers"].items()
            }
        data = current.model_dump()
        data.update(updates)
        try:
            vendor = VendorConfig(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid vendor configuration: {e}") from e
        self._save(vendor.id, vendor.name, vendor.template_type, vendor.model_dump(), is_system=False)
        return vendor

    def delete(self, vendor_id: str) -> None:
        if is_system_id(vendor_id):
            raise NotEditableError(f"System vendor '{vendor_id}' cannot be deleted")
        conn = get_db_connection(self.db_path)
        cursor = conn.cursor()
        try:
            cursor.execute("DELETE FROM vendor_configs WHERE id = ? AND is_system = 0", (vendor_id,))
            deleted = cursor.rowcount
            conn.commit()
        finally:
            conn.close()
        if not deleted:
            raise NotFoundError(f"Vendor not found: {vendor_id}")
