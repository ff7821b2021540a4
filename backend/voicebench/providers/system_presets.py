"""Vendors provisioned by the operator through environment variables.

They are rebuilt from the environment on every lookup, so rotating a key only
needs a restart. Stored overrides may touch the allow-listed fields only.
"""
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .. import config
from ..config import logger
from ..models import MASK, SYSTEM_OVERRIDE_FIELDS, PerKind, VendorConfig
from .templates import builtin_templates

SYSTEM_PREFIX = "system-"


def _from_template(template_id: str, **fields: Any) -> VendorConfig:
    template = builtin_templates()[template_id]
    service_type = fields.pop("service_type", "both")
    body_kind = "asr" if service_type == "asr" else "tts"
    base = {
        "id": f"{SYSTEM_PREFIX}{template_id}",
        "service_type": service_type,
        "api_url": template.default_api_url,
        "method": template.default_method,
        "auth_type": template.auth_type,
        "auth_header": template.auth_header,
        "template_type": template_id,
        "request_body": template.request_body_template.for_kind(body_kind),
        "response_text_path": template.response_text_path,
        "response_audio_path": template.response_audio_path,
        "response_audio_format": template.response_audio_format,
        "error_path": template.error_path,
        "selected_models": PerKind(
            asr=template.default_model.asr if service_type != "tts" else None,
            tts=template.default_model.tts if service_type != "asr" else None,
        ),
        "enabled": True,
        "is_system": True,
    }
    base.update(fields)
    return VendorConfig(**base)


def get_system_vendors() -> List[VendorConfig]:
    vendors: List[VendorConfig] = []

    if config.OPENAI_API_KEY:
        vendors.append(_from_template(
            "openai",
            name="OpenAI (system)",
            api_url=config.OPENAI_TTS_API_URL or "https://api.openai.com/v1/audio/speech",
            api_key=config.OPENAI_API_KEY,
            selected_voice="alloy",
        ))

    if config.QWEN_API_KEY:
        vendors.append(_from_template("qwen", name="Qwen (system)", api_key=config.QWEN_API_KEY))

    if config.CARTESIA_API_KEY:
        vendors.append(_from_template(
            "cartesia",
            name="Cartesia (system)",
            service_type="tts",
            api_key=config.CARTESIA_API_KEY,
            selected_voice="694f9389-aac1-45b6-b726-9d9369183238",
        ))

    if config.MINIMAX_TTS_API_URL and config.MINIMAX_API_KEY:
        model_id = config.MINIMAX_TTS_MODEL or "speech-02-turbo"
        vendors.append(_from_template(
            "minimax",
            id=f"{SYSTEM_PREFIX}minimax-http",
            name="MiniMax (system)",
            service_type="tts",
            api_url=config.MINIMAX_TTS_API_URL,
            api_key=config.MINIMAX_API_KEY,
            selected_models=PerKind(tts=model_id),
            custom_models=PerKind(tts=model_id),
            selected_voice="male-qn-qingse",
        ))

    if config.DEEPGRAM_API_KEY:
        vendors.append(_from_template(
            "deepgram",
            name="Deepgram (system)",
            service_type="tts",
            api_key=config.DEEPGRAM_API_KEY,
        ))

    if config.DOUBAO_APP_ID and config.DOUBAO_ACCESS_TOKEN:
        vendors.append(_from_template(
            "doubao",
            name="Doubao (system)",
            service_type="asr",
            api_url=config.DOUBAO_API_URL or builtin_templates()["doubao"].default_api_url,
            auth_type="custom",
            auth_header="X-Api-Access-Key: {api_key}",
            api_key=config.DOUBAO_ACCESS_TOKEN,
            app_id=config.DOUBAO_APP_ID,
            request_headers={
                "X-Api-App-Key": config.DOUBAO_APP_ID,
                "X-Api-Resource-Id": config.DOUBAO_RESOURCE_ID or "volc.bigasr.auc_turbo",
            },
        ))

    return vendors


def get_system_vendor(vendor_id: str) -> Optional[VendorConfig]:
    for vendor in get_system_vendors():
        if vendor.id == vendor_id:
            return vendor
    return None


def apply_overrides(vendor: VendorConfig, overrides: Optional[Dict[str, Any]]) -> VendorConfig:
    """Merge stored operator overrides, ignoring anything outside the allow-list.

    An override set that no longer validates is logged and the plain preset is used.
    """
    if not overrides:
        return vendor
    allowed = {k: v for k, v in overrides.items() if k in SYSTEM_OVERRIDE_FIELDS}
    if not allowed:
        return vendor
    data = vendor.model_dump()
    data.update(allowed)
    try:
        return VendorConfig(**data)
    except ValidationError as e:
        logger.warning(f"Ignoring invalid overrides for system vendor '{vendor.id}': {e}")
        return vendor


def get_system_vendors_for_display() -> List[Dict[str, Any]]:
    return [v.masked() for v in get_system_vendors()]


def is_system_id(vendor_id: str) -> bool:
    return vendor_id.startswith(SYSTEM_PREFIX)


__all__ = [
    "MASK",
    "SYSTEM_PREFIX",
    "apply_overrides",
    "get_system_vendor",
    "get_system_vendors",
    "get_system_vendors_for_display",
    "is_system_id",
]
