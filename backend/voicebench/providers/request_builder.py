import json
import re
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel

from ..config import logger, debug_log
from ..errors import ConfigurationError
from ..models import CallParameters, ServiceKind, Template, VendorConfig
from .audio_codec import encode_for_request
from .renderer import PLACEHOLDER_RE, render, render_url

QWEN_ASR_URL = "https://dashscope.aliyuncs.com/api/v1/services/audio/asr/recognition"

LANGUAGE_TYPES = {
    "zh": "Chinese",
    "en": "English",
    "ja": "Japanese",
    "ko": "Korean",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "ru": "Russian",
    "ar": "Arabic",
    "hi": "Hindi",
}

_V1_SUFFIX = re.compile(r"/v1/?$")


class TransportRequest(BaseModel):
    url: str
    method: str
    headers: Dict[str, str] = {}
    json_body: Optional[Any] = None
    # multipart form fields and attachments
    data: Optional[Dict[str, str]] = None
    files: Optional[Dict[str, Tuple[str, bytes, str]]] = None
    model_id: Optional[str] = None
    voice: Optional[str] = None

    model_config = {"protected_namespaces": ()}

    @property
    def is_multipart(self) -> bool:
        return self.files is not None


def resolve_model(template: Template, vendor: VendorConfig, kind: ServiceKind) -> str:
    custom = vendor.custom_models.for_kind(kind)
    if custom:
        if template.allow_custom_model:
            return custom
        logger.warning(f"Template '{template.id}' does not allow custom models; ignoring '{custom}'")
    return vendor.selected_models.for_kind(kind) or template.default_model.for_kind(kind) or "default"


def resolve_voice(template: Template, vendor: VendorConfig, requested: Optional[str], model_id: Optional[str]) -> str:
    if requested and requested != "default":
        return requested
    if vendor.selected_voice:
        return vendor.selected_voice
    model = template.find_model(model_id)
    if model and model.voices:
        return model.voices[0].id
    return "alloy"


def resolve_url(template: Template, kind: ServiceKind, url: str) -> str:
    """Point a generic base URL at the sub-resource for the requested service kind."""
    if template.id == "openai":
        if kind == "asr":
            if "/audio/speech" in url:
                return url.replace("/audio/speech", "/audio/transcriptions")
            if "/audio/transcriptions" not in url:
                if _V1_SUFFIX.search(url):
                    return _V1_SUFFIX.sub("/v1/audio/transcriptions", url)
                if "/audio/" not in url:
                    return url.rstrip("/") + "/audio/transcriptions"
        elif "/audio/" not in url and _V1_SUFFIX.search(url):
            return _V1_SUFFIX.sub("/v1/audio/speech", url)
    elif template.id == "qwen" and kind == "asr":
        if "/services/audio/asr" not in url:
            if "/services/" in url:
                return url.split("/services/", 1)[0] + "/services/audio/asr/recognition"
            return QWEN_ASR_URL
    elif template.id == "elevenlabs":
        if kind == "tts" and "/text-to-speech" not in url:
            return url.rstrip("/") + "/text-to-speech/{voice}"
        if kind == "asr" and "/speech-to-text" not in url:
            return url.rstrip("/") + "/speech-to-text"
    return url


def build_auth_headers(template: Template, vendor: VendorConfig) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    api_key = (vendor.api_key or "").strip()
    if vendor.auth_type == "bearer":
        if not api_key:
            raise ConfigurationError(f"Vendor '{vendor.name}' has no API key configured")
        headers["Authorization"] = f"Bearer {api_key}"
    elif vendor.auth_type == "apikey":
        if not api_key:
            raise ConfigurationError(f"Vendor '{vendor.name}' has no API key configured")
        # Vendors disagree on the header name, send both
        headers["X-API-Key"] = api_key
        headers["Authorization"] = f"ApiKey {api_key}"
    elif vendor.auth_type == "custom":
        pattern = vendor.auth_header or template.auth_header
        if not pattern or ":" not in pattern:
            raise ConfigurationError(f"Vendor '{vendor.name}' uses custom auth but has no 'Header: value' pattern")
        name, value = (part.strip() for part in pattern.split(":", 1))
        if not name or not value:
            raise ConfigurationError(f"Vendor '{vendor.name}' has a malformed auth header pattern")
        if "{api_key}" in value and not api_key:
            raise ConfigurationError(f"Vendor '{vendor.name}' has no API key configured")
        if "{app_id}" in value and not vendor.app_id:
            raise ConfigurationError(f"Vendor '{vendor.name}' has no app id configured")
        headers[name] = render(value, {"api_key": api_key, "app_id": vendor.app_id})
    return headers


def build_variables(template: Template, vendor: VendorConfig, params: CallParameters) -> Dict[str, Any]:
    kind = params.service_kind
    model_id = resolve_model(template, vendor, kind)
    language = params.language or "zh"
    if kind == "asr":
        if not params.audio:
            raise ConfigurationError("Recognition call requires audio input")
        audio_b64 = encode_for_request(params.audio, "base64")
        return {
            "audio": audio_b64,
            "audioBase64": audio_b64,
            "audio_url": audio_b64,
            "language": params.language,
            "format": params.format or "wav",
            "model": model_id,
        }
    if not params.text or not params.text.strip():
        raise ConfigurationError("Synthesis call requires non-empty text")
    return {
        "text": params.text,
        "model": model_id,
        "voice": resolve_voice(template, vendor, params.voice, model_id),
        "speed": params.speed if params.speed is not None else 1.0,
        "pitch": params.pitch,
        "volume": params.volume,
        "language": language,
        "language_type": LANGUAGE_TYPES.get(language, "Chinese"),
        "format": params.format or "mp3",
    }


def _body_template(template: Template, vendor: VendorConfig, kind: ServiceKind) -> Optional[str]:
    template_body = template.request_body_template.for_kind(kind)
    if kind == "tts":
        return vendor.request_body or template_body
    # Stored vendor bodies are usually synthesis bodies, prefer the template's recognition body
    return template_body or vendor.request_body


def _parse_body(rendered: str, template: Template) -> Any:
    try:
        return json.loads(rendered)
    except ValueError as e:
        raise ConfigurationError(f"Request body template of '{template.id}' is not valid JSON after rendering: {e}") from e


def _prune_unresolved(body: Any) -> Any:
    """Drop object members whose value is still a bare ``{placeholder}``."""
    if isinstance(body, dict):
        return {
            k: _prune_unresolved(v)
            for k, v in body.items()
            if not (isinstance(v, str) and PLACEHOLDER_RE.fullmatch(v))
        }
    if isinstance(body, list):
        return [_prune_unresolved(v) for v in body]
    return body


def _form_fields(body: Any) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    if not isinstance(body, dict):
        return fields
    for key, value in body.items():
        if value is None or isinstance(value, (dict, list)):
            continue
        if isinstance(value, str) and PLACEHOLDER_RE.fullmatch(value):
            # optional field left unresolved
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        fields[key] = str(value)
    return fields


def build(template: Template, vendor: VendorConfig, params: CallParameters) -> TransportRequest:
    """Render a template and vendor configuration into a transport-ready request."""
    kind = params.service_kind
    if not vendor.supports(kind):
        raise ConfigurationError(f"Vendor '{vendor.name}' does not support service kind '{kind}'")

    base_url = (vendor.api_url or template.default_api_url or "").strip()
    if not base_url:
        raise ConfigurationError(f"Vendor '{vendor.name}' has no API URL configured")

    auth_headers = build_auth_headers(template, vendor)
    variables = build_variables(template, vendor, params)
    url = render_url(resolve_url(template, kind, base_url), variables)

    request = TransportRequest(
        url=url,
        method=vendor.method or template.default_method,
        model_id=variables.get("model"),
        voice=variables.get("voice"),
    )

    body_template = _body_template(template, vendor, kind)
    headers: Dict[str, str] = {}
    if kind in template.multipart:
        fmt = variables.get("format") or "wav"
        body = _parse_body(render(body_template, variables), template) if body_template else {}
        request.data = _form_fields(body)
        request.files = {
            template.multipart_file_field: (f"audio.{fmt}", encode_for_request(params.audio, "binary"), f"audio/{fmt}")
        }
    else:
        if not body_template:
            raise ConfigurationError(f"Template '{template.id}' has no {kind} request body")
        request.json_body = _prune_unresolved(_parse_body(render(body_template, variables), template))
        headers["Content-Type"] = "application/json"

    headers.update(auth_headers)
    protected = {h.lower() for h in headers} | {"content-type"}
    for key, value in (vendor.request_headers or {}).items():
        if key.lower() in protected:
            continue
        headers[key] = value
    request.headers = headers

    debug_log(f"Built {kind} request for vendor={vendor.id} template={template.id} url={url} model={request.model_id}")
    return request
