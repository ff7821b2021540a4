import re
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


ServiceKind = Literal["asr", "tts"]
ServiceType = Literal["asr", "tts", "both"]
AuthType = Literal["bearer", "apikey", "custom"]
HTTPMethod = Literal["GET", "POST", "PUT", "PATCH"]
AudioFormat = Literal["base64", "hex", "url", "binary", "stream"]
JobStatus = Literal["queued", "running", "completed", "failed", "paused"]
ResultStatus = Literal["success", "failed"]

TERMINAL_STATUSES = ("completed", "failed")

# Fields a system-provisioned vendor accepts from the operator
SYSTEM_OVERRIDE_FIELDS = ("selected_models", "selected_voice", "custom_models", "enabled")

MASK = "***"

# Optional scheme word followed by nothing but {placeholders}, e.g. "Bearer {api_key}"
_TEMPLATED_AUTH_RE = re.compile(r"^\s*(?:[A-Za-z][A-Za-z-]*\s+)?(?:\{\w+\}[\s:=;,-]*)+$")


def mask_auth_header(header: Optional[str]) -> Optional[str]:
    """Hide the value of a "Name: value" auth header unless it only holds placeholders."""
    if not header:
        return header
    name, sep, value = header.partition(":")
    if not sep:
        return MASK
    if _TEMPLATED_AUTH_RE.match(value):
        return header
    return f"{name.strip()}: {MASK}"


class VoiceDefinition(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    gender: Optional[Literal["male", "female", "neutral"]] = None
    language: Optional[str] = None


class ModelDefinition(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    type: ServiceKind
    voices: List[VoiceDefinition] = []
    supported_formats: List[str] = []
    speed_range: Optional[Tuple[float, float]] = None
    supported_languages: List[str] = []
    max_file_size: Optional[int] = None


class PerKind(BaseModel):
    """A value chosen separately for recognition (asr) and synthesis (tts)."""

    asr: Optional[str] = None
    tts: Optional[str] = None

    def for_kind(self, kind: ServiceKind) -> Optional[str]:
        return getattr(self, kind)


class Template(BaseModel):
    """Declarative description of one vendor API shape."""

    id: str
    name: str
    description: str = ""
    default_api_url: str = ""
    default_method: HTTPMethod = "POST"
    auth_type: AuthType = "bearer"
    # Default "Header-Name: value" pattern for custom auth, e.g. "xi-api-key: {api_key}"
    auth_header: Optional[str] = None
    request_body_template: PerKind = Field(default_factory=PerKind)
    # Service kinds sent as a multipart attachment instead of a JSON body
    multipart: List[ServiceKind] = []
    multipart_file_field: str = "file"
    response_text_path: Optional[str] = None
    response_audio_path: Optional[str] = None
    response_audio_format: AudioFormat = "base64"
    error_path: Optional[str] = None
    # Business errors reported inside a 2xx body
    error_code_path: Optional[str] = None
    success_code: Any = 0
    models: List[ModelDefinition] = []
    default_model: PerKind = Field(default_factory=PerKind)
    allow_custom_model: bool = True
    is_builtin: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def find_model(self, model_id: Optional[str]) -> Optional[ModelDefinition]:
        for model in self.models:
            if model.id == model_id:
                return model
        return None


class VendorConfig(BaseModel):
    """One credentialed instance of a template."""

    id: str
    name: str
    service_type: ServiceType = "both"
    api_url: str = ""
    method: HTTPMethod = "POST"
    auth_type: AuthType = "bearer"
    api_key: Optional[str] = None
    app_id: Optional[str] = None
    auth_header: Optional[str] = None
    template_type: str = "custom"
    request_body: Optional[str] = None
    request_headers: Dict[str, str] = {}
    response_text_path: Optional[str] = None
    response_audio_path: Optional[str] = None
    response_audio_format: Optional[AudioFormat] = None
    error_path: Optional[str] = None
    selected_models: PerKind = Field(default_factory=PerKind)
    selected_voice: Optional[str] = None
    custom_models: PerKind = Field(default_factory=PerKind)
    enabled: bool = True
    is_system: bool = False

    def supports(self, kind: ServiceKind) -> bool:
        return self.service_type == "both" or self.service_type == kind

    def masked(self) -> Dict[str, Any]:
        """Representation safe to hand to anything outside the engine."""
        data = self.model_dump()
        data["api_key"] = MASK if self.api_key else None
        data["app_id"] = MASK if self.app_id else None
        data["auth_header"] = mask_auth_header(self.auth_header)
        data["request_headers"] = {k: MASK for k in self.request_headers}
        return data


class CallParameters(BaseModel):
    service_kind: ServiceKind
    text: Optional[str] = None
    audio: Optional[bytes] = None
    language: Optional[str] = None
    format: Optional[str] = None
    speed: Optional[float] = None
    pitch: Optional[float] = None
    volume: Optional[float] = None
    voice: Optional[str] = None


class CallResult(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    vendor_id: str
    vendor_name: Optional[str] = None
    template_type: Optional[str] = None
    model_id: Optional[str] = None
    voice: Optional[str] = None
    input_index: int = 0
    run_index: int = 1
    text: Optional[str] = None
    audio: Optional[bytes] = Field(default=None, exclude=True)
    audio_format: Optional[str] = None
    audio_ref: Optional[str] = None
    audio_url: Optional[str] = None
    elapsed: float = 0.0
    ttfb: Optional[float] = None
    cost: float = 0.0
    pricing: Dict[str, Any] = {}
    wer: Optional[float] = None
    audio_duration: Optional[float] = None
    # elapsed / audio_duration
    rtf: Optional[float] = None
    attempts: int = 1
    status: ResultStatus = "success"
    error: Optional[str] = None


class JobInput(BaseModel):
    text: Optional[str] = None
    audio_ref: Optional[str] = None
    reference_text: Optional[str] = None


class JobOptions(BaseModel):
    language: Optional[str] = None
    format: Optional[str] = None
    speed: Optional[float] = None
    pitch: Optional[float] = None
    volume: Optional[float] = None
    voice: Optional[str] = None
    # vendor id -> voice id
    vendor_voices: Dict[str, str] = {}
    retry_count: int = 1
    max_concurrency: Optional[int] = None
    timeout: Optional[float] = None


class CurrentUnit(BaseModel):
    vendor: Optional[str] = None
    run_index: Optional[int] = None
    input_index: Optional[int] = None


class Job(BaseModel):
    id: str
    service_kind: ServiceKind
    status: JobStatus = "queued"
    vendor_ids: List[str] = []
    repetitions: int = 1
    total: int = 0
    completed: int = 0
    failed: int = 0
    current: CurrentUnit = Field(default_factory=CurrentUnit)
    results: List[CallResult] = []
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error: Optional[str] = None

    @property
    def percentage(self) -> int:
        if self.total <= 0:
            return 0
        return min(100, round((self.completed + self.failed) / self.total * 100))


class ProgressSnapshot(BaseModel):
    job_id: str
    status: JobStatus
    total: int
    completed: int
    failed: int
    percentage: int
    current: CurrentUnit
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error: Optional[str] = None
    results: List[CallResult] = []
    next_cursor: int = 0


class JobCreate(BaseModel):
    service_kind: ServiceKind = "tts"
    vendor_ids: List[str]
    text_inputs: Optional[List[str]] = None
    audio_refs: Optional[List[str]] = None
    reference_texts: Optional[List[str]] = None
    repetitions: int = 1
    options: JobOptions = Field(default_factory=JobOptions)


class TemplateLoadRequest(BaseModel):
    url: str
    import_templates: bool = False
