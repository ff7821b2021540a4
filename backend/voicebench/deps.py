"""Process-wide singletons handed to the routers."""
from typing import Optional

import httpx

from .config import CALL_TIMEOUT_SECONDS, DB_PATH, JOB_MAX_CONCURRENCY, STORAGE_AUDIO_DIR, USER_TEMPLATES_PATH
from .providers.executor import CallExecutor
from .providers.registry import TemplateRegistry
from .services.job_store import JobStore
from .services.orchestrator import BatchOrchestrator
from .services.vendor_service import VendorService
from .storage import AudioStore

_registry: Optional[TemplateRegistry] = None
_vendor_service: Optional[VendorService] = None
_audio_store: Optional[AudioStore] = None
_http_client: Optional[httpx.AsyncClient] = None
_orchestrator: Optional[BatchOrchestrator] = None


def get_registry() -> TemplateRegistry:
    global _registry
    if _registry is None:
        _registry = TemplateRegistry(USER_TEMPLATES_PATH)
        _registry.initialize()
    return _registry


def get_vendor_service() -> VendorService:
    global _vendor_service
    if _vendor_service is None:
        _vendor_service = VendorService(DB_PATH)
    return _vendor_service


def get_audio_store() -> AudioStore:
    global _audio_store
    if _audio_store is None:
        _audio_store = AudioStore(STORAGE_AUDIO_DIR)
    return _audio_store


def get_http_client() -> httpx.AsyncClient:
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(timeout=CALL_TIMEOUT_SECONDS)
    return _http_client


def get_orchestrator() -> BatchOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = BatchOrchestrator(
            registry=get_registry(),
            vendors=get_vendor_service(),
            executor=CallExecutor(get_http_client(), CALL_TIMEOUT_SECONDS),
            store=JobStore(DB_PATH),
            audio_store=get_audio_store(),
            max_concurrency=JOB_MAX_CONCURRENCY,
            timeout=CALL_TIMEOUT_SECONDS,
        )
    return _orchestrator


async def close_http_client() -> None:
    global _http_client
    if _http_client is not None:
        await _http_client.aclose()
        _http_client = None
