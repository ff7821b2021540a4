import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Tuple

import httpx

from ..config import CALL_TIMEOUT_SECONDS, logger, debug_log
from ..errors import ExtractionError, VendorError
from ..models import CallParameters, CallResult, Template, VendorConfig
from ..utils import get_precision_timer
from .audio_codec import decode_from_response
from .paths import MISSING, extract
from .request_builder import TransportRequest, build

# Tried when a template declares no text path
TEXT_FALLBACK_PATHS = ("text", "result.text")


def _parse_json(raw: bytes) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return MISSING


def _error_message(tree: Any, error_path: Optional[str], fallback: str) -> str:
    if error_path and tree is not MISSING:
        found = extract(tree, error_path)
        if found is not MISSING and str(found).strip():
            return str(found)
    return fallback


class CallExecutor:
    """Runs one vendor call end to end and normalizes the outcome into a CallResult.

    Vendor-side failures (HTTP errors, business errors, unexpected response
    shapes, timeouts) come back as a failed result. ConfigurationError is raised
    before any network traffic and propagates to the caller.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = CALL_TIMEOUT_SECONDS):
        self._client = client
        self.timeout = timeout

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient() as client:
            yield client

    async def call(
        self,
        template: Template,
        vendor: VendorConfig,
        params: CallParameters,
        run_index: int = 1,
        input_index: int = 0,
    ) -> CallResult:
        request = build(template, vendor, params)
        kind = params.service_kind
        result = CallResult(
            vendor_id=vendor.id,
            vendor_name=vendor.name,
            template_type=template.id,
            model_id=request.model_id,
            voice=request.voice if kind == "tts" else None,
            run_index=run_index,
            input_index=input_index,
        )

        timer = get_precision_timer()
        start = timer()
        try:
            async with self._http() as client:
                if kind == "asr":
                    result.text = await self._recognize(client, request, template, vendor)
                else:
                    audio, ttfb, fmt = await self._synthesize(client, request, template, vendor, start)
                    result.audio = audio
                    result.ttfb = ttfb
                    result.audio_format = fmt or params.format or "mp3"
            result.status = "success"
        except (VendorError, ExtractionError) as e:
            result.status = "failed"
            result.error = str(e)
        except httpx.TimeoutException:
            result.status = "failed"
            result.error = f"Request timed out after {self.timeout}s"
        except httpx.HTTPError as e:
            result.status = "failed"
            result.error = f"Transport error: {e}"
        finally:
            result.elapsed = timer() - start

        if result.status == "failed":
            logger.error(f"{vendor.name} {kind} call failed after {result.elapsed:.3f}s: {result.error}")
        else:
            logger.info(f"{vendor.name} {kind} call succeeded in {result.elapsed:.3f}s (model={result.model_id})")
        return result

    def _send(self, client: httpx.AsyncClient, request: TransportRequest):
        kwargs = {"headers": request.headers, "timeout": self.timeout}
        if request.is_multipart:
            kwargs["data"] = request.data
            kwargs["files"] = request.files
        elif request.json_body is not None:
            kwargs["json"] = request.json_body
        return client.stream(request.method, request.url, **kwargs)

    def _check_response(self, resp: httpx.Response, raw: bytes, template: Template, vendor: VendorConfig) -> Any:
        tree = _parse_json(raw)
        error_path = vendor.error_path or template.error_path
        if resp.status_code < 200 or resp.status_code >= 300:
            fallback = resp.reason_phrase or raw.decode("utf-8", errors="replace")[:500]
            message = _error_message(tree, error_path, fallback)
            raise VendorError(f"HTTP {resp.status_code}: {message}", status_code=resp.status_code)
        if template.error_code_path and tree is not MISSING:
            code = extract(tree, template.error_code_path)
            if code is not MISSING and code != template.success_code:
                message = _error_message(tree, error_path, f"vendor error code {code}")
                raise VendorError(f"Vendor error {code}: {message}", status_code=resp.status_code)
        return tree

    async def _recognize(
        self, client: httpx.AsyncClient, request: TransportRequest, template: Template, vendor: VendorConfig
    ) -> str:
        async with self._send(client, request) as resp:
            raw = await resp.aread()
        tree = self._check_response(resp, raw, template, vendor)
        if tree is MISSING:
            raise ExtractionError("Recognition response is not valid JSON")

        text_path = vendor.response_text_path or template.response_text_path
        paths = (text_path,) if text_path else TEXT_FALLBACK_PATHS
        for path in paths:
            text = extract(tree, path)
            if text is not MISSING and str(text).strip():
                return str(text)
        raise ExtractionError(f"Could not extract text from response at '{text_path or 'text'}'; check response_text_path")

    async def _synthesize(
        self,
        client: httpx.AsyncClient,
        request: TransportRequest,
        template: Template,
        vendor: VendorConfig,
        start: float,
    ) -> Tuple[bytes, Optional[float], Optional[str]]:
        timer = get_precision_timer()
        ttfb: Optional[float] = None
        async with self._send(client, request) as resp:
            content_type = resp.headers.get("content-type", "")
            if "application/json" in content_type or resp.status_code >= 300:
                raw = await resp.aread()
                ttfb = timer() - start
            else:
                chunks = []
                async for chunk in resp.aiter_bytes():
                    if ttfb is None:
                        ttfb = timer() - start
                    chunks.append(chunk)
                raw = b"".join(chunks)

        if "application/json" not in content_type:
            self._check_response(resp, raw, template, vendor)
            if not raw:
                raise ExtractionError("Vendor returned an empty audio body")
            debug_log(f"{vendor.name} returned {len(raw)} audio bytes ({content_type or 'unknown type'})")
            return raw, ttfb, _format_from_content_type(content_type)

        tree = self._check_response(resp, raw, template, vendor)
        if tree is MISSING:
            raise ExtractionError("Synthesis response declared JSON but could not be parsed")
        audio = await decode_from_response(
            tree,
            template,
            client,
            audio_path=vendor.response_audio_path,
            audio_format=vendor.response_audio_format,
            timeout=self.timeout,
        )
        if not audio:
            raise ExtractionError("Decoded audio payload is empty")
        return audio, ttfb, None


def _format_from_content_type(content_type: str) -> Optional[str]:
    ct = content_type.lower()
    if "wav" in ct:
        return "wav"
    if "mpeg" in ct or "mp3" in ct:
        return "mp3"
    if "ogg" in ct or "opus" in ct:
        return "ogg"
    if "flac" in ct:
        return "flac"
    return None
