"""Audio payload encoding between vendors and the engine.

Vendors ship audio inline (base64 or hex text), as a raw attachment or body,
or as a URL that has to be fetched in a second request.
"""
import base64
import binascii
from typing import Any, Optional, Union

import httpx

from ..config import logger, debug_log
from ..errors import ExtractionError, VendorError
from ..models import Template
from .paths import MISSING, extract

# Tried in order when the inline audio value is empty or absent
URL_FALLBACK_PATHS = ("output.audio.url", "audio.url", "data.url", "url")


def encode_for_request(data: bytes, encoding: str = "base64") -> Union[str, bytes]:
    if encoding == "base64":
        return base64.b64encode(data).decode("ascii")
    if encoding == "hex":
        return data.hex()
    if encoding in ("binary", "stream"):
        return data
    raise ValueError(f"Unsupported request audio encoding: {encoding}")


def decode_inline(value: str, encoding: str) -> bytes:
    value = value.strip()
    try:
        if encoding == "hex":
            return bytes.fromhex(value)
        if value.startswith("data:") and "," in value:
            value = value.split(",", 1)[1]
        return base64.b64decode(value, validate=True)
    except (ValueError, binascii.Error) as e:
        raise ExtractionError(f"Failed to decode {encoding} audio payload: {e}") from e


def _fallback_url(tree: Any, audio_path: Optional[str]) -> Optional[str]:
    candidates = []
    if audio_path and "." in audio_path:
        candidates.append(audio_path.rsplit(".", 1)[0] + ".url")
    candidates.extend(URL_FALLBACK_PATHS)
    for path in candidates:
        found = extract(tree, path)
        if isinstance(found, str) and found.strip():
            return found.strip()
    return None


async def fetch_audio(url: str, client: Optional[httpx.AsyncClient] = None, timeout: float = 60.0) -> bytes:
    debug_log(f"Fetching audio from secondary URL: {url}")
    try:
        if client is None:
            async with httpx.AsyncClient() as own_client:
                resp = await own_client.get(url, timeout=timeout)
        else:
            resp = await client.get(url, timeout=timeout)
    except httpx.HTTPError as e:
        raise VendorError(f"Failed to download audio from URL: {e}") from e
    if resp.status_code >= 400:
        raise VendorError(f"Failed to download audio from URL: HTTP {resp.status_code} {resp.reason_phrase}",
                          status_code=resp.status_code)
    return resp.content


async def decode_from_response(
    tree: Any,
    template: Template,
    client: Optional[httpx.AsyncClient] = None,
    audio_path: Optional[str] = None,
    audio_format: Optional[str] = None,
    timeout: float = 60.0,
) -> bytes:
    """Pull audio bytes out of a parsed JSON response.

    The value at the audio path is decoded per the declared format. When it is
    empty or absent, a sibling ``url`` field is fetched instead.
    """
    path = audio_path if audio_path is not None else template.response_audio_path
    fmt = audio_format or template.response_audio_format

    value = extract(tree, path) if path else MISSING
    if isinstance(value, str) and value.strip():
        if fmt == "url":
            return await fetch_audio(value.strip(), client, timeout)
        if fmt in ("base64", "hex"):
            return decode_inline(value, fmt)
        return value.encode("latin-1", errors="replace")
    if isinstance(value, list) and value and all(isinstance(b, int) and 0 <= b < 256 for b in value):
        return bytes(value)

    url = _fallback_url(tree, path)
    if url:
        logger.info(f"Inline audio missing at '{path}', downloading from response URL")
        return await fetch_audio(url, client, timeout)
    raise ExtractionError(f"Could not extract audio from response at path '{path}'; check response_audio_path")
