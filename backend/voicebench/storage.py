import re
import uuid
from pathlib import Path
from typing import Optional, Union

import aiofiles

from .config import STORAGE_AUDIO_DIR, logger
from .errors import NotFoundError, VoiceBenchError

SAFE_FILENAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
SAFE_EXT_RE = re.compile(r"^[A-Za-z0-9]{1,8}$")

MIME_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "opus": "audio/ogg",
    "flac": "audio/flac",
    "aac": "audio/aac",
    "m4a": "audio/mp4",
    "pcm": "audio/L16",
    "webm": "audio/webm",
}


class InvalidFilenameError(VoiceBenchError):
    pass


def media_type_for(filename: str) -> str:
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return MIME_TYPES.get(ext, "application/octet-stream")


class AudioStore:
    """Flat directory of generated and uploaded audio, addressed by opaque filenames."""

    def __init__(self, directory: Optional[Union[str, Path]] = None):
        self.directory = Path(directory) if directory else STORAGE_AUDIO_DIR

    def _resolve(self, filename: str) -> Path:
        if not filename or not SAFE_FILENAME_RE.match(filename) or ".." in filename:
            raise InvalidFilenameError(f"Invalid audio filename: {filename!r}")
        root = self.directory.resolve()
        path = (root / filename).resolve()
        if path.parent != root:
            raise InvalidFilenameError(f"Invalid audio filename: {filename!r}")
        return path

    async def store(self, data: bytes, ext: str = "mp3", prefix: str = "audio") -> str:
        ext = (ext or "mp3").lstrip(".").lower()
        if not SAFE_EXT_RE.match(ext):
            ext = "bin"
        self.directory.mkdir(parents=True, exist_ok=True)
        filename = f"{prefix}_{uuid.uuid4().hex}.{ext}"
        path = self._resolve(filename)
        async with aiofiles.open(path, "wb") as f:
            await f.write(data)
        logger.info(f"Stored {len(data)} bytes of audio as {filename}")
        return filename

    async def retrieve(self, filename: str) -> bytes:
        path = self._resolve(filename)
        if not path.exists():
            raise NotFoundError(f"Audio file not found: {filename}")
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    def path_for(self, filename: str) -> Path:
        return self._resolve(filename)
