from fastapi import APIRouter, File, HTTPException, UploadFile
from fastapi.responses import Response

from ..deps import get_audio_store
from ..errors import VoiceBenchError
from ..storage import media_type_for
from .http_errors import to_http


router = APIRouter(prefix="/api", tags=["files"])

MAX_UPLOAD_BYTES = 25 * 1024 * 1024


@router.get("/audio/{filename}")
async def serve_audio(filename: str):
    try:
        content = await get_audio_store().retrieve(filename)
    except VoiceBenchError as e:
        raise to_http(e)
    return Response(content=content, media_type=media_type_for(filename))


@router.post("/audio", status_code=201)
async def upload_audio(file: UploadFile = File(...)):
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded audio is empty")
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail="Uploaded audio exceeds 25 MB")
    name = file.filename or ""
    ext = name.rsplit(".", 1)[-1] if "." in name else "wav"
    filename = await get_audio_store().store(content, ext, prefix="upload")
    return {"audio_ref": filename, "url": f"/api/audio/{filename}", "size": len(content)}
