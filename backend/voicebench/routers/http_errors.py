from fastapi import HTTPException

from ..errors import (
    ConfigurationError,
    ConflictError,
    NotEditableError,
    NotFoundError,
    VendorError,
    VoiceBenchError,
)
from ..storage import InvalidFilenameError


def to_http(e: VoiceBenchError) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ConflictError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, NotEditableError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, (ConfigurationError, InvalidFilenameError)):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, VendorError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))
