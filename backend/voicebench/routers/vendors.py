from typing import Any, Dict

from fastapi import APIRouter, Body

from ..deps import get_vendor_service
from ..errors import VoiceBenchError
from ..providers.system_presets import get_system_vendors_for_display
from .http_errors import to_http


router = APIRouter(prefix="/api", tags=["vendors"])


@router.get("/vendors")
async def list_vendors():
    return {"vendors": get_vendor_service().list_masked()}


@router.get("/vendors/system")
async def list_system_vendors():
    return {"vendors": get_system_vendors_for_display()}


@router.get("/vendors/{vendor_id}")
async def get_vendor(vendor_id: str):
    try:
        return get_vendor_service().get(vendor_id).masked()
    except VoiceBenchError as e:
        raise to_http(e)


@router.post("/vendors", status_code=201)
async def create_vendor(payload: Dict[str, Any] = Body(...)):
    try:
        return get_vendor_service().create(payload).masked()
    except VoiceBenchError as e:
        raise to_http(e)


@router.put("/vendors/{vendor_id}")
async def update_vendor(vendor_id: str, updates: Dict[str, Any] = Body(...)):
    try:
        return get_vendor_service().update(vendor_id, updates).masked()
    except VoiceBenchError as e:
        raise to_http(e)


@router.delete("/vendors/{vendor_id}")
async def delete_vendor(vendor_id: str):
    try:
        get_vendor_service().delete(vendor_id)
    except VoiceBenchError as e:
        raise to_http(e)
    return {"message": "Vendor deleted", "id": vendor_id}
