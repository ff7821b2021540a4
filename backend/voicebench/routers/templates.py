from typing import Any, Dict, List, Union

from fastapi import APIRouter, Body, HTTPException
from fastapi.responses import Response
from pydantic import ValidationError

from ..deps import get_http_client, get_registry
from ..errors import VoiceBenchError
from ..models import Template, TemplateLoadRequest
from .http_errors import to_http


router = APIRouter(prefix="/api", tags=["templates"])


@router.get("/templates")
async def list_templates(kind: str = "all"):
    registry = get_registry()
    if kind == "builtin":
        templates = registry.get_builtin()
    elif kind == "custom":
        templates = registry.get_custom()
    else:
        templates = registry.get_all()
    return {"templates": [t.model_dump() for t in templates]}


@router.get("/templates/export")
async def export_templates(scope: str = "custom"):
    registry = get_registry()
    content = registry.export_all() if scope == "all" else registry.export_user_defined()
    return Response(
        content=content,
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="templates_{scope}.json"'},
    )


@router.post("/templates/import")
async def import_templates(payload: Union[List[Dict[str, Any]], Dict[str, Any]] = Body(...)):
    try:
        imported = get_registry().import_many(payload)
    except VoiceBenchError as e:
        raise to_http(e)
    return {"imported": len(imported), "templates": [t.model_dump() for t in imported]}


@router.post("/templates/load-url")
async def load_templates_from_url(request: TemplateLoadRequest):
    registry = get_registry()
    try:
        templates = await registry.load_from_url(request.url, get_http_client())
        if request.import_templates:
            imported = registry.import_many([t.model_dump() for t in templates])
            return {"loaded": len(templates), "imported": len(imported), "templates": [t.model_dump() for t in imported]}
    except VoiceBenchError as e:
        raise to_http(e)
    return {"loaded": len(templates), "imported": 0, "templates": [t.model_dump() for t in templates]}


@router.get("/templates/{template_id}")
async def get_template(template_id: str):
    template = get_registry().get(template_id)
    if template is None:
        raise HTTPException(status_code=404, detail="Template not found")
    return template.model_dump()


@router.post("/templates", status_code=201)
async def create_template(template: Template):
    try:
        created = get_registry().add(template)
    except VoiceBenchError as e:
        raise to_http(e)
    return created.model_dump()


@router.put("/templates/{template_id}")
async def update_template(template_id: str, updates: Dict[str, Any] = Body(...)):
    try:
        updated = get_registry().update(template_id, updates)
    except VoiceBenchError as e:
        raise to_http(e)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Invalid template update: {e.error_count()} validation errors")
    return updated.model_dump()


@router.delete("/templates/{template_id}")
async def delete_template(template_id: str):
    try:
        removed = get_registry().remove(template_id)
    except VoiceBenchError as e:
        raise to_http(e)
    if not removed:
        raise HTTPException(status_code=404, detail="Template not found")
    return {"message": "Template deleted", "id": template_id}
