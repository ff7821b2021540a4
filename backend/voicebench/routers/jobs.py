from fastapi import APIRouter, HTTPException

from ..deps import get_orchestrator
from ..errors import VoiceBenchError
from ..models import JobCreate
from ..services.orchestrator import inputs_from_request
from .http_errors import to_http


router = APIRouter(prefix="/api", tags=["jobs"])


@router.post("/jobs")
async def create_job(job_data: JobCreate):
    inputs = inputs_from_request(job_data.service_kind, job_data.text_inputs, job_data.audio_refs, job_data.reference_texts)
    if not inputs:
        raise HTTPException(status_code=400, detail="No usable inputs: provide text_inputs for tts or audio_refs for asr")
    try:
        job_id = await get_orchestrator().start_job(
            vendor_ids=job_data.vendor_ids,
            inputs=inputs,
            repetitions=job_data.repetitions,
            service_kind=job_data.service_kind,
            options=job_data.options,
        )
    except VoiceBenchError as e:
        raise to_http(e)
    return {"job_id": job_id, "status": "queued", "message": "Job created and processing started"}


@router.get("/jobs")
async def list_jobs(limit: int = 50):
    jobs = get_orchestrator().list_jobs(limit)
    return {"jobs": [dict(j.model_dump(exclude={"results"}), percentage=j.percentage) for j in jobs]}


@router.get("/jobs/{job_id}/progress")
async def get_job_progress(job_id: str, cursor: int = 0):
    try:
        return get_orchestrator().get_progress(job_id, cursor).model_dump()
    except VoiceBenchError as e:
        raise to_http(e)


@router.get("/jobs/{job_id}/results")
async def get_job_results(job_id: str):
    try:
        snapshot = get_orchestrator().get_progress(job_id)
    except VoiceBenchError as e:
        raise to_http(e)
    return {"job_id": job_id, "status": snapshot.status, "results": [r.model_dump() for r in snapshot.results]}


@router.post("/jobs/{job_id}/pause")
async def pause_job(job_id: str):
    try:
        job = get_orchestrator().pause_job(job_id)
    except VoiceBenchError as e:
        raise to_http(e)
    return {"job_id": job.id, "status": job.status}
