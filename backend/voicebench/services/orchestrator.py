"""Batch execution: N inputs x M vendors x R repetitions as one background job.

Units run in input -> vendor -> repetition order. A fixed pool of workers pulls
units off the queue, so in-flight calls never exceed the job's concurrency;
results are appended in unit order even when calls finish out of order, and
each one is persisted before the counters that report it.
"""
import asyncio
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Tuple

from ..config import CALL_TIMEOUT_SECONDS, JOB_MAX_CONCURRENCY, MAX_CONCURRENCY, MAX_REPETITIONS, logger, debug_log
from ..errors import ConfigurationError, VoiceBenchError
from ..models import (
    TERMINAL_STATUSES,
    CallParameters,
    CallResult,
    CurrentUnit,
    Job,
    JobInput,
    JobOptions,
    ProgressSnapshot,
    ServiceKind,
    Template,
    VendorConfig,
)
from ..pricing import calculate_cost
from ..providers.executor import CallExecutor
from ..providers.registry import TemplateRegistry
from ..storage import AudioStore
from ..utils import calculate_rtf, calculate_wer, get_audio_duration_seconds
from .job_store import JobStore


class VendorLookup(Protocol):
    def get(self, vendor_id: str) -> VendorConfig: ...


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def clamp_concurrency(concurrency: Optional[int]) -> int:
    return max(1, min(MAX_CONCURRENCY, int(concurrency or 1)))


def clamp_repetitions(repetitions: Optional[int]) -> int:
    return max(1, min(MAX_REPETITIONS, int(repetitions or 1)))


class BatchOrchestrator:
    def __init__(
        self,
        registry: TemplateRegistry,
        vendors: VendorLookup,
        executor: CallExecutor,
        store: JobStore,
        audio_store: AudioStore,
        max_concurrency: int = JOB_MAX_CONCURRENCY,
        timeout: float = CALL_TIMEOUT_SECONDS,
    ):
        self.registry = registry
        self.vendors = vendors
        self.executor = executor
        self.store = store
        self.audio_store = audio_store
        self.max_concurrency = clamp_concurrency(max_concurrency)
        self.timeout = timeout
        self._jobs: Dict[str, Job] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    async def start_job(
        self,
        vendor_ids: List[str],
        inputs: List[JobInput],
        repetitions: int = 1,
        service_kind: ServiceKind = "tts",
        options: Optional[JobOptions] = None,
    ) -> str:
        """Create the job and schedule it; returns the job id without waiting."""
        if not vendor_ids:
            raise ConfigurationError("At least one vendor is required")
        if not inputs:
            raise ConfigurationError("At least one input is required")
        for i, inp in enumerate(inputs):
            if service_kind == "tts" and not (inp.text or "").strip():
                raise ConfigurationError(f"Input {i} has no text to synthesize")
            if service_kind == "asr" and not inp.audio_ref:
                raise ConfigurationError(f"Input {i} has no audio to recognize")

        vendors = [self.vendors.get(vendor_id) for vendor_id in vendor_ids]
        options = options or JobOptions()
        repetitions = clamp_repetitions(repetitions)

        job = Job(
            id=str(uuid.uuid4()),
            service_kind=service_kind,
            status="queued",
            vendor_ids=list(vendor_ids),
            repetitions=repetitions,
            total=len(inputs) * len(vendors) * repetitions,
            started_at=_now(),
        )
        self.store.create(job, inputs, options)
        self._jobs[job.id] = job
        self._tasks[job.id] = asyncio.create_task(self._run(job, vendors, inputs, options))
        logger.info(
            f"Job {job.id} queued: {service_kind} x {len(inputs)} inputs x {len(vendors)} vendors x {repetitions} runs"
        )
        return job.id

    async def wait(self, job_id: str) -> Job:
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)
        return self._get_job(job_id)

    def _get_job(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            job = self.store.get(job_id)
        return job

    def get_progress(self, job_id: str, cursor: int = 0) -> ProgressSnapshot:
        job = self._get_job(job_id)
        cursor = max(0, cursor)
        results = list(job.results[cursor:])
        return ProgressSnapshot(
            job_id=job.id,
            status=job.status,
            total=job.total,
            completed=job.completed,
            failed=job.failed,
            percentage=job.percentage,
            current=job.current,
            started_at=job.started_at,
            completed_at=job.completed_at,
            error=job.error,
            results=results,
            next_cursor=cursor + len(results),
        )

    def pause_job(self, job_id: str) -> Job:
        job = self._get_job(job_id)
        if job.status in TERMINAL_STATUSES or job.status == "paused":
            return job
        if job_id not in self._tasks:
            # Stored job from an earlier process, nothing is running it
            return job
        job.status = "paused"
        self.store.update(job_id, status="paused")
        logger.info(f"Job {job_id} paused after {job.completed + job.failed}/{job.total} units")
        return job

    def list_jobs(self, limit: int = 50) -> List[Job]:
        jobs = self.store.list(limit)
        return [self._jobs.get(j.id, j) for j in jobs]

    async def _run(self, job: Job, vendors: List[VendorConfig], inputs: List[JobInput], options: JobOptions) -> None:
        if job.status == "queued":
            job.status = "running"
            self.store.update(job.id, status="running")

        units = [
            (input_index, vendor, run_index)
            for input_index in range(len(inputs))
            for vendor in vendors
            for run_index in range(1, job.repetitions + 1)
        ]
        pending = deque(enumerate(units))
        commit_lock = asyncio.Lock()
        finished: Dict[int, CallResult] = {}
        next_seq = 0

        async def commit(seq: int, result: CallResult) -> None:
            nonlocal next_seq
            async with commit_lock:
                finished[seq] = result
                while next_seq in finished:
                    ready = finished.pop(next_seq)
                    if ready.status == "success":
                        completed, failed = job.completed + 1, job.failed
                    else:
                        completed, failed = job.completed, job.failed + 1
                    self.store.append_result(job.id, next_seq, ready, completed, failed)
                    job.results.append(ready)
                    job.completed, job.failed = completed, failed
                    next_seq += 1

        async def worker() -> None:
            while pending and job.status != "paused":
                seq, (input_index, vendor, run_index) = pending.popleft()
                job.current = CurrentUnit(vendor=vendor.name, run_index=run_index, input_index=input_index)
                self.store.update(job.id, current=job.current)
                result = await self._execute_unit(job, vendor, inputs[input_index], input_index, run_index, options)
                await commit(seq, result)

        concurrency = clamp_concurrency(options.max_concurrency or self.max_concurrency)
        workers = [asyncio.create_task(worker()) for _ in range(min(concurrency, len(units)))]
        try:
            await asyncio.gather(*workers)
        except Exception as e:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            logger.exception(f"Job {job.id} failed: {e}")
            self._abort_remaining(job, units, next_seq, finished, f"Job aborted: {e}")
            job.status = "failed"
            job.error = str(e)
            job.completed_at = _now()
            self.store.update(job.id, status="failed", error=job.error, completed_at=job.completed_at)
            return

        if job.status == "paused":
            logger.info(f"Job {job.id} stopped while paused at {job.completed + job.failed}/{job.total}")
            return
        job.status = "completed"
        job.completed_at = _now()
        self.store.update(job.id, status="completed", completed_at=job.completed_at)
        logger.info(f"Job {job.id} completed: {job.completed} succeeded, {job.failed} failed")

    def _abort_remaining(self, job: Job, units: List[Tuple[int, VendorConfig, int]], next_seq: int,
                         finished: Dict[int, CallResult], message: str) -> None:
        """Record every uncommitted unit as failed so the counters cover the whole matrix."""
        for seq in range(next_seq, len(units)):
            input_index, vendor, run_index = units[seq]
            result = finished.get(seq) or self._failed(vendor, input_index, run_index, message)
            if result.status == "success":
                job.completed += 1
            else:
                job.failed += 1
            job.results.append(result)
            try:
                self.store.append_result(job.id, seq, result, job.completed, job.failed)
            except Exception:
                logger.exception(f"Job {job.id} could not persist result {seq} while aborting")

    def _failed(self, vendor: VendorConfig, input_index: int, run_index: int, message: str,
                template: Optional[Template] = None) -> CallResult:
        return CallResult(
            vendor_id=vendor.id,
            vendor_name=vendor.name,
            template_type=template.id if template else vendor.template_type,
            input_index=input_index,
            run_index=run_index,
            status="failed",
            error=message,
        )

    async def _params_for(self, job: Job, vendor: VendorConfig, inp: JobInput, options: JobOptions) -> CallParameters:
        params = CallParameters(
            service_kind=job.service_kind,
            language=options.language,
            format=options.format,
            speed=options.speed,
            pitch=options.pitch,
            volume=options.volume,
            voice=options.vendor_voices.get(vendor.id) or options.voice,
        )
        if job.service_kind == "tts":
            params.text = inp.text
        else:
            params.audio = await self.audio_store.retrieve(inp.audio_ref)
            if not params.format and "." in inp.audio_ref:
                params.format = inp.audio_ref.rsplit(".", 1)[-1].lower()
        return params

    async def _execute_unit(
        self,
        job: Job,
        vendor: VendorConfig,
        inp: JobInput,
        input_index: int,
        run_index: int,
        options: JobOptions,
    ) -> CallResult:
        template = self.registry.get(vendor.template_type)
        try:
            if not vendor.enabled:
                raise ConfigurationError(f"Vendor '{vendor.name}' is disabled")
            if template is None:
                raise ConfigurationError(f"Vendor '{vendor.name}' references unknown template '{vendor.template_type}'")
            params = await self._params_for(job, vendor, inp, options)
        except VoiceBenchError as e:
            logger.warning(f"Job {job.id} unit ({input_index}, {vendor.id}, {run_index}) not runnable: {e}")
            return self._failed(vendor, input_index, run_index, str(e), template)
        except OSError as e:
            logger.exception(f"Job {job.id} unit ({input_index}, {vendor.id}, {run_index}) input unreadable: {e}")
            return self._failed(vendor, input_index, run_index, f"Input unreadable: {e}", template)

        timeout = options.timeout or self.timeout
        attempts = max(1, options.retry_count)
        result: Optional[CallResult] = None
        for attempt in range(1, attempts + 1):
            try:
                result = await asyncio.wait_for(
                    self.executor.call(template, vendor, params, run_index=run_index, input_index=input_index),
                    timeout=timeout,
                )
            except ConfigurationError as e:
                return self._failed(vendor, input_index, run_index, str(e), template)
            except asyncio.TimeoutError:
                result = self._failed(vendor, input_index, run_index, f"Request timed out after {timeout}s", template)
                result.elapsed = timeout
            except VoiceBenchError as e:
                result = self._failed(vendor, input_index, run_index, str(e), template)
            except Exception as e:
                logger.exception(f"Job {job.id} unit ({input_index}, {vendor.id}, {run_index}) raised: {e}")
                result = self._failed(vendor, input_index, run_index, str(e) or type(e).__name__, template)
            result.attempts = attempt
            if result.status == "success":
                break
            if attempt < attempts:
                logger.warning(f"Retrying {vendor.name} ({attempt}/{attempts}) after error: {result.error}")

        if result.status == "success":
            try:
                await self._enrich(job, template, inp, params, result)
            except Exception as e:
                logger.exception(f"Job {job.id} unit ({input_index}, {vendor.id}, {run_index}) post-processing failed: {e}")
                failed = self._failed(vendor, input_index, run_index, f"Post-processing failed: {e}", template)
                failed.model_id, failed.voice = result.model_id, result.voice
                failed.elapsed, failed.ttfb, failed.attempts = result.elapsed, result.ttfb, result.attempts
                result = failed
        debug_log(f"Job {job.id} unit ({input_index}, {vendor.id}, {run_index}) -> {result.status}")
        return result

    async def _enrich(self, job: Job, template: Template, inp: JobInput, params: CallParameters,
                      result: CallResult) -> None:
        """Store synthesized audio and attach duration, cost and quality metrics."""
        duration: Optional[float] = None
        if job.service_kind == "tts":
            filename = await self.audio_store.store(result.audio or b"", result.audio_format or "mp3")
            result.audio = None
            result.audio_ref = filename
            result.audio_url = f"/api/audio/{filename}"
            duration = get_audio_duration_seconds(str(self.audio_store.path_for(filename))) or None
            result.audio_duration = duration
            if duration:
                result.rtf = calculate_rtf(result.elapsed, duration)
        else:
            duration = get_audio_duration_seconds(str(self.audio_store.path_for(inp.audio_ref))) or None
            result.audio_duration = duration
            if duration:
                result.rtf = calculate_rtf(result.elapsed, duration)
            if inp.reference_text and result.text is not None:
                result.wer = calculate_wer(inp.reference_text, result.text)

        pricing = calculate_cost(
            job.service_kind,
            template.id,
            result.model_id,
            text_length=len(params.text or ""),
            duration_seconds=duration,
        )
        if pricing:
            result.cost = pricing["amount_usd"]
            result.pricing = pricing


def inputs_from_request(
    service_kind: ServiceKind,
    text_inputs: Optional[List[str]],
    audio_refs: Optional[List[str]],
    reference_texts: Optional[List[str]],
) -> List[JobInput]:
    if service_kind == "tts":
        return [JobInput(text=t) for t in (text_inputs or []) if t and t.strip()]
    references: List[Any] = list(reference_texts or [])
    return [
        JobInput(audio_ref=ref, reference_text=references[i] if i < len(references) else None)
        for i, ref in enumerate(audio_refs or [])
    ]
