"""
Unit tests for the batch orchestrator: unit ordering, failure isolation,
retries, pause, progress cursors and persistence.
"""
import asyncio
import io
import os
import tempfile
import unittest
import wave

import httpx

from voicebench.db import init_database
from voicebench.errors import ConfigurationError, NotFoundError, VendorError
from voicebench.models import CallResult, JobInput, JobOptions, VendorConfig
from voicebench.providers.executor import CallExecutor
from voicebench.providers.registry import TemplateRegistry
from voicebench.services.job_store import JobStore
from voicebench.services.orchestrator import (
    BatchOrchestrator,
    clamp_concurrency,
    clamp_repetitions,
    inputs_from_request,
)
from voicebench.storage import AudioStore


class DictVendors:
    def __init__(self, *vendors):
        self._vendors = {v.id: v for v in vendors}

    def get(self, vendor_id):
        if vendor_id not in self._vendors:
            raise NotFoundError(f"Vendor not found: {vendor_id}")
        return self._vendors[vendor_id]


class GatedExecutor:
    """Executor stand-in whose calls block until released."""

    def __init__(self, delays=None):
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0
        self.delays = delays

    async def call(self, template, vendor, params, run_index=1, input_index=0):
        self.calls += 1
        self.started.set()
        if self.delays is not None:
            await asyncio.sleep(self.delays[run_index])
        else:
            await self.release.wait()
        return CallResult(
            vendor_id=vendor.id,
            vendor_name=vendor.name,
            template_type=template.id,
            run_index=run_index,
            input_index=input_index,
            audio=b"audio",
            audio_format="mp3",
        )


class RaisingExecutor:
    """Executor stand-in that raises for the configured vendors."""

    def __init__(self, raises):
        self.raises = raises
        self.in_flight = 0
        self.max_in_flight = 0

    async def call(self, template, vendor, params, run_index=1, input_index=0):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            if vendor.id in self.raises:
                raise self.raises[vendor.id]
            return CallResult(
                vendor_id=vendor.id,
                vendor_name=vendor.name,
                template_type=template.id,
                run_index=run_index,
                input_index=input_index,
                audio=b"\x01" * 64,
                audio_format="mp3",
            )
        finally:
            self.in_flight -= 1


class BrokenAudioStore(AudioStore):
    async def store(self, data, ext="mp3", prefix="audio"):
        raise OSError("disk full")


def _vendor(vendor_id, template_type="openai", **extra):
    fields = {
        "id": vendor_id,
        "name": vendor_id.upper(),
        "api_url": f"https://{vendor_id}.example.com/v1",
        "auth_type": "bearer",
        "template_type": template_type,
        "api_key": "sk-test",
    }
    fields.update(extra)
    return VendorConfig(**fields)


def _wav_bytes(seconds=1.0, rate=8000):
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(rate)
        wf.writeframes(b"\x00\x00" * int(rate * seconds))
    return buf.getvalue()


class OrchestratorTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.tmpdir.name, "test.db")
        init_database(self.db_path)
        self.store = JobStore(self.db_path)
        self.audio_store = AudioStore(os.path.join(self.tmpdir.name, "audio"))
        self.registry = TemplateRegistry()

    async def asyncTearDown(self):
        self.tmpdir.cleanup()

    def _orchestrator(self, executor, *vendors, max_concurrency=1):
        return BatchOrchestrator(
            registry=self.registry,
            vendors=DictVendors(*vendors),
            executor=executor,
            store=self.store,
            audio_store=self.audio_store,
            max_concurrency=max_concurrency,
            timeout=5,
        )


class TestBatchRuns(OrchestratorTestCase):
    """Test cases for full batch runs against mocked vendors."""

    async def test_two_vendors_three_repetitions(self):
        """Test one input x two vendors x three runs with one vendor always failing."""
        def handler(request):
            if request.url.host == "good.example.com":
                return httpx.Response(200, content=b"\x01" * 64, headers={"content-type": "audio/mpeg"})
            return httpx.Response(500, json={"error": {"message": "internal vendor failure"}})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            orchestrator = self._orchestrator(CallExecutor(client, timeout=5), _vendor("good"), _vendor("bad"))
            job_id = await orchestrator.start_job(["good", "bad"], [JobInput(text="hello world")], repetitions=3)
            job = await orchestrator.wait(job_id)

        self.assertEqual(job.status, "completed")
        self.assertEqual(job.total, 6)
        self.assertEqual(job.completed, 3)
        self.assertEqual(job.failed, 3)
        self.assertEqual(job.completed + job.failed, job.total)
        self.assertIsNotNone(job.completed_at)
        self.assertEqual(
            [(r.vendor_id, r.run_index) for r in job.results],
            [("good", 1), ("good", 2), ("good", 3), ("bad", 1), ("bad", 2), ("bad", 3)],
        )
        for result in job.results[:3]:
            self.assertEqual(result.status, "success")
            self.assertTrue(os.path.exists(self.audio_store.path_for(result.audio_ref)))
            self.assertEqual(result.audio_url, f"/api/audio/{result.audio_ref}")
            self.assertIsNone(result.audio, "Audio bytes should not be kept on the result")
        for result in job.results[3:]:
            self.assertEqual(result.status, "failed")
            self.assertEqual(result.error, "HTTP 500: internal vendor failure")

        stored = self.store.get(job_id)
        self.assertEqual(stored.status, "completed")
        self.assertEqual((stored.completed, stored.failed), (3, 3))
        self.assertEqual([r.vendor_id for r in stored.results], [r.vendor_id for r in job.results])

    async def test_configuration_error_fails_only_its_units(self):
        """Test that a misconfigured vendor fails its own units and the job still completes."""
        def handler(request):
            return httpx.Response(200, content=b"audio", headers={"content-type": "audio/mpeg"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            orchestrator = self._orchestrator(
                CallExecutor(client, timeout=5), _vendor("good"), _vendor("nokey", api_key=None)
            )
            job_id = await orchestrator.start_job(["good", "nokey"], [JobInput(text="a"), JobInput(text="b")])
            job = await orchestrator.wait(job_id)

        self.assertEqual(job.status, "completed")
        self.assertEqual([(r.input_index, r.vendor_id, r.status) for r in job.results], [
            (0, "good", "success"), (0, "nokey", "failed"), (1, "good", "success"), (1, "nokey", "failed"),
        ])
        self.assertIn("no API key", job.results[1].error)

    async def test_unknown_template_and_disabled_vendor(self):
        """Test that vendors that cannot run produce failed results."""
        executor = GatedExecutor(delays={1: 0})
        orchestrator = self._orchestrator(
            executor, _vendor("ghost", template_type="nope"), _vendor("off", enabled=False)
        )
        job_id = await orchestrator.start_job(["ghost", "off"], [JobInput(text="x")])
        job = await orchestrator.wait(job_id)
        self.assertEqual(job.status, "completed")
        self.assertEqual(job.failed, 2)
        self.assertEqual(executor.calls, 0)
        self.assertIn("unknown template", job.results[0].error)
        self.assertIn("disabled", job.results[1].error)

    async def test_retry_until_success(self):
        """Test that retry_count re-attempts a failed unit and records one result."""
        attempts = {"n": 0}

        def handler(request):
            attempts["n"] += 1
            if attempts["n"] == 1:
                return httpx.Response(429, json={"error": {"message": "rate limited"}})
            return httpx.Response(200, content=b"audio", headers={"content-type": "audio/mpeg"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            orchestrator = self._orchestrator(CallExecutor(client, timeout=5), _vendor("good"))
            job_id = await orchestrator.start_job(["good"], [JobInput(text="a")], options=JobOptions(retry_count=2))
            job = await orchestrator.wait(job_id)

        self.assertEqual(len(job.results), 1)
        self.assertEqual(job.results[0].status, "success")
        self.assertEqual(job.results[0].attempts, 2)

    async def test_unit_timeout(self):
        """Test that a call exceeding the job timeout becomes a failed result."""
        executor = GatedExecutor()
        orchestrator = self._orchestrator(executor, _vendor("slow"))
        job_id = await orchestrator.start_job(["slow"], [JobInput(text="a")], options=JobOptions(timeout=0.05))
        job = await orchestrator.wait(job_id)
        self.assertEqual(job.status, "completed")
        self.assertEqual(job.results[0].status, "failed")
        self.assertEqual(job.results[0].error, "Request timed out after 0.05s")

    async def test_results_kept_in_unit_order_under_concurrency(self):
        """Test that out-of-order completions are still appended in unit order."""
        executor = GatedExecutor(delays={1: 0.06, 2: 0.03, 3: 0.0})
        orchestrator = self._orchestrator(executor, _vendor("fast"), max_concurrency=3)
        job_id = await orchestrator.start_job(["fast"], [JobInput(text="a")], repetitions=3)
        job = await orchestrator.wait(job_id)
        self.assertEqual([r.run_index for r in job.results], [1, 2, 3])
        self.assertEqual([r.run_index for r in self.store.get_results(job_id)], [1, 2, 3])

    async def test_recognition_with_reference(self):
        """Test recognition units get WER, duration and cost."""
        def handler(request):
            return httpx.Response(200, json={"output": {"text": "hello there world"}})

        audio_ref = await self.audio_store.store(_wav_bytes(2.0), "wav", prefix="upload")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            orchestrator = self._orchestrator(
                CallExecutor(client, timeout=5),
                _vendor("qw", template_type="qwen", api_url="https://dashscope.aliyuncs.com/api/v1/services/x"),
            )
            job_id = await orchestrator.start_job(
                ["qw"],
                [JobInput(audio_ref=audio_ref, reference_text="hello world")],
                service_kind="asr",
            )
            job = await orchestrator.wait(job_id)

        result = job.results[0]
        self.assertEqual(result.status, "success", result.error)
        self.assertEqual(result.text, "hello there world")
        self.assertAlmostEqual(result.wer, 0.5)
        self.assertAlmostEqual(result.audio_duration, 2.0, places=2)
        self.assertEqual(result.pricing["rule_id"], "qwen-paraformer-v2")
        self.assertGreater(result.cost, 0.0)

    async def test_missing_recognition_audio(self):
        """Test that a missing audio reference fails that unit only."""
        executor = GatedExecutor(delays={1: 0})
        orchestrator = self._orchestrator(executor, _vendor("qw", template_type="qwen"))
        job_id = await orchestrator.start_job(["qw"], [JobInput(audio_ref="upload_missing.wav")], service_kind="asr")
        job = await orchestrator.wait(job_id)
        self.assertEqual(job.status, "completed")
        self.assertEqual(job.results[0].status, "failed")
        self.assertIn("not found", job.results[0].error)

    async def test_raising_executor_fails_only_its_units(self):
        """Test that a vendor whose calls raise fails its own units and the job still completes."""
        executor = RaisingExecutor({"b": VendorError("boom from B", status_code=500)})
        orchestrator = self._orchestrator(executor, _vendor("a"), _vendor("b"), max_concurrency=2)
        job_id = await orchestrator.start_job(["a", "b"], [JobInput(text="hello")], repetitions=3)
        job = await orchestrator.wait(job_id)

        self.assertEqual(job.status, "completed", job.error)
        self.assertEqual((job.total, job.completed, job.failed), (6, 3, 3))
        self.assertIsNone(job.error)
        self.assertEqual(
            [(r.vendor_id, r.run_index, r.status) for r in job.results],
            [("a", 1, "success"), ("a", 2, "success"), ("a", 3, "success"),
             ("b", 1, "failed"), ("b", 2, "failed"), ("b", 3, "failed")],
        )
        for result in job.results[3:]:
            self.assertEqual(result.error, "boom from B", "Vendor messages are kept verbatim")
        stored = self.store.get(job_id)
        self.assertEqual((stored.status, stored.completed, stored.failed), ("completed", 3, 3))

    async def test_unexpected_exception_is_unit_local(self):
        """Test that an arbitrary exception from a call becomes a failed result."""
        executor = RaisingExecutor({"b": RuntimeError("socket exploded")})
        orchestrator = self._orchestrator(executor, _vendor("a"), _vendor("b"))
        job_id = await orchestrator.start_job(["a", "b"], [JobInput(text="x")], options=JobOptions(retry_count=2))
        job = await orchestrator.wait(job_id)
        self.assertEqual(job.status, "completed")
        self.assertEqual([r.status for r in job.results], ["success", "failed"])
        self.assertEqual(job.results[1].error, "socket exploded")
        self.assertEqual(job.results[1].attempts, 2)

    async def test_post_processing_failure_is_unit_local(self):
        """Test that failing to store synthesized audio fails the unit, not the job."""
        self.audio_store = BrokenAudioStore(os.path.join(self.tmpdir.name, "audio"))
        orchestrator = self._orchestrator(RaisingExecutor({}), _vendor("a"))
        job_id = await orchestrator.start_job(["a"], [JobInput(text="x")], repetitions=2)
        job = await orchestrator.wait(job_id)
        self.assertEqual(job.status, "completed")
        self.assertEqual(job.failed, 2)
        self.assertEqual(job.results[0].error, "Post-processing failed: disk full")
        self.assertEqual(job.completed + job.failed, job.total)

    async def test_orchestrator_fault_accounts_for_every_unit(self):
        """Test that a failing result store still leaves counters covering the whole matrix."""
        orchestrator = self._orchestrator(RaisingExecutor({}), _vendor("a"))
        original = self.store.append_result
        calls = {"n": 0}

        def flaky_append(job_id, seq, result, completed, failed):
            calls["n"] += 1
            if calls["n"] == 2:
                raise RuntimeError("database is locked")
            return original(job_id, seq, result, completed, failed)

        self.store.append_result = flaky_append
        job_id = await orchestrator.start_job(["a"], [JobInput(text="x")], repetitions=3)
        job = await orchestrator.wait(job_id)
        self.assertEqual(job.status, "failed")
        self.assertEqual(job.error, "database is locked")
        self.assertEqual(job.completed + job.failed, job.total)
        self.assertEqual(len(job.results), 3)
        self.assertIsNotNone(job.completed_at)

    async def test_worker_pool_bounds_in_flight_calls(self):
        """Test that no more calls than the job concurrency run at once."""
        executor = RaisingExecutor({})
        orchestrator = self._orchestrator(executor, _vendor("a"), _vendor("b"))
        job_id = await orchestrator.start_job(
            ["a", "b"], [JobInput(text="x"), JobInput(text="y")], repetitions=3,
            options=JobOptions(max_concurrency=2),
        )
        job = await orchestrator.wait(job_id)
        self.assertEqual(len(job.results), 12)
        self.assertEqual(executor.max_in_flight, 2)


class TestJobControl(OrchestratorTestCase):
    """Test cases for job creation, pause and progress."""

    async def test_start_returns_before_work(self):
        """Test that start_job returns immediately with a queued job."""
        executor = GatedExecutor()
        orchestrator = self._orchestrator(executor, _vendor("a"))
        job_id = await orchestrator.start_job(["a"], [JobInput(text="x")], repetitions=2)
        progress = orchestrator.get_progress(job_id)
        self.assertIn(progress.status, ("queued", "running"))
        self.assertEqual(progress.total, 2)
        self.assertEqual(progress.completed, 0)
        executor.release.set()
        await orchestrator.wait(job_id)

    async def test_pause_between_units(self):
        """Test that pausing stops the job after the in-flight unit."""
        executor = GatedExecutor()
        orchestrator = self._orchestrator(executor, _vendor("a"))
        job_id = await orchestrator.start_job(["a"], [JobInput(text="x")], repetitions=3)
        await executor.started.wait()
        self.assertEqual(orchestrator.pause_job(job_id).status, "paused")
        executor.release.set()
        job = await orchestrator.wait(job_id)

        self.assertEqual(job.status, "paused")
        self.assertEqual(executor.calls, 1)
        self.assertEqual(job.completed, 1)
        self.assertIsNone(job.completed_at, "A paused job has not attempted every unit")
        self.assertEqual(orchestrator.pause_job(job_id).status, "paused", "Pausing twice is a no-op")
        self.assertEqual(self.store.get(job_id).status, "paused")

    async def test_pause_terminal_job_is_noop(self):
        """Test that pausing a completed job leaves it completed."""
        executor = GatedExecutor(delays={1: 0})
        orchestrator = self._orchestrator(executor, _vendor("a"))
        job_id = await orchestrator.start_job(["a"], [JobInput(text="x")])
        await orchestrator.wait(job_id)
        self.assertEqual(orchestrator.pause_job(job_id).status, "completed")

    async def test_progress_cursor(self):
        """Test that progress returns only results after the cursor."""
        executor = GatedExecutor(delays={1: 0, 2: 0, 3: 0})
        orchestrator = self._orchestrator(executor, _vendor("a"), _vendor("b"))
        job_id = await orchestrator.start_job(["a", "b"], [JobInput(text="x")], repetitions=3)
        await orchestrator.wait(job_id)

        first = orchestrator.get_progress(job_id)
        self.assertEqual(len(first.results), 6)
        self.assertEqual(first.next_cursor, 6)
        self.assertEqual(first.percentage, 100)
        delta = orchestrator.get_progress(job_id, cursor=4)
        self.assertEqual([(r.vendor_id, r.run_index) for r in delta.results], [("b", 2), ("b", 3)])
        self.assertEqual(delta.next_cursor, 6)
        self.assertEqual(orchestrator.get_progress(job_id, cursor=6).results, [])

    async def test_progress_from_store_after_restart(self):
        """Test that a fresh orchestrator can report a finished job from the database."""
        executor = GatedExecutor(delays={1: 0})
        orchestrator = self._orchestrator(executor, _vendor("a"))
        job_id = await orchestrator.start_job(["a"], [JobInput(text="x")])
        await orchestrator.wait(job_id)

        fresh = self._orchestrator(executor, _vendor("a"))
        progress = fresh.get_progress(job_id)
        self.assertEqual(progress.status, "completed")
        self.assertEqual(len(progress.results), 1)
        self.assertEqual([j.id for j in fresh.list_jobs()], [job_id])

    async def test_invalid_requests(self):
        """Test validation done before a job is created."""
        orchestrator = self._orchestrator(GatedExecutor(), _vendor("a"))
        with self.assertRaises(ConfigurationError):
            await orchestrator.start_job([], [JobInput(text="x")])
        with self.assertRaises(ConfigurationError):
            await orchestrator.start_job(["a"], [])
        with self.assertRaises(ConfigurationError):
            await orchestrator.start_job(["a"], [JobInput(text="  ")])
        with self.assertRaises(NotFoundError):
            await orchestrator.start_job(["ghost"], [JobInput(text="x")])
        with self.assertRaises(NotFoundError):
            orchestrator.get_progress("no-such-job")
        self.assertEqual(self.store.list(), [])

    def test_clamp_repetitions(self):
        """Test repetitions are clamped to 1..10."""
        self.assertEqual(clamp_repetitions(0), 1)
        self.assertEqual(clamp_repetitions(None), 1)
        self.assertEqual(clamp_repetitions(4), 4)
        self.assertEqual(clamp_repetitions(50), 10)

    def test_clamp_concurrency(self):
        """Test client-requested concurrency is clamped to 1..8."""
        self.assertEqual(clamp_concurrency(None), 1)
        self.assertEqual(clamp_concurrency(0), 1)
        self.assertEqual(clamp_concurrency(3), 3)
        self.assertEqual(clamp_concurrency(10000), 8)

    def test_inputs_from_request(self):
        """Test request inputs are mapped per service kind."""
        tts = inputs_from_request("tts", ["a", " ", "b"], None, None)
        self.assertEqual([i.text for i in tts], ["a", "b"])
        asr = inputs_from_request("asr", None, ["x.wav", "y.wav"], ["ref x"])
        self.assertEqual([(i.audio_ref, i.reference_text) for i in asr], [("x.wav", "ref x"), ("y.wav", None)])


if __name__ == "__main__":
    unittest.main()
