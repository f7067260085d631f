"""
Tests for background job execution and delivery
"""

import json
import logging
import random

import pytest
from prometheus_client import REGISTRY

from plugin_api.errors import InvalidInput, WorkFailure
from plugin_api.schemas.transform import Entity, TransformInput
from plugin_api.services.delivery import Deliverer
from plugin_api.services.jobs import JobStatus
from plugin_api.services.runner import JobRunner
from plugin_api.transforms.base import FunctionTransform
from plugin_api.transforms.scan_ip import ScanIPTransform
from plugin_api.utils.crypto import SIGNATURE_HEADER, verify

from conftest import CALLBACK_URL

RESULT = {"entities": [{"type": "note", "value": "done", "properties": {}}], "edges": []}

def ip_input(value="8.8.8.8", **config):
    return TransformInput(entity=Entity(type="ip", value=value), config=config)

def running_gauge():
    return REGISTRY.get_sample_value("plugin_jobs_running") or 0.0

def recording(registry, job_ids, seen):
    """Work function that reports 10, 30, 60, 80 and checks the registry between reports"""
    async def work(payload, progress):
        for value in (10, 30, 60, 80):
            progress(value, f"step {value}")
            seen.append(registry.get(job_ids[0]).progress)
        return RESULT
    return work

class TestSubmit:

    @pytest.mark.asyncio
    async def test_returns_before_work_finishes(self, runner, job_registry, secret_store):
        secret_store.issue("t1")

        async def work(payload, progress):
            return RESULT

        job_id = runner.submit("t1", ip_input(), CALLBACK_URL, FunctionTransform("w", "ip", work))
        assert job_registry.get(job_id).status is JobStatus.RUNNING
        assert await runner.wait_idle(timeout=5)
        assert job_registry.get(job_id).status is JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_entity_type_mismatch_rejected_synchronously(self, runner, job_registry, webhook_sink):
        transform = FunctionTransform("w", "domain", lambda payload, progress: RESULT)
        with pytest.raises(InvalidInput):
            runner.submit("t1", ip_input(), CALLBACK_URL, transform)
        assert len(job_registry) == 0
        assert runner.pending == 0
        assert webhook_sink.requests == []

    @pytest.mark.asyncio
    async def test_missing_tenant_rejected(self, runner, job_registry):
        with pytest.raises(InvalidInput):
            runner.submit(None, ip_input(), CALLBACK_URL, FunctionTransform("w", "ip", lambda p, s: RESULT))
        assert len(job_registry) == 0

    def test_submit_outside_event_loop_leaves_no_job(self, runner, job_registry):
        with pytest.raises(RuntimeError):
            runner.submit("t1", ip_input(), CALLBACK_URL, FunctionTransform("w", "ip", lambda payload, progress: RESULT))
        assert len(job_registry) == 0
        assert runner.pending == 0

class TestScenarios:

    @pytest.mark.asyncio
    async def test_success_delivers_signed_webhook(self, runner, job_registry, secret_store, webhook_sink):
        secret = secret_store.issue("t1").secret
        job_ids, seen = [], []
        transform = FunctionTransform("w", "ip", recording(job_registry, job_ids, seen))

        job_ids.append(runner.submit("t1", ip_input(), CALLBACK_URL, transform))
        assert await runner.wait_idle(timeout=5)

        job = job_registry.get(job_ids[0])
        assert seen == [10, 30, 60, 80]
        assert job.status is JobStatus.COMPLETED
        assert job.progress == 100
        assert job.delivery == "delivered"

        assert len(webhook_sink.requests) == 1
        request = webhook_sink.requests[0]
        assert verify(request.content, request.headers[SIGNATURE_HEADER], secret)
        body = json.loads(request.content)
        assert body == {"jobId": job_ids[0], "status": "completed", "result": RESULT}

    @pytest.mark.asyncio
    async def test_work_failure_delivers_error(self, runner, job_registry, secret_store, webhook_sink):
        secret = secret_store.issue("t1").secret

        async def work(payload, progress):
            progress(10)
            raise WorkFailure("SCAN_ERROR", "timeout")

        job_id = runner.submit("t1", ip_input(), CALLBACK_URL, FunctionTransform("w", "ip", work))
        assert await runner.wait_idle(timeout=5)

        job = job_registry.get(job_id)
        assert job.status is JobStatus.FAILED
        assert job.error == {"code": "SCAN_ERROR", "message": "timeout"}

        request = webhook_sink.requests[0]
        assert verify(request.content, request.headers[SIGNATURE_HEADER], secret)
        body = json.loads(request.content)
        assert body["status"] == "failed"
        assert body["error"]["code"] == "SCAN_ERROR"
        assert body["error"]["message"] == "timeout"

    @pytest.mark.asyncio
    async def test_unexpected_exception_uses_transform_error_code(self, runner, job_registry, secret_store, webhook_sink):
        secret_store.issue("t1")

        async def work(payload, progress):
            raise RuntimeError("resolver exploded")

        transform = FunctionTransform("w", "ip", work, error_code="SCAN_ERROR")
        job_id = runner.submit("t1", ip_input(), CALLBACK_URL, transform)
        assert await runner.wait_idle(timeout=5)

        assert job_registry.get(job_id).status is JobStatus.FAILED
        body = json.loads(webhook_sink.requests[0].content)
        assert body["error"] == {"code": "SCAN_ERROR", "message": "resolver exploded"}

    @pytest.mark.asyncio
    async def test_unknown_tenant_sends_nothing(self, runner, job_registry, webhook_sink, caplog):
        async def work(payload, progress):
            progress(50)
            return RESULT

        with caplog.at_level(logging.WARNING, logger="services.runner"):
            job_id = runner.submit("unknown", ip_input(), CALLBACK_URL, FunctionTransform("w", "ip", work))
            assert await runner.wait_idle(timeout=5)

        job = job_registry.get(job_id)
        assert job.status is JobStatus.COMPLETED
        assert job.delivery == "skipped"
        assert webhook_sink.requests == []
        assert any("abandoned" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_unknown_tenant_failed_job_stays_failed(self, runner, job_registry, webhook_sink):
        async def work(payload, progress):
            raise WorkFailure("SCAN_ERROR", "timeout")

        job_id = runner.submit("unknown", ip_input(), CALLBACK_URL, FunctionTransform("w", "ip", work))
        assert await runner.wait_idle(timeout=5)

        assert job_registry.get(job_id).status is JobStatus.FAILED
        assert job_registry.get(job_id).delivery == "skipped"
        assert webhook_sink.requests == []

    @pytest.mark.asyncio
    async def test_revoked_before_delivery(self, runner, job_registry, secret_store, webhook_sink):
        secret_store.issue("t1")

        async def work(payload, progress):
            secret_store.revoke("t1")
            return RESULT

        job_id = runner.submit("t1", ip_input(), CALLBACK_URL, FunctionTransform("w", "ip", work))
        assert await runner.wait_idle(timeout=5)

        assert job_registry.get(job_id).status is JobStatus.COMPLETED
        assert webhook_sink.requests == []

    @pytest.mark.asyncio
    async def test_delivery_failure_does_not_change_status(self, job_registry, secret_store, webhook_sink):
        secret_store.issue("t1")
        webhook_sink.status_code = 502
        runner = JobRunner(job_registry, Deliverer(secret_store, client=webhook_sink.client()))

        async def work(payload, progress):
            return RESULT

        job_id = runner.submit("t1", ip_input(), CALLBACK_URL, FunctionTransform("w", "ip", work))
        assert await runner.wait_idle(timeout=5)

        job = job_registry.get(job_id)
        assert job.status is JobStatus.COMPLETED
        assert job.delivery == "failed"
        assert len(webhook_sink.requests) == 1

    @pytest.mark.asyncio
    async def test_out_of_range_progress_fails_job(self, runner, job_registry, secret_store, webhook_sink):
        secret_store.issue("t1")

        async def work(payload, progress):
            progress(150)
            return RESULT

        job_id = runner.submit("t1", ip_input(), CALLBACK_URL, FunctionTransform("w", "ip", work))
        assert await runner.wait_idle(timeout=5)

        assert job_registry.get(job_id).status is JobStatus.FAILED
        body = json.loads(webhook_sink.requests[0].content)
        assert body["error"]["code"] == "invalid_progress"

    @pytest.mark.asyncio
    async def test_sync_work_function_runs_in_thread(self, runner, job_registry, secret_store, webhook_sink):
        secret_store.issue("t1")

        def work(payload, progress):
            progress(40, "halfway-ish")
            return {"entities": [], "edges": [], "ip": payload.entity.value}

        job_id = runner.submit("t1", ip_input("1.1.1.1"), CALLBACK_URL, FunctionTransform("w", "ip", work))
        assert await runner.wait_idle(timeout=5)

        assert job_registry.get(job_id).status is JobStatus.COMPLETED
        assert json.loads(webhook_sink.requests[0].content)["result"]["ip"] == "1.1.1.1"

    @pytest.mark.asyncio
    async def test_jobs_for_same_tenant_are_independent(self, runner, job_registry, secret_store, webhook_sink):
        secret_store.issue("t1")

        async def ok(payload, progress):
            return RESULT

        async def bad(payload, progress):
            raise WorkFailure("SCAN_ERROR", "nope")

        first = runner.submit("t1", ip_input(), CALLBACK_URL, FunctionTransform("ok", "ip", ok))
        second = runner.submit("t1", ip_input(), CALLBACK_URL, FunctionTransform("bad", "ip", bad))
        assert await runner.wait_idle(timeout=5)

        assert job_registry.get(first).status is JobStatus.COMPLETED
        assert job_registry.get(second).status is JobStatus.FAILED
        assert len(webhook_sink.requests) == 2

    @pytest.mark.asyncio
    async def test_scan_ip_end_to_end(self, runner, job_registry, secret_store, webhook_sink):
        secret = secret_store.issue("t1").secret
        transform = ScanIPTransform(step_delay=0, rng=random.Random(1))

        job_id = runner.submit("t1", ip_input(), CALLBACK_URL, transform)
        assert await runner.wait_idle(timeout=5)

        job = job_registry.get(job_id)
        assert job.status is JobStatus.COMPLETED
        assert job.message == "Finalizing results..."
        request = webhook_sink.requests[0]
        assert verify(request.content, request.headers[SIGNATURE_HEADER], secret)
        result = json.loads(request.content)["result"]
        assert {"type": "domain", "value": "example.com", "properties": {"source": "reverse-dns"}} in result["entities"]
        assert any(edge["from"] == "8.8.8.8" and edge["label"] == "has_analysis" for edge in result["edges"])

    @pytest.mark.asyncio
    async def test_shutdown_fails_and_reports_hung_jobs(self, runner, job_registry, secret_store, webhook_sink):
        import asyncio
        secret = secret_store.issue("t1").secret
        running_before = running_gauge()

        async def hang(payload, progress):
            progress(40, "waiting")
            await asyncio.Event().wait()

        job_id = runner.submit("t1", ip_input(), CALLBACK_URL, FunctionTransform("w", "ip", hang))
        await asyncio.sleep(0)
        await runner.shutdown(timeout=0.05)

        assert runner.pending == 0
        job = job_registry.get(job_id)
        assert job.status is JobStatus.FAILED
        assert job.progress == 40
        assert job.error["code"] == "cancelled"
        assert job.delivery == "delivered"
        assert running_gauge() == running_before

        request = webhook_sink.requests[0]
        assert verify(request.content, request.headers[SIGNATURE_HEADER], secret)
        assert json.loads(request.content)["error"]["code"] == "cancelled"

    @pytest.mark.asyncio
    async def test_running_gauge_restored_when_job_cannot_be_finalized(self, runner, job_registry, webhook_sink):
        running_before = running_gauge()

        async def work(payload, progress):
            # another writer finishes the job first
            job_registry.mark_completed(job_registry.list()[0].job_id)
            return RESULT

        runner.submit("t1", ip_input(), CALLBACK_URL, FunctionTransform("w", "ip", work))
        assert await runner.wait_idle(timeout=5)

        assert running_gauge() == running_before
        assert webhook_sink.requests == []

    @pytest.mark.asyncio
    async def test_delivered_log_carries_body_size(self, runner, secret_store, webhook_sink, caplog):
        secret_store.issue("t1")

        async def work(payload, progress):
            return RESULT

        with caplog.at_level(logging.INFO, logger="services.runner"):
            runner.submit("t1", ip_input(), CALLBACK_URL, FunctionTransform("w", "ip", work))
            assert await runner.wait_idle(timeout=5)

        delivered = [r for r in caplog.records if getattr(r, "event", None) == "delivered"]
        assert len(delivered) == 1
        assert delivered[0].body_bytes == len(webhook_sink.requests[0].content)
