"""
Background execution of asynchronous transform jobs
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Set

from ..errors import DeliveryFailure, InvalidInput, PluginError, UnknownTenant
from ..schemas.transform import TransformInput
from ..transforms.base import Transform
from .delivery import Deliverer
from .jobs import JobRegistry, JobStatus
from .prometheus_metrics import prometheus_metrics

logger = logging.getLogger("services.runner")

CANCELLED_ERROR = {"code": "cancelled", "message": "Job cancelled before completion"}


class JobRunner:
    """
    Drives each job from acceptance to a terminal state.

    The runner is the only writer of job state: it relays the transform's
    progress reports into the registry, records the outcome, then hands the
    outcome to the deliverer. Delivery problems are logged and noted on the
    job but never change its status.
    """

    def __init__(self, registry: JobRegistry, deliverer: Deliverer):
        self.registry = registry
        self.deliverer = deliverer
        self._tasks: Set[asyncio.Task] = set()

    def submit(self, tenant_id: str, payload: TransformInput, callback_url: str,
               transform: Transform) -> str:
        """Validate, register and start a job; returns its id without waiting"""
        if payload.entity.type != transform.input_type:
            prometheus_metrics.increment_jobs_rejected(transform.id)
            raise InvalidInput(
                f"Invalid entity type: {payload.entity.type} (transform {transform.id} expects {transform.input_type})")
        if not tenant_id:
            prometheus_metrics.increment_jobs_rejected(transform.id)
            raise InvalidInput("organizationId is required for asynchronous transforms")
        if not callback_url:
            prometheus_metrics.increment_jobs_rejected(transform.id)
            raise InvalidInput("callbackUrl is required for asynchronous transforms")

        # raises RuntimeError outside an event loop, before any job exists
        loop = asyncio.get_running_loop()

        job_id = self.registry.create(tenant_id, transform.id)
        prometheus_metrics.increment_jobs_submitted(transform.id)

        task = loop.create_task(
            self._execute(job_id, tenant_id, payload, callback_url, transform),
            name=f"job:{job_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info(f"Job {job_id} accepted", extra={
            "component": "runner",
            "event": "accepted",
            "job_id": job_id,
            "tenant_id": tenant_id,
            "transform": transform.id
        })
        return job_id

    def _progress_sink(self, job_id: str):
        def report(progress: int, message: Optional[str] = None) -> None:
            self.registry.update_progress(job_id, progress, message)
        return report

    async def _execute(self, job_id: str, tenant_id: str, payload: TransformInput,
                       callback_url: str, transform: Transform) -> None:
        started = time.monotonic()
        error: Optional[Dict[str, str]] = None
        result: Any = None
        try:
            try:
                result = await transform.run(payload, self._progress_sink(job_id))
                if hasattr(result, "to_wire"):
                    result = result.to_wire()
            except asyncio.CancelledError:
                logger.warning(f"Job {job_id} cancelled", extra={
                    "component": "runner",
                    "event": "cancelled",
                    "job_id": job_id
                })
                await self._conclude(job_id, tenant_id, callback_url, None, dict(CANCELLED_ERROR), started)
                raise
            except PluginError as e:
                error = e.to_dict()
            except Exception as e:
                logger.exception(f"Job {job_id} raised", extra={
                    "component": "runner",
                    "event": "work_error",
                    "job_id": job_id
                })
                error = {"code": transform.error_code, "message": str(e) or e.__class__.__name__}

            await self._conclude(job_id, tenant_id, callback_url, result, error, started)
        finally:
            prometheus_metrics.decrement_jobs_running()

    async def _conclude(self, job_id: str, tenant_id: str, callback_url: str, result: Any,
                        error: Optional[Dict[str, str]], started: float) -> None:
        """Move the job to its terminal state, then notify the tenant"""
        try:
            if error is None:
                self.registry.mark_completed(job_id)
            else:
                self.registry.mark_failed(job_id, error)
        except PluginError as e:
            logger.error(f"Job {job_id} could not be finalized: {e}", extra={
                "component": "runner",
                "event": "finalize_error",
                "job_id": job_id
            })
            return

        status = JobStatus.COMPLETED if error is None else JobStatus.FAILED
        prometheus_metrics.increment_jobs_finished(status.value, time.monotonic() - started)
        logger.info(f"Job {job_id} {status.value}", extra={
            "component": "runner",
            "event": status.value,
            "job_id": job_id,
            "tenant_id": tenant_id,
            "error_code": error["code"] if error else None
        })

        await self._notify(job_id, tenant_id, callback_url, result, error)

    async def _notify(self, job_id: str, tenant_id: str, callback_url: str,
                      result: Any, error: Optional[Dict[str, str]]) -> None:
        extra = {"component": "runner", "job_id": job_id, "tenant_id": tenant_id}
        try:
            if error is None:
                receipt = await self.deliverer.deliver_success(tenant_id, job_id, callback_url, result)
            else:
                receipt = await self.deliverer.deliver_failure(tenant_id, job_id, callback_url, error)
        except UnknownTenant as e:
            outcome = "skipped"
            logger.warning(f"Webhook for job {job_id} abandoned: {e}", extra={**extra, "event": "unknown_tenant"})
        except DeliveryFailure as e:
            outcome = "failed"
            logger.error(f"Webhook for job {job_id} failed: {e.reason}", extra={
                **extra, "event": "delivery_failed", "http_code": e.status_code})
        except Exception:
            outcome = "failed"
            logger.exception(f"Webhook for job {job_id} failed", extra={**extra, "event": "delivery_error"})
        else:
            outcome = "delivered"
            logger.info(f"Webhook for job {job_id} delivered", extra={
                **extra, "event": "delivered", "http_code": receipt.status_code, "latency_ms": receipt.latency_ms,
                "body_bytes": receipt.body_bytes})

        prometheus_metrics.increment_webhook_delivery(outcome)
        try:
            self.registry.record_delivery(job_id, outcome)
        except PluginError as e:
            # evicted while the webhook was in flight
            logger.debug(f"Delivery outcome not recorded: {e}", extra={**extra, "event": "record_skipped"})

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait for all running jobs to finish; returns False on timeout"""
        if not self._tasks:
            return True
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        return not pending

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Give running jobs a grace period, then cancel what is left"""
        if await self.wait_idle(timeout):
            return
        remaining = list(self._tasks)
        logger.warning(f"Cancelling {len(remaining)} unfinished jobs", extra={
            "component": "runner",
            "event": "shutdown_cancel"
        })
        for task in remaining:
            task.cancel()
        await asyncio.gather(*remaining, return_exceptions=True)
