"""
In-memory registry of asynchronous transform jobs
"""

import logging
import secrets
import time
from dataclasses import dataclass, replace, asdict
from datetime import datetime, timezone
from enum import Enum
from threading import RLock
from typing import Any, Dict, List, Optional

from ..config import JOB_TTL_SECONDS
from ..errors import UnknownJob, InvalidTransition, InvalidProgress

logger = logging.getLogger("services.jobs")


class JobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = {JobStatus.COMPLETED, JobStatus.FAILED}


@dataclass
class JobRecord:
    job_id: str
    tenant_id: str
    transform_id: Optional[str]
    status: JobStatus
    progress: int
    message: Optional[str]
    created_at: datetime
    finished_at: Optional[datetime] = None
    error: Optional[Dict[str, str]] = None
    delivery: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["created_at"] = self.created_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data


def new_job_id() -> str:
    """Time component plus 48 random bits"""
    return f"job-{int(time.time() * 1000)}-{secrets.token_hex(6)}"


class JobRegistry:
    """
    Holds the state of every job for the process lifetime.

    Each job moves running -> completed or running -> failed exactly once.
    Progress only moves forward while running. Reads return copies so callers
    never observe a record mid-update.
    """

    def __init__(self, ttl_seconds: int = JOB_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds
        self._jobs: Dict[str, JobRecord] = {}
        self._lock = RLock()

    def create(self, tenant_id: str, transform_id: Optional[str] = None) -> str:
        """Register a new running job and return its id"""
        now = datetime.now(timezone.utc)
        with self._lock:
            job_id = new_job_id()
            while job_id in self._jobs:
                job_id = new_job_id()
            self._jobs[job_id] = JobRecord(
                job_id=job_id,
                tenant_id=tenant_id,
                transform_id=transform_id,
                status=JobStatus.RUNNING,
                progress=0,
                message=None,
                created_at=now,
            )

        logger.info(f"Created job {job_id}", extra={
            "component": "jobs",
            "event": "created",
            "job_id": job_id,
            "tenant_id": tenant_id,
            "transform": transform_id
        })
        return job_id

    def _require(self, job_id: str) -> JobRecord:
        job = self._jobs.get(job_id)
        if job is None:
            raise UnknownJob(job_id)
        return job

    def update_progress(self, job_id: str, progress: int, message: Optional[str] = None) -> None:
        """Record a progress checkpoint for a running job"""
        with self._lock:
            job = self._require(job_id)
            if job.is_terminal:
                raise InvalidTransition(
                    f"Job {job_id} is {job.status.value}; progress updates are closed")
            if isinstance(progress, bool) or not isinstance(progress, int) \
                    or progress < 0 or progress > 100:
                logger.warning("Rejected out-of-range progress", extra={
                    "component": "jobs",
                    "event": "invalid_progress",
                    "job_id": job_id,
                    "progress": progress
                })
                raise InvalidProgress(f"Progress must be an integer in [0, 100], got {progress!r}")
            if progress < job.progress:
                logger.warning("Rejected decreasing progress", extra={
                    "component": "jobs",
                    "event": "invalid_progress",
                    "job_id": job_id,
                    "progress": progress,
                    "current": job.progress
                })
                raise InvalidProgress(
                    f"Progress may not decrease (current {job.progress}, got {progress})")
            job.progress = progress
            job.message = message

    def _finish(self, job_id: str, status: JobStatus, message: Optional[str],
                error: Optional[Dict[str, str]] = None) -> JobRecord:
        with self._lock:
            job = self._require(job_id)
            if job.is_terminal:
                raise InvalidTransition(
                    f"Job {job_id} is already {job.status.value}; cannot mark {status.value}")
            job.status = status
            job.finished_at = datetime.now(timezone.utc)
            job.error = error
            if status is JobStatus.COMPLETED:
                job.progress = 100
            if message is not None:
                job.message = message
            return replace(job)

    def mark_completed(self, job_id: str, message: Optional[str] = None) -> JobRecord:
        return self._finish(job_id, JobStatus.COMPLETED, message)

    def mark_failed(self, job_id: str, error: Optional[Dict[str, str]] = None,
                    message: Optional[str] = None) -> JobRecord:
        if message is None and error:
            message = error.get("message")
        return self._finish(job_id, JobStatus.FAILED, message, error)

    def record_delivery(self, job_id: str, outcome: str) -> None:
        """Note the webhook outcome; job status is left untouched"""
        with self._lock:
            self._require(job_id).delivery = outcome

    def get(self, job_id: str) -> JobRecord:
        with self._lock:
            return replace(self._require(job_id))

    def list(self, tenant_id: Optional[str] = None) -> List[JobRecord]:
        with self._lock:
            return [replace(j) for j in self._jobs.values()
                    if tenant_id is None or j.tenant_id == tenant_id]

    def evict_expired(self, now: Optional[datetime] = None) -> int:
        """Drop terminal jobs that finished more than ttl_seconds ago"""
        now = now or datetime.now(timezone.utc)
        with self._lock:
            expired = [
                job_id for job_id, job in self._jobs.items()
                if job.is_terminal and job.finished_at is not None
                and (now - job.finished_at).total_seconds() > self.ttl_seconds
            ]
            for job_id in expired:
                del self._jobs[job_id]

        if expired:
            logger.info(f"Evicted {len(expired)} expired jobs", extra={
                "component": "jobs",
                "event": "evicted",
                "count": len(expired)
            })
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
