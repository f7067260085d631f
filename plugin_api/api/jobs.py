"""
Job status endpoint
"""

from fastapi import APIRouter, HTTPException, Request

from ..errors import UnknownJob
from ..schemas.transform import JobStatusOut

router = APIRouter()

@router.get("/jobs/{job_id}")
async def get_job_by_id(job_id: str, request: Request) -> JobStatusOut:
    """Get job status by ID"""
    try:
        job = request.app.state.jobs.get(job_id)
    except UnknownJob:
        raise HTTPException(status_code=404, detail="Job not found")

    return JobStatusOut(
        job_id=job.job_id,
        status=job.status.value,
        progress=job.progress,
        message=job.message,
        delivery=job.delivery,
    )
