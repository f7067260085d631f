"""
Health, manifest, metrics and log tail endpoints - no authentication required
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import PlainTextResponse

from .. import config
from ..logging_config import get_memory_handler
from ..manifest import build_manifest
from ..services.prometheus_metrics import prometheus_metrics

router = APIRouter()

@router.get("/health")
async def health(request: Request):
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": config.PLUGIN_VERSION,
        "jobs_running": request.app.state.runner.pending,
    }

@router.get("/manifest.json")
async def manifest(request: Request):
    return build_manifest(request.app.state.transforms)

@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Metrics in Prometheus exposition format"""
    try:
        return PlainTextResponse(
            content=prometheus_metrics.get_metrics(),
            media_type=prometheus_metrics.get_content_type()
        )
    except Exception as e:
        logging.error(f"Failed to get metrics: {e}")
        return PlainTextResponse(
            content="# Metrics temporarily unavailable\n",
            media_type="text/plain"
        )

@router.get("/logs/tail")
async def logs_tail(limit: int = Query(100, ge=1, le=10000)):
    """Most recent log entries from the in-memory ring buffer"""
    logs = get_memory_handler().get_logs(limit=limit)
    return {"logs": logs, "count": len(logs)}
