"""
Transform endpoints: sync transforms answer inline, async transforms become jobs
"""

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from ..errors import InvalidInput, PluginError
from ..schemas.transform import (
    AsyncTransformResponse, Entity, SyncTransformResponse, TransformRequest, TransformResult,
)
from ..transforms.base import no_progress

logger = logging.getLogger("api.transforms")

router = APIRouter()

def _invalid(e: InvalidInput) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": e.code, "message": e.message})

@router.post("/transform/{transform_id}")
async def run_transform(transform_id: str, body: TransformRequest, request: Request):
    """Run a sync transform or submit an async one"""
    transform = request.app.state.transforms.get(transform_id)
    if transform is None:
        raise HTTPException(status_code=404, detail=f"Transform {transform_id} not found")
    if body.transform_id and body.transform_id != transform_id:
        return _invalid(InvalidInput(f"transformId {body.transform_id} does not match endpoint {transform_id}"))

    if transform.is_async:
        try:
            job_id = request.app.state.runner.submit(
                body.input.organization_id, body.input, body.callback_url, transform)
        except InvalidInput as e:
            logger.warning(f"Rejected job for {transform_id}: {e}", extra={
                "component": "api",
                "event": "rejected",
                "transform": transform_id
            })
            return _invalid(e)
        return AsyncTransformResponse(job_id=job_id, estimated_time=transform.estimated_time)

    if body.input.entity.type != transform.input_type:
        return _invalid(InvalidInput(f"Invalid entity type: {body.input.entity.type}"))

    try:
        result = await transform.run(body.input, no_progress)
    except PluginError as e:
        logger.error(f"Transform {transform_id} failed: {e}", extra={
            "component": "api",
            "event": "transform_error",
            "transform": transform_id
        })
        error_result = TransformResult(entities=[Entity(
            type="note",
            value=f"{transform.name} Error",
            properties={
                "content": f"Error running {transform_id} on {body.input.entity.value}: {e.message}",
                "tags": ["error"],
            },
        )])
        return JSONResponse(
            status_code=500,
            content={"async": False, "error": e.to_dict(), "result": error_result.to_wire()},
        )

    if not isinstance(result, TransformResult):
        result = TransformResult.model_validate(result)
    return SyncTransformResponse(result=result)
