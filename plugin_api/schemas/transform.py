from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Any, Dict, List, Optional


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Entity(CamelModel):
    type: str = Field(..., min_length=1)
    value: str = Field(..., min_length=1)
    properties: Dict[str, Any] = {}


class Edge(CamelModel):
    from_: str = Field(..., alias="from")
    to: str
    label: Optional[str] = None
    properties: Dict[str, Any] = {}


class TransformResult(CamelModel):
    entities: List[Entity] = []
    edges: List[Edge] = []

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class TransformInput(CamelModel):
    entity: Entity
    config: Dict[str, Any] = {}
    organization_id: Optional[str] = Field(None, alias="organizationId", max_length=128)


class TransformRequest(CamelModel):
    transform_id: Optional[str] = Field(None, alias="transformId")
    input: TransformInput
    callback_url: Optional[str] = Field(None, alias="callbackUrl")

    @model_validator(mode='after')
    def validate_callback_url(self) -> 'TransformRequest':
        if self.callback_url is None:
            return self
        if not self.callback_url.startswith(('http://', 'https://')):
            raise ValueError("callbackUrl must start with http:// or https://")
        if ' ' in self.callback_url:
            raise ValueError("callbackUrl cannot contain spaces")
        return self


class SyncTransformResponse(CamelModel):
    is_async: bool = Field(False, alias="async")
    result: TransformResult


class AsyncTransformResponse(CamelModel):
    is_async: bool = Field(True, alias="async")
    job_id: str = Field(..., alias="jobId")
    estimated_time: Optional[int] = Field(None, alias="estimatedTime")


class JobStatusOut(CamelModel):
    job_id: str = Field(..., alias="jobId")
    status: str
    progress: int
    message: Optional[str] = None
    delivery: Optional[str] = None
