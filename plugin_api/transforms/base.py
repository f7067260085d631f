"""
Base transform definition and registry
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from ..schemas.transform import TransformInput

logger = logging.getLogger("transforms.base")

# progress(value, message=None)
ProgressSink = Callable[..., None]


def no_progress(progress: int, message: Optional[str] = None) -> None:
    pass


class Transform(ABC):
    """
    A unit of domain logic exposed to the host platform.

    Handlers receive the submitted input and a progress sink and return a
    TransformResult (or a plain dict). Any exception they raise fails the job;
    raise WorkFailure to control the error code sent in the webhook.
    """

    id: str = ""
    name: str = ""
    description: str = ""
    input_type: str = ""
    output_types: List[str] = []
    is_async: bool = False
    estimated_time: Optional[int] = None
    error_code: str = "TRANSFORM_ERROR"
    config_schema: Optional[Dict[str, Any]] = None

    @abstractmethod
    async def run(self, payload: TransformInput, progress: ProgressSink) -> Any:
        """Execute the transform"""
        pass

    def describe(self, base_url: str) -> Dict[str, Any]:
        """Manifest entry for this transform"""
        entry = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "inputType": self.input_type,
            "outputTypes": list(self.output_types),
            "endpoint": f"{base_url}/transform/{self.id}",
            "method": "POST",
            "async": self.is_async,
        }
        if self.config_schema:
            entry["configSchema"] = self.config_schema
        return entry


class TransformRegistry:
    def __init__(self):
        self._transforms: Dict[str, Transform] = {}

    def register(self, transform: Transform) -> Transform:
        if not transform.id:
            raise ValueError("Transform id is required")
        if transform.id in self._transforms:
            raise ValueError(f"Transform {transform.id} already registered")
        self._transforms[transform.id] = transform
        logger.info(f"Registered transform {transform.id}", extra={
            "component": "transforms",
            "event": "registered",
            "transform": transform.id,
            "async": transform.is_async
        })
        return transform

    def get(self, transform_id: str) -> Optional[Transform]:
        return self._transforms.get(transform_id)

    def all(self) -> List[Transform]:
        return list(self._transforms.values())


def default_registry() -> TransformRegistry:
    from .lookup_ip import LookupIPTransform
    from .scan_ip import ScanIPTransform

    registry = TransformRegistry()
    registry.register(LookupIPTransform())
    registry.register(ScanIPTransform())
    return registry


class FunctionTransform(Transform):
    """Wraps a plain work function; sync functions run in a worker thread"""

    def __init__(self, transform_id: str, input_type: str, fn: Callable[..., Any],
                 is_async: bool = True, error_code: str = "TRANSFORM_ERROR",
                 name: str = "", description: str = "", output_types: Optional[List[str]] = None):
        self.id = transform_id
        self.input_type = input_type
        self.fn = fn
        self.is_async = is_async
        self.error_code = error_code
        self.name = name or transform_id
        self.description = description
        self.output_types = list(output_types or [])

    async def run(self, payload: TransformInput, progress: ProgressSink) -> Any:
        if inspect.iscoroutinefunction(self.fn):
            return await self.fn(payload, progress)
        return await asyncio.to_thread(self.fn, payload, progress)
