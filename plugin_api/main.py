from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager, suppress
import asyncio
import logging

from .middleware import TracingMiddleware
from .logging_config import setup_logging
from .api.system import router as system_router
from .api.transforms import router as transforms_router
from .api.jobs import router as jobs_router
from .api.registration import router as registration_router
from .config import (
    PLUGIN_NAME, PLUGIN_VERSION, ENVIRONMENT, SECRET_BACKEND, DATABASE_URL, JOB_EVICT_INTERVAL_SEC, APP_PORT,
)
from .db import make_engine, make_session_factory, init_db
from .services.secrets import SecretStore, InMemorySecretBackend, SqlSecretBackend
from .services.jobs import JobRegistry
from .services.delivery import Deliverer
from .services.runner import JobRunner
from .services.prometheus_metrics import prometheus_metrics
from .transforms.base import default_registry

# Configure logging at import time
setup_logging()

logger = logging.getLogger("app")

def build_secret_store() -> SecretStore:
    if SECRET_BACKEND == "sql":
        engine = make_engine(DATABASE_URL)
        init_db(engine)
        return SecretStore(SqlSecretBackend(make_session_factory(engine)))
    return SecretStore(InMemorySecretBackend())

def create_app(secret_store=None, job_registry=None, deliverer=None, transforms=None) -> FastAPI:
    """Build the service; collaborators may be injected for tests"""

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        state = application.state
        state.secrets = secret_store if secret_store is not None else build_secret_store()
        state.jobs = job_registry if job_registry is not None else JobRegistry()
        state.deliverer = deliverer if deliverer is not None else Deliverer(state.secrets)
        state.transforms = transforms if transforms is not None else default_registry()
        state.runner = JobRunner(state.jobs, state.deliverer)
        prometheus_metrics.set_tenants_registered(state.secrets.count())

        async def eviction_ticker():
            while True:
                await asyncio.sleep(JOB_EVICT_INTERVAL_SEC)
                try:
                    evicted = state.jobs.evict_expired()
                    if evicted:
                        prometheus_metrics.increment_jobs_evicted(evicted)
                except Exception:
                    logger.exception("Job eviction failed", extra={"component": "api"})

        state.evictor = asyncio.create_task(eviction_ticker())

        logger.info(f"{PLUGIN_NAME} ready", extra={
            "component": "api",
            "version": PLUGIN_VERSION,
            "environment": ENVIRONMENT,
            "secret_backend": type(state.secrets.backend).__name__,
            "transforms": [t.id for t in state.transforms.all()]
        })

        try:
            yield
        finally:
            state.evictor.cancel()
            with suppress(asyncio.CancelledError):
                await state.evictor
            await state.runner.shutdown()
            logger.info(f"{PLUGIN_NAME} shutting down", extra={"component": "api"})

    application = FastAPI(title=PLUGIN_NAME, version=PLUGIN_VERSION, lifespan=lifespan)
    application.add_middleware(TracingMiddleware)

    @application.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        logger.exception("Unhandled error", extra={"component": "api", "path": request.url.path})
        return JSONResponse(status_code=500, content={"error": "Internal server error", "message": str(exc)})

    application.include_router(system_router)
    application.include_router(transforms_router)
    application.include_router(jobs_router)
    application.include_router(registration_router)
    return application

app = create_app()

# Server startup configuration
if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting {PLUGIN_NAME} on port {APP_PORT}")

    uvicorn.run(
        "plugin_api.main:app",
        host="0.0.0.0",
        port=APP_PORT,
        reload=False,
        access_log=True
    )
