# tests/conftest.py
import random

import httpx
import pytest
from fastapi.testclient import TestClient

from plugin_api.main import create_app
from plugin_api.services.delivery import Deliverer
from plugin_api.services.jobs import JobRegistry
from plugin_api.services.runner import JobRunner
from plugin_api.services.secrets import SecretStore
from plugin_api.transforms.base import TransformRegistry
from plugin_api.transforms.lookup_ip import LookupIPTransform
from plugin_api.transforms.scan_ip import ScanIPTransform

CALLBACK_URL = "https://platform.example.com/api/webhooks/plugin"

class WebhookSink:
    """Captures outbound webhook requests instead of sending them"""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"received": True})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

@pytest.fixture
def secret_store():
    return SecretStore()

@pytest.fixture
def job_registry():
    return JobRegistry()

@pytest.fixture
def webhook_sink():
    return WebhookSink()

@pytest.fixture
def deliverer(secret_store, webhook_sink):
    return Deliverer(secret_store, client=webhook_sink.client())

@pytest.fixture
def runner(job_registry, deliverer):
    return JobRunner(job_registry, deliverer)

@pytest.fixture
def transforms():
    registry = TransformRegistry()
    registry.register(LookupIPTransform(mmdb_path="", api_key=""))
    registry.register(ScanIPTransform(step_delay=0, rng=random.Random(7)))
    return registry

@pytest.fixture
def client(secret_store, job_registry, deliverer, transforms):
    """TestClient with lifespan running; webhooks land in webhook_sink"""
    app = create_app(
        secret_store=secret_store,
        job_registry=job_registry,
        deliverer=deliverer,
        transforms=transforms,
    )
    with TestClient(app) as test_client:
        yield test_client
