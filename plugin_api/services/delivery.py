"""
Signed webhook delivery to caller-supplied callback URLs
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import httpx

from ..config import WEBHOOK_TIMEOUT_SEC, WEBHOOK_USER_AGENT
from ..errors import DeliveryFailure
from ..utils.crypto import SIGNATURE_HEADER, canonical_json, sign
from .prometheus_metrics import prometheus_metrics
from .secrets import SecretStore

logger = logging.getLogger("services.delivery")


class NoRetry:
    """Single best-effort attempt"""

    def delays(self) -> Iterable[float]:
        return ()


@dataclass
class DeliveryReceipt:
    status_code: int
    latency_ms: int
    body_bytes: int


def success_payload(job_id: str, result: Any) -> Dict[str, Any]:
    return {"jobId": job_id, "status": "completed", "result": result}


def failure_payload(job_id: str, error: Dict[str, str]) -> Dict[str, Any]:
    return {
        "jobId": job_id,
        "status": "failed",
        "error": {"code": error.get("code", "UNKNOWN_ERROR"), "message": error.get("message", "")},
    }


class Deliverer:
    """
    Builds, signs and POSTs delivery payloads.

    The tenant secret is looked up right before signing and never cached, so
    revoking a tenant suppresses every delivery that has not been signed yet.
    """

    def __init__(self, secret_store: SecretStore, client: Optional[httpx.AsyncClient] = None,
                 timeout_sec: float = WEBHOOK_TIMEOUT_SEC, user_agent: str = WEBHOOK_USER_AGENT,
                 retry_policy=None):
        self.secret_store = secret_store
        self.client = client
        self.timeout_sec = timeout_sec
        self.user_agent = user_agent
        self.retry_policy = retry_policy or NoRetry()

    async def deliver_success(self, tenant_id: str, job_id: str, callback_url: str,
                              result: Any) -> DeliveryReceipt:
        return await self.send(tenant_id, callback_url, success_payload(job_id, result))

    async def deliver_failure(self, tenant_id: str, job_id: str, callback_url: str,
                              error: Dict[str, str]) -> DeliveryReceipt:
        return await self.send(tenant_id, callback_url, failure_payload(job_id, error))

    async def send(self, tenant_id: str, callback_url: str, payload: Dict[str, Any]) -> DeliveryReceipt:
        """Sign payload with the tenant's secret and POST it; raises UnknownTenant or DeliveryFailure"""
        body = canonical_json(payload)
        secret = self.secret_store.resolve(tenant_id)
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: sign(body, secret),
            "User-Agent": self.user_agent,
        }

        logger.info(f"Sending webhook to {callback_url}", extra={
            "component": "delivery",
            "event": "sending",
            "tenant_id": tenant_id,
            "job_id": payload.get("jobId"),
            "job_status": payload.get("status")
        })

        failure: Optional[DeliveryFailure] = None
        for delay in [0.0, *self.retry_policy.delays()]:
            if delay:
                await asyncio.sleep(delay)
            try:
                return await self._post(callback_url, body, headers)
            except DeliveryFailure as e:
                failure = e
        raise failure

    async def _post(self, callback_url: str, body: bytes, headers: Dict[str, str]) -> DeliveryReceipt:
        t0 = time.perf_counter()
        try:
            if self.client is not None:
                r = await self.client.post(callback_url, content=body, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_sec) as client:
                    r = await client.post(callback_url, content=body, headers=headers)
            r.raise_for_status()
        except httpx.ConnectError:
            raise DeliveryFailure("conn_refused", 0)
        except httpx.TimeoutException:
            raise DeliveryFailure("timeout", 0)
        except httpx.HTTPStatusError as e:
            raise DeliveryFailure(f"http_{e.response.status_code}", e.response.status_code)
        except httpx.HTTPError as e:
            raise DeliveryFailure(str(e) or e.__class__.__name__, 0)

        ms = int((time.perf_counter() - t0) * 1000)
        prometheus_metrics.observe_webhook_latency(ms)
        return DeliveryReceipt(status_code=r.status_code, latency_ms=ms, body_bytes=len(body))
