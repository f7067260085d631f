"""
Tenant registration: issues and revokes per-organization webhook secrets
"""

import logging

from fastapi import APIRouter, HTTPException, Request

from .. import config
from ..schemas.tenant import RegistrationRequest, RegistrationResponse, UnregistrationRequest
from ..services.prometheus_metrics import prometheus_metrics

logger = logging.getLogger("api.registration")

router = APIRouter()

@router.post("/register")
async def register(body: RegistrationRequest, request: Request) -> RegistrationResponse:
    """Issue a fresh webhook secret for an organization (replaces any previous one)"""
    store = request.app.state.secrets
    record = store.issue(
        body.organization_id,
        tenant_name=body.organization_name,
        platform_url=body.platform_url,
    )
    prometheus_metrics.set_tenants_registered(store.count())

    logger.info(f"Organization {body.organization_id} registered", extra={
        "component": "api",
        "event": "registered",
        "tenant_id": body.organization_id,
        "platform_url": body.platform_url,
        "platform_version": body.platform_version
    })

    return RegistrationResponse(
        webhook_secret=record.secret,
        plugin_id=config.PLUGIN_ID,
        version=config.PLUGIN_VERSION,
        issued_at=record.issued_at.isoformat(),
        message="Plugin registered successfully",
    )

@router.post("/unregister")
async def unregister(body: UnregistrationRequest, request: Request):
    """Revoke an organization's webhook secret"""
    store = request.app.state.secrets
    if not store.revoke(body.organization_id):
        raise HTTPException(status_code=404, detail="Organization not registered")
    prometheus_metrics.set_tenants_registered(store.count())
    return {"status": "unregistered", "organizationId": body.organization_id}
