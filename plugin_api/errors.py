"""
Error taxonomy for jobs, tenants and webhook delivery
"""

from typing import Any, Dict, Optional


class PluginError(Exception):
    """Base error carrying a stable machine-readable code"""

    code = "plugin_error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class InvalidInput(PluginError):
    """Submission rejected before a job was created"""

    code = "invalid_input"


class UnknownTenant(PluginError):
    """No signing secret on file for the tenant"""

    code = "unknown_tenant"

    def __init__(self, tenant_id: str):
        super().__init__(f"No webhook secret registered for tenant {tenant_id}")
        self.tenant_id = tenant_id


class UnknownJob(PluginError):
    code = "unknown_job"

    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class InvalidTransition(PluginError):
    """Job state change attempted from a state that does not allow it"""

    code = "invalid_transition"


class InvalidProgress(PluginError):
    """Progress report outside [0, 100] or lower than the last report"""

    code = "invalid_progress"


class WorkFailure(PluginError):
    """Error raised by a transform handler; becomes the failure webhook's error"""

    def __init__(self, code: str, message: str):
        super().__init__(message, code=code)


class DeliveryFailure(PluginError):
    """Webhook could not be delivered to the callback URL"""

    code = "delivery_failed"

    def __init__(self, reason: str, status_code: Optional[int] = None):
        super().__init__(f"Webhook delivery failed: {reason}")
        self.reason = reason
        self.status_code = status_code
