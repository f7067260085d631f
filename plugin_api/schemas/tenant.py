from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional


class RegistrationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    organization_id: str = Field(..., alias="organizationId", min_length=1, max_length=128)
    organization_name: Optional[str] = Field(None, alias="organizationName", max_length=256)
    platform_url: str = Field(..., alias="platformUrl")
    platform_version: Optional[str] = Field(None, alias="platformVersion")

    @model_validator(mode='after')
    def validate_platform_url(self) -> 'RegistrationRequest':
        if not self.platform_url.startswith(('http://', 'https://')):
            raise ValueError("platformUrl must start with http:// or https://")
        self.platform_url = self.platform_url.rstrip('/')
        return self


class RegistrationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    webhook_secret: str = Field(..., alias="webhookSecret")
    plugin_id: str = Field(..., alias="pluginId")
    version: str
    issued_at: str = Field(..., alias="issuedAt")
    message: str


class UnregistrationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    organization_id: str = Field(..., alias="organizationId", min_length=1, max_length=128)
