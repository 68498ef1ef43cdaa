"""
Publish request and published model data models.

Field rules (tenant, rate limits, model type, hostname, authentication)
are checked by the publishing validator rather than by pydantic, so that a
single validation pass reports every violation at once.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ModelType(str, Enum):
    """Known model types."""

    TRADITIONAL = "traditional"
    OPENAI = "openai"


class RateLimiting(BaseModel):
    """Per-model request quotas enforced at the gateway."""

    requests_per_minute: int = Field(
        default=0,
        alias="requestsPerMinute",
        description="Requests allowed per minute",
    )
    requests_per_hour: int = Field(
        default=0,
        alias="requestsPerHour",
        description="Requests allowed per hour",
    )

    model_config = ConfigDict(populate_by_name=True)


class Authentication(BaseModel):
    """Gateway authentication requirements."""

    require_api_key: bool = Field(
        default=True,
        alias="requireApiKey",
        description="Whether callers must present an API key",
    )

    model_config = ConfigDict(populate_by_name=True)


class PublishConfig(BaseModel):
    """Desired state for a publish or update request."""

    tenant_id: str = Field(default="", alias="tenantId", description="Owning tenant")
    rate_limiting: RateLimiting = Field(default_factory=RateLimiting, alias="rateLimiting")
    model_type: str = Field(
        default="",
        alias="modelType",
        description="'traditional', 'openai', or empty to keep the recorded type",
    )
    external_path: str = Field(
        default="",
        alias="externalPath",
        description="Gateway path prefix, must start with '/'",
    )
    public_hostname: str = Field(
        default="",
        alias="publicHostname",
        description="Hostname the model is exposed on",
    )
    authentication: Authentication = Field(default_factory=Authentication)

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())


class PublishedModel(BaseModel):
    """Persisted record of a published model."""

    name: str
    namespace: str
    tenant_id: str = Field(alias="tenantId")
    model_type: str = Field(alias="modelType")
    external_path: str = Field(default="", alias="externalPath")
    public_hostname: str = Field(default="", alias="publicHostname")
    rate_limiting: RateLimiting = Field(default_factory=RateLimiting, alias="rateLimiting")
    api_key_id: Optional[str] = Field(default=None, alias="apiKeyId")
    published_at: datetime = Field(alias="publishedAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())


class User(BaseModel):
    """The actor behind a publishing operation."""

    name: str = Field(default="anonymous", min_length=1)
    tenant: str = Field(default="")


class ValidationError(BaseModel):
    """A single rule violation in a publish or update request."""

    field: str
    value: Any = None
    message: str

    def __str__(self) -> str:
        return f"validation error for field '{self.field}': {self.message}"
