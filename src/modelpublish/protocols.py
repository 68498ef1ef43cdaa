"""
Collaborator protocol interfaces for dependency injection.

Each core component receives only the narrow interface it needs. Concrete
implementations (in-memory for local runs and tests, a control-plane client
in deployments) must satisfy these protocols.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .models.publishing import PublishConfig, PublishedModel, RateLimiting


@dataclass
class StoredObject:
    """A keyed object in the control-plane store, with its write version."""

    name: str
    data: Dict[str, Any] = field(default_factory=dict)
    version: int = 1


@runtime_checkable
class ModelRegistry(Protocol):
    """Model existence and publication state."""

    async def model_exists(self, namespace: str, model_name: str) -> None:
        """Raise NotFoundError unless the model exists and is ready."""
        ...

    async def is_model_published(self, namespace: str, model_name: str) -> bool: ...
    async def get_published_model(self, namespace: str, model_name: str) -> Optional[PublishedModel]: ...


@runtime_checkable
class ProvisioningCleanup(Protocol):
    """
    Compensating actions for provisioning steps.

    Every method is idempotent: a missing target is not an error.
    """

    async def cleanup_api_key(self, namespace: str, model_name: str) -> None: ...
    async def cleanup_gateway_config(self, namespace: str, model_name: str) -> None: ...
    async def cleanup_rate_limit_policy(self, namespace: str, model_name: str) -> None: ...
    async def cleanup_metadata(self, namespace: str, model_name: str) -> None: ...


@runtime_checkable
class ProvisioningBackend(ProvisioningCleanup, Protocol):
    """Forward provisioning steps plus their compensations."""

    async def create_api_key(self, namespace: str, model_name: str, tenant_id: str) -> str: ...
    async def configure_gateway(self, namespace: str, model_name: str, config: PublishConfig) -> None: ...
    async def create_rate_limit_policy(
        self, namespace: str, model_name: str, rate_limiting: RateLimiting,
    ) -> None: ...
    async def store_metadata(self, namespace: str, model_name: str, published_model: PublishedModel) -> None: ...


@runtime_checkable
class ObjectStore(Protocol):
    """Generic keyed-object store, one keyspace per namespace."""

    async def get_object(self, namespace: str, name: str) -> StoredObject:
        """Return the object or raise NotFoundError."""
        ...

    async def create_object(self, namespace: str, name: str, data: Dict[str, Any]) -> StoredObject:
        """Create the object or raise ConflictError if it already exists."""
        ...

    async def update_object(
        self,
        namespace: str,
        name: str,
        data: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> StoredObject:
        """
        Replace the object's data.

        Raises NotFoundError if absent, ConflictError if ``expected_version``
        is given and does not match the stored version.
        """
        ...
