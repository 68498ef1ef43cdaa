"""In-memory collaborator implementations.

Used for local runs and by the test-suite. They satisfy the protocol
interfaces but keep everything in dicts (no persistence across restarts).
Any method can be made to fail with ``fail(method, exc)`` to exercise
rollback and recovery paths.
"""

from __future__ import annotations

import asyncio
import copy
import uuid
from typing import Any, Dict, List, Optional, Set, Tuple

from .core.exceptions import ConflictError, NotFoundError
from .models.publishing import PublishConfig, PublishedModel, RateLimiting
from .protocols import StoredObject

Key = Tuple[str, str]


class _FailureInjection:
    def __init__(self) -> None:
        self.failures: Dict[str, BaseException] = {}
        self.calls: List[Tuple[str, str, str]] = []

    def fail(self, method: str, exc: BaseException) -> None:
        """Make every later call to ``method`` raise ``exc``."""
        self.failures[method] = exc

    def clear_failures(self) -> None:
        self.failures.clear()

    def _record(self, method: str, namespace: str, name: str) -> None:
        self.calls.append((method, namespace, name))
        exc = self.failures.get(method)
        if exc is not None:
            raise exc


class InMemoryControlPlane(_FailureInjection):
    """Model registry and provisioning backend over plain dicts."""

    def __init__(self) -> None:
        super().__init__()
        self.models: Set[Key] = set()
        self.api_keys: Dict[Key, str] = {}
        self.gateway_configs: Dict[Key, Dict[str, Any]] = {}
        self.rate_limit_policies: Dict[Key, Dict[str, int]] = {}
        self.metadata: Dict[Key, PublishedModel] = {}

    def add_model(self, namespace: str, model_name: str) -> None:
        """Register a deployed, ready model."""
        self.models.add((namespace, model_name))

    # ModelRegistry

    async def model_exists(self, namespace: str, model_name: str) -> None:
        self._record("model_exists", namespace, model_name)
        if (namespace, model_name) not in self.models:
            raise NotFoundError(
                f"model {namespace}/{model_name} not found",
                details={"namespace": namespace, "model": model_name},
            )

    async def is_model_published(self, namespace: str, model_name: str) -> bool:
        self._record("is_model_published", namespace, model_name)
        key = (namespace, model_name)
        # Any leftover artifact counts as (partially) published
        return (
            key in self.metadata
            or key in self.api_keys
            or key in self.gateway_configs
            or key in self.rate_limit_policies
        )

    async def get_published_model(self, namespace: str, model_name: str) -> Optional[PublishedModel]:
        self._record("get_published_model", namespace, model_name)
        return self.metadata.get((namespace, model_name))

    # ProvisioningBackend

    async def create_api_key(self, namespace: str, model_name: str, tenant_id: str) -> str:
        self._record("create_api_key", namespace, model_name)
        key_id = f"key_{uuid.uuid4().hex[:12]}"
        self.api_keys[(namespace, model_name)] = key_id
        return key_id

    async def configure_gateway(self, namespace: str, model_name: str, config: PublishConfig) -> None:
        self._record("configure_gateway", namespace, model_name)
        self.gateway_configs[(namespace, model_name)] = {
            "hostname": config.public_hostname,
            "path": config.external_path or f"/models/{namespace}/{model_name}",
        }

    async def create_rate_limit_policy(
        self, namespace: str, model_name: str, rate_limiting: RateLimiting,
    ) -> None:
        self._record("create_rate_limit_policy", namespace, model_name)
        self.rate_limit_policies[(namespace, model_name)] = {
            "requests_per_minute": rate_limiting.requests_per_minute,
            "requests_per_hour": rate_limiting.requests_per_hour,
        }

    async def store_metadata(self, namespace: str, model_name: str, published_model: PublishedModel) -> None:
        self._record("store_metadata", namespace, model_name)
        self.metadata[(namespace, model_name)] = published_model

    # ProvisioningCleanup

    async def cleanup_api_key(self, namespace: str, model_name: str) -> None:
        self._record("cleanup_api_key", namespace, model_name)
        self.api_keys.pop((namespace, model_name), None)

    async def cleanup_gateway_config(self, namespace: str, model_name: str) -> None:
        self._record("cleanup_gateway_config", namespace, model_name)
        self.gateway_configs.pop((namespace, model_name), None)

    async def cleanup_rate_limit_policy(self, namespace: str, model_name: str) -> None:
        self._record("cleanup_rate_limit_policy", namespace, model_name)
        self.rate_limit_policies.pop((namespace, model_name), None)

    async def cleanup_metadata(self, namespace: str, model_name: str) -> None:
        self._record("cleanup_metadata", namespace, model_name)
        self.metadata.pop((namespace, model_name), None)


class InMemoryObjectStore(_FailureInjection):
    """Versioned keyed-object store.

    ``yield_on_read`` hands control back to the event loop after every read,
    which lets concurrent writers interleave the way they would against a
    remote store.
    """

    def __init__(self, yield_on_read: bool = False) -> None:
        super().__init__()
        self.yield_on_read = yield_on_read
        self._objects: Dict[Key, StoredObject] = {}

    async def get_object(self, namespace: str, name: str) -> StoredObject:
        self._record("get_object", namespace, name)
        obj = self._objects.get((namespace, name))
        if self.yield_on_read:
            await asyncio.sleep(0)
        if obj is None:
            raise NotFoundError(f"object {namespace}/{name} not found")
        return StoredObject(name=obj.name, data=copy.deepcopy(obj.data), version=obj.version)

    async def create_object(self, namespace: str, name: str, data: Dict[str, Any]) -> StoredObject:
        self._record("create_object", namespace, name)
        if (namespace, name) in self._objects:
            raise ConflictError(f"object {namespace}/{name} already exists")
        obj = StoredObject(name=name, data=copy.deepcopy(data), version=1)
        self._objects[(namespace, name)] = obj
        return obj

    async def update_object(
        self,
        namespace: str,
        name: str,
        data: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> StoredObject:
        self._record("update_object", namespace, name)
        current = self._objects.get((namespace, name))
        if current is None:
            raise NotFoundError(f"object {namespace}/{name} not found")
        if expected_version is not None and expected_version != current.version:
            raise ConflictError(
                f"object {namespace}/{name} changed",
                details={"expected_version": expected_version, "version": current.version},
            )
        obj = StoredObject(name=name, data=copy.deepcopy(data), version=current.version + 1)
        self._objects[(namespace, name)] = obj
        return obj

    def put(self, namespace: str, name: str, data: Dict[str, Any]) -> None:
        """Seed an object directly, bypassing failure injection."""
        self._objects[(namespace, name)] = StoredObject(name=name, data=copy.deepcopy(data))

    def peek(self, namespace: str, name: str) -> Optional[Dict[str, Any]]:
        """Return a stored object's data without recording a call."""
        obj = self._objects.get((namespace, name))
        return copy.deepcopy(obj.data) if obj else None
