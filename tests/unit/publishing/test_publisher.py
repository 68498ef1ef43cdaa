"""
Tests for PublishingService.

Tests the publish sequence and what happens when a provisioning step fails.
"""

import pytest

from modelpublish.config import PublishingSettings, Settings
from modelpublish.core.exceptions import (
    ConflictError,
    NotFoundError,
    PublishingError,
    RequestValidationFailed,
    StoreError,
)
from modelpublish.core.metrics import MetricsCollector
from modelpublish.core.publisher import PublishingService
from modelpublish.inmemory import InMemoryControlPlane, InMemoryObjectStore
from modelpublish.models import PublishConfig, User

NAMESPACE = "team-a"
MODEL_NAME = "sentiment"
LOG_NAME = "publishing-errors-2025-09-22"

PROVISIONING_CALLS = [
    "create_api_key",
    "configure_gateway",
    "create_rate_limit_policy",
    "store_metadata",
]


def methods(plane: InMemoryControlPlane) -> list:
    return [method for method, _, _ in plane.calls]


def assert_nothing_left(plane: InMemoryControlPlane) -> None:
    key = (NAMESPACE, MODEL_NAME)
    assert key not in plane.api_keys
    assert key not in plane.gateway_configs
    assert key not in plane.rate_limit_policies
    assert key not in plane.metadata


class TestPublish:
    """Test the successful publish path."""

    @pytest.mark.asyncio
    async def test_publish_runs_steps_in_order(
        self,
        publishing_service: PublishingService,
        control_plane: InMemoryControlPlane,
        user: User,
        valid_config: PublishConfig,
    ) -> None:
        published = await publishing_service.publish_model(user, NAMESPACE, MODEL_NAME, valid_config)

        provisioning = [m for m in methods(control_plane) if m in PROVISIONING_CALLS]
        assert provisioning == PROVISIONING_CALLS
        assert published.model_type == "traditional"
        assert published.api_key_id == control_plane.api_keys[(NAMESPACE, MODEL_NAME)]
        assert control_plane.metadata[(NAMESPACE, MODEL_NAME)] == published

    @pytest.mark.asyncio
    async def test_publish_defaults(
        self,
        publishing_service: PublishingService,
        user: User,
        valid_config: PublishConfig,
    ) -> None:
        """Test unset model type and hostname fall back to configured defaults."""
        config = valid_config.model_copy(update={"model_type": "", "public_hostname": ""})

        published = await publishing_service.publish_model(user, NAMESPACE, MODEL_NAME, config)

        assert published.model_type == "traditional"
        assert published.public_hostname == "api.router.inference-in-a-box"

    @pytest.mark.asyncio
    async def test_gateway_gets_default_hostname(
        self,
        publishing_service: PublishingService,
        control_plane: InMemoryControlPlane,
        user: User,
        valid_config: PublishConfig,
    ) -> None:
        """Test the gateway is configured with the hostname recorded in metadata."""
        config = valid_config.model_copy(update={"public_hostname": ""})

        published = await publishing_service.publish_model(user, NAMESPACE, MODEL_NAME, config)

        assert control_plane.gateway_configs[(NAMESPACE, MODEL_NAME)]["hostname"] == published.public_hostname
        assert published.public_hostname == "api.router.inference-in-a-box"

    @pytest.mark.asyncio
    async def test_invalid_request_touches_nothing(
        self,
        publishing_service: PublishingService,
        control_plane: InMemoryControlPlane,
        user: User,
        valid_config: PublishConfig,
    ) -> None:
        config = valid_config.model_copy(update={"tenant_id": "", "model_type": "bogus"})

        with pytest.raises(RequestValidationFailed) as exc_info:
            await publishing_service.publish_model(user, NAMESPACE, MODEL_NAME, config)

        assert [e.field for e in exc_info.value.errors] == ["tenantId", "modelType"]
        assert exc_info.value.status_code == 400
        assert not any(m in PROVISIONING_CALLS for m in methods(control_plane))

    @pytest.mark.asyncio
    async def test_already_published_conflicts(
        self,
        publishing_service: PublishingService,
        user: User,
        valid_config: PublishConfig,
    ) -> None:
        await publishing_service.publish_model(user, NAMESPACE, MODEL_NAME, valid_config)

        with pytest.raises(ConflictError):
            await publishing_service.publish_model(user, NAMESPACE, MODEL_NAME, valid_config)


class TestPublishFailure:
    """Test rollback, audit and recovery when a step fails."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("failing_call, code, step, compensations", [
        ("create_api_key", "API_KEY_CREATION_FAILED", "api_key", []),
        ("configure_gateway", "GATEWAY_CONFIG_FAILED", "gateway_config", ["cleanup_api_key"]),
        (
            "create_rate_limit_policy", "RATE_LIMIT_POLICY_FAILED", "rate_limiting",
            ["cleanup_gateway_config", "cleanup_api_key"],
        ),
        (
            "store_metadata", "METADATA_STORE_FAILED", "metadata",
            ["cleanup_rate_limit_policy", "cleanup_gateway_config", "cleanup_api_key"],
        ),
    ])
    async def test_failed_step_rolls_back_completed_steps(
        self,
        publishing_service: PublishingService,
        control_plane: InMemoryControlPlane,
        object_store: InMemoryObjectStore,
        user: User,
        valid_config: PublishConfig,
        failing_call: str,
        code: str,
        step: str,
        compensations: list,
    ) -> None:
        cause = StoreError("control plane unavailable")
        control_plane.fail(failing_call, cause)

        with pytest.raises(PublishingError) as exc_info:
            await publishing_service.publish_model(user, NAMESPACE, MODEL_NAME, valid_config)

        error = exc_info.value
        assert error.code == code
        assert error.step == step
        assert error.cause is cause
        assert error.__cause__ is cause
        assert error.namespace == NAMESPACE
        assert error.model_name == MODEL_NAME

        calls = methods(control_plane)
        failed_at = calls.index(failing_call)
        rollback_calls = [m for m in calls[failed_at + 1:] if m.startswith("cleanup_")]
        assert rollback_calls == compensations

        assert_nothing_left(control_plane)

        entries = object_store.peek(NAMESPACE, LOG_NAME)["entries"]
        assert len(entries) == 1
        assert entries[0]["operation"] == "publish"
        assert entries[0]["user"] == "alice"
        assert entries[0]["error"] == str(error)

    @pytest.mark.asyncio
    async def test_recovery_cleans_what_rollback_missed(
        self,
        publishing_service: PublishingService,
        control_plane: InMemoryControlPlane,
        user: User,
        valid_config: PublishConfig,
    ) -> None:
        """Test recovery runs every cleanup when rollback left an artifact behind."""
        control_plane.fail("store_metadata", StoreError("metadata store down"))
        control_plane.fail("cleanup_api_key", StoreError("key service down"))

        with pytest.raises(PublishingError):
            await publishing_service.publish_model(user, NAMESPACE, MODEL_NAME, valid_config)

        calls = methods(control_plane)
        state_check = calls.index("is_model_published")
        assert calls[state_check + 1:] == [
            "cleanup_api_key",
            "cleanup_gateway_config",
            "cleanup_rate_limit_policy",
            "cleanup_metadata",
        ]

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_mask_error(
        self,
        publishing_service: PublishingService,
        control_plane: InMemoryControlPlane,
        object_store: InMemoryObjectStore,
        user: User,
        valid_config: PublishConfig,
    ) -> None:
        control_plane.fail("configure_gateway", StoreError("gateway down"))
        object_store.fail("get_object", StoreError("store down"))

        with pytest.raises(PublishingError) as exc_info:
            await publishing_service.publish_model(user, NAMESPACE, MODEL_NAME, valid_config)

        assert exc_info.value.code == "GATEWAY_CONFIG_FAILED"

    @pytest.mark.asyncio
    async def test_recovery_can_be_disabled(
        self,
        control_plane: InMemoryControlPlane,
        object_store: InMemoryObjectStore,
        metrics: MetricsCollector,
        user: User,
        valid_config: PublishConfig,
    ) -> None:
        service = PublishingService(
            registry=control_plane,
            backend=control_plane,
            store=object_store,
            settings=Settings(publishing=PublishingSettings(recovery_enabled=False)),
            metrics=metrics,
        )
        control_plane.fail("configure_gateway", StoreError("gateway down"))

        with pytest.raises(PublishingError):
            await service.publish_model(user, NAMESPACE, MODEL_NAME, valid_config)

        assert "is_model_published" not in methods(control_plane)

    @pytest.mark.asyncio
    async def test_failure_metrics(
        self,
        publishing_service: PublishingService,
        control_plane: InMemoryControlPlane,
        metrics: MetricsCollector,
        user: User,
        valid_config: PublishConfig,
    ) -> None:
        control_plane.fail("configure_gateway", StoreError("gateway down"))

        with pytest.raises(PublishingError):
            await publishing_service.publish_model(user, NAMESPACE, MODEL_NAME, valid_config)

        assert metrics.registry.get_sample_value(
            "publish_requests_total", {"operation": "publish", "outcome": "failed"},
        ) == 1.0
        assert metrics.registry.get_sample_value(
            "rollback_steps_total", {"step": "api_key", "outcome": "success"},
        ) == 1.0


class TestUpdateAndUnpublish:
    """Test update_model and unpublish_model."""

    @pytest.mark.asyncio
    async def test_update_keeps_model_type(
        self,
        publishing_service: PublishingService,
        control_plane: InMemoryControlPlane,
        user: User,
        valid_config: PublishConfig,
    ) -> None:
        original = await publishing_service.publish_model(user, NAMESPACE, MODEL_NAME, valid_config)
        new_limits = valid_config.rate_limiting.model_copy(update={"requests_per_minute": 5})
        config = valid_config.model_copy(update={"model_type": "", "rate_limiting": new_limits})

        updated = await publishing_service.update_model(user, NAMESPACE, MODEL_NAME, config)

        assert updated.model_type == original.model_type
        assert updated.api_key_id == original.api_key_id
        assert updated.published_at == original.published_at
        assert control_plane.rate_limit_policies[(NAMESPACE, MODEL_NAME)]["requests_per_minute"] == 5

    @pytest.mark.asyncio
    async def test_update_without_hostname_keeps_gateway_and_metadata_in_sync(
        self,
        publishing_service: PublishingService,
        control_plane: InMemoryControlPlane,
        user: User,
        valid_config: PublishConfig,
    ) -> None:
        await publishing_service.publish_model(user, NAMESPACE, MODEL_NAME, valid_config)
        config = valid_config.model_copy(update={"public_hostname": ""})

        updated = await publishing_service.update_model(user, NAMESPACE, MODEL_NAME, config)

        gateway = control_plane.gateway_configs[(NAMESPACE, MODEL_NAME)]
        metadata = control_plane.metadata[(NAMESPACE, MODEL_NAME)]
        assert updated.public_hostname == "sentiment.inference-in-a-box"
        assert metadata.public_hostname == updated.public_hostname
        assert gateway["hostname"] == updated.public_hostname

    @pytest.mark.asyncio
    async def test_update_rejects_model_type_change(
        self,
        publishing_service: PublishingService,
        user: User,
        valid_config: PublishConfig,
    ) -> None:
        await publishing_service.publish_model(user, NAMESPACE, MODEL_NAME, valid_config)
        config = valid_config.model_copy(update={"model_type": "openai"})

        with pytest.raises(RequestValidationFailed) as exc_info:
            await publishing_service.update_model(user, NAMESPACE, MODEL_NAME, config)

        assert [e.field for e in exc_info.value.errors] == ["modelType"]

    @pytest.mark.asyncio
    async def test_update_unpublished_model(
        self,
        publishing_service: PublishingService,
        user: User,
        valid_config: PublishConfig,
    ) -> None:
        with pytest.raises(NotFoundError):
            await publishing_service.update_model(user, NAMESPACE, MODEL_NAME, valid_config)

    @pytest.mark.asyncio
    async def test_update_failure_reported(
        self,
        publishing_service: PublishingService,
        control_plane: InMemoryControlPlane,
        object_store: InMemoryObjectStore,
        user: User,
        valid_config: PublishConfig,
    ) -> None:
        await publishing_service.publish_model(user, NAMESPACE, MODEL_NAME, valid_config)
        control_plane.fail("create_rate_limit_policy", StoreError("policy engine down"))

        with pytest.raises(PublishingError) as exc_info:
            await publishing_service.update_model(user, NAMESPACE, MODEL_NAME, valid_config)

        assert exc_info.value.code == "RATE_LIMIT_POLICY_FAILED"
        entries = object_store.peek(NAMESPACE, LOG_NAME)["entries"]
        assert [e["operation"] for e in entries] == ["update"]
        # Existing artifacts are not compensated on update
        assert (NAMESPACE, MODEL_NAME) in control_plane.api_keys

    @pytest.mark.asyncio
    async def test_unpublish_removes_everything(
        self,
        publishing_service: PublishingService,
        control_plane: InMemoryControlPlane,
        user: User,
        valid_config: PublishConfig,
    ) -> None:
        await publishing_service.publish_model(user, NAMESPACE, MODEL_NAME, valid_config)

        await publishing_service.unpublish_model(user, NAMESPACE, MODEL_NAME)

        assert_nothing_left(control_plane)

    @pytest.mark.asyncio
    async def test_unpublish_failure(
        self,
        publishing_service: PublishingService,
        control_plane: InMemoryControlPlane,
        object_store: InMemoryObjectStore,
        user: User,
        valid_config: PublishConfig,
    ) -> None:
        await publishing_service.publish_model(user, NAMESPACE, MODEL_NAME, valid_config)
        control_plane.fail("cleanup_gateway_config", StoreError("gateway down"))

        with pytest.raises(PublishingError) as exc_info:
            await publishing_service.unpublish_model(user, NAMESPACE, MODEL_NAME)

        assert exc_info.value.code == "UNPUBLISH_FAILED"
        assert str(exc_info.value) == "UNPUBLISH_FAILED: Failed to unpublish model - gateway down"
        assert exc_info.value.step == "gateway_config"
        entries = object_store.peek(NAMESPACE, LOG_NAME)["entries"]
        assert [e["operation"] for e in entries] == ["unpublish"]

    @pytest.mark.asyncio
    async def test_unpublish_failure_runs_remaining_cleanups(
        self,
        publishing_service: PublishingService,
        control_plane: InMemoryControlPlane,
        user: User,
        valid_config: PublishConfig,
    ) -> None:
        """Test one failing cleanup does not stop the others."""
        await publishing_service.publish_model(user, NAMESPACE, MODEL_NAME, valid_config)
        control_plane.fail("cleanup_api_key", StoreError("key service down"))
        control_plane.fail("cleanup_rate_limit_policy", StoreError("policy engine down"))

        with pytest.raises(PublishingError) as exc_info:
            await publishing_service.unpublish_model(user, NAMESPACE, MODEL_NAME)

        assert [m for m in methods(control_plane) if m.startswith("cleanup_")] == [
            "cleanup_api_key",
            "cleanup_gateway_config",
            "cleanup_rate_limit_policy",
            "cleanup_metadata",
        ]
        assert (NAMESPACE, MODEL_NAME) not in control_plane.gateway_configs
        assert (NAMESPACE, MODEL_NAME) not in control_plane.metadata
        assert exc_info.value.step == "api_key,rate_limiting"
        assert str(exc_info.value) == "UNPUBLISH_FAILED: Failed to unpublish model - key service down"

    @pytest.mark.asyncio
    async def test_unpublish_unknown_model(self, publishing_service: PublishingService, user: User) -> None:
        with pytest.raises(NotFoundError):
            await publishing_service.unpublish_model(user, NAMESPACE, MODEL_NAME)

    @pytest.mark.asyncio
    async def test_validate_uses_update_rules_once_published(
        self,
        publishing_service: PublishingService,
        user: User,
        valid_config: PublishConfig,
    ) -> None:
        await publishing_service.publish_model(user, NAMESPACE, MODEL_NAME, valid_config)
        config = valid_config.model_copy(update={"model_type": "openai"})

        errors = await publishing_service.validate(NAMESPACE, MODEL_NAME, config)

        assert [(e.field, e.message) for e in errors] == [
            ("modelType", "Model type cannot be changed after publishing"),
        ]
