"""
Publishing orchestration.

Sequences a publish:
1. Request validation
2. API key issuance
3. Gateway route configuration
4. Rate-limit policy
5. Published-model metadata

Each step is recorded for rollback as soon as it succeeds. On failure the
completed steps are compensated, the error is written to the audit log and
recovery cleans up anything left behind; the original error is then raised.
"""

import time
from typing import Awaitable, Callable, Dict, List, Optional

import structlog

from ..config import Settings
from ..models.publishing import PublishConfig, PublishedModel, User, ValidationError
from ..protocols import ModelRegistry, ObjectStore, ProvisioningBackend
from .exceptions import ConflictError, NotFoundError, PublishingError, RequestValidationFailed
from .metrics import MetricsCollector
from .recovery import RecoveryHandler
from .reporter import ErrorReporter, utc_now
from .rollback import PublishingRollback, RollbackStep
from .validator import PublishingValidator

logger = structlog.get_logger(__name__)

STEP_ERROR_CODES = {
    RollbackStep.API_KEY: ("API_KEY_CREATION_FAILED", "Failed to create API key"),
    RollbackStep.GATEWAY_CONFIG: ("GATEWAY_CONFIG_FAILED", "Failed to configure gateway"),
    RollbackStep.RATE_LIMITING: ("RATE_LIMIT_POLICY_FAILED", "Failed to create rate limiting policy"),
    RollbackStep.METADATA: ("METADATA_STORE_FAILED", "Failed to store published model metadata"),
}


class PublishingService:
    """
    Publishes, updates and unpublishes models behind the gateway.

    Collaborators are injected; the validator, rollback tracker, recovery
    handler and error reporter each get only the interface they need.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        backend: ProvisioningBackend,
        store: ObjectStore,
        settings: Settings,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.registry = registry
        self.backend = backend
        self.settings = settings
        self.metrics = metrics
        self.validator = PublishingValidator(registry, settings.publishing)
        self.reporter = ErrorReporter(store, settings.audit, metrics=metrics)
        self.recovery = RecoveryHandler(registry, backend, metrics=metrics)

        logger.info(
            "Publishing service initialized",
            recovery_enabled=settings.publishing.recovery_enabled,
            has_metrics=metrics is not None,
        )

    async def validate(
        self,
        namespace: str,
        model_name: str,
        config: PublishConfig,
    ) -> List[ValidationError]:
        """Dry-run validation: update rules if already published, publish rules otherwise."""
        current = await self.registry.get_published_model(namespace, model_name)
        if current is not None:
            return await self.validator.validate_update_request(namespace, model_name, config, current)
        return await self.validator.validate_publish_request(namespace, model_name, config)

    async def publish_model(
        self,
        user: User,
        namespace: str,
        model_name: str,
        config: PublishConfig,
    ) -> PublishedModel:
        """Publish a model, rolling back completed steps on failure."""
        start_time = time.time()
        logger.info(
            "Publishing model",
            user=user.name,
            namespace=namespace,
            model_name=model_name,
            tenant_id=config.tenant_id,
        )

        errors = await self.validator.validate_publish_request(namespace, model_name, config)
        self._raise_if_invalid(errors, "publish", start_time)

        if await self.registry.get_published_model(namespace, model_name) is not None:
            self._record("publish", "conflict", start_time)
            raise ConflictError(
                f"Model {namespace}/{model_name} is already published",
                details={"namespace": namespace, "model": model_name},
            )

        rollback = PublishingRollback(self.backend, namespace, model_name, metrics=self.metrics)
        now = utc_now()
        hostname = config.public_hostname or self.settings.publishing.default_hostname
        gateway_config = config.model_copy(update={"public_hostname": hostname})

        try:
            api_key_id = await self._run_step(
                RollbackStep.API_KEY, namespace, model_name,
                lambda: self.backend.create_api_key(namespace, model_name, config.tenant_id),
            )
            rollback.add_step(RollbackStep.API_KEY)

            await self._run_step(
                RollbackStep.GATEWAY_CONFIG, namespace, model_name,
                lambda: self.backend.configure_gateway(namespace, model_name, gateway_config),
            )
            rollback.add_step(RollbackStep.GATEWAY_CONFIG)

            await self._run_step(
                RollbackStep.RATE_LIMITING, namespace, model_name,
                lambda: self.backend.create_rate_limit_policy(namespace, model_name, config.rate_limiting),
            )
            rollback.add_step(RollbackStep.RATE_LIMITING)

            published = PublishedModel(
                name=model_name,
                namespace=namespace,
                tenant_id=config.tenant_id,
                model_type=config.model_type or self.settings.publishing.default_model_type,
                external_path=config.external_path,
                public_hostname=hostname,
                rate_limiting=config.rate_limiting,
                api_key_id=api_key_id,
                published_at=now,
                updated_at=now,
            )
            await self._run_step(
                RollbackStep.METADATA, namespace, model_name,
                lambda: self.backend.store_metadata(namespace, model_name, published),
            )
            rollback.add_step(RollbackStep.METADATA)

        except PublishingError as e:
            await rollback.execute()
            await self.reporter.report_error(user, namespace, model_name, "publish", e)
            if self.settings.publishing.recovery_enabled:
                await self.recovery.recover_from_failure(namespace, model_name, e)
            self._record("publish", "failed", start_time)
            raise

        logger.info(
            "Model published successfully",
            namespace=namespace,
            model_name=model_name,
            model_type=published.model_type,
            processing_time_ms=(time.time() - start_time) * 1000,
        )
        self._record("publish", "success", start_time)
        return published

    async def update_model(
        self,
        user: User,
        namespace: str,
        model_name: str,
        config: PublishConfig,
    ) -> PublishedModel:
        """Apply new settings to an already published model."""
        start_time = time.time()
        current = await self.registry.get_published_model(namespace, model_name)
        if current is None:
            self._record("update", "not_found", start_time)
            raise NotFoundError(
                f"Model {namespace}/{model_name} is not published",
                details={"namespace": namespace, "model": model_name},
            )

        errors = await self.validator.validate_update_request(namespace, model_name, config, current)
        self._raise_if_invalid(errors, "update", start_time)

        updated = current.model_copy(update={
            "tenant_id": config.tenant_id,
            "external_path": config.external_path,
            "public_hostname": config.public_hostname or current.public_hostname,
            "rate_limiting": config.rate_limiting,
            "updated_at": utc_now(),
        })
        gateway_config = config.model_copy(update={"public_hostname": updated.public_hostname})

        try:
            await self._run_step(
                RollbackStep.GATEWAY_CONFIG, namespace, model_name,
                lambda: self.backend.configure_gateway(namespace, model_name, gateway_config),
            )
            await self._run_step(
                RollbackStep.RATE_LIMITING, namespace, model_name,
                lambda: self.backend.create_rate_limit_policy(namespace, model_name, config.rate_limiting),
            )
            await self._run_step(
                RollbackStep.METADATA, namespace, model_name,
                lambda: self.backend.store_metadata(namespace, model_name, updated),
            )
        except PublishingError as e:
            await self.reporter.report_error(user, namespace, model_name, "update", e)
            self._record("update", "failed", start_time)
            raise

        logger.info("Model updated successfully", namespace=namespace, model_name=model_name)
        self._record("update", "success", start_time)
        return updated

    async def unpublish_model(self, user: User, namespace: str, model_name: str) -> None:
        """Remove every provisioning artifact of a published model."""
        start_time = time.time()
        if not await self.registry.is_model_published(namespace, model_name):
            self._record("unpublish", "not_found", start_time)
            raise NotFoundError(
                f"Model {namespace}/{model_name} is not published",
                details={"namespace": namespace, "model": model_name},
            )

        cleanups = [
            (RollbackStep.API_KEY, self.backend.cleanup_api_key),
            (RollbackStep.GATEWAY_CONFIG, self.backend.cleanup_gateway_config),
            (RollbackStep.RATE_LIMITING, self.backend.cleanup_rate_limit_policy),
            (RollbackStep.METADATA, self.backend.cleanup_metadata),
        ]
        failures: Dict[RollbackStep, Exception] = {}
        for step, action in cleanups:
            try:
                await action(namespace, model_name)
            except Exception as e:
                logger.error(
                    "Unpublish cleanup failed",
                    step=step.value,
                    namespace=namespace,
                    model_name=model_name,
                    error=str(e),
                )
                failures[step] = e

        if failures:
            cause = next(iter(failures.values()))
            error = PublishingError(
                code="UNPUBLISH_FAILED",
                message="Failed to unpublish model",
                namespace=namespace,
                model_name=model_name,
                step=",".join(failed.value for failed in failures),
                cause=cause,
            )
            await self.reporter.report_error(user, namespace, model_name, "unpublish", error)
            self._record("unpublish", "failed", start_time)
            raise error from cause

        logger.info("Model unpublished", user=user.name, namespace=namespace, model_name=model_name)
        self._record("unpublish", "success", start_time)

    async def _run_step(
        self,
        step: RollbackStep,
        namespace: str,
        model_name: str,
        action: Callable[[], Awaitable],
    ):
        """Run one provisioning call, wrapping any failure as a PublishingError."""
        try:
            return await action()
        except Exception as e:
            code, message = STEP_ERROR_CODES[step]
            logger.error(
                "Provisioning step failed",
                step=step.value,
                namespace=namespace,
                model_name=model_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise PublishingError(
                code=code,
                message=message,
                namespace=namespace,
                model_name=model_name,
                step=step.value,
                cause=e,
            ) from e

    def _raise_if_invalid(self, errors: List[ValidationError], operation: str, start_time: float) -> None:
        if not errors:
            return
        if self.metrics:
            for error in errors:
                self.metrics.record_validation_failure(error.field)
        self._record(operation, "invalid", start_time)
        raise RequestValidationFailed(errors)

    def _record(self, operation: str, outcome: str, start_time: float) -> None:
        if self.metrics:
            self.metrics.record_publish(operation, outcome, time.time() - start_time)
