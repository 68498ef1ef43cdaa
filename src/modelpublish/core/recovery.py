"""
Best-effort recovery of partially published models.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import structlog

from ..protocols import ModelRegistry, ProvisioningCleanup
from .metrics import MetricsCollector

logger = structlog.get_logger(__name__)


@dataclass
class RecoveryResult:
    """Outcome of a recovery attempt. Never replaces the triggering error."""
    attempted: bool
    cleaned: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.failed


class RecoveryHandler:
    """
    Cleans up after a failed publish.

    If the model still looks published, every provisioning artifact is
    removed regardless of which ones exist; cleanups are idempotent.
    """

    def __init__(
        self,
        registry: ModelRegistry,
        cleanup: ProvisioningCleanup,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.registry = registry
        self.cleanup = cleanup
        self.metrics = metrics

    async def recover_from_failure(self, namespace: str, model_name: str, error: BaseException) -> RecoveryResult:
        """Attempt recovery. Failures are logged and returned, never raised."""
        logger.info(
            "Attempting recovery",
            namespace=namespace,
            model_name=model_name,
            error=str(error),
        )

        try:
            is_published = await self.registry.is_model_published(namespace, model_name)
        except Exception as e:
            logger.error(
                "Recovery could not determine publish state",
                namespace=namespace,
                model_name=model_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            result = RecoveryResult(attempted=False, failed={"is_model_published": str(e)})
            self._record(result)
            return result

        result = RecoveryResult(attempted=is_published)
        if not is_published:
            logger.info("Model not published, nothing to recover", namespace=namespace, model_name=model_name)
            self._record(result)
            return result

        logger.warning(
            "Model appears to be partially published, attempting cleanup",
            namespace=namespace,
            model_name=model_name,
        )

        cleanups = [
            ("api_key", self.cleanup.cleanup_api_key),
            ("gateway_config", self.cleanup.cleanup_gateway_config),
            ("rate_limiting", self.cleanup.cleanup_rate_limit_policy),
            ("metadata", self.cleanup.cleanup_metadata),
        ]
        for name, action in cleanups:
            try:
                await action(namespace, model_name)
            except Exception as e:
                logger.error(
                    "Recovery cleanup failed",
                    artifact=name,
                    namespace=namespace,
                    model_name=model_name,
                    error=str(e),
                )
                result.failed[name] = str(e)
            else:
                result.cleaned.append(name)

        logger.info(
            "Cleanup completed",
            namespace=namespace,
            model_name=model_name,
            cleaned=result.cleaned,
            failed=list(result.failed),
        )
        self._record(result)
        return result

    def _record(self, result: RecoveryResult) -> None:
        if not self.metrics:
            return
        if not result.attempted and not result.failed:
            outcome = "skipped"
        else:
            outcome = "success" if result.succeeded else "failed"
        self.metrics.record_recovery(outcome)
