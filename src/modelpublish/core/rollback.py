"""
Rollback of partially completed publishes.

The publisher records each provisioning step right after it succeeds;
on failure the recorded steps are compensated in reverse order.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

import structlog

from ..protocols import ProvisioningCleanup
from .metrics import MetricsCollector

logger = structlog.get_logger(__name__)


class RollbackStep(str, Enum):
    """Provisioning steps that have a compensating action."""

    API_KEY = "api_key"
    GATEWAY_CONFIG = "gateway_config"
    RATE_LIMITING = "rate_limiting"
    METADATA = "metadata"


@dataclass
class RollbackResult:
    """Outcome of a rollback run."""
    namespace: str
    model_name: str
    compensated: List[RollbackStep] = field(default_factory=list)
    failed: Dict[RollbackStep, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.failed


class PublishingRollback:
    """
    Tracks completed provisioning steps for one publish attempt.

    Compensations are idempotent and run independently: one failing does not
    stop the others, and execute() never raises.
    """

    def __init__(
        self,
        cleanup: ProvisioningCleanup,
        namespace: str,
        model_name: str,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.namespace = namespace
        self.model_name = model_name
        self.metrics = metrics
        self._steps: List[RollbackStep] = []
        self._compensations: Dict[RollbackStep, Callable[[str, str], Awaitable[None]]] = {
            RollbackStep.API_KEY: cleanup.cleanup_api_key,
            RollbackStep.GATEWAY_CONFIG: cleanup.cleanup_gateway_config,
            RollbackStep.RATE_LIMITING: cleanup.cleanup_rate_limit_policy,
            RollbackStep.METADATA: cleanup.cleanup_metadata,
        }

    @property
    def steps(self) -> Tuple[RollbackStep, ...]:
        return tuple(self._steps)

    def add_step(self, step: Union[RollbackStep, str]) -> None:
        """Record a step that has just completed."""
        try:
            step = RollbackStep(step)
        except ValueError:
            logger.warning(
                "Unknown rollback step",
                step=step,
                namespace=self.namespace,
                model_name=self.model_name,
            )
            return

        if step in self._steps:
            logger.warning(
                "Rollback step already recorded",
                step=step.value,
                namespace=self.namespace,
                model_name=self.model_name,
            )
            return

        self._steps.append(step)

    async def execute(self) -> RollbackResult:
        """Compensate all recorded steps, most recent first."""
        logger.info(
            "Starting rollback",
            namespace=self.namespace,
            model_name=self.model_name,
            steps=[step.value for step in self._steps],
        )

        result = RollbackResult(namespace=self.namespace, model_name=self.model_name)

        while self._steps:
            step = self._steps.pop()
            logger.info("Rolling back step", step=step.value, namespace=self.namespace, model_name=self.model_name)

            try:
                await self._compensations[step](self.namespace, self.model_name)
            except Exception as e:
                logger.error(
                    "Rollback step failed",
                    step=step.value,
                    namespace=self.namespace,
                    model_name=self.model_name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result.failed[step] = str(e)
                outcome = "failed"
            else:
                result.compensated.append(step)
                outcome = "success"

            if self.metrics:
                self.metrics.record_rollback_step(step.value, outcome)

        logger.info(
            "Rollback completed",
            namespace=self.namespace,
            model_name=self.model_name,
            compensated=[step.value for step in result.compensated],
            failed=[step.value for step in result.failed],
        )
        return result
