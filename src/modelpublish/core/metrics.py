"""
Prometheus metrics collection.

In-memory counters and histograms for publishing operations,
rollbacks, recoveries and audit writes.
"""

import time
from typing import Optional

import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, Info

logger = structlog.get_logger(__name__)


class MetricsCollector:
    """
    Centralized metrics collection for the publishing service.

    Keep metrics simple, use in-memory counters, let Prometheus handle storage.
    A separate registry can be passed in to keep test runs isolated.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        registry = registry if registry is not None else REGISTRY
        self.registry = registry

        # Service info
        self.service_info = Info(
            "modelpublish_service",
            "Model publishing service information",
            registry=registry,
        )
        self.service_info.info({
            "version": "0.1.0",
            "service": "modelpublish",
        })

        # Publishing metrics
        self.publish_requests_total = Counter(
            "publish_requests_total",
            "Total publishing operations",
            ["operation", "outcome"],
            registry=registry,
        )

        self.publish_duration = Histogram(
            "publish_duration_seconds",
            "Publishing operation duration in seconds",
            ["operation"],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=registry,
        )

        self.validation_failures_total = Counter(
            "validation_failures_total",
            "Total rejected request fields",
            ["field"],
            registry=registry,
        )

        # Failure handling metrics
        self.rollback_steps_total = Counter(
            "rollback_steps_total",
            "Total compensating actions run during rollback",
            ["step", "outcome"],
            registry=registry,
        )

        self.recovery_attempts_total = Counter(
            "recovery_attempts_total",
            "Total recovery attempts after failed publishes",
            ["outcome"],
            registry=registry,
        )

        self.audit_writes_total = Counter(
            "audit_writes_total",
            "Total publishing error audit writes",
            ["outcome"],
            registry=registry,
        )

        self.uptime_seconds = Gauge(
            "uptime_seconds",
            "Service uptime in seconds",
            registry=registry,
        )

        # Track start time for uptime calculation
        self._start_time = time.time()

    def record_publish(self, operation: str, outcome: str, duration_seconds: float) -> None:
        """Record a publish, update or unpublish operation."""
        self.publish_requests_total.labels(operation=operation, outcome=outcome).inc()
        self.publish_duration.labels(operation=operation).observe(duration_seconds)

    def record_validation_failure(self, field: str) -> None:
        self.validation_failures_total.labels(field=field).inc()

    def record_rollback_step(self, step: str, outcome: str) -> None:
        self.rollback_steps_total.labels(step=step, outcome=outcome).inc()

    def record_recovery(self, outcome: str) -> None:
        self.recovery_attempts_total.labels(outcome=outcome).inc()

    def record_audit_write(self, outcome: str) -> None:
        self.audit_writes_total.labels(outcome=outcome).inc()

    def update_system_metrics(self) -> None:
        """Update system-level metrics."""
        self.uptime_seconds.set(time.time() - self._start_time)
