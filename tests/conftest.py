"""
Pytest configuration and shared fixtures.

Contains common test fixtures and setup for all test modules.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Generator

import pytest
from fastapi.testclient import TestClient
from prometheus_client import CollectorRegistry

from modelpublish.config import AuditSettings, PublishingSettings, Settings
from modelpublish.core.metrics import MetricsCollector
from modelpublish.core.publisher import PublishingService
from modelpublish.core.reporter import ErrorReporter
from modelpublish.core.validator import PublishingValidator
from modelpublish.inmemory import InMemoryControlPlane, InMemoryObjectStore
from modelpublish.main import create_app
from modelpublish.models import PublishConfig, User

NAMESPACE = "team-a"
MODEL_NAME = "sentiment"
FIXED_NOW = datetime(2025, 9, 22, 10, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings() -> Settings:
    """Test settings with library defaults."""
    return Settings(
        log_level="DEBUG",
        publishing=PublishingSettings(),
        audit=AuditSettings(),
    )


@pytest.fixture
def control_plane() -> InMemoryControlPlane:
    """Control plane with one deployed, ready model."""
    plane = InMemoryControlPlane()
    plane.add_model(NAMESPACE, MODEL_NAME)
    return plane


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def metrics() -> MetricsCollector:
    """Metrics on an isolated registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def validator(control_plane: InMemoryControlPlane, settings: Settings) -> PublishingValidator:
    return PublishingValidator(control_plane, settings.publishing)


@pytest.fixture
def reporter(object_store: InMemoryObjectStore, settings: Settings) -> ErrorReporter:
    """Error reporter with a fixed clock."""
    return ErrorReporter(object_store, settings.audit, clock=lambda: FIXED_NOW)


@pytest.fixture
def publishing_service(
    control_plane: InMemoryControlPlane,
    object_store: InMemoryObjectStore,
    settings: Settings,
    metrics: MetricsCollector,
) -> PublishingService:
    service = PublishingService(
        registry=control_plane,
        backend=control_plane,
        store=object_store,
        settings=settings,
        metrics=metrics,
    )
    service.reporter.clock = lambda: FIXED_NOW
    return service


@pytest.fixture
def user() -> User:
    return User(name="alice", tenant="tenant-a")


@pytest.fixture
def valid_config_data() -> Dict[str, Any]:
    """Valid publish request body."""
    return {
        "tenantId": "tenant-a",
        "rateLimiting": {
            "requestsPerMinute": 60,
            "requestsPerHour": 1000,
        },
        "modelType": "traditional",
        "externalPath": "/models/sentiment",
        "publicHostname": "sentiment.inference-in-a-box",
        "authentication": {"requireApiKey": True},
    }


@pytest.fixture
def valid_config(valid_config_data: Dict[str, Any]) -> PublishConfig:
    return PublishConfig.model_validate(valid_config_data)


@pytest.fixture
def test_client(
    settings: Settings,
    control_plane: InMemoryControlPlane,
    object_store: InMemoryObjectStore,
) -> Generator[TestClient, None, None]:
    """FastAPI test client wired to the in-memory collaborators."""
    app = create_app(
        settings=settings,
        registry=control_plane,
        backend=control_plane,
        store=object_store,
    )
    app.state.publishing_service.reporter.clock = lambda: FIXED_NOW

    with TestClient(app) as client:
        yield client
