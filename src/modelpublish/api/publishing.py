"""
Model publishing API endpoints.

- POST   /v1/namespaces/{namespace}/models/{model}/publish           Publish
- PUT    /v1/namespaces/{namespace}/models/{model}/publish           Update
- DELETE /v1/namespaces/{namespace}/models/{model}/publish           Unpublish
- POST   /v1/namespaces/{namespace}/models/{model}/publish:validate  Dry run
- GET    /v1/namespaces/{namespace}/publishing-errors/{day}          Audit log
"""

from datetime import date
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Header, Request, Response, status

from ..core.publisher import PublishingService
from ..models.audit import DailyErrorLog
from ..models.publishing import PublishConfig, PublishedModel, User

logger = structlog.get_logger(__name__)

router = APIRouter()

ERROR_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    400: {"description": "Invalid request, all violations listed in details.errors"},
    404: {"description": "Model not found or not published"},
    409: {"description": "Model already published"},
    500: {"description": "A provisioning step failed and was rolled back"},
}


def get_publishing_service(request: Request) -> PublishingService:
    """Dependency to get the publishing service from app state."""
    return request.app.state.publishing_service


def get_user(
    x_user: Optional[str] = Header(None, alias="X-User"),
    x_tenant: Optional[str] = Header(None, alias="X-Tenant"),
) -> User:
    """Identify the acting user for the audit trail. No authorization is applied."""
    return User(name=x_user or "anonymous", tenant=x_tenant or "")


@router.post(
    "/namespaces/{namespace}/models/{model_name}/publish",
    response_model=PublishedModel,
    status_code=201,
    responses=ERROR_RESPONSES,
    summary="Publish a model",
    description="""
    Publish a deployed model behind the API gateway.

    **Provisioning steps:**
    1. Request validation (all violations reported together)
    2. API key issuance
    3. Gateway route configuration
    4. Rate-limit policy
    5. Published-model metadata

    If any step fails, completed steps are rolled back in reverse order,
    the failure is recorded in the daily error log, and leftover
    artifacts are cleaned up.
    """,
)
async def publish_model(
    namespace: str,
    model_name: str,
    config: PublishConfig,
    user: User = Depends(get_user),
    service: PublishingService = Depends(get_publishing_service),
) -> PublishedModel:
    logger.info("Publish requested", namespace=namespace, model_name=model_name, user=user.name)
    return await service.publish_model(user, namespace, model_name, config)


@router.put(
    "/namespaces/{namespace}/models/{model_name}/publish",
    response_model=PublishedModel,
    responses=ERROR_RESPONSES,
    summary="Update a published model",
)
async def update_published_model(
    namespace: str,
    model_name: str,
    config: PublishConfig,
    user: User = Depends(get_user),
    service: PublishingService = Depends(get_publishing_service),
) -> PublishedModel:
    """Update gateway, rate-limit and metadata settings. The model type cannot change."""
    logger.info("Update requested", namespace=namespace, model_name=model_name, user=user.name)
    return await service.update_model(user, namespace, model_name, config)


@router.delete(
    "/namespaces/{namespace}/models/{model_name}/publish",
    status_code=204,
    responses=ERROR_RESPONSES,
    summary="Unpublish a model",
)
async def unpublish_model(
    namespace: str,
    model_name: str,
    user: User = Depends(get_user),
    service: PublishingService = Depends(get_publishing_service),
) -> Response:
    logger.info("Unpublish requested", namespace=namespace, model_name=model_name, user=user.name)
    await service.unpublish_model(user, namespace, model_name)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/namespaces/{namespace}/models/{model_name}/publish:validate",
    summary="Validate a publish request without applying it",
)
async def validate_publish_request(
    namespace: str,
    model_name: str,
    config: PublishConfig,
    service: PublishingService = Depends(get_publishing_service),
) -> Dict[str, Any]:
    errors = await service.validate(namespace, model_name, config)
    return {
        "valid": not errors,
        "errors": [error.model_dump(mode="json") for error in errors],
    }


@router.get(
    "/namespaces/{namespace}/publishing-errors/{day}",
    response_model=DailyErrorLog,
    summary="Read a day's publishing error log",
)
async def get_publishing_errors(
    namespace: str,
    day: date,
    service: PublishingService = Depends(get_publishing_service),
) -> DailyErrorLog:
    return await service.reporter.get_daily_log(namespace, day)
