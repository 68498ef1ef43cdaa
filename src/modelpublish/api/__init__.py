"""
API endpoints package.

Contains FastAPI routers for all service endpoints:
- /v1/namespaces/{namespace}/models/{model}/publish - Publish, update, unpublish
- /v1/namespaces/{namespace}/publishing-errors/{day} - Daily error log
- /metrics - Prometheus metrics
- /healthz - Liveness probe
"""
from .healthz import router as healthz_router
from .metrics import router as metrics_router
from .publishing import router as publishing_router

__all__ = ["healthz_router", "metrics_router", "publishing_router"]
