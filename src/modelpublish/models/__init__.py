"""
Pydantic data models package.

Contains all data models for:
- Publish and update requests
- Published model records
- Validation violations
- Publishing error audit logs
"""

from .audit import DailyErrorLog, ErrorLogEntry
from .publishing import (
    Authentication,
    ModelType,
    PublishConfig,
    PublishedModel,
    RateLimiting,
    User,
    ValidationError,
)

__all__ = [
    # Publishing models
    "Authentication",
    "ModelType",
    "PublishConfig",
    "PublishedModel",
    "RateLimiting",
    "User",
    "ValidationError",

    # Audit models
    "DailyErrorLog",
    "ErrorLogEntry",
]
