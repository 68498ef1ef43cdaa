"""
Publishing error audit models.

One DailyErrorLog object per namespace per UTC day, named
``publishing-errors-YYYY-MM-DD``, holding entries in the order reported.
"""

from typing import List, Literal

from pydantic import BaseModel, Field


class ErrorLogEntry(BaseModel):
    """A single publishing failure in the audit trail."""

    timestamp: str = Field(description="RFC3339 UTC timestamp of the failure")
    user: str
    tenant: str
    operation: str
    model: str
    namespace: str
    error: str
    level: Literal["error"] = "error"


class DailyErrorLog(BaseModel):
    """Aggregate of a day's publishing failures for one namespace."""

    entries: List[ErrorLogEntry] = Field(default_factory=list)
