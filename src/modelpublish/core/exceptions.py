"""
Custom exceptions for the model publishing service.

Provides structured error handling with appropriate HTTP status codes
and error details for API responses.
"""

from typing import Any, Dict, List, Optional


class ModelPublishException(Exception):
    """Base exception for the model publishing service."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class NotFoundError(ModelPublishException):
    """Raised when a model or stored object does not exist."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=404,
            error_code="not_found",
            details=details,
        )


class ConflictError(ModelPublishException):
    """Raised when a write conflicts with the current state of its target."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=409,
            error_code="conflict",
            details=details,
        )


class StoreError(ModelPublishException):
    """Raised when a control-plane collaborator call fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=502,
            error_code="store_error",
            details=details,
        )


class RequestValidationFailed(ModelPublishException):
    """Raised when a publish or update request has rule violations."""

    def __init__(self, errors: List[Any], message: str = "Publish request validation failed") -> None:
        self.errors = list(errors)
        super().__init__(
            message=message,
            status_code=400,
            error_code="validation_error",
            details={"errors": [_describe(error) for error in self.errors]},
        )


class PublishingError(ModelPublishException):
    """
    A provisioning step failed part way through a publish.

    Carries the step that failed and the underlying cause. The cause is also
    chained as ``__cause__`` so tracebacks and ``raise ... from`` show it.
    """

    def __init__(
        self,
        code: str,
        message: str,
        namespace: str = "",
        model_name: str = "",
        step: str = "",
        cause: Optional[BaseException] = None,
        status_code: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.cause_text = str(cause) if cause is not None else ""
        self.cause = cause
        self.namespace = namespace
        self.model_name = model_name
        self.step = step
        super().__init__(
            message=self._format(),
            status_code=status_code,
            error_code=code.lower(),
            details={
                "namespace": namespace,
                "model": model_name,
                "step": step,
                "cause": self.cause_text,
            },
        )
        self.__cause__ = cause

    def _format(self) -> str:
        if self.cause_text:
            return f"{self.code}: {self.message} - {self.cause_text}"
        return f"{self.code}: {self.message}"

    def __str__(self) -> str:
        return self._format()


def _describe(error: Any) -> Any:
    """Render a violation for a JSON error body."""
    if hasattr(error, "model_dump"):
        return error.model_dump(mode="json")
    return str(error)
