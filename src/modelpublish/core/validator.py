"""
Publish and update request validation.

Every rule is checked and every violation collected, so a rejected request
reports all of its problems in one response. Hostnames go through an ordered
grammar where only the first problem is reported.
"""

import re
from typing import List, Optional

import structlog

from ..config import PublishingSettings
from ..models.publishing import PublishConfig, PublishedModel, ValidationError
from ..protocols import ModelRegistry

logger = structlog.get_logger(__name__)

HOSTNAME_PATTERN = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9\-.]*[a-zA-Z0-9])?$")


class PublishingValidator:
    """
    Validates publish and update requests.

    Only the existence probe touches a collaborator; everything else is a
    pure function of the request.
    """

    def __init__(self, registry: ModelRegistry, settings: PublishingSettings) -> None:
        self.registry = registry
        self.settings = settings

    async def validate_publish_request(
        self,
        namespace: str,
        model_name: str,
        config: PublishConfig,
    ) -> List[ValidationError]:
        """Validate a first publish. An empty list means the request is valid."""
        errors: List[ValidationError] = []

        try:
            await self.registry.model_exists(namespace, model_name)
        except Exception as e:
            errors.append(ValidationError(
                field="model",
                value=model_name,
                message=f"Model validation failed: {e}",
            ))

        errors.extend(self._validate_tenant(config))
        errors.extend(self._validate_rate_limiting(config))

        if config.model_type and config.model_type not in self.settings.allowed_model_types:
            allowed = " or ".join(f"'{t}'" for t in self.settings.allowed_model_types)
            errors.append(ValidationError(
                field="modelType",
                value=config.model_type,
                message=f"Model type must be {allowed}",
            ))

        errors.extend(self._validate_exposure(config))

        self._log_result("publish", namespace, model_name, errors)
        return errors

    async def validate_update_request(
        self,
        namespace: str,
        model_name: str,
        config: PublishConfig,
        current_model: PublishedModel,
    ) -> List[ValidationError]:
        """Validate an update against the currently published model."""
        errors: List[ValidationError] = []

        errors.extend(self._validate_tenant(config))

        # Model type is fixed at first publish
        if config.model_type and config.model_type != current_model.model_type:
            errors.append(ValidationError(
                field="modelType",
                value=config.model_type,
                message="Model type cannot be changed after publishing",
            ))

        errors.extend(self._validate_rate_limiting(config))
        errors.extend(self._validate_exposure(config))

        self._log_result("update", namespace, model_name, errors)
        return errors

    def _validate_tenant(self, config: PublishConfig) -> List[ValidationError]:
        if not config.tenant_id:
            return [ValidationError(
                field="tenantId",
                value=config.tenant_id,
                message="Tenant ID is required",
            )]
        return []

    def _validate_rate_limiting(self, config: PublishConfig) -> List[ValidationError]:
        errors: List[ValidationError] = []
        per_minute = config.rate_limiting.requests_per_minute
        per_hour = config.rate_limiting.requests_per_hour

        if per_minute <= 0:
            errors.append(ValidationError(
                field="rateLimiting.requestsPerMinute",
                value=per_minute,
                message="Requests per minute must be greater than 0",
            ))

        if per_hour <= 0:
            errors.append(ValidationError(
                field="rateLimiting.requestsPerHour",
                value=per_hour,
                message="Requests per hour must be greater than 0",
            ))

        if per_minute > per_hour:
            errors.append(ValidationError(
                field="rateLimiting",
                value=None,
                message="Requests per minute cannot exceed requests per hour",
            ))

        return errors

    def _validate_exposure(self, config: PublishConfig) -> List[ValidationError]:
        """External path, public hostname and authentication rules."""
        errors: List[ValidationError] = []

        if config.external_path and not config.external_path.startswith("/"):
            errors.append(ValidationError(
                field="externalPath",
                value=config.external_path,
                message="External path must start with '/'",
            ))

        if config.public_hostname:
            hostname_error = self.validate_hostname(config.public_hostname)
            if hostname_error is not None:
                errors.append(hostname_error)

        if not config.authentication.require_api_key:
            errors.append(ValidationError(
                field="authentication.requireApiKey",
                value=config.authentication.require_api_key,
                message="API key authentication is required",
            ))

        return errors

    def validate_hostname(self, hostname: str) -> Optional[ValidationError]:
        """
        Check a public hostname, returning the first problem found.

        Checks run in order: length, protocol, path, character set,
        consecutive separators, leading/trailing separators, then the
        hostname category rules.
        """
        if not hostname:
            return _hostname_error(hostname, "Hostname cannot be empty")

        if len(hostname) > self.settings.max_hostname_length:
            return _hostname_error(
                hostname,
                f"Hostname exceeds maximum length of {self.settings.max_hostname_length} characters",
            )

        if "://" in hostname:
            return _hostname_error(hostname, "Public hostname should not include protocol (http/https)")

        if "/" in hostname:
            return _hostname_error(hostname, "Public hostname should not include path")

        if not HOSTNAME_PATTERN.match(hostname):
            return _hostname_error(
                hostname,
                "Hostname contains invalid characters. Use only letters, numbers, hyphens, and dots",
            )

        if ".." in hostname or "--" in hostname:
            return _hostname_error(hostname, "Hostname cannot contain consecutive dots or hyphens")

        if hostname.startswith((".", "-")) or hostname.endswith((".", "-")):
            return _hostname_error(hostname, "Hostname cannot start or end with dot or hyphen")

        return self.validate_hostname_pattern(hostname)

    def validate_hostname_pattern(self, hostname: str) -> Optional[ValidationError]:
        """
        Apply the hostname category rules.

        - the reserved default hostname is always valid
        - subdomains of the reserved base domain need a 1-63 char subdomain
        - any other hostname must be fully qualified
        """
        if hostname == self.settings.default_hostname:
            return None

        suffix = "." + self.settings.base_domain
        if hostname.endswith(suffix):
            subdomain = hostname[: -len(suffix)]
            if not subdomain:
                return _hostname_error(
                    hostname,
                    f"Subdomain cannot be empty for {suffix} domains",
                )
            if len(subdomain) > self.settings.max_subdomain_length:
                return _hostname_error(
                    hostname,
                    f"Subdomain exceeds maximum length of {self.settings.max_subdomain_length} characters",
                )
            return None

        if "." not in hostname:
            return _hostname_error(
                hostname,
                "Custom hostname must be a fully qualified domain name (contain at least one dot)",
            )

        return None

    def _log_result(
        self,
        operation: str,
        namespace: str,
        model_name: str,
        errors: List[ValidationError],
    ) -> None:
        if errors:
            logger.info(
                "Publish request rejected",
                operation=operation,
                namespace=namespace,
                model_name=model_name,
                fields=[error.field for error in errors],
            )
        else:
            logger.debug(
                "Publish request valid",
                operation=operation,
                namespace=namespace,
                model_name=model_name,
            )


def _hostname_error(hostname: str, message: str) -> ValidationError:
    return ValidationError(field="publicHostname", value=hostname, message=message)
