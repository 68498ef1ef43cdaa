"""
Configuration management.

Uses Pydantic Settings for environment variable handling and validation,
with an optional config.yaml providing defaults.
"""

import json
import os
from functools import lru_cache
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from .models.publishing import ModelType


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        # Look for config.yaml in common locations
        possible_paths = [
            "config.yaml",  # Current directory
            "../../config.yaml",  # Project root from src/modelpublish
        ]

        for path in possible_paths:
            if os.path.exists(path):
                config_path = path
                break
        else:
            return {}

    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
            return config_data
    return {}


class PublishingSettings(BaseSettings):
    """Publish request validation and orchestration settings."""

    default_hostname: str = Field(
        default="api.router.inference-in-a-box",
        description="Reserved gateway hostname, always accepted",
    )
    base_domain: str = Field(
        default="inference-in-a-box",
        description="Reserved base domain for managed subdomains",
    )
    max_hostname_length: int = Field(default=253, description="DNS hostname length limit")
    max_subdomain_length: int = Field(default=63, description="Subdomain length limit under the base domain")
    allowed_model_types: List[str] = Field(
        default=[model_type.value for model_type in ModelType],
        description="Model types accepted on publish",
    )
    default_model_type: str = Field(
        default=ModelType.TRADITIONAL.value,
        description="Model type recorded when a publish request leaves it unset",
    )
    recovery_enabled: bool = Field(
        default=True,
        description="Run recovery cleanup after a failed publish",
    )

    @field_validator("allowed_model_types", mode="before")
    def parse_model_types(cls, v: Any) -> List[str]:
        """Accept a comma separated string as well as a list."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    class Config:
        env_prefix = "MODELPUBLISH_PUBLISHING_"


class AuditSettings(BaseSettings):
    """Publishing error audit log configuration."""

    log_name_prefix: str = Field(
        default="publishing-errors",
        description="Prefix of the per-day error log object name",
    )
    max_write_attempts: int = Field(
        default=5,
        ge=1,
        description="Attempts for a conditional audit write before giving up",
    )

    class Config:
        env_prefix = "MODELPUBLISH_AUDIT_"


class Settings(BaseSettings):
    """Main application settings."""

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")

    # Component settings
    publishing: PublishingSettings = Field(default_factory=PublishingSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)

    class Config:
        env_prefix = "MODELPUBLISH_"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance with config file and env support."""
    config_data = load_config_file()

    # Config file provides defaults, env vars override
    if config_data:
        _set_env_from_config(config_data)

    return Settings()


def _set_env_from_config(config_data: Dict[str, Any]) -> None:
    """Set environment variables from config file if not already set."""
    mappings = {
        ("server", "host"): "MODELPUBLISH_HOST",
        ("server", "port"): "MODELPUBLISH_PORT",
        ("server", "debug"): "MODELPUBLISH_DEBUG",
        ("server", "log_level"): "MODELPUBLISH_LOG_LEVEL",
        ("publishing", "default_hostname"): "MODELPUBLISH_PUBLISHING_DEFAULT_HOSTNAME",
        ("publishing", "base_domain"): "MODELPUBLISH_PUBLISHING_BASE_DOMAIN",
        ("publishing", "max_hostname_length"): "MODELPUBLISH_PUBLISHING_MAX_HOSTNAME_LENGTH",
        ("publishing", "max_subdomain_length"): "MODELPUBLISH_PUBLISHING_MAX_SUBDOMAIN_LENGTH",
        ("publishing", "default_model_type"): "MODELPUBLISH_PUBLISHING_DEFAULT_MODEL_TYPE",
        ("publishing", "recovery_enabled"): "MODELPUBLISH_PUBLISHING_RECOVERY_ENABLED",
        ("audit", "log_name_prefix"): "MODELPUBLISH_AUDIT_LOG_NAME_PREFIX",
        ("audit", "max_write_attempts"): "MODELPUBLISH_AUDIT_MAX_WRITE_ATTEMPTS",
    }

    for (section, key), env_var in mappings.items():
        if env_var not in os.environ:
            value = (config_data.get(section) or {}).get(key)
            if value is not None:
                os.environ[env_var] = str(value)

    # Lists are passed through as JSON
    if "MODELPUBLISH_PUBLISHING_ALLOWED_MODEL_TYPES" not in os.environ:
        model_types = (config_data.get("publishing") or {}).get("allowed_model_types")
        if model_types:
            os.environ["MODELPUBLISH_PUBLISHING_ALLOWED_MODEL_TYPES"] = json.dumps(model_types)


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
