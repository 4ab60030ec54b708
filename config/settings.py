"""
Configuration management for the location movement pipeline.

Settings are loaded with pydantic-settings from environment variables,
a base `.env` file and an environment-specific `.env.<environment>` file.
Invalid or missing values fail startup with a descriptive
ConfigurationError listing every problem at once.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Optional, List, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Supported deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class DistanceUnit(str, Enum):
    """Unit the movement threshold is expressed in."""
    METERS = "meters"
    KILOMETERS = "kilometers"


class ForwardFailurePolicy(str, Enum):
    """
    What the stream consumer does when a movement event cannot be forwarded.

    FAIL_BATCH aborts the batch so the runtime redelivers it (at-least-once).
    BEST_EFFORT logs the failure and continues with the next record.
    """
    FAIL_BATCH = "fail_batch"
    BEST_EFFORT = "best_effort"


def _detect_environment() -> Environment:
    """
    Detect the current environment from the ENVIRONMENT variable.

    Returns:
        Environment: The detected environment, defaults to DEVELOPMENT if not set.
    """
    env_value = os.environ.get("ENVIRONMENT", "development").lower().strip()
    try:
        return Environment(env_value)
    except ValueError:
        return Environment.DEVELOPMENT


def _get_env_files(environment: Environment) -> Tuple[str, ...]:
    """
    Get the .env files to load for the given environment.

    The base .env file is loaded first, then the environment-specific
    file overrides it.
    """
    env_file_map = {
        Environment.DEVELOPMENT: ".env.development",
        Environment.STAGING: ".env.staging",
        Environment.PRODUCTION: ".env.production",
    }
    return (".env", env_file_map.get(environment, ".env.development"))


class Settings(BaseSettings):
    """
    Pipeline settings loaded from environment variables.

    Only the Elasticsearch endpoint is conditionally required (outside
    development, when the Elasticsearch sink is selected); everything
    else has a default suitable for local development.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (development, staging, production)"
    )
    region: str = Field(
        default="eu-west-1",
        description="Deployment region, stamped on forwarded movement events"
    )

    # Location cache
    cache_backend: str = Field(
        default="redis",
        description="Location cache backend: 'redis' or 'memory'"
    )
    cache_host: str = Field(default="localhost", description="Redis host")
    cache_port: int = Field(default=6379, ge=1, le=65535, description="Redis port")
    cache_db: int = Field(default=0, ge=0, description="Redis database number")
    cache_password: Optional[str] = Field(default=None, description="Redis password")
    cache_key_prefix: str = Field(
        default="",
        description="Prefix prepended to the userID to build cache keys"
    )
    cache_ttl_seconds: Optional[int] = Field(
        default=None,
        ge=1,
        description="Expire cached positions after this many seconds; unset keeps them forever"
    )
    cache_max_entries: Optional[int] = Field(
        default=None,
        ge=1,
        description="Upper bound on entries for the in-memory cache (LRU eviction)"
    )

    # Movement event sink
    sink_backend: str = Field(
        default="elasticsearch",
        description="Movement event sink backend: 'elasticsearch' or 'memory'"
    )
    sink_stream_name: str = Field(
        default="movement-events",
        description="Destination index for movement events"
    )
    elastic_endpoint: Optional[str] = Field(
        default=None,
        description="Elasticsearch endpoint URL for the movement event sink"
    )
    elastic_api_key: Optional[str] = Field(
        default=None,
        description="Elasticsearch API key"
    )

    # Movement classification
    movement_threshold: float = Field(
        default=100.0,
        gt=0,
        description="Distance above which a ping counts as significant movement"
    )
    movement_threshold_unit: DistanceUnit = Field(
        default=DistanceUnit.METERS,
        description="Unit of movement_threshold (meters or kilometers)"
    )

    # Forwarding
    forward_failure_policy: ForwardFailurePolicy = Field(
        default=ForwardFailurePolicy.FAIL_BATCH,
        description="fail_batch aborts the batch on forward failure, best_effort continues"
    )
    forward_max_attempts: int = Field(default=3, ge=1, le=10)
    forward_initial_delay_seconds: float = Field(default=0.2, ge=0)
    forward_max_delay_seconds: float = Field(default=5.0, gt=0)
    sink_circuit_failure_threshold: int = Field(default=5, ge=1)
    sink_circuit_recovery_seconds: float = Field(default=30.0, gt=0)

    # Stream consumption
    batch_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Deadline for processing one batch before it is abandoned and retried"
    )
    batch_size: int = Field(default=100, ge=1, le=10000)
    poll_timeout_seconds: float = Field(default=1.0, gt=0)
    kafka_bootstrap_servers: str = Field(default="localhost:9092")
    kafka_topic: str = Field(default="location-pings")
    kafka_group_id: str = Field(default="location-movement")

    # Observability
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    otel_endpoint: Optional[str] = Field(
        default=None,
        description="OpenTelemetry collector endpoint URL"
    )
    otel_service_name: str = Field(
        default="location-movement-pipeline",
        description="Service name for OpenTelemetry traces"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("cache_backend", "sink_backend")
    @classmethod
    def validate_backend(cls, v: str, info) -> str:
        """Validate the cache and sink backend names."""
        allowed = {
            "cache_backend": {"redis", "memory"},
            "sink_backend": {"elasticsearch", "memory"},
        }[info.field_name]
        v = v.strip().lower()
        if v not in allowed:
            raise ValueError(f"{info.field_name} must be one of: {', '.join(sorted(allowed))}")
        return v

    @field_validator("elastic_endpoint")
    @classmethod
    def validate_elastic_endpoint(cls, v: Optional[str]) -> Optional[str]:
        """Validate that elastic_endpoint, when set, is an HTTP/HTTPS URL."""
        if v is None:
            return v
        v = v.strip().strip('"')
        if not v:
            return None
        if not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError("elastic_endpoint must be a valid HTTP/HTTPS URL")
        return v

    @field_validator("sink_stream_name")
    @classmethod
    def validate_sink_stream_name(cls, v: str) -> str:
        """Elasticsearch index names must be lowercase and non-empty."""
        v = v.strip()
        if not v:
            raise ValueError("sink_stream_name cannot be empty")
        if v != v.lower() or v.startswith(("-", "_", "+")) or " " in v:
            raise ValueError(
                "sink_stream_name must be lowercase, contain no spaces and "
                "not start with '-', '_' or '+'"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.strip().upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v

    @model_validator(mode="after")
    def validate_backend_config(self) -> "Settings":
        """Validate cross-field backend requirements."""
        if self.forward_initial_delay_seconds > self.forward_max_delay_seconds:
            raise ValueError(
                "forward_initial_delay_seconds cannot exceed forward_max_delay_seconds"
            )
        if self.environment != Environment.DEVELOPMENT:
            if self.sink_backend == "elasticsearch" and not self.elastic_endpoint:
                raise ValueError(
                    "elastic_endpoint is required when sink_backend is 'elasticsearch' "
                    "in non-development environments"
                )
        return self

    @property
    def movement_threshold_meters(self) -> float:
        """The movement threshold converted to meters."""
        if self.movement_threshold_unit == DistanceUnit.KILOMETERS:
            return self.movement_threshold * 1000.0
        return self.movement_threshold

    @property
    def redis_url(self) -> str:
        """Redis connection URL assembled from the cache endpoint settings."""
        auth = f":{self.cache_password}@" if self.cache_password else ""
        return f"redis://{auth}{self.cache_host}:{self.cache_port}/{self.cache_db}"


class ConfigurationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None,
                 invalid_fields: Optional[dict] = None):
        self.message = message
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or {}
        super().__init__(self.format_error_message())

    def format_error_message(self) -> str:
        """Format a descriptive error message listing all issues."""
        parts = [self.message]

        if self.missing_fields:
            parts.append(f"\nMissing required fields: {', '.join(self.missing_fields)}")

        if self.invalid_fields:
            invalid_parts = [f"  - {field}: {error}" for field, error in self.invalid_fields.items()]
            parts.append("\nInvalid field values:\n" + "\n".join(invalid_parts))

        return "".join(parts)


def create_settings_for_environment(environment: Optional[Environment] = None) -> Settings:
    """
    Create Settings for a specific environment.

    Detects the environment from the ENVIRONMENT variable when not given
    and loads the matching environment-specific .env file.

    Raises:
        ConfigurationError: If settings are missing or invalid.
    """
    if environment is None:
        environment = _detect_environment()

    env_files = _get_env_files(environment)
    existing_env_files = [f for f in env_files if Path(f).exists()]
    if not existing_env_files:
        existing_env_files = list(env_files)

    try:
        class EnvironmentSettings(Settings):
            model_config = SettingsConfigDict(
                env_file=tuple(existing_env_files),
                env_file_encoding="utf-8",
                case_sensitive=False,
                extra="ignore"
            )

        return EnvironmentSettings()
    except Exception as e:
        missing_fields = []
        invalid_fields = {}

        if hasattr(e, "errors"):
            for error in e.errors():
                field_name = ".".join(str(loc) for loc in error.get("loc", [])) or "settings"
                error_type = error.get("type", "")
                error_msg = error.get("msg", str(error))

                if error_type == "missing":
                    missing_fields.append(field_name)
                else:
                    invalid_fields[field_name] = error_msg

        raise ConfigurationError(
            f"Failed to load configuration for environment '{environment.value}'",
            missing_fields=missing_fields,
            invalid_fields=invalid_fields
        ) from e


_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the pipeline settings, loading them once and caching the result.

    Raises:
        ConfigurationError: If settings are missing or invalid.
    """
    global _settings_cache

    if _settings_cache is None:
        _settings_cache = create_settings_for_environment()

    return _settings_cache


def clear_settings_cache() -> None:
    """Clear the settings cache so the next get_settings() reloads."""
    global _settings_cache
    _settings_cache = None


def validate_startup(settings: Optional[Settings] = None) -> None:
    """
    Validate deployment constraints that depend on the environment.

    Raises:
        ConfigurationError: If any constraint is violated.
    """
    settings = settings or get_settings()
    validation_errors = {}

    if settings.environment == Environment.PRODUCTION:
        if settings.cache_backend == "memory":
            validation_errors["cache_backend"] = (
                "The in-memory cache is process-local and cannot be shared by "
                "partition workers in production. Use 'redis'."
            )
        if settings.sink_backend == "memory":
            validation_errors["sink_backend"] = (
                "The in-memory sink is not durable. Use 'elasticsearch' in production."
            )

    if settings.sink_backend == "elasticsearch" and not settings.elastic_endpoint:
        validation_errors["elastic_endpoint"] = (
            "elastic_endpoint is required for the Elasticsearch sink. "
            "Set ELASTIC_ENDPOINT or use SINK_BACKEND=memory for local development."
        )

    if settings.cache_max_entries is not None and settings.cache_backend != "memory":
        validation_errors["cache_max_entries"] = (
            "cache_max_entries only applies to the in-memory cache; "
            "configure eviction on the Redis server instead"
        )

    if settings.batch_timeout_seconds < settings.poll_timeout_seconds:
        validation_errors["batch_timeout_seconds"] = (
            "batch_timeout_seconds must not be shorter than poll_timeout_seconds"
        )

    if validation_errors:
        raise ConfigurationError(
            "Configuration validation failed during startup",
            invalid_fields=validation_errors
        )
