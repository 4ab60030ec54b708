# Configuration module for the location movement pipeline
from .settings import (
    Settings,
    Environment,
    DistanceUnit,
    ForwardFailurePolicy,
    ConfigurationError,
    get_settings,
    validate_startup,
)

__all__ = [
    "Settings",
    "Environment",
    "DistanceUnit",
    "ForwardFailurePolicy",
    "ConfigurationError",
    "get_settings",
    "validate_startup",
]
