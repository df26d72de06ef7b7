"""Core functionality for deploykit."""

from deploykit.core.exceptions import (
    ConfigurationError,
    DeployDelegateError,
    DeployKitError,
    HealthValidationError,
    LockHeldError,
    PipelineStateError,
    PreflightError,
    ReconciliationWarning,
)

__all__ = [
    "ConfigurationError",
    "DeployDelegateError",
    "DeployKitError",
    "HealthValidationError",
    "LockHeldError",
    "PipelineStateError",
    "PreflightError",
    "ReconciliationWarning",
]
