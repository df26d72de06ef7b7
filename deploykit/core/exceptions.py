"""Custom exceptions for deploykit."""

from datetime import datetime
from typing import Any


class DeployKitError(Exception):
    """Base exception for deploykit."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(DeployKitError):
    """Project configuration is missing or invalid."""

    def __init__(self, message: str, path: str | None = None):
        details = {}
        if path is not None:
            details["path"] = path
        super().__init__(f"Configuration error: {message}", details)


class LockHeldError(DeployKitError):
    """Another deployment lock exists for the stage."""

    def __init__(
        self,
        stage: str,
        holder_id: str | None = None,
        expires_at: datetime | None = None,
    ):
        details: dict[str, Any] = {"stage": stage}
        if holder_id:
            details["holder_id"] = holder_id
        if expires_at:
            details["expires_at"] = expires_at.isoformat()
        super().__init__(
            f"Deployment already in progress for {stage}. "
            f"Run 'deploykit status {stage}' or 'deploykit recover {stage}'",
            details,
        )
        self.stage = stage


class PreflightError(DeployKitError):
    """A pre-deployment check failed before any state was mutated."""

    def __init__(self, check: str, message: str):
        super().__init__(
            f"Pre-deployment check '{check}' failed: {message}",
            {"check": check},
        )
        self.check = check


class DeployDelegateError(DeployKitError):
    """The external deployment tool failed."""

    def __init__(self, message: str, output: str | None = None):
        details = {}
        if output:
            details["output"] = output[-4000:]
        super().__init__(f"Deployment failed: {message}", details)


class HealthValidationError(DeployKitError):
    """Deployment finished but health checks did not pass."""

    def __init__(self, failed_checks: list[str]):
        super().__init__(
            f"Health checks failed: {', '.join(failed_checks)}",
            {"failed_checks": failed_checks},
        )
        self.failed_checks = failed_checks


class PipelineStateError(DeployKitError):
    """The pipeline attempted an illegal state transition."""

    def __init__(self, current: str, target: str):
        super().__init__(
            f"Illegal pipeline transition: {current} -> {target}",
            {"current": current, "target": target},
        )


class ReconciliationWarning(DeployKitError):
    """Drift or orphan detection finding. Reported, never raised out of a run."""

    pass
