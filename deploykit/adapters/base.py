"""Interfaces for the external collaborators the core depends on.

Implementations wrap SST, AWS and HTTP; tests substitute in-memory fakes.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable

from deploykit.models.config import DeploymentStage
from deploykit.models.infrastructure import (
    Certificate,
    CloudFrontDistribution,
    DNSRecord,
    HostedZone,
    MaintenanceSnapshot,
)
from deploykit.models.pipeline import CheckResult, DeployOutput, HealthReport, StepOutcome

# Asks the operator a yes/no question
ConfirmCallback = Callable[[str], bool]


def deny_all(message: str) -> bool:
    """Confirmation port that never confirms."""
    return False


class DeployExecutor(ABC):
    """Runs the build and delegates the deploy to an external tool."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Executor identifier."""
        pass

    @abstractmethod
    async def run_build(self) -> StepOutcome:
        """Build the application. Not applicable when the tool builds itself."""
        pass

    @abstractmethod
    async def execute_deploy(self, stage: DeploymentStage, dry_run: bool = False) -> DeployOutput:
        """Deploy the stage and report what was learned from the tool."""
        pass


class HealthProber(ABC):
    """Validates a deployed stage."""

    @abstractmethod
    async def run_checks(self, stage: DeploymentStage) -> HealthReport:
        pass


class PreflightChecker(ABC):
    """Checks run before any lock is taken."""

    @abstractmethod
    async def run(self, stage: DeploymentStage, dry_run: bool = False) -> list[CheckResult]:
        """Run the checks. A dry run must not create anything."""
        pass


class ExternalStateLock(ABC):
    """The state lock owned by the infrastructure tool (SST/Pulumi)."""

    @abstractmethod
    async def is_locked(self, stage: DeploymentStage) -> bool:
        pass

    @abstractmethod
    async def unlock(self, stage: DeploymentStage) -> bool:
        """Clear the lock. Returns whether the tool reported success."""
        pass


class DistributionClient(ABC):
    """CloudFront reads, plus the explicit delete and invalidation paths."""

    @abstractmethod
    async def list_distributions(self) -> list[CloudFrontDistribution]:
        pass

    @abstractmethod
    async def get_distribution_config(self, distribution_id: str) -> tuple[dict[str, Any], str]:
        """Return ``(config, etag)``."""
        pass

    @abstractmethod
    async def update_distribution(
        self, distribution_id: str, config: dict[str, Any], etag: str
    ) -> str:
        """Apply ``config``; returns the new ETag."""
        pass

    @abstractmethod
    async def disable_distribution(self, distribution_id: str) -> None:
        pass

    @abstractmethod
    async def wait_until_deployed(self, distribution_id: str, timeout_seconds: int = 1200) -> None:
        pass

    @abstractmethod
    async def delete_distribution(self, distribution_id: str) -> None:
        pass

    @abstractmethod
    async def create_invalidation(self, distribution_id: str, paths: list[str]) -> str:
        """Start an invalidation; returns its id."""
        pass


class DnsClient(ABC):
    """Route53 reads and zone creation."""

    @abstractmethod
    async def list_hosted_zones(self) -> list[HostedZone]:
        pass

    @abstractmethod
    async def get_dns_records(self, zone_id: str) -> list[DNSRecord]:
        pass

    @abstractmethod
    async def create_hosted_zone(self, domain: str) -> HostedZone:
        pass


class CertificateClient(ABC):
    """ACM reads."""

    @abstractmethod
    async def list_certificates(self) -> list[Certificate]:
        pass


class MaintenanceToggler(ABC):
    """Redirects a distribution to a placeholder and back."""

    @abstractmethod
    async def enable(self, distribution_id: str, placeholder_url: str) -> MaintenanceSnapshot:
        """Point traffic at the placeholder; returns the prior configuration."""
        pass

    @abstractmethod
    async def disable(self, snapshot: MaintenanceSnapshot) -> None:
        """Restore the configuration captured by ``enable``."""
        pass
