"""Wiring of the core against the real adapters.

The API and the CLI both build their collaborators here; tests build a
``Services`` from fakes instead.
"""

from dataclasses import dataclass, field
from pathlib import Path

from deploykit.adapters.aws import (
    AwsCertificateClient,
    AwsDistributionClient,
    AwsDnsClient,
    make_session,
)
from deploykit.adapters.base import (
    CertificateClient,
    ConfirmCallback,
    DeployExecutor,
    DistributionClient,
    DnsClient,
    ExternalStateLock,
    HealthProber,
    MaintenanceToggler,
    PreflightChecker,
    deny_all,
)
from deploykit.adapters.health import HttpHealthProber
from deploykit.adapters.hooks import LifecycleHookRunner
from deploykit.adapters.maintenance import CloudFrontMaintenanceToggler
from deploykit.adapters.preflight import ProjectPreflightChecker
from deploykit.adapters.sst import SstDeployExecutor, SstStateLock
from deploykit.config import settings
from deploykit.core.cleanup import OrphanCleaner
from deploykit.core.cloudfront import CloudFrontOperations
from deploykit.core.context import RunContext
from deploykit.core.diff import DiffCollector
from deploykit.core.events import EventBus, get_event_bus
from deploykit.core.locks import LockManager, LockStore
from deploykit.core.pipeline import DeploymentPipeline
from deploykit.core.recovery import RecoveryManager
from deploykit.core.zone_tracker import ZoneTracker
from deploykit.models.config import DeploymentStage, ProjectConfig, load_project_config


@dataclass
class Services:
    """Everything one invocation needs, bound to one project."""

    config: ProjectConfig
    project_root: Path
    distributions: DistributionClient
    dns: DnsClient
    certificates: CertificateClient
    executor: DeployExecutor
    health: HealthProber
    preflight: PreflightChecker
    external_lock: ExternalStateLock | None = None
    maintenance: MaintenanceToggler | None = None
    events: EventBus = field(default_factory=get_event_bus)

    def context(self) -> RunContext:
        return RunContext(environment=settings.app_env)

    def lock_manager(self, context: RunContext | None = None) -> LockManager:
        return LockManager(
            store=LockStore(self.project_root),
            external_lock=self.external_lock,
            context=context,
        )

    def cloudfront(self, context: RunContext | None = None) -> CloudFrontOperations:
        return CloudFrontOperations(self.config, self.distributions, self.dns, context)

    def recovery(self, context: RunContext | None = None) -> RecoveryManager:
        return RecoveryManager(self.lock_manager(context), context)

    def cleaner(self, confirm: ConfirmCallback, context: RunContext | None = None) -> OrphanCleaner:
        return OrphanCleaner(self.distributions, confirm, context)

    def diff_collector(
        self, stage: DeploymentStage, context: RunContext | None = None
    ) -> DiffCollector:
        return DiffCollector(
            self.config, stage, self.distributions, self.dns, self.certificates, context
        )

    def pipeline(self, context: RunContext | None = None) -> DeploymentPipeline:
        context = context or self.context()
        return DeploymentPipeline(
            config=self.config,
            locks=self.lock_manager(context),
            executor=self.executor,
            health=self.health,
            preflight=self.preflight,
            cloudfront=self.cloudfront(context),
            certificates=self.certificates,
            maintenance=self.maintenance,
            hooks=LifecycleHookRunner(self.config, self.project_root, context),
            context=context,
            events=self.events,
            project_root=self.project_root,
        )


def build_services(
    project_root: Path | None = None, confirm: ConfirmCallback = deny_all
) -> Services:
    """Load the project configuration and wire the AWS and SST adapters.

    ``confirm`` is asked before anything is created outside a deployment,
    such as a missing hosted zone.

    Raises:
        ConfigurationError: If the project configuration cannot be loaded
    """
    root = Path(project_root) if project_root else settings.project_path
    config = load_project_config(root)
    session = make_session(config.aws_profile or settings.aws_profile)

    distributions = AwsDistributionClient(session)
    dns = AwsDnsClient(session)
    return Services(
        config=config,
        project_root=root,
        distributions=distributions,
        dns=dns,
        certificates=AwsCertificateClient(session),
        executor=SstDeployExecutor(config, root),
        health=HttpHealthProber(config),
        preflight=ProjectPreflightChecker(
            config, root, dns=dns, zone_tracker=ZoneTracker(root), confirm=confirm
        ),
        external_lock=SstStateLock(config, root),
        maintenance=CloudFrontMaintenanceToggler(distributions),
    )
