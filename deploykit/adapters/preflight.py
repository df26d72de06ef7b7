"""Pre-deployment checks.

These run before any lock is taken. A failing check stops the pipeline
before anything is mutated; a check that does not apply to the project
reports itself as skipped.
"""

from pathlib import Path
from typing import Awaitable, Callable

from botocore.exceptions import BotoCoreError, ClientError

from deploykit.adapters.aws import get_caller_identity, make_session
from deploykit.adapters.base import ConfirmCallback, DnsClient, PreflightChecker, deny_all
from deploykit.adapters.commands import run_command
from deploykit.config import settings
from deploykit.core.context import RunContext
from deploykit.core.zone_tracker import ZoneTracker
from deploykit.models.config import DeploymentStage, ProjectConfig
from deploykit.models.pipeline import CheckResult, StepOutcome
from deploykit.utils.domains import extract_root_domain
from deploykit.utils.logging import get_logger

IdentityProvider = Callable[[], Awaitable[dict[str, str]]]


class ProjectPreflightChecker(PreflightChecker):
    """Git, credentials, tests and hosted zone checks for a project."""

    def __init__(
        self,
        config: ProjectConfig,
        project_root: Path | None = None,
        dns: DnsClient | None = None,
        zone_tracker: ZoneTracker | None = None,
        identity: IdentityProvider | None = None,
        confirm: ConfirmCallback = deny_all,
        context: RunContext | None = None,
    ):
        self.config = config
        self.project_root = Path(project_root) if project_root else settings.project_path
        self.dns = dns
        self.zone_tracker = zone_tracker or ZoneTracker(self.project_root)
        self.identity = identity or (lambda: get_caller_identity(make_session(config.aws_profile)))
        self.confirm = confirm
        self.logger = context.child("preflight") if context else get_logger("preflight")

    async def run(self, stage: DeploymentStage, dry_run: bool = False) -> list[CheckResult]:
        """Run checks in order, stopping at the first failure."""
        results: list[CheckResult] = []
        checks = [
            ("git", self.check_git_status),
            ("aws_credentials", self.check_aws_credentials),
            ("tests", self.run_tests),
        ]
        for name, check in checks:
            outcome = await check()
            results.append(CheckResult(name=name, outcome=outcome))
            self.logger.info(
                "preflight.check",
                check=name,
                applicable=outcome.applicable,
                ok=outcome.ok,
                detail=outcome.detail,
            )
            if not outcome.ok:
                return results

        results.append(await self.check_hosted_zone(stage, dry_run))
        return results

    async def check_git_status(self) -> StepOutcome:
        if not self.config.require_clean_git:
            return StepOutcome.skipped("clean git tree not required")

        result = await run_command(
            ["git", "status", "--porcelain"],
            cwd=self.project_root,
            timeout=settings.command_timeout_seconds,
        )
        if not result.ok:
            return StepOutcome.failed(f"git status failed: {result.error_preview()}")

        dirty = [line for line in result.stdout.splitlines() if line.strip()]
        if dirty:
            return StepOutcome.failed(
                f"{len(dirty)} uncommitted change(s); commit or stash before deploying"
            )
        return StepOutcome.passed("working tree clean")

    async def check_aws_credentials(self) -> StepOutcome:
        if self.config.infrastructure == "custom":
            return StepOutcome.skipped("custom infrastructure")

        try:
            identity = await self.identity()
        except (ClientError, BotoCoreError) as e:
            return StepOutcome.failed(f"AWS credentials not usable: {e}")
        return StepOutcome.passed(f"authenticated as {identity.get('arn')}", **identity)

    async def run_tests(self) -> StepOutcome:
        if not self.config.run_tests_before_deploy:
            return StepOutcome.skipped("tests disabled")
        if not (self.project_root / "package.json").exists():
            return StepOutcome.skipped("no package.json")

        result = await run_command(
            ["npm", "test"],
            cwd=self.project_root,
            timeout=settings.deploy_timeout_seconds,
        )
        if not result.ok:
            return StepOutcome.failed(f"test suite failed: {result.error_preview()}")
        return StepOutcome.passed("all tests passing")

    async def check_hosted_zone(self, stage: DeploymentStage, dry_run: bool = False) -> CheckResult:
        """Warn when the stage's zone is missing or was created very recently.

        A missing zone is created when the operator confirms, outside dry
        runs, and tracked so later deploys know how young it is. Zones not
        created by this tool are not tracked and count as old.
        """
        domain = self.config.get_stage_config(stage).domain
        if not domain:
            return CheckResult(name="hosted_zone", outcome=StepOutcome.skipped("no domain"))

        root = extract_root_domain(domain)
        configured = self.config.hosted_zone_for(domain)
        zone_domain = configured.domain if configured else root

        warning = None
        if configured is None and self.dns is not None:
            try:
                zones = await self.dns.list_hosted_zones()
            except (ClientError, BotoCoreError) as e:
                warning = f"could not list hosted zones: {e}"
            else:
                if not any(z.name == root for z in zones):
                    warning = await self._create_missing_zone(root, dry_run)

        if warning is None and self.zone_tracker.is_zone_recent(zone_domain):
            age = self.zone_tracker.get_zone_age_minutes(zone_domain)
            warning = (
                f"hosted zone for {zone_domain} was created {age} minute(s) ago; "
                "DNS may not have propagated yet"
            )

        if warning:
            self.logger.warning("preflight.hosted_zone", stage=stage.value, warning=warning)
        return CheckResult(
            name="hosted_zone",
            outcome=StepOutcome.passed(f"zone {zone_domain}"),
            warning=warning,
        )

    async def _create_missing_zone(self, root: str, dry_run: bool) -> str | None:
        """Offer to create the hosted zone for ``root``. Returns a warning, if any."""
        missing = f"no Route53 hosted zone found for {root}"
        if dry_run or not self.confirm(f"{missing}. Create it?"):
            return missing

        try:
            zone = await self.dns.create_hosted_zone(root)
        except (ClientError, BotoCoreError) as e:
            return f"{missing}; creating it failed: {e}"

        self.zone_tracker.track_zone_creation(root, zone.id, self.config.project_name)
        self.logger.info("preflight.zone_created", domain=root, zone_id=zone.id)
        if zone.name_servers:
            servers = ", ".join(zone.name_servers)
            return f"created hosted zone for {root}; point the registrar at {servers}"
        return None
