"""SST adapters.

Runs the build and ``sst deploy`` through the shell and pulls the one
identifier the core needs out of the tool's text output. The scraping
is confined to this module; callers only see ``DeployOutput``.
"""

import re
from pathlib import Path

from deploykit.adapters.base import DeployExecutor, ExternalStateLock
from deploykit.adapters.commands import COMMAND_NOT_FOUND, run_command
from deploykit.config import settings
from deploykit.core.context import RunContext
from deploykit.models.config import DeploymentStage, ProjectConfig
from deploykit.models.pipeline import DeployOutput, StepOutcome
from deploykit.utils.domains import is_cloudfront_domain_label
from deploykit.utils.logging import get_logger

CLOUDFRONT_URL_RE = re.compile(r"https://([a-z0-9]+)\.cloudfront\.net", re.IGNORECASE)
DISTRIBUTION_ID_RE = re.compile(r'"distributionId"\s*:\s*"([A-Z0-9]+)"')
URL_RE = re.compile(r"https://[^\s\"'<>]+")


def extract_cloudfront_domain(output: str) -> str | None:
    """``dxxxx.cloudfront.net`` from the first CloudFront URL in ``output``."""
    match = CLOUDFRONT_URL_RE.search(output)
    if not match:
        return None
    label = match.group(1).lower()
    if not is_cloudfront_domain_label(label):
        return None
    return f"{label}.cloudfront.net"


def extract_distribution_id(output: str) -> str | None:
    """Distribution id from a JSON ``distributionId`` field, if printed."""
    match = DISTRIBUTION_ID_RE.search(output)
    return match.group(1) if match else None


def extract_url(output: str) -> str | None:
    match = URL_RE.search(output)
    return match.group(0).rstrip(".,)") if match else None


def is_sst_project(project_root: Path) -> bool:
    return any((project_root / name).exists() for name in ("sst.config.ts", "sst.config.js"))


class SstDeployExecutor(DeployExecutor):
    """Deploys with ``npx sst deploy`` or the project's custom script."""

    def __init__(
        self,
        config: ProjectConfig,
        project_root: Path | None = None,
        context: RunContext | None = None,
    ):
        self.config = config
        self.project_root = Path(project_root) if project_root else settings.project_path
        self.logger = context.child("sst") if context else get_logger("sst")

    @property
    def name(self) -> str:
        return "sst"

    def _env(self) -> dict[str, str]:
        return {"AWS_PROFILE": self.config.aws_profile} if self.config.aws_profile else {}

    async def run_build(self) -> StepOutcome:
        if self.config.infrastructure == "sst-serverless" and is_sst_project(self.project_root):
            return StepOutcome.skipped("SST builds during deploy")

        self.logger.info("sst.build.started", cmd=self.config.build_command)
        result = await run_command(
            self.config.build_command,
            cwd=self.project_root,
            timeout=settings.deploy_timeout_seconds,
        )
        if not result.ok:
            self.logger.error("sst.build.failed", error_preview=result.error_preview())
            return StepOutcome.failed(result.error_preview())

        return StepOutcome.passed("build succeeded")

    def _deploy_command(self, stage: DeploymentStage, dry_run: bool) -> list[str] | None:
        if self.config.custom_deploy_script:
            if dry_run:
                return None
            return ["bash", self.config.custom_deploy_script, stage.value]

        action = "diff" if dry_run else "deploy"
        return ["npx", "sst", action, "--stage", self.config.sst_stage_name(stage)]

    async def execute_deploy(self, stage: DeploymentStage, dry_run: bool = False) -> DeployOutput:
        cmd = self._deploy_command(stage, dry_run)
        if cmd is None:
            self.logger.info("sst.deploy.dry_run_skipped", reason="custom deploy script")
            return DeployOutput(success=True, output="dry run: custom deploy script not executed")

        self.logger.info("sst.deploy.started", stage=stage.value, cmd=" ".join(cmd))
        result = await run_command(
            cmd,
            cwd=self.project_root,
            env=self._env(),
            timeout=settings.deploy_timeout_seconds,
        )

        if result.timed_out:
            return DeployOutput(
                success=False,
                error=f"deployment timed out after {settings.deploy_timeout_seconds}s",
            )

        if not result.ok:
            self.logger.error("sst.deploy.failed", error_preview=result.error_preview())
            return DeployOutput(success=False, output=result.output, error=result.error_preview())

        output = result.output
        deploy_output = DeployOutput(
            success=True,
            distribution_id=extract_distribution_id(output),
            distribution_domain=extract_cloudfront_domain(output),
            url=extract_url(result.stdout),
            output=output,
        )
        self.logger.info(
            "sst.deploy.completed",
            stage=stage.value,
            distribution_id=deploy_output.distribution_id,
            distribution_domain=deploy_output.distribution_domain,
        )
        return deploy_output


class SstStateLock(ExternalStateLock):
    """The Pulumi state lock SST leaves behind when a deploy is interrupted."""

    def __init__(self, config: ProjectConfig, project_root: Path | None = None):
        self.config = config
        self.project_root = Path(project_root) if project_root else settings.project_path
        self.logger = get_logger("sst.state_lock")

    async def is_locked(self, stage: DeploymentStage) -> bool:
        result = await run_command(
            ["npx", "sst", "status", "--stage", self.config.sst_stage_name(stage)],
            cwd=self.project_root,
            timeout=settings.command_timeout_seconds,
        )
        if result.returncode == COMMAND_NOT_FOUND:
            self.logger.warning("sst.status.unavailable", error=result.error_preview())
            return False
        return "locked" in result.output.lower()

    async def unlock(self, stage: DeploymentStage) -> bool:
        result = await run_command(
            ["npx", "sst", "unlock", "--stage", self.config.sst_stage_name(stage)],
            cwd=self.project_root,
            timeout=settings.command_timeout_seconds,
        )
        if not result.ok:
            self.logger.info("sst.unlock.failed", error_preview=result.error_preview())
        return result.ok
