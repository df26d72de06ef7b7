"""Lifecycle hooks run around a deployment.

A hook command comes from the ``hooks`` section of the project config, or
else from ``package.json`` scripts, where a stage-specific script
(``pre-deploy:staging``) wins over the generic one (``pre-deploy``).
"""

import json
from datetime import datetime
from enum import Enum
from pathlib import Path

from deploykit.adapters.commands import run_command
from deploykit.config import settings
from deploykit.core.context import RunContext
from deploykit.models.config import DeploymentStage, ProjectConfig
from deploykit.models.pipeline import StepOutcome
from deploykit.utils.logging import get_logger

LOCKFILES = [
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("bun.lockb", "bun"),
]


class HookType(str, Enum):
    PRE_DEPLOY = "pre-deploy"
    POST_DEPLOY = "post-deploy"
    ON_FAILURE = "on-failure"

    @property
    def config_key(self) -> str:
        return self.value.replace("-", "_")


def detect_package_manager(project_root: Path) -> str:
    for lockfile, manager in LOCKFILES:
        if (project_root / lockfile).exists():
            return manager
    return "npm"


def load_package_scripts(project_root: Path) -> dict[str, str]:
    path = project_root / "package.json"
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text(encoding="utf-8")).get("scripts", {}) or {}
    except json.JSONDecodeError:
        return {}


class LifecycleHookRunner:
    """Resolves and runs lifecycle hooks for a project."""

    def __init__(
        self,
        config: ProjectConfig,
        project_root: Path | None = None,
        context: RunContext | None = None,
    ):
        self.config = config
        self.project_root = Path(project_root) if project_root else settings.project_path
        self.logger = context.child("hooks") if context else get_logger("hooks")

    def resolve(self, hook: HookType, stage: DeploymentStage) -> str | list[str] | None:
        """Shell command (config) or argv (package.json script) for ``hook``."""
        configured = getattr(self.config.hooks, hook.config_key)
        if configured:
            return configured

        scripts = load_package_scripts(self.project_root)
        manager = detect_package_manager(self.project_root)
        for script in (f"{hook.value}:{stage.value}", hook.value):
            if script in scripts:
                return [manager, "run", script]
        return None

    async def run(
        self,
        hook: HookType,
        stage: DeploymentStage,
        dry_run: bool = False,
        start_time: datetime | None = None,
    ) -> StepOutcome:
        command = self.resolve(hook, stage)
        if command is None:
            return StepOutcome.skipped(f"no {hook.value} hook")

        env = {
            "DEPLOY_KIT_STAGE": stage.value,
            "DEPLOY_KIT_DRY_RUN": str(dry_run).lower(),
            "DEPLOY_KIT_START_TIME": (start_time or datetime.now()).isoformat(),
        }
        self.logger.info("hooks.started", hook=hook.value, stage=stage.value)
        result = await run_command(
            command,
            cwd=self.project_root,
            env=env,
            timeout=settings.command_timeout_seconds,
        )
        if not result.ok:
            self.logger.warning(
                "hooks.failed", hook=hook.value, error_preview=result.error_preview()
            )
            return StepOutcome.failed(f"{hook.value} hook failed: {result.error_preview()}")

        self.logger.info("hooks.completed", hook=hook.value)
        return StepOutcome.passed(f"{hook.value} hook completed")
