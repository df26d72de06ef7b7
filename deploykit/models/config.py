"""Project deployment configuration models.

The configuration lives in ``.deploy-config.json`` at the project root and
uses camelCase keys; the models accept both camelCase and snake_case.
"""

import json
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from deploykit.config import settings
from deploykit.core.exceptions import ConfigurationError


class DeploymentStage(str, Enum):
    """Named deployment target; the unit of lock exclusivity."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class ConfigModel(BaseModel):
    """Base for configuration models read from camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthCheck(ConfigModel):
    """A single HTTP health check against the deployed stage."""

    url: str
    name: str | None = None
    expected_status: int = 200
    timeout_ms: int = 5000
    search_text: str | None = None


class StageConfig(ConfigModel):
    """Per-stage deployment settings."""

    domain: str | None = None
    aws_region: str = "us-east-1"
    requires_confirmation: bool = False
    skip_health_checks: bool = False
    skip_cache_invalidation: bool = False
    sst_stage_name: str | None = None


class HookConfig(ConfigModel):
    """Shell commands run at pipeline lifecycle points."""

    pre_deploy: str | None = None
    post_deploy: str | None = None
    on_failure: str | None = None


class HostedZoneConfig(ConfigModel):
    """A Route53 hosted zone the project owns."""

    domain: str
    zone_id: str


class MaintenanceConfig(ConfigModel):
    """Where the maintenance placeholder page is served from."""

    bucket: str | None = None
    region: str = "us-east-1"
    page_path: str = "index.html"


class ProjectConfig(ConfigModel):
    """Complete deployment configuration for a project."""

    project_name: str = Field(..., min_length=1)
    display_name: str | None = None
    infrastructure: Literal["sst-serverless", "ec2-docker", "custom"] = "sst-serverless"
    database: str | None = None
    stages: list[DeploymentStage] = Field(default_factory=lambda: list(DeploymentStage))
    main_domain: str | None = None
    aws_profile: str | None = None
    require_clean_git: bool = True
    run_tests_before_deploy: bool = True
    build_command: str = "npm run build"
    custom_deploy_script: str | None = None
    stage_config: dict[DeploymentStage, StageConfig] = Field(default_factory=dict)
    health_checks: list[HealthCheck] = Field(default_factory=list)
    hooks: HookConfig = Field(default_factory=HookConfig)
    hosted_zones: list[HostedZoneConfig] = Field(default_factory=list)
    maintenance: MaintenanceConfig = Field(default_factory=MaintenanceConfig)

    def get_stage_config(self, stage: DeploymentStage) -> StageConfig:
        """Return the stage's settings, falling back to defaults."""
        return self.stage_config.get(stage) or StageConfig()

    def sst_stage_name(self, stage: DeploymentStage) -> str:
        """Stage name as understood by SST."""
        return self.get_stage_config(stage).sst_stage_name or stage.value

    def desired_domains(self) -> set[str]:
        """Every domain the configuration expects to be served."""
        domains = {c.domain for c in self.stage_config.values() if c.domain}
        if self.main_domain:
            domains.add(self.main_domain)
            domains.add(f"staging.{self.main_domain}")
        return domains

    def hosted_zone_for(self, domain: str) -> HostedZoneConfig | None:
        """Find the configured hosted zone that contains ``domain``."""
        domain = domain.rstrip(".")
        matches = [
            zone
            for zone in self.hosted_zones
            if domain == zone.domain or domain.endswith(f".{zone.domain}")
        ]
        if not matches:
            return None
        return max(matches, key=lambda zone: len(zone.domain))


def get_config_path(project_root: Path | None = None) -> Path:
    """Location of the project configuration file."""
    root = project_root or settings.project_path
    return root / settings.config_file


def load_project_config(project_root: Path | None = None) -> ProjectConfig:
    """Load and validate the project configuration.

    Raises:
        ConfigurationError: If the file is missing, not JSON, or invalid
    """
    path = get_config_path(project_root)
    if not path.exists():
        raise ConfigurationError("configuration file not found", str(path))

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"invalid JSON ({e.msg})", str(path)) from e

    try:
        return ProjectConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError(str(e), str(path)) from e
