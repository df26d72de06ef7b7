"""Integration tests for the command line interface."""

import asyncio
import json

import pytest
from click.testing import CliRunner

from deploykit.cli import CliState, main
from deploykit.models.config import DeploymentStage, StageConfig
from deploykit.models.infrastructure import CloudFrontDistribution
from deploykit.services import Services
from tests.fakes import FakeDistributionClient, FakeExternalLock, FakeHealthProber


@pytest.fixture(autouse=True)
def no_distribution_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("CLOUDFRONT_DIST_ID_STAGING", raising=False)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def invoke(runner: CliRunner, services: Services, *args: str, input: str | None = None):
    return runner.invoke(
        main, ["--no-log-file", *args], obj=CliState(services=services), input=input
    )


class TestDeployCommand:
    """Tests for `deploykit deploy`."""

    def test_successful_deploy(self, runner: CliRunner, services: Services):
        result = invoke(runner, services, "deploy", "staging")

        assert result.exit_code == 0, result.output
        assert "Deployment to staging succeeded" in result.output
        assert "Distribution: ESTAGING" in result.output

    def test_failed_deploy_exits_nonzero(self, runner: CliRunner, services: Services):
        services.health = FakeHealthProber(passed=False)

        result = invoke(runner, services, "deploy", "staging")

        assert result.exit_code == 1
        assert "FAILED" in result.output
        assert "deploykit recover staging" in result.output

    def test_locked_stage(self, runner: CliRunner, services: Services):
        """Test a held lock fails the deploy with recovery hints."""
        locks = services.lock_manager()
        asyncio.run(locks.acquire_lock(DeploymentStage.STAGING, holder_id="other"))

        result = invoke(runner, services, "deploy", "staging")

        assert result.exit_code == 1
        assert "LockHeldError" in result.output
        assert "hint: Run 'deploykit recover <stage>' to clear a stale lock" in result.output

    def test_dry_run(self, runner: CliRunner, services: Services):
        result = invoke(runner, services, "deploy", "staging", "--dry-run")

        assert result.exit_code == 0, result.output
        assert "(dry run) succeeded" in result.output
        assert services.executor.deploy_calls == [(DeploymentStage.STAGING, True)]

    def test_confirmation_declined(self, runner: CliRunner, services: Services):
        services.config.stage_config[DeploymentStage.PRODUCTION] = StageConfig(
            domain="example.com", requires_confirmation=True
        )

        result = invoke(runner, services, "deploy", "production", input="n\n")

        assert result.exit_code == 1
        assert "Deployment cancelled" in result.output
        assert services.executor.deploy_calls == []

    def test_canary_options(self, runner: CliRunner, services: Services):
        result = invoke(
            runner, services, "deploy", "staging", "--canary", "--canary-initial", "25"
        )

        assert result.exit_code == 0, result.output
        assert "Canary requested: 25% +10% every 300s" in result.output

    def test_unknown_stage(self, runner: CliRunner, services: Services):
        result = invoke(runner, services, "deploy", "qa")

        assert result.exit_code == 2


class TestStatusAndRecover:
    """Tests for `deploykit status` and `deploykit recover`."""

    def test_status_all_stages(self, runner: CliRunner, services: Services):
        result = invoke(runner, services, "status")

        assert result.exit_code == 0
        assert "staging" in result.output
        assert "production" in result.output
        assert "READY" in result.output

    def test_status_json(self, runner: CliRunner, services: Services):
        external: FakeExternalLock = services.external_lock
        external.locked = True

        result = invoke(runner, services, "status", "staging", "--external", "--json")

        data = json.loads(result.stdout)
        assert data[0]["stage"] == "staging"
        assert data[0]["state"] == "ready"
        assert data[0]["external_lock"] is True

    def test_recover_clears_lock(self, runner: CliRunner, services: Services):
        asyncio.run(services.lock_manager().acquire_lock(DeploymentStage.STAGING))

        result = invoke(runner, services, "recover", "staging")

        assert result.exit_code == 0, result.output
        assert "Removed deployment lock for staging" in result.output
        assert not services.lock_manager().store.exists(DeploymentStage.STAGING)

    def test_recover_prompts_for_external_lock(self, runner: CliRunner, services: Services):
        external: FakeExternalLock = services.external_lock
        external.locked = True

        result = invoke(runner, services, "recover", "staging", input="y\n")

        assert result.exit_code == 0, result.output
        assert "Cleared infrastructure state lock" in result.output
        assert external.locked is False


class TestReconciliationCommands:
    """Tests for audit, cleanup and diff."""

    @pytest.fixture
    def with_orphan(
        self,
        distributions: FakeDistributionClient,
        orphan_distribution: CloudFrontDistribution,
    ) -> FakeDistributionClient:
        distributions.distributions.append(orphan_distribution)
        return distributions

    def test_audit(self, runner: CliRunner, services: Services, with_orphan):
        result = invoke(runner, services, "audit")

        assert result.exit_code == 0
        assert "Audited 2 CloudFront distribution(s)" in result.output
        assert "EORPHAN" in result.output
        assert "Orphaned (safe to delete)" in result.output

    def test_audit_json(self, runner: CliRunner, services: Services, with_orphan):
        result = invoke(runner, services, "audit", "--json")

        data = json.loads(result.stdout)
        assert data["total_distributions"] == 2
        assert data["orphaned_distributions"][0]["id"] == "EORPHAN"

    def test_cleanup_dry_run(
        self, runner: CliRunner, services: Services, with_orphan: FakeDistributionClient
    ):
        result = invoke(runner, services, "cleanup", "--dry-run")

        assert result.exit_code == 0
        assert "Cleanup skipped (dry run); 1 candidate(s)" in result.output
        assert with_orphan.deleted == []

    def test_cleanup_confirmed(
        self, runner: CliRunner, services: Services, with_orphan: FakeDistributionClient
    ):
        result = invoke(runner, services, "cleanup", input="y\n")

        assert result.exit_code == 0, result.output
        assert "Deleted 1 distribution(s)" in result.output
        assert with_orphan.deleted == ["EORPHAN"]

    def test_cleanup_declined(
        self, runner: CliRunner, services: Services, with_orphan: FakeDistributionClient
    ):
        result = invoke(runner, services, "cleanup", input="n\n")

        assert "Cleanup skipped (not confirmed)" in result.output
        assert with_orphan.deleted == []

    def test_cleanup_failure_exits_nonzero(
        self, runner: CliRunner, services: Services, with_orphan: FakeDistributionClient
    ):
        with_orphan.fail_delete.add("EORPHAN")

        result = invoke(runner, services, "cleanup", input="y\n")

        assert result.exit_code == 1
        assert "EORPHAN: DistributionNotDisabled" in result.output

    def test_diff(self, runner: CliRunner, services: Services):
        result = invoke(runner, services, "diff", "staging")

        assert result.exit_code == 0
        assert "Deployment diff for staging" in result.output
        assert "Changes detected" in result.output

    def test_diff_json(self, runner: CliRunner, services: Services):
        result = invoke(runner, services, "diff", "staging", "--json")

        data = json.loads(result.stdout)
        assert data["stage"] == "staging"
        assert data["has_changes"] is True


class TestConfiguration:
    """Tests for loading the project configuration from disk."""

    def test_missing_config(self, runner: CliRunner, tmp_path):
        result = runner.invoke(
            main, ["--no-log-file", "--project-root", str(tmp_path), "status"]
        )

        assert result.exit_code == 1
        assert "configuration file not found" in result.output
