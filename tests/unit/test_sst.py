"""Unit tests for the SST adapter's output handling."""

from pathlib import Path

import pytest

from deploykit.adapters.commands import COMMAND_NOT_FOUND, CommandResult, run_command
from deploykit.adapters.sst import (
    SstDeployExecutor,
    SstStateLock,
    extract_cloudfront_domain,
    extract_distribution_id,
    extract_url,
    is_sst_project,
)
from deploykit.core.locks import LockManager, LockStore
from deploykit.core.recovery import RecoveryManager
from deploykit.models.config import DeploymentStage, ProjectConfig, StageConfig

SST_OUTPUT = """
SST 3.2.1  ready!

➜  App:        shop
   Stage:      staging

✓  Complete
   site: https://staging.example.com
   cdn: https://D111111ABCDEF8.cloudfront.net
"""


class TestOutputExtraction:
    """Tests for scraping identifiers out of deploy output."""

    def test_cloudfront_domain(self):
        assert extract_cloudfront_domain(SST_OUTPUT) == "d111111abcdef8.cloudfront.net"

    def test_cloudfront_domain_rejects_malformed_label(self):
        assert extract_cloudfront_domain("https://dshort.cloudfront.net") is None
        assert extract_cloudfront_domain("no urls here") is None

    def test_distribution_id(self):
        assert extract_distribution_id('{"distributionId": "E2ABCDEF123"}') == "E2ABCDEF123"
        assert extract_distribution_id(SST_OUTPUT) is None

    def test_first_url(self):
        assert extract_url(SST_OUTPUT) == "https://staging.example.com"
        assert extract_url("see https://example.com/docs.") == "https://example.com/docs"
        assert extract_url("") is None

    def test_is_sst_project(self, tmp_path: Path):
        assert is_sst_project(tmp_path) is False
        (tmp_path / "sst.config.ts").write_text("export default {}")
        assert is_sst_project(tmp_path) is True


class TestSstDeployExecutor:
    """Tests for the commands the executor chooses."""

    @pytest.fixture
    def config(self) -> ProjectConfig:
        return ProjectConfig(
            project_name="shop",
            stage_config={DeploymentStage.STAGING: StageConfig(sst_stage_name="stg")},
        )

    def test_deploy_command_uses_sst_stage_name(self, config: ProjectConfig, tmp_path: Path):
        executor = SstDeployExecutor(config, tmp_path)

        assert executor._deploy_command(DeploymentStage.STAGING, dry_run=False) == [
            "npx", "sst", "deploy", "--stage", "stg",
        ]
        assert executor._deploy_command(DeploymentStage.PRODUCTION, dry_run=True) == [
            "npx", "sst", "diff", "--stage", "production",
        ]

    @pytest.mark.asyncio
    async def test_custom_script_not_run_in_dry_run(self, tmp_path: Path):
        config = ProjectConfig(project_name="shop", custom_deploy_script="deploy.sh")
        executor = SstDeployExecutor(config, tmp_path)

        output = await executor.execute_deploy(DeploymentStage.STAGING, dry_run=True)

        assert output.success is True
        assert output.distribution_domain is None

    @pytest.mark.asyncio
    async def test_build_skipped_for_sst_project(self, tmp_path: Path):
        (tmp_path / "sst.config.ts").write_text("export default {}")
        executor = SstDeployExecutor(ProjectConfig(project_name="shop"), tmp_path)

        outcome = await executor.run_build()

        assert outcome.applicable is False

    @pytest.mark.asyncio
    async def test_build_failure(self, tmp_path: Path):
        config = ProjectConfig(project_name="shop", build_command="echo broken >&2; exit 3")
        executor = SstDeployExecutor(config, tmp_path)

        outcome = await executor.run_build()

        assert outcome.applicable is True
        assert outcome.ok is False
        assert outcome.detail == "broken"


class TestRunCommand:
    """Tests for the subprocess helper."""

    @pytest.mark.asyncio
    async def test_shell_command_with_env(self, tmp_path: Path):
        result = await run_command(
            "echo $DEPLOY_KIT_STAGE", cwd=tmp_path, env={"DEPLOY_KIT_STAGE": "staging"}
        )

        assert result.ok is True
        assert result.stdout.strip() == "staging"

    @pytest.mark.asyncio
    async def test_timeout(self):
        result = await run_command(["sleep", "5"], timeout=0.1)

        assert result.timed_out is True
        assert result.ok is False

    def test_error_preview(self):
        assert CommandResult(returncode=2).error_preview() == "exit code 2"
        assert CommandResult(returncode=1, stdout="out", stderr="err").output == "out\nerr"


class TestSstStateLock:
    """Tests for the infrastructure state lock when the SST toolchain is absent."""

    @pytest.fixture
    def no_npx(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("PATH", "/nonexistent")

    @pytest.mark.asyncio
    async def test_missing_executable(self, no_npx, tmp_path: Path):
        result = await run_command(["npx", "sst", "status"], cwd=tmp_path)

        assert result.returncode == COMMAND_NOT_FOUND
        assert result.ok is False
        assert "npx" in result.error_preview()

    @pytest.mark.asyncio
    async def test_reported_unlocked(self, no_npx, tmp_path: Path):
        state_lock = SstStateLock(ProjectConfig(project_name="shop"), tmp_path)

        assert await state_lock.is_locked(DeploymentStage.STAGING) is False
        assert await state_lock.unlock(DeploymentStage.STAGING) is False

    @pytest.mark.asyncio
    async def test_recovery_still_clears_file_lock(self, no_npx, tmp_path: Path):
        """Test status and recovery complete without the SST toolchain."""
        locks = LockManager(
            store=LockStore(tmp_path),
            external_lock=SstStateLock(ProjectConfig(project_name="shop"), tmp_path),
        )
        await locks.acquire_lock(DeploymentStage.STAGING)
        recovery = RecoveryManager(locks)

        status = await recovery.get_status(DeploymentStage.STAGING, check_external=True)
        cleared = await recovery.recover(DeploymentStage.STAGING, lambda message: True)

        assert status.external_lock is False
        assert cleared == {"file_lock_cleared": True, "external_lock_cleared": False}
