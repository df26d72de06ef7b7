"""deploykit command line interface."""

import asyncio
import json
import sys
from pathlib import Path

import click

from deploykit import __version__
from deploykit.config import settings
from deploykit.core.diff import format_diff
from deploykit.core.exceptions import DeployKitError
from deploykit.core.recovery import provide_rollback_guidance
from deploykit.models.config import DeploymentStage
from deploykit.models.lock import LockState
from deploykit.models.pipeline import CanaryOptions, DeployOptions
from deploykit.services import Services, build_services
from deploykit.utils.formatting import (
    STATE_COLORS,
    format_audit_report,
    format_cleanup_result,
    format_pipeline_summary,
    format_stage_status,
)
from deploykit.utils.logging import configure_logging

STAGE = click.Choice([s.value for s in DeploymentStage])


class CliState:
    """Per-invocation state shared by the commands."""

    def __init__(self, project_root: Path | None = None, services: Services | None = None):
        self.project_root = project_root
        self._services = services

    @property
    def services(self) -> Services:
        if self._services is None:
            self._services = build_services(self.project_root, confirm=confirm)
        return self._services

    def load(self) -> Services:
        """Services for the command, exiting with the error when they cannot be built."""
        try:
            return self.services
        except DeployKitError as e:
            fail(e.message)


def confirm(message: str) -> bool:
    """Confirmation port backed by an interactive prompt."""
    return click.confirm(message, default=False)


def fail(message: str) -> None:
    click.echo(click.style(f"Error: {message}", fg="red"), err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--project-root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project directory containing .deploy-config.json (default: current directory)",
)
@click.option("--log-file/--no-log-file", default=True, help="Also write logs under the project")
@click.option("-v", "--verbose", is_flag=True, help="Show progress logs on stderr")
@click.pass_context
def main(ctx: click.Context, project_root: Path | None, log_file: bool, verbose: bool):
    """Deploy SST applications to AWS and reconcile their infrastructure."""
    configure_logging(log_to_file=log_file, console_level=None if verbose else "WARNING")
    if ctx.obj is None:
        ctx.obj = CliState(project_root)


@main.command()
@click.argument("stage", type=STAGE)
@click.option("--dry-run", is_flag=True, help="Run every decision without mutating anything")
@click.option("--maintenance", is_flag=True, help="Serve the maintenance page during the deploy")
@click.option("--show-diff", is_flag=True, help="Print the infrastructure diff before deploying")
@click.option("--skip-audit", is_flag=True, help="Skip the post-deploy infrastructure audit")
@click.option("--canary", is_flag=True, help="Record a canary rollout for this run")
@click.option("--canary-initial", default=10, show_default=True, help="Initial canary traffic %")
@click.option("--canary-increment", default=10, show_default=True, help="Traffic % added per step")
@click.option("--canary-interval", default=300, show_default=True, help="Seconds between steps")
@click.pass_obj
def deploy(
    state: CliState,
    stage: str,
    dry_run: bool,
    maintenance: bool,
    show_diff: bool,
    skip_audit: bool,
    canary: bool,
    canary_initial: int,
    canary_increment: int,
    canary_interval: int,
):
    """Deploy STAGE."""
    services = state.load()

    target = DeploymentStage(stage)
    stage_config = services.config.get_stage_config(target)
    if stage_config.requires_confirmation and not dry_run:
        if not confirm(f"Deploy to {target.value}?"):
            click.echo("Deployment cancelled")
            sys.exit(1)

    options = DeployOptions(
        dry_run=dry_run,
        maintenance=maintenance,
        show_diff=show_diff,
        skip_audit=skip_audit,
        canary=CanaryOptions(
            initial=canary_initial,
            increment=canary_increment,
            interval_seconds=canary_interval,
        )
        if canary
        else None,
    )
    result = asyncio.run(services.pipeline().run(target, options))

    color = "green" if result.success else "red"
    click.echo(click.style(format_pipeline_summary(result), fg=color))
    if not result.success:
        for hint in provide_rollback_guidance(result.error or ""):
            click.echo(f"  hint: {hint}")
        sys.exit(1)


@main.command()
@click.argument("stage", type=STAGE, required=False)
@click.option(
    "--external/--no-external", default=False, help="Also query the infrastructure state lock"
)
@click.option("--json", "output_json", is_flag=True, help="Output in JSON format")
@click.pass_obj
def status(state: CliState, stage: str | None, external: bool, output_json: bool):
    """Show lock status for STAGE, or every configured stage."""
    services = state.load()

    stages = [DeploymentStage(stage)] if stage else services.config.stages
    recovery = services.recovery()

    async def collect():
        return [await recovery.get_status(s, check_external=external) for s in stages]

    statuses = asyncio.run(collect())
    if output_json:
        click.echo(json.dumps([s.model_dump(mode="json") for s in statuses], indent=2))
        return

    for stage_status in statuses:
        color = STATE_COLORS[stage_status.state]
        click.echo(click.style(format_stage_status(stage_status), fg=color))


@main.command()
@click.argument("stage", type=STAGE)
@click.pass_obj
def recover(state: CliState, stage: str):
    """Clear locks left on STAGE by an interrupted deployment."""
    services = state.load()

    target = DeploymentStage(stage)
    outcome = asyncio.run(services.recovery().perform_full_recovery(target, confirm))

    if outcome["file_lock_cleared"]:
        click.echo(click.style(f"✓ Removed deployment lock for {target.value}", fg="green"))
    else:
        click.echo(f"No deployment lock for {target.value}")
    if outcome["external_lock_cleared"]:
        click.echo(click.style("✓ Cleared infrastructure state lock", fg="green"))

    stage_status = outcome["status"]
    click.echo(click.style(format_stage_status(stage_status), fg=STATE_COLORS[stage_status.state]))
    if stage_status.state != LockState.READY:
        sys.exit(1)


@main.command()
@click.option("--json", "output_json", is_flag=True, help="Output in JSON format")
@click.pass_obj
def audit(state: CliState, output_json: bool):
    """Classify every CloudFront distribution in the account."""
    services = state.load()
    report = asyncio.run(services.cloudfront().audit())

    if output_json:
        click.echo(report.model_dump_json(indent=2))
        return
    click.echo(format_audit_report(report))


@main.command()
@click.option("--dry-run", is_flag=True, help="List what would be deleted")
@click.pass_obj
def cleanup(state: CliState, dry_run: bool):
    """Delete orphaned CloudFront distributions after confirmation."""
    services = state.load()

    async def run():
        report = await services.cloudfront().audit()
        return await services.cleaner(confirm).cleanup(report, dry_run=dry_run)

    result = asyncio.run(run())
    click.echo(format_cleanup_result(result))
    if result.failed:
        sys.exit(1)


@main.command()
@click.argument("stage", type=STAGE)
@click.option("--json", "output_json", is_flag=True, help="Output in JSON format")
@click.pass_obj
def diff(state: CliState, stage: str, output_json: bool):
    """Compare desired and live infrastructure for STAGE."""
    services = state.load()

    result = asyncio.run(services.diff_collector(DeploymentStage(stage)).collect())
    if output_json:
        payload = {"has_changes": result.has_changes, **result.model_dump(mode="json")}
        click.echo(json.dumps(payload, indent=2))
        return
    click.echo(format_diff(result))


@main.command()
@click.option("--host", default=None, help=f"Bind address (default: {settings.api_host})")
@click.option("--port", default=None, type=int, help=f"Port (default: {settings.api_port})")
def serve(host: str | None, port: int | None):
    """Run the dashboard API."""
    import uvicorn

    uvicorn.run(
        "deploykit.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
