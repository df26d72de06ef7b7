"""Terminal rendering of pipeline results, stage status and audit reports."""

from tabulate import tabulate

from deploykit.core.analyzer import get_status_description
from deploykit.models.analysis import AuditReport, CleanupResult
from deploykit.models.lock import LockState, StageStatus
from deploykit.models.pipeline import PipelineResult, StepStatus

STEP_SYMBOLS = {
    StepStatus.COMPLETED: "✓",
    StepStatus.FAILED: "✗",
    StepStatus.SKIPPED: "-",
    StepStatus.IN_PROGRESS: "…",
    StepStatus.PENDING: " ",
}

STATE_COLORS = {
    LockState.READY: "green",
    LockState.ACTIVE: "yellow",
    LockState.STALE: "red",
}


def format_pipeline_summary(result: PipelineResult) -> str:
    """Multi-line summary of a finished run."""
    outcome = "succeeded" if result.success else "FAILED"
    mode = " (dry run)" if result.dry_run else ""
    elapsed = result.duration_seconds or 0
    lines = [f"Deployment to {result.stage.value}{mode} {outcome} in {elapsed}s"]

    rows = [
        [
            STEP_SYMBOLS[info.status],
            name,
            info.duration_ms if info.duration_ms is not None else "",
            info.detail or "",
        ]
        for name, info in result.steps.items()
    ]
    if rows:
        lines.append(tabulate(rows, headers=["", "step", "ms", "detail"], tablefmt="simple"))

    if result.url:
        lines.append(f"URL: {result.url}")
    if result.distribution_id:
        lines.append(f"Distribution: {result.distribution_id}")
    if result.canary:
        lines.append(
            f"Canary requested: {result.canary.initial}% +{result.canary.increment}% "
            f"every {result.canary.interval_seconds}s"
        )
    for warning in result.warnings:
        lines.append(f"Warning: {warning}")

    if not result.success:
        lines.append(f"Error ({result.error_type}): {result.error}")
        lines.append("Recovery:")
        lines.extend(f"  {cmd}" for cmd in result.recovery_commands)

    return "\n".join(lines)


def format_stage_status(status: StageStatus) -> str:
    line = f"{status.stage.value:<12} {status.state.value.upper():<7} {status.message}"
    if status.external_lock:
        line += " [infrastructure state locked]"
    return line


def format_audit_report(report: AuditReport) -> str:
    lines = [f"Audited {report.total_distributions} CloudFront distribution(s)"]

    analyses = (
        report.configured_distributions
        + report.misconfigured_distributions
        + report.orphaned_distributions
    )
    if analyses:
        rows = [
            [a.id, a.domain, a.status.value, a.severity.value, get_status_description(a)]
            for a in analyses
        ]
        lines.append(
            tabulate(
                rows,
                headers=["id", "domain", "status", "severity", "summary"],
                tablefmt="simple",
            )
        )

    if report.issues:
        lines.append("Issues:")
        lines.extend(f"  - {issue}" for issue in report.issues)
    if report.recommendations:
        lines.append("Recommendations:")
        lines.extend(f"  - {rec}" for rec in report.recommendations)
    return "\n".join(lines)


def format_cleanup_result(result: CleanupResult) -> str:
    if result.skipped_reason:
        return (
            f"Cleanup skipped ({result.skipped_reason}); "
            f"{len(result.candidates)} candidate(s), "
            f"${result.estimated_monthly_savings:.2f}/month"
        )

    lines = [f"Deleted {len(result.deleted)} distribution(s)"]
    lines.extend(f"  ✓ {dist_id}" for dist_id in result.deleted)
    lines.extend(f"  ✗ {dist_id}: {error}" for dist_id, error in result.failed.items())
    return "\n".join(lines)
