"""Orphaned distribution cleanup.

Deletion is irreversible, so only distributions that pass ``can_delete``
are candidates, the operator is asked through the confirmation port, and
nothing is touched if the DNS snapshot behind the audit was incomplete.
"""

from deploykit.adapters.base import ConfirmCallback, DistributionClient
from deploykit.config import settings
from deploykit.core.analyzer import can_delete
from deploykit.core.context import RunContext
from deploykit.models.analysis import AuditReport, CleanupResult, DistributionAnalysis
from deploykit.utils.logging import get_logger


def deletion_candidates(report: AuditReport) -> list[DistributionAnalysis]:
    analyses = report.orphaned_distributions + report.misconfigured_distributions
    return [a for a in analyses if can_delete(a)]


class OrphanCleaner:
    """Disables, waits for, and deletes orphaned distributions."""

    def __init__(
        self,
        distributions: DistributionClient,
        confirm: ConfirmCallback,
        context: RunContext | None = None,
        wait_timeout_seconds: int = 1200,
    ):
        self.distributions = distributions
        self.confirm = confirm
        self.wait_timeout_seconds = wait_timeout_seconds
        self.context = context
        self.logger = context.child("cleanup") if context else get_logger("cleanup")

    async def cleanup(self, report: AuditReport, dry_run: bool = False) -> CleanupResult:
        candidates = deletion_candidates(report)
        result = CleanupResult(
            candidates=[c.id for c in candidates],
            estimated_monthly_savings=len(candidates) * settings.cost_per_distribution_month,
        )

        if not candidates:
            result.skipped_reason = "no distributions are safe to delete"
            return result
        if not report.dns_complete:
            result.skipped_reason = "DNS snapshot incomplete"
            return result
        if dry_run:
            result.skipped_reason = "dry run"
            return result

        ids = ", ".join(result.candidates)
        result.confirmed = self.confirm(
            f"Delete {len(candidates)} orphaned CloudFront distribution(s) ({ids})? "
            f"Estimated savings ${result.estimated_monthly_savings:.2f}/month."
        )
        if not result.confirmed:
            result.skipped_reason = "not confirmed"
            self.logger.info("cleanup.declined", candidates=result.candidates)
            return result

        for analysis in candidates:
            try:
                await self._delete(analysis)
            except Exception as e:
                result.failed[analysis.id] = str(e)
                self.logger.warning(
                    "cleanup.delete_failed", distribution_id=analysis.id, error=str(e)
                )
            else:
                result.deleted.append(analysis.id)

        if self.context:
            self.context.metrics.increment("cleanup.deleted", len(result.deleted))
        self.logger.info("cleanup.completed", deleted=result.deleted, failed=list(result.failed))
        return result

    async def _delete(self, analysis: DistributionAnalysis) -> None:
        self.logger.info("cleanup.disabling", distribution_id=analysis.id)
        await self.distributions.disable_distribution(analysis.id)
        await self.distributions.wait_until_deployed(analysis.id, self.wait_timeout_seconds)
        await self.distributions.delete_distribution(analysis.id)
        self.logger.info("cleanup.deleted", distribution_id=analysis.id)
