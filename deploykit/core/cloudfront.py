"""CloudFront operations used after a deployment.

Distribution discovery, cache invalidation and the infrastructure audit.
None of these hold the deployment lock; all of them are best-effort and
report problems instead of raising.
"""

import os
from datetime import datetime, timezone

from deploykit.adapters.base import DistributionClient, DnsClient
from deploykit.core.analyzer import generate_audit_report
from deploykit.core.context import RunContext
from deploykit.models.analysis import AuditReport
from deploykit.models.config import DeploymentStage, ProjectConfig
from deploykit.models.infrastructure import CloudFrontDistribution, DNSRecord
from deploykit.models.pipeline import StepOutcome
from deploykit.utils.domains import extract_root_domain
from deploykit.utils.logging import get_logger


def distribution_env_var(stage: DeploymentStage) -> str:
    return f"CLOUDFRONT_DIST_ID_{stage.value.upper()}"


class CloudFrontOperations:
    """Discovery, invalidation and audit against live CloudFront state."""

    def __init__(
        self,
        config: ProjectConfig,
        distributions: DistributionClient,
        dns: DnsClient,
        context: RunContext | None = None,
    ):
        self.config = config
        self.distributions = distributions
        self.dns = dns
        self.logger = context.child("cloudfront") if context else get_logger("cloudfront")

    async def find_distribution_id(
        self,
        stage: DeploymentStage,
        distribution_domain: str | None = None,
        strict: bool = False,
    ) -> str | None:
        """Locate the stage's distribution.

        Matches the CloudFront domain reported by the deploy, then the
        stage domain. Unless ``strict``, a stage with a domain but no
        matching distribution falls back to the most recently modified
        one. A stage without a domain never matches by fallback.
        """
        try:
            distributions = await self.distributions.list_distributions()
        except Exception as e:
            self.logger.warning("cloudfront.list_failed", error=str(e))
            return None

        if distribution_domain:
            for dist in distributions:
                if dist.domain_name == distribution_domain:
                    return dist.id

        domain = self.config.get_stage_config(stage).domain
        if not domain:
            return None
        for dist in distributions:
            if dist.domain_name == domain or domain in dist.aliases:
                return dist.id

        if strict or not distributions:
            return None
        newest = max(distributions, key=_modified_key)
        self.logger.info("cloudfront.fallback_most_recent", distribution_id=newest.id)
        return newest.id

    async def resolve_distribution_id(
        self,
        stage: DeploymentStage,
        distribution_id: str | None = None,
        distribution_domain: str | None = None,
        strict: bool = False,
    ) -> str | None:
        """Explicit id, then ``CLOUDFRONT_DIST_ID_<STAGE>``, then discovery."""
        return (
            distribution_id
            or os.environ.get(distribution_env_var(stage))
            or await self.find_distribution_id(stage, distribution_domain, strict=strict)
        )

    async def invalidate_cache(
        self,
        stage: DeploymentStage,
        distribution_id: str | None = None,
        distribution_domain: str | None = None,
    ) -> StepOutcome:
        """Invalidate ``/*`` on the stage's distribution."""
        if self.config.get_stage_config(stage).skip_cache_invalidation:
            return StepOutcome.skipped("cache invalidation disabled for stage")

        dist_id = await self.resolve_distribution_id(stage, distribution_id, distribution_domain)
        if not dist_id:
            return StepOutcome.skipped("CloudFront distribution not found")

        try:
            invalidation_id = await self.distributions.create_invalidation(dist_id, ["/*"])
        except Exception as e:
            self.logger.warning(
                "cloudfront.invalidation_failed", distribution_id=dist_id, error=str(e)
            )
            return StepOutcome.failed(f"cache invalidation failed: {e}", distribution_id=dist_id)

        return StepOutcome.passed(
            f"invalidation {invalidation_id} started",
            distribution_id=dist_id,
            invalidation_id=invalidation_id,
        )

    async def fetch_dns_records(self) -> tuple[list[DNSRecord], bool]:
        """Records from every relevant hosted zone, and whether all were read."""
        zone_ids = [zone.zone_id for zone in self.config.hosted_zones]
        complete = True

        if not zone_ids:
            roots = {extract_root_domain(d) for d in self.config.desired_domains()}
            try:
                zone_ids = [z.id for z in await self.dns.list_hosted_zones() if z.name in roots]
            except Exception as e:
                self.logger.warning("cloudfront.zones_unavailable", error=str(e))
                return [], False

        records: list[DNSRecord] = []
        for zone_id in zone_ids:
            try:
                records.extend(await self.dns.get_dns_records(zone_id))
            except Exception as e:
                complete = False
                self.logger.warning("cloudfront.records_unavailable", zone_id=zone_id, error=str(e))
        return records, complete

    async def audit(self, now: datetime | None = None) -> AuditReport:
        """Classify every distribution in the account."""
        distributions = await self.distributions.list_distributions()
        records, complete = await self.fetch_dns_records()
        report = generate_audit_report(
            distributions, self.config, records, now=now or datetime.now(timezone.utc)
        )
        report.dns_complete = complete
        if not complete:
            report.issues.append("DNS records could not be read completely; cleanup disabled")

        self.logger.info(
            "cloudfront.audit_completed",
            total=report.total_distributions,
            orphaned=len(report.orphaned_distributions),
            misconfigured=len(report.misconfigured_distributions),
            dns_complete=complete,
        )
        return report


def _modified_key(dist: CloudFrontDistribution) -> datetime:
    return dist.last_modified_time or datetime.min.replace(tzinfo=timezone.utc)
