"""CloudFront distribution analysis.

Classifies every live distribution against the project configuration and
the live DNS records, and decides which ones are safe to delete. All
functions here are pure: they read their arguments and nothing else.
"""

from datetime import datetime, timedelta, timezone

from deploykit.config import settings
from deploykit.models.analysis import (
    AuditReport,
    DistributionAnalysis,
    DistributionStatus,
    Severity,
)
from deploykit.models.config import ProjectConfig
from deploykit.models.infrastructure import CloudFrontDistribution, DNSRecord

REASON_PLACEHOLDER_CONFIGURED = "Uses {sentinel} origin (incomplete configuration)"
REASON_DNS_NOT_CONFIG = "In DNS but not in deployment config"
REASON_NOT_IN_CONFIG = "Not referenced in deployment config"
REASON_NOT_IN_DNS = "Not referenced in DNS records"
REASON_PLACEHOLDER = "Uses {sentinel} origin"
REASON_UNREFERENCED = "Not referenced in deployment config or DNS"


def _normalize(domain: str) -> str:
    return domain.rstrip(".").lower()


def is_in_config(distribution: CloudFrontDistribution, config: ProjectConfig) -> bool:
    """Whether the distribution serves a domain the configuration expects."""
    desired = {_normalize(d) for d in config.desired_domains()}
    names = [_normalize(distribution.domain_name), *(_normalize(a) for a in distribution.aliases)]
    if any(name in desired for name in names):
        return True

    if config.main_domain:
        main = _normalize(config.main_domain)
        return any(_normalize(a).endswith(f".{main}") for a in distribution.aliases)
    return False


def is_in_dns(distribution: CloudFrontDistribution, dns_records: list[DNSRecord]) -> bool:
    """Whether any DNS record resolves to the distribution's domain."""
    target = _normalize(distribution.domain_name)
    return any(
        _normalize(t) == target for record in dns_records for t in record.targets
    )


def analyze(
    distribution: CloudFrontDistribution,
    config: ProjectConfig,
    dns_records: list[DNSRecord],
    now: datetime | None = None,
    placeholder: str | None = None,
    stale_after_seconds: int | None = None,
) -> DistributionAnalysis:
    """Classify one distribution.

    Priority: configured (downgraded to misconfigured with a placeholder
    origin), then DNS-only, then stale placeholder orphan, then orphaned.
    """
    sentinel = placeholder or settings.placeholder_origin
    stale_after = timedelta(
        seconds=stale_after_seconds
        if stale_after_seconds is not None
        else settings.stale_distribution_seconds
    )
    now = now or datetime.now(timezone.utc)

    in_config = is_in_config(distribution, config)
    in_dns = is_in_dns(distribution, dns_records)
    has_placeholder = sentinel in distribution.origin_domain
    is_stale = (
        distribution.created_time is not None
        and now - distribution.created_time > stale_after
    )

    reasons: list[str] = []
    recommendations: list[str] = []

    if in_config:
        status, severity = DistributionStatus.CONFIGURED, Severity.INFO
        if has_placeholder:
            status, severity = DistributionStatus.MISCONFIGURED, Severity.WARNING
            reasons.append(REASON_PLACEHOLDER_CONFIGURED.format(sentinel=sentinel))
            recommendations.append("Redeploy the stage to replace the placeholder origin")
            recommendations.append("Run: deploykit deploy <stage>")
    elif in_dns:
        status, severity = DistributionStatus.MISCONFIGURED, Severity.ERROR
        reasons.append(REASON_DNS_NOT_CONFIG)
        recommendations.append(f"Update {settings.config_file} or remove the DNS alias")
    elif has_placeholder and is_stale:
        status, severity = DistributionStatus.ORPHANED, Severity.WARNING
        reasons.append(REASON_NOT_IN_CONFIG)
        reasons.append(REASON_NOT_IN_DNS)
        reasons.append(REASON_PLACEHOLDER.format(sentinel=sentinel))
        recommendations.append("Delete this distribution")
        recommendations.append("Run: deploykit cleanup")
    else:
        status, severity = DistributionStatus.ORPHANED, Severity.INFO
        reasons.append(REASON_UNREFERENCED)

    return DistributionAnalysis(
        id=distribution.id,
        domain=distribution.domain_name,
        origin_domain=distribution.origin_domain,
        status=status,
        severity=severity,
        reasons=reasons,
        recommendations=recommendations,
        dns_aliases=list(distribution.aliases),
        created_time=distribution.created_time,
        last_modified_time=distribution.last_modified_time,
    )


def can_delete(analysis: DistributionAnalysis, placeholder: str | None = None) -> bool:
    """Whether ``analysis`` is safe to delete.

    A distribution that still has any DNS alias is never deletable.
    """
    if analysis.dns_aliases:
        return False

    sentinel = placeholder or settings.placeholder_origin
    has_placeholder = any(sentinel in r for r in analysis.reasons)

    if analysis.status == DistributionStatus.MISCONFIGURED:
        return has_placeholder

    if analysis.status == DistributionStatus.ORPHANED:
        return has_placeholder or any(REASON_UNREFERENCED in r for r in analysis.reasons)

    return False


def generate_audit_report(
    distributions: list[CloudFrontDistribution],
    config: ProjectConfig,
    dns_records: list[DNSRecord],
    now: datetime | None = None,
) -> AuditReport:
    """Analyze every distribution and summarize the findings."""
    now = now or datetime.now(timezone.utc)
    analyses = [analyze(d, config, dns_records, now=now) for d in distributions]

    report = AuditReport(
        timestamp=now,
        total_distributions=len(distributions),
        configured_distributions=[a for a in analyses if a.status == DistributionStatus.CONFIGURED],
        orphaned_distributions=[a for a in analyses if a.status == DistributionStatus.ORPHANED],
        misconfigured_distributions=[
            a for a in analyses if a.status == DistributionStatus.MISCONFIGURED
        ],
    )

    if report.orphaned_distributions:
        report.issues.append(
            f"{len(report.orphaned_distributions)} orphaned distribution(s) detected"
        )
        report.recommendations.append("Run: deploykit cleanup --dry-run")
        report.recommendations.append("Then: deploykit cleanup")

    if report.misconfigured_distributions:
        report.issues.append(
            f"{len(report.misconfigured_distributions)} misconfigured distribution(s) detected"
        )
        sentinel = settings.placeholder_origin
        if any(
            sentinel in r for a in report.misconfigured_distributions for r in a.reasons
        ):
            report.recommendations.append("Redeploy to fix placeholder origins")

    if report.total_distributions > len(config.stages):
        extra = report.total_distributions - len(config.stages)
        report.issues.append(f"{extra} extra distribution(s) beyond configured stages")

    if not report.issues:
        report.issues.append("All distributions properly configured")

    return report


def get_status_description(analysis: DistributionAnalysis) -> str:
    """One-line human label for an analysis."""
    if analysis.status == DistributionStatus.CONFIGURED:
        return "Configured"
    if analysis.status == DistributionStatus.MISCONFIGURED:
        return f"Misconfigured ({analysis.severity.value})"
    if can_delete(analysis):
        return "Orphaned (safe to delete)"
    return "Orphaned (review before deleting)"
