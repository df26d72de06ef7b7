"""Desired-vs-current infrastructure diffs.

``create_diff`` is a generic structural comparison. ``DiffCollector``
projects the desired CloudFront, certificate and DNS state for a stage
from the project configuration, fetches the live state concurrently and
diffs each domain. A failed fetch marks that domain unavailable instead of
failing the whole preview.
"""

import asyncio
from typing import Any

from deploykit.adapters.base import CertificateClient, DistributionClient, DnsClient
from deploykit.core.context import RunContext
from deploykit.models.config import DeploymentStage, ProjectConfig
from deploykit.models.diff import (
    CertificateDiff,
    ChangeType,
    CloudFrontDiff,
    DeploymentDiff,
    DiffChange,
    DiffResult,
    DnsChange,
    DnsDiff,
    InfrastructureSummary,
)
from deploykit.utils.domains import extract_root_domain
from deploykit.utils.logging import get_logger

CLOUDFRONT_PLACEHOLDER_TARGET = "<CloudFront-distribution>.cloudfront.net"
ALLOWED_METHODS = ["GET", "HEAD", "OPTIONS", "PUT", "POST", "PATCH", "DELETE"]


def _compare(old: Any, new: Any, path: str, changes: list[DiffChange]) -> None:
    if old is new or (type(old) is type(new) and not isinstance(old, (dict, list)) and old == new):
        return

    label = path or "root"
    old_is_container = isinstance(old, (dict, list))
    new_is_container = isinstance(new, (dict, list))

    if not old_is_container or not new_is_container or type(old) is not type(new):
        changes.append(
            DiffChange(type=ChangeType.MODIFIED, path=label, old_value=old, new_value=new)
        )
        return

    if isinstance(old, list):
        for i in range(max(len(old), len(new))):
            item_path = f"{path}[{i}]"
            if i >= len(old):
                changes.append(
                    DiffChange(type=ChangeType.ADDED, path=item_path, new_value=new[i])
                )
            elif i >= len(new):
                changes.append(
                    DiffChange(type=ChangeType.REMOVED, path=item_path, old_value=old[i])
                )
            else:
                _compare(old[i], new[i], item_path, changes)
        return

    for key in list(old) + [k for k in new if k not in old]:
        key_path = f"{path}.{key}" if path else str(key)
        if key not in old:
            changes.append(DiffChange(type=ChangeType.ADDED, path=key_path, new_value=new[key]))
        elif key not in new:
            changes.append(DiffChange(type=ChangeType.REMOVED, path=key_path, old_value=old[key]))
        else:
            _compare(old[key], new[key], key_path, changes)


def _result(changes: list[DiffChange]) -> DiffResult:
    return DiffResult(
        identical=not changes,
        changes=changes,
        added=sum(1 for c in changes if c.type == ChangeType.ADDED),
        removed=sum(1 for c in changes if c.type == ChangeType.REMOVED),
        modified=sum(1 for c in changes if c.type == ChangeType.MODIFIED),
    )


def create_diff(old: Any, new: Any) -> DiffResult:
    """Compare two JSON-like structures field by field.

    Paths use dotted keys and ``[i]`` list indices, e.g. ``origins[0].domain``.
    """
    changes: list[DiffChange] = []
    _compare(old, new, "", changes)
    return _result(changes)


def deep_equal(a: Any, b: Any) -> bool:
    return create_diff(a, b).identical


def filter_diff(diff: DiffResult, types: list[ChangeType]) -> DiffResult:
    """Keep only changes of the given types."""
    wanted = set(types)
    return _result([c for c in diff.changes if c.type in wanted])


def extract_cloudfront_config(distribution_config: dict[str, Any]) -> dict[str, Any]:
    """Project a CloudFront ``DistributionConfig`` onto the compared fields."""
    if not distribution_config:
        return {}

    behavior = distribution_config.get("DefaultCacheBehavior", {})
    certificate = distribution_config.get("ViewerCertificate", {})
    return {
        "enabled": distribution_config.get("Enabled", False),
        "price_class": distribution_config.get("PriceClass"),
        "aliases": distribution_config.get("Aliases", {}).get("Items", []),
        "origins": [
            {
                "id": origin.get("Id"),
                "domain": origin.get("DomainName"),
                "custom_headers": len(origin.get("CustomHeaders", {}).get("Items", [])),
            }
            for origin in distribution_config.get("Origins", {}).get("Items", [])
        ],
        "default_cache_behavior": {
            "viewer_protocol_policy": behavior.get("ViewerProtocolPolicy"),
            "allowed_methods": behavior.get("AllowedMethods", {}).get("Items", []),
            "compress": behavior.get("Compress", False),
        },
        "custom_error_responses": [
            {"error_code": e.get("ErrorCode"), "response_code": e.get("ResponseCode")}
            for e in distribution_config.get("CustomErrorResponses", {}).get("Items", [])
        ],
        "viewer_certificate": {
            "ssl_support_method": certificate.get("SSLSupportMethod"),
            "minimum_protocol_version": certificate.get("MinimumProtocolVersion"),
        },
    }


def desired_certificate_domains(domain: str) -> list[str]:
    root = extract_root_domain(domain)
    if root == domain and "." not in domain:
        return [domain]
    return [root, f"*.{root}"]


class DiffCollector:
    """Collects a ``DeploymentDiff`` for one stage."""

    def __init__(
        self,
        config: ProjectConfig,
        stage: DeploymentStage,
        distributions: DistributionClient,
        dns: DnsClient,
        certificates: CertificateClient,
        context: RunContext | None = None,
    ):
        self.config = config
        self.stage = stage
        self.stage_config = config.get_stage_config(stage)
        self.distributions = distributions
        self.dns = dns
        self.certificates = certificates
        self.logger = context.child("diff") if context else get_logger("diff")

    @property
    def domain(self) -> str | None:
        return self.stage_config.domain

    def desired_cloudfront_config(self) -> dict[str, Any]:
        region = self.stage_config.aws_region
        stage_name = self.config.sst_stage_name(self.stage)
        return {
            "enabled": True,
            "price_class": "PriceClass_All",
            "aliases": [self.domain] if self.domain else [],
            "origins": [
                {
                    "id": "primary",
                    "domain": (
                        f"{self.config.project_name}-{stage_name}"
                        f".execute-api.{region}.amazonaws.com"
                    ),
                    "custom_headers": 0,
                }
            ],
            "default_cache_behavior": {
                "viewer_protocol_policy": "redirect-to-https",
                "allowed_methods": list(ALLOWED_METHODS),
                "compress": True,
            },
            "custom_error_responses": [],
            "viewer_certificate": {
                "ssl_support_method": "sni-only",
                "minimum_protocol_version": "TLSv1.2_2021",
            },
        }

    async def collect(self) -> DeploymentDiff:
        """Collect all three diffs concurrently."""
        cloudfront, certificate, dns = await asyncio.gather(
            self.collect_cloudfront_diff(),
            self.collect_certificate_diff(),
            self.collect_dns_diff(),
        )
        diff = DeploymentDiff(
            stage=self.stage.value,
            cloudfront=cloudfront,
            certificate=certificate,
            dns=dns,
            infrastructure=self.infrastructure_summary(),
        )
        self.logger.info(
            "diff.collected",
            stage=self.stage.value,
            has_changes=diff.has_changes,
            cloudfront_available=cloudfront.available,
            certificate_available=certificate.available,
            dns_available=dns.available,
        )
        return diff

    async def collect_cloudfront_diff(self) -> CloudFrontDiff:
        desired = self.desired_cloudfront_config()
        if not self.domain:
            return CloudFrontDiff(available=False, error="no domain configured", desired=desired)

        try:
            distributions = await self.distributions.list_distributions()
            existing = next((d for d in distributions if self.domain in d.aliases), None)
            if existing is None:
                return CloudFrontDiff(exists=False, desired=desired, diff=create_diff({}, desired))

            raw_config, _ = await self.distributions.get_distribution_config(existing.id)
        except Exception as e:
            self.logger.warning("diff.cloudfront_unavailable", error=str(e))
            return CloudFrontDiff(available=False, error=str(e), desired=desired)

        current = extract_cloudfront_config(raw_config)
        return CloudFrontDiff(
            exists=True,
            distribution_id=existing.id,
            current=current,
            desired=desired,
            diff=create_diff(current, desired),
        )

    async def collect_certificate_diff(self) -> CertificateDiff:
        if not self.domain:
            return CertificateDiff(available=False, error="no domain configured")

        desired = desired_certificate_domains(self.domain)
        try:
            certificates = await self.certificates.list_certificates()
        except Exception as e:
            self.logger.warning("diff.certificate_unavailable", error=str(e))
            return CertificateDiff(
                available=False,
                error=str(e),
                status="not_found",
                desired_domains=desired,
            )

        current_cert = next((c for c in certificates if c.domain_name in desired), None)
        if current_cert is None:
            return CertificateDiff(
                status="new_cert",
                desired_domains=desired,
                domains_added=desired,
            )

        current = [current_cert.domain_name] + [
            d for d in current_cert.subject_alternative_names if d != current_cert.domain_name
        ]
        added = [d for d in desired if d not in current]
        removed = [d for d in current if d not in desired]
        return CertificateDiff(
            status="domain_changed" if added or removed else "no_change",
            certificate_arn=current_cert.arn,
            current_domains=current,
            desired_domains=desired,
            domains_added=added,
            domains_removed=removed,
        )

    async def collect_dns_diff(self) -> DnsDiff:
        if not self.domain:
            return DnsDiff(available=False, error="no domain configured")

        domain = self.domain
        missing = DnsChange(
            type=ChangeType.ADDED,
            name=domain,
            new_value=CLOUDFRONT_PLACEHOLDER_TARGET,
        )
        try:
            zone_id = await self._find_zone_id(domain)
            if zone_id is None:
                return DnsDiff(changes=[missing])
            records = await self.dns.get_dns_records(zone_id)
        except Exception as e:
            self.logger.warning("diff.dns_unavailable", error=str(e))
            return DnsDiff(available=False, error=str(e))

        # Only the stage's own record, never the rest of the zone
        own = [
            r
            for r in records
            if r.name.rstrip(".") == domain and r.type in ("CNAME", "A", "AAAA")
        ]
        if not own:
            return DnsDiff(changes=[missing])

        for record in own:
            if any("cloudfront.net" in t for t in record.targets):
                return DnsDiff()

        record = own[0]
        return DnsDiff(
            changes=[
                DnsChange(
                    type=ChangeType.MODIFIED,
                    name=domain,
                    record_type=record.type,
                    old_value=record.targets[0] if record.targets else None,
                    new_value=CLOUDFRONT_PLACEHOLDER_TARGET,
                )
            ]
        )

    async def _find_zone_id(self, domain: str) -> str | None:
        configured = self.config.hosted_zone_for(domain)
        if configured:
            return configured.zone_id

        root = extract_root_domain(domain)
        for zone in await self.dns.list_hosted_zones():
            if zone.name.rstrip(".") == root:
                return zone.id
        return None

    def infrastructure_summary(self) -> InfrastructureSummary:
        return InfrastructureSummary(
            type=self.config.infrastructure,
            region=self.stage_config.aws_region,
            database=self.config.database,
            health_checks=len(self.config.health_checks),
            cache_invalidation=not self.stage_config.skip_cache_invalidation,
        )


def format_diff(diff: DeploymentDiff) -> str:
    """Render a deployment diff for terminal output."""
    lines = [f"Deployment diff for {diff.stage}", ""]

    cf = diff.cloudfront
    lines.append("CloudFront:")
    if not cf.available:
        lines.append(f"  unavailable ({cf.error})")
    elif not cf.exists:
        lines.append("  + new distribution will be created")
    elif cf.diff and cf.diff.identical:
        lines.append(f"  no changes ({cf.distribution_id})")
    elif cf.diff:
        for change in cf.diff.changes:
            lines.append(f"  {_symbol(change.type)} {change.path}: {_render(change)}")

    cert = diff.certificate
    lines.append("Certificate:")
    if not cert.available:
        lines.append(f"  unavailable ({cert.error})")
    else:
        lines.append(f"  status: {cert.status}")
        lines.extend(f"  + {d}" for d in cert.domains_added)
        lines.extend(f"  - {d}" for d in cert.domains_removed)

    lines.append("DNS:")
    if not diff.dns.available:
        lines.append(f"  unavailable ({diff.dns.error})")
    elif not diff.dns.changes:
        lines.append("  no changes")
    else:
        for change in diff.dns.changes:
            target = change.new_value or ""
            if change.old_value:
                target = f"{change.old_value} -> {target}"
            lines.append(f"  {_symbol(change.type)} {change.record_type} {change.name}: {target}")

    infra = diff.infrastructure
    lines.append("Infrastructure:")
    lines.append(f"  type: {infra.type}, region: {infra.region}")
    lines.append(f"  health checks: {infra.health_checks}")
    lines.append(f"  cache invalidation: {'yes' if infra.cache_invalidation else 'no'}")

    lines.append("")
    lines.append("Changes detected" if diff.has_changes else "No changes detected")
    return "\n".join(lines)


def _symbol(change_type: ChangeType) -> str:
    return {ChangeType.ADDED: "+", ChangeType.REMOVED: "-", ChangeType.MODIFIED: "~"}[change_type]


def _render(change: DiffChange) -> str:
    if change.type == ChangeType.ADDED:
        return repr(change.new_value)
    if change.type == ChangeType.REMOVED:
        return repr(change.old_value)
    return f"{change.old_value!r} -> {change.new_value!r}"
