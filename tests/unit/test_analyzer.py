"""Unit tests for distribution analysis."""

from datetime import datetime, timedelta

import pytest

from deploykit.core.analyzer import (
    analyze,
    can_delete,
    generate_audit_report,
    get_status_description,
    is_in_config,
    is_in_dns,
)
from deploykit.models.analysis import DistributionAnalysis, DistributionStatus, Severity
from deploykit.models.config import ProjectConfig
from deploykit.models.infrastructure import CloudFrontDistribution, DNSRecord


def make_distribution(now: datetime, **overrides) -> CloudFrontDistribution:
    fields = {
        "id": "EDIST",
        "domain_name": "d333333abcdef8.cloudfront.net",
        "origin_domain": "shop.execute-api.us-east-1.amazonaws.com",
        "created_time": now - timedelta(days=3),
    }
    fields.update(overrides)
    return CloudFrontDistribution(**fields)


class TestMembership:
    """Tests for config and DNS membership checks."""

    def test_alias_matches_stage_domain(self, project_config: ProjectConfig, now: datetime):
        dist = make_distribution(now, aliases=["Staging.Example.com"])
        assert is_in_config(dist, project_config) is True

    def test_subdomain_of_main_domain(self, project_config: ProjectConfig, now: datetime):
        """Test any alias under the main domain counts as configured."""
        dist = make_distribution(now, aliases=["preview.example.com"])
        assert is_in_config(dist, project_config) is True

    def test_unrelated_alias(self, project_config: ProjectConfig, now: datetime):
        dist = make_distribution(now, aliases=["example.org"])
        assert is_in_config(dist, project_config) is False

    def test_dns_match_ignores_trailing_dot(self, now: datetime):
        dist = make_distribution(now)
        records = [
            DNSRecord(name="x.example.com", type="A", alias_target="D333333ABCDEF8.cloudfront.net.")
        ]
        assert is_in_dns(dist, records) is True
        assert is_in_dns(dist, []) is False


class TestAnalyze:
    """Tests for classifying a single distribution."""

    def test_configured_distribution(
        self,
        project_config: ProjectConfig,
        staging_distribution: CloudFrontDistribution,
        dns_records: list[DNSRecord],
        now: datetime,
    ):
        """Test a configured distribution with a real origin is healthy."""
        analysis = analyze(staging_distribution, project_config, dns_records, now=now)

        assert analysis.status == DistributionStatus.CONFIGURED
        assert analysis.severity == Severity.INFO
        assert analysis.reasons == []
        assert can_delete(analysis) is False

    def test_stale_placeholder_orphan(
        self,
        project_config: ProjectConfig,
        orphan_distribution: CloudFrontDistribution,
        now: datetime,
    ):
        """Test an old placeholder distribution nobody references is a deletable orphan."""
        analysis = analyze(orphan_distribution, project_config, [], now=now)

        assert analysis.status == DistributionStatus.ORPHANED
        assert analysis.severity == Severity.WARNING
        assert "Not referenced in deployment config" in analysis.reasons
        assert "Not referenced in DNS records" in analysis.reasons
        assert "Uses placeholder.sst.dev origin" in analysis.reasons
        assert "Run: deploykit cleanup" in analysis.recommendations
        assert can_delete(analysis) is True

    def test_fresh_placeholder_is_plain_orphan(
        self, project_config: ProjectConfig, now: datetime
    ):
        """Test a placeholder distribution younger than an hour is not flagged as stale."""
        dist = make_distribution(
            now,
            origin_domain="placeholder.sst.dev",
            created_time=now - timedelta(minutes=10),
        )
        analysis = analyze(dist, project_config, [], now=now)

        assert analysis.status == DistributionStatus.ORPHANED
        assert analysis.severity == Severity.INFO
        assert analysis.reasons == ["Not referenced in deployment config or DNS"]
        assert can_delete(analysis) is True

    def test_configured_with_placeholder_origin(
        self, project_config: ProjectConfig, now: datetime
    ):
        """Test a configured domain still pointing at the placeholder is misconfigured."""
        dist = make_distribution(
            now, domain_name="staging.example.com", origin_domain="placeholder.sst.dev"
        )
        analysis = analyze(dist, project_config, [], now=now)

        assert analysis.status == DistributionStatus.MISCONFIGURED
        assert analysis.severity == Severity.WARNING
        assert "Uses placeholder.sst.dev origin (incomplete configuration)" in analysis.reasons
        assert can_delete(analysis) is True

    def test_in_dns_but_not_config(self, project_config: ProjectConfig, now: datetime):
        """Test a distribution only DNS knows about is an error and never deletable."""
        dist = make_distribution(now)
        records = [
            DNSRecord(name="legacy.example.org", type="CNAME", values=[dist.domain_name])
        ]
        analysis = analyze(dist, project_config, records, now=now)

        assert analysis.status == DistributionStatus.MISCONFIGURED
        assert analysis.severity == Severity.ERROR
        assert analysis.reasons == ["In DNS but not in deployment config"]
        assert can_delete(analysis) is False

    def test_missing_created_time_is_not_stale(
        self, project_config: ProjectConfig, now: datetime
    ):
        dist = make_distribution(now, origin_domain="placeholder.sst.dev", created_time=None)
        analysis = analyze(dist, project_config, [], now=now)

        assert analysis.severity == Severity.INFO

    def test_analysis_is_pure(
        self,
        project_config: ProjectConfig,
        orphan_distribution: CloudFrontDistribution,
        dns_records: list[DNSRecord],
        now: datetime,
    ):
        """Test identical inputs give identical results and inputs are untouched."""
        before = orphan_distribution.model_copy(deep=True)

        first = analyze(orphan_distribution, project_config, dns_records, now=now)
        second = analyze(orphan_distribution, project_config, dns_records, now=now)

        assert first == second
        assert orphan_distribution == before


class TestCanDelete:
    """Tests for the deletion safety rule."""

    @pytest.mark.parametrize("status", list(DistributionStatus))
    @pytest.mark.parametrize("severity", list(Severity))
    @pytest.mark.parametrize(
        "reasons",
        [
            [],
            ["Uses placeholder.sst.dev origin"],
            ["Not referenced in deployment config or DNS"],
            ["In DNS but not in deployment config"],
        ],
    )
    def test_aliases_always_block_deletion(self, status, severity, reasons):
        """Test nothing with a DNS alias is ever deletable."""
        analysis = DistributionAnalysis(
            id="E1",
            domain="d.cloudfront.net",
            origin_domain="placeholder.sst.dev",
            status=status,
            severity=severity,
            reasons=reasons,
            dns_aliases=["www.example.com"],
        )
        assert can_delete(analysis) is False

    def test_configured_never_deletable(self):
        analysis = DistributionAnalysis(
            id="E1",
            domain="d.cloudfront.net",
            origin_domain="placeholder.sst.dev",
            status=DistributionStatus.CONFIGURED,
            severity=Severity.INFO,
            reasons=["Uses placeholder.sst.dev origin"],
        )
        assert can_delete(analysis) is False

    def test_status_descriptions(self):
        base = {"id": "E1", "domain": "d", "origin_domain": "o"}
        safe = DistributionAnalysis(
            **base,
            status=DistributionStatus.ORPHANED,
            severity=Severity.INFO,
            reasons=["Not referenced in deployment config or DNS"],
        )
        review = DistributionAnalysis(
            **base, status=DistributionStatus.ORPHANED, severity=Severity.INFO
        )

        assert get_status_description(safe) == "Orphaned (safe to delete)"
        assert get_status_description(review) == "Orphaned (review before deleting)"


class TestAuditReport:
    """Tests for the account-wide audit report."""

    def test_report_groups_and_issues(
        self,
        project_config: ProjectConfig,
        staging_distribution: CloudFrontDistribution,
        orphan_distribution: CloudFrontDistribution,
        dns_records: list[DNSRecord],
        now: datetime,
    ):
        report = generate_audit_report(
            [staging_distribution, orphan_distribution], project_config, dns_records, now=now
        )

        assert report.total_distributions == 2
        assert [a.id for a in report.configured_distributions] == ["ESTAGING"]
        assert [a.id for a in report.orphaned_distributions] == ["EORPHAN"]
        assert report.misconfigured_distributions == []
        assert "1 orphaned distribution(s) detected" in report.issues
        assert "Run: deploykit cleanup --dry-run" in report.recommendations
        assert report.has_findings is True

    def test_clean_account(
        self,
        project_config: ProjectConfig,
        staging_distribution: CloudFrontDistribution,
        dns_records: list[DNSRecord],
        now: datetime,
    ):
        report = generate_audit_report([staging_distribution], project_config, dns_records, now=now)

        assert report.issues == ["All distributions properly configured"]
        assert report.has_findings is False

    def test_extra_distributions_beyond_stages(
        self, project_config: ProjectConfig, now: datetime
    ):
        """Test more distributions than stages is reported."""
        dists = [
            make_distribution(now, id=f"E{i}", aliases=[f"s{i}.example.com"]) for i in range(3)
        ]
        report = generate_audit_report(dists, project_config, [], now=now)

        assert "1 extra distribution(s) beyond configured stages" in report.issues
