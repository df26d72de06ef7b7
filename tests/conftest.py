"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from deploykit.api.deps import get_services
from deploykit.core.events import EventBus
from deploykit.core.runs import get_run_store
from deploykit.main import app
from deploykit.models.config import (
    DeploymentStage,
    HealthCheck,
    HostedZoneConfig,
    ProjectConfig,
    StageConfig,
)
from deploykit.models.infrastructure import CloudFrontDistribution, DNSRecord, HostedZone
from deploykit.services import Services
from tests.fakes import (
    ORPHAN_DIST_DOMAIN,
    STAGING_DIST_DOMAIN,
    FakeCertificateClient,
    FakeDistributionClient,
    FakeDnsClient,
    FakeExecutor,
    FakeExternalLock,
    FakeHealthProber,
    FakeMaintenance,
    FakePreflight,
)


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def project_config() -> ProjectConfig:
    """A two-stage project on example.com."""
    return ProjectConfig(
        project_name="shop",
        main_domain="example.com",
        require_clean_git=False,
        run_tests_before_deploy=False,
        stages=[DeploymentStage.STAGING, DeploymentStage.PRODUCTION],
        stage_config={
            DeploymentStage.STAGING: StageConfig(domain="staging.example.com"),
            DeploymentStage.PRODUCTION: StageConfig(domain="example.com"),
        },
        health_checks=[HealthCheck(url="/", name="home")],
        hosted_zones=[HostedZoneConfig(domain="example.com", zone_id="Z123")],
    )


@pytest.fixture
def staging_distribution(now: datetime) -> CloudFrontDistribution:
    return CloudFrontDistribution(
        id="ESTAGING",
        domain_name=STAGING_DIST_DOMAIN,
        aliases=["staging.example.com"],
        origin_domain="shop-staging.execute-api.us-east-1.amazonaws.com",
        created_time=now - timedelta(days=30),
        last_modified_time=now - timedelta(days=1),
    )


@pytest.fixture
def orphan_distribution(now: datetime) -> CloudFrontDistribution:
    return CloudFrontDistribution(
        id="EORPHAN",
        domain_name=ORPHAN_DIST_DOMAIN,
        origin_domain="placeholder.sst.dev",
        created_time=now - timedelta(hours=2),
        last_modified_time=now - timedelta(hours=2),
    )


@pytest.fixture
def dns_records() -> list[DNSRecord]:
    return [
        DNSRecord(
            name="staging.example.com",
            type="CNAME",
            ttl=300,
            values=[f"{STAGING_DIST_DOMAIN}."],
        ),
        DNSRecord(name="example.com", type="MX", ttl=300, values=["10 mail.example.com."]),
    ]


@pytest.fixture
def distributions(staging_distribution: CloudFrontDistribution) -> FakeDistributionClient:
    return FakeDistributionClient([staging_distribution])


@pytest.fixture
def dns(dns_records: list[DNSRecord]) -> FakeDnsClient:
    return FakeDnsClient(
        zones=[HostedZone(id="Z123", name="example.com")],
        records={"Z123": dns_records},
    )


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def services(
    tmp_path: Path,
    project_config: ProjectConfig,
    distributions: FakeDistributionClient,
    dns: FakeDnsClient,
    event_bus: EventBus,
) -> Services:
    """Services wired entirely to fakes, rooted in a temporary project."""
    return Services(
        config=project_config,
        project_root=tmp_path,
        distributions=distributions,
        dns=dns,
        certificates=FakeCertificateClient(),
        executor=FakeExecutor(),
        health=FakeHealthProber(),
        preflight=FakePreflight(),
        external_lock=FakeExternalLock(),
        maintenance=FakeMaintenance(),
        events=event_bus,
    )


@pytest.fixture
async def client(services: Services) -> AsyncClient:
    """Async API client backed by fake services and an empty run store."""
    app.dependency_overrides[get_services] = lambda: services
    store = get_run_store()
    store._runs.clear()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    store._runs.clear()
