"""Structured desired-vs-current difference models."""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class ChangeType(str, Enum):
    """Kind of field-level change."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


class DiffChange(BaseModel):
    """One field-level change at ``path``."""

    type: ChangeType
    path: str
    old_value: Any = None
    new_value: Any = None


class DiffResult(BaseModel):
    """Result of comparing two structures."""

    identical: bool
    changes: list[DiffChange] = Field(default_factory=list)
    added: int = 0
    removed: int = 0
    modified: int = 0


class CloudFrontDiff(BaseModel):
    """CloudFront distribution comparison for a stage."""

    available: bool = True
    error: str | None = None
    exists: bool = False
    distribution_id: str | None = None
    current: dict[str, Any] = Field(default_factory=dict)
    desired: dict[str, Any] = Field(default_factory=dict)
    diff: DiffResult | None = None

    @property
    def has_changes(self) -> bool:
        return self.available and self.diff is not None and not self.diff.identical


CertificateStatus = Literal["new_cert", "domain_changed", "no_change", "not_found"]


class CertificateDiff(BaseModel):
    """Certificate coverage comparison, keyed by domain set."""

    available: bool = True
    error: str | None = None
    status: CertificateStatus = "not_found"
    certificate_arn: str | None = None
    current_domains: list[str] = Field(default_factory=list)
    desired_domains: list[str] = Field(default_factory=list)
    domains_added: list[str] = Field(default_factory=list)
    domains_removed: list[str] = Field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return self.available and self.status != "no_change"


class DnsChange(BaseModel):
    """Change to the stage's own DNS record."""

    type: ChangeType
    name: str
    record_type: str = "CNAME"
    old_value: str | None = None
    new_value: str | None = None


class DnsDiff(BaseModel):
    """DNS comparison limited to the stage's own record."""

    available: bool = True
    error: str | None = None
    changes: list[DnsChange] = Field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return self.available and bool(self.changes)

    def summary(self) -> dict[str, int]:
        counts = {t.value: 0 for t in ChangeType}
        for change in self.changes:
            counts[change.type.value] += 1
        return counts


class InfrastructureSummary(BaseModel):
    """Informational description of the target infrastructure."""

    type: str
    region: str
    database: str | None = None
    health_checks: int = 0
    cache_invalidation: bool = True


class DeploymentDiff(BaseModel):
    """Aggregate preview of what a deployment would change."""

    stage: str
    cloudfront: CloudFrontDiff
    certificate: CertificateDiff
    dns: DnsDiff
    infrastructure: InfrastructureSummary

    @property
    def has_changes(self) -> bool:
        return (
            self.cloudfront.has_changes
            or self.certificate.has_changes
            or self.dns.has_changes
        )
