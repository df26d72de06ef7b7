"""Distribution analysis and audit report models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class DistributionStatus(str, Enum):
    """Classification of a live distribution."""

    CONFIGURED = "configured"
    ORPHANED = "orphaned"
    MISCONFIGURED = "misconfigured"


class Severity(str, Enum):
    """How urgently a finding needs attention."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class DistributionAnalysis(BaseModel):
    """Derived classification of one distribution."""

    id: str
    domain: str
    origin_domain: str
    status: DistributionStatus
    severity: Severity
    reasons: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    dns_aliases: list[str] = Field(default_factory=list)
    created_time: datetime | None = None
    last_modified_time: datetime | None = None


class AuditReport(BaseModel):
    """Result of auditing every distribution in the account."""

    timestamp: datetime
    total_distributions: int
    configured_distributions: list[DistributionAnalysis] = Field(default_factory=list)
    orphaned_distributions: list[DistributionAnalysis] = Field(default_factory=list)
    misconfigured_distributions: list[DistributionAnalysis] = Field(default_factory=list)
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    dns_complete: bool = True

    @property
    def has_findings(self) -> bool:
        return bool(self.orphaned_distributions or self.misconfigured_distributions)


class CleanupResult(BaseModel):
    """Outcome of an orphan cleanup run."""

    confirmed: bool = False
    candidates: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)
    estimated_monthly_savings: float = 0.0
    skipped_reason: str | None = None
