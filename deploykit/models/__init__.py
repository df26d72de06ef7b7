"""Data models."""

from deploykit.models.analysis import (
    AuditReport,
    CleanupResult,
    DistributionAnalysis,
    DistributionStatus,
    Severity,
)
from deploykit.models.config import (
    DeploymentStage,
    HealthCheck,
    HookConfig,
    HostedZoneConfig,
    ProjectConfig,
    StageConfig,
    load_project_config,
)
from deploykit.models.diff import (
    CertificateDiff,
    ChangeType,
    CloudFrontDiff,
    DeploymentDiff,
    DiffChange,
    DiffResult,
    DnsChange,
    DnsDiff,
)
from deploykit.models.infrastructure import (
    Certificate,
    CloudFrontDistribution,
    DNSRecord,
    HostedZone,
    MaintenanceSnapshot,
    ZoneTrackingRecord,
)
from deploykit.models.lock import DeploymentLock, LockState, StageStatus
from deploykit.models.pipeline import (
    DeployOptions,
    DeployOutput,
    HealthReport,
    PipelineResult,
    PipelineState,
    StepOutcome,
)

__all__ = [
    "AuditReport",
    "Certificate",
    "CertificateDiff",
    "ChangeType",
    "CleanupResult",
    "CloudFrontDiff",
    "CloudFrontDistribution",
    "DNSRecord",
    "DeployOptions",
    "DeployOutput",
    "DeploymentDiff",
    "DeploymentLock",
    "DeploymentStage",
    "DiffChange",
    "DiffResult",
    "DistributionAnalysis",
    "DistributionStatus",
    "DnsChange",
    "DnsDiff",
    "HealthCheck",
    "HealthReport",
    "HookConfig",
    "HostedZone",
    "HostedZoneConfig",
    "LockState",
    "MaintenanceSnapshot",
    "PipelineResult",
    "PipelineState",
    "ProjectConfig",
    "Severity",
    "StageConfig",
    "StageStatus",
    "StepOutcome",
    "ZoneTrackingRecord",
    "load_project_config",
]
