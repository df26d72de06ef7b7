"""Adapters for the external systems deploykit drives: SST, AWS and HTTP."""

from deploykit.adapters.base import (
    CertificateClient,
    ConfirmCallback,
    DeployExecutor,
    DistributionClient,
    DnsClient,
    ExternalStateLock,
    HealthProber,
    MaintenanceToggler,
    PreflightChecker,
    deny_all,
)

__all__ = [
    "CertificateClient",
    "ConfirmCallback",
    "DeployExecutor",
    "DistributionClient",
    "DnsClient",
    "ExternalStateLock",
    "HealthProber",
    "MaintenanceToggler",
    "PreflightChecker",
    "deny_all",
]
