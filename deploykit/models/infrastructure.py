"""Typed snapshots of live AWS infrastructure."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class CloudFrontDistribution(BaseModel):
    """A CloudFront distribution as listed by the API."""

    id: str
    domain_name: str
    aliases: list[str] = Field(default_factory=list)
    origin_domain: str = ""
    status: str = "Deployed"
    enabled: bool = True
    created_time: datetime | None = None
    last_modified_time: datetime | None = None


class DNSRecord(BaseModel):
    """A Route53 resource record set."""

    name: str
    type: str
    ttl: int | None = None
    alias_target: str | None = None
    values: list[str] = Field(default_factory=list)

    @property
    def targets(self) -> list[str]:
        """Everything this record resolves to, without trailing dots."""
        targets = [v.rstrip(".") for v in self.values]
        if self.alias_target:
            targets.append(self.alias_target.rstrip("."))
        return targets


class HostedZone(BaseModel):
    """A Route53 hosted zone."""

    id: str
    name: str
    record_count: int = 0
    name_servers: list[str] = Field(default_factory=list)


class Certificate(BaseModel):
    """An ACM certificate summary."""

    arn: str
    domain_name: str
    subject_alternative_names: list[str] = Field(default_factory=list)
    status: str = "ISSUED"
    in_use: bool = False

    @property
    def domains(self) -> set[str]:
        """Every domain the certificate covers."""
        return {self.domain_name, *self.subject_alternative_names}


class ZoneTrackingRecord(BaseModel):
    """When this tool created a hosted zone, since Route53 does not say."""

    domain: str
    zone_id: str
    created_at: datetime
    project_name: str


class MaintenanceSnapshot(BaseModel):
    """Distribution config saved before entering maintenance mode."""

    distribution_id: str
    etag: str
    config: dict[str, Any]
