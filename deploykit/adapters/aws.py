"""boto3-backed AWS clients.

boto3 is synchronous; every call is pushed to a worker thread with
``asyncio.to_thread`` so the pipeline stays on one event loop.
"""

import asyncio
import time
from typing import Any
from uuid import uuid4

import boto3

from deploykit.adapters.base import CertificateClient, DistributionClient, DnsClient
from deploykit.models.infrastructure import (
    Certificate,
    CloudFrontDistribution,
    DNSRecord,
    HostedZone,
)
from deploykit.utils.logging import get_logger

# CloudFront, Route53 and CloudFront-attached ACM certificates live in us-east-1
GLOBAL_REGION = "us-east-1"


def make_session(profile: str | None = None) -> boto3.session.Session:
    return boto3.session.Session(profile_name=profile) if profile else boto3.session.Session()


def parse_distribution(item: dict[str, Any]) -> CloudFrontDistribution:
    """Map a ``DistributionSummary`` to the typed model."""
    origins = item.get("Origins", {}).get("Items", [])
    return CloudFrontDistribution(
        id=item["Id"],
        domain_name=item["DomainName"],
        aliases=item.get("Aliases", {}).get("Items", []),
        origin_domain=origins[0]["DomainName"] if origins else "",
        status=item.get("Status", "Deployed"),
        enabled=item.get("Enabled", True),
        # Summaries carry no creation time; last-modified understates age
        created_time=item.get("CreatedTime") or item.get("LastModifiedTime"),
        last_modified_time=item.get("LastModifiedTime"),
    )


def parse_record(item: dict[str, Any]) -> DNSRecord:
    """Map a Route53 ``ResourceRecordSet`` to the typed model."""
    alias = item.get("AliasTarget")
    return DNSRecord(
        name=item["Name"].rstrip("."),
        type=item["Type"],
        ttl=item.get("TTL"),
        alias_target=alias["DNSName"] if alias else None,
        values=[r["Value"] for r in item.get("ResourceRecords", [])],
    )


class AwsDistributionClient(DistributionClient):
    """CloudFront through boto3."""

    def __init__(self, session: boto3.session.Session | None = None):
        self.client = (session or make_session()).client("cloudfront", region_name=GLOBAL_REGION)
        self.logger = get_logger("aws.cloudfront")

    def _list(self) -> list[CloudFrontDistribution]:
        distributions = []
        for page in self.client.get_paginator("list_distributions").paginate():
            for item in page.get("DistributionList", {}).get("Items", []):
                distributions.append(parse_distribution(item))
        return distributions

    async def list_distributions(self) -> list[CloudFrontDistribution]:
        return await asyncio.to_thread(self._list)

    async def get_distribution_config(self, distribution_id: str) -> tuple[dict[str, Any], str]:
        response = await asyncio.to_thread(
            self.client.get_distribution_config, Id=distribution_id
        )
        return response["DistributionConfig"], response["ETag"]

    async def update_distribution(
        self, distribution_id: str, config: dict[str, Any], etag: str
    ) -> str:
        response = await asyncio.to_thread(
            self.client.update_distribution,
            Id=distribution_id,
            DistributionConfig=config,
            IfMatch=etag,
        )
        self.logger.info("cloudfront.updated", distribution_id=distribution_id)
        return response["ETag"]

    async def disable_distribution(self, distribution_id: str) -> None:
        config, etag = await self.get_distribution_config(distribution_id)
        if not config.get("Enabled", True):
            return
        config["Enabled"] = False
        await self.update_distribution(distribution_id, config, etag)
        self.logger.info("cloudfront.disabled", distribution_id=distribution_id)

    def _wait_deployed(self, distribution_id: str, timeout_seconds: int) -> None:
        delay = 30
        waiter = self.client.get_waiter("distribution_deployed")
        waiter.wait(
            Id=distribution_id,
            WaiterConfig={"Delay": delay, "MaxAttempts": max(1, timeout_seconds // delay)},
        )

    async def wait_until_deployed(self, distribution_id: str, timeout_seconds: int = 1200) -> None:
        await asyncio.to_thread(self._wait_deployed, distribution_id, timeout_seconds)

    async def delete_distribution(self, distribution_id: str) -> None:
        _, etag = await self.get_distribution_config(distribution_id)
        await asyncio.to_thread(self.client.delete_distribution, Id=distribution_id, IfMatch=etag)
        self.logger.info("cloudfront.deleted", distribution_id=distribution_id)

    async def create_invalidation(self, distribution_id: str, paths: list[str]) -> str:
        response = await asyncio.to_thread(
            self.client.create_invalidation,
            DistributionId=distribution_id,
            InvalidationBatch={
                "Paths": {"Quantity": len(paths), "Items": paths},
                "CallerReference": f"deploykit-{int(time.time())}-{uuid4().hex[:6]}",
            },
        )
        invalidation_id = response["Invalidation"]["Id"]
        self.logger.info(
            "cloudfront.invalidation_created",
            distribution_id=distribution_id,
            invalidation_id=invalidation_id,
        )
        return invalidation_id


class AwsDnsClient(DnsClient):
    """Route53 through boto3."""

    def __init__(self, session: boto3.session.Session | None = None):
        self.client = (session or make_session()).client("route53", region_name=GLOBAL_REGION)
        self.logger = get_logger("aws.route53")

    def _zones(self) -> list[HostedZone]:
        zones = []
        for page in self.client.get_paginator("list_hosted_zones").paginate():
            for zone in page.get("HostedZones", []):
                zones.append(
                    HostedZone(
                        id=zone["Id"].split("/")[-1],
                        name=zone["Name"].rstrip("."),
                        record_count=zone.get("ResourceRecordSetCount", 0),
                    )
                )
        return zones

    async def list_hosted_zones(self) -> list[HostedZone]:
        return await asyncio.to_thread(self._zones)

    def _records(self, zone_id: str) -> list[DNSRecord]:
        records = []
        paginator = self.client.get_paginator("list_resource_record_sets")
        for page in paginator.paginate(HostedZoneId=zone_id):
            records.extend(parse_record(r) for r in page.get("ResourceRecordSets", []))
        return records

    async def get_dns_records(self, zone_id: str) -> list[DNSRecord]:
        return await asyncio.to_thread(self._records, zone_id)

    async def create_hosted_zone(self, domain: str) -> HostedZone:
        response = await asyncio.to_thread(
            self.client.create_hosted_zone,
            Name=domain,
            CallerReference=f"deploykit-{domain}-{int(time.time())}",
        )
        zone = response["HostedZone"]
        self.logger.info("route53.zone_created", domain=domain, zone_id=zone["Id"])
        return HostedZone(
            id=zone["Id"].split("/")[-1],
            name=zone["Name"].rstrip("."),
            name_servers=response.get("DelegationSet", {}).get("NameServers", []),
        )


class AwsCertificateClient(CertificateClient):
    """ACM through boto3, limited to issued and pending certificates."""

    def __init__(self, session: boto3.session.Session | None = None):
        self.client = (session or make_session()).client("acm", region_name=GLOBAL_REGION)

    def _certificates(self) -> list[Certificate]:
        certificates = []
        paginator = self.client.get_paginator("list_certificates")
        for page in paginator.paginate(CertificateStatuses=["ISSUED", "PENDING_VALIDATION"]):
            for summary in page.get("CertificateSummaryList", []):
                detail = self.client.describe_certificate(
                    CertificateArn=summary["CertificateArn"]
                )["Certificate"]
                certificates.append(
                    Certificate(
                        arn=detail["CertificateArn"],
                        domain_name=detail["DomainName"],
                        subject_alternative_names=detail.get("SubjectAlternativeNames", []),
                        status=detail.get("Status", "ISSUED"),
                        in_use=bool(detail.get("InUseBy")),
                    )
                )
        return certificates

    async def list_certificates(self) -> list[Certificate]:
        return await asyncio.to_thread(self._certificates)


async def get_caller_identity(session: boto3.session.Session | None = None) -> dict[str, str]:
    """Verify credentials with STS; raises ``ClientError`` when they are unusable."""
    client = (session or make_session()).client("sts")
    response = await asyncio.to_thread(client.get_caller_identity)
    return {"account": response["Account"], "arn": response["Arn"]}
