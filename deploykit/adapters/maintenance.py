"""Maintenance window for CloudFront distributions.

Enabling swaps the distribution's first origin for an S3 bucket hosting a
placeholder page; disabling puts the saved configuration back.
"""

import copy
import re

from deploykit.adapters.base import DistributionClient, MaintenanceToggler
from deploykit.models.infrastructure import MaintenanceSnapshot
from deploykit.utils.logging import get_logger

S3_URL_RE = re.compile(r"https://([^.]+)\.s3\.([^.]+)\.amazonaws\.com/(.+)")


def placeholder_url(bucket: str, region: str, page_path: str) -> str:
    return f"https://{bucket}.s3.{region}.amazonaws.com/{page_path.lstrip('/')}"


class CloudFrontMaintenanceToggler(MaintenanceToggler):
    """Points a distribution at an S3 placeholder and restores it."""

    def __init__(self, distributions: DistributionClient):
        self.distributions = distributions
        self.logger = get_logger("maintenance")

    async def enable(self, distribution_id: str, placeholder_url: str) -> MaintenanceSnapshot:
        match = S3_URL_RE.match(placeholder_url)
        if not match:
            raise ValueError(f"Invalid S3 URL format: {placeholder_url}")
        bucket, region, _ = match.groups()

        config, etag = await self.distributions.get_distribution_config(distribution_id)
        snapshot = MaintenanceSnapshot(
            distribution_id=distribution_id,
            etag=etag,
            config=copy.deepcopy(config),
        )

        origins = config.get("Origins", {}).get("Items", [])
        if not origins:
            raise ValueError("Distribution has no origins configured")

        maintenance_origin = dict(origins[0])
        maintenance_origin["DomainName"] = f"{bucket}.s3.{region}.amazonaws.com"
        maintenance_origin["OriginPath"] = ""
        maintenance_origin["S3OriginConfig"] = {"OriginAccessIdentity": ""}
        maintenance_origin.pop("CustomOriginConfig", None)
        origins[0] = maintenance_origin
        if "DefaultCacheBehavior" in config:
            config["DefaultCacheBehavior"]["TargetOriginId"] = maintenance_origin["Id"]

        await self.distributions.update_distribution(distribution_id, config, etag)
        await self._invalidate(distribution_id)
        self.logger.info("maintenance.enabled", distribution_id=distribution_id)
        return snapshot

    async def disable(self, snapshot: MaintenanceSnapshot) -> None:
        # The ETag changed when maintenance was enabled
        _, etag = await self.distributions.get_distribution_config(snapshot.distribution_id)
        await self.distributions.update_distribution(
            snapshot.distribution_id, snapshot.config, etag
        )
        await self._invalidate(snapshot.distribution_id)
        self.logger.info("maintenance.disabled", distribution_id=snapshot.distribution_id)

    async def _invalidate(self, distribution_id: str) -> None:
        """Flush edge caches after an origin swap.

        The origin change is already live, so a failed invalidation only
        delays it; the snapshot must still reach the caller.
        """
        try:
            await self.distributions.create_invalidation(distribution_id, ["/*"])
        except Exception as e:
            self.logger.warning(
                "maintenance.invalidation_failed", distribution_id=distribution_id, error=str(e)
            )
