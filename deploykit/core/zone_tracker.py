"""Local record of hosted zones created by this tool.

Route53 does not expose a zone's creation time, so zones created here are
tracked in ``.deploy-kit/zone-tracker.json`` to support the "too young to
trust" DNS check. A zone that is not tracked is treated as old.
"""

import json
import os
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from deploykit.config import settings
from deploykit.models.infrastructure import ZoneTrackingRecord
from deploykit.utils.logging import get_logger

TRACKER_DIR = ".deploy-kit"
TRACKER_FILE = "zone-tracker.json"


class ZoneTracker:
    """Reads and writes zone creation records for one project root."""

    def __init__(self, root: Path | None = None):
        self.root = Path(root) if root else settings.project_path
        self.logger = get_logger("zone_tracker")

    @property
    def path(self) -> Path:
        return self.root / TRACKER_DIR / TRACKER_FILE

    def _load(self) -> dict[str, ZoneTrackingRecord]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            return {
                domain: ZoneTrackingRecord.model_validate(record)
                for domain, record in raw.get("zones", {}).items()
            }
        except (json.JSONDecodeError, ValidationError, AttributeError):
            # Corrupt tracker: start over rather than block deployments
            self.logger.warning("zone_tracker.corrupt", path=str(self.path))
            return {}

    def _save(self, zones: dict[str, ZoneTrackingRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"zones": {d: r.model_dump(mode="json") for d, r in zones.items()}}
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)

    def track_zone_creation(
        self, domain: str, zone_id: str, project_name: str
    ) -> ZoneTrackingRecord:
        """Record that ``domain``'s zone was just created."""
        zones = self._load()
        record = ZoneTrackingRecord(
            domain=domain,
            zone_id=zone_id,
            created_at=datetime.now(timezone.utc),
            project_name=project_name,
        )
        zones[domain] = record
        self._save(zones)
        self.logger.info("zone_tracker.tracked", domain=domain, zone_id=zone_id)
        return record

    def get_zone_creation_time(self, domain: str) -> datetime | None:
        record = self._load().get(domain)
        return record.created_at if record else None

    def get_zone_age_minutes(self, domain: str, now: datetime | None = None) -> int | None:
        """Whole minutes since the zone was created, or None if untracked."""
        created = self.get_zone_creation_time(domain)
        if created is None:
            return None
        elapsed = (now or datetime.now(timezone.utc)) - created
        return int(elapsed.total_seconds() // 60)

    def is_zone_recent(
        self,
        domain: str,
        threshold_minutes: int | None = None,
        now: datetime | None = None,
    ) -> bool:
        """True if the zone was created less than ``threshold_minutes`` ago."""
        threshold = threshold_minutes
        if threshold is None:
            threshold = settings.zone_recent_minutes
        age = self.get_zone_age_minutes(domain, now=now)
        if age is None:
            return False
        return age < threshold

    def clear_zone_tracking(self, domain: str) -> bool:
        """Forget ``domain``. Returns whether a record existed."""
        zones = self._load()
        if domain not in zones:
            return False
        del zones[domain]
        self._save(zones)
        self.logger.info("zone_tracker.cleared", domain=domain)
        return True
