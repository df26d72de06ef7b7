"""Deployment lock models."""

import math
import os
import socket
from datetime import datetime, timedelta, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field

from deploykit.models.config import DeploymentStage


def default_holder_id() -> str:
    """Identify this process for lock ownership."""
    return f"{socket.gethostname()}:{os.getpid()}:{uuid4().hex[:8]}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeploymentLock(BaseModel):
    """An exclusive claim on a stage."""

    stage: DeploymentStage
    acquired_at: datetime
    expires_at: datetime
    holder_id: str = Field(default_factory=default_holder_id)
    reason: str = "deployment"

    @classmethod
    def new(
        cls,
        stage: DeploymentStage,
        ttl_minutes: int,
        holder_id: str | None = None,
        reason: str = "deployment",
    ) -> "DeploymentLock":
        """Create a lock starting now."""
        now = utcnow()
        return cls(
            stage=stage,
            acquired_at=now,
            expires_at=now + timedelta(minutes=ttl_minutes),
            holder_id=holder_id or default_holder_id(),
            reason=reason,
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        """A lock is stale once its expiry has passed."""
        return (now or utcnow()) > self.expires_at

    def minutes_remaining(self, now: datetime | None = None) -> int:
        """Whole minutes until expiry, never negative."""
        seconds = (self.expires_at - (now or utcnow())).total_seconds()
        return max(0, math.ceil(seconds / 60))


class LockState(str, Enum):
    """Presentation state of a stage's lock."""

    READY = "ready"
    ACTIVE = "active"
    STALE = "stale"


class StageStatus(BaseModel):
    """What ``status`` reports for a stage."""

    stage: DeploymentStage
    state: LockState
    lock: DeploymentLock | None = None
    minutes_remaining: int | None = None
    external_lock: bool | None = None
    message: str
