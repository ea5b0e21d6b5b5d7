"""Device model."""

import secrets
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeviceStatus(str, Enum):
    IDLE = "idle"
    USING = "using"
    DND = "dnd"


class Criticality(str, Enum):
    TESTING = "testing"
    LONG_RUN = "long-run"
    DND = "dnd"


# Metadata written by the probe; everything else is owned by the state machine.
PROBE_FIELDS = (
    "version",
    "kernel",
    "build",
    "commit",
    "description",
    "timestamp",
    "uptime",
    "is_online",
)


class Device(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=lambda: f"dev_{secrets.token_hex(6)}")
    address: str
    status: DeviceStatus = DeviceStatus.IDLE
    current_user: Optional[str] = None  # set iff status is using/dnd

    # Probe metadata
    version: Optional[str] = None
    kernel: Optional[str] = None
    build: Optional[str] = None
    commit: Optional[str] = None
    description: Optional[str] = None
    timestamp: Optional[str] = None
    uptime: Optional[str] = None
    is_online: bool = False

    added_by: str
    criticality: Criticality = Criticality.TESTING
    note: Optional[str] = None
    usage_start_time: Optional[datetime] = None
    usage_duration: Optional[str] = None  # 'HH:MM'

    last_updated: datetime = Field(default_factory=utcnow)
