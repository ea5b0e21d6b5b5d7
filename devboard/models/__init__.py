"""DevBoard domain models."""

from devboard.models.device import Criticality, Device, DeviceStatus
from devboard.models.access_request import AccessRequest, AccessRequestStatus
from devboard.models.activity import ActivityType, LogEntry

__all__ = [
    "Criticality",
    "Device",
    "DeviceStatus",
    "AccessRequest",
    "AccessRequestStatus",
    "ActivityType",
    "LogEntry",
]
