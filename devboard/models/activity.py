"""Activity log entry model."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from devboard.models.device import utcnow


class ActivityType(str, Enum):
    DEVICE_CREATED = "device_created"
    STATUS_CHANGED = "status_changed"
    DEVICE_DELETED = "device_deleted"
    ACCESS_REQUEST_CREATED = "access_request_created"
    ACCESS_REQUEST_UPDATED = "access_request_updated"


class LogEntry(BaseModel):
    type: ActivityType
    message: str
    timestamp: datetime = Field(default_factory=utcnow)
