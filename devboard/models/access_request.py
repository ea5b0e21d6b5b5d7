"""Access request model."""

import secrets
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from devboard.models.device import utcnow


class AccessRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    DISMISSED = "dismissed"

    @property
    def is_terminal(self) -> bool:
        return self is not AccessRequestStatus.PENDING


class AccessRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(default_factory=lambda: f"req_{secrets.token_hex(6)}")
    device_id: str
    requester_name: str
    message: Optional[str] = None
    status: AccessRequestStatus = AccessRequestStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
