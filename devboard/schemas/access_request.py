"""Access request schemas."""

from typing import Optional

from pydantic import Field

from devboard.models.access_request import AccessRequestStatus
from devboard.schemas.device import CamelModel


class AccessRequestCreateRequest(CamelModel):
    device_id: str = Field(min_length=1)
    requester_name: str = Field(min_length=1)
    message: Optional[str] = None


class AccessRequestUpdateRequest(CamelModel):
    status: AccessRequestStatus
