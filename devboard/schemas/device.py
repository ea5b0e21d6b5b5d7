"""Device request/response schemas."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from devboard.models.device import Criticality, DeviceStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DeviceCreateRequest(CamelModel):
    address: str = Field(min_length=1)
    added_by: str = Field(min_length=1)
    criticality: Optional[Criticality] = None
    note: Optional[str] = None
    usage_duration: Optional[str] = Field(default=None, pattern=r"^\d{1,3}:[0-5]\d$")


class DeviceStatusRequest(CamelModel):
    status: DeviceStatus
    current_user: Optional[str] = None


class DeviceDeleteRequest(CamelModel):
    deleted_by: Optional[str] = None


class MessageResponse(BaseModel):
    message: str
