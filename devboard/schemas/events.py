"""Realtime events pushed over the /ws channel.

Every message has the shape {"type": ..., "data": ...}; the handshake is the
only exception and carries a plain message.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from devboard.models.access_request import AccessRequest
from devboard.models.device import Device


class DeletedRef(BaseModel):
    id: str


class ConnectedEvent(BaseModel):
    type: Literal["connected"] = "connected"
    message: str = "WebSocket connected"


class DeviceAdded(BaseModel):
    type: Literal["device_added"] = "device_added"
    data: Device


class DeviceUpdated(BaseModel):
    type: Literal["device_updated"] = "device_updated"
    data: Device


class DeviceDeleted(BaseModel):
    type: Literal["device_deleted"] = "device_deleted"
    data: DeletedRef


class DevicesUpdated(BaseModel):
    type: Literal["devices_updated"] = "devices_updated"
    data: list[Device]


class AccessRequestCreated(BaseModel):
    type: Literal["access_request_created"] = "access_request_created"
    data: AccessRequest


class AccessRequestUpdated(BaseModel):
    type: Literal["access_request_updated"] = "access_request_updated"
    data: AccessRequest


BroadcastEvent = Annotated[
    Union[
        DeviceAdded,
        DeviceUpdated,
        DeviceDeleted,
        DevicesUpdated,
        AccessRequestCreated,
        AccessRequestUpdated,
    ],
    Field(discriminator="type"),
]

event_adapter: TypeAdapter[BroadcastEvent] = TypeAdapter(BroadcastEvent)


def encode_event(event: BaseModel) -> str:
    return event.model_dump_json(by_alias=True)
