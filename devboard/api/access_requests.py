"""Access request API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from devboard.api.deps import get_broadcaster, get_store, unwrap
from devboard.models.access_request import AccessRequest
from devboard.schemas.access_request import (
    AccessRequestCreateRequest,
    AccessRequestUpdateRequest,
)
from devboard.schemas.events import AccessRequestCreated, AccessRequestUpdated
from devboard.services.store import DeviceStore
from devboard.ws.broadcast import Broadcaster

router = APIRouter(tags=["access-requests"])


@router.get("/access-requests", response_model=list[AccessRequest])
async def list_access_requests(
    device_id: Optional[str] = Query(default=None, alias="deviceId"),
    store: DeviceStore = Depends(get_store),
):
    if device_id:
        return store.access_requests_for_device(device_id)
    return store.list_access_requests()


@router.post("/access-requests", response_model=AccessRequest)
async def create_access_request(
    request: AccessRequestCreateRequest,
    store: DeviceStore = Depends(get_store),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    access_request = unwrap(store.create_access_request(
        device_id=request.device_id,
        requester_name=request.requester_name,
        message=request.message,
    ))
    broadcaster.publish(AccessRequestCreated(data=access_request))
    return access_request


@router.put("/access-requests/{request_id}", response_model=AccessRequest)
async def update_access_request(
    request_id: str,
    request: AccessRequestUpdateRequest,
    store: DeviceStore = Depends(get_store),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Approve, deny or dismiss a pending request.

    Approval hands the device to the requester, or fails with 409 if someone
    else holds it.
    """
    access_request = unwrap(store.update_access_request_status(request_id, request.status))
    broadcaster.publish(AccessRequestUpdated(data=access_request))
    return access_request
