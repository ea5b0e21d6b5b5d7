"""Device management API endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from devboard.api.deps import (
    Caller,
    get_broadcaster,
    get_probe,
    get_store,
    require_bearer,
    unwrap,
)
from devboard.models.device import Device
from devboard.schemas.device import (
    DeviceCreateRequest,
    DeviceDeleteRequest,
    DeviceStatusRequest,
    MessageResponse,
)
from devboard.schemas.events import DeletedRef, DeviceAdded, DeviceDeleted, DeviceUpdated
from devboard.services.probe import DeviceProbe, probe_device
from devboard.services.refresher import probe_fields
from devboard.services.store import DeviceStore
from devboard.ws.broadcast import Broadcaster

logger = logging.getLogger(__name__)

router = APIRouter(tags=["devices"])


@router.get("/devices", response_model=list[Device])
async def list_devices(store: DeviceStore = Depends(get_store)):
    return store.list_devices()


@router.post("/devices", response_model=Device)
async def create_device(
    request: DeviceCreateRequest,
    store: DeviceStore = Depends(get_store),
    probe: DeviceProbe = Depends(get_probe),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Register a device, probe it once, and return the probed device.

    A failed probe does not fail creation; the device just stays offline.
    If the device is deleted while the probe runs, the answer is 404 and
    nothing is broadcast.
    """
    device = unwrap(store.create_device(
        address=request.address,
        added_by=request.added_by,
        criticality=request.criticality,
        note=request.note,
        usage_duration=request.usage_duration,
    ))

    result = await probe_device(probe, device.address)
    if not result.success:
        logger.warning("Initial probe of %s failed: %s", device.address, result.error)
    device = unwrap(store.update_device_fields(device.id, probe_fields(result)))

    broadcaster.publish(DeviceAdded(data=device))
    return device


@router.put("/devices/{device_id}/status", response_model=Device)
async def update_device_status(
    device_id: str,
    request: DeviceStatusRequest,
    store: DeviceStore = Depends(get_store),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Claim, escalate or release a device."""
    device = unwrap(store.transition_device_status(device_id, request.status, request.current_user))
    broadcaster.publish(DeviceUpdated(data=device))
    return device


@router.delete("/devices/{device_id}", response_model=MessageResponse)
async def delete_device(
    device_id: str,
    request: Optional[DeviceDeleteRequest] = None,
    caller: Caller = Depends(require_bearer),
    store: DeviceStore = Depends(get_store),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    deleted_by = (request.deleted_by if request else None) or caller.username
    device = unwrap(store.delete_device(device_id, deleted_by))
    broadcaster.publish(DeviceDeleted(data=DeletedRef(id=device.id)))
    return MessageResponse(message="Device deleted successfully")


@router.post("/devices/{device_id}/refresh", response_model=Device)
async def refresh_device(
    device_id: str,
    store: DeviceStore = Depends(get_store),
    probe: DeviceProbe = Depends(get_probe),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Probe a single device now. A failed probe is persisted as offline."""
    device = store.get_device(device_id)
    if device is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "device_not_found", "message": "Device not found", "id": device_id},
        )

    result = await probe_device(probe, device.address)
    device = unwrap(store.update_device_fields(device_id, probe_fields(result)))
    broadcaster.publish(DeviceUpdated(data=device))

    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "probe_failure",
                "message": result.error or "Failed to fetch device info",
                "id": device_id,
                "isOnline": False,
            },
        )
    return device
