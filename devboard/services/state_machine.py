"""Reservation rules for devices and access requests.

Device:          idle -> using -> dnd -> idle   (using <-> dnd allowed)
AccessRequest:   pending -> approved | denied | dismissed   (terminal)

The checks here are pure: they look at the current entity and the requested
target and return a StoreError when the move is not allowed, or None.
Applying the change is the store's job.
"""

from dataclasses import dataclass
from typing import Optional

from devboard.models.access_request import AccessRequest, AccessRequestStatus
from devboard.models.device import Device, DeviceStatus
from devboard.services.errors import ErrorKind, StoreError

CLAIMED_STATES = (DeviceStatus.USING, DeviceStatus.DND)


@dataclass(frozen=True)
class TransitionPolicy:
    # Approving a request may evict a different current user.
    allow_approval_override: bool = False
    # using <-> dnd only by the user already holding the device.
    require_same_user_for_escalation: bool = False


def normalize_user(user: Optional[str]) -> Optional[str]:
    if user is None:
        return None
    return user.strip() or None


def _in_use(device: Device) -> StoreError:
    return StoreError(
        kind=ErrorKind.CONFLICT,
        code="device_in_use",
        message=f"Device already in use by {device.current_user}",
        detail={"id": device.id, "currentUser": device.current_user},
    )


def check_device_transition(
    device: Device,
    target: DeviceStatus,
    current_user: Optional[str],
    policy: TransitionPolicy,
    via_approval: bool = False,
) -> Optional[StoreError]:
    """Validate moving `device` to `target` held by `current_user`."""
    if target == DeviceStatus.IDLE:
        return None

    user = normalize_user(current_user)
    if user is None:
        return StoreError(
            kind=ErrorKind.INVALID_TRANSITION,
            code="current_user_required",
            message=f"currentUser is required for status '{target.value}'",
            detail={"id": device.id, "status": target.value},
        )

    if device.status == DeviceStatus.IDLE or device.current_user == user:
        return None

    if via_approval:
        return None if policy.allow_approval_override else _in_use(device)

    # Same state with another owner is a takeover, not a transition.
    if device.status == target:
        return _in_use(device)

    if policy.require_same_user_for_escalation:
        return _in_use(device)
    return None


def check_request_transition(
    request: AccessRequest, target: AccessRequestStatus
) -> Optional[StoreError]:
    """Validate resolving `request` to `target`."""
    if request.status.is_terminal:
        return StoreError(
            kind=ErrorKind.CONFLICT,
            code="request_already_resolved",
            message=f"Access request is already {request.status.value}",
            detail={"id": request.id, "status": request.status.value},
        )
    if not target.is_terminal:
        return StoreError(
            kind=ErrorKind.INVALID_TRANSITION,
            code="invalid_request_status",
            message="Access request can only move to approved, denied or dismissed",
            detail={"id": request.id, "status": target.value},
        )
    return None
