"""In-memory domain store for devices, access requests and the activity log.

The store is the only owner of the device/request maps and the log buffer.
Every mutation runs under one lock so that a check and the write it guards
(e.g. the approval conflict check and the device claim) are applied as one
step. Reads hand out copies; callers never hold references to stored objects.
"""

import logging
import re
import threading
from collections import deque
from itertools import islice
from typing import Any, Optional

from devboard.models.access_request import AccessRequest, AccessRequestStatus
from devboard.models.activity import ActivityType, LogEntry
from devboard.models.device import (
    PROBE_FIELDS,
    Criticality,
    Device,
    DeviceStatus,
    utcnow,
)
from devboard.services.errors import ErrorKind, Result, not_found
from devboard.services.state_machine import (
    TransitionPolicy,
    check_device_transition,
    check_request_transition,
    normalize_user,
)

logger = logging.getLogger(__name__)

USAGE_DURATION_RE = re.compile(r"^\d{1,3}:[0-5]\d$")

# Fields the generic patch may touch. Status and owner only move through
# transition_device_status.
PATCHABLE_FIELDS = frozenset(PROBE_FIELDS) | {"note", "criticality", "usage_duration"}


class DeviceStore:
    """Devices, access requests and a capped activity log."""

    def __init__(self, log_capacity: int = 1000, policy: TransitionPolicy | None = None):
        self._devices: dict[str, Device] = {}
        self._requests: dict[str, AccessRequest] = {}
        self._logs: deque[LogEntry] = deque(maxlen=log_capacity)  # newest first
        self._lock = threading.RLock()
        self.policy = policy or TransitionPolicy()

    # --- Devices ---

    def list_devices(self) -> list[Device]:
        with self._lock:
            return [d.model_copy(deep=True) for d in self._devices.values()]

    def get_device(self, device_id: str) -> Optional[Device]:
        with self._lock:
            device = self._devices.get(device_id)
            return device.model_copy(deep=True) if device else None

    def get_device_by_address(self, address: str) -> Optional[Device]:
        with self._lock:
            device = self._find_by_address(address)
            return device.model_copy(deep=True) if device else None

    def create_device(
        self,
        address: str,
        added_by: str,
        criticality: Criticality | str | None = None,
        note: Optional[str] = None,
        usage_duration: Optional[str] = None,
    ) -> Result[Device]:
        address = (address or "").strip()
        added_by = (added_by or "").strip()
        if not address:
            return Result.failure(ErrorKind.VALIDATION, "address_required", "address is required")
        if not added_by:
            return Result.failure(ErrorKind.VALIDATION, "added_by_required", "addedBy is required")
        if usage_duration and not USAGE_DURATION_RE.match(usage_duration):
            return Result.failure(
                ErrorKind.VALIDATION,
                "invalid_usage_duration",
                "usageDuration must be HH:MM",
            )
        try:
            level = Criticality(criticality) if criticality else Criticality.TESTING
        except ValueError:
            return Result.failure(
                ErrorKind.VALIDATION,
                "invalid_criticality",
                f"Unknown criticality '{criticality}'",
            )

        with self._lock:
            existing = self._find_by_address(address)
            if existing is not None:
                if existing.current_user:
                    return Result.failure(
                        ErrorKind.CONFLICT,
                        "duplicate_in_use",
                        f"Device already in use by {existing.current_user}",
                        id=existing.id,
                        currentUser=existing.current_user,
                    )
                return Result.failure(
                    ErrorKind.CONFLICT,
                    "duplicate_exists",
                    f"Device {address} already exists",
                    id=existing.id,
                )

            device = Device(
                address=address,
                added_by=added_by,
                criticality=level,
                note=note or None,
                usage_duration=usage_duration or None,
            )
            self._devices[device.id] = device
            self._log(ActivityType.DEVICE_CREATED, f"Device {address} added by {added_by}")
            logger.info("Device %s registered (%s) by %s", device.id, address, added_by)
            return Result.success(device.model_copy(deep=True))

    def update_device_fields(self, device_id: str, fields: dict[str, Any]) -> Result[Device]:
        """Merge `fields` into the device. Used by the probe path; not logged."""
        unknown = set(fields) - PATCHABLE_FIELDS
        if unknown:
            return Result.failure(
                ErrorKind.VALIDATION,
                "field_not_patchable",
                f"Cannot patch field(s): {', '.join(sorted(unknown))}",
            )
        with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                return not_found("device", device_id)
            for name, value in fields.items():
                setattr(device, name, value)
            device.last_updated = utcnow()
            return Result.success(device.model_copy(deep=True))

    def transition_device_status(
        self,
        device_id: str,
        status: DeviceStatus | str,
        current_user: Optional[str] = None,
    ) -> Result[Device]:
        try:
            target = DeviceStatus(status)
        except ValueError:
            return Result.failure(
                ErrorKind.VALIDATION, "invalid_status", f"Unknown device status '{status}'"
            )
        with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                return not_found("device", device_id)
            error = check_device_transition(device, target, current_user, self.policy)
            if error:
                return Result(error=error)
            self._apply_status(device, target, normalize_user(current_user))
            return Result.success(device.model_copy(deep=True))

    def delete_device(self, device_id: str, deleted_by: Optional[str] = None) -> Result[Device]:
        with self._lock:
            device = self._devices.pop(device_id, None)
            if device is None:
                return not_found("device", device_id)
            deleter = normalize_user(deleted_by) or device.added_by
            self._log(ActivityType.DEVICE_DELETED, f"Device {device.address} deleted by {deleter}")
            logger.info("Device %s (%s) deleted by %s", device.id, device.address, deleter)
            return Result.success(device)

    # --- Access requests ---

    def list_access_requests(self) -> list[AccessRequest]:
        with self._lock:
            return [r.model_copy() for r in self._requests.values()]

    def get_access_request(self, request_id: str) -> Optional[AccessRequest]:
        with self._lock:
            request = self._requests.get(request_id)
            return request.model_copy() if request else None

    def access_requests_for_device(self, device_id: str) -> list[AccessRequest]:
        with self._lock:
            return [r.model_copy() for r in self._requests.values() if r.device_id == device_id]

    def create_access_request(
        self, device_id: str, requester_name: str, message: Optional[str] = None
    ) -> Result[AccessRequest]:
        requester = normalize_user(requester_name)
        if requester is None:
            return Result.failure(
                ErrorKind.VALIDATION, "requester_required", "requesterName is required"
            )
        with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                return not_found("device", device_id)
            request = AccessRequest(
                device_id=device_id,
                requester_name=requester,
                message=(message or "").strip() or None,
            )
            self._requests[request.id] = request
            self._log(
                ActivityType.ACCESS_REQUEST_CREATED,
                f"Access request for device {device.address} by {requester}",
            )
            return Result.success(request.model_copy())

    def update_access_request_status(
        self, request_id: str, status: AccessRequestStatus | str
    ) -> Result[AccessRequest]:
        """Resolve a pending request. Approval claims the device for the requester.

        The request update and the device claim are one unit: if the device
        cannot be claimed, neither changes.
        """
        try:
            target = AccessRequestStatus(status)
        except ValueError:
            return Result.failure(
                ErrorKind.VALIDATION, "invalid_status", f"Unknown request status '{status}'"
            )
        with self._lock:
            request = self._requests.get(request_id)
            if request is None:
                return not_found("access_request", request_id)
            error = check_request_transition(request, target)
            if error:
                return Result(error=error)

            if target == AccessRequestStatus.APPROVED:
                device = self._devices.get(request.device_id)
                if device is None:
                    return not_found("device", request.device_id)
                error = check_device_transition(
                    device,
                    DeviceStatus.USING,
                    request.requester_name,
                    self.policy,
                    via_approval=True,
                )
                if error:
                    return Result(error=error)
                self._apply_status(device, DeviceStatus.USING, request.requester_name)

            request.status = target
            self._log(
                ActivityType.ACCESS_REQUEST_UPDATED,
                f"Access request {request.id} -> {target.value}",
            )
            return Result.success(request.model_copy())

    # --- Activity log ---

    def recent_logs(self, limit: int = 50) -> list[LogEntry]:
        if limit <= 0:
            return []
        with self._lock:
            return [entry.model_copy() for entry in islice(self._logs, limit)]

    # --- Internals ---

    def _find_by_address(self, address: str) -> Optional[Device]:
        for device in self._devices.values():
            if device.address == address:
                return device
        return None

    def _apply_status(self, device: Device, target: DeviceStatus, user: Optional[str]) -> None:
        previous = (device.status, device.current_user)
        now = utcnow()
        # usage_start_time survives a release: together with usage_duration it
        # tells whether the planned usage window is still running.
        if target == DeviceStatus.IDLE:
            user = None
        elif device.current_user != user:
            device.usage_start_time = now

        device.status = target
        device.current_user = user
        device.last_updated = now

        if (target, user) == previous:
            return
        if target == DeviceStatus.IDLE:
            message = f"Device {device.address} released"
        elif target == DeviceStatus.DND:
            message = f"Device {device.address} set to do not disturb by {user}"
        else:
            message = f"Device {device.address} in use by {user}"
        self._log(ActivityType.STATUS_CHANGED, message)

    def _log(self, kind: ActivityType, message: str) -> None:
        self._logs.appendleft(LogEntry(type=kind, message=message))


DEMO_DEVICES = [
    ("10.141.1.30", DeviceStatus.USING, "john.doe",
     "heads/SB2-7263-port-slate-ts-generation-tool-from-gen1-to-gen2-0-g19992c3729-dirty"),
    ("10.141.1.31", DeviceStatus.IDLE, None, "heads/master-0-g7e485ba597-dirty"),
    ("10.141.1.32", DeviceStatus.DND, "jane.smith", "heads/master-1-g8f596cb6a814-dirty"),
    ("10.141.1.33", DeviceStatus.IDLE, None, "heads/master-2-g9g607dc7b925-dirty"),
]


def seed_demo_devices(store: DeviceStore) -> int:
    """Populate an empty store with a few demo devices. Returns how many were added."""
    added = 0
    for address, status, user, description in DEMO_DEVICES:
        result = store.create_device(address=address, added_by="system")
        if not result.ok:
            continue
        store.update_device_fields(result.value.id, {"description": description})
        store.transition_device_status(result.value.id, status, user)
        added += 1
    logger.info("Seeded %d demo device(s)", added)
    return added
