"""Background liveness refresher.

Every `interval` seconds all devices are probed concurrently and the results
folded back into the store, then the full device list is broadcast once.
"""

import asyncio
import logging

from devboard.schemas.events import DevicesUpdated
from devboard.services.probe import DeviceProbe, ProbeResult, probe_device
from devboard.services.store import DeviceStore
from devboard.ws.broadcast import Broadcaster

logger = logging.getLogger(__name__)


def probe_fields(result: ProbeResult) -> dict:
    """Fields to write for a probe result.

    A failure only marks the device offline; last-known metadata stays.
    """
    if result.success and result.info is not None:
        return result.info.as_fields()
    return {"is_online": False}


class LivenessRefresher:
    """Periodically re-probes every known device."""

    def __init__(
        self,
        store: DeviceStore,
        probe: DeviceProbe,
        broadcaster: Broadcaster,
        interval: float = 30.0,
    ):
        self._store = store
        self._probe = probe
        self._broadcaster = broadcaster
        self.interval = interval
        self._task: asyncio.Task | None = None

    def start(self) -> bool:
        """Start the background loop. Returns False when disabled by interval <= 0."""
        if self.interval <= 0:
            logger.info("Liveness refresher disabled")
            return False
        if self.running:
            return True
        self._task = asyncio.create_task(self._run(), name="liveness-refresher")
        logger.info("Liveness refresher started (every %.0fs)", self.interval)
        return True

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Liveness refresher stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Liveness refresh tick failed")

    async def run_once(self) -> int:
        """One sweep: probe all devices, store results, broadcast the snapshot.

        Returns the number of devices whose probe succeeded.
        """
        devices = self._store.list_devices()
        results = await asyncio.gather(
            *(probe_device(self._probe, d.address) for d in devices)
        )

        online = 0
        for device, result in zip(devices, results):
            if result.success:
                online += 1
            update = self._store.update_device_fields(device.id, probe_fields(result))
            if not update.ok:
                # Deleted while its probe was in flight.
                logger.debug("Skipping refresh of %s: %s", device.id, update.error.message)

        self._broadcaster.publish(DevicesUpdated(data=self._store.list_devices()))
        logger.debug("Refreshed %d device(s), %d online", len(devices), online)
        return online
