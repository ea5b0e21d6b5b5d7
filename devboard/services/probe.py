"""Device probes: fetch liveness and firmware metadata for an address.

A probe never raises for an unreachable or misbehaving device; it resolves
to a failed ProbeResult within its own timeout.
"""

import asyncio
import logging
import random
import re
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol

import paramiko

from devboard.config import Settings

logger = logging.getLogger(__name__)

COMMIT_RE = re.compile(r"-g([0-9a-f]{7,40})")


@dataclass
class DeviceInfo:
    version: Optional[str] = None
    kernel: Optional[str] = None
    build: Optional[str] = None
    commit: Optional[str] = None
    description: Optional[str] = None
    timestamp: Optional[str] = None
    uptime: Optional[str] = None
    is_online: bool = True

    def as_fields(self) -> dict:
        """Non-null fields, ready for DeviceStore.update_device_fields."""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class ProbeResult:
    success: bool
    info: Optional[DeviceInfo] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str) -> "ProbeResult":
        return cls(success=False, error=error)


class DeviceProbe(Protocol):
    async def fetch_device_info(self, address: str) -> ProbeResult: ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class MockProbe:
    """Simulated probe for development and demos.

    Pretends to SSH into the device: a short delay, a random version and
    uptime, and an occasional connection timeout.
    """

    VERSIONS = ["v2.4.1", "v2.4.2", "v2.3.8", "v2.4.0"]
    UPTIMES = ["1d 16h", "2d 8h", "5d 12h", "12d 4h", "3h 45m"]

    def __init__(self, online_rate: float = 0.95, latency: float = 1.0, rng: random.Random | None = None):
        self.online_rate = online_rate
        self.latency = latency
        self._rng = rng or random.Random()

    async def fetch_device_info(self, address: str) -> ProbeResult:
        await asyncio.sleep(self.latency)
        if self._rng.random() >= self.online_rate:
            logger.debug("Mock probe: %s unreachable", address)
            return ProbeResult.failed("Connection timeout")
        return ProbeResult(
            success=True,
            info=DeviceInfo(
                version=self._rng.choice(self.VERSIONS),
                uptime=self._rng.choice(self.UPTIMES),
                timestamp=_now_iso(),
                is_online=True,
            ),
        )


class SSHProbe:
    """Probe a device over SSH (paramiko), running a few read-only commands."""

    def __init__(
        self,
        username: str,
        password: str | None = None,
        port: int = 22,
        timeout: float = 10.0,
        commands: dict[str, str] | None = None,
    ):
        self.username = username
        self.password = password
        self.port = port
        self.timeout = timeout
        self.commands = commands or {}

    async def fetch_device_info(self, address: str) -> ProbeResult:
        try:
            info = await asyncio.wait_for(
                asyncio.to_thread(self._collect, address), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning("SSH probe of %s timed out after %.1fs", address, self.timeout)
            return ProbeResult.failed("Connection timeout")
        except (paramiko.SSHException, OSError) as e:
            logger.warning("SSH probe of %s failed: %s", address, e)
            return ProbeResult.failed(str(e) or e.__class__.__name__)
        except Exception as e:
            # Malformed addresses surface as UnicodeError/ValueError from getaddrinfo.
            logger.error("Unexpected error probing %s: %s", address, e, exc_info=True)
            return ProbeResult.failed(str(e) or e.__class__.__name__)
        return ProbeResult(success=True, info=info)

    def _collect(self, address: str) -> DeviceInfo:
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=address,
                port=self.port,
                username=self.username,
                password=self.password,
                timeout=self.timeout,
                banner_timeout=self.timeout,
                auth_timeout=self.timeout,
                look_for_keys=self.password is None,
                allow_agent=self.password is None,
            )
            output = {name: self._run(client, cmd) for name, cmd in self.commands.items()}
        finally:
            client.close()

        description = output.get("description")
        commit = None
        if description:
            match = COMMIT_RE.search(description)
            commit = match.group(1) if match else None
        return DeviceInfo(
            version=output.get("version"),
            kernel=output.get("kernel"),
            build=output.get("build"),
            commit=commit,
            description=description,
            timestamp=_now_iso(),
            uptime=output.get("uptime"),
            is_online=True,
        )

    def _run(self, client: paramiko.SSHClient, command: str) -> Optional[str]:
        _, stdout, stderr = client.exec_command(command, timeout=self.timeout)
        out = stdout.read().decode(errors="replace").strip()
        err = stderr.read().decode(errors="replace").strip()
        if err:
            logger.debug("Command %r returned error: %s", command, err)
        return out or None


async def probe_device(probe: DeviceProbe, address: str) -> ProbeResult:
    """Call `probe`, turning anything it raises into a failed result."""
    try:
        return await probe.fetch_device_info(address)
    except Exception as e:
        logger.error("Probe of %s raised: %s", address, e, exc_info=True)
        return ProbeResult.failed(str(e) or e.__class__.__name__)


class FallbackProbe:
    """Use `primary`; when it fails, answer with `fallback` instead."""

    def __init__(self, primary: DeviceProbe, fallback: DeviceProbe):
        self.primary = primary
        self.fallback = fallback

    async def fetch_device_info(self, address: str) -> ProbeResult:
        result = await probe_device(self.primary, address)
        if result.success:
            return result
        logger.info("Primary probe failed for %s (%s), using fallback", address, result.error)
        return await self.fallback.fetch_device_info(address)


def build_probe(settings: Settings) -> DeviceProbe:
    """Select the probe implementation from configuration."""
    if settings.probe_mode == "mock":
        return MockProbe()
    if settings.probe_mode != "ssh":
        raise ValueError(f"Unknown probe mode: {settings.probe_mode}")

    probe = SSHProbe(
        username=settings.probe_username,
        password=settings.probe_password or None,
        port=settings.probe_port,
        timeout=settings.probe_timeout,
        commands={
            "version": settings.probe_version_command,
            "kernel": settings.probe_kernel_command,
            "build": settings.probe_build_command,
            "uptime": settings.probe_uptime_command,
            "description": settings.probe_describe_command,
        },
    )
    if settings.probe_fallback:
        return FallbackProbe(probe, MockProbe())
    return probe
