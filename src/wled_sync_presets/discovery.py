"""mDNS discovery of WLED devices."""

from __future__ import annotations

import asyncio
from typing import Optional, Set

import httpx
from zeroconf import IPVersion, ServiceStateChange, Zeroconf
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from .client import DeviceClient, DeviceError
from .config import Config
from .devices import Device, DeviceRegistry
from .logging import get_logger
from .metrics import record_discovery_probe

UNKNOWN_DEVICE_NAME = "Unknown"


def first_ipv4(info: AsyncServiceInfo) -> Optional[str]:
    """Return the first IPv4 address an mDNS record resolved to."""

    addresses = info.parsed_addresses(IPVersion.V4Only)
    return addresses[0] if addresses else None


def hostname_from_service(info: AsyncServiceInfo, name: str) -> str:
    """Return the advertised host name without the ``.local.`` suffix."""

    server = info.server or ""
    for suffix in (".local.", ".local", "."):
        if server.endswith(suffix):
            server = server[: -len(suffix)]
            break
    if server:
        return server
    instance = name.split(".", 1)[0]
    return instance or UNKNOWN_DEVICE_NAME


class DiscoveryCollector:
    """Browse mDNS HTTP services and confirm which of them are WLED devices."""

    def __init__(self, config: Config, registry: DeviceRegistry, client: DeviceClient) -> None:
        self.config = config
        self.registry = registry
        self.client = client
        self.logger = get_logger("wled_sync.discovery")
        self._mdns_logger = get_logger("wled_sync.discovery.mdns")
        self._pending: Set[str] = set()
        self._tasks: Set[asyncio.Task[None]] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._zeroconf: Optional[AsyncZeroconf] = None
        self._browser: Optional[AsyncServiceBrowser] = None

    async def start(self) -> None:
        if self._browser:
            return
        self._loop = asyncio.get_running_loop()
        self._zeroconf = AsyncZeroconf(ip_version=IPVersion.V4Only)
        self._browser = AsyncServiceBrowser(
            self._zeroconf.zeroconf,
            [self.config.discovery_service_type],
            handlers=[self._on_service_state_change],
        )
        self.logger.info(
            "Discovery started",
            extra={"service_type": self.config.discovery_service_type},
        )

    async def stop(self) -> None:
        if self._browser:
            await self._browser.async_cancel()
        if self._zeroconf:
            await self._zeroconf.async_close()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._browser = None
        self._zeroconf = None
        self.logger.info("Discovery stopped")

    def _on_service_state_change(
        self,
        zeroconf: Zeroconf,
        service_type: str,
        name: str,
        state_change: ServiceStateChange,
    ) -> None:
        if state_change not in (ServiceStateChange.Added, ServiceStateChange.Updated):
            return
        if self._loop is None:
            return
        self._mdns_logger.debug(
            "Service advertisement",
            extra={"service": name, "state": state_change.name},
        )
        self._loop.call_soon_threadsafe(self._spawn, zeroconf, service_type, name)

    def _spawn(self, zeroconf: Zeroconf, service_type: str, name: str) -> None:
        task = asyncio.create_task(self._resolve(zeroconf, service_type, name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _resolve(self, zeroconf: Zeroconf, service_type: str, name: str) -> None:
        try:
            info = AsyncServiceInfo(service_type, name)
            resolved = await info.async_request(
                zeroconf, int(self.config.discovery_resolve_timeout * 1000)
            )
            if not resolved:
                self._mdns_logger.debug("Service did not resolve", extra={"service": name})
                return
            address = first_ipv4(info)
            if not address:
                self._mdns_logger.debug("Service has no IPv4 address", extra={"service": name})
                return
            await self.handle_candidate(hostname_from_service(info, name), address)
        except asyncio.CancelledError:
            raise
        except Exception:
            self.logger.exception("Failed to process service advertisement", extra={"service": name})

    async def handle_candidate(self, name: Optional[str], address: str) -> Optional[Device]:
        """Probe ``address`` and register it when it reports a firmware version.

        Returns the newly registered device, or ``None`` when the address was
        already known, is being probed, or did not identify as a device.
        """

        if address in self._pending or await self.registry.contains(address):
            self.logger.debug("Ignoring known candidate", extra={"ip": address})
            return None
        self._pending.add(address)
        try:
            try:
                info = await self.client.fetch_info(address)
            except (httpx.HTTPError, DeviceError, ValueError) as exc:
                record_discovery_probe("rejected")
                self.logger.info(
                    "Candidate is not a WLED device",
                    extra={"ip": address, "reason": str(exc) or type(exc).__name__},
                )
                return None
            version = info.get("ver")
            if not version:
                record_discovery_probe("no_version")
                self.logger.info("Candidate is not a WLED device", extra={"ip": address})
                return None
            device = Device(
                name=name or UNKNOWN_DEVICE_NAME, address=address, version=str(version)
            )
            if not await self.registry.add_if_absent(device):
                record_discovery_probe("duplicate")
                return None
            record_discovery_probe("confirmed")
            return device
        finally:
            self._pending.discard(address)
