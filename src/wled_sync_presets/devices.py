"""In-memory registry of confirmed devices."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, List, Optional

from .logging import get_logger
from .metrics import set_discovered_devices


@dataclass(frozen=True)
class Device:
    """A controller whose ``/json/info`` answered with a firmware version."""

    name: str
    address: str
    version: str

    def as_dict(self) -> Dict[str, str]:
        return {"name": self.name, "ip": self.address, "version": self.version}


class DeviceRegistry:
    """Devices keyed by address for the lifetime of the service.

    Entries are never replaced or evicted; the first confirmation of an
    address wins.
    """

    def __init__(self) -> None:
        self._devices: Dict[str, Device] = {}
        self._lock = asyncio.Lock()
        self.logger = get_logger("wled_sync.discovery")

    async def add_if_absent(self, device: Device) -> bool:
        """Insert ``device`` unless its address is known; return True when inserted."""

        async with self._lock:
            if device.address in self._devices:
                return False
            self._devices[device.address] = device
            count = len(self._devices)
        set_discovered_devices(count)
        self.logger.info(
            "Registered device",
            extra={"ip": device.address, "device_name": device.name, "version": device.version},
        )
        return True

    async def get(self, address: str) -> Optional[Device]:
        async with self._lock:
            return self._devices.get(address)

    async def contains(self, address: str) -> bool:
        async with self._lock:
            return address in self._devices

    async def devices(self) -> List[Device]:
        """Return devices in the order they were confirmed."""

        async with self._lock:
            return list(self._devices.values())

    def __len__(self) -> int:
        return len(self._devices)
