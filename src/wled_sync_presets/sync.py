"""Fetching device settings and applying presets."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

import httpx

from .client import DeviceClient, DeviceResponseError, DeviceTransportError
from .config import Config
from .decoder import decode_settings
from .devices import Device, DeviceRegistry
from .encoder import encode_pairs, encode_settings
from .logging import get_logger, redact_mapping
from .metrics import record_preset_apply, record_settings_fetch
from .presets import PresetStore, SnapshotStore
from .quirks import is_known_framing_defect
from .settings import SettingsDocument

APPLIED_MESSAGE = "Preset applied successfully"
LIKELY_APPLIED_MESSAGE = "Preset likely applied successfully (ignored parsing error)"


@dataclass(frozen=True)
class FetchResult:
    settings: SettingsDocument
    saved_to: str


@dataclass(frozen=True)
class ApplyResult:
    success: bool
    message: str


class SyncService:
    """Operations exposed by the HTTP API."""

    def __init__(
        self,
        config: Config,
        registry: DeviceRegistry,
        client: DeviceClient,
        presets: PresetStore,
        snapshots: SnapshotStore,
    ) -> None:
        self.config = config
        self.registry = registry
        self.client = client
        self.presets = presets
        self.snapshots = snapshots
        self.logger = get_logger("wled_sync.sync")

    async def list_devices(self) -> List[Device]:
        return await self.registry.devices()

    def list_presets(self) -> List[str]:
        return self.presets.list()

    async def fetch_settings(self, address: str) -> FetchResult:
        """Fetch, decode and persist the sync settings of a device."""

        try:
            script = await self.client.fetch_settings_script(address)
        except httpx.HTTPError as exc:
            record_settings_fetch("transport_error")
            raise DeviceTransportError(str(exc) or type(exc).__name__, exc) from exc
        except DeviceResponseError:
            record_settings_fetch("http_error")
            raise
        settings = decode_settings(script, self.config.settings_form_prefix)
        saved_to = self.snapshots.save(address, settings)
        record_settings_fetch("ok")
        self.logger.debug(
            "Decoded sync settings",
            extra={"ip": address, "settings": redact_mapping(settings.to_dict())},
        )
        return FetchResult(settings=settings, saved_to=saved_to)

    async def apply_preset(self, address: str, preset: str) -> ApplyResult:
        """Encode a stored preset and post it to a device.

        A known framing defect in the device's response counts as success.
        Non-2xx answers raise :class:`DeviceResponseError`; other transport
        failures raise :class:`DeviceTransportError`.
        """

        document = self.presets.load(preset)
        body = encode_settings(document)
        self.logger.info(
            "Applying preset",
            extra={
                "ip": address,
                "preset": preset,
                "form": redact_mapping(dict(encode_pairs(document))),
            },
        )
        try:
            await self.client.post_sync(address, body)
        except httpx.HTTPError as exc:
            if is_known_framing_defect(exc):
                record_preset_apply("framing_defect")
                self.logger.info(
                    "Ignored response framing error; preset likely applied",
                    extra={"ip": address, "preset": preset, "error": str(exc)},
                )
                return ApplyResult(success=True, message=LIKELY_APPLIED_MESSAGE)
            record_preset_apply("transport_error")
            raise DeviceTransportError(str(exc) or type(exc).__name__, exc) from exc
        except DeviceResponseError as exc:
            record_preset_apply("http_error")
            self.logger.error(
                "Device rejected preset",
                extra={"ip": address, "preset": preset, "status": exc.status_code, "body": exc.body},
            )
            raise
        record_preset_apply("ok")
        self.logger.info("Preset applied", extra={"ip": address, "preset": preset})
        return ApplyResult(success=True, message=APPLIED_MESSAGE)
