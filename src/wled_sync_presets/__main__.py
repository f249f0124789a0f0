"""Entrypoint for the WLED sync presets service."""

from __future__ import annotations

import asyncio
import contextlib
import signal
from typing import Iterable, Optional

from .api import ApiService
from .client import DeviceClient
from .config import Config, load_config
from .devices import DeviceRegistry
from .discovery import DiscoveryCollector
from .logging import configure_logging, get_logger
from .presets import PresetStore, SnapshotStore
from .sync import SyncService


async def _run_async(config: Config) -> None:
    logger = get_logger("wled_sync")
    stop_event = asyncio.Event()

    def _request_shutdown(sig: Optional[str] = None) -> None:
        if not stop_event.is_set():
            logger.warning("Shutdown requested", extra={"signal": sig})
            stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, _request_shutdown, sig.name)

    registry = DeviceRegistry()
    client = DeviceClient.from_config(config)
    service = SyncService(
        config,
        registry,
        client,
        PresetStore(config.presets_dir),
        SnapshotStore(config.snapshots_dir),
    )
    discovery = DiscoveryCollector(config, registry, client)
    api = ApiService(config, service)

    try:
        if config.discovery_enabled:
            try:
                await discovery.start()
            except OSError:
                logger.exception("Discovery failed to start; continuing without it")
        else:
            logger.info("Discovery disabled by configuration")
        await api.start()
        logger.info(
            "Service started",
            extra={
                "api_port": config.api_port,
                "presets_dir": str(config.presets_dir),
                "snapshots_dir": str(config.snapshots_dir),
            },
        )
        await stop_event.wait()
    finally:
        await api.stop()
        await discovery.stop()
        await client.aclose()
        logger.info("Shutdown complete")


def run(cli_args: Optional[Iterable[str]] = None) -> None:
    """CLI entrypoint used by the console script."""

    config = load_config(cli_args)
    configure_logging(config)
    logger = get_logger("wled_sync")
    logger.info("Loaded configuration", extra={"config": config.logging_dict()})
    try:
        asyncio.run(_run_async(config))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")


if __name__ == "__main__":
    run()
