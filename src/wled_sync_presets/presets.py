"""Flat JSON storage for presets and decoded device snapshots."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List

from .logging import get_logger
from .settings import SettingsDocument

PRESET_SUFFIX = ".json"


class PresetStoreError(Exception):
    """Raised when a store directory cannot be read or written."""


class PresetNotFoundError(PresetStoreError):
    """Raised when a preset name does not resolve to a readable file."""


class PresetStore:
    """Read-only access to a directory of preset files."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self.logger = get_logger("wled_sync.presets")

    def list(self) -> List[str]:
        """Return preset file names, sorted."""

        try:
            names = [
                entry.name
                for entry in self.directory.iterdir()
                if entry.is_file() and entry.name.endswith(PRESET_SUFFIX)
            ]
        except OSError as exc:
            raise PresetStoreError(f"Failed to read presets directory: {self.directory}") from exc
        return sorted(names)

    def path_for(self, name: str) -> Path:
        if not name or name in {".", ".."} or Path(name).name != name or "\\" in name:
            raise PresetNotFoundError(f"Invalid preset name: {name!r}")
        return self.directory / name

    def load(self, name: str) -> SettingsDocument:
        path = self.path_for(name)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise PresetNotFoundError(f"Preset not found: {name}") from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise PresetStoreError(f"Failed to read preset {name}: {exc}") from exc
        self.logger.debug("Loaded preset", extra={"preset": name})
        return SettingsDocument.from_dict(data)


class SnapshotStore:
    """Writes decoded device settings, one file per device address."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self.logger = get_logger("wled_sync.presets")

    @staticmethod
    def snapshot_name(address: str) -> str:
        return f"wled-sync-{address.replace('.', '-')}{PRESET_SUFFIX}"

    def save(self, address: str, document: SettingsDocument) -> str:
        """Persist ``document`` and return the file name it was written to."""

        name = self.snapshot_name(address)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            (self.directory / name).write_text(
                json.dumps(document.to_dict(), indent=2), encoding="utf-8"
            )
        except OSError as exc:
            raise PresetStoreError(f"Failed to write snapshot {name}: {exc}") from exc
        self.logger.info("Saved settings snapshot", extra={"ip": address, "file": name})
        return name

    def load(self, address: str) -> SettingsDocument:
        path = self.directory / self.snapshot_name(address)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise PresetNotFoundError(f"No snapshot for {address}") from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise PresetStoreError(f"Failed to read snapshot for {address}: {exc}") from exc
        return SettingsDocument.from_dict(data)
