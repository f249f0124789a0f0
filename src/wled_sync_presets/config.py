"""Configuration loading for the WLED sync presets service."""

from __future__ import annotations

import argparse
import os
import sys
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, MutableMapping, Optional


CONFIG_ENV_PREFIX = "WLED_SYNC_"
CONFIG_VERSION = 1
MIN_SUPPORTED_CONFIG_VERSION = 1

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@dataclass(frozen=True)
class Config:
    """Application configuration."""

    api_host: str = "0.0.0.0"
    api_port: int = 3000
    api_docs: bool = True
    discovery_enabled: bool = True
    discovery_service_type: str = "_http._tcp.local."
    discovery_probe_timeout: float = 2.0
    discovery_resolve_timeout: float = 3.0
    settings_fetch_timeout: float = 5.0
    preset_apply_timeout: float = 10.0
    settings_form_prefix: str = "d.Sf"
    presets_dir: Path = Path("presets")
    snapshots_dir: Path = Path("sync-settings")
    static_dir: Optional[Path] = Path("public")
    log_format: str = "plain"
    log_level: str = "INFO"
    discovery_log_level: Optional[str] = None
    api_log_level: Optional[str] = None
    config_version: int = CONFIG_VERSION

    def __post_init__(self) -> None:
        _validate_config(self)

    def logging_dict(self) -> Dict[str, Any]:
        """Return a mapping suitable for structured logging."""

        return {
            "config_version": self.config_version,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "api_docs": self.api_docs,
            "discovery_enabled": self.discovery_enabled,
            "discovery_service_type": self.discovery_service_type,
            "discovery_probe_timeout": self.discovery_probe_timeout,
            "discovery_resolve_timeout": self.discovery_resolve_timeout,
            "settings_fetch_timeout": self.settings_fetch_timeout,
            "preset_apply_timeout": self.preset_apply_timeout,
            "settings_form_prefix": self.settings_form_prefix,
            "presets_dir": str(self.presets_dir),
            "snapshots_dir": str(self.snapshots_dir),
            "static_dir": str(self.static_dir) if self.static_dir else None,
            "log_format": self.log_format,
            "log_level": self.log_level,
            "discovery_log_level": self.discovery_log_level,
            "api_log_level": self.api_log_level,
        }

    @classmethod
    def from_sources(cls, cli_args: Optional[Iterable[str]] = None) -> "Config":
        """Load configuration from defaults, file, env, and CLI (in that order)."""

        args = _parse_cli(cli_args)
        file_config = _load_file_config(
            args.config
            or _coerce_optional_path(os.environ.get(f"{CONFIG_ENV_PREFIX}CONFIG"))
        )
        env_config = _load_env_config(CONFIG_ENV_PREFIX)
        cli_config = _cli_overrides(args)

        config = cls()
        config = _apply_mapping(config, file_config)
        config = _apply_mapping(config, env_config)
        config = _apply_mapping(config, cli_config)
        return config


def _validate_config(config: Config) -> None:
    _validate_version(config.config_version)
    _validate_range("api_port", config.api_port, 1, 65535)
    _validate_range("discovery_probe_timeout", config.discovery_probe_timeout, 0.1, 60.0)
    _validate_range("discovery_resolve_timeout", config.discovery_resolve_timeout, 0.1, 60.0)
    _validate_range("settings_fetch_timeout", config.settings_fetch_timeout, 0.1, 120.0)
    _validate_range("preset_apply_timeout", config.preset_apply_timeout, 0.1, 120.0)
    if not config.discovery_service_type.endswith(".local."):
        raise ValueError(
            f"discovery_service_type must end with '.local.'; got {config.discovery_service_type}."
        )
    if not config.settings_form_prefix:
        raise ValueError("settings_form_prefix must not be empty.")
    if config.log_format not in {"plain", "json"}:
        raise ValueError(f"log_format must be 'plain' or 'json'; got {config.log_format}.")
    for field_name, value in (
        ("log_level", config.log_level),
        ("discovery_log_level", config.discovery_log_level),
        ("api_log_level", config.api_log_level),
    ):
        _validate_log_level_value(value, field_name)


def _validate_version(version: int) -> None:
    if version < MIN_SUPPORTED_CONFIG_VERSION:
        raise ValueError(
            f"Config version {version} is too old; minimum supported is {MIN_SUPPORTED_CONFIG_VERSION}."
        )
    if version > CONFIG_VERSION:
        raise ValueError(
            f"Config version {version} is newer than supported ({CONFIG_VERSION}); please upgrade."
        )


def _validate_range(name: str, value: float, minimum: float, maximum: float) -> None:
    if value < minimum or value > maximum:
        raise ValueError(f"{name} must be between {minimum} and {maximum}; got {value}.")


def _validate_log_level_value(value: Optional[str], name: str) -> None:
    if value is None:
        return
    if value.upper() not in _LOG_LEVELS:
        raise ValueError(f"{name} must be one of {sorted(_LOG_LEVELS)}; got {value}.")


def _parse_cli(cli_args: Optional[Iterable[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="wled-sync-presets",
        description="Discover WLED devices and apply sync settings presets.",
    )
    parser.add_argument("--config", type=Path, help="Path to TOML config file.")
    parser.add_argument("--api-host", type=str, help="Interface the HTTP API binds to.")
    parser.add_argument("--api-port", type=int, help="TCP port for the HTTP API server.")
    parser.add_argument(
        "--no-api-docs",
        action="store_true",
        help="Disable interactive API docs.",
    )
    parser.add_argument(
        "--no-discovery",
        action="store_true",
        help="Do not browse mDNS for devices.",
    )
    parser.add_argument(
        "--discovery-service-type",
        type=str,
        help="mDNS service type browsed for candidate devices.",
    )
    parser.add_argument(
        "--discovery-probe-timeout",
        type=float,
        help="Seconds to wait for a candidate's /json/info response.",
    )
    parser.add_argument(
        "--discovery-resolve-timeout",
        type=float,
        help="Seconds to wait for an mDNS service to resolve to an address.",
    )
    parser.add_argument(
        "--settings-fetch-timeout",
        type=float,
        help="Seconds to wait when fetching a device's settings script.",
    )
    parser.add_argument(
        "--preset-apply-timeout",
        type=float,
        help="Seconds to wait when posting a preset to a device.",
    )
    parser.add_argument(
        "--settings-form-prefix",
        type=str,
        help="Object path prefixing form assignments in the settings script.",
    )
    parser.add_argument("--presets-dir", type=Path, help="Directory holding preset JSON files.")
    parser.add_argument(
        "--snapshots-dir",
        type=Path,
        help="Directory decoded device settings are written to.",
    )
    parser.add_argument("--static-dir", type=Path, help="Directory of static files served at /.")
    parser.add_argument(
        "--log-format",
        choices=["plain", "json"],
        help="Structured logging format.",
    )
    parser.add_argument("--log-level", choices=_LOG_LEVELS, help="Log verbosity level.")
    parser.add_argument(
        "--discovery-log-level",
        choices=_LOG_LEVELS,
        help="Log verbosity for discovery.",
    )
    parser.add_argument("--api-log-level", choices=_LOG_LEVELS, help="Log verbosity for the API.")
    parser.add_argument(
        "--config-version",
        type=int,
        help="Version of the configuration schema being supplied.",
    )
    return parser.parse_args(args=cli_args)


def _load_file_config(path: Optional[Path]) -> Dict[str, Any]:
    if path is None:
        return {}
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("rb") as f:
        parsed = tomllib.load(f)
    if not isinstance(parsed, Mapping):
        raise ValueError("Configuration file must contain a TOML table.")
    return {k.replace("-", "_"): v for k, v in parsed.items()}


def _load_env_config(prefix: str) -> Dict[str, Any]:
    mapping: Dict[str, Any] = {}
    for field in Config.__dataclass_fields__:
        env_key = f"{prefix}{field}".upper()
        if env_key in os.environ:
            mapping[field] = os.environ[env_key]
    return mapping


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    mapping = {
        k: v
        for k, v in vars(args).items()
        if k not in ("config", "no_api_docs", "no_discovery") and v is not None
    }
    if args.no_api_docs:
        mapping["api_docs"] = False
    if args.no_discovery:
        mapping["discovery_enabled"] = False
    return mapping


def _apply_mapping(config: Config, overrides: Mapping[str, Any]) -> Config:
    data: MutableMapping[str, Any] = {}
    for key, value in overrides.items():
        if value is None:
            continue
        if key in {"presets_dir", "snapshots_dir"}:
            data[key] = _coerce_path(value)
        elif key == "static_dir":
            data[key] = _coerce_optional_path(value)
        elif key in {"api_port", "config_version"}:
            data[key] = int(value)
        elif key in {
            "discovery_probe_timeout",
            "discovery_resolve_timeout",
            "settings_fetch_timeout",
            "preset_apply_timeout",
        }:
            data[key] = float(value)
        elif key in {"api_docs", "discovery_enabled"}:
            data[key] = _coerce_bool(value)
        elif key == "log_format":
            data[key] = str(value).lower()
        elif key in {"log_level", "discovery_log_level", "api_log_level"}:
            data[key] = str(value).upper()
        elif key in Config.__dataclass_fields__:
            data[key] = str(value)
    return replace(config, **data)


def _coerce_path(value: Any) -> Path:
    return value if isinstance(value, Path) else Path(str(value)).expanduser()


def _coerce_optional_path(value: Any) -> Optional[Path]:
    if value is None or value == "":
        return None
    return _coerce_path(value)


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def load_config(cli_args: Optional[Iterable[str]] = None) -> Config:
    """Public helper used by the entrypoint."""

    try:
        return Config.from_sources(cli_args)
    except Exception as exc:  # pragma: no cover - defensive logging path
        print(f"Failed to load configuration: {exc}", file=sys.stderr)
        raise
