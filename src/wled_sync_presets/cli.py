"""Command-line client for the WLED sync presets HTTP API."""

from __future__ import annotations

import argparse
import json
import os
import sys
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Optional

import httpx
import yaml
from rich.console import Console
from rich.table import Table


DEFAULT_SERVER_URL = "http://127.0.0.1:3000"
ENV_PREFIX = "WLED_SYNC_"


class CliError(Exception):
    """Raised when the CLI encounters an expected error condition."""


@dataclass(frozen=True)
class ClientConfig:
    """Configuration for the API client."""

    server_url: str
    output: str
    timeout: float = 30.0


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(f"{ENV_PREFIX}{name}", default)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wled-sync",
        description=(
            "CLI for the WLED sync presets API. Uses WLED_SYNC_* env vars for "
            "defaults. Examples: `wled-sync devices list`, "
            "`wled-sync presets apply 192.168.1.40 living-room.json`."
        ),
    )
    parser.add_argument(
        "--server-url",
        default=_env("SERVER_URL", DEFAULT_SERVER_URL),
        help=f"Base URL for the API (env: {ENV_PREFIX}SERVER_URL). Defaults to {DEFAULT_SERVER_URL}.",
    )
    parser.add_argument(
        "--output",
        choices=["json", "yaml", "table"],
        default=_env("OUTPUT", "json"),
        help=f"Output format for responses (env: {ENV_PREFIX}OUTPUT).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=float(_env("TIMEOUT", "30") or 30),
        help="Seconds to wait for the API to respond.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    health = subparsers.add_parser("health", help="Check API health (GET /health)")
    health.set_defaults(func=_cmd_health)

    devices = subparsers.add_parser("devices", help="Discovered devices")
    device_sub = devices.add_subparsers(dest="device_command", required=True)
    list_devices = device_sub.add_parser(
        "list", help="List discovered devices (GET /api/devices)"
    )
    list_devices.set_defaults(func=_cmd_devices_list)

    settings = subparsers.add_parser("settings", help="Device sync settings")
    settings_sub = settings.add_subparsers(dest="settings_command", required=True)
    fetch = settings_sub.add_parser(
        "fetch",
        help="Fetch, decode and save a device's sync settings (GET /api/sync-settings/{ip})",
    )
    fetch.add_argument("ip", help="Device IP address")
    fetch.set_defaults(func=_cmd_settings_fetch)

    presets = subparsers.add_parser("presets", help="Saved presets")
    preset_sub = presets.add_subparsers(dest="preset_command", required=True)
    list_presets = preset_sub.add_parser("list", help="List preset files (GET /api/presets)")
    list_presets.set_defaults(func=_cmd_presets_list)
    apply = preset_sub.add_parser(
        "apply", help="Apply a preset to a device (POST /api/apply-preset/{ip})"
    )
    apply.add_argument("ip", help="Device IP address")
    apply.add_argument("preset", help="Preset file name, e.g. living-room.json")
    apply.set_defaults(func=_cmd_presets_apply)

    return parser


def _load_config(args: argparse.Namespace) -> ClientConfig:
    output = args.output or "json"
    if output not in {"json", "yaml", "table"}:
        raise CliError("Output format must be 'json', 'yaml' or 'table'")
    return ClientConfig(server_url=args.server_url, output=output, timeout=args.timeout)


def _build_client(config: ClientConfig) -> httpx.Client:
    return httpx.Client(base_url=config.server_url, timeout=config.timeout)


def _print_output(data: Any, output: str) -> None:
    if output == "yaml":
        yaml.safe_dump(data, sys.stdout, sort_keys=False)
    elif output == "table":
        _print_table(data, Console())
    else:
        json.dump(data, sys.stdout, indent=2)
        sys.stdout.write("\n")


def _print_table(data: Any, console: Console) -> None:
    if isinstance(data, list) and data and all(isinstance(item, dict) for item in data):
        table = Table(show_header=True, header_style="bold magenta")
        for key in data[0].keys():
            table.add_column(str(key))
        for item in data:
            table.add_row(*(_cell(value) for value in item.values()))
        console.print(table)
    elif isinstance(data, list):
        table = Table(show_header=False)
        table.add_column("Value", style="yellow")
        for item in data:
            table.add_row(_cell(item))
        console.print(table)
    elif isinstance(data, dict):
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="yellow")
        for key, value in _flatten(data):
            table.add_row(key, _cell(value))
        console.print(table)
    else:
        console.print(_cell(data))


def _flatten(data: dict, prefix: str = "") -> Iterable[tuple[str, Any]]:
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            yield from _flatten(value, f"{name}.")
        else:
            yield name, value


def _cell(value: Any) -> str:
    if value is None:
        return "-"
    return str(value)


def _handle_response(response: httpx.Response) -> Any:
    if response.is_error:
        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text}
        detail = body.get("message") or body.get("error") if isinstance(body, dict) else body
        raise CliError(f"Request failed ({response.status_code}): {detail}")
    if response.content:
        return response.json()
    return None


def _cmd_health(config: ClientConfig, client: httpx.Client, args: argparse.Namespace) -> None:
    _print_output(_handle_response(client.get("/health")), config.output)


def _cmd_devices_list(config: ClientConfig, client: httpx.Client, args: argparse.Namespace) -> None:
    _print_output(_handle_response(client.get("/api/devices")), config.output)


def _cmd_settings_fetch(config: ClientConfig, client: httpx.Client, args: argparse.Namespace) -> None:
    _print_output(_handle_response(client.get(f"/api/sync-settings/{args.ip}")), config.output)


def _cmd_presets_list(config: ClientConfig, client: httpx.Client, args: argparse.Namespace) -> None:
    _print_output(_handle_response(client.get("/api/presets")), config.output)


def _cmd_presets_apply(config: ClientConfig, client: httpx.Client, args: argparse.Namespace) -> None:
    if not args.preset.endswith(".json"):
        raise CliError("Preset must be a .json file name as listed by `presets list`.")
    data = _handle_response(
        client.post(f"/api/apply-preset/{args.ip}", json={"preset": args.preset})
    )
    _print_output(data, config.output)


def main(argv: Optional[Iterable[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(args=argv)

    try:
        config = _load_config(args)
        with _build_client(config) as client:
            func: Callable[[ClientConfig, httpx.Client, argparse.Namespace], None] = args.func
            func(config, client, args)
    except CliError as exc:  # pragma: no cover - CLI feedback path
        sys.stderr.write(f"Error: {exc}\n")
        sys.exit(1)
    except httpx.RequestError as exc:  # pragma: no cover - CLI feedback path
        sys.stderr.write(f"HTTP request failed: {exc}\n")
        sys.exit(1)


if __name__ == "__main__":
    main()
