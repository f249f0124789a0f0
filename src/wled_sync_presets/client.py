"""HTTP client for the device endpoints used by discovery and settings sync."""

from __future__ import annotations

import time
from typing import Any, Mapping, Optional

import httpx

from .config import Config
from .logging import get_logger
from .metrics import observe_device_request

INFO_PATH = "/json/info"
SETTINGS_SCRIPT_PATH = "/settings/s.js?p=4"
SETTINGS_SYNC_PATH = "/settings/sync"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class DeviceError(Exception):
    """Base error for failed device calls."""


class DeviceResponseError(DeviceError):
    """The device answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"Device responded with HTTP {status_code}")
        self.status_code = status_code
        self.body = body


class DeviceTransportError(DeviceError):
    """The request did not complete (timeout, refusal, protocol error)."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class DeviceClient:
    """Thin async wrapper over ``httpx.AsyncClient`` with per-call timeouts.

    Redirects are never followed; each call raises :class:`DeviceResponseError`
    for non-2xx answers. Transport failures surface as ``httpx`` exceptions so
    callers can apply their own policy.
    """

    def __init__(
        self,
        probe_timeout: float = 2.0,
        fetch_timeout: float = 5.0,
        apply_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.probe_timeout = probe_timeout
        self.fetch_timeout = fetch_timeout
        self.apply_timeout = apply_timeout
        self.logger = get_logger("wled_sync.client")
        self._client = httpx.AsyncClient(follow_redirects=False, transport=transport)

    @classmethod
    def from_config(
        cls, config: Config, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "DeviceClient":
        return cls(
            probe_timeout=config.discovery_probe_timeout,
            fetch_timeout=config.settings_fetch_timeout,
            apply_timeout=config.preset_apply_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "DeviceClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_info(self, address: str) -> Mapping[str, Any]:
        """Return the decoded ``/json/info`` body of a device."""

        response = await self._request(
            "info", "GET", _url(address, INFO_PATH), timeout=self.probe_timeout
        )
        payload = response.json()
        if not isinstance(payload, Mapping):
            raise ValueError("Device info is not a JSON object")
        return payload

    async def fetch_settings_script(self, address: str) -> str:
        """Return the raw sync settings script."""

        response = await self._request(
            "settings", "GET", _url(address, SETTINGS_SCRIPT_PATH), timeout=self.fetch_timeout
        )
        return response.text

    async def post_sync(self, address: str, body: str) -> httpx.Response:
        """Submit an encoded settings form to the device."""

        return await self._request(
            "sync",
            "POST",
            _url(address, SETTINGS_SYNC_PATH),
            timeout=self.apply_timeout,
            content=body.encode("utf-8"),
            headers={"Content-Type": FORM_CONTENT_TYPE},
        )

    async def _request(
        self, operation: str, method: str, url: str, timeout: float, **kwargs: Any
    ) -> httpx.Response:
        started = time.perf_counter()
        result = "ok"
        try:
            response = await self._client.request(method, url, timeout=timeout, **kwargs)
            if not response.is_success:
                result = "http_error"
                raise DeviceResponseError(response.status_code, response.text)
            return response
        except httpx.HTTPError:
            result = "transport_error"
            raise
        finally:
            duration = time.perf_counter() - started
            observe_device_request(operation, result, duration)
            self.logger.debug(
                "Device request finished",
                extra={
                    "operation": operation,
                    "url": url,
                    "result": result,
                    "duration_ms": round(duration * 1000, 2),
                },
            )


def _url(address: str, path: str) -> str:
    return f"http://{address}{path}"
