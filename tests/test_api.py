import json
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from wled_sync_presets.api import create_app
from wled_sync_presets.client import DeviceClient
from wled_sync_presets.config import Config
from wled_sync_presets.devices import Device, DeviceRegistry
from wled_sync_presets.presets import PresetStore, SnapshotStore
from wled_sync_presets.sync import LIKELY_APPLIED_MESSAGE, SyncService


def _device_ok(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/settings/s.js":
        return httpx.Response(200, text='d.Sf.UP.value=21324;d.Sf.RB.checked=1;')
    return httpx.Response(200, text="ok")


def _setup(tmp_path: Path, handler=_device_ok, static_dir=None) -> tuple[Config, SyncService]:
    presets_dir = tmp_path / "presets"
    presets_dir.mkdir(exist_ok=True)
    (presets_dir / "living-room.json").write_text(
        json.dumps({"sync": {"receiveBrightness": True}})
    )
    config = Config(
        presets_dir=presets_dir,
        snapshots_dir=tmp_path / "sync-settings",
        static_dir=static_dir,
    )
    service = SyncService(
        config,
        DeviceRegistry(),
        DeviceClient.from_config(config, transport=httpx.MockTransport(handler)),
        PresetStore(config.presets_dir),
        SnapshotStore(config.snapshots_dir),
    )
    return config, service


def test_health(tmp_path) -> None:
    config, service = _setup(tmp_path)
    client = TestClient(create_app(config, service))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_metrics_endpoint(tmp_path) -> None:
    config, service = _setup(tmp_path)
    client = TestClient(create_app(config, service))
    client.get("/health")

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "wled_sync_api_requests_total" in response.text


@pytest.mark.asyncio
async def test_devices_endpoint_lists_registry(tmp_path) -> None:
    config, service = _setup(tmp_path)
    await service.registry.add_if_absent(Device(name="kitchen", address="10.0.0.5", version="0.14.4"))

    transport = ASGITransport(app=create_app(config, service))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/api/devices")
    await service.client.aclose()

    assert response.status_code == 200
    assert response.json() == [{"name": "kitchen", "ip": "10.0.0.5", "version": "0.14.4"}]


def test_devices_endpoint_empty(tmp_path) -> None:
    config, service = _setup(tmp_path)
    client = TestClient(create_app(config, service))

    assert client.get("/api/devices").json() == []


def test_sync_settings_endpoint(tmp_path) -> None:
    config, service = _setup(tmp_path)
    client = TestClient(create_app(config, service))

    response = client.get("/api/sync-settings/10.0.0.5")

    assert response.status_code == 200
    payload = response.json()
    assert payload["savedTo"] == "wled-sync-10-0-0-5.json"
    assert payload["settings"]["udp"]["UDPPort"] == "21324"
    assert payload["settings"]["sync"]["receiveBrightness"] is True
    assert payload["settings"]["sync"]["receiveColor"] is None
    assert (tmp_path / "sync-settings" / "wled-sync-10-0-0-5.json").exists()


def test_sync_settings_endpoint_device_unreachable(tmp_path) -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    config, service = _setup(tmp_path, handler=_handler)
    client = TestClient(create_app(config, service))

    response = client.get("/api/sync-settings/10.0.0.5")

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to fetch sync settings"


def test_presets_endpoint(tmp_path) -> None:
    config, service = _setup(tmp_path)
    (tmp_path / "presets" / "bedroom.json").write_text("{}")
    client = TestClient(create_app(config, service))

    assert client.get("/api/presets").json() == ["bedroom.json", "living-room.json"]


def test_presets_endpoint_unreadable_directory(tmp_path) -> None:
    config, service = _setup(tmp_path)
    service.presets = PresetStore(tmp_path / "missing")
    client = TestClient(create_app(config, service))

    response = client.get("/api/presets")

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to read presets directory"}


def test_apply_preset_endpoint(tmp_path) -> None:
    captured: dict = {}

    def _handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = request.content.decode()
        return httpx.Response(200, text="ok")

    config, service = _setup(tmp_path, handler=_handler)
    client = TestClient(create_app(config, service))

    response = client.post("/api/apply-preset/10.0.0.5", json={"preset": "living-room.json"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Preset applied successfully"}
    assert "RB=on" in captured["body"]


def test_apply_preset_endpoint_framing_defect(tmp_path) -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.RemoteProtocolError("illegal chunk header", request=request)

    config, service = _setup(tmp_path, handler=_handler)
    client = TestClient(create_app(config, service))

    response = client.post("/api/apply-preset/10.0.0.5", json={"preset": "living-room.json"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": LIKELY_APPLIED_MESSAGE}


def test_apply_preset_endpoint_forwards_device_status(tmp_path) -> None:
    config, service = _setup(
        tmp_path, handler=lambda request: httpx.Response(400, text="bad form")
    )
    client = TestClient(create_app(config, service))

    response = client.post("/api/apply-preset/10.0.0.5", json={"preset": "living-room.json"})

    assert response.status_code == 400
    assert response.json() == {"error": "Failed to apply preset", "message": "bad form"}


def test_apply_preset_endpoint_transport_error(tmp_path) -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    config, service = _setup(tmp_path, handler=_handler)
    client = TestClient(create_app(config, service))

    response = client.post("/api/apply-preset/10.0.0.5", json={"preset": "living-room.json"})

    assert response.status_code == 500
    assert response.json()["error"] == "Failed to apply preset"
    assert "connection refused" in response.json()["message"]


@pytest.mark.parametrize("preset", ["missing.json", "../living-room.json"])
def test_apply_unknown_preset_returns_404(tmp_path, preset: str) -> None:
    config, service = _setup(tmp_path)
    client = TestClient(create_app(config, service))

    response = client.post("/api/apply-preset/10.0.0.5", json={"preset": preset})

    assert response.status_code == 404
    assert response.json()["error"] == "Failed to apply preset"


def test_apply_preset_requires_body(tmp_path) -> None:
    config, service = _setup(tmp_path)
    client = TestClient(create_app(config, service))

    response = client.post("/api/apply-preset/10.0.0.5", json={})

    assert response.status_code == 422


def test_static_files_served_at_root(tmp_path) -> None:
    static_dir = tmp_path / "public"
    static_dir.mkdir()
    (static_dir / "index.html").write_text("<h1>WLED Sync</h1>")
    config, service = _setup(tmp_path, static_dir=static_dir)
    client = TestClient(create_app(config, service))

    response = client.get("/")

    assert response.status_code == 200
    assert "WLED Sync" in response.text
    assert client.get("/health").json() == {"status": "ok"}


def test_unexpected_error_becomes_json_500(tmp_path, monkeypatch) -> None:
    config, service = _setup(tmp_path)

    async def _explode(ip: str, preset: str):
        raise RuntimeError("boom")

    monkeypatch.setattr(service, "apply_preset", _explode)
    client = TestClient(create_app(config, service), raise_server_exceptions=False)

    response = client.post("/api/apply-preset/10.0.0.5", json={"preset": "living-room.json"})

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error", "message": "boom"}


def test_unreadable_preset_name_becomes_json_500(tmp_path) -> None:
    config, service = _setup(tmp_path)
    client = TestClient(create_app(config, service), raise_server_exceptions=False)

    response = client.post("/api/apply-preset/10.0.0.5", json={"preset": "a\x00.json"})

    assert response.status_code == 500
    assert "error" in response.json()


def test_validation_error_body(tmp_path, recwarn) -> None:
    config, service = _setup(tmp_path)
    client = TestClient(create_app(config, service))

    response = client.post("/api/apply-preset/10.0.0.5", json={"preset": 5})

    assert response.status_code == 422
    assert response.json()["error"] == "Invalid request"
    assert not [w for w in recwarn if "HTTP_422" in str(w.message)]
