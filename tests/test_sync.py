import json
from pathlib import Path
from urllib.parse import parse_qsl

import httpx
import pytest

from wled_sync_presets.client import DeviceClient, DeviceResponseError, DeviceTransportError
from wled_sync_presets.config import Config
from wled_sync_presets.devices import DeviceRegistry
from wled_sync_presets.metrics import get_registry
from wled_sync_presets.presets import PresetNotFoundError, PresetStore, SnapshotStore
from wled_sync_presets.sync import APPLIED_MESSAGE, LIKELY_APPLIED_MESSAGE, SyncService


SCRIPT = (
    'd.Sf.UP.value=21324;d.Sf.RB.checked=1;d.Sf.RC.checked=0;'
    'd.Sf.MS.value="broker.lan";d.Sf.H0.value=10;d.Sf.H1.value=0;'
    'd.Sf.H2.value=0;d.Sf.H3.value=9;'
)


def _service(tmp_path: Path, handler) -> SyncService:
    presets_dir = tmp_path / "presets"
    presets_dir.mkdir(exist_ok=True)
    config = Config(
        presets_dir=presets_dir,
        snapshots_dir=tmp_path / "sync-settings",
        static_dir=None,
    )
    return SyncService(
        config,
        DeviceRegistry(),
        DeviceClient.from_config(config, transport=httpx.MockTransport(handler)),
        PresetStore(config.presets_dir),
        SnapshotStore(config.snapshots_dir),
    )


def _applies(result: str) -> float:
    value = get_registry().get_sample_value("wled_sync_preset_applies_total", {"result": result})
    return value or 0.0


def _write_preset(tmp_path: Path, name: str = "living-room.json") -> None:
    (tmp_path / "presets").mkdir(exist_ok=True)
    (tmp_path / "presets" / name).write_text(
        json.dumps(
            {
                "udp": {"UDPPort": "21324", "sendGroup1": False},
                "sync": {"receiveBrightness": True, "receiveColor": False},
                "mqtt": {"password": "hunter2"},
                "hue": {"ip": "10.0.0.9"},
            }
        )
    )


@pytest.mark.asyncio
async def test_fetch_settings_decodes_and_persists(tmp_path) -> None:
    calls: list = []

    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        return httpx.Response(200, text=SCRIPT)

    service = _service(tmp_path, _handler)
    async with service.client:
        result = await service.fetch_settings("10.0.0.5")

    assert calls == ["http://10.0.0.5/settings/s.js?p=4"]
    assert result.saved_to == "wled-sync-10-0-0-5.json"
    assert result.settings.udp.udp_port == "21324"
    assert result.settings.sync.receive_color is False
    assert result.settings.hue.ip == "10.0.0.9"
    saved = json.loads((tmp_path / "sync-settings" / result.saved_to).read_text())
    assert saved == result.settings.to_dict()


@pytest.mark.asyncio
async def test_fetch_settings_error_status(tmp_path) -> None:
    service = _service(tmp_path, lambda request: httpx.Response(503, text="busy"))

    with pytest.raises(DeviceResponseError) as excinfo:
        await service.fetch_settings("10.0.0.5")
    await service.client.aclose()

    assert excinfo.value.status_code == 503
    assert not (tmp_path / "sync-settings").exists()


@pytest.mark.asyncio
async def test_fetch_settings_unreachable(tmp_path) -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    service = _service(tmp_path, _handler)

    with pytest.raises(DeviceTransportError, match="connection refused"):
        await service.fetch_settings("10.0.0.5")
    await service.client.aclose()


@pytest.mark.asyncio
async def test_apply_preset_posts_encoded_form(tmp_path) -> None:
    _write_preset(tmp_path)
    captured: dict = {}

    def _handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["method"] = request.method
        captured["content_type"] = request.headers["content-type"]
        captured["body"] = request.content.decode()
        return httpx.Response(200, text="Settings saved")

    service = _service(tmp_path, _handler)
    result = await service.apply_preset("10.0.0.5", "living-room.json")
    await service.client.aclose()

    assert result.success is True
    assert result.message == APPLIED_MESSAGE
    assert captured["url"] == "http://10.0.0.5/settings/sync"
    assert captured["method"] == "POST"
    assert captured["content_type"] == "application/x-www-form-urlencoded"
    form = parse_qsl(captured["body"], keep_blank_values=True)
    fields = dict(form)
    assert fields["UP"] == "21324"
    assert fields["G1"] == "on"
    assert fields["RB"] == "on"
    assert fields["RC"] == "off"
    assert fields["MQPASS"] == "hunter2"
    assert fields["BD"] == "10000"
    assert [value for key, value in form if key in {"H0", "H1", "H2", "H3"}] == ["10", "0", "0", "9"]


@pytest.mark.asyncio
async def test_apply_preset_tolerates_framing_defect(tmp_path) -> None:
    _write_preset(tmp_path)

    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.RemoteProtocolError(
            "illegal chunk header: bytearray(b'HTTP/1.1 200 OK')", request=request
        )

    service = _service(tmp_path, _handler)
    before = _applies("framing_defect")
    result = await service.apply_preset("10.0.0.5", "living-room.json")
    await service.client.aclose()

    assert result.success is True
    assert result.message == LIKELY_APPLIED_MESSAGE
    assert _applies("framing_defect") == before + 1


@pytest.mark.asyncio
async def test_apply_preset_other_protocol_error_fails(tmp_path) -> None:
    _write_preset(tmp_path)

    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.RemoteProtocolError("Server disconnected", request=request)

    service = _service(tmp_path, _handler)

    with pytest.raises(DeviceTransportError):
        await service.apply_preset("10.0.0.5", "living-room.json")
    await service.client.aclose()


@pytest.mark.asyncio
async def test_apply_preset_device_rejects(tmp_path) -> None:
    _write_preset(tmp_path)
    service = _service(tmp_path, lambda request: httpx.Response(500, text="flash write failed"))

    with pytest.raises(DeviceResponseError) as excinfo:
        await service.apply_preset("10.0.0.5", "living-room.json")
    await service.client.aclose()

    assert excinfo.value.status_code == 500
    assert excinfo.value.body == "flash write failed"


@pytest.mark.asyncio
async def test_apply_missing_preset_makes_no_request(tmp_path) -> None:
    calls: list = []

    def _handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    service = _service(tmp_path, _handler)

    with pytest.raises(PresetNotFoundError):
        await service.apply_preset("10.0.0.5", "missing.json")
    await service.client.aclose()

    assert calls == []


def test_list_presets(tmp_path) -> None:
    _write_preset(tmp_path, "b.json")
    _write_preset(tmp_path, "a.json")
    service = _service(tmp_path, lambda request: httpx.Response(200))

    assert service.list_presets() == ["a.json", "b.json"]
