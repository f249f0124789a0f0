"""Structured model of the WLED sync settings page and its wire key table."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple, Union

Scalar = Union[str, int, float, bool]

SECTIONS: Tuple[str, ...] = (
    "udp",
    "sync",
    "instance",
    "realtime",
    "mqtt",
    "hue",
    "additional",
)


class FieldKind(str, Enum):
    """How a wire key is rendered in the settings script."""

    VALUE = "value"
    CHECKED = "checked"


def _setting(name: str, *aliases: str) -> Any:
    return field(default=None, metadata={"name": name, "aliases": aliases})


@dataclass
class UdpSettings:
    udp_port: Optional[str] = _setting("UDPPort", "udp.primaryPort")
    secondary_port: Optional[str] = _setting("secondaryPort")
    # Bitmask of ticked group checkboxes rendered as a decimal, e.g. 1+8+16 = "25".
    send_group: Optional[str] = _setting("sendGroup")
    receive_group: Optional[str] = _setting("receiveGroup")
    send_group_1: Optional[bool] = _setting("sendGroup1")
    send_group_2: Optional[bool] = _setting("sendGroup2")
    send_group_3: Optional[bool] = _setting("sendGroup3")
    send_group_4: Optional[bool] = _setting("sendGroup4")
    send_group_5: Optional[bool] = _setting("sendGroup5")
    send_group_6: Optional[bool] = _setting("sendGroup6")
    send_group_7: Optional[bool] = _setting("sendGroup7")
    send_group_8: Optional[bool] = _setting("sendGroup8")
    receive_group_1: Optional[bool] = _setting("receiveGroup1")
    receive_group_2: Optional[bool] = _setting("receiveGroup2")
    receive_group_3: Optional[bool] = _setting("receiveGroup3")
    receive_group_4: Optional[bool] = _setting("receiveGroup4")
    receive_group_5: Optional[bool] = _setting("receiveGroup5")
    receive_group_6: Optional[bool] = _setting("receiveGroup6")
    receive_group_7: Optional[bool] = _setting("receiveGroup7")
    receive_group_8: Optional[bool] = _setting("receiveGroup8")


@dataclass
class SyncSettings:
    receive_brightness: Optional[bool] = _setting("receiveBrightness")
    receive_color: Optional[bool] = _setting("receiveColor")
    receive_effects: Optional[bool] = _setting("receiveEffects")
    receive_segment_options: Optional[bool] = _setting("receiveSegmentOptions")
    notify_direct: Optional[bool] = _setting("notifyDirect")
    notify_button: Optional[bool] = _setting("notifyButton")
    notify_alexa: Optional[bool] = _setting("notifyAlexa")
    notify_hue: Optional[bool] = _setting("notifyHue")
    notify_macro: Optional[bool] = _setting("notifyMacro")
    udp_retransmit: Optional[str] = _setting("udpRetransmit")


@dataclass
class InstanceSettings:
    enable_list: Optional[bool] = _setting("enableList")
    discoverable: Optional[bool] = _setting("discoverable")


@dataclass
class RealtimeSettings:
    receive_udp: Optional[bool] = _setting("receiveUDP")
    use_main_segment: Optional[bool] = _setting("useMainSegment")
    dmx_start_address: Optional[str] = _setting("dmxStartAddress", "realtime.dmxAddress")
    dmx_mode: Optional[str] = _setting("dmxMode")
    dmx_timeout: Optional[str] = _setting("dmxTimeout")
    dmx_segment_spacing: Optional[str] = _setting("dmxSegmentSpacing")
    e131_priority: Optional[str] = _setting("e131portPriority")
    e131_multicast: Optional[bool] = _setting("e131Multicast")
    e131_skip_out_of_sequence: Optional[bool] = _setting("e131SkipOutOfSequence")
    start_universe: Optional[str] = _setting("startUniverse", "realtime.e131Universe")
    force_brightness: Optional[bool] = _setting("forceBrightness")
    disable_gamma_correction: Optional[bool] = _setting("disableGammaCorrection")
    led_offset: Optional[str] = _setting("ledOffset")


@dataclass
class MqttSettings:
    enabled: Optional[bool] = _setting("enabled")
    broker: Optional[str] = _setting("broker")
    port: Optional[str] = _setting("port")
    username: Optional[str] = _setting("username")
    password: Optional[str] = _setting("password")
    client_id: Optional[str] = _setting("clientId")
    device_topic: Optional[str] = _setting("deviceTopic")
    group_topic: Optional[str] = _setting("groupTopic")
    button_publish: Optional[bool] = _setting("buttonPublish")


@dataclass
class HueSettings:
    poll_enabled: Optional[bool] = _setting("pollEnabled")
    on_off: Optional[bool] = _setting("onOff")
    brightness: Optional[bool] = _setting("brightness")
    color: Optional[bool] = _setting("color")
    poll_hue_light: Optional[str] = _setting("pollHueLight")
    poll_interval: Optional[str] = _setting("pollInterval")
    # Assembled from the H0..H3 octet keys.
    ip: Optional[str] = _setting("ip")


@dataclass
class AdditionalSettings:
    # 0 in custom port mode, 5568 for E1.31, 6454 for Art-Net.
    di: Optional[str] = _setting("di", "realtime.e131Port")
    ai: Optional[str] = _setting("ai")
    ap: Optional[str] = _setting("ap")
    bd: Optional[str] = _setting("bd")
    ep: Optional[str] = _setting("ep", "realtime.e131Port")


@dataclass(frozen=True)
class WireField:
    """One scalar field of the device form and where it lives in the document."""

    key: str
    section: str
    attr: str
    kind: FieldKind

    @property
    def path(self) -> str:
        return f"{self.section}.{self.attr}"


def _value(key: str, section: str, attr: str) -> WireField:
    return WireField(key=key, section=section, attr=attr, kind=FieldKind.VALUE)


def _checked(key: str, section: str, attr: str) -> WireField:
    return WireField(key=key, section=section, attr=attr, kind=FieldKind.CHECKED)


WIRE_FIELDS: Tuple[WireField, ...] = (
    _value("UP", "udp", "udp_port"),
    _value("U2", "udp", "secondary_port"),
    _value("GS", "udp", "send_group"),
    _value("GR", "udp", "receive_group"),
    *(_checked(f"G{n}", "udp", f"send_group_{n}") for n in range(1, 9)),
    *(_checked(f"R{n}", "udp", f"receive_group_{n}") for n in range(1, 9)),
    _checked("RB", "sync", "receive_brightness"),
    _checked("RC", "sync", "receive_color"),
    _checked("RX", "sync", "receive_effects"),
    _checked("SO", "sync", "receive_segment_options"),
    _checked("SG", "sync", "notify_direct"),
    _checked("SD", "sync", "notify_button"),
    _checked("SB", "sync", "notify_alexa"),
    _checked("SH", "sync", "notify_hue"),
    _checked("SM", "sync", "notify_macro"),
    _value("UR", "sync", "udp_retransmit"),
    _checked("NL", "instance", "enable_list"),
    _checked("NB", "instance", "discoverable"),
    _checked("RD", "realtime", "receive_udp"),
    _checked("MO", "realtime", "use_main_segment"),
    _value("DA", "realtime", "dmx_start_address"),
    _value("DM", "realtime", "dmx_mode"),
    _value("ET", "realtime", "dmx_timeout"),
    _value("XX", "realtime", "dmx_segment_spacing"),
    _value("PY", "realtime", "e131_priority"),
    _checked("ES", "realtime", "e131_multicast"),
    _checked("EM", "realtime", "e131_skip_out_of_sequence"),
    _value("EU", "realtime", "start_universe"),
    _checked("FB", "realtime", "force_brightness"),
    _checked("RG", "realtime", "disable_gamma_correction"),
    _value("WO", "realtime", "led_offset"),
    _checked("MQ", "mqtt", "enabled"),
    _value("MS", "mqtt", "broker"),
    _value("MQPORT", "mqtt", "port"),
    _value("MQUSER", "mqtt", "username"),
    _value("MQPASS", "mqtt", "password"),
    _value("MQCID", "mqtt", "client_id"),
    _value("MD", "mqtt", "device_topic"),
    _value("MG", "mqtt", "group_topic"),
    _checked("BM", "mqtt", "button_publish"),
    _checked("HP", "hue", "poll_enabled"),
    _checked("HO", "hue", "on_off"),
    _checked("HB", "hue", "brightness"),
    _checked("HC", "hue", "color"),
    _value("HL", "hue", "poll_hue_light"),
    _value("HI", "hue", "poll_interval"),
    _value("DI", "additional", "di"),
    _value("AI", "additional", "ai"),
    _value("AP", "additional", "ap"),
    _value("BD", "additional", "bd"),
    _value("EP", "additional", "ep"),
)

WIRE_FIELDS_BY_KEY: Dict[str, WireField] = {entry.key: entry for entry in WIRE_FIELDS}

HUE_IP_OCTET_KEYS: Tuple[str, str, str, str] = ("H0", "H1", "H2", "H3")


@dataclass
class SettingsDocument:
    """Partially populated snapshot of a device's sync settings.

    Every field is optional; ``None`` means the value was not seen, which is
    distinct from ``False`` for checkbox fields.
    """

    udp: UdpSettings = field(default_factory=UdpSettings)
    sync: SyncSettings = field(default_factory=SyncSettings)
    instance: InstanceSettings = field(default_factory=InstanceSettings)
    realtime: RealtimeSettings = field(default_factory=RealtimeSettings)
    mqtt: MqttSettings = field(default_factory=MqttSettings)
    hue: HueSettings = field(default_factory=HueSettings)
    additional: AdditionalSettings = field(default_factory=AdditionalSettings)

    def get(self, wire_field: WireField) -> Optional[Scalar]:
        return getattr(getattr(self, wire_field.section), wire_field.attr)

    def set(self, wire_field: WireField, value: Optional[Scalar]) -> None:
        setattr(getattr(self, wire_field.section), wire_field.attr, value)

    def values(self) -> Iterator[Tuple[str, str, Optional[Scalar]]]:
        """Yield ``(section, json_name, value)`` for every field."""

        for section_name in SECTIONS:
            section = getattr(self, section_name)
            for item in fields(section):
                yield section_name, item.metadata["name"], getattr(section, item.name)

    def is_empty(self) -> bool:
        return all(value is None for _, _, value in self.values())

    def to_dict(self) -> Dict[str, Dict[str, Optional[Scalar]]]:
        """Return the JSON-ready nested mapping, nulls included."""

        result: Dict[str, Dict[str, Optional[Scalar]]] = {name: {} for name in SECTIONS}
        for section_name, json_name, value in self.values():
            result[section_name][json_name] = value
        return result

    @classmethod
    def from_dict(cls, data: Any) -> "SettingsDocument":
        """Build a document from a saved mapping, honouring legacy field names.

        Unknown keys are ignored and missing sections stay empty.
        """

        document = cls()
        if not isinstance(data, Mapping):
            return document
        for section_name in SECTIONS:
            section = getattr(document, section_name)
            for item in fields(section):
                found, value = _lookup(data, section_name, item.metadata["name"])
                for alias in item.metadata["aliases"]:
                    if found:
                        break
                    alias_section, alias_name = alias.split(".", 1)
                    found, value = _lookup(data, alias_section, alias_name)
                if found:
                    setattr(section, item.name, value)
        return document


def _lookup(data: Mapping[str, Any], section: str, name: str) -> Tuple[bool, Any]:
    values = data.get(section)
    if not isinstance(values, Mapping) or name not in values:
        return False, None
    return True, values[name]
