"""Encoder turning a :class:`SettingsDocument` into the ``/settings/sync`` form body."""

from __future__ import annotations

from typing import List, Mapping, Optional, Tuple, Union
from urllib.parse import urlencode

from .settings import HUE_IP_OCTET_KEYS, WIRE_FIELDS_BY_KEY, Scalar, SettingsDocument

# Values the reference device always submits with this form. Their meaning is
# not confirmed against firmware docs, so they are pinned rather than derived.
FORCED_FIELDS: Mapping[str, str] = {
    "G1": "on",
    "R1": "on",
    "PY": "0",
    "AI": "",
    "AP": "0",
    "HL": "2",
    "BD": "10000",
}

HUE_IP = "hue.ip"

ENCODE_ORDER: Tuple[str, ...] = (
    "UP", "U2", "GS", "GR",
    "G1", "G2", "G3", "G4", "G5", "G6", "G7", "G8",
    "R1", "R2", "R3", "R4", "R5", "R6", "R7", "R8",
    "RB", "RC", "RX", "SO", "SG", "SD", "SB", "SH", "SM", "UR",
    "NL", "NB",
    "RD", "MO", "DI", "EP", "EM", "EU", "ES", "DA", "XX", "PY", "DM", "ET", "FB", "RG", "WO",
    "AI", "AP",
    "MQ", "MS", "MQPORT", "MQUSER", "MQPASS", "MQCID", "MD", "MG", "BM",
    "HL", "HI", "HP", "HO", "HB", "HC", HUE_IP,
    "BD",
)


def serialize(value: Union[Scalar, None]) -> str:
    """Render a document value the way the device form submits it."""

    if value is True:
        return "on"
    if value is False:
        return "off"
    return str(value)


def _split_ipv4(address: Optional[Scalar]) -> List[Tuple[str, str]]:
    if not address:
        return []
    return list(zip(HUE_IP_OCTET_KEYS, str(address).split(".")))


def encode_pairs(document: SettingsDocument) -> List[Tuple[str, str]]:
    """Return the ordered ``(key, value)`` form fields for a document."""

    pairs: List[Tuple[str, str]] = []
    for key in ENCODE_ORDER:
        if key == HUE_IP:
            pairs.extend(_split_ipv4(document.hue.ip))
            continue
        if key in FORCED_FIELDS:
            pairs.append((key, FORCED_FIELDS[key]))
            continue
        value = document.get(WIRE_FIELDS_BY_KEY[key])
        if value is not None:
            pairs.append((key, serialize(value)))
    return pairs


def encode_settings(document: SettingsDocument) -> str:
    """Return the URL-encoded form body for ``POST /settings/sync``."""

    return urlencode(encode_pairs(document))
