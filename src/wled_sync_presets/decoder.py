"""Decoder for the settings script served by ``/settings/s.js``."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Pattern, Sequence, Tuple

from .logging import get_logger
from .settings import HUE_IP_OCTET_KEYS, WIRE_FIELDS, FieldKind, SettingsDocument

DEFAULT_FORM_PREFIX = "d.Sf"

# Rendered in place of an octet the script did not assign; kept so a partial
# address remains visible in saved snapshots.
MISSING_OCTET = "null"

_logger = get_logger("wled_sync.codec")


@dataclass
class ScriptTokens:
    """Assignments found in a settings script, first occurrence per key."""

    values: Dict[str, str] = field(default_factory=dict)
    checked: Dict[str, bool] = field(default_factory=dict)

    def lookup(self, key: str, kind: FieldKind) -> Optional[Any]:
        if kind is FieldKind.CHECKED:
            return self.checked.get(key)
        return self.values.get(key)


def _patterns(prefix: str) -> Tuple[Pattern[str], Pattern[str]]:
    escaped = re.escape(prefix)
    value_re = re.compile(
        escaped + r'\.(?P<key>[A-Za-z0-9]+)\.value=(?P<raw>\d+|"[^"]*")'
    )
    checked_re = re.compile(escaped + r"\.(?P<key>[A-Za-z0-9]+)\.checked=(?P<raw>\d)")
    return value_re, checked_re


def tokenize(script: str, prefix: str = DEFAULT_FORM_PREFIX) -> ScriptTokens:
    """Collect ``value=`` and ``checked=`` assignments for every form key."""

    value_re, checked_re = _patterns(prefix)
    tokens = ScriptTokens()
    for match in value_re.finditer(script):
        raw = match.group("raw")
        if raw.startswith('"'):
            raw = raw[1:-1]
        tokens.values.setdefault(match.group("key"), raw)
    for match in checked_re.finditer(script):
        tokens.checked.setdefault(match.group("key"), match.group("raw") == "1")
    return tokens


def assemble_ipv4(octets: Sequence[Optional[str]]) -> Optional[str]:
    """Join four extracted octets into a dotted address.

    Returns ``None`` when no octet was found at all. When only some are
    missing, each gap is rendered as :data:`MISSING_OCTET`.
    """

    if all(octet is None for octet in octets):
        return None
    return ".".join(MISSING_OCTET if octet is None else str(octet) for octet in octets)


def decode_settings(payload: Any, prefix: str = DEFAULT_FORM_PREFIX) -> SettingsDocument:
    """Parse a settings script into a :class:`SettingsDocument`.

    Missing keys decode to ``None``. Input that is not text, or is empty,
    yields a document with every field unset.
    """

    document = SettingsDocument()
    if isinstance(payload, (bytes, bytearray)):
        payload = bytes(payload).decode("utf-8", errors="replace")
    if not isinstance(payload, str) or not payload:
        _logger.debug(
            "Settings payload is empty or not text",
            extra={"payload_type": type(payload).__name__},
        )
        return document

    tokens = tokenize(payload, prefix)
    for wire_field in WIRE_FIELDS:
        document.set(wire_field, tokens.lookup(wire_field.key, wire_field.kind))
    document.hue.ip = assemble_ipv4(
        [tokens.values.get(key) for key in HUE_IP_OCTET_KEYS]
    )
    _logger.debug(
        "Decoded settings script",
        extra={"values": len(tokens.values), "checked": len(tokens.checked)},
    )
    return document
