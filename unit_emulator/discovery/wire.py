"""Wire format for the vendor multicast discovery protocol.

A client multicasts a probe carrying the ASCII keyword ``discover`` and an
``ABTMobile:<uuid>`` token. Units answer with two payloads:

- a legacy reply, one line of space separated ASCII fields, and
- a structured reply, a big-endian tagged record:

  header   80 01 00 01 | u32 len | keyword | u32 0
  section  0c | u16 id
  string   0b | u16 id | u32 len | ascii
  integer  08 | u16 id | u32 value

Section and field numbering is copied from captured traffic. Their meaning
beyond what the field names below say is unknown, so the layout is kept
byte for byte.

Example:
    >>> from unit_emulator.discovery.wire import is_discover_request, build_discover_request
    >>> probe = build_discover_request("ABTMobile:00000000-0000-0000-0000-000000000000")
    >>> len(probe)
    104
    >>> is_discover_request(probe)
    True
"""

import re
import struct
from dataclasses import dataclass
from typing import List, Optional, Tuple

from unit_emulator.core.constants import (
    BACNET_DEFAULT_PORT,
    DISCOVERY_APP_VERSION,
    DISCOVERY_FIRMWARE_INFO,
    DISCOVERY_INTERFACE_NAME,
    DISCOVERY_NETWORK_MASK,
    DISCOVERY_PLATFORM_CODE,
    DISCOVERY_PLATFORM_VERSION,
    DISCOVERY_ZERO_TOKEN,
)

# -- Protocol constants ------------------------------------------------------

REPLY_MAGIC = bytes([0x80, 0x01, 0x00, 0x01])
PROBE_MAGIC = bytes([0x80, 0x01, 0x00, 0x04])
REPLY_KEYWORD = b"identification"
PROBE_KEYWORD = b"discover"
PROBE_QUERY = "?Devices=All"

MARK_SECTION = 0x0C
MARK_STRING = 0x0B
MARK_INTEGER = 0x08
MARK_END = 0x00

NORDIC_SERIAL_PREFIXES = ("8001", "8002", "8003")

_NON_PRINTABLE = re.compile(r"[^\x20-\x7e]+")
_TOKEN = re.compile(r"ABTMobile:[0-9a-fA-F-]{36}")
_SERIAL_DASHED = re.compile(r"\b\d{6}-\d{6}\b")
_SERIAL_COMPACT = re.compile(r"\b\d{12}\b")
_ENDPOINT = re.compile(r"\b(\d{1,3}(?:\.\d{1,3}){3}):(\d{2,5})\b")
_MAC = re.compile(r"\b(?:[0-9A-Fa-f]{2}:){5}[0-9A-Fa-f]{2}\b")
_FIRMWARE = re.compile(r"\bFW[:=]?[A-Za-z0-9._-]+\b", re.IGNORECASE)
_FRIENDLY_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9_]{3,}$")


@dataclass(frozen=True)
class DiscoveryIdentity:
    """Everything a unit says about itself in discovery replies."""

    serial: str
    device_name: str
    firmware: str
    mac_address: str
    advertise_address: str
    bacnet_port: int = BACNET_DEFAULT_PORT
    network_mask: str = DISCOVERY_NETWORK_MASK
    gateway: Optional[str] = None
    platform_code: str = DISCOVERY_PLATFORM_CODE
    platform_version: str = DISCOVERY_PLATFORM_VERSION
    firmware_info: str = DISCOVERY_FIRMWARE_INFO
    interface_name: str = DISCOVERY_INTERFACE_NAME
    app_version: str = DISCOVERY_APP_VERSION

    @property
    def endpoint(self) -> str:
        return f"{self.advertise_address}:{self.bacnet_port}"

    @property
    def effective_gateway(self) -> str:
        return self.gateway or infer_gateway(self.advertise_address)


@dataclass(frozen=True)
class DiscoveredUnit:
    """A unit parsed out of a legacy reply."""

    name: str
    serial: str
    serial_normalized: str
    ip: str
    bacnet_port: int
    mac: Optional[str] = None
    firmware: Optional[str] = None


# -- Helpers -----------------------------------------------------------------


def printable_ascii(data, replacement=" "):
    """Decode bytes as latin-1, collapsing non-printable runs."""
    return _NON_PRINTABLE.sub(replacement, bytes(data).decode("latin-1"))


def infer_gateway(address):
    """Guess a gateway by replacing the last octet of ``address`` with 1.

    Example:
        >>> infer_gateway("192.168.1.42")
        '192.168.1.1'
        >>> infer_gateway("not-an-ip")
        '0.0.0.0'
    """
    parts = address.split(".") if isinstance(address, str) else []
    if len(parts) != 4 or not all(p.isdigit() and int(p) <= 255 for p in parts):
        return "0.0.0.0"
    return ".".join(parts[:3] + ["1"])


def is_discover_request(payload):
    """True if ``payload`` looks like a discovery probe."""
    if len(payload) >= 16 and payload[8:16] == PROBE_KEYWORD:
        return True
    return PROBE_KEYWORD in payload


def extract_client_token(payload):
    """Return the ``ABTMobile:<uuid>`` token of a probe, or the zero token."""
    match = _TOKEN.search(printable_ascii(payload))
    return match.group(0) if match else DISCOVERY_ZERO_TOKEN


def extract_unit_serial(payload):
    """Find a unit serial (``NNNNNN-NNNNNN``) in a reply, or None."""
    ascii_text = printable_ascii(payload)
    dashed = _SERIAL_DASHED.search(ascii_text)
    if dashed:
        return dashed.group(0)
    compact = _SERIAL_COMPACT.search(ascii_text)
    if compact:
        raw = compact.group(0)
        return f"{raw[:6]}-{raw[6:]}"
    return None


# -- Encoding ----------------------------------------------------------------


class ReplyBuilder:
    """Append-only builder for the tagged record format.

    Example:
        >>> ReplyBuilder().section(6).string(2, "~").end().to_bytes().hex(" ")
        '0c 00 06 0b 00 02 00 00 00 01 7e 00'
    """

    def __init__(self):
        self._buf = bytearray()

    def raw(self, data):
        self._buf += data
        return self

    def u32(self, value):
        self._buf += struct.pack(">I", value & 0xFFFFFFFF)
        return self

    def section(self, section_id):
        self._buf += struct.pack(">BH", MARK_SECTION, section_id)
        return self

    def string(self, field_id, value):
        data = value.encode("ascii")
        self._buf += struct.pack(">BHI", MARK_STRING, field_id, len(data))
        self._buf += data
        return self

    def integer(self, field_id, value):
        self._buf += struct.pack(">BHI", MARK_INTEGER, field_id, value & 0xFFFFFFFF)
        return self

    def end(self):
        self._buf.append(MARK_END)
        return self

    def to_bytes(self):
        return bytes(self._buf)


def build_legacy_reply(identity):
    """Single-line ASCII reply understood by older clients."""
    fields = [
        identity.device_name,
        identity.serial,
        identity.endpoint,
        identity.mac_address,
        f"FW:{identity.firmware}",
        "MODE=PL",
    ]
    return " ".join(fields).encode("ascii")


def build_structured_reply(identity, request=b""):
    """Binary identification reply echoing the probe's client token."""
    token = extract_client_token(request)
    b = ReplyBuilder()
    b.raw(REPLY_MAGIC).u32(len(REPLY_KEYWORD)).raw(REPLY_KEYWORD).u32(0)

    b.section(1).string(1, "").string(2, token).integer(3, 0)

    b.section(4).string(1, identity.platform_code).string(2, identity.platform_version).end()

    (b.section(5)
        .integer(1, 2)
        .string(2, identity.device_name)
        .integer(3, 0)
        .string(4, identity.firmware_info)
        .string(5, identity.endpoint)
        .integer(6, 0)
        .end())

    b.section(6).string(1, identity.serial).string(2, "~").string(3, identity.serial).end()

    (b.section(7)
        .string(1, identity.interface_name)
        .integer(2, 0)
        .string(3, identity.advertise_address)
        .string(4, identity.network_mask)
        .string(5, identity.effective_gateway)
        .string(7, identity.mac_address)
        .end())

    b.section(12).raw(b"\x00\x00").string(2, identity.app_version).end()
    return b.to_bytes()


def _probe_tlv(tag, payload):
    data = payload.encode("ascii")
    return bytes([MARK_STRING, 0x00, tag & 0xFF, 0x00, 0x00, 0x00, len(data) & 0xFF]) + data


def build_discover_request(token):
    """Build the 104-byte probe a mobile client multicasts.

    Args:
        token: Client token, ``ABTMobile:<uuid>``

    Returns:
        bytes: Probe datagram
    """
    header = (
        PROBE_MAGIC
        + struct.pack(">I", len(PROBE_KEYWORD))
        + PROBE_KEYWORD
        + bytes([0x00, 0x00, 0x00, 0x00])
        + bytes([MARK_SECTION, 0x00, 0x01, MARK_STRING])
        + bytes([0x00, 0x01, 0x00, 0x00, 0x00, 0x00])
    )
    return header + _probe_tlv(0x02, token) + _probe_tlv(0x03, PROBE_QUERY) + b"\x00\x00"


# -- Decoding ----------------------------------------------------------------


def parse_structured_reply(data):
    """Walk a structured reply into ``(section, field, value)`` triples.

    Zero bytes between records are skipped.

    Returns:
        tuple: (keyword, list of (section_id, field_id, value))

    Raises:
        ValueError: If the header is wrong or a record is truncated.
    """
    if len(data) < 12 or data[:4] != REPLY_MAGIC:
        raise ValueError("not a structured discovery reply")
    (keyword_len,) = struct.unpack_from(">I", data, 4)
    offset = 8 + keyword_len
    if len(data) < offset + 4:
        raise ValueError("truncated header")
    keyword = data[8:offset].decode("ascii")
    offset += 4

    fields: List[Tuple[int, int, object]] = []
    section = 0
    try:
        while offset < len(data):
            mark = data[offset]
            if mark == MARK_END:
                offset += 1
            elif mark == MARK_SECTION:
                (section,) = struct.unpack_from(">H", data, offset + 1)
                offset += 3
            elif mark == MARK_STRING:
                field_id, length = struct.unpack_from(">HI", data, offset + 1)
                start = offset + 7
                if start + length > len(data):
                    raise ValueError(f"truncated string field at offset {offset}")
                fields.append((section, field_id, data[start:start + length].decode("ascii")))
                offset = start + length
            elif mark == MARK_INTEGER:
                field_id, value = struct.unpack_from(">HI", data, offset + 1)
                fields.append((section, field_id, value))
                offset += 7
            else:
                raise ValueError(f"unexpected marker 0x{mark:02x} at offset {offset}")
    except struct.error as e:
        raise ValueError(f"truncated record at offset {offset}") from e
    return keyword, fields


def parse_legacy_reply(payload, source_address):
    """Parse a legacy reply into a DiscoveredUnit.

    Only Nordic serials are accepted. When the reply has no endpoint the
    datagram source address and the default BACnet port are used.

    Returns:
        DiscoveredUnit or None
    """
    ascii_text = printable_ascii(payload).strip()

    serial_match = _SERIAL_DASHED.search(ascii_text)
    if not serial_match:
        return None
    serial = serial_match.group(0)
    normalized = re.sub(r"[^0-9]", "", serial)
    if not normalized.startswith(NORDIC_SERIAL_PREFIXES):
        return None

    endpoint = _ENDPOINT.search(ascii_text)
    ip = endpoint.group(1) if endpoint else source_address
    port = int(endpoint.group(2)) if endpoint else BACNET_DEFAULT_PORT

    mac = _MAC.search(ascii_text)
    firmware = _FIRMWARE.search(ascii_text)

    tokens = ascii_text.split()
    name = next(
        (t for t in tokens if "_" in t and "." not in t and ":" not in t and len(t) >= 4),
        None,
    ) or next(
        (t for t in tokens if _FRIENDLY_NAME.match(t) and ":" not in t and "." not in t),
        "Flexit Unit",
    )

    return DiscoveredUnit(
        name=name,
        serial=serial,
        serial_normalized=normalized,
        ip=ip,
        bacnet_port=port,
        mac=mac.group(0) if mac else None,
        firmware=firmware.group(0) if firmware else None,
    )
