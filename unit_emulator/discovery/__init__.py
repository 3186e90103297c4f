"""Vendor multicast discovery: wire format and responder."""

from unit_emulator.discovery.responder import DiscoveryResponder
from unit_emulator.discovery.wire import (
    DiscoveredUnit,
    DiscoveryIdentity,
    ReplyBuilder,
    build_discover_request,
    build_legacy_reply,
    build_structured_reply,
    extract_client_token,
    extract_unit_serial,
    infer_gateway,
    is_discover_request,
    parse_legacy_reply,
    parse_structured_reply,
)

__all__ = [
    "DiscoveredUnit",
    "DiscoveryIdentity",
    "DiscoveryResponder",
    "ReplyBuilder",
    "build_discover_request",
    "build_legacy_reply",
    "build_structured_reply",
    "extract_client_token",
    "extract_unit_serial",
    "infer_gateway",
    "is_discover_request",
    "parse_legacy_reply",
    "parse_structured_reply",
]
