"""
Multicast discovery responder.

Listens for discovery probes on the probe group and answers with a legacy
and a structured reply. Replies are sent from the probe socket so their
source port matches real units. The reply group is also joined, and replies
from other units seen there are logged once per distinct payload.

Usage:
    from unit_emulator.discovery import DiscoveryIdentity, DiscoveryResponder

    responder = DiscoveryResponder(identity, bind_address="192.168.1.20")
    await responder.start()
    ...
    responder.stop()
"""

import asyncio
import hashlib
import logging
import socket
from typing import FrozenSet, Optional, Tuple

from unit_emulator.core.constants import (
    DISCOVERY_PROBE_GROUP,
    DISCOVERY_PROBE_PORT,
    DISCOVERY_REPLY_GROUP,
    DISCOVERY_REPLY_PORT,
)
from unit_emulator.discovery.wire import (
    DiscoveryIdentity,
    build_legacy_reply,
    build_structured_reply,
    extract_unit_serial,
    is_discover_request,
    printable_ascii,
)

logger = logging.getLogger(__name__)

Address = Tuple[str, int]

HEX_ROW_BYTES = 32


class _ProbeProtocol(asyncio.DatagramProtocol):
    def __init__(self, responder: "DiscoveryResponder") -> None:
        self._responder = responder

    def datagram_received(self, data: bytes, addr: Address) -> None:
        self._responder.handle_probe(data, addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning("Discovery probe socket error: %s", exc)


class _ReplyObserverProtocol(asyncio.DatagramProtocol):
    def __init__(self, responder: "DiscoveryResponder") -> None:
        self._responder = responder

    def datagram_received(self, data: bytes, addr: Address) -> None:
        self._responder.observe_reply(data, addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning("Discovery reply socket error: %s", exc)


class DiscoveryResponder:
    """
    Answers discovery probes on behalf of one emulated unit.

    The responder is either ``stopped`` or ``listening``. ``start`` is a
    no-op while listening and raises ``OSError`` if either port cannot be
    bound. Failing to join a multicast group is logged and the responder
    keeps serving unicast probes.

    Args:
        identity: Identity advertised in replies
        bind_address: Local interface address, or None for all interfaces
        probe_group: Multicast group probes are sent to
        probe_port: Port probes are sent to (and replies are sent from)
        reply_group: Multicast group replies are sent to
        reply_port: Port replies are sent to
        log_traffic: Log every probe and observed reply at INFO
    """

    def __init__(
        self,
        identity: DiscoveryIdentity,
        bind_address: Optional[str] = None,
        probe_group: str = DISCOVERY_PROBE_GROUP,
        probe_port: int = DISCOVERY_PROBE_PORT,
        reply_group: str = DISCOVERY_REPLY_GROUP,
        reply_port: int = DISCOVERY_REPLY_PORT,
        log_traffic: bool = True,
    ) -> None:
        self.identity = identity
        self.bind_address = bind_address
        self.probe_group = probe_group
        self.probe_port = probe_port
        self.reply_group = reply_group
        self.reply_port = reply_port
        self.log_traffic = log_traffic

        self._probe_transport: Optional[asyncio.DatagramTransport] = None
        self._reply_transport: Optional[asyncio.DatagramTransport] = None
        self._last_observed_signature: Optional[str] = None
        self._observed_serials = set()
        self.replies_sent = 0

    @property
    def state(self) -> str:
        return "listening" if self._probe_transport is not None else "stopped"

    @property
    def observed_serials(self) -> FrozenSet[str]:
        return frozenset(self._observed_serials)

    def _log(self, msg: str, *args) -> None:
        if self.log_traffic:
            logger.info(msg, *args)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Bind both sockets, join the groups and begin serving probes."""
        if self._probe_transport is not None:
            return

        loop = asyncio.get_running_loop()
        probe_sock = self._open_socket(self.probe_port)
        try:
            reply_sock = self._open_socket(self.reply_port)
        except OSError:
            probe_sock.close()
            raise

        self._join_group(probe_sock, self.probe_group)
        self._configure_sender(probe_sock)
        self._join_group(reply_sock, self.reply_group)

        try:
            self._probe_transport, _ = await loop.create_datagram_endpoint(
                lambda: _ProbeProtocol(self), sock=probe_sock
            )
            self._reply_transport, _ = await loop.create_datagram_endpoint(
                lambda: _ReplyObserverProtocol(self), sock=reply_sock
            )
        except Exception:
            self.stop()
            probe_sock.close()
            reply_sock.close()
            raise

        self._log(
            "Discovery listening on %s:%d group=%s replying via %s:%d serial=%s",
            self.bind_address or "0.0.0.0",
            self.probe_port,
            self.probe_group,
            self.reply_group,
            self.reply_port,
            self.identity.serial,
        )

    def stop(self) -> None:
        """Close both sockets. Safe to call when already stopped."""
        for transport in (self._probe_transport, self._reply_transport):
            if transport is not None:
                transport.close()
        if self._probe_transport is not None:
            logger.info("Discovery responder stopped")
        self._probe_transport = None
        self._reply_transport = None

    def _open_socket(self, port: int) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.bind_address or "", port))
        except OSError:
            sock.close()
            raise
        sock.setblocking(False)
        return sock

    def _join_group(self, sock: socket.socket, group: str) -> None:
        interface = self.bind_address or "0.0.0.0"
        try:
            mreq = socket.inet_aton(group) + socket.inet_aton(interface)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
        except OSError as e:
            logger.error("Failed to join multicast group %s on %s: %s", group, interface, e)

    def _configure_sender(self, sock: socket.socket) -> None:
        try:
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 1)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, 1)
        except OSError as e:
            logger.error("Failed to configure multicast sending: %s", e)
        if self.bind_address:
            try:
                sock.setsockopt(
                    socket.IPPROTO_IP,
                    socket.IP_MULTICAST_IF,
                    socket.inet_aton(self.bind_address),
                )
            except OSError as e:
                logger.error("Failed to set multicast interface %s: %s", self.bind_address, e)

    # ------------------------------------------------------------------
    # Datagram handling
    # ------------------------------------------------------------------

    def _send(self, payload: bytes, destination: Address) -> bool:
        if self._probe_transport is None:
            return False
        try:
            self._probe_transport.sendto(payload, destination)
        except OSError as e:
            logger.warning("Failed to send discovery reply to %s:%d: %s", *destination, e)
            return False
        self.replies_sent += 1
        return True

    def handle_probe(self, data: bytes, addr: Address) -> bool:
        """
        Answer a datagram received on the probe socket.

        Returns:
            True if the datagram was a probe and replies were attempted
        """
        host, port = addr[0], addr[1]
        self._log("Discovery RX %s:%d len=%d", host, port, len(data))
        if not is_discover_request(data):
            logger.debug("Ignored datagram from %s:%d (not a discover request)", host, port)
            return False

        legacy = build_legacy_reply(self.identity)
        structured = build_structured_reply(self.identity, data)

        self._send(structured, (self.reply_group, self.reply_port))
        self._send(structured, (host, self.reply_port))
        self._send(legacy, (host, self.reply_port))
        if port != self.reply_port:
            self._send(structured, (host, port))
            self._send(legacy, (host, port))

        self._log(
            "Discovery TX legacy len=%d structured len=%d to %s:%d and %s:%d/%d serial=%s",
            len(legacy),
            len(structured),
            self.reply_group,
            self.reply_port,
            host,
            self.reply_port,
            port,
            self.identity.serial,
        )
        return True

    def _is_self_address(self, host: str) -> bool:
        return host in ("127.0.0.1", self.bind_address, self.identity.advertise_address)

    def observe_reply(self, data: bytes, addr: Address) -> bool:
        """
        Log a reply from another unit seen on the reply group.

        Returns:
            True if the reply was logged, False if skipped as self traffic
            or a repeat of the previous payload
        """
        host, port = addr[0], addr[1]
        if self._is_self_address(host):
            return False

        signature = hashlib.md5(data).hexdigest()
        if signature == self._last_observed_signature:
            return False
        self._last_observed_signature = signature

        serial = extract_unit_serial(data)
        self._log(
            "Observed external reply from %s:%d bytes=%d serial=%s",
            host,
            port,
            len(data),
            serial or "unknown",
        )
        if serial and serial not in self._observed_serials:
            self._observed_serials.add(serial)
            self._log("External unit serial detected: %s (from %s:%d)", serial, host, port)

        if logger.isEnabledFor(logging.DEBUG):
            for offset in range(0, len(data), HEX_ROW_BYTES):
                row = data[offset:offset + HEX_ROW_BYTES].hex()
                logger.debug("ext hex %04x: %s", offset, row)
            logger.debug("ext ascii: %s", printable_ascii(data, "."))
        return True
