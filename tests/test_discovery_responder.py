"""Tests for the multicast discovery responder."""

import asyncio
import socket
import unittest

from unit_emulator.discovery import (
    DiscoveryIdentity,
    DiscoveryResponder,
    build_discover_request,
    build_legacy_reply,
    parse_structured_reply,
)
from unit_emulator.discovery.wire import REPLY_MAGIC

TOKEN = "ABTMobile:11111111-2222-3333-4444-555555555555"
LOGGER = "unit_emulator.discovery.responder"


def free_udp_port():
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def make_identity():
    return DiscoveryIdentity(
        serial="800131-123456",
        device_name="HvacFnct21y_A",
        firmware="03.39.03.38",
        mac_address="00:05:19:22:27:43",
        advertise_address="192.168.1.20",
    )


class _Collector(asyncio.DatagramProtocol):
    def __init__(self, queue):
        self.queue = queue

    def datagram_received(self, data, addr):
        self.queue.put_nowait((data, addr))


class TestResponderHandlers(unittest.TestCase):
    """Test datagram handling without sockets."""

    def setUp(self):
        self.responder = DiscoveryResponder(make_identity(), bind_address="10.0.0.2")

    def test_initially_stopped(self):
        self.assertEqual(self.responder.state, "stopped")
        self.assertEqual(self.responder.observed_serials, frozenset())

    def test_stop_when_not_started(self):
        self.responder.stop()
        self.responder.stop()
        self.assertEqual(self.responder.state, "stopped")

    def test_non_probe_is_ignored(self):
        self.assertFalse(self.responder.handle_probe(b"hello", ("10.0.0.9", 5000)))
        self.assertEqual(self.responder.replies_sent, 0)

    def test_probe_without_socket_sends_nothing(self):
        probe = build_discover_request(TOKEN)
        self.assertTrue(self.responder.handle_probe(probe, ("10.0.0.9", 5000)))
        self.assertEqual(self.responder.replies_sent, 0)

    def test_probe_is_logged(self):
        with self.assertLogs(LOGGER, level="INFO") as logs:
            self.responder.handle_probe(build_discover_request(TOKEN), ("10.0.0.9", 5000))
        self.assertTrue(any("Discovery RX 10.0.0.9:5000" in line for line in logs.output))
        self.assertTrue(any("Discovery TX" in line for line in logs.output))

    def test_observe_external_reply(self):
        reply = b"Other_Unit 800131-000099 10.0.0.9:47808"
        with self.assertLogs(LOGGER, level="INFO") as logs:
            self.assertTrue(self.responder.observe_reply(reply, ("10.0.0.9", 30001)))
        self.assertIn("800131-000099", self.responder.observed_serials)
        self.assertTrue(any("External unit serial detected" in line for line in logs.output))

    def test_observe_skips_repeated_payload(self):
        reply = b"Other_Unit 800131-000099"
        self.assertTrue(self.responder.observe_reply(reply, ("10.0.0.9", 30001)))
        self.assertFalse(self.responder.observe_reply(reply, ("10.0.0.9", 30001)))
        self.assertTrue(self.responder.observe_reply(reply + b" ", ("10.0.0.9", 30001)))

    def test_observe_skips_own_addresses(self):
        reply = b"Other_Unit 800131-000099"
        for host in ("127.0.0.1", "10.0.0.2", "192.168.1.20"):
            self.assertFalse(self.responder.observe_reply(reply, (host, 30001)))
        self.assertEqual(self.responder.observed_serials, frozenset())

    def test_quiet_mode_logs_nothing_at_info(self):
        responder = DiscoveryResponder(make_identity(), log_traffic=False)
        with self.assertRaises(AssertionError):
            with self.assertLogs(LOGGER, level="INFO"):
                responder.handle_probe(build_discover_request(TOKEN), ("10.0.0.9", 5000))


class TestResponderSockets(unittest.IsolatedAsyncioTestCase):
    """Test the responder over loopback sockets."""

    async def asyncSetUp(self):
        self.probe_port = free_udp_port()
        self.reply_port = free_udp_port()
        self.responder = DiscoveryResponder(
            make_identity(),
            bind_address="127.0.0.1",
            probe_port=self.probe_port,
            reply_port=self.reply_port,
            log_traffic=False,
        )

    async def asyncTearDown(self):
        self.responder.stop()

    async def test_start_and_stop(self):
        await self.responder.start()
        self.assertEqual(self.responder.state, "listening")
        await self.responder.start()
        self.assertEqual(self.responder.state, "listening")
        self.responder.stop()
        self.assertEqual(self.responder.state, "stopped")

    async def test_bind_failure_propagates(self):
        responder = DiscoveryResponder(
            make_identity(),
            bind_address="203.0.113.77",
            probe_port=self.probe_port,
            reply_port=self.reply_port,
        )
        with self.assertRaises(OSError):
            await responder.start()
        self.assertEqual(responder.state, "stopped")

    async def test_probe_gets_both_replies_at_source_port(self):
        await self.responder.start()

        loop = asyncio.get_running_loop()
        queue = asyncio.Queue()
        transport, _ = await loop.create_datagram_endpoint(
            lambda: _Collector(queue), local_addr=("127.0.0.1", 0)
        )
        try:
            transport.sendto(build_discover_request(TOKEN), ("127.0.0.1", self.probe_port))
            received = [await asyncio.wait_for(queue.get(), timeout=2.0) for _ in range(2)]
        finally:
            transport.close()

        payloads = {data[:4]: (data, addr) for data, addr in received}
        self.assertIn(REPLY_MAGIC, payloads)
        structured, addr = payloads[REPLY_MAGIC]
        # Replies come from the probe port
        self.assertEqual(addr[1], self.probe_port)
        _, fields = parse_structured_reply(structured)
        self.assertIn((1, 2, TOKEN), fields)

        legacy = [data for data, _ in received if data[:4] != REPLY_MAGIC]
        self.assertEqual(legacy, [build_legacy_reply(make_identity())])
        self.assertGreaterEqual(self.responder.replies_sent, 4)


if __name__ == "__main__":
    unittest.main()
