"""Integration tests for the emulator runtime.

Runs the unit, discovery responder and tick task together on loopback.
"""

import asyncio
import os
import socket
import unittest
from unittest import mock

from unit_emulator.core.config import (
    BACnetConfig,
    DiscoveryConfig,
    EmulatorConfig,
    SimulationConfig,
)
from unit_emulator.discovery import build_discover_request, parse_structured_reply
from unit_emulator.discovery.wire import REPLY_MAGIC
from unit_emulator.main import EmulatorRuntime, load_runtime_config, run

TOKEN = "ABTMobile:aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee"


def free_udp_port():
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def loopback_config(**simulation):
    return EmulatorConfig(
        simulation=SimulationConfig(**simulation),
        discovery=DiscoveryConfig(
            bind_address="127.0.0.1",
            advertise_address="127.0.0.1",
            probe_port=free_udp_port(),
            reply_port=free_udp_port(),
            log_traffic=False,
        ),
        bacnet=BACnetConfig(enabled=False),
    )


class _Collector(asyncio.DatagramProtocol):
    def __init__(self, queue):
        self.queue = queue

    def datagram_received(self, data, addr):
        self.queue.put_nowait(data)


class TestEmulatorRuntime(unittest.IsolatedAsyncioTestCase):
    """Test the runtime lifecycle."""

    async def asyncSetUp(self):
        self.runtime = EmulatorRuntime(loopback_config(time_scale=600, tick_interval=0.05))

    async def asyncTearDown(self):
        await self.runtime.stop()

    async def test_ticks_advance_the_clock(self):
        await self.runtime.start()
        self.assertTrue(self.runtime.running)
        await asyncio.sleep(0.3)
        self.assertGreater(self.runtime.unit.clock, 0.0)

    async def test_stop_is_idempotent(self):
        await self.runtime.start()
        await self.runtime.stop()
        await self.runtime.stop()
        self.assertFalse(self.runtime.running)
        self.assertEqual(self.runtime.responder.state, "stopped")

    async def test_discovery_advertises_runtime_identity(self):
        await self.runtime.start()
        identity = self.runtime.build_discovery_identity()
        self.assertEqual(identity.endpoint, "127.0.0.1:47808")
        self.assertEqual(identity.serial, "800131-123456")

        loop = asyncio.get_running_loop()
        queue = asyncio.Queue()
        transport, _ = await loop.create_datagram_endpoint(
            lambda: _Collector(queue), local_addr=("127.0.0.1", 0)
        )
        try:
            transport.sendto(
                build_discover_request(TOKEN),
                ("127.0.0.1", self.runtime.config.discovery.probe_port),
            )
            replies = [await asyncio.wait_for(queue.get(), timeout=2.0) for _ in range(2)]
        finally:
            transport.close()

        structured = next(data for data in replies if data[:4] == REPLY_MAGIC)
        _, fields = parse_structured_reply(structured)
        self.assertIn((1, 2, TOKEN), fields)
        self.assertIn((5, 5, "127.0.0.1:47808"), fields)

    async def test_control_surface_shares_the_unit(self):
        await self.runtime.start()
        response = self.runtime.control.dispatch("POST", "/feature/mode", {"mode": "high"})
        self.assertEqual(response.status, 200)
        self.assertEqual(self.runtime.unit.get_mode(), "high")

    async def test_request_stop_releases_wait(self):
        await self.runtime.start()
        waiter = asyncio.create_task(self.runtime.wait())
        await asyncio.sleep(0)
        self.assertFalse(waiter.done())

        self.runtime.request_stop()
        await asyncio.wait_for(waiter, timeout=1.0)

    async def test_signal_handler_ends_run(self):
        loop = asyncio.get_running_loop()
        handlers = []
        with mock.patch.object(
            loop, "add_signal_handler", side_effect=lambda sig, cb: handlers.append(cb)
        ):
            task = asyncio.create_task(run(loopback_config(tick_interval=0.05)))
            while len(handlers) < 2:
                await asyncio.sleep(0.01)
            handlers[0]()
            await asyncio.wait_for(task, timeout=2.0)


class TestRuntimeConfig(unittest.TestCase):
    """Test environment overrides."""

    def test_env_overrides(self):
        env = {"BACNET_IP": "10.1.2.3", "BACNET_PORT": "47809"}
        with mock.patch.dict(os.environ, env, clear=False):
            os.environ.pop("EMULATOR_CONFIG", None)
            config = load_runtime_config()
        self.assertEqual(config.bacnet.ip_address, "10.1.2.3")
        self.assertEqual(config.bacnet.port, 47809)

    def test_advertise_address_falls_back_to_bacnet_ip(self):
        config = EmulatorConfig(bacnet=BACnetConfig(ip_address="10.1.2.3", enabled=False))
        runtime = EmulatorRuntime(config)
        self.assertEqual(runtime.advertise_address, "10.1.2.3")


if __name__ == "__main__":
    unittest.main()
