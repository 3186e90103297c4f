#!/usr/bin/env python3
"""
Ventilation unit emulator runtime.

Starts the discovery responder and the BACnet device for one emulated unit
and drives the unit's simulated clock from a periodic task until SIGINT or
SIGTERM.

Environment:
    EMULATOR_CONFIG     Path to a YAML or JSON config file
    BACNET_IP           BACnet/IP address (overrides config)
    BACNET_PORT         BACnet/IP UDP port (overrides config)
    EMULATOR_LOG_LEVEL  Logging level name (default INFO)
"""

import asyncio
import logging
import os
import signal
from typing import Optional

from unit_emulator.bacnet import BACnetDeviceConfig, create_bacnet_device, update_bacnet_points
from unit_emulator.control import ControlSurface
from unit_emulator.core.config import (
    EmulatorConfig,
    create_emulator_config,
    detect_ipv4_address,
    load_config,
)
from unit_emulator.discovery import DiscoveryIdentity, DiscoveryResponder
from unit_emulator.ventilation_unit import VentilationUnit

logger = logging.getLogger(__name__)


class EmulatorRuntime:
    """
    Owns one emulated unit and the network front ends serving it.

    ``control`` is the HTTP-style control surface over the same unit. No
    transport is started for it here; an external HTTP server mounts it by
    calling ``control.dispatch``.

    Args:
        config: Emulator configuration
    """

    def __init__(self, config: Optional[EmulatorConfig] = None) -> None:
        self.config = config or EmulatorConfig()
        self.unit = VentilationUnit(self.config.identity, self.config.simulation)
        self.control = ControlSurface(self.unit)
        self.advertise_address = (
            self.config.discovery.advertise_address
            or self.config.bacnet.ip_address
            or detect_ipv4_address()
        )
        self.responder: Optional[DiscoveryResponder] = None
        self.bacnet_app = None
        self.exit_event: Optional[asyncio.Event] = None
        self._tick_task: Optional[asyncio.Task] = None

    def build_discovery_identity(self) -> DiscoveryIdentity:
        identity = self.config.identity
        discovery = self.config.discovery
        return DiscoveryIdentity(
            serial=identity.serial,
            device_name=identity.device_name,
            firmware=identity.firmware,
            mac_address=discovery.mac_address,
            advertise_address=self.advertise_address.split("/")[0],
            bacnet_port=self.config.bacnet.port,
            network_mask=discovery.network_mask,
            gateway=discovery.gateway,
            platform_code=discovery.platform_code,
            platform_version=discovery.platform_version,
            firmware_info=discovery.firmware_info,
            interface_name=discovery.interface_name,
            app_version=discovery.app_version,
        )

    @property
    def running(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    async def start(self) -> None:
        """Start discovery, the BACnet device and the tick task."""
        if self.running:
            return
        self.exit_event = asyncio.Event()

        discovery = self.config.discovery
        if discovery.enabled:
            self.responder = DiscoveryResponder(
                self.build_discovery_identity(),
                bind_address=discovery.bind_address,
                probe_group=discovery.probe_group,
                probe_port=discovery.probe_port,
                reply_group=discovery.reply_group,
                reply_port=discovery.reply_port,
                log_traffic=discovery.log_traffic,
            )
            await self.responder.start()

        if self.config.bacnet.enabled:
            device_config = BACnetDeviceConfig.from_config(self.config.bacnet, self.advertise_address)
            try:
                self.bacnet_app = create_bacnet_device(self.unit, device_config)
            except Exception:
                if self.responder is not None:
                    self.responder.stop()
                raise

        self._tick_task = asyncio.create_task(self._run_ticks())
        logger.info(
            "Emulator started: serial=%s device=%s address=%s time_scale=%s",
            self.config.identity.serial,
            self.config.identity.resolved_device_id(),
            self.advertise_address,
            self.unit.time_scale,
        )

    async def _run_ticks(self) -> None:
        interval = self.config.simulation.tick_interval
        try:
            while not self.exit_event.is_set():
                await asyncio.sleep(interval)
                self.unit.tick()
                if self.bacnet_app is not None:
                    try:
                        await update_bacnet_points(self.bacnet_app, self.unit)
                    except Exception as e:
                        logger.error("Error publishing BACnet points: %s", e)
        except asyncio.CancelledError:
            logger.debug("Tick task cancelled")
            raise

    async def stop(self) -> None:
        """Stop all components. Safe to call more than once."""
        if self.exit_event is not None:
            self.exit_event.set()

        if self._tick_task is not None:
            self._tick_task.cancel()
            try:
                await self._tick_task
            except asyncio.CancelledError:
                pass
            self._tick_task = None

        if self.responder is not None:
            self.responder.stop()

        if self.bacnet_app is not None:
            logger.info("Closing BACnet device %s", self.unit.name)
            self.bacnet_app.close()
            self.unit.detach_bacnet_app()
            self.bacnet_app = None

    def request_stop(self) -> None:
        """Ask ``wait`` to return. Safe to call from a signal handler."""
        if self.exit_event is not None:
            self.exit_event.set()

    async def wait(self) -> None:
        """Block until ``stop`` is requested."""
        if self.exit_event is not None:
            await self.exit_event.wait()


def load_runtime_config() -> EmulatorConfig:
    """Build the emulator config from EMULATOR_CONFIG and env overrides."""
    path = os.getenv("EMULATOR_CONFIG")
    config = create_emulator_config(load_config(path) if path else None)

    bacnet_ip = os.getenv("BACNET_IP")
    if bacnet_ip:
        config.bacnet.ip_address = bacnet_ip
    bacnet_port = os.getenv("BACNET_PORT")
    if bacnet_port:
        config.bacnet.port = int(bacnet_port)
    return config


async def run(config: EmulatorConfig) -> None:
    runtime = EmulatorRuntime(config)

    loop = asyncio.get_running_loop()
    await runtime.start()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, runtime.request_stop)

    try:
        await runtime.wait()
    finally:
        await runtime.stop()
        logger.info("Shutdown complete.")


def main() -> None:
    """Console entry point."""
    logging.basicConfig(
        level=os.getenv("EMULATOR_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting ventilation unit emulator")

    config = load_runtime_config()
    logger.info("BACnet IP: %s", config.bacnet.ip_address or "auto")
    logger.info("BACnet Port: %d", config.bacnet.port)

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
