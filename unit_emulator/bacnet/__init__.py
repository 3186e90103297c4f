"""BACnet front end for the emulated unit."""

from unit_emulator.bacnet.device import BACnetDeviceConfig, create_bacnet_device
from unit_emulator.bacnet.points import create_bacnet_point, update_bacnet_points

__all__ = [
    "BACnetDeviceConfig",
    "create_bacnet_device",
    "update_bacnet_points",
    "create_bacnet_point",
]
