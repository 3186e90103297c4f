"""
BACnet device for an emulated ventilation unit.

The unit is served by a single bacpypes3 ``Application`` built from JSON:
a device object carrying the unit identity, one network-port object (real
BACnet/IP or a virtual network for tests) and one object per catalog point.

Usage:
    from unit_emulator.bacnet.device import BACnetDeviceConfig, create_bacnet_device

    app = create_bacnet_device(unit, BACnetDeviceConfig(ip_address="192.168.1.20/24"))
"""

import logging
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from bacpypes3.apdu import SimpleAckPDU, WritePropertyRequest
from bacpypes3.app import Application

from unit_emulator.bacnet.points import create_bacnet_point, is_present_value
from unit_emulator.core.config import BACnetConfig, UnitIdentityConfig
from unit_emulator.core.constants import (
    BACNET_DEFAULT_PORT,
    BACNET_MAX_APDU_LENGTH,
    BACNET_PROTOCOL_REVISION,
    BACNET_PROTOCOL_VERSION,
    DISCOVERY_NETWORK_MASK,
)
from unit_emulator.discovery.wire import infer_gateway

if TYPE_CHECKING:
    from unit_emulator.ventilation_unit import VentilationUnit

logger = logging.getLogger(__name__)

PACKAGE_NAME = "hvac-unit-emulator"
DEFAULT_VLAN_NAME = "vlan"
DEFAULT_VLAN_MAC = "0x01"


def hex_to_padded_octets(hex_string: str) -> str:
    """Left-pad a hex MAC such as "0x1" to whole octets ("0x01")."""
    digits = hex_string.replace("0x", "")
    if len(digits) % 2:
        digits = "0" + digits
    return "0x" + digits


def get_package_version() -> str:
    """Installed package version, reported as the application software version."""
    try:
        return version(PACKAGE_NAME)
    except PackageNotFoundError:
        return "0.0.0-dev"


@dataclass
class BACnetDeviceConfig:
    """
    Network settings for the unit's BACnet device.

    Setting ``ip_address`` serves the device on BACnet/IP. Without it the
    device joins the virtual network ``vlan_name`` at ``mac_address``,
    which is how the tests run it.

    Attributes:
        ip_address: Bind address, CIDR suffix allowed ("192.168.1.20/24")
        subnet_mask: Advertised subnet mask
        gateway: Advertised gateway, derived from ip_address if None
        port: BACnet/IP UDP port
        vlan_name: Virtual network name
        mac_address: Hex MAC on the virtual network
        description: Device description prefix, the serial is appended
    """

    ip_address: Optional[str] = None
    subnet_mask: str = DISCOVERY_NETWORK_MASK
    gateway: Optional[str] = None
    port: int = BACNET_DEFAULT_PORT
    vlan_name: Optional[str] = None
    mac_address: Optional[str] = None
    description: str = "Emulated ventilation unit"

    @classmethod
    def from_config(cls, config: BACnetConfig, default_ip: Optional[str] = None) -> "BACnetDeviceConfig":
        """Build from the runtime config. A configured vlan_name wins over any address."""
        return cls(
            ip_address=None if config.vlan_name else (config.ip_address or default_ip),
            subnet_mask=config.subnet_mask,
            gateway=config.gateway,
            port=config.port,
            vlan_name=config.vlan_name,
            mac_address=config.mac_address,
        )

    def is_ip_mode(self) -> bool:
        return self.ip_address is not None

    def is_vlan_mode(self) -> bool:
        return self.vlan_name is not None

    @property
    def host(self) -> Optional[str]:
        """ip_address without its CIDR suffix."""
        if self.ip_address is None:
            return None
        return self.ip_address.split("/")[0]


class UnitApplication(Application):
    """
    Application that hands present-value writes to unit objects undecoded.

    The stock service decodes the written value with the object's own
    datatype first, which rejects any other numeric application tag. Unit
    objects decode the value by its actual tag and let the unit validate it.
    """

    async def do_WritePropertyRequest(self, apdu: WritePropertyRequest) -> None:
        obj = self.get_object_id(apdu.objectIdentifier)
        if getattr(obj, "_unit", None) is None or not is_present_value(apdu.propertyIdentifier):
            await super().do_WritePropertyRequest(apdu)
            return

        await obj.write_property(
            apdu.propertyIdentifier,
            apdu.propertyValue,
            apdu.propertyArrayIndex,
            apdu.priority,
        )
        await self.response(SimpleAckPDU(context=apdu))


def _device_object(identity: UnitIdentityConfig, description: str) -> Dict[str, Any]:
    return {
        "object-identifier": f"device,{identity.resolved_device_id()}",
        "object-name": identity.device_name,
        "object-type": "device",
        "description": f"{description} {identity.serial}",
        "vendor-identifier": identity.vendor_id,
        "vendor-name": identity.vendor_name,
        "model-name": identity.model_name,
        "firmware-revision": identity.firmware,
        "application-software-version": get_package_version(),
        "protocol-version": BACNET_PROTOCOL_VERSION,
        "protocol-revision": BACNET_PROTOCOL_REVISION,
        "max-apdu-length-accepted": BACNET_MAX_APDU_LENGTH,
        "segmentation-supported": "no-segmentation",
        "apdu-timeout": 3000,
        "apdu-segment-timeout": 1000,
        "number-of-apdu-retries": 3,
        "database-revision": 1,
        "system-status": "operational",
    }


def _ipv4_port(config: BACnetDeviceConfig) -> Dict[str, Any]:
    host = config.host
    return {
        "object-identifier": "network-port,1",
        "object-name": "BACnet-IP-Port",
        "object-type": "network-port",
        "network-type": "ipv4",
        "protocol-level": "bacnet-application",
        "bacnet-ip-mode": "normal",
        "ip-address": host,
        "ip-subnet-mask": config.subnet_mask,
        "ip-default-gateway": config.gateway or infer_gateway(host),
        "bacnet-ip-udp-port": config.port,
        "changes-pending": False,
        "out-of-service": False,
        "reliability": "no-fault-detected",
    }


def _virtual_port(config: BACnetDeviceConfig) -> Dict[str, Any]:
    return {
        "object-identifier": "network-port,1",
        "object-name": "VirtualPort",
        "object-type": "network-port",
        "network-type": "virtual",
        "protocol-level": "bacnet-application",
        "network-interface-name": config.vlan_name or DEFAULT_VLAN_NAME,
        "mac-address": hex_to_padded_octets(config.mac_address or DEFAULT_VLAN_MAC),
        "out-of-service": False,
        "reliability": "no-fault-detected",
    }


def _build_device_config(unit: "VentilationUnit", config: BACnetDeviceConfig) -> List[Dict[str, Any]]:
    """Device and network-port objects in the form ``Application.from_json`` takes."""
    port = _ipv4_port(config) if config.is_ip_mode() else _virtual_port(config)
    return [_device_object(unit.identity, config.description), port]


def create_bacnet_device(
    unit: "VentilationUnit", config: Optional[BACnetDeviceConfig] = None
) -> "Application":
    """
    Serve ``unit`` as a BACnet device.

    Every catalog point becomes an object whose present-value writes are
    routed through the unit, and the application is attached to the unit.

    Args:
        unit: Emulated unit
        config: Network settings, a virtual network if None

    Returns:
        The running bacpypes3 Application; close it with ``app.close()``
    """
    config = config or BACnetDeviceConfig()
    if config.is_ip_mode():
        logger.info("Creating BACnet device %s on %s:%d", unit.name, config.host, config.port)
    else:
        logger.info(
            "Creating BACnet device %s on virtual network %s",
            unit.name,
            config.vlan_name or DEFAULT_VLAN_NAME,
        )

    app = UnitApplication.from_json(_build_device_config(unit, config))

    values = unit.get_process_variables()
    objects = [create_bacnet_point(p, values[p.name], unit) for p in unit.catalog]
    for obj in objects:
        if obj is not None:
            app.add_object(obj)
    logger.info(
        "BACnet device %s serving %d points",
        unit.name,
        sum(obj is not None for obj in objects),
    )

    unit.attach_bacnet_app(app)
    return app
