"""
Configuration management for the ventilation unit emulator.

This module provides typed configuration dataclasses for the unit identity,
the simulation clock, the discovery responder and the BACnet front end, with
support for loading from YAML or JSON files.

Usage:
    from unit_emulator.core.config import (
        EmulatorConfig,
        UnitIdentityConfig,
        create_emulator_config,
        load_config,
    )

    # Load from file
    config = create_emulator_config(load_config("emulator.yaml"))

    # Or use defaults
    identity = UnitIdentityConfig(serial="800131-000042")
"""

import json
import logging
import socket
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from unit_emulator.core.constants import (
    BACNET_DEFAULT_PORT,
    DEFAULT_DEVICE_NAME,
    DEFAULT_FIRMWARE,
    DEFAULT_MAC_ADDRESS,
    DEFAULT_MODEL_NAME,
    DEFAULT_OUTDOOR_BASE_TEMP,
    DEFAULT_OUTDOOR_SWING,
    DEFAULT_SERIAL,
    DEFAULT_TICK_INTERVAL,
    DEFAULT_TIME_SCALE,
    DEVICE_ID_LIMIT,
    DEVICE_ID_MIN,
    DISCOVERY_APP_VERSION,
    DISCOVERY_FIRMWARE_INFO,
    DISCOVERY_INTERFACE_NAME,
    DISCOVERY_NETWORK_MASK,
    DISCOVERY_PLATFORM_CODE,
    DISCOVERY_PLATFORM_VERSION,
    DISCOVERY_PROBE_GROUP,
    DISCOVERY_PROBE_PORT,
    DISCOVERY_REPLY_GROUP,
    DISCOVERY_REPLY_PORT,
    MIN_TIME_SCALE,
    VENDOR_ID,
    VENDOR_NAME,
)

logger = logging.getLogger(__name__)


def derive_device_id(serial: str) -> int:
    """
    Derive a BACnet device instance from a unit serial number.

    The digits of the serial are folded into the 22-bit instance space,
    keeping clear of the low instances real units tend to use.

    Args:
        serial: Serial number such as "800131-123456"

    Returns:
        Device instance in [1000, 4194303]

    Example:
        >>> derive_device_id("800131-123456")
        2594912
    """
    digits = "".join(ch for ch in serial if ch.isdigit())
    if not digits or int(digits) <= 0:
        return DEVICE_ID_MIN
    return DEVICE_ID_MIN + int(digits) % (DEVICE_ID_LIMIT - DEVICE_ID_MIN)


def detect_ipv4_address() -> str:
    """Best-effort guess of the host's outward-facing IPv4 address."""
    probe = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # No packet is sent; connecting only selects a route.
        probe.connect(("10.255.255.255", 1))
        return probe.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        probe.close()


@dataclass
class UnitIdentityConfig:
    """Identity the emulated unit reports over BACnet and discovery."""

    serial: str = DEFAULT_SERIAL
    device_id: Optional[int] = None  # Derived from serial if None
    device_name: str = DEFAULT_DEVICE_NAME
    model_name: str = DEFAULT_MODEL_NAME
    firmware: str = DEFAULT_FIRMWARE
    vendor_name: str = VENDOR_NAME
    vendor_id: int = VENDOR_ID

    def resolved_device_id(self) -> int:
        if self.device_id is not None:
            return self.device_id
        return derive_device_id(self.serial)


@dataclass
class SimulationConfig:
    """Configuration for the simulated clock."""

    time_scale: float = DEFAULT_TIME_SCALE  # virtual seconds per real second
    tick_interval: float = DEFAULT_TICK_INTERVAL  # real seconds between ticks
    outdoor_base_temp: float = DEFAULT_OUTDOOR_BASE_TEMP  # °C
    outdoor_swing: float = DEFAULT_OUTDOOR_SWING  # °C

    def __post_init__(self) -> None:
        if self.time_scale < MIN_TIME_SCALE:
            logger.warning(
                "time_scale %s below minimum, using %s", self.time_scale, MIN_TIME_SCALE
            )
            self.time_scale = MIN_TIME_SCALE
        if self.tick_interval <= 0:
            raise ValueError(f"tick_interval must be positive, got {self.tick_interval}")


@dataclass
class DiscoveryConfig:
    """Configuration for the multicast discovery responder."""

    enabled: bool = True
    bind_address: Optional[str] = None  # Listen on all interfaces if None
    advertise_address: Optional[str] = None  # Auto-detect if None
    probe_group: str = DISCOVERY_PROBE_GROUP
    probe_port: int = DISCOVERY_PROBE_PORT
    reply_group: str = DISCOVERY_REPLY_GROUP
    reply_port: int = DISCOVERY_REPLY_PORT
    mac_address: str = DEFAULT_MAC_ADDRESS
    network_mask: str = DISCOVERY_NETWORK_MASK
    gateway: Optional[str] = None  # Inferred from advertise_address if None
    platform_code: str = DISCOVERY_PLATFORM_CODE
    platform_version: str = DISCOVERY_PLATFORM_VERSION
    firmware_info: str = DISCOVERY_FIRMWARE_INFO
    interface_name: str = DISCOVERY_INTERFACE_NAME
    app_version: str = DISCOVERY_APP_VERSION
    log_traffic: bool = True


@dataclass
class BACnetConfig:
    """Configuration for the BACnet/IP front end."""

    enabled: bool = True
    ip_address: Optional[str] = None  # Same as discovery advertise address if None
    subnet_mask: str = DISCOVERY_NETWORK_MASK
    gateway: Optional[str] = None
    port: int = BACNET_DEFAULT_PORT
    vlan_name: Optional[str] = None  # Virtual network for testing
    mac_address: Optional[str] = None  # Virtual network MAC


@dataclass
class EmulatorConfig:
    """Complete emulator configuration."""

    identity: UnitIdentityConfig = field(default_factory=UnitIdentityConfig)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    bacnet: BACnetConfig = field(default_factory=BACnetConfig)


YAML_SUFFIXES = (".yaml", ".yml")


def _config_format(path: Path) -> str:
    if path.suffix in YAML_SUFFIXES:
        return "yaml"
    if path.suffix == ".json":
        return "json"
    raise ValueError(f"Unsupported config file format: {path.suffix}")


def load_config(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a YAML or JSON config file into a plain dict.

    An empty YAML file yields an empty dict.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the suffix is neither YAML nor JSON
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    fmt = _config_format(path)
    with open(path, "r") as f:
        data = yaml.safe_load(f) if fmt == "yaml" else json.load(f)
    logger.debug("Loaded %s config from %s", fmt, path)
    return data or {}


def save_config(config: Dict[str, Any], path: Union[str, Path]) -> None:
    """Write a config dict as YAML or JSON, chosen by the file suffix."""
    path = Path(path)
    fmt = _config_format(path)
    with open(path, "w") as f:
        if fmt == "yaml":
            yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
        else:
            json.dump(config, f, indent=2)


def config_to_dict(config: Any) -> Dict[str, Any]:
    """Plain-dict form of a config dataclass, as accepted by ``save_config``."""
    return asdict(config)


def create_emulator_config(data: Optional[Dict[str, Any]]) -> EmulatorConfig:
    """
    Create an EmulatorConfig from a dictionary.

    Missing sections fall back to their defaults. Unknown keys inside a
    section raise TypeError, the same as passing them to the dataclass.
    """
    data = dict(data or {})
    unknown = set(data) - {"identity", "simulation", "discovery", "bacnet"}
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")

    return EmulatorConfig(
        identity=UnitIdentityConfig(**(data.get("identity") or {})),
        simulation=SimulationConfig(**(data.get("simulation") or {})),
        discovery=DiscoveryConfig(**(data.get("discovery") or {})),
        bacnet=BACnetConfig(**(data.get("bacnet") or {})),
    )


def get_default_config() -> EmulatorConfig:
    """Get a default emulator configuration for testing."""
    return EmulatorConfig(
        identity=UnitIdentityConfig(),
        simulation=SimulationConfig(),
        discovery=DiscoveryConfig(),
        bacnet=BACnetConfig(),
    )
