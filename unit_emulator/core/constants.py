"""
Protocol and unit constants for the ventilation unit emulator.

This module centralizes the magic numbers used throughout the emulator:
BACnet object type codes and error numbers, the mode code tables used by
the Nordic family, identity defaults and the discovery multicast endpoints.

Usage:
    from unit_emulator.core.constants import OBJECT_TYPES, PROPERTY_PRESENT_VALUE

    code = OBJECT_TYPES["analog-value"]  # 2
"""

from typing import Dict

# =============================================================================
# BACnet Object Types
# =============================================================================

OBJECT_TYPES: Dict[str, int] = {
    "analog-input": 0,
    "analog-output": 1,
    "analog-value": 2,
    "binary-input": 3,
    "binary-output": 4,
    "binary-value": 5,
    "device": 8,
    "multi-state-value": 19,
    "positive-integer-value": 48,
}

OBJECT_TYPE_NAMES: Dict[int, str] = {code: name for name, code in OBJECT_TYPES.items()}

# =============================================================================
# BACnet Properties and Priorities
# =============================================================================

PROPERTY_PRESENT_VALUE: int = 85

COMMAND_PRIORITY: int = 13  # Priority required for commandable Nordic points
COMPAT_FILTER_RESET_PRIORITY: int = 16  # Filter hour reset issued by the mobile app

# =============================================================================
# BACnet Error Classes and Codes
# =============================================================================

ERROR_CLASS_OBJECT: int = 1
ERROR_CLASS_PROPERTY: int = 2
ERROR_CLASS_SERVICES: int = 5

ERROR_CODE_INVALID_DATA_TYPE: int = 9
ERROR_CODE_UNKNOWN_OBJECT: int = 31
ERROR_CODE_VALUE_OUT_OF_RANGE: int = 37
ERROR_CODE_WRITE_ACCESS_DENIED: int = 40
ERROR_CODE_PARAMETER_OUT_OF_RANGE: int = 80

ERROR_CLASS_NAMES: Dict[int, str] = {
    ERROR_CLASS_OBJECT: "object",
    ERROR_CLASS_PROPERTY: "property",
    ERROR_CLASS_SERVICES: "services",
}

ERROR_CODE_NAMES: Dict[int, str] = {
    ERROR_CODE_INVALID_DATA_TYPE: "invalid-data-type",
    ERROR_CODE_UNKNOWN_OBJECT: "unknown-object",
    ERROR_CODE_VALUE_OUT_OF_RANGE: "value-out-of-range",
    ERROR_CODE_WRITE_ACCESS_DENIED: "write-access-denied",
    ERROR_CODE_PARAMETER_OUT_OF_RANGE: "parameter-out-of-range",
}

# =============================================================================
# Mode Code Tables
# =============================================================================

VENTILATION_MODE_HOME: int = 3
VENTILATION_MODE_HIGH: int = 4

OPERATION_MODE_AWAY: int = 2
OPERATION_MODE_HOME: int = 3
OPERATION_MODE_HIGH: int = 4
OPERATION_MODE_COOKER_HOOD: int = 5
OPERATION_MODE_FIREPLACE: int = 6
OPERATION_MODE_TEMPORARY_HIGH: int = 7

TRIGGER_IDLE: int = 1
TRIGGER_ACTIVATE: int = 2

FAN_MODES = ("away", "home", "high", "fireplace")

# Mode input value reported on the RF input point for each fan mode
MODE_RF_INPUT: Dict[str, int] = {
    "away": 2,
    "home": 24,
    "high": 13,
    "fireplace": 26,
}

# =============================================================================
# Unit Identity Defaults
# =============================================================================

DEFAULT_SERIAL: str = "800131-123456"
DEFAULT_DEVICE_NAME: str = "HvacFnct21y_A"
DEFAULT_MODEL_NAME: str = "Flexit Nordic"
DEFAULT_FIRMWARE: str = "03.39.03.38"
DEFAULT_MAC_ADDRESS: str = "00:05:19:22:27:43"
VENDOR_ID: int = 783
VENDOR_NAME: str = "Flexit"

DEVICE_ID_MIN: int = 1000
DEVICE_ID_LIMIT: int = 4194304  # 22-bit BACnet instance space

# =============================================================================
# BACnet Device Defaults
# =============================================================================

BACNET_DEFAULT_PORT: int = 47808
BACNET_MAX_APDU_LENGTH: int = 1476
BACNET_PROTOCOL_VERSION: int = 1
BACNET_PROTOCOL_REVISION: int = 22
BACNET_UPDATE_DELAY_SECONDS: float = 0.01  # Yield between BACnet publishes

# =============================================================================
# Simulation Defaults
# =============================================================================

DEFAULT_TIME_SCALE: float = 60.0  # virtual seconds per real second
MIN_TIME_SCALE: float = 0.1
DEFAULT_TICK_INTERVAL: float = 1.0  # seconds (real time)
DEFAULT_OUTDOOR_BASE_TEMP: float = 2.0  # °C
DEFAULT_OUTDOOR_SWING: float = 3.0  # °C, half of the diurnal range

SECONDS_PER_MINUTE: float = 60.0
SECONDS_PER_HOUR: float = 3600.0
SECONDS_PER_DAY: float = 86400.0

SUPPLY_TIME_CONSTANT: float = 120.0  # seconds
ROOM_TIME_CONSTANT: float = 360.0  # seconds
ROOM_OFFSET: float = 1.0  # °C above the active setpoint
EXTRACT_OFFSET: float = -0.3  # °C relative to room
EXHAUST_OFFSET: float = -2.0  # °C relative to supply

FAN_RPM_PER_PERCENT: float = 39.0
ROTOR_SPEED_AWAY: float = 40.0  # %
ROTOR_SPEED_OCCUPIED: float = 65.0  # %

HEATER_KW_PER_DEGREE: float = 0.18
HEATER_MAX_KW: float = 0.8
FROST_BASE_TEMP: float = 5.0  # °C
FROST_KW_GAIN: float = 2.0  # °C per kW

HUMIDITY_BASE_AWAY: float = 32.0  # %
HUMIDITY_BASE_OCCUPIED: float = 36.0  # %
HUMIDITY_SWING: float = 1.8  # %
AIR_QUALITY_BASE: float = 700.0  # ppm
AIR_QUALITY_SWING: float = 60.0  # ppm

# =============================================================================
# Discovery Protocol
# =============================================================================

DISCOVERY_PROBE_GROUP: str = "224.0.0.180"
DISCOVERY_PROBE_PORT: int = 30000
DISCOVERY_REPLY_GROUP: str = "224.0.0.181"
DISCOVERY_REPLY_PORT: int = 30001

DISCOVERY_PLATFORM_CODE: str = "160100F2C5"
DISCOVERY_PLATFORM_VERSION: str = "POS3.67"
DISCOVERY_FIRMWARE_INFO: str = "FW=03.39.03.38:BL=00.05.02.0003;SVS-300.4:SBC=13.24;"
DISCOVERY_INTERFACE_NAME: str = "Eth"
DISCOVERY_APP_VERSION: str = "2.11.0"
DISCOVERY_NETWORK_MASK: str = "255.255.255.0"
DISCOVERY_ZERO_TOKEN: str = "ABTMobile:00000000-0000-0000-0000-000000000000"

# =============================================================================
# Control Surface
# =============================================================================

CONTROL_MAX_BODY_BYTES: int = 512000
