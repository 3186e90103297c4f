"""Core configuration, constants and result types for the unit emulator."""

from unit_emulator.core.config import (
    # Config dataclasses
    UnitIdentityConfig,
    SimulationConfig,
    DiscoveryConfig,
    BACnetConfig,
    EmulatorConfig,
    # Config utilities
    load_config,
    save_config,
    config_to_dict,
    create_emulator_config,
    get_default_config,
    derive_device_id,
)
from unit_emulator.core.constants import (
    OBJECT_TYPES,
    PROPERTY_PRESENT_VALUE,
    COMMAND_PRIORITY,
    FAN_MODES,
    BACNET_DEFAULT_PORT,
    VENDOR_ID,
    VENDOR_NAME,
)
from unit_emulator.core.results import (
    ErrorKind,
    Failure,
    OperationResult,
    Success,
    failure,
)

__all__ = [
    # Config dataclasses
    "UnitIdentityConfig",
    "SimulationConfig",
    "DiscoveryConfig",
    "BACnetConfig",
    "EmulatorConfig",
    # Config utilities
    "load_config",
    "save_config",
    "config_to_dict",
    "create_emulator_config",
    "get_default_config",
    "derive_device_id",
    # Protocol constants
    "OBJECT_TYPES",
    "PROPERTY_PRESENT_VALUE",
    "COMMAND_PRIORITY",
    "FAN_MODES",
    "BACNET_DEFAULT_PORT",
    "VENDOR_ID",
    "VENDOR_NAME",
    # Results
    "ErrorKind",
    "Failure",
    "OperationResult",
    "Success",
    "failure",
]
