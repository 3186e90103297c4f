"""
Point catalog for the Nordic ventilation unit.

Every point the emulator exposes is declared once in ``DEFAULT_POINTS``.
A point is identified by its (object type code, instance) pair and carries
the metadata the engine needs to validate writes: value kind, access,
range, units and an optional required command priority.

Usage:
    from unit_emulator.catalog.points import PointCatalog

    catalog = PointCatalog()
    setpoint = catalog.by_name("setpoint_home")
    catalog.lookup(setpoint.object_type, setpoint.instance)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, Optional, Tuple

from unit_emulator.core.constants import (
    COMMAND_PRIORITY,
    OBJECT_TYPE_NAMES,
    OBJECT_TYPES,
)

logger = logging.getLogger(__name__)


class CatalogError(ValueError):
    """Raised when a point declaration cannot be resolved."""


class ValueKind(Enum):
    REAL = "real"
    UNSIGNED = "unsigned"
    ENUMERATED = "enumerated"
    BOOLEAN = "boolean"


class Access(Enum):
    READ_ONLY = "R"
    READ_WRITE = "RW"


class PointSource(Enum):
    DOCUMENTED = "documented"
    OBSERVED = "observed"


PointId = Tuple[int, int]


@dataclass(frozen=True)
class Point:
    """
    A single addressable point on the unit.

    Attributes:
        name: Symbolic name, unique in the catalog
        object_type: BACnet object type code
        instance: BACnet object instance
        kind: Value kind used to normalise writes
        access: Read-only or read-write
        source: Whether the point is documented or only observed on real units
        description: Human-readable description
        minimum: Lower bound of the valid range, if any
        maximum: Upper bound of the valid range, if any
        units: Unit label such as "degC"
        required_priority: Command priority a write must carry, if gated
    """

    name: str
    object_type: int
    instance: int
    kind: ValueKind
    access: Access
    source: PointSource
    description: str
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    units: Optional[str] = None
    required_priority: Optional[int] = None

    @property
    def identity(self) -> PointId:
        return (self.object_type, self.instance)

    @property
    def object_type_name(self) -> str:
        return OBJECT_TYPE_NAMES[self.object_type]

    @property
    def writable(self) -> bool:
        return self.access is Access.READ_WRITE

    def in_range(self, value: float) -> bool:
        if self.minimum is not None and value < self.minimum:
            return False
        if self.maximum is not None and value > self.maximum:
            return False
        return True

    def coerce(self, value: float) -> float:
        """Clamp ``value`` into the declared range."""
        if self.minimum is not None and value < self.minimum:
            return self.minimum
        if self.maximum is not None and value > self.maximum:
            return self.maximum
        return value


def point(
    name: str,
    object_type: str,
    instance: int,
    kind: str,
    access: str,
    source: str,
    description: str,
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
    units: Optional[str] = None,
    priority: Optional[int] = None,
) -> Point:
    """
    Declare a point using object type and enum names.

    Raises:
        CatalogError: If the object type or kind is unknown, or min > max
    """
    if object_type not in OBJECT_TYPES:
        raise CatalogError(f"Unknown object type {object_type!r} for point {name}")
    try:
        value_kind = ValueKind(kind)
        point_access = Access(access)
        point_source = PointSource(source)
    except ValueError as e:
        raise CatalogError(f"Invalid declaration for point {name}: {e}") from e
    if minimum is not None and maximum is not None and minimum > maximum:
        raise CatalogError(f"Point {name} has min {minimum} > max {maximum}")

    return Point(
        name=name,
        object_type=OBJECT_TYPES[object_type],
        instance=instance,
        kind=value_kind,
        access=point_access,
        source=point_source,
        description=description,
        minimum=minimum,
        maximum=maximum,
        units=units,
        required_priority=priority,
    )


P13 = COMMAND_PRIORITY

DEFAULT_POINTS: Tuple[Point, ...] = (
    # Operating mode
    point("comfort_button", "binary-value", 50, "boolean", "RW", "documented",
          "Comfort button (home/away)", 0, 1, priority=P13),
    point("operation_mode", "multi-state-value", 361, "enumerated", "R", "documented",
          "Current operating mode", 1, 7),
    point("ventilation_mode", "multi-state-value", 42, "enumerated", "RW", "documented",
          "Ventilation mode (stop/away/home/high)", 1, 4, priority=P13),
    point("cooker_hood", "binary-value", 402, "boolean", "RW", "observed",
          "Cooker hood active", 0, 1, priority=P13),
    point("mode_rf_input", "analog-value", 2125, "real", "R", "observed",
          "Operating mode input from RF", 0, 100),
    # Setpoints
    point("setpoint_away", "analog-value", 1985, "real", "RW", "documented",
          "Supply air setpoint in away mode", 10, 30, "degC", P13),
    point("setpoint_home", "analog-value", 1994, "real", "RW", "documented",
          "Supply air setpoint in home mode", 10, 30, "degC", P13),
    # Temporary ventilation
    point("remaining_fireplace", "analog-value", 2038, "real", "R", "documented",
          "Remaining fireplace ventilation time", 0, 360, "min"),
    point("remaining_rapid", "analog-value", 2031, "real", "R", "documented",
          "Remaining rapid ventilation time", 0, 360, "min"),
    point("remaining_temp_vent", "analog-value", 2005, "real", "R", "observed",
          "Remaining temporary ventilation time", 0, 360, "min"),
    point("runtime_fireplace", "positive-integer-value", 270, "unsigned", "RW", "documented",
          "Fireplace ventilation runtime", 1, 360, "min"),
    point("runtime_rapid", "positive-integer-value", 293, "unsigned", "RW", "documented",
          "Rapid ventilation runtime", 1, 360, "min"),
    point("trigger_fireplace", "multi-state-value", 360, "enumerated", "RW", "documented",
          "Start fireplace ventilation", 1, 2),
    point("trigger_rapid", "multi-state-value", 357, "enumerated", "RW", "documented",
          "Start rapid ventilation", 1, 2),
    point("rapid_active", "binary-value", 15, "boolean", "R", "observed",
          "Rapid ventilation active", 0, 1),
    point("fireplace_active", "binary-value", 400, "boolean", "R", "observed",
          "Fireplace ventilation active", 0, 1),
    point("away_delay_timer", "positive-integer-value", 318, "unsigned", "RW", "documented",
          "Delay before away mode takes effect", 0, 600, "min"),
    point("away_delay_active", "binary-value", 574, "boolean", "R", "observed",
          "Away delay active", 0, 1),
    # Fans
    point("fan_rpm_extract", "analog-input", 12, "real", "R", "documented",
          "Extract fan speed", 0, 18000, "rpm"),
    point("fan_rpm_supply", "analog-input", 5, "real", "R", "documented",
          "Supply fan speed", 0, 18000, "rpm"),
    point("fan_speed_extract_percent", "analog-output", 4, "real", "R", "documented",
          "Extract fan control signal", 0, 100, "%"),
    point("fan_speed_supply_percent", "analog-output", 3, "real", "R", "documented",
          "Supply fan control signal", 0, 100, "%"),
    point("extract_pressure", "analog-input", 72, "real", "R", "documented",
          "Extract air pressure", -3000, 3000, "Pa"),
    point("supply_pressure", "analog-input", 73, "real", "R", "documented",
          "Supply air pressure", -3000, 3000, "Pa"),
    point("fan_profile_supply_high", "analog-value", 1835, "real", "RW", "observed",
          "Supply fan level in high mode", 80, 100, "%", P13),
    point("fan_profile_supply_home", "analog-value", 1836, "real", "RW", "observed",
          "Supply fan level in home mode", 56, 100, "%", P13),
    point("fan_profile_supply_away", "analog-value", 1837, "real", "RW", "observed",
          "Supply fan level in away mode", 30, 80, "%", P13),
    point("fan_profile_supply_fireplace", "analog-value", 1838, "real", "RW", "observed",
          "Supply fan level in fireplace mode", 30, 100, "%", P13),
    point("fan_profile_supply_cooker", "analog-value", 1839, "real", "RW", "observed",
          "Supply fan level with cooker hood", 30, 100, "%", P13),
    point("fan_profile_extract_high", "analog-value", 1840, "real", "RW", "observed",
          "Extract fan level in high mode", 79, 100, "%", P13),
    point("fan_profile_extract_home", "analog-value", 1841, "real", "RW", "observed",
          "Extract fan level in home mode", 55, 99, "%", P13),
    point("fan_profile_extract_away", "analog-value", 1842, "real", "RW", "observed",
          "Extract fan level in away mode", 30, 79, "%", P13),
    point("fan_profile_extract_fireplace", "analog-value", 1843, "real", "RW", "observed",
          "Extract fan level in fireplace mode", 30, 100, "%", P13),
    point("fan_profile_extract_cooker", "analog-value", 1844, "real", "RW", "observed",
          "Extract fan level with cooker hood", 30, 100, "%", P13),
    # Temperatures
    point("temp_exhaust", "analog-input", 11, "real", "R", "documented",
          "Exhaust air temperature", -50, 80, "degC"),
    point("temp_extract_doc", "analog-input", 59, "real", "R", "documented",
          "Extract air temperature", -50, 80, "degC"),
    point("temp_extract", "analog-input", 95, "real", "R", "observed",
          "Extract air temperature (observed)", -50, 80, "degC"),
    point("temp_frost_protection", "analog-input", 31, "real", "R", "documented",
          "Frost protection temperature", -30, 80, "degC"),
    point("temp_outside", "analog-input", 1, "real", "R", "documented",
          "Outdoor air temperature", -50, 50, "degC"),
    point("temp_room", "analog-input", 75, "real", "R", "documented",
          "Room temperature", 0, 50, "degC"),
    point("temp_supply", "analog-input", 4, "real", "R", "documented",
          "Supply air temperature", -50, 80, "degC"),
    # Air quality
    point("humidity_extract", "analog-input", 96, "real", "R", "observed",
          "Relative humidity for extract air (observed)", 0, 100, "%"),
    point("humidity_room_1", "analog-value", 2093, "real", "R", "documented",
          "Room humidity sensor 1", 0, 100, "%"),
    point("humidity_room_2", "analog-value", 2094, "real", "R", "documented",
          "Room humidity sensor 2", 0, 100, "%"),
    point("humidity_room_3", "analog-value", 2095, "real", "R", "documented",
          "Room humidity sensor 3", 0, 100, "%"),
    point("air_quality_input", "analog-input", 50, "real", "R", "documented",
          "Air quality sensor", 0, 2000, "ppm"),
    # Heating and heat recovery
    point("heater_electric_position_percent", "analog-output", 29, "real", "R", "documented",
          "Electric heater output", 0, 100, "%"),
    point("heater_valve_position_percent", "analog-output", 12, "real", "R", "documented",
          "Heating valve position", 0, 100, "%"),
    point("heater_power_kw", "analog-value", 194, "real", "R", "observed",
          "Heating coil electric power", 0, 10, "kW"),
    point("rotor_speed_percent", "analog-output", 0, "real", "R", "documented",
          "Heat recovery rotor speed", 0, 100, "%"),
    # Filter
    point("filter_operating_time", "analog-value", 285, "real", "R", "documented",
          "Filter operating time", 0, 99999, "h"),
    point("filter_exchange_limit", "analog-value", 286, "real", "R", "documented",
          "Filter exchange interval", 0, 99990, "h"),
    point("filter_replace_timer_reset", "multi-state-value", 613, "enumerated", "RW", "documented",
          "Reset filter operating time", 1, 2),
    point("filter_replace_timer_reset_legacy", "multi-state-value", 609, "enumerated", "RW",
          "observed", "Reset filter operating time (older firmware)", 1, 2),
)

# Initial values; points not listed start at 0 (or their minimum).
DEFAULT_POINT_VALUES: Dict[str, float] = {
    "comfort_button": 1,
    "operation_mode": 3,
    "ventilation_mode": 3,
    "setpoint_away": 18.0,
    "setpoint_home": 20.0,
    "runtime_fireplace": 10,
    "runtime_rapid": 10,
    "trigger_fireplace": 1,
    "trigger_rapid": 1,
    "away_delay_timer": 30,
    "fan_rpm_extract": 3000.0,
    "fan_rpm_supply": 3100.0,
    "fan_speed_extract_percent": 79.0,
    "fan_speed_supply_percent": 80.0,
    "fan_profile_supply_high": 100.0,
    "fan_profile_supply_home": 80.0,
    "fan_profile_supply_away": 56.0,
    "fan_profile_supply_fireplace": 90.0,
    "fan_profile_supply_cooker": 90.0,
    "fan_profile_extract_high": 99.0,
    "fan_profile_extract_home": 79.0,
    "fan_profile_extract_away": 55.0,
    "fan_profile_extract_fireplace": 50.0,
    "fan_profile_extract_cooker": 50.0,
    "temp_exhaust": 17.0,
    "temp_extract_doc": 21.0,
    "temp_extract": 21.0,
    "temp_frost_protection": 5.0,
    "temp_outside": 2.0,
    "temp_room": 21.5,
    "temp_supply": 19.5,
    "humidity_extract": 34.0,
    "humidity_room_1": 35.0,
    "humidity_room_2": 36.0,
    "humidity_room_3": 37.0,
    "air_quality_input": 700.0,
    "heater_electric_position_percent": 30.0,
    "heater_power_kw": 0.3,
    "rotor_speed_percent": 55.0,
    "mode_rf_input": 24,
    "filter_operating_time": 1200.0,
    "filter_exchange_limit": 4380.0,
    "filter_replace_timer_reset": 1,
    "filter_replace_timer_reset_legacy": 1,
}


class PointCatalog:
    """
    Immutable, ordered collection of points keyed by identity.

    Duplicate identities collapse with the later declaration winning, while
    the position of the first declaration is kept.
    """

    def __init__(self, points: Optional[Iterable[Point]] = None) -> None:
        by_id: Dict[PointId, Point] = {}
        for p in DEFAULT_POINTS if points is None else points:
            if p.object_type not in OBJECT_TYPE_NAMES:
                raise CatalogError(f"Unmapped object type {p.object_type} for point {p.name}")
            if p.minimum is not None and p.maximum is not None and p.minimum > p.maximum:
                raise CatalogError(f"Point {p.name} has min {p.minimum} > max {p.maximum}")
            if p.identity in by_id:
                logger.debug("Point %s replaces %s at %s", p.name, by_id[p.identity].name, p.identity)
            by_id[p.identity] = p

        self._by_id = by_id
        self._by_name = {p.name: p for p in by_id.values()}
        self._points = tuple(by_id.values())

    def lookup(self, object_type: int, instance: int) -> Optional[Point]:
        return self._by_id.get((object_type, instance))

    def by_name(self, name: str) -> Optional[Point]:
        return self._by_name.get(name)

    def all(self) -> Tuple[Point, ...]:
        return self._points

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[Point]:
        return iter(self._points)

    def __contains__(self, identity: object) -> bool:
        return identity in self._by_id
