"""
Simulated Nordic ventilation unit.

The ``VentilationUnit`` owns every mutable value of the emulated unit: point
values, temporary ventilation timers, the away delay, filter counters and the
simulated clock. Protocol front ends (BACnet, control surface) only talk to
the unit through the operations below; none of them raise for domain errors,
they return ``Success`` or ``Failure`` from ``unit_emulator.core.results``.

Time only moves when ``advance_simulated_seconds`` or ``tick`` is called.
After each mutation or time advance the derived points (mode, fan speeds,
temperatures, humidity, heater, flags) are recomputed.
"""

import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from unit_emulator.catalog.points import (
    DEFAULT_POINT_VALUES,
    DEFAULT_POINTS,
    Point,
    PointCatalog,
    ValueKind,
)
from unit_emulator.core.config import SimulationConfig, UnitIdentityConfig
from unit_emulator.core.constants import (
    COMMAND_PRIORITY,
    COMPAT_FILTER_RESET_PRIORITY,
    EXHAUST_OFFSET,
    EXTRACT_OFFSET,
    FAN_RPM_PER_PERCENT,
    MODE_RF_INPUT,
    OPERATION_MODE_AWAY,
    OPERATION_MODE_COOKER_HOOD,
    OPERATION_MODE_FIREPLACE,
    OPERATION_MODE_HIGH,
    OPERATION_MODE_HOME,
    OPERATION_MODE_TEMPORARY_HIGH,
    PROPERTY_PRESENT_VALUE,
    ROOM_OFFSET,
    ROOM_TIME_CONSTANT,
    ROTOR_SPEED_AWAY,
    ROTOR_SPEED_OCCUPIED,
    SECONDS_PER_HOUR,
    SECONDS_PER_MINUTE,
    SUPPLY_TIME_CONSTANT,
    TRIGGER_ACTIVATE,
    TRIGGER_IDLE,
    VENTILATION_MODE_HIGH,
    VENTILATION_MODE_HOME,
)
from unit_emulator.core.results import ErrorKind, OperationResult, Success, failure
from unit_emulator.equipment.base import SimulatedEquipment
from unit_emulator.physics.climate import (
    air_quality,
    clamp,
    extract_humidity,
    frost_protection_temperature,
    heater_position,
    heater_power,
    outdoor_temperature,
    relax_toward,
    round_to,
)

logger = logging.getLogger(__name__)

# Point writes issued by set_fan_mode, all at the command priority
FAN_MODE_WRITES: Dict[str, Tuple[Tuple[str, int], ...]] = {
    "away": (("comfort_button", 0),),
    "home": (("comfort_button", 1), ("ventilation_mode", VENTILATION_MODE_HOME)),
    "high": (("comfort_button", 1), ("ventilation_mode", VENTILATION_MODE_HIGH)),
    "fireplace": (("trigger_fireplace", TRIGGER_ACTIVATE),),
}

FILTER_RESET_POINTS = ("filter_replace_timer_reset", "filter_replace_timer_reset_legacy")

TIMER_MIN_MINUTES = 1.0
TIMER_MAX_MINUTES = 360.0


def parse_number(value: Any) -> Optional[float]:
    """Parse a loosely typed value into a finite float, or None."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def normalize_value(p: Point, value: float) -> float:
    """Round a value to the representation used by the point's kind."""
    if p.kind is ValueKind.REAL:
        return round_to(value, 3)
    return float(round(value))


class VentilationUnit(SimulatedEquipment):
    """
    Simulated heat-recovery ventilation unit.

    Args:
        identity: Identity reported over BACnet and discovery
        simulation: Clock and climate settings
        catalog: Point catalog (defaults to the Nordic catalog)

    Example:
        >>> unit = VentilationUnit()
        >>> unit.set_fan_mode("high").ok
        True
        >>> unit.get_mode()
        'high'
    """

    def __init__(
        self,
        identity: Optional[UnitIdentityConfig] = None,
        simulation: Optional[SimulationConfig] = None,
        catalog: Optional[PointCatalog] = None,
    ) -> None:
        self.identity = identity or UnitIdentityConfig()
        self.simulation = simulation or SimulationConfig()
        self.catalog = catalog or PointCatalog()
        super().__init__(self.identity.device_name)

        self._values: Dict[Tuple[int, int], float] = {}
        for p in self.catalog:
            initial = DEFAULT_POINT_VALUES.get(p.name, 0.0)
            self._values[p.identity] = p.coerce(float(initial))

        self._clock = 0.0
        self._rapid_minutes = self._get("remaining_rapid")
        self._fireplace_minutes = self._get("remaining_fireplace")
        self._away_delay_minutes = 0.0
        self._mode = "home"
        self._recompute(0.0)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def clock(self) -> float:
        """Simulated seconds elapsed since the unit was created."""
        return self._clock

    @property
    def time_scale(self) -> float:
        return self.simulation.time_scale

    def get_mode(self) -> str:
        return self._mode

    def get_identity(self) -> Dict[str, Any]:
        return {
            "serial": self.identity.serial,
            "device_id": self.identity.resolved_device_id(),
            "device_name": self.identity.device_name,
            "model_name": self.identity.model_name,
            "firmware": self.identity.firmware,
            "vendor_name": self.identity.vendor_name,
            "vendor_id": self.identity.vendor_id,
        }

    def get_timers(self) -> Dict[str, float]:
        return {
            "rapid_minutes": round_to(self._rapid_minutes, 2),
            "fireplace_minutes": round_to(self._fireplace_minutes, 2),
            "away_delay_minutes": round_to(self._away_delay_minutes, 2),
        }

    def read(self, object_type: int, instance: int) -> OperationResult:
        """Read the present value of a point."""
        p = self.catalog.lookup(object_type, instance)
        if p is None:
            return failure(ErrorKind.UNKNOWN_POINT, f"Unknown object {object_type}:{instance}")
        return Success(self._values[p.identity])

    def read_by_name(self, name: str) -> OperationResult:
        p = self.catalog.by_name(name)
        if p is None:
            return failure(ErrorKind.UNKNOWN_POINT, f"Unknown point {name}")
        return Success(self._values[p.identity])

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def write_present_value(
        self,
        object_type: int,
        instance: int,
        property_id: int,
        value: Any,
        priority: Optional[int] = None,
    ) -> OperationResult:
        """
        Write a point's present value through the priority-gated write path.

        Args:
            object_type: BACnet object type code
            instance: Object instance
            property_id: Property identifier; only present-value changes state
            value: Number, numeric string or bool
            priority: Command priority carried by the write, if any

        Returns:
            Success, or a Failure of kind InvalidValue, UnknownPoint,
            WriteAccessDenied, PriorityRejected or OutOfRange
        """
        number = parse_number(value)
        if number is None:
            return failure(ErrorKind.INVALID_VALUE, f"Value {value!r} is not numeric")

        p = self.catalog.lookup(object_type, instance)
        if p is None:
            return failure(ErrorKind.UNKNOWN_POINT, f"Unknown object {object_type}:{instance}")

        if property_id != PROPERTY_PRESENT_VALUE:
            logger.debug("Ignoring write to property %s of %s", property_id, p.name)
            return Success()

        checked = self._validate_write(p, number, priority)
        if not checked.ok:
            logger.info("Rejected write to %s: %s", p.name, checked.message)
            return checked

        self._apply_write(p, checked.value)
        self._recompute(0.0)
        return Success()

    def set_fan_mode(self, mode: str) -> OperationResult:
        """
        Switch the unit to one of the user fan modes.

        Every point write for the mode is validated before any is applied,
        so a failure leaves the unit untouched.
        """
        writes = FAN_MODE_WRITES.get(mode) if isinstance(mode, str) else None
        if writes is None:
            return failure(ErrorKind.INVALID_MODE, f"Unknown mode {mode!r}")

        planned = []
        for name, value in writes:
            p = self.catalog.by_name(name)
            if p is None:
                return failure(ErrorKind.UNKNOWN_POINT, f"Missing point {name}")
            checked = self._validate_write(p, float(value), COMMAND_PRIORITY)
            if not checked.ok:
                return checked
            planned.append((p, checked.value))

        for p, value in planned:
            self._apply_write(p, value)
        self._recompute(0.0)
        logger.info("Fan mode set to %s (effective mode %s)", mode, self._mode)
        return Success()

    def set_home_setpoint(self, value: Any) -> OperationResult:
        return self._write_by_name("setpoint_home", value, COMMAND_PRIORITY)

    def set_away_setpoint(self, value: Any) -> OperationResult:
        return self._write_by_name("setpoint_away", value, COMMAND_PRIORITY)

    def start_rapid(self, minutes: Any = None) -> OperationResult:
        """Start rapid ventilation for ``minutes`` (or the configured runtime)."""
        result = self._start_temporary("runtime_rapid", minutes)
        if result.ok:
            self._rapid_minutes = result.value
            self._recompute(0.0)
            logger.info("Rapid ventilation started for %s min", result.value)
        return result

    def start_fireplace(self, minutes: Any = None) -> OperationResult:
        """Start fireplace ventilation for ``minutes`` (or the configured runtime)."""
        result = self._start_temporary("runtime_fireplace", minutes)
        if result.ok:
            self._fireplace_minutes = result.value
            self._recompute(0.0)
            logger.info("Fireplace ventilation started for %s min", result.value)
        return result

    def replace_filter(self) -> OperationResult:
        p = self.catalog.by_name("filter_operating_time")
        if p is None:
            return failure(ErrorKind.UNKNOWN_POINT, "Missing point filter_operating_time")
        self._values[p.identity] = 0.0
        self._recompute(0.0)
        logger.info("Filter replaced")
        return Success()

    def set_filter_operating_hours(self, hours: Any) -> OperationResult:
        return self._set_simulated_point("filter_operating_time", hours, 3)

    def set_filter_limit_hours(self, hours: Any) -> OperationResult:
        return self._set_simulated_point("filter_exchange_limit", hours, 0)

    # ------------------------------------------------------------------
    # Time
    # ------------------------------------------------------------------

    def advance_simulated_seconds(self, seconds: Any) -> OperationResult:
        """
        Advance the simulated clock.

        The advance is split wherever a rapid, fireplace or away-delay timer
        runs out, so each piece relaxes toward the setpoint of the mode in
        effect for it. Advancing a + b seconds therefore lands on the same
        state as advancing a and then b seconds.

        Args:
            seconds: Simulated seconds, must be finite and positive

        Returns:
            Success, or Failure(InvalidDuration)
        """
        elapsed = parse_number(seconds)
        if isinstance(seconds, bool) or elapsed is None or elapsed <= 0:
            return failure(ErrorKind.INVALID_DURATION, f"Duration must be positive, got {seconds!r}")

        if round(self._get("comfort_button")) != 0:
            self._away_delay_minutes = 0.0

        remaining = elapsed
        while remaining > 0:
            step = min([remaining] + self._timer_expiries())
            self._advance_segment(step)
            remaining -= step
        return Success()

    def _timer_expiries(self) -> List[float]:
        """Seconds until each running timer reaches zero."""
        return [
            minutes * SECONDS_PER_MINUTE
            for minutes in (self._rapid_minutes, self._fireplace_minutes, self._away_delay_minutes)
            if minutes > 0
        ]

    def _advance_segment(self, seconds: float) -> None:
        minutes = seconds / SECONDS_PER_MINUTE

        def countdown(timer: float) -> float:
            left = timer - minutes
            # Timers within a microsecond of expiry count as expired
            if left * SECONDS_PER_MINUTE < 1e-6:
                return 0.0
            return left

        self._clock += seconds
        self._rapid_minutes = countdown(self._rapid_minutes)
        self._fireplace_minutes = countdown(self._fireplace_minutes)
        self._away_delay_minutes = countdown(self._away_delay_minutes)
        self._recompute(seconds)

    def tick(self) -> OperationResult:
        """Advance by one tick interval scaled to simulated time."""
        return self.advance_simulated_seconds(
            self.simulation.tick_interval * self.simulation.time_scale
        )

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get_filter_status(self) -> Dict[str, float]:
        operating = round_to(self._get("filter_operating_time"), 3)
        limit = round_to(self._get("filter_exchange_limit"), 3)
        if limit > 0:
            remaining = round_to(clamp((1 - operating / limit) * 100, 0.0, 100.0), 1)
        else:
            remaining = 0.0
        return {
            "operating_hours": operating,
            "limit_hours": limit,
            "remaining_percent": remaining,
        }

    def get_point_snapshots(self) -> List[Dict[str, Any]]:
        """Catalog metadata and current value for every point."""
        return [
            {
                "name": p.name,
                "object_type": p.object_type,
                "object_type_name": p.object_type_name,
                "instance": p.instance,
                "kind": p.kind.value,
                "access": p.access.value,
                "source": p.source.value,
                "description": p.description,
                "min": p.minimum,
                "max": p.maximum,
                "units": p.units,
                "required_priority": p.required_priority,
                "value": self._values[p.identity],
            }
            for p in self.catalog
        ]

    def snapshot(self) -> Dict[str, Any]:
        return {
            "identity": self.get_identity(),
            "time_scale": self.simulation.time_scale,
            "clock_seconds": self._clock,
            "mode": self._mode,
            "timers": self.get_timers(),
            "points": self.get_point_snapshots(),
        }

    def summary(self) -> Dict[str, Any]:
        get = self._get
        return {
            "mode": self._mode,
            "setpoints": {
                "home": get("setpoint_home"),
                "away": get("setpoint_away"),
            },
            "temperatures": {
                "supply": round_to(get("temp_supply"), 3),
                "extract": round_to(get("temp_extract"), 3),
                "outdoor": round_to(get("temp_outside"), 3),
                "room": round_to(get("temp_room"), 3),
            },
            "humidity": {
                "extract": round_to(get("humidity_extract"), 3),
                "room": round_to(get("humidity_room_1"), 3),
            },
            "fan": {
                "supply_percent": round_to(get("fan_speed_supply_percent"), 2),
                "extract_percent": round_to(get("fan_speed_extract_percent"), 2),
                "supply_rpm": round_to(get("fan_rpm_supply"), 0),
                "extract_rpm": round_to(get("fan_rpm_extract"), 0),
            },
            "filter": self.get_filter_status(),
            "timers": self.get_timers(),
        }

    def get_process_variables(self) -> Dict[str, Any]:
        return {p.name: self._values[p.identity] for p in self.catalog}

    @classmethod
    def get_process_variables_metadata(cls) -> Dict[str, Dict[str, Any]]:
        return {
            p.name: {
                "type": float if p.kind is ValueKind.REAL else int,
                "label": p.description,
                "unit": p.units,
            }
            for p in DEFAULT_POINTS
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get(self, name: str) -> float:
        p = self.catalog.by_name(name)
        if p is None:
            return 0.0
        return self._values[p.identity]

    def _set(self, name: str, value: float) -> None:
        """Store an engine-derived value, coerced into the point's range."""
        p = self.catalog.by_name(name)
        if p is not None:
            self._values[p.identity] = p.coerce(float(value))

    def _validate_write(self, p: Point, number: float, priority: Optional[int]) -> OperationResult:
        compat_reset = (
            p.name == "filter_operating_time"
            and abs(number) < 0.001
            and priority == COMPAT_FILTER_RESET_PRIORITY
        )
        if not p.writable and not compat_reset:
            return failure(ErrorKind.WRITE_ACCESS_DENIED, f"{p.name} is read-only")
        if p.required_priority is not None and priority != p.required_priority and not compat_reset:
            return failure(
                ErrorKind.PRIORITY_REJECTED,
                f"{p.name} requires priority {p.required_priority}, got {priority}",
            )

        normalized = normalize_value(p, number)
        if not p.in_range(normalized):
            return failure(
                ErrorKind.OUT_OF_RANGE,
                f"{normalized} outside [{p.minimum}, {p.maximum}] for {p.name}",
            )
        return Success(normalized)

    def _apply_write(self, p: Point, value: float) -> None:
        self._values[p.identity] = value

        if p.name == "comfort_button":
            if value == 0:
                self._away_delay_minutes = self._get("away_delay_timer")
            else:
                self._away_delay_minutes = 0.0
        elif p.name == "trigger_rapid" and value == TRIGGER_ACTIVATE:
            self._rapid_minutes = clamp(self._get("runtime_rapid"), TIMER_MIN_MINUTES, TIMER_MAX_MINUTES)
        elif p.name == "trigger_fireplace" and value == TRIGGER_ACTIVATE:
            self._fireplace_minutes = clamp(
                self._get("runtime_fireplace"), TIMER_MIN_MINUTES, TIMER_MAX_MINUTES
            )
        elif p.name in FILTER_RESET_POINTS and value == TRIGGER_ACTIVATE:
            self._set("filter_operating_time", 0.0)
            logger.info("Filter operating time reset via %s", p.name)

    def _write_by_name(self, name: str, value: Any, priority: Optional[int]) -> OperationResult:
        p = self.catalog.by_name(name)
        if p is None:
            return failure(ErrorKind.UNKNOWN_POINT, f"Missing point {name}")
        return self.write_present_value(p.object_type, p.instance, PROPERTY_PRESENT_VALUE, value, priority)

    def _start_temporary(self, runtime_name: str, minutes: Any) -> OperationResult:
        runtime = self.catalog.by_name(runtime_name)
        if runtime is None:
            return failure(ErrorKind.UNKNOWN_POINT, f"Missing point {runtime_name}")

        if minutes is not None:
            number = parse_number(minutes)
            if number is None:
                return failure(ErrorKind.INVALID_VALUE, f"Minutes {minutes!r} is not numeric")
            normalized = float(round(number))
            if number <= 0 or not runtime.in_range(normalized):
                return failure(
                    ErrorKind.OUT_OF_RANGE,
                    f"{minutes} min outside [{runtime.minimum}, {runtime.maximum}]",
                )
            self._values[runtime.identity] = normalized

        return Success(clamp(self._values[runtime.identity], TIMER_MIN_MINUTES, TIMER_MAX_MINUTES))

    def _set_simulated_point(self, name: str, value: Any, digits: int) -> OperationResult:
        p = self.catalog.by_name(name)
        if p is None:
            return failure(ErrorKind.UNKNOWN_POINT, f"Missing point {name}")
        number = parse_number(value)
        if number is None:
            return failure(ErrorKind.INVALID_VALUE, f"Value {value!r} is not numeric")
        normalized = round_to(number, digits)
        if not p.in_range(normalized):
            return failure(
                ErrorKind.OUT_OF_RANGE,
                f"{normalized} outside [{p.minimum}, {p.maximum}] for {name}",
            )
        self._values[p.identity] = normalized
        self._recompute(0.0)
        return Success()

    def _compute_mode(self) -> str:
        if self._fireplace_minutes > 0:
            return "fireplace"
        if self._rapid_minutes > 0:
            return "high"
        if round(self._get("comfort_button")) == 0 and self._away_delay_minutes <= 0:
            return "away"

        ventilation = round(self._get("ventilation_mode"))
        if ventilation == VENTILATION_MODE_HIGH:
            return "high"
        if ventilation == VENTILATION_MODE_HOME:
            return "home"
        return "away"

    def _fan_targets(self, cooker_hood: bool) -> Tuple[float, float]:
        if self._mode == "fireplace":
            profile = "fireplace"
        elif cooker_hood:
            profile = "cooker"
        else:
            profile = self._mode
        return (
            self._get(f"fan_profile_supply_{profile}"),
            self._get(f"fan_profile_extract_{profile}"),
        )

    def _recompute(self, elapsed: float) -> None:
        # Timer points
        self._set("remaining_rapid", round_to(self._rapid_minutes, 3))
        self._set("remaining_fireplace", round_to(self._fireplace_minutes, 3))
        self._set("remaining_temp_vent", round_to(self._rapid_minutes, 3))
        self._set("trigger_rapid", TRIGGER_IDLE)
        self._set("trigger_fireplace", TRIGGER_IDLE)
        for name in FILTER_RESET_POINTS:
            self._set(name, TRIGGER_IDLE)

        previous = self._mode
        self._mode = self._compute_mode()
        if previous != self._mode:
            logger.info("Mode changed from %s to %s", previous, self._mode)
        away = self._mode == "away"
        cooker_hood = round(self._get("cooker_hood")) == 1

        self._set("rapid_active", 1 if self._rapid_minutes > 0 else 0)
        self._set("fireplace_active", 1 if self._fireplace_minutes > 0 else 0)
        self._set(
            "away_delay_active",
            1 if round(self._get("comfort_button")) == 0 and self._away_delay_minutes > 0 else 0,
        )
        self._set("mode_rf_input", MODE_RF_INPUT[self._mode])

        if self._fireplace_minutes > 0:
            operation_mode = OPERATION_MODE_FIREPLACE
        elif self._rapid_minutes > 0:
            operation_mode = OPERATION_MODE_TEMPORARY_HIGH
        elif cooker_hood:
            operation_mode = OPERATION_MODE_COOKER_HOOD
        elif self._mode == "home":
            operation_mode = OPERATION_MODE_HOME
        elif self._mode == "high":
            operation_mode = OPERATION_MODE_HIGH
        else:
            operation_mode = OPERATION_MODE_AWAY
        self._set("operation_mode", operation_mode)

        # Fans
        supply_percent, extract_percent = self._fan_targets(cooker_hood)
        self._set("fan_speed_supply_percent", supply_percent)
        self._set("fan_speed_extract_percent", extract_percent)
        self._set("fan_rpm_supply", supply_percent * FAN_RPM_PER_PERCENT)
        self._set("fan_rpm_extract", extract_percent * FAN_RPM_PER_PERCENT)
        self._set("rotor_speed_percent", ROTOR_SPEED_AWAY if away else ROTOR_SPEED_OCCUPIED)
        self._set("extract_pressure", 0.0)
        self._set("supply_pressure", 0.0)

        # Temperatures
        self._set(
            "temp_outside",
            outdoor_temperature(
                self._clock, self.simulation.outdoor_base_temp, self.simulation.outdoor_swing
            ),
        )
        setpoint = self._get("setpoint_away") if away else self._get("setpoint_home")
        supply = relax_toward(self._get("temp_supply"), setpoint, elapsed, SUPPLY_TIME_CONSTANT)
        room = relax_toward(
            self._get("temp_room"), setpoint + ROOM_OFFSET, elapsed, ROOM_TIME_CONSTANT
        )
        self._set("temp_supply", supply)
        self._set("temp_room", room)
        self._set("temp_extract", room + EXTRACT_OFFSET)
        self._set("temp_extract_doc", room + EXTRACT_OFFSET)
        self._set("temp_exhaust", supply + EXHAUST_OFFSET)

        # Humidity and air quality
        humidity = extract_humidity(self._clock, away)
        self._set("humidity_extract", round_to(humidity, 3))
        self._set("humidity_room_1", round_to(humidity + 1.2, 3))
        self._set("humidity_room_2", round_to(humidity + 0.6, 3))
        self._set("humidity_room_3", round_to(humidity - 0.6, 3))
        self._set("air_quality_input", round_to(air_quality(self._clock, away), 3))

        # Heater
        power = heater_power(setpoint, supply)
        self._set("heater_power_kw", power)
        self._set("heater_electric_position_percent", heater_position(power))
        self._set("heater_valve_position_percent", 0.0)
        self._set("temp_frost_protection", frost_protection_temperature(power))

        # Filter
        if elapsed > 0:
            self._set(
                "filter_operating_time",
                self._get("filter_operating_time") + elapsed / SECONDS_PER_HOUR,
            )
