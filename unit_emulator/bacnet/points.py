"""
BACnet point creation and update utilities.

This module builds one bacpypes3 object per catalog point, publishes engine
values onto those objects and routes present-value writes from BACnet
clients through ``VentilationUnit.write_present_value`` so that range and
priority rules are enforced by the engine.

Usage:
    from unit_emulator.bacnet.points import create_bacnet_point, update_bacnet_points

    # Create a point
    obj = create_bacnet_point(catalog.by_name("setpoint_home"), 20.0, unit)

    # Publish all engine values
    count = await update_bacnet_points(app, unit)
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from bacpypes3.basetypes import BinaryPV
from bacpypes3.constructeddata import Any as AnyValue
from bacpypes3.errors import ExecutionError, InvalidTag
from bacpypes3.object import (
    AnalogInputObject,
    AnalogOutputObject,
    AnalogValueObject,
    BinaryValueObject,
    MultiStateValueObject,
    PositiveIntegerValueObject,
)
from bacpypes3.primitivedata import (
    Boolean,
    Double,
    Enumerated,
    Integer,
    Real,
    TagClass,
    TagNumber,
    Unsigned,
)

from unit_emulator.catalog.points import Point
from unit_emulator.core.constants import BACNET_UPDATE_DELAY_SECONDS, PROPERTY_PRESENT_VALUE

logger = logging.getLogger(__name__)

# Unit conversion mapping from catalog unit labels to BACnet engineering units
UNIT_MAPPING: Dict[str, str] = {
    "degC": "degrees-celsius",
    "°C": "degrees-celsius",
    "%": "percent",
    "min": "minutes",
    "h": "hours",
    "rpm": "revolutions-per-minute",
    "Pa": "pascals",
    "ppm": "parts-per-million",
    "kW": "kilowatts",
}

# Application tags accepted as a numeric present-value write
NUMERIC_APPLICATION_TAGS: Dict[int, type] = {
    TagNumber.boolean: Boolean,
    TagNumber.unsigned: Unsigned,
    TagNumber.integer: Integer,
    TagNumber.real: Real,
    TagNumber.double: Double,
    TagNumber.enumerated: Enumerated,
}


def _convert_unit(unit_text: Optional[str]) -> str:
    """Convert a catalog unit label to BACnet engineering units."""
    if not unit_text:
        return "no-units"
    return UNIT_MAPPING.get(unit_text, "no-units")


def is_present_value(attr: Any) -> bool:
    if isinstance(attr, str):
        return attr in ("presentValue", "present-value")
    return int(attr) == PROPERTY_PRESENT_VALUE


def _decode_any(value: AnyValue) -> float:
    """Decode a written value by its own application tag."""
    tag = value.tagList[0] if value.tagList else None
    if tag is None or tag.tag_class != TagClass.application:
        raise ValueError("application tagged value expected")
    datatype = NUMERIC_APPLICATION_TAGS.get(tag.tag_number)
    if datatype is None:
        raise ValueError(f"non-numeric application tag {tag.tag_number}")
    return float(value.cast_out(datatype))


def _to_number(value: Any) -> float:
    """Convert a written BACnet value to a plain number."""
    if isinstance(value, AnyValue):
        return _decode_any(value)
    if isinstance(value, str):
        if value == "active":
            return 1.0
        if value == "inactive":
            return 0.0
    return float(value)


class _EngineWriteMixin:
    """Routes present-value writes through the emulated unit."""

    async def write_property(
        self,
        attr: Any,
        value: Any,
        index: Optional[int] = None,
        priority: Optional[int] = None,
    ) -> None:
        unit = getattr(self, "_unit", None)
        if unit is None or not is_present_value(attr):
            await super().write_property(attr, value, index, priority)
            return

        p: Point = self._point
        try:
            number = _to_number(value)
        except (TypeError, ValueError, AttributeError, InvalidTag) as e:
            logger.info("Rejected BACnet write to %s: %s", p.name, e)
            raise ExecutionError("property", "invalid-data-type") from e

        result = unit.write_present_value(
            p.object_type, p.instance, PROPERTY_PRESENT_VALUE, number, priority
        )
        if not result.ok:
            raise ExecutionError(result.error_class_name, result.error_code_name)

        _publish(self, unit.read(p.object_type, p.instance).value)


class UnitAnalogInputObject(_EngineWriteMixin, AnalogInputObject):
    pass


class UnitAnalogOutputObject(_EngineWriteMixin, AnalogOutputObject):
    pass


class UnitAnalogValueObject(_EngineWriteMixin, AnalogValueObject):
    pass


class UnitBinaryValueObject(_EngineWriteMixin, BinaryValueObject):
    pass


class UnitMultiStateValueObject(_EngineWriteMixin, MultiStateValueObject):
    pass


class UnitPositiveIntegerValueObject(_EngineWriteMixin, PositiveIntegerValueObject):
    pass


def create_bacnet_point(point: Point, value: float, unit: Any = None) -> Optional[Any]:
    """
    Create a BACnet object for a catalog point.

    Args:
        point: Catalog point
        value: Current engine value
        unit: VentilationUnit receiving writes (read-only object if None)

    Returns:
        BACnet object instance, or None if the object type is not supported
    """
    object_id = f"{point.object_type_name},{point.instance}"
    units = _convert_unit(point.units)
    common = {
        "objectIdentifier": object_id,
        "objectName": point.name,
        "description": point.description,
    }

    try:
        type_name = point.object_type_name
        if type_name == "analog-input":
            obj = UnitAnalogInputObject(presentValue=float(value), units=units, **common)
        elif type_name == "analog-output":
            obj = UnitAnalogOutputObject(presentValue=float(value), units=units, **common)
        elif type_name == "analog-value":
            obj = UnitAnalogValueObject(presentValue=float(value), units=units, **common)
        elif type_name == "binary-value":
            obj = UnitBinaryValueObject(
                presentValue="active" if round(value) else "inactive", **common
            )
        elif type_name == "multi-state-value":
            obj = UnitMultiStateValueObject(
                presentValue=int(round(value)),
                numberOfStates=int(point.maximum or 1),
                **common,
            )
        elif type_name == "positive-integer-value":
            obj = UnitPositiveIntegerValueObject(
                presentValue=int(round(value)), units=units, **common
            )
        else:
            logger.warning("No BACnet object class for %s (%s)", point.name, type_name)
            return None
    except (TypeError, ValueError) as e:
        logger.warning("Failed to create BACnet point %s: %s", point.name, e)
        return None

    obj._point = point
    obj._unit = unit
    return obj


def _publish(obj: Any, value: float, epsilon: float = 0.001) -> bool:
    """Set an object's present value from an engine value."""
    type_name = obj._point.object_type_name
    if type_name == "binary-value":
        return _update_bv(obj, value)
    if type_name in ("multi-state-value", "positive-integer-value"):
        return _update_integer(obj, value)
    return _update_analog(obj, value, epsilon)


async def update_bacnet_points(app: Any, unit: Any, epsilon: float = 0.001) -> int:
    """
    Publish engine values to all point objects of a BACnet application.

    Args:
        app: BACpypes3 Application instance
        unit: VentilationUnit providing the values
        epsilon: Threshold for float comparison (default 0.001)

    Returns:
        Number of points updated
    """
    update_count = 0
    process_vars = unit.get_process_variables()

    for obj in list(app.objectIdentifier.values()):
        point = getattr(obj, "_point", None)
        if point is None or point.name not in process_vars:
            continue
        try:
            if _publish(obj, process_vars[point.name], epsilon):
                update_count += 1
        except (TypeError, ValueError) as e:
            logger.warning("Error updating point %s: %s", point.name, e)

    if update_count > 0:
        logger.debug("Updated %d BACnet points", update_count)

    # Yield to the BACnet stack between publish passes
    await asyncio.sleep(BACNET_UPDATE_DELAY_SECONDS)

    return update_count


def _update_integer(obj: Any, value: float) -> bool:
    """Update a multi-state or positive integer value object."""
    target = int(round(value))
    if obj.presentValue != target:
        obj.presentValue = target
        return True
    return False


def _update_analog(obj: Any, value: float, epsilon: float) -> bool:
    """Update an analog input, output or value object."""
    if abs(float(obj.presentValue) - float(value)) > epsilon:
        obj.presentValue = float(value)
        return True
    return False


def _update_bv(obj: Any, value: float) -> bool:
    """Update a binary value object."""
    target = "active" if round(value) else "inactive"
    if obj.presentValue != BinaryPV(target):
        obj.presentValue = target
        return True
    return False
