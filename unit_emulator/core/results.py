"""
Operation results for the simulated unit engine.

Engine operations never raise for domain failures. They return either a
``Success`` (optionally carrying a value) or a ``Failure`` describing what
went wrong together with the BACnet error class/code a protocol front end
should report.

Usage:
    from unit_emulator.core.results import ErrorKind, Success, failure

    result = unit.set_home_setpoint(45)
    if not result.ok:
        print(result.kind, result.error_code_name)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from unit_emulator.core.constants import (
    ERROR_CLASS_NAMES,
    ERROR_CLASS_OBJECT,
    ERROR_CLASS_PROPERTY,
    ERROR_CLASS_SERVICES,
    ERROR_CODE_INVALID_DATA_TYPE,
    ERROR_CODE_NAMES,
    ERROR_CODE_PARAMETER_OUT_OF_RANGE,
    ERROR_CODE_UNKNOWN_OBJECT,
    ERROR_CODE_VALUE_OUT_OF_RANGE,
    ERROR_CODE_WRITE_ACCESS_DENIED,
)


class ErrorKind(Enum):
    """Failure categories reported by the engine."""

    UNKNOWN_POINT = "UnknownPoint"
    OUT_OF_RANGE = "OutOfRange"
    PRIORITY_REJECTED = "PriorityRejected"
    INVALID_MODE = "InvalidMode"
    INVALID_DURATION = "InvalidDuration"
    WRITE_ACCESS_DENIED = "WriteAccessDenied"
    INVALID_VALUE = "InvalidValue"


# (error class, error code) reported for each failure kind
ERROR_NUMBERS = {
    ErrorKind.UNKNOWN_POINT: (ERROR_CLASS_OBJECT, ERROR_CODE_UNKNOWN_OBJECT),
    ErrorKind.OUT_OF_RANGE: (ERROR_CLASS_PROPERTY, ERROR_CODE_VALUE_OUT_OF_RANGE),
    ErrorKind.PRIORITY_REJECTED: (ERROR_CLASS_PROPERTY, ERROR_CODE_WRITE_ACCESS_DENIED),
    ErrorKind.WRITE_ACCESS_DENIED: (ERROR_CLASS_PROPERTY, ERROR_CODE_WRITE_ACCESS_DENIED),
    ErrorKind.INVALID_VALUE: (ERROR_CLASS_PROPERTY, ERROR_CODE_INVALID_DATA_TYPE),
    ErrorKind.INVALID_MODE: (ERROR_CLASS_PROPERTY, ERROR_CODE_INVALID_DATA_TYPE),
    ErrorKind.INVALID_DURATION: (ERROR_CLASS_SERVICES, ERROR_CODE_PARAMETER_OUT_OF_RANGE),
}


@dataclass(frozen=True)
class Success:
    """Successful engine operation, with an optional payload."""

    value: Any = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """
    Failed engine operation.

    Attributes:
        kind: Failure category
        error_class: BACnet error class number
        error_code: BACnet error code number
        message: Human-readable explanation
    """

    kind: ErrorKind
    error_class: int
    error_code: int
    message: str

    @property
    def ok(self) -> bool:
        return False

    @property
    def error_class_name(self) -> str:
        return ERROR_CLASS_NAMES.get(self.error_class, str(self.error_class))

    @property
    def error_code_name(self) -> str:
        return ERROR_CODE_NAMES.get(self.error_code, str(self.error_code))

    def to_dict(self):
        return {
            "error": self.kind.value,
            "errorClass": self.error_class,
            "errorCode": self.error_code,
            "message": self.message,
        }


OperationResult = Union[Success, Failure]


def failure(kind: ErrorKind, message: str) -> Failure:
    """Build a Failure with the error numbers registered for ``kind``."""
    error_class, error_code = ERROR_NUMBERS[kind]
    return Failure(kind=kind, error_class=error_class, error_code=error_code, message=message)
