"""
Control surface for the emulated unit.

Translates JSON-style requests into ``VentilationUnit`` calls and maps the
engine's results to status codes. The surface is transport independent:
``dispatch(method, path, body)`` takes the raw request body and returns a
``ControlResponse`` that any HTTP adapter can serialize.

Status mapping:
    200  success
    400  missing or malformed input, unparsable body, InvalidDuration,
         InvalidValue
    404  unknown route
    409  other engine failures (OutOfRange, PriorityRejected, InvalidMode,
         UnknownPoint, WriteAccessDenied)
    413  request body over the size limit
    500  unexpected fault, reported without detail

Usage:
    from unit_emulator.control import ControlSurface

    surface = ControlSurface(unit)
    response = surface.dispatch("POST", "/feature/mode", b'{"mode": "high"}')
    assert response.status == 200
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple, Union

from unit_emulator.core.constants import (
    COMMAND_PRIORITY,
    CONTROL_MAX_BODY_BYTES,
    FAN_MODES,
    PROPERTY_PRESENT_VALUE,
)
from unit_emulator.core.results import ErrorKind, Failure, OperationResult
from unit_emulator.ventilation_unit import VentilationUnit, parse_number

logger = logging.getLogger(__name__)

# Failures caused by the caller's input rather than by unit state
BAD_INPUT_KINDS = frozenset({ErrorKind.INVALID_DURATION, ErrorKind.INVALID_VALUE})

# Device properties a BACnet client can read from the emulated device object
DEVICE_PROPERTIES = (
    "object-identifier",
    "object-name",
    "object-type",
    "description",
    "model-name",
    "vendor-name",
    "vendor-identifier",
    "firmware-revision",
    "application-software-version",
    "protocol-version",
    "protocol-revision",
    "system-status",
    "max-apdu-length-accepted",
    "segmentation-supported",
)

Body = Dict[str, Any]


class ControlError(Exception):
    """Request rejected before it reached the unit."""

    status = 400

    def __init__(self, error: str) -> None:
        super().__init__(error)
        self.error = error


class BadRequest(ControlError):
    status = 400


class RequestTooLarge(ControlError):
    status = 413


@dataclass
class ControlResponse:
    """Status code plus JSON-serializable body."""

    status: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def to_json(self) -> str:
        return json.dumps(self.body)


def decode_body(raw: Union[bytes, str, Dict[str, Any], None]) -> Body:
    """
    Decode a request body into a dict.

    Args:
        raw: Raw bytes or text, an already decoded dict, or None

    Returns:
        Decoded object (empty dict for an empty body)

    Raises:
        RequestTooLarge: If the body exceeds CONTROL_MAX_BODY_BYTES
        BadRequest: If the body is not a JSON object
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    data = raw.encode("utf-8") if isinstance(raw, str) else bytes(raw)
    if len(data) > CONTROL_MAX_BODY_BYTES:
        raise RequestTooLarge("request_too_large")
    if not data.strip():
        return {}
    try:
        decoded = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise BadRequest("invalid_json") from e
    if not isinstance(decoded, dict):
        raise BadRequest("invalid_json")
    return decoded


def _number(body: Body, key: str) -> Optional[float]:
    """Read a string-or-number field; None if absent or not numeric."""
    value = body.get(key)
    if value is None or isinstance(value, bool):
        return None
    return parse_number(value)


def _failure_response(result: Failure) -> ControlResponse:
    status = 400 if result.kind in BAD_INPUT_KINDS else 409
    return ControlResponse(status, {"ok": False, **result.to_dict()})


def _bad_request(error: str) -> ControlResponse:
    return ControlResponse(400, {"ok": False, "error": error})


class ControlSurface:
    """
    Request router over a single ``VentilationUnit``.

    Args:
        unit: The emulated unit all handlers operate on
    """

    def __init__(self, unit: VentilationUnit) -> None:
        self.unit = unit
        self._routes: Dict[Tuple[str, str], Callable[[Body], ControlResponse]] = {
            ("GET", "/health"): self.health,
            ("GET", "/debug/state"): self.state,
            ("GET", "/summary"): self.summary,
            ("GET", "/debug/points"): self.points,
            ("GET", "/debug/manifest"): self.manifest,
            ("POST", "/debug/read"): self.read,
            ("POST", "/debug/write"): self.write,
            ("POST", "/debug/advance"): self.advance,
            ("POST", "/feature/mode"): self.set_mode,
            ("POST", "/feature/setpoint"): self.set_setpoint,
            ("POST", "/feature/filter/replace"): self.replace_filter,
            ("POST", "/feature/filter/set"): self.set_filter,
            ("POST", "/feature/rapid/start"): self.start_rapid,
            ("POST", "/feature/fireplace/start"): self.start_fireplace,
        }

    @property
    def routes(self):
        return sorted(self._routes)

    def dispatch(self, method: str, path: str, body: Any = None) -> ControlResponse:
        """
        Route one request.

        Args:
            method: HTTP-style method name
            path: Request path; any query string is ignored
            body: Raw body (bytes/str), a decoded dict, or None

        Returns:
            ControlResponse, never raises
        """
        route = (method.upper(), path.split("?", 1)[0])
        handler = self._routes.get(route)
        if handler is None:
            return ControlResponse(404, {"ok": False, "error": "not_found"})

        try:
            return handler(decode_body(body))
        except ControlError as e:
            logger.info("Rejected %s %s: %s", route[0], route[1], e.error)
            return ControlResponse(e.status, {"ok": False, "error": e.error})
        except Exception:
            logger.exception("Control route %s %s failed", route[0], route[1])
            return ControlResponse(500, {"ok": False, "error": "internal_error"})

    def _result_state(self, result: OperationResult) -> ControlResponse:
        if not result.ok:
            return _failure_response(result)
        return ControlResponse(200, {"ok": True, "state": self.unit.snapshot()})

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def health(self, body: Body) -> ControlResponse:
        return ControlResponse(200, {"ok": True})

    def state(self, body: Body) -> ControlResponse:
        return ControlResponse(200, {"ok": True, "state": self.unit.snapshot()})

    def summary(self, body: Body) -> ControlResponse:
        return ControlResponse(200, {"ok": True, "summary": self.unit.summary()})

    def points(self, body: Body) -> ControlResponse:
        return ControlResponse(200, {"ok": True, "points": self.unit.get_point_snapshots()})

    def manifest(self, body: Body) -> ControlResponse:
        """Catalog-derived description of the BACnet surface."""
        points = [
            {
                "name": p["name"],
                "object_type": p["object_type"],
                "object_type_name": p["object_type_name"],
                "instance": p["instance"],
                "access": p["access"],
                "source": p["source"],
                "units": p["units"],
                "min": p["min"],
                "max": p["max"],
                "requires_priority": p["required_priority"],
            }
            for p in self.unit.get_point_snapshots()
        ]
        return ControlResponse(
            200,
            {
                "ok": True,
                "bacnet": {
                    "device": self.unit.get_identity(),
                    "device_properties": list(DEVICE_PROPERTIES),
                    "present_value_property_id": PROPERTY_PRESENT_VALUE,
                    "command_priority": COMMAND_PRIORITY,
                    "points": points,
                },
            },
        )

    # ------------------------------------------------------------------
    # Point access
    # ------------------------------------------------------------------

    def read(self, body: Body) -> ControlResponse:
        object_type = _number(body, "type")
        instance = _number(body, "instance")
        if object_type is None or instance is None:
            return _bad_request("type and instance must be numeric")
        result = self.unit.read(int(object_type), int(instance))
        if not result.ok:
            return _failure_response(result)
        return ControlResponse(200, {"ok": True, "value": result.value})

    def write(self, body: Body) -> ControlResponse:
        object_type = _number(body, "type")
        instance = _number(body, "instance")
        value = _number(body, "value")
        if object_type is None or instance is None or value is None:
            return _bad_request("type, instance and value must be numeric")

        property_id = _number(body, "property_id")
        if property_id is None:
            property_id = PROPERTY_PRESENT_VALUE
        priority = None
        if body.get("priority") is not None:
            priority = _number(body, "priority")
            if priority is None:
                return _bad_request("priority must be numeric when provided")
            priority = int(priority)

        result = self.unit.write_present_value(
            int(object_type), int(instance), int(property_id), value, priority
        )
        return self._result_state(result)

    def advance(self, body: Body) -> ControlResponse:
        if "seconds" not in body:
            return _bad_request("seconds is required")
        return self._result_state(self.unit.advance_simulated_seconds(body["seconds"]))

    # ------------------------------------------------------------------
    # Features
    # ------------------------------------------------------------------

    def set_mode(self, body: Body) -> ControlResponse:
        mode = body.get("mode")
        if not isinstance(mode, str):
            return _bad_request(f"mode must be one of {'|'.join(FAN_MODES)}")
        return self._result_state(self.unit.set_fan_mode(mode))

    def set_setpoint(self, body: Body) -> ControlResponse:
        value = _number(body, "value")
        if value is None:
            return _bad_request("value must be numeric")
        if body.get("target") == "away":
            return self._result_state(self.unit.set_away_setpoint(value))
        return self._result_state(self.unit.set_home_setpoint(value))

    def replace_filter(self, body: Body) -> ControlResponse:
        return self._result_state(self.unit.replace_filter())

    def set_filter(self, body: Body) -> ControlResponse:
        operating_hours = _number(body, "operating_hours")
        limit_hours = _number(body, "limit_hours")
        if operating_hours is None and limit_hours is None:
            return _bad_request("operating_hours and/or limit_hours must be numeric")

        if operating_hours is not None:
            result = self.unit.set_filter_operating_hours(operating_hours)
            if not result.ok:
                return _failure_response(result)
        if limit_hours is not None:
            result = self.unit.set_filter_limit_hours(limit_hours)
            if not result.ok:
                return _failure_response(result)

        return ControlResponse(
            200,
            {"ok": True, "state": self.unit.snapshot(), "filter": self.unit.get_filter_status()},
        )

    def start_rapid(self, body: Body) -> ControlResponse:
        return self._start_temporary(body, self.unit.start_rapid)

    def start_fireplace(self, body: Body) -> ControlResponse:
        return self._start_temporary(body, self.unit.start_fireplace)

    def _start_temporary(
        self, body: Body, start: Callable[[Any], OperationResult]
    ) -> ControlResponse:
        minutes = body.get("minutes")
        if minutes is not None and _number(body, "minutes") is None:
            return _bad_request("minutes must be numeric when provided")
        return self._result_state(start(minutes))
