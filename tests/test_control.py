"""Tests for the control surface."""

import json
import unittest
from unittest import mock

from unit_emulator.control import (
    BadRequest,
    ControlSurface,
    RequestTooLarge,
    decode_body,
)
from unit_emulator.core.constants import CONTROL_MAX_BODY_BYTES
from unit_emulator.ventilation_unit import VentilationUnit


class TestDecodeBody(unittest.TestCase):
    """Test request body decoding."""

    def test_empty_bodies(self):
        self.assertEqual(decode_body(None), {})
        self.assertEqual(decode_body(b""), {})
        self.assertEqual(decode_body("  "), {})

    def test_json_object(self):
        self.assertEqual(decode_body(b'{"mode": "home"}'), {"mode": "home"})
        self.assertEqual(decode_body('{"seconds": 5}'), {"seconds": 5})
        self.assertEqual(decode_body({"a": 1}), {"a": 1})

    def test_invalid_json(self):
        for raw in (b"{", b"[1, 2]", b"\xff\xfe", b"42"):
            with self.assertRaises(BadRequest):
                decode_body(raw)

    def test_too_large(self):
        with self.assertRaises(RequestTooLarge):
            decode_body(b" " * (CONTROL_MAX_BODY_BYTES + 1))


class ControlTestCase(unittest.TestCase):
    def setUp(self):
        self.unit = VentilationUnit()
        self.surface = ControlSurface(self.unit)

    def post(self, path, body=None):
        raw = None if body is None else json.dumps(body).encode("utf-8")
        return self.surface.dispatch("POST", path, raw)

    def get(self, path):
        return self.surface.dispatch("GET", path)


class TestInspectionRoutes(ControlTestCase):
    """Test read-only routes."""

    def test_health(self):
        response = self.get("/health")
        self.assertEqual(response.status, 200)
        self.assertEqual(response.body, {"ok": True})
        self.assertEqual(response.to_json(), '{"ok": true}')

    def test_state(self):
        response = self.get("/debug/state")
        self.assertEqual(response.status, 200)
        self.assertEqual(response.body["state"]["mode"], "home")

    def test_summary_ignores_query_string(self):
        response = self.get("/summary?verbose=1")
        self.assertEqual(response.status, 200)
        self.assertEqual(response.body["summary"]["setpoints"]["home"], 20.0)

    def test_points(self):
        response = self.get("/debug/points")
        self.assertEqual(len(response.body["points"]), len(self.unit.catalog))

    def test_points_do_not_advance_time(self):
        self.get("/debug/points")
        self.assertEqual(self.unit.clock, 0.0)

    def test_manifest(self):
        response = self.get("/debug/manifest")
        bacnet = response.body["bacnet"]
        self.assertEqual(bacnet["present_value_property_id"], 85)
        self.assertEqual(bacnet["command_priority"], 13)
        self.assertEqual(bacnet["device"]["device_id"], 2594912)
        self.assertEqual(len(bacnet["points"]), len(self.unit.catalog))
        setpoint = next(p for p in bacnet["points"] if p["name"] == "setpoint_home")
        self.assertEqual(setpoint["requires_priority"], 13)
        self.assertEqual(setpoint["instance"], 1994)

    def test_unknown_route(self):
        self.assertEqual(self.get("/nope").status, 404)
        self.assertEqual(self.get("/feature/mode").status, 404)
        self.assertEqual(self.post("/health").status, 404)

    def test_unexpected_fault_is_generic(self):
        with mock.patch.object(self.unit, "summary", side_effect=RuntimeError("secret detail")):
            with self.assertLogs("unit_emulator.control", level="ERROR"):
                response = self.get("/summary")
        self.assertEqual(response.status, 500)
        self.assertEqual(response.body, {"ok": False, "error": "internal_error"})


class TestPointRoutes(ControlTestCase):
    """Test debug read, write and advance routes."""

    def test_read(self):
        response = self.post("/debug/read", {"type": 2, "instance": "1994"})
        self.assertEqual(response.status, 200)
        self.assertEqual(response.body["value"], 20.0)

    def test_read_unknown(self):
        response = self.post("/debug/read", {"type": 2, "instance": 99999})
        self.assertEqual(response.status, 409)
        self.assertEqual(response.body["errorCode"], 31)

    def test_read_requires_numbers(self):
        self.assertEqual(self.post("/debug/read", {"type": "x", "instance": 1}).status, 400)

    def test_write(self):
        response = self.post(
            "/debug/write", {"type": 2, "instance": 1994, "value": "22", "priority": 13}
        )
        self.assertEqual(response.status, 200)
        self.assertEqual(self.unit.read_by_name("setpoint_home").value, 22.0)

    def test_write_missing_fields(self):
        self.assertEqual(self.post("/debug/write", {"value": 12}).status, 400)

    def test_write_wrong_priority(self):
        response = self.post("/debug/write", {"type": 2, "instance": 1994, "value": 22})
        self.assertEqual(response.status, 409)
        self.assertEqual(response.body["error"], "PriorityRejected")
        self.assertEqual(response.body["errorClass"], 2)
        self.assertEqual(response.body["errorCode"], 40)

    def test_write_bad_priority(self):
        response = self.post(
            "/debug/write", {"type": 2, "instance": 1994, "value": 22, "priority": "high"}
        )
        self.assertEqual(response.status, 400)

    def test_write_other_property(self):
        response = self.post(
            "/debug/write",
            {"type": 2, "instance": 1994, "value": 25, "priority": 13, "property_id": 28},
        )
        self.assertEqual(response.status, 200)
        self.assertEqual(self.unit.read_by_name("setpoint_home").value, 20.0)

    def test_advance(self):
        response = self.post("/debug/advance", {"seconds": 120})
        self.assertEqual(response.status, 200)
        self.assertEqual(response.body["state"]["clock_seconds"], 120.0)

    def test_advance_rejects_bad_duration(self):
        for body in ({"seconds": 0}, {"seconds": "soon"}, {}):
            self.assertEqual(self.post("/debug/advance", body).status, 400, body)
        self.assertEqual(self.unit.clock, 0.0)

    def test_invalid_json(self):
        response = self.surface.dispatch("POST", "/debug/advance", b"{")
        self.assertEqual(response.status, 400)
        self.assertEqual(response.body["error"], "invalid_json")

    def test_body_too_large(self):
        raw = b" " * (CONTROL_MAX_BODY_BYTES + 1)
        response = self.surface.dispatch("POST", "/debug/write", raw)
        self.assertEqual(response.status, 413)
        self.assertEqual(response.body["error"], "request_too_large")


class TestFeatureRoutes(ControlTestCase):
    """Test feature routes."""

    def test_mode(self):
        response = self.post("/feature/mode", {"mode": "high"})
        self.assertEqual(response.status, 200)
        self.assertEqual(response.body["state"]["mode"], "high")

    def test_mode_unknown(self):
        response = self.post("/feature/mode", {"mode": "invalid"})
        self.assertEqual(response.status, 409)
        self.assertEqual(response.body["error"], "InvalidMode")

    def test_mode_missing(self):
        self.assertEqual(self.post("/feature/mode", {}).status, 400)
        self.assertEqual(self.post("/feature/mode", {"mode": 3}).status, 400)

    def test_setpoint(self):
        self.assertEqual(self.post("/feature/setpoint", {"value": 21.5}).status, 200)
        self.assertEqual(self.unit.read_by_name("setpoint_home").value, 21.5)
        self.assertEqual(
            self.post("/feature/setpoint", {"value": "19", "target": "away"}).status, 200
        )
        self.assertEqual(self.unit.read_by_name("setpoint_away").value, 19.0)

    def test_setpoint_invalid(self):
        self.assertEqual(self.post("/feature/setpoint", {"value": "abc"}).status, 400)
        response = self.post("/feature/setpoint", {"value": 40})
        self.assertEqual(response.status, 409)
        self.assertEqual(response.body["errorCode"], 37)

    def test_filter_replace(self):
        self.assertEqual(self.post("/feature/filter/replace").status, 200)
        self.assertEqual(self.unit.get_filter_status()["operating_hours"], 0.0)

    def test_filter_set(self):
        response = self.post("/feature/filter/set", {"operating_hours": 200, "limit_hours": "4000"})
        self.assertEqual(response.status, 200)
        self.assertEqual(response.body["filter"]["operating_hours"], 200.0)
        self.assertEqual(response.body["filter"]["limit_hours"], 4000.0)

    def test_filter_set_requires_a_value(self):
        self.assertEqual(self.post("/feature/filter/set", {}).status, 400)

    def test_filter_set_out_of_range(self):
        response = self.post("/feature/filter/set", {"operating_hours": -5})
        self.assertEqual(response.status, 409)

    def test_rapid(self):
        response = self.post("/feature/rapid/start", {"minutes": 10})
        self.assertEqual(response.status, 200)
        self.assertEqual(response.body["state"]["mode"], "high")
        self.assertEqual(self.post("/feature/rapid/start").status, 200)

    def test_rapid_invalid(self):
        self.assertEqual(self.post("/feature/rapid/start", {"minutes": "invalid"}).status, 400)
        self.assertEqual(self.post("/feature/rapid/start", {"minutes": 0}).status, 409)

    def test_fireplace(self):
        response = self.post("/feature/fireplace/start", {"minutes": 15})
        self.assertEqual(response.status, 200)
        self.assertEqual(response.body["state"]["timers"]["fireplace_minutes"], 15.0)
        self.assertEqual(self.post("/feature/fireplace/start", {"minutes": "x"}).status, 400)


if __name__ == "__main__":
    unittest.main()
