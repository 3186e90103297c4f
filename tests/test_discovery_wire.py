"""Tests for the discovery wire format."""

import struct
import unittest

from unit_emulator.core.constants import DISCOVERY_ZERO_TOKEN
from unit_emulator.discovery import (
    DiscoveryIdentity,
    ReplyBuilder,
    build_discover_request,
    build_legacy_reply,
    build_structured_reply,
    extract_client_token,
    extract_unit_serial,
    infer_gateway,
    is_discover_request,
    parse_legacy_reply,
    parse_structured_reply,
)

TOKEN = "ABTMobile:0f1e2d3c-4b5a-6978-8796-a5b4c3d2e1f0"


def make_identity(**overrides):
    fields = dict(
        serial="800131-123456",
        device_name="HvacFnct21y_A",
        firmware="03.39.03.38",
        mac_address="00:05:19:22:27:43",
        advertise_address="192.168.1.20",
    )
    fields.update(overrides)
    return DiscoveryIdentity(**fields)


class TestHelpers(unittest.TestCase):
    """Test probe and reply helpers."""

    def test_probe_layout(self):
        probe = build_discover_request(TOKEN)
        self.assertEqual(len(probe), 104)
        self.assertEqual(probe[:4], bytes([0x80, 0x01, 0x00, 0x04]))
        self.assertEqual(probe[4:8], struct.pack(">I", 8))
        self.assertEqual(probe[8:16], b"discover")
        self.assertTrue(probe.endswith(b"?Devices=All\x00\x00"))

    def test_is_discover_request(self):
        self.assertTrue(is_discover_request(build_discover_request(TOKEN)))
        self.assertTrue(is_discover_request(b"please discover units"))
        self.assertFalse(is_discover_request(b"hello"))
        self.assertFalse(is_discover_request(b""))

    def test_extract_client_token(self):
        self.assertEqual(extract_client_token(build_discover_request(TOKEN)), TOKEN)
        self.assertEqual(extract_client_token(b"discover"), DISCOVERY_ZERO_TOKEN)

    def test_extract_unit_serial(self):
        self.assertEqual(extract_unit_serial(b"\x00unit 800131-123456\x01"), "800131-123456")
        self.assertEqual(extract_unit_serial(b"sn 800131123456 x"), "800131-123456")
        self.assertIsNone(extract_unit_serial(b"no serial here"))

    def test_infer_gateway(self):
        self.assertEqual(infer_gateway("10.0.0.42"), "10.0.0.1")
        self.assertEqual(infer_gateway("10.0.0"), "0.0.0.0")
        self.assertEqual(infer_gateway("10.0.0.300"), "0.0.0.0")
        self.assertEqual(infer_gateway(None), "0.0.0.0")

    def test_identity_endpoint_and_gateway(self):
        identity = make_identity(bacnet_port=47809)
        self.assertEqual(identity.endpoint, "192.168.1.20:47809")
        self.assertEqual(identity.effective_gateway, "192.168.1.1")
        self.assertEqual(make_identity(gateway="192.168.1.254").effective_gateway, "192.168.1.254")


class TestReplyBuilder(unittest.TestCase):
    """Test the tagged record builder."""

    def test_records(self):
        data = (
            ReplyBuilder()
            .section(6)
            .string(2, "~")
            .integer(3, 0x01020304)
            .end()
            .to_bytes()
        )
        self.assertEqual(
            data.hex(" "),
            "0c 00 06 0b 00 02 00 00 00 01 7e 08 00 03 01 02 03 04 00",
        )

    def test_u32_is_big_endian(self):
        self.assertEqual(ReplyBuilder().u32(14).to_bytes(), b"\x00\x00\x00\x0e")


class TestLegacyReply(unittest.TestCase):
    """Test the single-line ASCII reply."""

    def test_build(self):
        self.assertEqual(
            build_legacy_reply(make_identity()),
            b"HvacFnct21y_A 800131-123456 192.168.1.20:47808 00:05:19:22:27:43 "
            b"FW:03.39.03.38 MODE=PL",
        )

    def test_parse_own_reply(self):
        unit = parse_legacy_reply(build_legacy_reply(make_identity()), "192.168.1.99")
        self.assertIsNotNone(unit)
        self.assertEqual(unit.name, "HvacFnct21y_A")
        self.assertEqual(unit.serial, "800131-123456")
        self.assertEqual(unit.serial_normalized, "800131123456")
        self.assertEqual(unit.ip, "192.168.1.20")
        self.assertEqual(unit.bacnet_port, 47808)
        self.assertEqual(unit.mac, "00:05:19:22:27:43")
        self.assertEqual(unit.firmware, "FW:03.39.03.38")

    def test_parse_without_endpoint_uses_source(self):
        unit = parse_legacy_reply(b"Living_Room 800211-000001", "10.0.0.5")
        self.assertEqual(unit.ip, "10.0.0.5")
        self.assertEqual(unit.bacnet_port, 47808)
        self.assertEqual(unit.name, "Living_Room")
        self.assertIsNone(unit.mac)

    def test_parse_rejects_other_products(self):
        self.assertIsNone(parse_legacy_reply(b"Other_Unit 900131-123456", "10.0.0.5"))
        self.assertIsNone(parse_legacy_reply(b"no serial", "10.0.0.5"))


class TestStructuredReply(unittest.TestCase):
    """Test the binary identification reply."""

    def setUp(self):
        self.identity = make_identity()
        self.reply = build_structured_reply(self.identity, build_discover_request(TOKEN))

    def test_header(self):
        self.assertEqual(self.reply[:4], bytes([0x80, 0x01, 0x00, 0x01]))
        self.assertEqual(self.reply[4:8], struct.pack(">I", 14))
        self.assertEqual(self.reply[8:22], b"identification")
        self.assertEqual(self.reply[22:26], b"\x00\x00\x00\x00")

    def test_trailer_bytes(self):
        self.assertTrue(
            self.reply.endswith(
                b"\x0c\x00\x0c\x00\x00\x0b\x00\x02\x00\x00\x00\x062.11.0\x00"
            )
        )

    def test_full_reply_bytes(self):
        expected = b"".join([
            bytes.fromhex("80010001 0000000e"), b"identification", bytes.fromhex("00000000"),
            # section 1 carries no end marker
            bytes.fromhex("0c0001 0b0001 00000000"),
            bytes.fromhex("0b0002 0000002e"), TOKEN.encode("ascii"),
            bytes.fromhex("080003 00000000"),
            bytes.fromhex("0c0004 0b0001 0000000a"), b"160100F2C5",
            bytes.fromhex("0b0002 00000007"), b"POS3.67",
            bytes.fromhex("00"),
            bytes.fromhex("0c0005 080001 00000002"),
            bytes.fromhex("0b0002 0000000d"), b"HvacFnct21y_A",
            bytes.fromhex("080003 00000000"),
            bytes.fromhex("0b0004 00000034"), b"FW=03.39.03.38:BL=00.05.02.0003;SVS-300.4:SBC=13.24;",
            bytes.fromhex("0b0005 00000012"), b"192.168.1.20:47808",
            bytes.fromhex("080006 00000000 00"),
            bytes.fromhex("0c0006 0b0001 0000000d"), b"800131-123456",
            bytes.fromhex("0b0002 00000001"), b"~",
            bytes.fromhex("0b0003 0000000d"), b"800131-123456",
            bytes.fromhex("00"),
            bytes.fromhex("0c0007 0b0001 00000003"), b"Eth",
            bytes.fromhex("080002 00000000"),
            bytes.fromhex("0b0003 0000000c"), b"192.168.1.20",
            bytes.fromhex("0b0004 0000000d"), b"255.255.255.0",
            bytes.fromhex("0b0005 0000000b"), b"192.168.1.1",
            bytes.fromhex("0b0007 00000011"), b"00:05:19:22:27:43",
            bytes.fromhex("00"),
            bytes.fromhex("0c000c 0000 0b0002 00000006"), b"2.11.0",
            bytes.fromhex("00"),
        ])
        self.assertEqual(self.reply.hex(" "), expected.hex(" "))

    def test_fields(self):
        keyword, fields = parse_structured_reply(self.reply)
        self.assertEqual(keyword, "identification")
        self.assertEqual(
            fields,
            [
                (1, 1, ""),
                (1, 2, TOKEN),
                (1, 3, 0),
                (4, 1, "160100F2C5"),
                (4, 2, "POS3.67"),
                (5, 1, 2),
                (5, 2, "HvacFnct21y_A"),
                (5, 3, 0),
                (5, 4, "FW=03.39.03.38:BL=00.05.02.0003;SVS-300.4:SBC=13.24;"),
                (5, 5, "192.168.1.20:47808"),
                (5, 6, 0),
                (6, 1, "800131-123456"),
                (6, 2, "~"),
                (6, 3, "800131-123456"),
                (7, 1, "Eth"),
                (7, 2, 0),
                (7, 3, "192.168.1.20"),
                (7, 4, "255.255.255.0"),
                (7, 5, "192.168.1.1"),
                (7, 7, "00:05:19:22:27:43"),
                (12, 2, "2.11.0"),
            ],
        )

    def test_zero_token_without_request(self):
        _, fields = parse_structured_reply(build_structured_reply(self.identity))
        self.assertIn((1, 2, DISCOVERY_ZERO_TOKEN), fields)

    def test_serial_is_extractable(self):
        self.assertEqual(extract_unit_serial(self.reply), "800131-123456")

    def test_parse_rejects_bad_magic(self):
        with self.assertRaises(ValueError):
            parse_structured_reply(b"\x80\x01\x00\x04" + self.reply[4:])

    def test_parse_rejects_truncated(self):
        with self.assertRaises(ValueError):
            parse_structured_reply(self.reply[:-12])
        with self.assertRaises(ValueError):
            parse_structured_reply(self.reply[:10])


if __name__ == "__main__":
    unittest.main()
