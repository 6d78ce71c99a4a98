"""
Pure unit tests for app/services/payload.py.

No database required: the codec is a pure transformation.
Covers: CRC16/CCITT-FALSE vectors, static -> dynamic rewrite, TLV parsing,
rejection of malformed static payloads.
"""
import pytest

from app.errors import MalformedPayloadError
from app.services.payload import (
    build_dynamic_payload,
    crc16_ccitt,
    extract_amount,
    parse_tlv,
    verify_checksum,
)
from tests.conftest import STATIC_BODY, STATIC_PAYLOAD


# ---------------------------------------------------------------------------
# crc16_ccitt()
# ---------------------------------------------------------------------------
class TestCrc16:
    def test_standard_check_value(self):
        # CRC-16/CCITT-FALSE check value
        assert crc16_ccitt("123456789") == "29B1"

    def test_empty_string_is_initial_register(self):
        assert crc16_ccitt("") == "FFFF"

    def test_single_character(self):
        assert crc16_ccitt("A") == "B915"

    def test_deterministic(self):
        assert crc16_ccitt(STATIC_BODY) == crc16_ccitt(STATIC_BODY)

    def test_always_four_uppercase_hex_digits(self):
        for data in ("", "0", "hello", STATIC_BODY, "x" * 500):
            crc = crc16_ccitt(data)
            assert len(crc) == 4
            assert crc == crc.upper()
            int(crc, 16)


# ---------------------------------------------------------------------------
# build_dynamic_payload()
# ---------------------------------------------------------------------------
class TestBuildDynamicPayload:
    def test_embeds_amount_before_country_code(self):
        payload = build_dynamic_payload(STATIC_PAYLOAD, 10000)
        body = payload[:-4]
        assert body == (
            "000201"
            "010212"
            "26180014ID.CO.QRIS.WWW"
            "52045499"
            "5303360"
            "540510000"
            "5802ID"
            "5909TOKO KITA"
            "6007JAKARTA"
            "610512345"
            "6304"
        )

    def test_checksum_matches_recomputed_crc(self):
        payload = build_dynamic_payload(STATIC_PAYLOAD, 10000)
        assert payload[-4:] == crc16_ccitt(payload[:-4])
        assert verify_checksum(payload)

    def test_point_of_initiation_is_dynamic(self):
        fields = dict(parse_tlv(build_dynamic_payload(STATIC_PAYLOAD, 5000)))
        assert fields["01"] == "12"

    @pytest.mark.parametrize("amount", [1, 9, 10, 5001, 10000, 1500000, 10 ** 12])
    def test_amount_decodes_back(self, amount):
        payload = build_dynamic_payload(STATIC_PAYLOAD, amount)
        assert extract_amount(payload) == amount
        assert verify_checksum(payload)

    def test_amount_length_is_two_digits(self):
        payload = build_dynamic_payload(STATIC_PAYLOAD, 7)
        assert "54017" + "5802ID" in payload

    def test_deterministic(self):
        assert build_dynamic_payload(STATIC_PAYLOAD, 2500) == build_dynamic_payload(STATIC_PAYLOAD, 2500)

    def test_surrounding_whitespace_is_ignored(self):
        assert build_dynamic_payload(f"  {STATIC_PAYLOAD}\n", 2500) == build_dynamic_payload(STATIC_PAYLOAD, 2500)

    def test_different_amounts_give_different_checksums(self):
        assert build_dynamic_payload(STATIC_PAYLOAD, 5000)[-4:] != build_dynamic_payload(STATIC_PAYLOAD, 5001)[-4:]


# ---------------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------------
class TestMalformedPayload:
    def test_rejects_short_payload(self):
        with pytest.raises(MalformedPayloadError, match="too short"):
            build_dynamic_payload("010211ABC", 1000)

    def test_rejects_empty_payload(self):
        with pytest.raises(MalformedPayloadError):
            build_dynamic_payload("", 1000)

    def test_rejects_missing_static_indicator(self):
        body = STATIC_BODY.replace("010211", "010212")
        with pytest.raises(MalformedPayloadError, match="static indicator"):
            build_dynamic_payload(body + crc16_ccitt(body), 1000)

    def test_rejects_missing_country_code(self):
        body = STATIC_BODY.replace("5802ID", "5802SG")
        with pytest.raises(MalformedPayloadError, match="5802ID"):
            build_dynamic_payload(body + crc16_ccitt(body), 1000)

    def test_rejects_duplicated_country_code(self):
        body = STATIC_BODY.replace("5909TOKO KITA", "5802ID5909TOKO KITA")
        with pytest.raises(MalformedPayloadError, match="5802ID"):
            build_dynamic_payload(body + crc16_ccitt(body), 1000)

    def test_input_string_is_unchanged(self):
        original = str(STATIC_PAYLOAD)
        build_dynamic_payload(STATIC_PAYLOAD, 1000)
        assert STATIC_PAYLOAD == original

    @pytest.mark.parametrize("amount", [0, -5])
    def test_rejects_non_positive_amount(self, amount):
        with pytest.raises(ValueError):
            build_dynamic_payload(STATIC_PAYLOAD, amount)


# ---------------------------------------------------------------------------
# parse_tlv() / verify_checksum()
# ---------------------------------------------------------------------------
class TestTlv:
    def test_static_payload_has_no_amount(self):
        assert extract_amount(STATIC_PAYLOAD) is None

    def test_parses_top_level_tags_in_order(self):
        tags = [tag for tag, _ in parse_tlv(STATIC_PAYLOAD)]
        assert tags == ["00", "01", "26", "52", "53", "58", "59", "60", "61", "63"]

    def test_rejects_overrunning_length(self):
        with pytest.raises(MalformedPayloadError):
            parse_tlv("0005AB")

    def test_corrupted_payload_fails_checksum(self):
        payload = build_dynamic_payload(STATIC_PAYLOAD, 10000)
        tampered = payload.replace("540510000", "540510001")
        assert not verify_checksum(tampered)
