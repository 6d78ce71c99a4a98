"""
EMV merchant-presented QR payload codec.

Rewrites a static QRIS payload (payer types the amount) into a dynamic one
with the amount embedded:

1. Drop the trailing 4-character CRC of the source payload
2. Flip point-of-initiation 010211 (static) -> 010212 (dynamic)
3. Insert tag 54 (transaction amount) right before 5802ID (country code)
4. Recompute CRC16/CCITT-FALSE over the result and append it
"""
from typing import List, Optional, Tuple

from app.errors import MalformedPayloadError

MIN_PAYLOAD_LENGTH = 10
CRC_LENGTH = 4

STATIC_INDICATOR = "010211"
DYNAMIC_INDICATOR = "010212"
COUNTRY_CODE_TOKEN = "5802ID"

AMOUNT_TAG = "54"
CRC_TAG = "63"

CRC_POLYNOMIAL = 0x1021
CRC_INITIAL = 0xFFFF


def crc16_ccitt(data: str) -> str:
    """CRC16/CCITT-FALSE rendered as 4 uppercase hex digits."""
    crc = CRC_INITIAL
    for char in data:
        crc ^= ord(char) << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ CRC_POLYNOMIAL) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return f"{crc & 0xFFFF:04X}"


def _amount_field(amount: int) -> str:
    digits = str(amount)
    return f"{AMOUNT_TAG}{len(digits):02d}{digits}"


def build_dynamic_payload(static_payload: str, amount: int) -> str:
    """
    Build the dynamic QR payload for `amount` from a static merchant payload.

    Raises:
        MalformedPayloadError: payload too short, no static indicator, or the
            country-code token does not occur exactly once
        ValueError: amount is not a positive integer that fits tag 54
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValueError(f"Amount must be a positive integer, got {amount!r}")
    if len(str(amount)) > 99:
        raise ValueError("Amount does not fit a two-digit TLV length")

    if not static_payload or len(static_payload.strip()) < MIN_PAYLOAD_LENGTH:
        raise MalformedPayloadError("Invalid static QR payload - too short or empty")

    data = static_payload.strip()[:-CRC_LENGTH]

    if STATIC_INDICATOR not in data:
        raise MalformedPayloadError(
            f"Invalid QRIS format - static indicator {STATIC_INDICATOR} not found"
        )
    data = data.replace(STATIC_INDICATOR, DYNAMIC_INDICATOR, 1)

    segments = data.split(COUNTRY_CODE_TOKEN)
    if len(segments) != 2:
        raise MalformedPayloadError(
            f"Invalid QRIS format - cannot split by {COUNTRY_CODE_TOKEN}"
        )
    head, tail = segments

    body = head + _amount_field(amount) + COUNTRY_CODE_TOKEN + tail
    return body + crc16_ccitt(body)


def parse_tlv(payload: str) -> List[Tuple[str, str]]:
    """
    Split a payload into top-level (tag, value) pairs.

    The trailing CRC value is included under tag 63. Raises
    MalformedPayloadError when a length field is not numeric or overruns.
    """
    fields = []
    pos = 0
    while pos < len(payload):
        tag = payload[pos:pos + 2]
        length_str = payload[pos + 2:pos + 4]
        if len(tag) < 2 or not length_str.isdigit():
            raise MalformedPayloadError(f"Invalid TLV field at position {pos}")
        length = int(length_str)
        value = payload[pos + 4:pos + 4 + length]
        if len(value) != length:
            raise MalformedPayloadError(f"TLV field {tag} overruns payload")
        fields.append((tag, value))
        pos += 4 + length
    return fields


def extract_amount(payload: str) -> Optional[int]:
    """Amount embedded under tag 54, or None for static payloads."""
    for tag, value in parse_tlv(payload):
        if tag == AMOUNT_TAG:
            return int(value)
    return None


def verify_checksum(payload: str) -> bool:
    if len(payload) < CRC_LENGTH:
        return False
    body, checksum = payload[:-CRC_LENGTH], payload[-CRC_LENGTH:]
    return crc16_ccitt(body) == checksum.upper()
