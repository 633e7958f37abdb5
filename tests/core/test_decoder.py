# SPDX-License-Identifier: Apache-2.0
"""
Account decoder.

Asserts:
  • the first eight bytes are the discriminator, the rest the instruction
  • records shorter than the header are MalformedRecordError with the length
  • hex parsing for command-line input
"""
import pytest

from discgraph_sdk.core.decoder import HEADER_LEN, MIN_HEADER_LEN, decode, decode_hex
from discgraph_sdk.core.errors import InvalidInputError, MalformedRecordError


def test_decode_splits_header_and_remainder():
    raw = bytes(range(1, 17))
    disc, instr = decode(raw)
    assert disc == bytes(range(1, 9))
    assert instr == bytes(range(9, 17))


def test_decode_keeps_long_remainder():
    raw = b"\x00" * HEADER_LEN + b"\xff" * 100
    _, instr = decode(raw)
    assert len(instr) == 100


def test_decode_exact_header_gives_empty_instruction():
    disc, instr = decode(b"\x01" * MIN_HEADER_LEN)
    assert disc == b"\x01" * 8
    assert instr == b""


@pytest.mark.parametrize("length", [0, 1, 7])
def test_decode_short_record_is_malformed(length):
    with pytest.raises(MalformedRecordError) as ei:
        decode(b"\x01" * length)
    assert ei.value.details["length"] == length
    assert ei.value.code == "MALFORMED_RECORD"


def test_decode_hex_accepts_prefix_and_case():
    assert decode_hex("0x0A0b") == b"\x0a\x0b"
    assert decode_hex(" 0102 ") == b"\x01\x02"


@pytest.mark.parametrize("value", ["", "0x", "zz", "123"])
def test_decode_hex_rejects_bad_input(value):
    with pytest.raises(InvalidInputError):
        decode_hex(value)
