# discgraph_sdk/core/decoder.py
# SPDX-License-Identifier: Apache-2.0
"""
Split raw account data into discriminator and instruction segments.

Layout: bytes ``[0, HEADER_LEN)`` are the discriminator, the remainder is the
instruction payload.
"""

from __future__ import annotations

import binascii
from typing import Tuple

from discgraph_sdk.core.errors import InvalidInputError, MalformedRecordError

HEADER_LEN = 8
MIN_HEADER_LEN = HEADER_LEN


def decode(raw: bytes) -> Tuple[bytes, bytes]:
    """
    Return ``(discriminator_bytes, instruction_bytes)``.

    Raises:
        MalformedRecordError: ``len(raw) < MIN_HEADER_LEN``.
    """
    data = bytes(raw)
    if len(data) < MIN_HEADER_LEN:
        raise MalformedRecordError(
            f"record is {len(data)} bytes, need at least {MIN_HEADER_LEN}",
            details={"length": len(data), "min_length": MIN_HEADER_LEN},
        )
    return data[:HEADER_LEN], data[HEADER_LEN:]


def decode_hex(value: str) -> bytes:
    """Parse a hex string (optionally ``0x``-prefixed) into bytes."""
    text = (value or "").strip()
    if text[:2].lower() == "0x":
        text = text[2:]
    if not text:
        raise InvalidInputError("hex value must not be empty")
    try:
        return binascii.unhexlify(text)
    except (binascii.Error, ValueError) as e:
        raise InvalidInputError(f"invalid hex value: {e}") from e


__all__ = ["HEADER_LEN", "MIN_HEADER_LEN", "decode", "decode_hex"]
