# discgraph_sdk/core/keys.py
# SPDX-License-Identifier: Apache-2.0
"""
Content-addressed key derivation.

Keys have the shape ``<namespace>_<sha256 hex>`` where the namespace is the
escaped program id. Hashing bounds key length and keeps record structure
out of the key; the namespace keeps identical payloads owned by different
programs apart and makes every key of a program share one prefix.

Escaping is percent-encoding of the UTF-8 bytes, so distinct ids always map
to distinct keys: ``a/b``, ``a-b`` and ``a_b`` stay three separate programs.
"""

from __future__ import annotations

import hashlib
import re

from discgraph_sdk.core.errors import InvalidInputError

KEY_SEPARATOR = "_"

# Outside the ArangoDB key alphabet, plus "%" which starts an escape.
_ILLEGAL_KEY_CHARS = re.compile(r"[^A-Za-z0-9_\-:.@()+,=;$!*']")
# Namespaces additionally escape the separator.
_ILLEGAL_NAMESPACE_CHARS = re.compile(r"[^A-Za-z0-9\-:.@()+,=;$!*']")


def _percent_encode(match: re.Match) -> str:
    return "".join(f"%{b:02X}" for b in match.group(0).encode("utf-8"))


def sanitize(value: str) -> str:
    """Percent-encode characters that are illegal in a store key (and ``%``)."""
    if not value:
        raise InvalidInputError("key component must be a non-empty string")
    return _ILLEGAL_KEY_CHARS.sub(_percent_encode, value)


def namespace(program_id: str) -> str:
    if not isinstance(program_id, str) or not program_id:
        raise InvalidInputError("program_id must be a non-empty string")
    return _ILLEGAL_NAMESPACE_CHARS.sub(_percent_encode, program_id)


def program_prefix(program_id: str) -> str:
    """Prefix shared by every discriminator and instruction key of a program."""
    return namespace(program_id) + KEY_SEPARATOR


def content_hash(raw_bytes: bytes) -> str:
    return hashlib.sha256(raw_bytes).hexdigest()


def derive(program_id: str, raw_bytes: bytes) -> str:
    """
    Derive the store key for ``raw_bytes`` owned by ``program_id``.

    Pure and deterministic: identical inputs always produce the identical key.

    Raises:
        InvalidInputError: empty program id or empty payload.
    """
    if not isinstance(raw_bytes, (bytes, bytearray, memoryview)):
        raise InvalidInputError(
            f"raw_bytes must be bytes, got {type(raw_bytes).__name__}"
        )
    data = bytes(raw_bytes)
    if not data:
        raise InvalidInputError(
            "raw_bytes must not be empty", details={"program_id": program_id}
        )
    return program_prefix(program_id) + content_hash(data)


def edge_key(from_ref: str, to_ref: str) -> str:
    """Key an edge by its endpoints so re-upserting it overwrites."""
    if not from_ref or not to_ref:
        raise InvalidInputError("edge endpoints must be non-empty")
    return hashlib.sha256(f"{from_ref}->{to_ref}".encode("utf-8")).hexdigest()


def document_ref(collection: str, key: str) -> str:
    """``Collection/key`` reference used as an edge endpoint."""
    return f"{collection}/{key}"


__all__ = [
    "KEY_SEPARATOR",
    "sanitize",
    "namespace",
    "program_prefix",
    "content_hash",
    "derive",
    "edge_key",
    "document_ref",
]
