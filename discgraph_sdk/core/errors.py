# discgraph_sdk/core/errors.py
# SPDX-License-Identifier: Apache-2.0
"""
Normalized error taxonomy for the discriminator graph SDK.

Every failure raised by this package is a subclass of DiscGraphError, so
callers can branch on the error *kind* (class or ``code``) instead of
string-matching messages. Each component owns a closed set of errors:

- Key derivation / decoding: InvalidInputError, MalformedRecordError
- Ledger source:             SourceUnavailable
- Graph store:               StoreError, StoreUnavailable
- Ingestion engine:          NodeWriteError, EdgeWriteError (StoreWriteError)
- Write-through query:       QuerySourceUnavailable, QueryStoreWriteError,
                             QueryStoreReadError, NotFound
- Process startup:           ConfigurationError

Errors carry SIEM-safe ``details`` only; raw account payloads are never
attached.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional


class DiscGraphError(Exception):
    """
    Base exception for all SDK errors.

    Attributes:
        message: Human-readable description.
        code: Machine-readable, UPPER_SNAKE_CASE error code.
        retry_after_ms: Suggested client backoff (if applicable).
        details: Additional machine context (no payload bytes).
    """

    default_code = "DISCGRAPH_ERROR"
    retryable = False

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        retry_after_ms: Optional[int] = None,
        details: Optional[Mapping[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.retry_after_ms = retry_after_ms
        self.details = dict(details or {})

    def __str__(self) -> str:
        base = self.message or self.__class__.__name__
        if self.code:
            base += f" [code={self.code}]"
        if self.retry_after_ms is not None:
            base += f" retry_after_ms={self.retry_after_ms}"
        if self.details:
            base += f" details={self.details}"
        return base


class InvalidInputError(DiscGraphError):
    """Empty or degenerate input; the request is rejected, not retried."""
    default_code = "INVALID_INPUT"


class MalformedRecordError(DiscGraphError):
    """Raw record shorter than the discriminator header."""
    default_code = "MALFORMED_RECORD"


class SourceUnavailable(DiscGraphError):
    """Ledger fetch failed (network / RPC)."""
    default_code = "SOURCE_UNAVAILABLE"
    retryable = True


class StoreError(DiscGraphError):
    """Graph store rejected or failed an operation."""
    default_code = "STORE_ERROR"


class StoreUnavailable(StoreError):
    """Graph store unreachable or overloaded."""
    default_code = "STORE_UNAVAILABLE"
    retryable = True


class ConfigurationError(DiscGraphError):
    """Invalid settings or an unreachable endpoint at startup."""
    default_code = "CONFIGURATION_ERROR"


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------

class IngestError(DiscGraphError):
    """Base for failures of a single ingest call."""
    default_code = "INGEST_ERROR"


class StoreWriteError(IngestError):
    """
    A node or edge write failed.

    Attributes:
        collection: Collection whose write failed.
        cause: The underlying store error.
    """
    default_code = "STORE_WRITE_ERROR"

    def __init__(self, collection: str, cause: BaseException, **kw: Any):
        details = dict(kw.pop("details", None) or {})
        details.setdefault("collection", collection)
        details.setdefault("cause", type(cause).__name__)
        message = kw.pop("message", None) or f"write to {collection} failed: {cause}"
        super().__init__(message, details=details, **kw)
        self.collection = collection
        self.cause = cause

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return is_retryable(self.cause)


class NodeWriteError(StoreWriteError):
    """Phase A failed; no edge was attempted."""
    default_code = "NODE_WRITE_ERROR"


class EdgeWriteError(StoreWriteError):
    """Phase B failed; nodes from phase A remain stored."""
    default_code = "EDGE_WRITE_ERROR"


# ---------------------------------------------------------------------------
# Write-through query
# ---------------------------------------------------------------------------

class QueryError(DiscGraphError):
    """Base for failures of the write-through query path."""
    default_code = "QUERY_ERROR"


class QuerySourceUnavailable(QueryError):
    default_code = "SOURCE_UNAVAILABLE"
    retryable = True


class QueryStoreWriteError(QueryError):
    default_code = "STORE_WRITE_ERROR"


class QueryStoreReadError(QueryError):
    default_code = "STORE_READ_ERROR"


class NotFound(QueryError):
    """No cached data and the ledger reports zero accounts."""
    default_code = "NOT_FOUND"


def is_retryable(err: BaseException) -> bool:
    """True when retrying the same call may succeed."""
    if isinstance(err, DiscGraphError):
        return bool(err.retryable)
    return isinstance(err, (ConnectionError, TimeoutError))


__all__ = [
    "DiscGraphError",
    "InvalidInputError",
    "MalformedRecordError",
    "SourceUnavailable",
    "StoreError",
    "StoreUnavailable",
    "ConfigurationError",
    "IngestError",
    "StoreWriteError",
    "NodeWriteError",
    "EdgeWriteError",
    "QueryError",
    "QuerySourceUnavailable",
    "QueryStoreWriteError",
    "QueryStoreReadError",
    "NotFound",
    "is_retryable",
]
