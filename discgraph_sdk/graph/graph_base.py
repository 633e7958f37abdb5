# discgraph_sdk/graph/graph_base.py
# SPDX-License-Identifier: Apache-2.0
"""
Graph Store contract for the discriminator knowledge graph.

Purpose
-------
A narrow, backend-neutral API over the node/edge store that the ingestion
core writes to and the query path reads from:

- Overwrite-semantics node and edge upserts (idempotent by key)
- Program-prefix query returning discriminators joined with their instruction
- Lazy, idempotent collection provisioning
- Async-only; blocking drivers are moved off the event loop by adapters

Persisted layout
----------------
    Programs          key = sanitize(program_id)            fields: id
    Discriminators    key = derive(program_id, disc_bytes)  fields: program_id,
                                                            discriminator_bytes,
                                                            linked_instruction_id,
                                                            contributor_user_id
    Instructions      key = derive(program_id, instr_bytes) fields: program_id,
                                                            instruction_bytes
    Users             key = sanitize(user_id)               fields: id
    HasDiscriminator  Programs/*       -> Discriminators/*
    MappedTo          Discriminators/* -> Instructions/*
    ContributedBy     Discriminators/* -> Users/*

Byte fields are stored as lowercase hex strings.

Deliberate Non-Goals
--------------------
- No deletes, expiry or schema migration.
- No cross-collection transactions; callers rely on idempotent overwrites.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, runtime_checkable

from discgraph_sdk.core.errors import (
    DiscGraphError,
    InvalidInputError,
    StoreError,
    StoreUnavailable,
)
from discgraph_sdk.core.gates import CircuitBreaker, Gates, MetricsSink, RateLimiter
from discgraph_sdk.core.keys import program_prefix

LOG = logging.getLogger(__name__)

# =============================================================================
# Collections
# =============================================================================

PROGRAMS = "Programs"
DISCRIMINATORS = "Discriminators"
INSTRUCTIONS = "Instructions"
USERS = "Users"
HAS_DISCRIMINATOR = "HasDiscriminator"
MAPPED_TO = "MappedTo"
CONTRIBUTED_BY = "ContributedBy"

NODE_COLLECTIONS = (PROGRAMS, DISCRIMINATORS, INSTRUCTIONS, USERS)
EDGE_COLLECTIONS = (HAS_DISCRIMINATOR, MAPPED_TO, CONTRIBUTED_BY)
ALL_COLLECTIONS = NODE_COLLECTIONS + EDGE_COLLECTIONS

_COLLECTION_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9_\-]{0,255}$")


def is_edge_collection(name: str) -> bool:
    return name in EDGE_COLLECTIONS


# =============================================================================
# Views
# =============================================================================

@dataclass(frozen=True)
class DiscriminatorView:
    """
    A stored discriminator joined with its linked instruction.

    Attributes:
        key: Discriminator document key.
        program_id: Owning program.
        discriminator: Discriminator bytes as lowercase hex.
        instruction: Linked instruction bytes as lowercase hex ("" if the
            instruction document is missing).
        instruction_key: Key of the linked instruction document.
        contributor: Contributing user id.
    """
    key: str
    program_id: str
    discriminator: str
    instruction: str
    instruction_key: str
    contributor: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class InstructionView:
    key: str
    instruction: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def discriminator_view(doc: Mapping[str, Any], instruction_doc: Optional[Mapping[str, Any]]) -> DiscriminatorView:
    """Build a view from raw discriminator and instruction documents."""
    return DiscriminatorView(
        key=str(doc.get("_key", "")),
        program_id=str(doc.get("program_id", "")),
        discriminator=str(doc.get("discriminator_bytes", "")),
        instruction=str((instruction_doc or {}).get("instruction_bytes", "")),
        instruction_key=str(doc.get("linked_instruction_id", "")),
        contributor=str(doc.get("contributor_user_id", "")),
    )


# =============================================================================
# Stable Protocol Interface
# =============================================================================

@runtime_checkable
class GraphStoreProtocol(Protocol):
    """Language-level contract for graph store adapters."""

    async def upsert_node(self, collection: str, key: str, fields: Mapping[str, Any]) -> None:
        ...

    async def upsert_edge(self, collection: str, from_ref: str, to_ref: str) -> None:
        ...

    async def query_by_program_prefix(self, program_id: str) -> List[DiscriminatorView]:
        ...

    async def ensure_collections(self, names: Iterable[str]) -> None:
        ...

    async def list_program_ids(self) -> List[str]:
        ...

    async def instructions_for_discriminator(self, discriminator_key: str) -> List[InstructionView]:
        ...

    async def close(self) -> None:
        ...


# =============================================================================
# Base Store
# =============================================================================

class BaseGraphStore(GraphStoreProtocol):
    """
    Base implementation of GraphStoreProtocol.

    Responsibilities:
        - Input validation (collection names, keys, refs).
        - Circuit breaker (one circuit per collection), rate limiter and metrics.
        - Mapping of unexpected backend exceptions to StoreError.

    Concrete stores implement the ``_do_*`` hooks only.
    """

    _component = "graph_store"

    def __init__(
        self,
        *,
        mode: str = "thin",
        metrics: Optional[MetricsSink] = None,
        breaker: Optional[CircuitBreaker] = None,
        limiter: Optional[RateLimiter] = None,
    ) -> None:
        self._gates = Gates(
            component=self._component,
            unavailable=StoreUnavailable,
            mode=mode,
            metrics=metrics,
            breaker=breaker,
            limiter=limiter,
        )

    # ---- lifecycle helpers --------------------------------------------------

    async def __aenter__(self) -> "BaseGraphStore":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Release driver resources; override when the store owns a client."""
        return None

    # ---- internal helpers ---------------------------------------------------

    @staticmethod
    def _validate_collection(name: str) -> None:
        if not isinstance(name, str) or not _COLLECTION_NAME.match(name):
            raise InvalidInputError(f"invalid collection name: {name!r}")

    @staticmethod
    def _validate_ref(ref: str) -> None:
        if not isinstance(ref, str) or ref.count("/") != 1 or ref.startswith("/") or ref.endswith("/"):
            raise InvalidInputError(f"edge endpoint must be 'Collection/key', got {ref!r}")

    async def _call(self, op: str, fn, **metric_extra: Any) -> Any:
        async def _guarded() -> Any:
            try:
                return await fn()
            except DiscGraphError:
                raise
            except Exception as e:
                raise StoreError(
                    f"{op} failed: {e}", details={"op": op, "error": type(e).__name__}
                ) from e

        return await self._gates.run(
            op, _guarded, scope=metric_extra.get("collection"), **metric_extra
        )

    # ---- public API ---------------------------------------------------------

    async def upsert_node(self, collection: str, key: str, fields: Mapping[str, Any]) -> None:
        """Insert or replace the document ``collection/key``."""
        self._validate_collection(collection)
        if is_edge_collection(collection):
            raise InvalidInputError(f"{collection} is an edge collection")
        if not key or "/" in key:
            raise InvalidInputError(f"invalid document key: {key!r}")
        doc = dict(fields or {})
        doc["_key"] = key
        await self._call(
            "upsert_node",
            lambda: self._do_upsert_node(collection, key, doc),
            collection=collection,
        )

    async def upsert_edge(self, collection: str, from_ref: str, to_ref: str) -> None:
        """Insert or replace the edge ``from_ref -> to_ref``."""
        self._validate_collection(collection)
        if not is_edge_collection(collection):
            raise InvalidInputError(f"{collection} is not an edge collection")
        self._validate_ref(from_ref)
        self._validate_ref(to_ref)
        await self._call(
            "upsert_edge",
            lambda: self._do_upsert_edge(collection, from_ref, to_ref),
            collection=collection,
        )

    async def query_by_program_prefix(self, program_id: str) -> List[DiscriminatorView]:
        prefix = program_prefix(program_id)
        return await self._call(
            "query_by_program_prefix",
            lambda: self._do_query_by_prefix(prefix, program_id),
        )

    async def ensure_collections(self, names: Iterable[str]) -> None:
        wanted = list(names)
        for name in wanted:
            self._validate_collection(name)
        await self._call("ensure_collections", lambda: self._do_ensure_collections(wanted))

    async def list_program_ids(self) -> List[str]:
        return await self._call("list_program_ids", self._do_list_program_ids)

    async def instructions_for_discriminator(self, discriminator_key: str) -> List[InstructionView]:
        if not discriminator_key or "/" in discriminator_key:
            raise InvalidInputError(f"invalid discriminator key: {discriminator_key!r}")
        return await self._call(
            "instructions_for_discriminator",
            lambda: self._do_instructions_for_discriminator(discriminator_key),
        )

    # ---- backend hooks ------------------------------------------------------

    async def _do_upsert_node(self, collection: str, key: str, doc: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def _do_upsert_edge(self, collection: str, from_ref: str, to_ref: str) -> None:
        raise NotImplementedError

    async def _do_query_by_prefix(self, prefix: str, program_id: str) -> List[DiscriminatorView]:
        raise NotImplementedError

    async def _do_ensure_collections(self, names: List[str]) -> None:
        raise NotImplementedError

    async def _do_list_program_ids(self) -> List[str]:
        raise NotImplementedError

    async def _do_instructions_for_discriminator(self, discriminator_key: str) -> List[InstructionView]:
        raise NotImplementedError


__all__ = [
    "PROGRAMS",
    "DISCRIMINATORS",
    "INSTRUCTIONS",
    "USERS",
    "HAS_DISCRIMINATOR",
    "MAPPED_TO",
    "CONTRIBUTED_BY",
    "NODE_COLLECTIONS",
    "EDGE_COLLECTIONS",
    "ALL_COLLECTIONS",
    "is_edge_collection",
    "DiscriminatorView",
    "InstructionView",
    "discriminator_view",
    "GraphStoreProtocol",
    "BaseGraphStore",
]
