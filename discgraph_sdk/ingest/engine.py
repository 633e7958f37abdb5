# discgraph_sdk/ingest/engine.py
# SPDX-License-Identifier: Apache-2.0
"""
Idempotent multi-entity upsert for one decoded record.

This is the only place the graph is mutated. One ``ingest`` call writes in
two phases, each a concurrent fan-out joined before the next step:

    Phase A  Programs, Discriminators, Instructions, Users   (nodes)
    Phase B  HasDiscriminator, MappedTo, ContributedBy       (edges)

No edge is attempted unless every node write succeeded. The store offers no
cross-collection atomicity; instead every write is an overwrite of a
content-derived key, so repeating a call (after any partial failure) never
duplicates anything. The engine performs no retries itself.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, List, Sequence, Tuple, Type

from discgraph_sdk.core.errors import (
    EdgeWriteError,
    InvalidInputError,
    NodeWriteError,
    StoreWriteError,
)
from discgraph_sdk.core.keys import derive, document_ref, sanitize
from discgraph_sdk.graph.graph_base import (
    CONTRIBUTED_BY,
    DISCRIMINATORS,
    HAS_DISCRIMINATOR,
    INSTRUCTIONS,
    MAPPED_TO,
    PROGRAMS,
    USERS,
    GraphStoreProtocol,
)

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestReceipt:
    """Keys written by one successful ``ingest`` call."""
    program_key: str
    discriminator_key: str
    instruction_key: str
    user_key: str


async def _join(
    writes: Sequence[Tuple[str, Awaitable[None]]],
    error_type: Type[StoreWriteError],
) -> None:
    """Run every write, wait for all of them, raise for the first failure."""
    results = await asyncio.gather(*(w for _, w in writes), return_exceptions=True)
    failed: List[Tuple[str, BaseException]] = [
        (collection, r) for (collection, _), r in zip(writes, results) if isinstance(r, BaseException)
    ]
    for _, r in failed:
        if not isinstance(r, Exception):
            raise r
    if failed:
        collection, cause = failed[0]
        raise error_type(
            collection,
            cause,
            details={"failed_collections": [c for c, _ in failed]},
        ) from cause


class IngestionEngine:
    """Writes one record's nodes and edges to a Graph Store."""

    def __init__(self, store: GraphStoreProtocol) -> None:
        self._store = store

    @property
    def store(self) -> GraphStoreProtocol:
        return self._store

    async def ingest(
        self,
        program_id: str,
        discriminator_bytes: bytes,
        instruction_bytes: bytes,
        user_id: str,
    ) -> IngestReceipt:
        """
        Upsert the Program, Discriminator, Instruction and User nodes, then
        the three edges linking them.

        Raises:
            InvalidInputError: empty program, user or byte segments.
            NodeWriteError: a node write failed; no edge was attempted.
            EdgeWriteError: an edge write failed; all nodes are stored.
        """
        if not isinstance(user_id, str) or not user_id:
            raise InvalidInputError("user_id must be a non-empty string")

        disc_key = derive(program_id, discriminator_bytes)
        instr_key = derive(program_id, instruction_bytes)
        program_key = sanitize(program_id)
        user_key = sanitize(user_id)
        disc_hex = bytes(discriminator_bytes).hex()
        instr_hex = bytes(instruction_bytes).hex()

        store = self._store
        await _join(
            [
                (PROGRAMS, store.upsert_node(PROGRAMS, program_key, {"id": program_id})),
                (
                    DISCRIMINATORS,
                    store.upsert_node(
                        DISCRIMINATORS,
                        disc_key,
                        {
                            "program_id": program_id,
                            "discriminator_bytes": disc_hex,
                            "linked_instruction_id": instr_key,
                            "contributor_user_id": user_id,
                        },
                    ),
                ),
                (
                    INSTRUCTIONS,
                    store.upsert_node(
                        INSTRUCTIONS,
                        instr_key,
                        {"program_id": program_id, "instruction_bytes": instr_hex},
                    ),
                ),
                (USERS, store.upsert_node(USERS, user_key, {"id": user_id})),
            ],
            NodeWriteError,
        )

        program_ref = document_ref(PROGRAMS, program_key)
        disc_ref = document_ref(DISCRIMINATORS, disc_key)
        await _join(
            [
                (HAS_DISCRIMINATOR, store.upsert_edge(HAS_DISCRIMINATOR, program_ref, disc_ref)),
                (MAPPED_TO, store.upsert_edge(MAPPED_TO, disc_ref, document_ref(INSTRUCTIONS, instr_key))),
                (CONTRIBUTED_BY, store.upsert_edge(CONTRIBUTED_BY, disc_ref, document_ref(USERS, user_key))),
            ],
            EdgeWriteError,
        )

        LOG.debug("ingested %s for program %s", disc_key, program_id)
        return IngestReceipt(
            program_key=program_key,
            discriminator_key=disc_key,
            instruction_key=instr_key,
            user_key=user_key,
        )


__all__ = ["IngestReceipt", "IngestionEngine"]
