# discgraph_sdk/mock_graph_store.py
# SPDX-License-Identifier: Apache-2.0
"""
In-memory Graph Store used by tests, the ``--memory`` CLI mode and demos.

Implements BaseGraphStore hooks with deterministic behavior:
- Dict-backed collections with overwrite-by-key semantics
- Lazy collection creation on first write (or strict mode, where a write to
  an unprovisioned collection fails)
- Per-(operation, collection) failure injection
- Call counters for asserting which store calls happened
"""

from __future__ import annotations

import asyncio
from collections import Counter, defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Optional, Tuple

from discgraph_sdk.core.errors import StoreError, StoreUnavailable
from discgraph_sdk.core.keys import edge_key
from discgraph_sdk.graph.graph_base import (
    BaseGraphStore,
    DISCRIMINATORS,
    INSTRUCTIONS,
    MAPPED_TO,
    PROGRAMS,
    DiscriminatorView,
    InstructionView,
    discriminator_view,
)


@dataclass
class InMemoryGraphStore(BaseGraphStore):
    """A deterministic, single-process graph store."""

    mode: str = "thin"
    strict: bool = False
    latency_s: float = 0.0
    collections: Dict[str, Dict[str, Dict[str, Any]]] = field(default_factory=dict)
    calls: Counter = field(default_factory=Counter)

    def __post_init__(self) -> None:
        super().__init__(mode=self.mode)
        self._failures: Dict[Tuple[str, Optional[str]], Deque[BaseException]] = defaultdict(deque)
        self.closed = False

    # -------------------------------------------------------------------------
    # Failure injection
    # -------------------------------------------------------------------------
    def fail_next(
        self,
        op: str,
        collection: Optional[str] = None,
        error: Optional[BaseException] = None,
        *,
        times: int = 1,
    ) -> None:
        """Make the next ``times`` calls of ``op`` (on ``collection``) fail."""
        err = error or StoreUnavailable(f"injected {op} failure")
        for _ in range(times):
            self._failures[(op, collection)].append(err)

    def _maybe_fail(self, op: str, collection: Optional[str] = None) -> None:
        for slot in ((op, collection), (op, None)):
            queue = self._failures.get(slot)
            if queue:
                raise queue.popleft()

    async def _sleep(self) -> None:
        # always yield so concurrent upserts interleave
        await asyncio.sleep(self.latency_s)

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        if name not in self.collections:
            if self.strict:
                raise StoreError(f"collection not found: {name}", details={"collection": name})
            self.collections[name] = {}
        return self.collections[name]

    # -------------------------------------------------------------------------
    # Inspection helpers
    # -------------------------------------------------------------------------
    def documents(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return dict(self.collections.get(collection, {}))

    def count(self, collection: str) -> int:
        return len(self.collections.get(collection, {}))

    def edge_pairs(self, collection: str) -> List[Tuple[str, str]]:
        return sorted(
            (doc["_from"], doc["_to"]) for doc in self.collections.get(collection, {}).values()
        )

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    # -------------------------------------------------------------------------
    # Hooks
    # -------------------------------------------------------------------------
    async def _do_upsert_node(self, collection: str, key: str, doc: Dict[str, Any]) -> None:
        self.calls["upsert_node"] += 1
        await self._sleep()
        self._maybe_fail("upsert_node", collection)
        self._collection(collection)[key] = dict(doc)

    async def _do_upsert_edge(self, collection: str, from_ref: str, to_ref: str) -> None:
        self.calls["upsert_edge"] += 1
        await self._sleep()
        self._maybe_fail("upsert_edge", collection)
        key = edge_key(from_ref, to_ref)
        self._collection(collection)[key] = {"_key": key, "_from": from_ref, "_to": to_ref}

    async def _do_query_by_prefix(self, prefix: str, program_id: str) -> List[DiscriminatorView]:
        self.calls["query_by_program_prefix"] += 1
        await self._sleep()
        self._maybe_fail("query_by_program_prefix")
        instructions = self.collections.get(INSTRUCTIONS, {})
        out = []
        for key in sorted(self.collections.get(DISCRIMINATORS, {})):
            if not key.startswith(prefix):
                continue
            doc = self.collections[DISCRIMINATORS][key]
            if doc.get("program_id") != program_id:
                continue
            out.append(discriminator_view(doc, instructions.get(doc.get("linked_instruction_id", ""))))
        return out

    async def _do_ensure_collections(self, names: List[str]) -> None:
        self.calls["ensure_collections"] += 1
        self._maybe_fail("ensure_collections")
        for name in names:
            self.collections.setdefault(name, {})

    async def _do_list_program_ids(self) -> List[str]:
        self.calls["list_program_ids"] += 1
        self._maybe_fail("list_program_ids")
        return sorted(doc["id"] for doc in self.collections.get(PROGRAMS, {}).values())

    async def _do_instructions_for_discriminator(self, discriminator_key: str) -> List[InstructionView]:
        self.calls["instructions_for_discriminator"] += 1
        await self._sleep()
        self._maybe_fail("instructions_for_discriminator")
        source = f"{DISCRIMINATORS}/{discriminator_key}"
        instructions = self.collections.get(INSTRUCTIONS, {})
        out = []
        for from_ref, to_ref in self.edge_pairs(MAPPED_TO):
            if from_ref != source:
                continue
            key = to_ref.split("/", 1)[1]
            doc = instructions.get(key)
            if doc is not None:
                out.append(InstructionView(key=key, instruction=str(doc.get("instruction_bytes", ""))))
        return out

    async def close(self) -> None:
        self.closed = True


__all__ = ["InMemoryGraphStore"]
