# discgraph_sdk/graph/arango_store.py
# SPDX-License-Identifier: Apache-2.0
"""
ArangoDB-backed Graph Store.

Uses the synchronous ``python-arango`` driver; every driver call runs in a
worker thread via ``asyncio.to_thread`` so store I/O never stalls pollers or
request handlers sharing the event loop.

Writes use ``insert(..., overwrite=True)`` (replace by ``_key``), which gives
the overwrite semantics the ingestion engine relies on. A write to a missing
collection provisions it and retries once.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

from arango import ArangoClient
from arango.exceptions import ArangoClientError, ArangoServerError, ServerConnectionError

from discgraph_sdk.core.errors import ConfigurationError, StoreError, StoreUnavailable
from discgraph_sdk.core.gates import MetricsSink
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
    is_edge_collection,
)

LOG = logging.getLogger(__name__)

T = TypeVar("T")

# ArangoDB "collection or view not found"
ERROR_DATA_SOURCE_NOT_FOUND = 1203
# ArangoDB "duplicate name", raised when another writer created it first
ERROR_DUPLICATE_NAME = 1207

QUERY_BY_PREFIX_AQL = f"""
FOR d IN {DISCRIMINATORS}
    FILTER STARTS_WITH(d._key, @prefix) AND d.program_id == @program_id
    SORT d._key
    LET i = d.linked_instruction_id ? DOCUMENT({INSTRUCTIONS}, d.linked_instruction_id) : null
    RETURN {{ discriminator: d, instruction: i }}
"""

INSTRUCTIONS_FOR_DISCRIMINATOR_AQL = f"""
FOR i IN 1..1 OUTBOUND @start {MAPPED_TO}
    SORT i._key
    RETURN DISTINCT i
"""

PROGRAM_IDS_AQL = f"FOR p IN {PROGRAMS} SORT p.id RETURN p.id"


def _is_missing_collection(err: BaseException) -> bool:
    return isinstance(err, ArangoServerError) and err.error_code == ERROR_DATA_SOURCE_NOT_FOUND


def _map_error(op: str, err: BaseException) -> StoreError:
    details: Dict[str, Any] = {"op": op, "error": type(err).__name__}
    if isinstance(err, (ServerConnectionError, ConnectionError, OSError)):
        return StoreUnavailable(f"{op} failed: {err}", details=details)
    if isinstance(err, ArangoServerError):
        details["error_code"] = err.error_code
        details["http_code"] = err.http_code
        if (err.http_code or 0) >= 500:
            return StoreUnavailable(f"{op} failed: {err.error_message}", details=details)
        return StoreError(f"{op} failed: {err.error_message}", details=details)
    return StoreError(f"{op} failed: {err}", details=details)


class ArangoGraphStore(BaseGraphStore):
    """
    Graph store on an ArangoDB database handle.

    Construct with an existing ``StandardDatabase`` (tests inject a fake), or
    use ``ArangoGraphStore.connect(...)`` to build the client from settings.
    """

    def __init__(
        self,
        db: Any,
        *,
        client: Optional[ArangoClient] = None,
        mode: str = "thin",
        metrics: Optional[MetricsSink] = None,
    ) -> None:
        super().__init__(mode=mode, metrics=metrics)
        self._db = db
        self._client = client

    @classmethod
    def connect(
        cls,
        url: str,
        username: str,
        password: str,
        db_name: str,
        *,
        mode: str = "thin",
        metrics: Optional[MetricsSink] = None,
    ) -> "ArangoGraphStore":
        """
        Open the database and verify the server is reachable.

        Raises:
            ConfigurationError: unreachable server, bad credentials or a
                missing database.
        """
        client = ArangoClient(hosts=url)
        try:
            db = client.db(db_name, username=username, password=password, verify=True)
        except (ArangoClientError, ArangoServerError, ConnectionError, OSError) as e:
            client.close()
            raise ConfigurationError(
                f"graph store at {url} is not usable: {e}",
                details={"url": url, "db": db_name},
            ) from e
        LOG.info("connected to graph store %s (db=%s)", url, db_name)
        return cls(db, client=client, mode=mode, metrics=metrics)

    async def close(self) -> None:
        if self._client is not None:
            await asyncio.to_thread(self._client.close)
            self._client = None

    # ---- driver helpers -----------------------------------------------------

    async def _run(self, op: str, fn: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(fn)
        except (ArangoClientError, ArangoServerError, ConnectionError, OSError) as e:
            raise _map_error(op, e) from e

    def _insert(self, collection: str, doc: Dict[str, Any]) -> None:
        try:
            self._db.collection(collection).insert(doc, overwrite=True, silent=True)
        except ArangoServerError as e:
            if not _is_missing_collection(e):
                raise
            LOG.info("provisioning missing collection %s", collection)
            self._create_collection(collection)
            self._db.collection(collection).insert(doc, overwrite=True, silent=True)

    def _create_collection(self, name: str) -> None:
        if self._db.has_collection(name):
            return
        try:
            self._db.create_collection(name, edge=is_edge_collection(name))
        except ArangoServerError as e:
            if e.error_code != ERROR_DUPLICATE_NAME:
                raise
            LOG.debug("collection %s was created concurrently", name)

    def _aql(self, query: str, bind_vars: Dict[str, Any]) -> List[Any]:
        try:
            return list(self._db.aql.execute(query, bind_vars=bind_vars))
        except ArangoServerError as e:
            if _is_missing_collection(e):
                return []
            raise

    # ---- hooks --------------------------------------------------------------

    async def _do_upsert_node(self, collection: str, key: str, doc: Dict[str, Any]) -> None:
        await self._run("upsert_node", lambda: self._insert(collection, doc))

    async def _do_upsert_edge(self, collection: str, from_ref: str, to_ref: str) -> None:
        doc = {"_key": edge_key(from_ref, to_ref), "_from": from_ref, "_to": to_ref}
        await self._run("upsert_edge", lambda: self._insert(collection, doc))

    async def _do_query_by_prefix(self, prefix: str, program_id: str) -> List[DiscriminatorView]:
        rows = await self._run(
            "query_by_program_prefix",
            lambda: self._aql(QUERY_BY_PREFIX_AQL, {"prefix": prefix, "program_id": program_id}),
        )
        return [discriminator_view(row["discriminator"], row.get("instruction")) for row in rows]

    async def _do_ensure_collections(self, names: List[str]) -> None:
        def _ensure() -> None:
            for name in names:
                self._create_collection(name)

        await self._run("ensure_collections", _ensure)

    async def _do_list_program_ids(self) -> List[str]:
        rows = await self._run("list_program_ids", lambda: self._aql(PROGRAM_IDS_AQL, {}))
        return [str(r) for r in rows if r]

    async def _do_instructions_for_discriminator(self, discriminator_key: str) -> List[InstructionView]:
        rows = await self._run(
            "instructions_for_discriminator",
            lambda: self._aql(
                INSTRUCTIONS_FOR_DISCRIMINATOR_AQL,
                {"start": f"{DISCRIMINATORS}/{discriminator_key}"},
            ),
        )
        return [
            InstructionView(key=str(r.get("_key", "")), instruction=str(r.get("instruction_bytes", "")))
            for r in rows
        ]


__all__ = ["ArangoGraphStore", "ERROR_DATA_SOURCE_NOT_FOUND", "ERROR_DUPLICATE_NAME"]
