# discgraph_sdk/ingest/write_through.py
# SPDX-License-Identifier: Apache-2.0
"""
Write-through discriminator query.

    CHECK_CACHE -> HIT: return
                -> MISS: FETCH -> DECODE_EACH -> INGEST_EACH -> RE_QUERY -> return
                                                                         | NOT_FOUND

Batch policy on a miss is fail-fast: the first ingest failure aborts the rest
of the batch and surfaces as QueryStoreWriteError, because the foreground
caller needs to know the request did not complete. Malformed records are
skipped and never abort the batch.
"""

from __future__ import annotations

import logging
from typing import List

from discgraph_sdk.core.decoder import decode
from discgraph_sdk.core.errors import (
    DiscGraphError,
    IngestError,
    InvalidInputError,
    MalformedRecordError,
    NotFound,
    QuerySourceUnavailable,
    QueryStoreReadError,
    QueryStoreWriteError,
    SourceUnavailable,
)
from discgraph_sdk.graph.graph_base import DiscriminatorView, GraphStoreProtocol
from discgraph_sdk.ingest.engine import IngestionEngine
from discgraph_sdk.ledger.ledger_base import LedgerSourceProtocol

LOG = logging.getLogger(__name__)


class WriteThroughQuery:
    """Serve discriminators from the store, filling it from the ledger on a miss."""

    def __init__(
        self,
        store: GraphStoreProtocol,
        ledger: LedgerSourceProtocol,
        engine: IngestionEngine,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._engine = engine

    async def _read(self, program_id: str) -> List[DiscriminatorView]:
        try:
            return await self._store.query_by_program_prefix(program_id)
        except InvalidInputError:
            raise
        except DiscGraphError as e:
            raise QueryStoreReadError(
                f"reading discriminators for {program_id} failed: {e.message}",
                details={"program_id": program_id, "cause": type(e).__name__},
            ) from e

    async def query_discriminators(self, program_id: str) -> List[DiscriminatorView]:
        """
        Return every stored discriminator of ``program_id``.

        Raises:
            InvalidInputError: empty or rejected program id.
            QueryStoreReadError: the store query failed.
            QuerySourceUnavailable: cache miss and the ledger fetch failed.
            QueryStoreWriteError: cache miss and ingesting a record failed.
            NotFound: cache miss and the ledger reports zero accounts.
        """
        cached = await self._read(program_id)
        if cached:
            return cached

        try:
            accounts = await self._ledger.list_accounts(program_id)
        except SourceUnavailable as e:
            raise QuerySourceUnavailable(
                f"ledger unavailable for {program_id}: {e.message}",
                retry_after_ms=e.retry_after_ms,
                details={"program_id": program_id},
            ) from e

        if not accounts:
            LOG.info("no accounts on ledger for program %s", program_id)
            raise NotFound(
                f"no discriminators found for program {program_id}",
                details={"program_id": program_id},
            )

        ingested = skipped = 0
        for account in accounts:
            try:
                disc, instr = decode(account.data)
            except MalformedRecordError as e:
                skipped += 1
                LOG.debug("skipping account %s: %s", account.account_ref, e.message)
                continue
            try:
                await self._engine.ingest(program_id, disc, instr, account.account_ref)
            except InvalidInputError as e:
                skipped += 1
                LOG.debug("skipping account %s: %s", account.account_ref, e.message)
                continue
            except IngestError as e:
                raise QueryStoreWriteError(
                    f"ingesting account {account.account_ref} failed: {e.message}",
                    details={
                        "program_id": program_id,
                        "account": account.account_ref,
                        "ingested": ingested,
                        "cause": type(e).__name__,
                    },
                ) from e
            ingested += 1

        LOG.info(
            "write-through for %s: ingested=%d skipped=%d", program_id, ingested, skipped
        )
        if not ingested:
            raise NotFound(
                f"no decodable accounts for program {program_id}",
                details={"program_id": program_id, "skipped": skipped},
            )
        return await self._read(program_id)


__all__ = ["WriteThroughQuery"]
