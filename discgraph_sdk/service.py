# discgraph_sdk/service.py
# SPDX-License-Identifier: Apache-2.0
"""
Query surface handed to the transport layer.

    get_discriminators(program_id) -> [DiscriminatorView] | NotFound | error
    ingest_one(program_id, discriminator, instruction, user_id) -> receipt | error
    get_instructions(discriminator_key) -> [InstructionView]

plus the process lifecycle: provision collections, start one poller per
known program, register/de-register programs at runtime, shut down.

Typical usage
-------------

    settings = Settings.from_env()
    async with build_service(settings) as service:
        await service.start(settings.programs)
        views = await service.get_discriminators(program_id)
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from discgraph_sdk.core.config import Settings
from discgraph_sdk.core.errors import ConfigurationError, SourceUnavailable
from discgraph_sdk.core.gates import MetricsSink
from discgraph_sdk.core.retry import NO_RETRY, RetryPolicy, retry_async
from discgraph_sdk.graph.graph_base import (
    ALL_COLLECTIONS,
    DiscriminatorView,
    GraphStoreProtocol,
    InstructionView,
)
from discgraph_sdk.ingest.engine import IngestionEngine, IngestReceipt
from discgraph_sdk.ingest.reconciler import DEFAULT_INTERVAL_S, PollingReconciler
from discgraph_sdk.ingest.write_through import WriteThroughQuery
from discgraph_sdk.ledger.ledger_base import LedgerSourceProtocol

LOG = logging.getLogger(__name__)


class DiscriminatorService:
    """Wires store, ledger, engine, query path and reconciler together."""

    def __init__(
        self,
        store: GraphStoreProtocol,
        ledger: LedgerSourceProtocol,
        *,
        poll_interval_s: float = DEFAULT_INTERVAL_S,
        retry_policy: RetryPolicy = NO_RETRY,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.engine = IngestionEngine(store)
        self.query = WriteThroughQuery(store, ledger, self.engine)
        self.reconciler = PollingReconciler(ledger, self.engine, interval_s=poll_interval_s)
        self._retry_policy = retry_policy

    # ---- query surface ------------------------------------------------------

    async def get_discriminators(self, program_id: str) -> List[DiscriminatorView]:
        return await self.query.query_discriminators(program_id)

    async def ingest_one(
        self,
        program_id: str,
        discriminator_bytes: bytes,
        instruction_bytes: bytes,
        user_id: str,
    ) -> IngestReceipt:
        """Ingest one record, retrying retryable failures per the retry policy."""
        return await retry_async(
            lambda: self.engine.ingest(program_id, discriminator_bytes, instruction_bytes, user_id),
            policy=self._retry_policy,
            on_backoff=lambda attempt, delay, exc: LOG.warning(
                "ingest for %s failed (attempt %d), retrying in %.2fs: %s",
                program_id, attempt, delay, exc,
            ),
        )

    async def get_instructions(self, discriminator_key: str) -> List[InstructionView]:
        return await self.store.instructions_for_discriminator(discriminator_key)

    # ---- lifecycle ----------------------------------------------------------

    async def verify(self) -> None:
        """
        Check the ledger endpoint answers.

        Raises:
            ConfigurationError: the ledger source is unreachable.
        """
        try:
            await self.ledger.health()
        except SourceUnavailable as e:
            raise ConfigurationError(f"ledger source is not usable: {e.message}") from e

    async def provision(self) -> None:
        await self.store.ensure_collections(ALL_COLLECTIONS)

    async def start(self, extra_program_ids: Iterable[str] = ()) -> List[str]:
        """
        Verify the ledger, provision collections and start a poller for every stored program plus
        ``extra_program_ids``. Returns the programs being polled.
        """
        await self.verify()
        await self.provision()
        known = await self.store.list_program_ids()
        programs = sorted(set(known) | {p for p in extra_program_ids if p})
        self.reconciler.start_all(programs)
        LOG.info("polling %d program(s)", len(programs))
        return programs

    def watch(self, program_id: str) -> None:
        self.reconciler.start(program_id)

    async def unwatch(self, program_id: str) -> None:
        await self.reconciler.stop(program_id)

    async def close(self) -> None:
        await self.reconciler.stop_all()
        await self.ledger.close()
        await self.store.close()

    async def __aenter__(self) -> "DiscriminatorService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def build_service(
    settings: Settings,
    *,
    metrics: Optional[MetricsSink] = None,
) -> DiscriminatorService:
    """
    Connect the ArangoDB store and the Solana RPC source from ``settings``.

    Raises:
        ConfigurationError: the graph store is unreachable or unusable.
    """
    from discgraph_sdk.graph.arango_store import ArangoGraphStore
    from discgraph_sdk.ledger.solana_rpc import SolanaRpcLedgerSource

    store = ArangoGraphStore.connect(
        settings.arango_url,
        settings.arango_user,
        settings.arango_password,
        settings.arango_db,
        mode=settings.mode,
        metrics=metrics,
    )
    ledger = SolanaRpcLedgerSource(
        settings.rpc_url,
        commitment=settings.rpc_commitment,
        timeout_s=settings.rpc_timeout_s,
        mode=settings.mode,
        metrics=metrics,
    )
    return DiscriminatorService(
        store,
        ledger,
        poll_interval_s=settings.poll_interval_s,
        retry_policy=RetryPolicy(max_attempts=settings.ingest_retry_attempts),
    )


__all__ = ["DiscriminatorService", "build_service"]
