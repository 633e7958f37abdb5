# SPDX-License-Identifier: Apache-2.0
"""
Query surface facade and process lifecycle.

Asserts:
  • start provisions collections and polls stored + configured programs
  • an unusable ledger at startup is a ConfigurationError
  • ingest_one retries retryable failures per the retry policy
  • watch / unwatch / close manage pollers and clients
  • build_service wires the Arango store and RPC source from settings
"""
import pytest

from discgraph_sdk.core.config import Settings
from discgraph_sdk.core.errors import (
    ConfigurationError,
    EdgeWriteError,
    NodeWriteError,
    SourceUnavailable,
    StoreError,
)
from discgraph_sdk.core.retry import RetryPolicy
from discgraph_sdk.graph.arango_store import ArangoGraphStore
from discgraph_sdk.graph.graph_base import ALL_COLLECTIONS, MAPPED_TO, PROGRAMS, USERS
from discgraph_sdk.ledger.solana_rpc import SolanaRpcLedgerSource
from discgraph_sdk.mock_graph_store import InMemoryGraphStore
from discgraph_sdk.service import DiscriminatorService, build_service

pytestmark = pytest.mark.asyncio

RECORD = bytes(range(1, 17))
RETRY = RetryPolicy(max_attempts=3, base_ms=1, max_ms=1, use_jitter=False)


async def test_start_provisions_and_polls_known_and_extra_programs(ledger):
    store = InMemoryGraphStore(strict=True)
    service = DiscriminatorService(store, ledger, poll_interval_s=0.01)
    await store.ensure_collections([PROGRAMS])
    await store.upsert_node(PROGRAMS, "P1", {"id": "P1"})

    programs = await service.start(["P3", "", "P1"])

    assert programs == ["P1", "P3"]
    assert set(ALL_COLLECTIONS) <= set(store.collections)
    assert service.reconciler.running == frozenset({"P1", "P3"})
    await service.close()


async def test_start_fails_when_ledger_is_unreachable(service, ledger):
    async def unhealthy():
        raise SourceUnavailable("rpc down")

    ledger._do_health = unhealthy
    with pytest.raises(ConfigurationError):
        await service.start()
    assert service.reconciler.running == frozenset()


async def test_get_discriminators_goes_through_write_through(service, ledger):
    ledger.set_accounts("P1", [("U1", RECORD)])
    (view,) = await service.get_discriminators("P1")
    assert view.contributor == "U1"


async def test_ingest_one_retries_retryable_failures(store, ledger):
    service = DiscriminatorService(store, ledger, retry_policy=RETRY)
    store.fail_next("upsert_node", USERS, times=2)

    receipt = await service.ingest_one("P1", RECORD[:8], RECORD[8:], "U1")

    assert receipt.user_key == "U1"
    assert store.count(USERS) == 1


async def test_ingest_one_does_not_retry_permanent_failures(store, ledger):
    service = DiscriminatorService(store, ledger, retry_policy=RETRY)
    store.fail_next("upsert_edge", MAPPED_TO, StoreError("rejected"))

    with pytest.raises(EdgeWriteError):
        await service.ingest_one("P1", RECORD[:8], RECORD[8:], "U1")
    assert store.calls["upsert_node"] == 4


async def test_ingest_one_without_retry_policy_fails_once(service, store):
    store.fail_next("upsert_node", USERS)
    with pytest.raises(NodeWriteError):
        await service.ingest_one("P1", RECORD[:8], RECORD[8:], "U1")


async def test_get_instructions(service):
    receipt = await service.ingest_one("P1", RECORD[:8], RECORD[8:], "U1")
    (view,) = await service.get_instructions(receipt.discriminator_key)
    assert view.key == receipt.instruction_key
    assert view.instruction == RECORD[8:].hex()


async def test_watch_and_unwatch(service, store, ledger):
    ledger.set_accounts("P1", [("U1", RECORD)])
    service.watch("P1")
    assert "P1" in service.reconciler.running
    await service.unwatch("P1")
    assert service.reconciler.running == frozenset()


async def test_close_stops_pollers_and_clients(store, ledger):
    async with DiscriminatorService(store, ledger, poll_interval_s=0.01) as service:
        await service.start(["P1"])
    assert service.reconciler.running == frozenset()
    assert store.closed and ledger.closed


async def test_build_service_wires_settings(monkeypatch):
    seen = {}

    def fake_connect(cls, url, username, password, db_name, **kw):
        seen.update(url=url, username=username, db_name=db_name, mode=kw.get("mode"))
        return InMemoryGraphStore()

    monkeypatch.setattr(ArangoGraphStore, "connect", classmethod(fake_connect))
    settings = Settings(
        arango_url="http://arango:8529",
        arango_db="graph",
        poll_interval_s=2.0,
        mode="standalone",
    )

    service = build_service(settings)

    assert seen == {"url": "http://arango:8529", "username": "root", "db_name": "graph", "mode": "standalone"}
    assert isinstance(service.ledger, SolanaRpcLedgerSource)
    assert service.reconciler.interval_s == 2.0
    await service.close()
