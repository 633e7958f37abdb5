# SPDX-License-Identifier: Apache-2.0
"""
Shared fixtures: an in-memory graph store, a scripted ledger and the
components wired on top of them.
"""

from __future__ import annotations

import pytest

from discgraph_sdk.ingest.engine import IngestionEngine
from discgraph_sdk.ingest.reconciler import PollingReconciler
from discgraph_sdk.ingest.write_through import WriteThroughQuery
from discgraph_sdk.mock_graph_store import InMemoryGraphStore
from discgraph_sdk.mock_ledger_source import MockLedgerSource
from discgraph_sdk.service import DiscriminatorService


@pytest.fixture
def store() -> InMemoryGraphStore:
    return InMemoryGraphStore()


@pytest.fixture
def ledger() -> MockLedgerSource:
    return MockLedgerSource()


@pytest.fixture
def engine(store) -> IngestionEngine:
    return IngestionEngine(store)


@pytest.fixture
def query(store, ledger, engine) -> WriteThroughQuery:
    return WriteThroughQuery(store, ledger, engine)


@pytest.fixture
def reconciler(ledger, engine) -> PollingReconciler:
    return PollingReconciler(ledger, engine, interval_s=0.01)


@pytest.fixture
def service(store, ledger) -> DiscriminatorService:
    return DiscriminatorService(store, ledger, poll_interval_s=0.01)
