# discgraph_sdk/ingest/__init__.py
# SPDX-License-Identifier: Apache-2.0
"""Ingestion core: engine, write-through query and polling reconciler."""

from discgraph_sdk.ingest.engine import IngestionEngine, IngestReceipt
from discgraph_sdk.ingest.write_through import WriteThroughQuery
from discgraph_sdk.ingest.reconciler import PollingReconciler, PollStats

__all__ = [
    "IngestionEngine",
    "IngestReceipt",
    "WriteThroughQuery",
    "PollingReconciler",
    "PollStats",
]
