# discgraph_sdk/__init__.py
# SPDX-License-Identifier: Apache-2.0
"""
Discriminator graph SDK.

Ingests raw program-account records from a ledger, splits each into a
discriminator and an instruction payload, and keeps them in a small
knowledge graph (programs, discriminators, instructions, users) that
consumers query per program.
"""

from discgraph_sdk.core.errors import (
    DiscGraphError,
    InvalidInputError,
    MalformedRecordError,
    SourceUnavailable,
    StoreError,
    StoreUnavailable,
    ConfigurationError,
    IngestError,
    StoreWriteError,
    NodeWriteError,
    EdgeWriteError,
    QueryError,
    QuerySourceUnavailable,
    QueryStoreWriteError,
    QueryStoreReadError,
    NotFound,
)
from discgraph_sdk.core.keys import derive
from discgraph_sdk.core.decoder import decode
from discgraph_sdk.graph.graph_base import DiscriminatorView, InstructionView
from discgraph_sdk.ingest import IngestionEngine, PollingReconciler, WriteThroughQuery
from discgraph_sdk.service import DiscriminatorService, build_service

__version__ = "0.1.0"

__all__ = [
    "__version__",
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
    "derive",
    "decode",
    "DiscriminatorView",
    "InstructionView",
    "IngestionEngine",
    "PollingReconciler",
    "WriteThroughQuery",
    "DiscriminatorService",
    "build_service",
]
