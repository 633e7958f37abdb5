# discgraph_sdk/graph/__init__.py
# SPDX-License-Identifier: Apache-2.0
"""
Graph Store - Public API

The ArangoDB store is imported from ``discgraph_sdk.graph.arango_store``
directly so that the driver is only loaded when it is used.
"""

from discgraph_sdk.graph.graph_base import (
    PROGRAMS,
    DISCRIMINATORS,
    INSTRUCTIONS,
    USERS,
    HAS_DISCRIMINATOR,
    MAPPED_TO,
    CONTRIBUTED_BY,
    NODE_COLLECTIONS,
    EDGE_COLLECTIONS,
    ALL_COLLECTIONS,
    DiscriminatorView,
    InstructionView,
    GraphStoreProtocol,
    BaseGraphStore,
)

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
    "DiscriminatorView",
    "InstructionView",
    "GraphStoreProtocol",
    "BaseGraphStore",
]
