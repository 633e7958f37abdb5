# discgraph_sdk/ledger/__init__.py
# SPDX-License-Identifier: Apache-2.0
"""Ledger Source - Public API."""

from discgraph_sdk.ledger.ledger_base import (
    AccountRecord,
    LedgerSourceProtocol,
    BaseLedgerSource,
)

__all__ = ["AccountRecord", "LedgerSourceProtocol", "BaseLedgerSource"]
