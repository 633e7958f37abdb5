# discgraph_sdk/ledger/ledger_base.py
# SPDX-License-Identifier: Apache-2.0
"""
Ledger Source contract: list the raw accounts currently owned by a program.

Sources only fetch; decoding and persistence belong to the ingestion core.
Any failure that is not a caller error surfaces as SourceUnavailable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, runtime_checkable

from discgraph_sdk.core.errors import DiscGraphError, InvalidInputError, SourceUnavailable
from discgraph_sdk.core.gates import CircuitBreaker, Gates, MetricsSink, RateLimiter

LOG = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountRecord:
    """
    One account as returned by the ledger.

    Attributes:
        account_ref: Account address; also used as the contributing user.
        data: Raw account data.
    """
    account_ref: str
    data: bytes


@runtime_checkable
class LedgerSourceProtocol(Protocol):
    async def list_accounts(self, program_id: str) -> List[AccountRecord]:
        ...

    async def health(self) -> None:
        ...

    async def close(self) -> None:
        ...


class BaseLedgerSource(LedgerSourceProtocol):
    """
    Base implementation of LedgerSourceProtocol.

    Validates input, applies the shared gates and converts unexpected
    exceptions into SourceUnavailable. Subclasses implement
    ``_do_list_accounts``.
    """

    _component = "ledger_source"

    def __init__(
        self,
        *,
        mode: str = "thin",
        metrics: Optional[MetricsSink] = None,
        breaker: Optional[CircuitBreaker] = None,
        limiter: Optional[RateLimiter] = None,
    ) -> None:
        self._gates = Gates(
            component=self._component,
            unavailable=SourceUnavailable,
            mode=mode,
            metrics=metrics,
            breaker=breaker,
            limiter=limiter,
        )

    async def __aenter__(self) -> "BaseLedgerSource":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        return None

    async def health(self) -> None:
        """Raise SourceUnavailable when the source cannot serve requests."""
        await self._gates.run("health", self._do_health)

    async def _do_health(self) -> None:
        return None

    async def list_accounts(self, program_id: str) -> List[AccountRecord]:
        if not isinstance(program_id, str) or not program_id.strip():
            raise InvalidInputError("program_id must be a non-empty string")

        async def _guarded() -> List[AccountRecord]:
            try:
                return await self._do_list_accounts(program_id)
            except DiscGraphError:
                raise
            except Exception as e:
                raise SourceUnavailable(
                    f"listing accounts failed: {e}",
                    details={"program_id": program_id, "error": type(e).__name__},
                ) from e

        return await self._gates.run("list_accounts", _guarded, scope=program_id)

    async def _do_list_accounts(self, program_id: str) -> List[AccountRecord]:
        raise NotImplementedError


__all__ = ["AccountRecord", "LedgerSourceProtocol", "BaseLedgerSource"]
