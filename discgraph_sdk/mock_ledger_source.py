# discgraph_sdk/mock_ledger_source.py
# SPDX-License-Identifier: Apache-2.0
"""
Scripted Ledger Source used by tests, the ``--memory`` CLI mode and demos.

- Per-program account lists (replaceable between polls)
- Queued failures per program (or for every program)
- Call counters per program
"""

from __future__ import annotations

import asyncio
from collections import Counter, defaultdict, deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Optional, Tuple, Union

from discgraph_sdk.core.errors import SourceUnavailable
from discgraph_sdk.ledger.ledger_base import AccountRecord, BaseLedgerSource

AccountLike = Union[AccountRecord, Tuple[str, bytes]]


@dataclass
class MockLedgerSource(BaseLedgerSource):
    """A deterministic ledger source."""

    mode: str = "thin"
    latency_s: float = 0.0
    accounts: Dict[str, List[AccountRecord]] = field(default_factory=dict)
    calls: Counter = field(default_factory=Counter)

    def __post_init__(self) -> None:
        super().__init__(mode=self.mode)
        self._failures: Dict[Optional[str], Deque[BaseException]] = defaultdict(deque)
        self.closed = False

    def set_accounts(self, program_id: str, accounts: Iterable[AccountLike]) -> None:
        self.accounts[program_id] = [
            a if isinstance(a, AccountRecord) else AccountRecord(account_ref=a[0], data=bytes(a[1]))
            for a in accounts
        ]

    def fail_next(
        self,
        program_id: Optional[str] = None,
        error: Optional[BaseException] = None,
        *,
        times: int = 1,
    ) -> None:
        err = error or SourceUnavailable("injected ledger failure")
        for _ in range(times):
            self._failures[program_id].append(err)

    async def _do_list_accounts(self, program_id: str) -> List[AccountRecord]:
        self.calls[program_id] += 1
        await asyncio.sleep(self.latency_s)
        for slot in (program_id, None):
            queue = self._failures.get(slot)
            if queue:
                raise queue.popleft()
        return list(self.accounts.get(program_id, []))

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    async def close(self) -> None:
        self.closed = True


__all__ = ["MockLedgerSource"]
