# discgraph_sdk/ingest/reconciler.py
# SPDX-License-Identifier: Apache-2.0
"""
Per-program polling reconciler.

One asyncio task per program, each looping forever:

    FETCH -> DECODE_EACH -> INGEST_EACH -> SLEEP(interval) -> FETCH ...

Nothing raised inside an iteration escapes the loop: a failed fetch or a
failed record is logged and the loop carries on after the normal interval,
so one failing program cannot affect the others. Tasks stop only through
``stop``/``stop_all``, which interrupt the sleep (and any in-flight fetch or
write) deterministically.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional

from discgraph_sdk.core.decoder import decode
from discgraph_sdk.core.errors import DiscGraphError, InvalidInputError, MalformedRecordError
from discgraph_sdk.ingest.engine import IngestionEngine
from discgraph_sdk.ledger.ledger_base import LedgerSourceProtocol

LOG = logging.getLogger(__name__)

DEFAULT_INTERVAL_S = 10.0


@dataclass(frozen=True)
class PollStats:
    """
    Outcome of one poll iteration.

    Attributes:
        fetched: Accounts returned by the ledger (0 when the fetch failed).
        ingested: Records written successfully.
        skipped: Records that could not be decoded or carry no instruction.
        failed: Records whose ingest failed.
        fetch_failed: True when the ledger fetch itself failed.
    """
    fetched: int = 0
    ingested: int = 0
    skipped: int = 0
    failed: int = 0
    fetch_failed: bool = False


class PollingReconciler:
    """Owns one background polling task per program id."""

    def __init__(
        self,
        ledger: LedgerSourceProtocol,
        engine: IngestionEngine,
        *,
        interval_s: float = DEFAULT_INTERVAL_S,
    ) -> None:
        if interval_s < 0:
            raise ValueError("interval_s must be >= 0")
        self._ledger = ledger
        self._engine = engine
        self._interval_s = float(interval_s)
        self._tasks: Dict[str, asyncio.Task] = {}
        self._stops: Dict[str, asyncio.Event] = {}

    @property
    def interval_s(self) -> float:
        return self._interval_s

    @property
    def running(self) -> FrozenSet[str]:
        return frozenset(p for p, t in self._tasks.items() if not t.done())

    # ---- single iteration ---------------------------------------------------

    async def poll_once(self, program_id: str) -> PollStats:
        """Run one FETCH/DECODE/INGEST pass; never raises DiscGraphError."""
        try:
            accounts = await self._ledger.list_accounts(program_id)
        except DiscGraphError as e:
            LOG.warning("fetching accounts for %s failed: %s", program_id, e)
            return PollStats(fetch_failed=True)

        ingested = skipped = failed = 0
        for account in accounts:
            try:
                disc, instr = decode(account.data)
            except MalformedRecordError as e:
                skipped += 1
                LOG.debug("skipping account %s of %s: %s", account.account_ref, program_id, e.message)
                continue
            try:
                await self._engine.ingest(program_id, disc, instr, account.account_ref)
            except InvalidInputError as e:
                # header-only records have no instruction to store
                skipped += 1
                LOG.debug("skipping account %s of %s: %s", account.account_ref, program_id, e.message)
                continue
            except DiscGraphError as e:
                failed += 1
                LOG.warning("storing account %s of %s failed: %s", account.account_ref, program_id, e)
                continue
            ingested += 1

        stats = PollStats(fetched=len(accounts), ingested=ingested, skipped=skipped, failed=failed)
        LOG.debug("poll %s: %s", program_id, stats)
        return stats

    # ---- loop ---------------------------------------------------------------

    async def _run(self, program_id: str, stop: asyncio.Event) -> None:
        LOG.info("poller for %s started (interval=%.1fs)", program_id, self._interval_s)
        try:
            while not stop.is_set():
                try:
                    await self.poll_once(program_id)
                except Exception:
                    # keep the task alive whatever the collaborators raise
                    LOG.exception("poll iteration for %s crashed", program_id)
                try:
                    await asyncio.wait_for(stop.wait(), timeout=self._interval_s)
                except asyncio.TimeoutError:
                    pass
        finally:
            LOG.info("poller for %s stopped", program_id)

    def start(self, program_id: str) -> asyncio.Task:
        """Start polling ``program_id``; a no-op if it is already running."""
        if not program_id:
            raise ValueError("program_id must be non-empty")
        task = self._tasks.get(program_id)
        if task is not None and not task.done():
            return task
        stop = asyncio.Event()
        task = asyncio.create_task(self._run(program_id, stop), name=f"poller:{program_id}")
        self._tasks[program_id] = task
        self._stops[program_id] = stop
        return task

    def start_all(self, program_ids: Iterable[str]) -> None:
        for program_id in program_ids:
            self.start(program_id)

    async def stop(self, program_id: str, *, timeout_s: Optional[float] = None) -> None:
        """
        Stop one poller. The sleep is interrupted immediately; an in-flight
        fetch or write is cancelled if it does not finish within ``timeout_s``
        (immediately when None).
        """
        task = self._tasks.pop(program_id, None)
        stop = self._stops.pop(program_id, None)
        if task is None:
            return
        if stop is not None:
            stop.set()
        if timeout_s:
            done, _ = await asyncio.wait({task}, timeout=timeout_s)
            if task in done:
                return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def stop_all(self, *, timeout_s: Optional[float] = None) -> None:
        await asyncio.gather(*(self.stop(p, timeout_s=timeout_s) for p in list(self._tasks)))

    async def __aenter__(self) -> "PollingReconciler":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop_all()


__all__ = ["PollStats", "PollingReconciler", "DEFAULT_INTERVAL_S"]
