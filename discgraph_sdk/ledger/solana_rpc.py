# discgraph_sdk/ledger/solana_rpc.py
# SPDX-License-Identifier: Apache-2.0
"""
Solana JSON-RPC ledger source (``getProgramAccounts``).

Request:
    {"jsonrpc": "2.0", "id": <n>, "method": "getProgramAccounts",
     "params": [<program_id>, {"encoding": "base64", "commitment": <c>}]}

Response ``result`` items:
    {"pubkey": "...", "account": {"data": ["<base64>", "base64"], ...}}
"""

from __future__ import annotations

import base64
import binascii
import itertools
import logging
from typing import Any, List, Mapping, Optional

import httpx

from discgraph_sdk.core.errors import InvalidInputError, SourceUnavailable
from discgraph_sdk.core.gates import MetricsSink
from discgraph_sdk.ledger.ledger_base import AccountRecord, BaseLedgerSource

LOG = logging.getLogger(__name__)

# JSON-RPC "invalid params", returned for malformed program addresses.
INVALID_PARAMS = -32602


class SolanaRpcLedgerSource(BaseLedgerSource):
    """
    Ledger source over a shared ``httpx.AsyncClient``.

    The client is safe for concurrent use by every poller and request task.
    """

    def __init__(
        self,
        url: str,
        *,
        commitment: str = "confirmed",
        timeout_s: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        mode: str = "thin",
        metrics: Optional[MetricsSink] = None,
    ) -> None:
        super().__init__(mode=mode, metrics=metrics)
        self._url = url
        self._commitment = commitment
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._ids = itertools.count(1)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = await self._client.post(self._url, json=payload)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as e:
            retry_after = e.response.headers.get("retry-after")
            raise SourceUnavailable(
                f"{method} returned HTTP {e.response.status_code}",
                retry_after_ms=int(retry_after) * 1000 if retry_after and retry_after.isdigit() else None,
                details={"method": method, "status": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            raise SourceUnavailable(
                f"{method} transport error: {e}",
                details={"method": method, "error": type(e).__name__},
            ) from e
        except ValueError as e:
            raise SourceUnavailable(f"{method} returned invalid JSON", details={"method": method}) from e

        error = body.get("error") if isinstance(body, Mapping) else None
        if error:
            code = error.get("code")
            message = error.get("message", "")
            if code == INVALID_PARAMS:
                raise InvalidInputError(f"{method} rejected params: {message}", details={"rpc_code": code})
            raise SourceUnavailable(f"{method} failed: {message}", details={"rpc_code": code})
        if not isinstance(body, Mapping) or "result" not in body:
            raise SourceUnavailable(f"{method} response has no result", details={"method": method})
        return body["result"]

    async def _do_health(self) -> None:
        result = await self._rpc("getHealth", [])
        if result != "ok":
            raise SourceUnavailable(f"ledger node reports {result!r}", details={"health": str(result)})

    async def _do_list_accounts(self, program_id: str) -> List[AccountRecord]:
        result = await self._rpc(
            "getProgramAccounts",
            [program_id, {"encoding": "base64", "commitment": self._commitment}],
        )
        if isinstance(result, Mapping):
            # withContext responses wrap the list in {"context":..., "value": [...]}
            result = result.get("value", [])
        records = []
        for item in result or []:
            record = _account_record(item)
            if record is not None:
                records.append(record)
        LOG.debug("getProgramAccounts(%s) returned %d accounts", program_id, len(records))
        return records


def _account_record(item: Mapping[str, Any]) -> Optional[AccountRecord]:
    try:
        pubkey = str(item["pubkey"])
        data = item["account"]["data"]
        encoded = data[0] if isinstance(data, list) else data
        raw = base64.b64decode(encoded, validate=True)
    except (KeyError, IndexError, TypeError, binascii.Error) as e:
        LOG.warning("skipping account with unexpected shape: %s", e)
        return None
    return AccountRecord(account_ref=pubkey, data=raw)


__all__ = ["SolanaRpcLedgerSource", "INVALID_PARAMS"]
