# SPDX-License-Identifier: Apache-2.0
"""
Solana JSON-RPC ledger source over httpx.MockTransport.

Asserts:
  • getProgramAccounts is called with base64 encoding and the commitment
  • account data is base64-decoded; badly shaped items are skipped
  • transport, HTTP and RPC failures surface as SourceUnavailable
  • "invalid params" surfaces as InvalidInputError
  • in standalone mode each program has its own circuit
"""
import base64
import json

import httpx
import pytest

from discgraph_sdk.core.errors import InvalidInputError, SourceUnavailable
from discgraph_sdk.ledger.ledger_base import AccountRecord, LedgerSourceProtocol
from discgraph_sdk.ledger.solana_rpc import INVALID_PARAMS, SolanaRpcLedgerSource
from discgraph_sdk.mock_ledger_source import MockLedgerSource

pytestmark = pytest.mark.asyncio

URL = "https://rpc.test"


def _account(pubkey, raw):
    return {
        "pubkey": pubkey,
        "account": {"data": [base64.b64encode(raw).decode("ascii"), "base64"], "owner": "P1"},
    }


def _source(handler, **kw):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SolanaRpcLedgerSource(URL, client=client, **kw), client


async def test_list_accounts_request_and_decoding():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={"jsonrpc": "2.0", "id": 1, "result": [_account("A1", bytes(range(16)))]},
        )

    source, client = _source(handler, commitment="finalized")
    accounts = await source.list_accounts("P1")
    await client.aclose()

    assert accounts == [AccountRecord(account_ref="A1", data=bytes(range(16)))]
    body = seen[0]
    assert body["method"] == "getProgramAccounts"
    assert body["params"] == ["P1", {"encoding": "base64", "commitment": "finalized"}]


async def test_context_wrapped_result_is_unwrapped():
    def handler(request):
        return httpx.Response(
            200,
            json={"result": {"context": {"slot": 1}, "value": [_account("A1", b"\x01" * 9)]}},
        )

    source, client = _source(handler)
    accounts = await source.list_accounts("P1")
    await client.aclose()
    assert [a.account_ref for a in accounts] == ["A1"]


async def test_badly_shaped_items_are_skipped():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "result": [
                    {"pubkey": "A1"},
                    {"pubkey": "A2", "account": {"data": ["!!not base64!!", "base64"]}},
                    _account("A3", b"\x01" * 8),
                ]
            },
        )

    source, client = _source(handler)
    accounts = await source.list_accounts("P1")
    await client.aclose()
    assert [a.account_ref for a in accounts] == ["A3"]


async def test_empty_result_is_empty_list():
    source, client = _source(lambda request: httpx.Response(200, json={"result": []}))
    assert await source.list_accounts("P1") == []
    await client.aclose()


async def test_http_error_is_source_unavailable_with_retry_hint():
    source, client = _source(
        lambda request: httpx.Response(429, headers={"retry-after": "2"}, text="slow down")
    )
    with pytest.raises(SourceUnavailable) as ei:
        await source.list_accounts("P1")
    await client.aclose()
    assert ei.value.retry_after_ms == 2000
    assert ei.value.details["status"] == 429


async def test_transport_error_is_source_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    source, client = _source(handler)
    with pytest.raises(SourceUnavailable):
        await source.list_accounts("P1")
    await client.aclose()


async def test_invalid_json_is_source_unavailable():
    source, client = _source(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(SourceUnavailable):
        await source.list_accounts("P1")
    await client.aclose()


async def test_rpc_error_is_source_unavailable():
    source, client = _source(
        lambda request: httpx.Response(
            200, json={"error": {"code": -32005, "message": "node is behind"}}
        )
    )
    with pytest.raises(SourceUnavailable) as ei:
        await source.list_accounts("P1")
    await client.aclose()
    assert ei.value.details["rpc_code"] == -32005


async def test_invalid_params_is_invalid_input():
    source, client = _source(
        lambda request: httpx.Response(
            200, json={"error": {"code": INVALID_PARAMS, "message": "Invalid param: WrongSize"}}
        )
    )
    with pytest.raises(InvalidInputError):
        await source.list_accounts("not-a-key")
    await client.aclose()


async def test_empty_program_rejected_without_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={"result": []})

    source, client = _source(handler)
    with pytest.raises(InvalidInputError):
        await source.list_accounts(" ")
    await client.aclose()
    assert calls == []


async def test_health_ok_and_unhealthy():
    replies = iter(
        [
            {"result": "ok"},
            {"error": {"code": -32005, "message": "Node is unhealthy"}},
        ]
    )
    source, client = _source(lambda request: httpx.Response(200, json=next(replies)))
    await source.health()
    with pytest.raises(SourceUnavailable):
        await source.health()
    await client.aclose()


async def test_injected_client_is_not_closed():
    source, client = _source(lambda request: httpx.Response(200, json={"result": []}))
    await source.close()
    assert not client.is_closed
    await client.aclose()


async def test_owned_client_is_closed():
    source = SolanaRpcLedgerSource(URL)
    await source.close()
    assert source._client.is_closed


async def test_mock_source_scripting():
    source = MockLedgerSource()
    assert isinstance(source, LedgerSourceProtocol)
    source.set_accounts("P1", [("A1", b"\x01" * 16)])
    source.fail_next("P1")
    with pytest.raises(SourceUnavailable):
        await source.list_accounts("P1")
    assert [a.account_ref for a in await source.list_accounts("P1")] == ["A1"]
    assert await source.list_accounts("P2") == []
    assert source.calls["P1"] == 2


async def test_standalone_circuit_is_per_program():
    source = MockLedgerSource(mode="standalone")
    source.set_accounts("P2", [("A1", b"\x01" * 16)])
    source.fail_next("P1", times=5)
    for _ in range(5):
        with pytest.raises(SourceUnavailable):
            await source.list_accounts("P1")

    with pytest.raises(SourceUnavailable) as ei:
        await source.list_accounts("P1")
    assert source.calls["P1"] == 5
    assert ei.value.retry_after_ms > 0

    assert len(await source.list_accounts("P2")) == 1
