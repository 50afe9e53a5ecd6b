"""
Tests for the explorer client using httpx.MockTransport (no network).
"""

from __future__ import annotations

import asyncio
import time

import httpx
import pytest

from backend_dappstats.core.exceptions import NotFound, SourceUnavailable
from backend_dappstats.explorer.client import ExplorerClient
from backend_dappstats.explorer.models import ExplorerTransaction
from backend_dappstats.explorer.rate_limit import RequestLimiter

BASE = "https://explorer.test"
CUTOFF = 1709200000


def _client(handler, **kwargs) -> ExplorerClient:
    opts = {"min_interval_sec": 0, "backoff_base_sec": 0, "page_delay_sec": 0}
    opts.update(kwargs)
    return ExplorerClient(BASE, transport=httpx.MockTransport(handler), **opts)


def _tx(h: str, ts: int, sender: str = "0xSender", status: str = "ok") -> dict:
    return {"hash": h, "timestamp": ts, "from": {"hash": sender}, "status": status}


async def _collect(client: ExplorerClient, address: str, cutoff: int = CUTOFF, **kwargs) -> list:
    try:
        return [tx async for tx in client.transactions_for(address, cutoff, **kwargs)]
    finally:
        await client.aclose()


def test_resolve_addresses_parses_tags():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={
            "addresses": [
                {
                    "hash": "0xAAA",
                    "transactions_count": 12,
                    "metadata": {"tags": [{"tagType": "protocol", "name": "x"}, {"tagType": "name", "name": "Verio Router"}]},
                },
                {"address_hash": "0xBBB", "label": "Legacy"},
                {"nothing": True},
            ]
        })

    async def run():
        client = _client(handler)
        try:
            return await client.resolve_addresses("verio")
        finally:
            await client.aclose()

    result = asyncio.run(run())
    assert [d.address for d in result] == ["0xaaa", "0xbbb"]
    assert result[0].label == "Verio Router"
    assert result[0].transactions_count == 12
    assert result[1].label == "Legacy"
    assert seen[0].url.path == "/api/v1/metadata/verio"
    assert seen[0].url.params["tag_type"] == "protocol"
    assert seen[0].headers["user-agent"].startswith("dappstats-backend/")


@pytest.mark.parametrize("response", [
    httpx.Response(404, json={"message": "not found"}),
    httpx.Response(200, json={"addresses": []}),
])
def test_resolve_addresses_not_found(response):
    async def run():
        client = _client(lambda request: response)
        try:
            await client.resolve_addresses("ghost")
        finally:
            await client.aclose()

    with pytest.raises(NotFound):
        asyncio.run(run())


def test_retry_on_server_error_then_success():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        if calls["n"] < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"addresses": [{"hash": "0x1"}]})

    async def run():
        client = _client(handler)
        try:
            return await client.resolve_addresses("verio")
        finally:
            await client.aclose()

    assert len(asyncio.run(run())) == 1
    assert calls["n"] == 3


def test_retry_on_429_and_timeout():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(429)
        if calls["n"] == 2:
            raise httpx.ReadTimeout("slow", request=request)
        return httpx.Response(200, json={"addresses": [{"hash": "0x1"}]})

    async def run():
        client = _client(handler)
        try:
            return await client.resolve_addresses("verio")
        finally:
            await client.aclose()

    asyncio.run(run())
    assert calls["n"] == 3


def test_retries_exhausted_raise_source_unavailable():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        return httpx.Response(500)

    async def run():
        client = _client(handler)
        try:
            await client.resolve_addresses("verio")
        finally:
            await client.aclose()

    with pytest.raises(SourceUnavailable) as exc_info:
        asyncio.run(run())
    assert exc_info.value.status_code == 500
    assert calls["n"] == 4  # first attempt + 3 retries


def test_client_error_not_retried():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        return httpx.Response(400)

    async def run():
        client = _client(handler)
        try:
            await client.resolve_addresses("verio")
        finally:
            await client.aclose()

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(run())
    assert calls["n"] == 1


def test_stream_follows_next_page_params():
    requests = []

    def handler(request):
        requests.append(request)
        if "block_number" not in request.url.params:
            return httpx.Response(200, json={
                "items": [_tx("0x3", CUTOFF + 300), _tx("0x2", CUTOFF + 200)],
                "next_page_params": {"block_number": 55, "index": 1, "items_count": 50},
            })
        return httpx.Response(200, json={"items": [_tx("0x1", CUTOFF + 100)], "next_page_params": None})

    txs = asyncio.run(_collect(_client(handler), "0xABC"))
    assert [t.tx_hash for t in txs] == ["0x3", "0x2", "0x1"]
    assert requests[0].url.path == "/api/v1/addresses/0xabc/transactions"
    assert requests[1].url.params["block_number"] == "55"
    assert requests[1].url.params["items_count"] == "50"
    assert len(requests) == 2


def test_stream_opaque_cursor():
    requests = []

    def handler(request):
        requests.append(request)
        if len(requests) == 1:
            return httpx.Response(200, json={"items": [_tx("0x2", CUTOFF + 2)], "next_page_params": "abc123"})
        return httpx.Response(200, json={"items": [_tx("0x1", CUTOFF + 1)]})

    txs = asyncio.run(_collect(_client(handler), "0xabc"))
    assert len(txs) == 2
    assert requests[1].url.params["next_page_params"] == "abc123"


def test_stream_stops_at_cutoff_without_next_page():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={
            "items": [_tx("0x3", CUTOFF + 10), _tx("0x2", CUTOFF - 1), _tx("0x1", CUTOFF + 5)],
            "next_page_params": {"block_number": 1},
        })

    txs = asyncio.run(_collect(_client(handler), "0xabc"))
    assert [t.tx_hash for t in txs] == ["0x3"]
    assert len(requests) == 1


def test_stream_page_limit():
    requests = []

    def handler(request):
        requests.append(request)
        n = len(requests)
        return httpx.Response(200, json={
            "items": [_tx(f"0x{n}", CUTOFF + 1000 - n)],
            "next_page_params": {"page": n + 1},
        })

    txs = asyncio.run(_collect(_client(handler), "0xabc", max_pages=3))
    assert len(txs) == 3
    assert len(requests) == 3


def test_stream_client_error_on_follow_up_page_ends_early():
    requests = []

    def handler(request):
        requests.append(request)
        if len(requests) == 1:
            return httpx.Response(200, json={"items": [_tx("0x1", CUTOFF + 1)], "next_page_params": {"p": 2}})
        return httpx.Response(422, json={"message": "bad cursor"})

    txs = asyncio.run(_collect(_client(handler), "0xabc"))
    assert [t.tx_hash for t in txs] == ["0x1"]


def test_stream_client_error_on_first_page_raises():
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(_collect(_client(lambda r: httpx.Response(400)), "0xabc"))


def test_stream_cannot_be_iterated_twice():
    def handler(request):
        return httpx.Response(200, json={"items": []})

    async def run():
        client = _client(handler)
        try:
            stream = client.transactions_for("0xabc", CUTOFF)
            first = [tx async for tx in stream]
            with pytest.raises(RuntimeError):
                stream.__aiter__()
            return first, stream.stop_reason
        finally:
            await client.aclose()

    items, reason = asyncio.run(run())
    assert items == []
    assert reason == "exhausted"


def test_transaction_by_hash_best_effort():
    def handler(request):
        if request.url.path.endswith("/0xgood"):
            return httpx.Response(200, json=_tx("0xgood", CUTOFF))
        return httpx.Response(500)

    async def run():
        client = _client(handler, max_retries=0)
        try:
            return await client.transaction_by_hash("0xgood"), await client.transaction_by_hash("0xbad")
        finally:
            await client.aclose()

    good, bad = asyncio.run(run())
    assert good.tx_hash == "0xgood"
    assert good.sender == "0xSender"
    assert bad is None


def test_transaction_by_hash_absent_on_404_and_bad_body():
    def handler(request):
        if request.url.path.endswith("/0xmissing"):
            return httpx.Response(404)
        return httpx.Response(200, content=b"<html>not json</html>")

    async def run():
        client = _client(handler, max_retries=0)
        try:
            return await client.transaction_by_hash("0xmissing"), await client.transaction_by_hash("0xhtml")
        finally:
            await client.aclose()

    assert asyncio.run(run()) == (None, None)


def test_transaction_by_hash_propagates_programming_errors(monkeypatch):
    async def broken(self, path, params=None):
        raise AttributeError("bug in lookup")

    monkeypatch.setattr(ExplorerClient, "_get_json", broken)

    async def run():
        client = _client(lambda r: httpx.Response(200, json={}))
        try:
            return await client.transaction_by_hash("0xany")
        finally:
            await client.aclose()

    with pytest.raises(AttributeError, match="bug in lookup"):
        asyncio.run(run())


def test_health_check():
    async def run(handler):
        client = _client(handler)
        try:
            return await client.health_check()
        finally:
            await client.aclose()

    def boom(request):
        raise httpx.ConnectError("refused", request=request)

    assert asyncio.run(run(lambda r: httpx.Response(200, json={"healthy": True}))) is True
    assert asyncio.run(run(lambda r: httpx.Response(503))) is False
    assert asyncio.run(run(boom)) is False


def test_transaction_from_api_item_variants():
    tx = ExplorerTransaction.from_api_item({
        "hash": "0xh",
        "timestamp": "2024-03-01T12:34:56.000000Z",
        "from": {"hash": "0xF"},
        "to": {"hash": "0xT"},
        "result": "success",
        "block_number": "77",
    })
    assert tx.timestamp == 1709296496
    assert tx.sender == "0xF"
    assert tx.recipient == "0xT"
    assert tx.status == "success"
    assert tx.block_number == 77

    legacy = ExplorerTransaction.from_api_item({"tx_hash": "0xh", "block_time": 1709296496, "from": "0xf"})
    assert legacy.tx_hash == "0xh"
    assert legacy.sender == "0xf"

    broken = ExplorerTransaction.from_api_item({"hash": "0xh", "timestamp": "not a time"})
    assert broken.timestamp is None
    assert broken.sender is None


def test_request_limiter_spacing():
    async def run():
        limiter = RequestLimiter(0.05)
        starts = []

        async def call():
            starts.append(time.monotonic())

        await asyncio.gather(*(limiter.run(call) for _ in range(3)))
        return starts

    starts = asyncio.run(run())
    assert len(starts) == 3
    assert starts[1] - starts[0] >= 0.045
    assert starts[2] - starts[1] >= 0.045
