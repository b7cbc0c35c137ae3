"""
Relay transport tests: REQ/EVENT/EOSE against a local websockets server,
RelayPool merging with fake clients, NIP-11 limit discovery via httpx MockTransport.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
import websockets

from zaplytics.nostr_listener.relay_client import (
    RelayClient,
    RelayPool,
    RelayQueryError,
    fetch_relay_limit,
)


def _ev(event_id, created_at):
    return {"id": event_id, "kind": 9735, "created_at": created_at, "tags": []}


async def _serve_relay(reply):
    """Start a one-shot relay on a free port; `reply(sub_id, flt)` returns the frames to send."""
    seen: list[list] = []

    async def handler(ws):
        async for raw in ws:
            msg = json.loads(raw)
            seen.append(msg)
            if msg[0] == "REQ":
                for frame in reply(msg[1], msg[2]):
                    await ws.send(json.dumps(frame))
            elif msg[0] == "CLOSE":
                return

    server = await websockets.serve(handler, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    return server, f"ws://127.0.0.1:{port}", seen


def test_query_collects_events_until_eose():
    async def run():
        server, url, seen = await _serve_relay(lambda sub, flt: [
            ["NOTICE", "welcome"],
            ["EVENT", sub, _ev("e1", 20)],
            ["EVENT", "other-sub", _ev("ignored", 30)],
            ["EVENT", sub, _ev("e2", 10)],
            ["EOSE", sub],
        ])
        try:
            events = await RelayClient(url, timeout=5).query({"kinds": [9735], "limit": 10})
            await asyncio.sleep(0.05)
        finally:
            server.close()
            await server.wait_closed()
        return events, seen

    events, seen = asyncio.run(run())
    assert [e["id"] for e in events] == ["e1", "e2"]
    assert seen[0][0] == "REQ"
    assert seen[0][2] == {"kinds": [9735], "limit": 10}
    assert seen[-1][0] == "CLOSE"


def test_closed_subscription_raises():
    async def run():
        server, url, _ = await _serve_relay(lambda sub, flt: [["CLOSED", sub, "rate-limited: slow down"]])
        try:
            with pytest.raises(RelayQueryError) as excinfo:
                await RelayClient(url, timeout=5).query({"limit": 1})
        finally:
            server.close()
            await server.wait_closed()
        return excinfo.value

    err = asyncio.run(run())
    assert "rate-limited" in err.reason


def test_unreachable_relay_raises_query_error():
    async def run():
        with pytest.raises(RelayQueryError):
            await RelayClient("ws://127.0.0.1:9", timeout=2).query({"limit": 1})

    asyncio.run(run())


class _FakeClient:
    def __init__(self, url, events=None, error=None):
        self.url = url
        self.events = events or []
        self.error = error

    async def query(self, flt):
        if self.error:
            raise self.error
        return list(self.events)


def test_pool_merges_by_id_newest_first():
    pool = RelayPool([], clients=[
        _FakeClient("wss://a", [_ev("x", 10), _ev("y", 30)]),
        _FakeClient("wss://b", [_ev("y", 30), _ev("z", 20)]),
    ])
    events = asyncio.run(pool.query({"limit": 10}))
    assert [e["id"] for e in events] == ["y", "z", "x"]


def test_pool_tolerates_partial_failure_but_not_total():
    partial = RelayPool([], clients=[
        _FakeClient("wss://a", [_ev("x", 10)]),
        _FakeClient("wss://b", error=RelayQueryError("wss://b", "timeout")),
    ])
    assert [e["id"] for e in asyncio.run(partial.query({}))] == ["x"]

    dead = RelayPool([], clients=[
        _FakeClient("wss://a", error=RelayQueryError("wss://a", "timeout")),
        _FakeClient("wss://b", error=OSError("refused")),
    ])
    with pytest.raises(RelayQueryError):
        asyncio.run(dead.query({}))


def test_pool_requires_urls():
    with pytest.raises(ValueError):
        RelayPool([])


def test_fetch_relay_limit_from_nip11():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["accept"] == "application/nostr+json"
        assert request.url.scheme == "https"
        return httpx.Response(200, json={"name": "relay", "limitation": {"max_limit": 300}})

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fetch_relay_limit("wss://relay.example", client)

    assert asyncio.run(run()) == 300


def test_fetch_relay_limit_missing_or_broken():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "bare.example":
            return httpx.Response(200, json={"name": "no limits"})
        return httpx.Response(500, text="oops")

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return (
                await fetch_relay_limit("wss://bare.example", client),
                await fetch_relay_limit("wss://broken.example", client),
            )

    assert asyncio.run(run()) == (None, None)


def test_pool_query_each_keeps_answers_per_relay():
    pool = RelayPool([], clients=[
        _FakeClient("wss://a", [_ev("x", 10), _ev("y", 30)]),
        _FakeClient("wss://b", error=RelayQueryError("wss://b", "timeout")),
        _FakeClient("wss://c", [_ev("y", 30)]),
    ])
    answers = asyncio.run(pool.query_each({"limit": 2}))
    assert [[e["id"] for e in a] for a in answers] == [["x", "y"], ["y"]]
