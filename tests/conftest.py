"""
Pytest fixtures for Zaplytics tests. Relays are replaced by in-memory fake
sources that honour the Nostr filter fields the engine sends.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from zaplytics.nostr_listener.relay_client import RelayQueryError

IDENTITY = "ab" * 32
SENDER_A = "a1" * 32
SENDER_B = "b2" * 32
SENDER_C = "c3" * 32
NOW = 1_700_000_000


def hex_id(n: int) -> str:
    """Deterministic 64-char hex event id."""
    return f"{n:064x}"


def zap_event(
    event_id: str,
    created_at: int,
    *,
    amount_msats: int | None = None,
    request_amount_msats: int | None = None,
    sender: str | None = None,
    request_pubkey: str | None = None,
    target: str | None = None,
    recipient: str = IDENTITY,
    hashtags: tuple[str, ...] = (),
    request_hashtags: tuple[str, ...] = (),
    comment: str = "",
) -> dict[str, Any]:
    """Build a raw kind 9735 receipt the way relays deliver it."""
    tags: list[list[str]] = [["p", recipient]]
    if target:
        tags.append(["e", target])
    if sender:
        tags.append(["P", sender])
    if amount_msats is not None:
        tags.append(["amount", str(amount_msats)])
    tags.extend(["t", t] for t in hashtags)

    request_tags: list[list[str]] = [["p", recipient], ["relays", "wss://relay.example"]]
    if target:
        request_tags.append(["e", target])
    if request_amount_msats is not None:
        request_tags.append(["amount", str(request_amount_msats)])
    request_tags.extend(["t", t] for t in request_hashtags)
    request = {
        "kind": 9734,
        "pubkey": request_pubkey or sender or "",
        "created_at": created_at - 1,
        "content": comment,
        "tags": request_tags,
    }
    tags.append(["description", json.dumps(request)])
    return {
        "id": event_id,
        "kind": 9735,
        "pubkey": "f" * 64,
        "created_at": created_at,
        "content": "",
        "tags": tags,
    }


def note_event(event_id: str, created_at: int, content: str = "", hashtags: tuple[str, ...] = ()) -> dict[str, Any]:
    return {
        "id": event_id,
        "kind": 1,
        "pubkey": IDENTITY,
        "created_at": created_at,
        "content": content,
        "tags": [["t", t] for t in hashtags],
    }


def engagement_event(event_id: str, kind: int, target: str, created_at: int) -> dict[str, Any]:
    return {
        "id": event_id,
        "kind": kind,
        "pubkey": SENDER_C,
        "created_at": created_at,
        "content": "+" if kind == 7 else "",
        "tags": [["e", target]],
    }


def _matches(ev: dict[str, Any], flt: dict[str, Any]) -> bool:
    if "ids" in flt and ev["id"] not in flt["ids"]:
        return False
    if "kinds" in flt and ev["kind"] not in flt["kinds"]:
        return False
    if "since" in flt and ev["created_at"] < flt["since"]:
        return False
    if "until" in flt and ev["created_at"] > flt["until"]:
        return False
    for key in ("#p", "#e"):
        if key in flt:
            values = {t[1] for t in ev.get("tags", []) if len(t) > 1 and t[0] == key[1]}
            if not values & set(flt[key]):
                return False
    return True


class FakeRelay:
    """
    In-memory ReceiptSource.

    Applies the filter, returns at most `limit` events newest-first. `fail_next`
    queued failures raise RelayQueryError; `fail_always` fails every query.
    `gate`, when set, holds every query until the event is set.
    """

    def __init__(self, events: list[dict[str, Any]] | None = None) -> None:
        self.events = list(events or [])
        self.queries: list[dict[str, Any]] = []
        self.fail_next = 0
        self.fail_always = False
        self.delay = 0.0
        self.gate: asyncio.Event | None = None
        self.started: asyncio.Event | None = None

    def receipt_queries(self) -> list[dict[str, Any]]:
        return [q for q in self.queries if q.get("kinds") == [9735]]

    async def query(self, flt: dict[str, Any]) -> list[dict[str, Any]]:
        self.queries.append(dict(flt))
        if self.started is not None:
            self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_always:
            raise RelayQueryError("wss://fake.relay", "connection refused")
        if self.fail_next > 0:
            self.fail_next -= 1
            raise RelayQueryError("wss://fake.relay", "connection refused")
        matched = [ev for ev in self.events if _matches(ev, flt)]
        matched.sort(key=lambda ev: (-ev["created_at"], ev["id"]))
        limit = flt.get("limit")
        return matched[:limit] if limit is not None else matched


class StaticSource:
    """Returns the same raw page for every query, ignoring the filter."""

    def __init__(self, page: list[Any]) -> None:
        self.page = list(page)
        self.calls = 0

    async def query(self, flt: dict[str, Any]) -> list[Any]:
        self.calls += 1
        return list(self.page)


@pytest.fixture
def fake_relay():
    """Factory: fake_relay(events) -> FakeRelay."""
    return FakeRelay


@pytest.fixture
def static_source():
    return StaticSource


@pytest.fixture
def make_zap():
    """Factory for raw zap receipt events (see zap_event)."""
    return zap_event


@pytest.fixture
def make_note():
    return note_event


@pytest.fixture
def make_engagement():
    return engagement_event


@pytest.fixture
def ids():
    """hex_id helper: ids(3) -> 64-char hex id."""
    return hex_id


@pytest.fixture
def settings():
    """Settings for tests: no delays, no backoff, small pages, no NIP-11 lookups."""
    from zaplytics.config import Settings

    return Settings(
        relay_urls=["wss://fake.relay"],
        relay_limit=5,
        fetch_timeout_sec=2.0,
        failure_threshold=3,
        auto_load_delay_sec=0.0,
        backoff_base_sec=0.0,
        backoff_max_sec=0.0,
        loyalty_min_zaps=2,
        top_content_limit=3,
        timezone="UTC",
        resolve_content=True,
        discover_relay_limit=False,
        identities=[IDENTITY],
    )
