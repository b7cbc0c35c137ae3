"""
Nostr relay transport: bounded REQ queries over WebSocket.

One query = connect, send ["REQ", sub_id, filter], collect ["EVENT", sub_id, ev]
until ["EOSE", sub_id], send ["CLOSE", sub_id]. Each query carries a hard
timeout so a hung relay surfaces as a failure instead of hanging the session.

RelayPool fans one filter out to several relays concurrently. It returns either
each relay's own answer or the union by event id, newest-first. It fails only
when every relay failed. Relay limits are discovered from the NIP-11
information document (limitation.max_limit) over HTTP.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
from typing import Any, Protocol

import httpx
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from zaplytics.config.env import ws_url_to_http
from zaplytics.nostr_listener.parser import coerce_timestamp
from zaplytics.zaplytics_logging import get_logger

logger = get_logger(__name__)

DEFAULT_QUERY_TIMEOUT = 15.0
DEFAULT_WS_PING_INTERVAL = 20.0
_WS_CLOSE_TIMEOUT = 5.0
_NIP11_TIMEOUT = 5.0

_subscription_counter = itertools.count(1)


class RelayQueryError(RuntimeError):
    """A relay query failed: transport error, timeout, CLOSED, or every relay failed."""

    def __init__(self, relay: str, reason: str) -> None:
        super().__init__(f"{relay}: {reason}")
        self.relay = relay
        self.reason = reason


# Failures a page fetch translates into state instead of raising
FETCH_ERRORS: tuple[type[BaseException], ...] = (RelayQueryError, asyncio.TimeoutError, OSError)


class ReceiptSource(Protocol):
    """Bounded query primitive: at most filter['limit'] events, newest-first."""

    async def query(self, flt: dict[str, Any]) -> list[dict[str, Any]]:
        ...


def _next_subscription_id() -> str:
    return f"zaplytics-{next(_subscription_counter)}"


def sort_newest_first(events: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Deterministic newest-first order: created_at desc, then id asc."""

    def _key(ev: dict[str, Any]) -> tuple[int, str]:
        ts = coerce_timestamp(ev.get("created_at"))
        return (-(ts if ts is not None else 0), str(ev.get("id", "")))

    return sorted(events, key=_key)


def merge_answers(answers: list[list[dict[str, Any]]]) -> list[dict[str, Any]]:
    """Union of several relay answers by event id, newest-first."""
    merged: dict[str, dict[str, Any]] = {}
    for answer in answers:
        for ev in answer:
            ev_id = ev.get("id") if isinstance(ev, dict) else None
            if isinstance(ev_id, str) and ev_id not in merged:
                merged[ev_id] = ev
    return sort_newest_first(list(merged.values()))


class RelayClient:
    """Single-relay query client. Opens one connection per query."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = DEFAULT_QUERY_TIMEOUT,
        ping_interval: float | None = DEFAULT_WS_PING_INTERVAL,
    ) -> None:
        if not url.strip():
            raise ValueError("relay url must be non-empty")
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.url = url.strip()
        self._timeout = timeout
        self._ping_interval = ping_interval

    async def query(self, flt: dict[str, Any]) -> list[dict[str, Any]]:
        """Run one REQ until EOSE; raise RelayQueryError on any failure."""
        sub_id = _next_subscription_id()
        try:
            return await asyncio.wait_for(self._query(flt, sub_id), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise RelayQueryError(self.url, f"timeout after {self._timeout}s") from e
        except (WebSocketException, OSError) as e:
            raise RelayQueryError(self.url, str(e) or type(e).__name__) from e

    async def _query(self, flt: dict[str, Any], sub_id: str) -> list[dict[str, Any]]:
        events: list[dict[str, Any]] = []
        async with websockets.connect(
            self.url,
            ping_interval=self._ping_interval,
            close_timeout=_WS_CLOSE_TIMEOUT,
        ) as ws:
            await ws.send(json.dumps(["REQ", sub_id, flt]))
            async for raw in ws:
                try:
                    msg = json.loads(raw)
                except json.JSONDecodeError:
                    continue
                if not isinstance(msg, list) or not msg:
                    continue
                msg_type = msg[0]
                if msg_type == "EVENT" and len(msg) >= 3 and msg[1] == sub_id:
                    if isinstance(msg[2], dict):
                        events.append(msg[2])
                elif msg_type == "EOSE" and len(msg) >= 2 and msg[1] == sub_id:
                    with contextlib.suppress(ConnectionClosed):
                        await ws.send(json.dumps(["CLOSE", sub_id]))
                    return events
                elif msg_type == "CLOSED" and len(msg) >= 2 and msg[1] == sub_id:
                    reason = msg[2] if len(msg) > 2 else "closed by relay"
                    raise RelayQueryError(self.url, f"subscription closed: {reason}")
                elif msg_type == "NOTICE":
                    logger.info("relay_notice", relay=self.url, notice=str(msg[1:])[:200])
        raise RelayQueryError(self.url, "connection closed before EOSE")


async def fetch_relay_limit(url: str, client: httpx.AsyncClient) -> int | None:
    """Read limitation.max_limit from the relay's NIP-11 document; None if unavailable."""
    http_url = ws_url_to_http(url)
    try:
        resp = await client.get(http_url, headers={"Accept": "application/nostr+json"})
        resp.raise_for_status()
        info = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.debug("relay_info_unavailable", relay=url, error=str(e))
        return None
    limitation = info.get("limitation") if isinstance(info, dict) else None
    if not isinstance(limitation, dict):
        return None
    max_limit = limitation.get("max_limit")
    if isinstance(max_limit, int) and not isinstance(max_limit, bool) and max_limit > 0:
        return max_limit
    return None


class RelayPool:
    """
    Query several relays as one ReceiptSource.

    query() merges results by id. Pagination needs each relay's own answer,
    because relays saturate independently: query_each() returns the answers
    of the relays that succeeded, one list per relay.
    """

    def __init__(
        self,
        urls: list[str],
        *,
        timeout: float = DEFAULT_QUERY_TIMEOUT,
        clients: list[RelayClient] | None = None,
    ) -> None:
        if clients is None:
            if not urls:
                raise ValueError("urls must be non-empty")
            clients = [RelayClient(u, timeout=timeout) for u in urls]
        self._clients = clients

    @property
    def urls(self) -> list[str]:
        return [c.url for c in self._clients]

    async def query_each(self, flt: dict[str, Any]) -> list[list[dict[str, Any]]]:
        """Per-relay answers; raises RelayQueryError only when every relay failed."""
        results = await asyncio.gather(
            *(c.query(flt) for c in self._clients),
            return_exceptions=True,
        )
        answers: list[list[dict[str, Any]]] = []
        failures: list[str] = []
        for client, result in zip(self._clients, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                failures.append(str(result))
                logger.warning("relay_query_failed", relay=client.url, error=str(result))
                continue
            answers.append(list(result))
        if failures and len(failures) == len(self._clients):
            raise RelayQueryError("pool", "all relays failed: " + "; ".join(failures))
        return answers

    async def query(self, flt: dict[str, Any]) -> list[dict[str, Any]]:
        return merge_answers(await self.query_each(flt))

    async def discover_relay_limit(self, configured: int) -> int:
        """Effective page size: the configured limit capped by every relay's advertised max_limit."""
        async with httpx.AsyncClient(timeout=httpx.Timeout(_NIP11_TIMEOUT)) as client:
            limits = await asyncio.gather(*(fetch_relay_limit(c.url, client) for c in self._clients))
        effective = configured
        for url, limit in zip(self.urls, limits):
            if limit is not None and limit < effective:
                logger.info("relay_limit_capped", relay=url, max_limit=limit, configured=configured)
                effective = limit
        return effective
