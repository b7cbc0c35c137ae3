"""
AnalyticsOrchestrator tests: selection lifecycle, statuses, statistics
caching and supersession. Fake relays only; a fixed clock pins the window.
"""

from __future__ import annotations

import asyncio

import pytest

from zaplytics.agent_worker import AnalyticsOrchestrator, NoActiveSession, SessionStatus

IDENTITY = "ab" * 32
OTHER = "cd" * 32
NOW = 1_700_000_000


def _orchestrator(settings, relay):
    return AnalyticsOrchestrator(settings, relay, clock=lambda: NOW)


def test_no_identity_is_idle(settings, fake_relay):
    orch = _orchestrator(settings, fake_relay())

    async def run():
        snap = await orch.select(None, "7d")
        await orch.close()
        return snap

    snap = asyncio.run(run())
    assert snap.status is SessionStatus.IDLE
    assert snap.statistics is None


def test_custom_range_with_only_from_awaits_input(settings, fake_relay, make_zap, ids):
    relay = fake_relay([make_zap(ids(1), NOW - 10, amount_msats=1000)])
    orch = _orchestrator(settings, relay)

    async def run():
        snap = await orch.select(IDENTITY, "custom", {"from": "2023-11-01"})
        await asyncio.sleep(0)
        await orch.close()
        return snap

    snap = asyncio.run(run())
    assert snap.status is SessionStatus.AWAITING_INPUT
    assert snap.statistics is None
    assert snap.loading_state is None
    assert relay.queries == []
    d = snap.to_dict()
    assert d["status"] == "awaiting_input"
    assert d["selection"]["custom_range"] == {"from": "2023-11-01", "to": None}


def test_session_runs_to_complete(settings, fake_relay, make_zap, ids):
    events = [make_zap(ids(i + 1), NOW - i * 600, amount_msats=1000, sender="a1" * 32) for i in range(7)]
    orch = _orchestrator(settings, fake_relay(events))

    async def run():
        await orch.select(IDENTITY, "24h")
        snap = await orch.wait_until_settled(timeout=5)
        await orch.close()
        return snap

    snap = asyncio.run(run())
    assert snap.status is SessionStatus.COMPLETE
    assert snap.loading_state.total_fetched == 7
    assert snap.statistics.summary.total_msats == 7000
    assert [z.sender_pubkey for z in snap.loyal_zappers] == ["a1" * 32]
    assert snap.to_dict()["statistics"]["granularity"] == "hour"


def test_npub_identity_is_normalized(settings, fake_relay):
    npub = "npub10elfcs4fr0l0r8af98jlmgdh9c8tcxjvz9qkw038js35mp4dma8qzvjptg"
    orch = _orchestrator(settings, fake_relay())

    async def run():
        snap = await orch.select(npub, "7d")
        await orch.close()
        return snap

    snap = asyncio.run(run())
    assert snap.selection.identity == "7e7e9c42a91bfef19fa929e5fda1b72e0ebc1a4c1141673e2794234d86addf4e"


def test_identical_selection_is_noop(settings, fake_relay, make_zap, ids):
    relay = fake_relay([make_zap(ids(1), NOW - 10, amount_msats=1000)])
    orch = _orchestrator(settings, relay)

    async def run():
        await orch.select(IDENTITY, "7d")
        await orch.wait_until_settled(timeout=5)
        before = len(relay.receipt_queries())
        await orch.select(IDENTITY, "7d")
        await asyncio.sleep(0)
        after = len(relay.receipt_queries())
        await orch.close()
        return before, after

    before, after = asyncio.run(run())
    assert before == after == 1


def test_selection_change_discards_previous_session(settings, fake_relay, make_zap, ids):
    relay = fake_relay([
        make_zap(ids(1), NOW - 10, amount_msats=1000, recipient=IDENTITY),
        make_zap(ids(2), NOW - 20, amount_msats=9000, recipient=OTHER),
    ])
    orch = _orchestrator(settings, relay)

    async def run():
        relay.gate = asyncio.Event()
        relay.started = asyncio.Event()
        await orch.select(IDENTITY, "7d")
        await relay.started.wait()
        relay.gate = None
        switch = asyncio.create_task(orch.select(OTHER, "7d"))
        await asyncio.sleep(0)
        await switch
        snap = await orch.wait_until_settled(timeout=5)
        await orch.close()
        return snap

    snap = asyncio.run(run())
    assert snap.selection.identity == OTHER
    assert snap.statistics.summary.total_msats == 9000
    assert snap.loading_state.total_fetched == 1


def test_statistics_cached_until_receipts_change(settings, fake_relay, make_zap, ids):
    orch = _orchestrator(settings, fake_relay([make_zap(ids(1), NOW - 10, amount_msats=1000)]))

    async def run():
        await orch.select(IDENTITY, "7d")
        await orch.wait_until_settled(timeout=5)
        first = orch.snapshot().statistics
        second = orch.snapshot().statistics
        await orch.close()
        return first, second

    first, second = asyncio.run(run())
    assert first is second


def test_invalid_selection_keeps_current_session(settings, fake_relay):
    orch = _orchestrator(settings, fake_relay())

    async def run():
        await orch.select(IDENTITY, "7d")
        with pytest.raises(ValueError):
            await orch.select("not-a-key", "7d")
        with pytest.raises(ValueError):
            await orch.select(IDENTITY, "fortnight")
        with pytest.raises(ValueError):
            await orch.select(IDENTITY, "custom", {"from": "2024-02-01", "to": "2024-01-01"})
        snap = orch.snapshot()
        await orch.close()
        return snap

    snap = asyncio.run(run())
    assert snap.selection.identity == IDENTITY
    assert snap.selection.time_range.value == "7d"


def test_breaker_then_restart_through_orchestrator(settings, fake_relay, make_zap, ids):
    relay = fake_relay([make_zap(ids(1), NOW - 10, amount_msats=1000)])
    relay.fail_next = 3
    orch = _orchestrator(settings, relay)

    async def run():
        await orch.select(IDENTITY, "7d")
        stopped = await orch.wait_until_settled(timeout=5)
        dismissed = orch.dismiss_error()
        orch.restart_auto_load()
        done = await orch.wait_until_settled(timeout=5)
        await orch.close()
        return stopped, dismissed, done

    stopped, dismissed, done = asyncio.run(run())
    assert stopped.status is SessionStatus.LOADING
    assert stopped.auto_load_phase == "stopped"
    assert stopped.loading_state.auto_load_enabled is False
    assert stopped.loading_state.consecutive_failures == 3
    assert dismissed.loading_state.error is None
    assert done.status is SessionStatus.COMPLETE
    assert done.statistics.summary.total_msats == 1000


def test_controls_without_session_raise(settings, fake_relay):
    orch = _orchestrator(settings, fake_relay())
    with pytest.raises(NoActiveSession):
        orch.toggle_auto_load()
    with pytest.raises(NoActiveSession):
        asyncio.run(orch.load_more_zaps())
