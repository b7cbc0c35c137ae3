"""
Agent worker package: session lifecycle.

Binds a selection (identity, range, custom range) to a running fetch session,
supersedes it on change, and serves snapshots with live statistics.
"""

from zaplytics.agent_worker.orchestrator import (
    AnalyticsOrchestrator,
    AnalyticsSnapshot,
    NoActiveSession,
    Selection,
    SessionStatus,
)
from zaplytics.agent_worker.runtime import SessionRuntime

__all__ = [
    "AnalyticsOrchestrator",
    "AnalyticsSnapshot",
    "NoActiveSession",
    "Selection",
    "SessionRuntime",
    "SessionStatus",
]
