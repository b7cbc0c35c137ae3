"""
Data models for zap receipts harvested from relays.

Responsibilities:
- Define the normalized ZapReceipt produced by the parser.
- Define TargetContent, the resolved note a receipt points at (hashtags,
  preview, engagement counters), used by content and hashtag analytics.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Nostr event kinds used by the engine
KIND_TEXT_NOTE = 1
KIND_REPOST = 6
KIND_REACTION = 7
KIND_ZAP_REQUEST = 9734
KIND_ZAP_RECEIPT = 9735


@dataclass(frozen=True)
class ZapReceipt:
    """
    One zap receipt (kind 9735) addressed to the analyzed identity.

    Immutable; `id` is the dedup key. Hashtags of the resolved target note are
    joined in at aggregation time, not stored here.
    """

    id: str
    """Receipt event id (hex)."""
    timestamp: int
    """Unix seconds from the receipt's created_at."""
    amount_msats: int = 0
    """Paid amount in millisatoshi; 0 when no amount could be parsed."""
    sender_pubkey: str | None = None
    """Payer pubkey; None when neither the P tag nor the zap request names one."""
    target_event_id: str | None = None
    """Zapped note id (e tag) or addressable coordinate (a tag); None for profile zaps."""
    target_pubkey: str | None = None
    """Zapped identity (p tag)."""
    hashtags: frozenset[str] = field(default_factory=frozenset)
    """Lowercase hashtags carried by the receipt and its zap request."""
    comment: str = ""
    """Zap request content (the payer's message)."""

    @property
    def amount_sats(self) -> int:
        return self.amount_msats // 1000

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "amount_msats": self.amount_msats,
            "sender_pubkey": self.sender_pubkey,
            "target_event_id": self.target_event_id,
            "target_pubkey": self.target_pubkey,
            "hashtags": sorted(self.hashtags),
            "comment": self.comment,
        }


@dataclass(frozen=True)
class TargetContent:
    """
    Resolved content a receipt was paid for.

    Engagement counters are best-effort: they count what relays returned
    within one bounded query and may undercount on very popular notes.
    """

    event_id: str
    kind: int | None = None
    created_at: int | None = None
    hashtags: frozenset[str] = field(default_factory=frozenset)
    content_preview: str = ""
    reactions: int = 0
    reposts: int = 0
    replies: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "kind": self.kind,
            "created_at": self.created_at,
            "hashtags": sorted(self.hashtags),
            "content_preview": self.content_preview,
            "reactions": self.reactions,
            "reposts": self.reposts,
            "replies": self.replies,
        }
