"""
Content resolution: the notes receipts were paid for.

Looks up target events by id (hashtags, kind, preview) and counts engagement
(reactions, reposts, replies) referencing them. Best-effort: a failed lookup
is logged and yields fewer resolved targets, never a page failure.
"""

from __future__ import annotations

import re
from typing import Any

from zaplytics.nostr_listener.models import (
    KIND_REACTION,
    KIND_REPOST,
    KIND_TEXT_NOTE,
    TargetContent,
)
from zaplytics.nostr_listener.parser import hashtags_from_tags, tag_values
from zaplytics.nostr_listener.relay_client import FETCH_ERRORS, ReceiptSource
from zaplytics.zaplytics_logging import get_logger

logger = get_logger(__name__)

_EVENT_ID_RE = re.compile(r"^[0-9a-f]{64}$")
_PREVIEW_LEN = 140
DEFAULT_CHUNK_SIZE = 100
DEFAULT_ENGAGEMENT_LIMIT = 500


def _preview(content: Any) -> str:
    if not isinstance(content, str):
        return ""
    collapsed = " ".join(content.split())
    if len(collapsed) > _PREVIEW_LEN:
        return collapsed[: _PREVIEW_LEN - 3] + "..."
    return collapsed


class ContentResolver:
    """Resolve target notes and their engagement through the same source as receipts."""

    def __init__(
        self,
        source: ReceiptSource,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        engagement: bool = True,
        engagement_limit: int = DEFAULT_ENGAGEMENT_LIMIT,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self._source = source
        self._chunk_size = chunk_size
        self._engagement = engagement
        self._engagement_limit = engagement_limit

    async def resolve(self, target_ids: list[str]) -> dict[str, TargetContent]:
        """Return TargetContent for every id that could be resolved."""
        ids = sorted({t for t in target_ids if _EVENT_ID_RE.match(t)})
        resolved: dict[str, TargetContent] = {}
        for start in range(0, len(ids), self._chunk_size):
            chunk = ids[start : start + self._chunk_size]
            resolved.update(await self._resolve_chunk(chunk))
        return resolved

    async def _resolve_chunk(self, chunk: list[str]) -> dict[str, TargetContent]:
        try:
            events = await self._source.query({"ids": chunk, "limit": len(chunk)})
        except FETCH_ERRORS as e:
            logger.warning("content_resolve_failed", targets=len(chunk), error=str(e))
            return {}

        wanted = set(chunk)
        found: dict[str, dict[str, Any]] = {}
        for ev in events:
            ev_id = ev.get("id")
            if ev_id in wanted and ev_id not in found:
                found[ev_id] = ev

        counts = await self._count_engagement(chunk) if self._engagement else {}

        out: dict[str, TargetContent] = {}
        for target_id in chunk:
            ev = found.get(target_id)
            reactions, reposts, replies = counts.get(target_id, (0, 0, 0))
            if ev is None and target_id not in counts:
                continue
            kind = ev.get("kind") if ev else None
            created_at = ev.get("created_at") if ev else None
            out[target_id] = TargetContent(
                event_id=target_id,
                kind=kind if isinstance(kind, int) else None,
                created_at=created_at if isinstance(created_at, int) else None,
                hashtags=hashtags_from_tags(ev.get("tags")) if ev else frozenset(),
                content_preview=_preview(ev.get("content")) if ev else "",
                reactions=reactions,
                reposts=reposts,
                replies=replies,
            )
        logger.debug("content_resolved", requested=len(chunk), resolved=len(out))
        return out

    async def _count_engagement(self, chunk: list[str]) -> dict[str, tuple[int, int, int]]:
        try:
            events = await self._source.query({
                "kinds": [KIND_TEXT_NOTE, KIND_REPOST, KIND_REACTION],
                "#e": chunk,
                "limit": self._engagement_limit,
            })
        except FETCH_ERRORS as e:
            logger.warning("engagement_resolve_failed", targets=len(chunk), error=str(e))
            return {}

        wanted = set(chunk)
        reactions: dict[str, int] = {}
        reposts: dict[str, int] = {}
        replies: dict[str, int] = {}
        for ev in events:
            kind = ev.get("kind")
            bucket = {KIND_REACTION: reactions, KIND_REPOST: reposts, KIND_TEXT_NOTE: replies}.get(kind)
            if bucket is None:
                continue
            for ref in set(tag_values(ev.get("tags"), "e")) & wanted:
                bucket[ref] = bucket.get(ref, 0) + 1
        touched = set(reactions) | set(reposts) | set(replies)
        return {
            t: (reactions.get(t, 0), reposts.get(t, 0), replies.get(t, 0))
            for t in touched
        }
