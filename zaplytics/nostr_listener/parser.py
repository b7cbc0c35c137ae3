"""
Zap receipt parser: raw relay events to structured ZapReceipt.

Every "guess the field by tag name" rule lives here: tag arrays with
positional meaning (["amount", "21000"], ["P", "<pubkey>"], ...) become a
typed ZapReceipt. Amount resolution, in priority order:

1. an `amount` tag on the receipt itself (millisats as string);
2. the `amount` tag of the embedded zap request (the `description` tag,
   a JSON-serialized kind 9734 event);
3. otherwise 0; the receipt still counts for loyalty and temporal stats.

Purely structural; no signature verification. Parse problems are logged and
never raised; structurally unusable events are dropped (parse returns None).
"""

from __future__ import annotations

import json
from typing import Any, Iterable

from zaplytics.nostr_listener.models import KIND_ZAP_RECEIPT, ZapReceipt
from zaplytics.zaplytics_logging import get_logger, short_id

logger = get_logger(__name__)

_MAX_COMMENT_LEN = 280


def _iter_tags(tags: Any) -> Iterable[list[Any]]:
    """Yield well-formed tags (non-empty lists whose first element is a string)."""
    if not isinstance(tags, list):
        return
    for tag in tags:
        if isinstance(tag, list) and tag and isinstance(tag[0], str):
            yield tag


def first_tag_value(tags: Any, name: str) -> str | None:
    """Return the first string value of tag `name`, or None."""
    for tag in _iter_tags(tags):
        if tag[0] == name and len(tag) > 1 and isinstance(tag[1], str) and tag[1]:
            return tag[1]
    return None


def tag_values(tags: Any, name: str) -> list[str]:
    """Return all string values of tag `name`, in order."""
    return [
        tag[1]
        for tag in _iter_tags(tags)
        if tag[0] == name and len(tag) > 1 and isinstance(tag[1], str) and tag[1]
    ]


def normalize_hashtag(raw: str) -> str:
    return raw.strip().lstrip("#").strip().lower()


def hashtags_from_tags(tags: Any) -> frozenset[str]:
    """Collect `t` tags as normalized hashtags."""
    out = set()
    for value in tag_values(tags, "t"):
        tag = normalize_hashtag(value)
        if tag:
            out.add(tag)
    return frozenset(out)


def parse_msats(value: Any) -> int | None:
    """Parse a millisat amount string; None if not a non-negative integer."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if not isinstance(value, str):
        return None
    s = value.strip()
    if not s.isdecimal() or not s.isascii():
        return None
    return int(s)


def decode_zap_request(description: str | None) -> dict[str, Any] | None:
    """Decode the embedded zap request JSON; None when absent or malformed."""
    if not description:
        return None
    try:
        request = json.loads(description)
    except (json.JSONDecodeError, TypeError) as e:
        logger.debug("zap_request_decode_failed", error=str(e))
        return None
    if not isinstance(request, dict):
        return None
    return request


def coerce_timestamp(value: Any) -> int | None:
    """created_at as int seconds; accepts int, float or numeric string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (float, str)):
        try:
            return int(value)
        except (TypeError, ValueError, OverflowError):
            return None
    return None


def parse(raw: Any) -> ZapReceipt | None:
    """
    Parse a single raw kind 9735 event into a ZapReceipt.

    Returns None if the event is structurally unusable (not an object, no id,
    no usable created_at, or a different kind). A missing or malformed amount
    is not a rejection: amount_msats falls back to 0.
    """
    if not isinstance(raw, dict):
        logger.debug("receipt_rejected", reason="not_an_object")
        return None
    event_id = raw.get("id")
    if not isinstance(event_id, str) or not event_id:
        logger.debug("receipt_rejected", reason="missing_id")
        return None
    kind = raw.get("kind")
    if kind is not None and kind != KIND_ZAP_RECEIPT:
        logger.debug("receipt_rejected", reason="wrong_kind", kind=kind, event_id=short_id(event_id))
        return None
    timestamp = coerce_timestamp(raw.get("created_at"))
    if timestamp is None or timestamp < 0:
        logger.debug("receipt_rejected", reason="bad_created_at", event_id=short_id(event_id))
        return None

    tags = raw.get("tags")
    request = decode_zap_request(first_tag_value(tags, "description"))
    request_tags = request.get("tags") if request else None

    amount = parse_msats(first_tag_value(tags, "amount"))
    if amount is None and request_tags is not None:
        amount = parse_msats(first_tag_value(request_tags, "amount"))
    if amount is None:
        logger.debug("receipt_amount_unparsed", event_id=short_id(event_id))
        amount = 0

    sender = first_tag_value(tags, "P")
    if sender is None and request:
        request_pubkey = request.get("pubkey")
        if isinstance(request_pubkey, str) and request_pubkey:
            sender = request_pubkey

    target_event = first_tag_value(tags, "e") or first_tag_value(tags, "a")
    if target_event is None and request_tags is not None:
        target_event = first_tag_value(request_tags, "e") or first_tag_value(request_tags, "a")

    target_pubkey = first_tag_value(tags, "p")
    if target_pubkey is None and request_tags is not None:
        target_pubkey = first_tag_value(request_tags, "p")

    hashtags = hashtags_from_tags(tags)
    if request_tags is not None:
        hashtags = hashtags | hashtags_from_tags(request_tags)

    comment = ""
    if request and isinstance(request.get("content"), str):
        comment = request["content"][:_MAX_COMMENT_LEN]

    return ZapReceipt(
        id=event_id,
        timestamp=timestamp,
        amount_msats=amount,
        sender_pubkey=sender.lower() if sender else None,
        target_event_id=target_event,
        target_pubkey=target_pubkey.lower() if target_pubkey else None,
        hashtags=hashtags,
        comment=comment,
    )


def parse_batch(raw_list: Iterable[Any]) -> list[ZapReceipt]:
    """
    Parse a page of raw events; skips unusable items.

    Never aborts: an unexpected error on one event is logged and the event
    dropped, so one bad receipt cannot sink the page.
    """
    parsed: list[ZapReceipt] = []
    dropped = 0
    for raw in raw_list:
        try:
            receipt = parse(raw)
        except Exception as e:
            logger.warning("receipt_parse_error", error=str(e))
            receipt = None
        if receipt is None:
            dropped += 1
            continue
        parsed.append(receipt)
    if dropped:
        logger.info("receipt_batch_dropped", dropped=dropped, parsed=len(parsed))
    return parsed
