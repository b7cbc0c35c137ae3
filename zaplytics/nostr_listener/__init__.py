"""
Nostr listener package.

Queries relays for zap receipts (kind 9735), normalizes raw events into
ZapReceipt records, and resolves the content those receipts point at.
"""

from zaplytics.nostr_listener.keys import normalize_identity, npub_to_hex
from zaplytics.nostr_listener.models import TargetContent, ZapReceipt
from zaplytics.nostr_listener.parser import parse, parse_batch
from zaplytics.nostr_listener.relay_client import (
    ReceiptSource,
    RelayClient,
    RelayPool,
    RelayQueryError,
)

__all__ = [
    "ReceiptSource",
    "RelayClient",
    "RelayPool",
    "RelayQueryError",
    "TargetContent",
    "ZapReceipt",
    "normalize_identity",
    "npub_to_hex",
    "parse",
    "parse_batch",
]
