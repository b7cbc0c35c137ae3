"""
Identity normalization: accept hex pubkeys or NIP-19 `npub` strings.

Relay filters need 64-char lowercase hex; the site's member list stores npubs.
"""

from __future__ import annotations

import re

import bech32

_HEX_PUBKEY_RE = re.compile(r"^[0-9a-f]{64}$")


def is_hex_pubkey(value: str) -> bool:
    return bool(_HEX_PUBKEY_RE.match(value))


def npub_to_hex(npub: str) -> str:
    """Decode a bech32 `npub1...` string into a hex pubkey; raise ValueError if invalid."""
    hrp, data = bech32.bech32_decode(npub)
    if hrp != "npub" or data is None:
        raise ValueError(f"Invalid npub: {npub[:16]}")
    raw = bech32.convertbits(data, 5, 8, False)
    if raw is None or len(raw) != 32:
        raise ValueError(f"Invalid npub payload length: {npub[:16]}")
    return bytes(raw).hex()


def hex_to_npub(pubkey: str) -> str:
    """Encode a hex pubkey as `npub1...` (display only)."""
    if not is_hex_pubkey(pubkey):
        raise ValueError(f"Invalid hex pubkey: {pubkey[:16]}")
    bits = bech32.convertbits(bytes.fromhex(pubkey), 8, 5)
    return bech32.bech32_encode("npub", bits)


def normalize_identity(identity: str) -> str:
    """Return a lowercase hex pubkey for a hex or npub identity."""
    value = (identity or "").strip()
    if not value:
        raise ValueError("identity must be non-empty")
    if value.startswith("npub1"):
        return npub_to_hex(value)
    lowered = value.lower()
    if is_hex_pubkey(lowered):
        return lowered
    raise ValueError(f"identity must be a hex pubkey or npub, got {value[:16]!r}")
