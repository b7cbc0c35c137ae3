"""Identity normalization: hex pubkeys and NIP-19 npub strings."""

from __future__ import annotations

import pytest

from zaplytics.nostr_listener.keys import hex_to_npub, normalize_identity, npub_to_hex

NPUB = "npub10elfcs4fr0l0r8af98jlmgdh9c8tcxjvz9qkw038js35mp4dma8qzvjptg"
HEX = "7e7e9c42a91bfef19fa929e5fda1b72e0ebc1a4c1141673e2794234d86addf4e"


def test_npub_decodes_to_hex():
    assert npub_to_hex(NPUB) == HEX
    assert hex_to_npub(HEX) == NPUB


def test_normalize_identity_accepts_hex_and_npub():
    assert normalize_identity(NPUB) == HEX
    assert normalize_identity(HEX.upper()) == HEX
    assert normalize_identity(f"  {HEX}  ") == HEX


@pytest.mark.parametrize("bad", ["", "   ", "npub1invalid", "abc123", "z" * 64])
def test_normalize_identity_rejects_garbage(bad):
    with pytest.raises(ValueError):
        normalize_identity(bad)
