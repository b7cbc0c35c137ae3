"""
Environment variable loading and validation for Zaplytics.

- ZAPLYTICS_RELAYS: comma-separated relay websocket URLs
- DEFAULT_RELAY: single site relay (fallback when ZAPLYTICS_RELAYS is unset)
- ZAPLYTICS_IDENTITIES: comma-separated pubkeys selectable for analytics
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

# Project root: config is zaplytics/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

# Same-host relay of a local site deployment
DEFAULT_RELAY_URL = "ws://localhost:3334"

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def load_zaplytics_env() -> None:
    """Load .env from project root. Safe to call multiple times."""
    from dotenv import load_dotenv

    load_dotenv(_ENV_PATH)


def split_csv(raw: str | None) -> list[str]:
    """Split a comma-separated env value; drop blanks, keep order, drop duplicates."""
    out: list[str] = []
    for part in (raw or "").split(","):
        item = part.strip()
        if item and item not in out:
            out.append(item)
    return out


def get_relay_urls() -> list[str]:
    """
    Resolve relay URLs from env.
    Order: ZAPLYTICS_RELAYS > DEFAULT_RELAY > ws://localhost:3334.
    """
    load_zaplytics_env()
    relays = split_csv(os.getenv("ZAPLYTICS_RELAYS"))
    if relays:
        return relays
    single = (os.getenv("DEFAULT_RELAY") or "").strip()
    if single:
        return [single]
    return [DEFAULT_RELAY_URL]


def get_identities() -> list[str]:
    """Return ZAPLYTICS_IDENTITIES from env (the site's feed members)."""
    load_zaplytics_env()
    return split_csv(os.getenv("ZAPLYTICS_IDENTITIES"))


def env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


def env_bool(name: str, default: bool) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def ws_url_to_http(ws_url: str) -> str:
    """Convert wss:// or ws:// to https:// or http:// for relay HTTP calls (NIP-11)."""
    s = ws_url.strip()
    if s.startswith("wss://"):
        return "https://" + s[6:]
    if s.startswith("ws://"):
        return "http://" + s[5:]
    return s
