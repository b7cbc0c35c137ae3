"""Configuration: .env loading and typed settings."""

from zaplytics.config.env import get_identities, get_relay_urls, load_zaplytics_env
from zaplytics.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_identities",
    "get_relay_urls",
    "get_settings",
    "load_zaplytics_env",
]
