"""
Test that zaplytics_logging can be imported without circular import and logger works.
"""

from __future__ import annotations


def test_logging_import():
    """Import get_logger from zaplytics_logging and use the logger."""
    from zaplytics.zaplytics_logging import get_logger

    logger = get_logger("test")
    assert logger is not None
    assert hasattr(logger, "info")
    assert hasattr(logger, "debug")
    assert hasattr(logger, "warning")
    assert hasattr(logger, "error")
    # Smoke test: call info (should not raise)
    logger.info("test_message", key="value")


def test_short_id_and_bound_identity():
    from zaplytics.zaplytics_logging import bind_identity, short_id

    assert short_id("ab" * 32) == "abababababababab..."
    assert short_id("short") == "short"
    assert short_id(None) == ""
    bind_identity("ab" * 32).info("session_test")
