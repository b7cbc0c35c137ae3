"""
Structured logging for Zaplytics.

JSON logs with timestamp, identity, event_type and session context.
Use get_logger() in all modules for aggregation-friendly output.
"""

from zaplytics.zaplytics_logging.logger import bind_identity, get_logger, short_id

__all__ = ["bind_identity", "get_logger", "short_id"]
