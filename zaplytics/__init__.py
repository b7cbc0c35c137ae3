"""
Zaplytics: zap earnings analytics for Nostr identities.

Harvests zap receipts from relays page by page, accumulates them per
(identity, time range) session, and computes earnings, temporal, content,
loyalty and hashtag statistics live while loading continues. Modular
layout with clear separation between relay listener, ingestion, analysis
engine, session worker and API server.
"""

__version__ = "0.1.0"
