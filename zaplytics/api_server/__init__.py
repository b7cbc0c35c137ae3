"""API server package: FastAPI app over the analytics orchestrator."""

from zaplytics.api_server.server import create_app

__all__ = ["create_app"]
