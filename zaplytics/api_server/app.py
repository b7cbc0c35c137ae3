"""
FastAPI/ASGI application entrypoint.

Build the app with settings from the environment (.env, ZAPLYTICS_*).
Run with: uvicorn zaplytics.api_server.app:app --host 0.0.0.0 --port 8000
"""

from zaplytics.api_server.server import create_app

app = create_app()

__all__ = ["app"]
