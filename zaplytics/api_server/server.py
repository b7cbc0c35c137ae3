"""
FastAPI server: read/control surface over the analytics orchestrator.

One orchestrator per app, created in the lifespan and closed on shutdown.
Every session endpoint returns the current snapshot: status, selection,
loading state and the (possibly partial) statistics bundle.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from zaplytics import __version__
from zaplytics.agent_worker import AnalyticsOrchestrator, NoActiveSession
from zaplytics.config import Settings, get_settings
from zaplytics.nostr_listener.relay_client import ReceiptSource
from zaplytics.zaplytics_logging import get_logger, short_id

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# Request models
# -----------------------------------------------------------------------------


class CustomRangeBody(BaseModel):
    """Custom window bounds: epoch seconds, YYYY-MM-DD dates or ISO datetimes."""

    model_config = ConfigDict(populate_by_name=True)

    from_: int | str | None = Field(None, alias="from", description="Start bound (inclusive)")
    to: int | str | None = Field(None, description="End bound (inclusive, whole day for dates)")

    def to_mapping(self) -> dict[str, Any]:
        return {"from": self.from_, "to": self.to}


class SessionRequest(BaseModel):
    """POST /sessions body: the selection to analyze."""

    identity: str | None = Field(None, max_length=128, description="Hex pubkey or npub; empty means idle")
    time_range: str = Field("7d", description="24h, 7d, 30d, 90d, 1y or custom")
    custom_range: CustomRangeBody | None = Field(None, description="Required bounds when time_range is custom")


# -----------------------------------------------------------------------------
# Lifespan and dependency
# -----------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the orchestrator on startup; supersede any running session on shutdown."""
    settings: Settings = app.state.settings or get_settings()
    app.state.settings = settings
    orchestrator = AnalyticsOrchestrator(settings, app.state.source)
    app.state.orchestrator = orchestrator
    logger.info("api_started", relays=len(settings.relay_urls), identities=len(settings.identities))
    try:
        yield
    finally:
        await orchestrator.close()
        logger.info("api_stopped")


def get_orchestrator(request: Request) -> AnalyticsOrchestrator:
    return request.app.state.orchestrator


def _require_session(orchestrator: AnalyticsOrchestrator) -> None:
    if not orchestrator.has_session:
        raise HTTPException(status_code=404, detail="No session selected")


# -----------------------------------------------------------------------------
# App and routes
# -----------------------------------------------------------------------------


def create_app(settings: Settings | None = None, source: ReceiptSource | None = None) -> FastAPI:
    """
    Build the ASGI app. `settings` defaults to get_settings() at startup;
    `source` defaults to a RelayPool over the configured relays.
    """
    app = FastAPI(
        title="Zaplytics API",
        description="Zap earnings analytics for Nostr identities, computed live from relays.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.source = source

    @app.get("/health")
    def health() -> dict[str, Any]:
        """Liveness probe: API is up."""
        return {"status": "ok", "version": __version__}

    @app.get("/identities")
    def identities(request: Request) -> dict[str, list[str]]:
        """Configured selectable identities (the site's feed members)."""
        return {"identities": list(request.app.state.settings.identities)}

    @app.post("/sessions", status_code=201)
    async def create_session(
        body: SessionRequest,
        orchestrator: AnalyticsOrchestrator = Depends(get_orchestrator),
    ) -> dict[str, Any]:
        """Select (identity, range, custom range); an identical selection keeps the running session."""
        custom = body.custom_range.to_mapping() if body.custom_range else None
        try:
            snapshot = await orchestrator.select(body.identity, body.time_range, custom)
        except ValueError as e:
            logger.info("session_rejected", identity=short_id(body.identity), error=str(e))
            raise HTTPException(status_code=422, detail=str(e)) from e
        return snapshot.to_dict()

    @app.get("/sessions/current")
    async def current_session(orchestrator: AnalyticsOrchestrator = Depends(get_orchestrator)) -> dict[str, Any]:
        _require_session(orchestrator)
        return orchestrator.snapshot().to_dict()

    @app.post("/sessions/current/load-more")
    async def load_more(orchestrator: AnalyticsOrchestrator = Depends(get_orchestrator)) -> dict[str, Any]:
        """Fetch one page now, regardless of auto-load state."""
        _require_session(orchestrator)
        try:
            snapshot = await orchestrator.load_more_zaps()
        except NoActiveSession as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        return snapshot.to_dict()

    @app.post("/sessions/current/toggle-auto-load")
    async def toggle_auto_load(orchestrator: AnalyticsOrchestrator = Depends(get_orchestrator)) -> dict[str, Any]:
        _require_session(orchestrator)
        try:
            return orchestrator.toggle_auto_load().to_dict()
        except NoActiveSession as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

    @app.post("/sessions/current/restart-auto-load")
    async def restart_auto_load(orchestrator: AnalyticsOrchestrator = Depends(get_orchestrator)) -> dict[str, Any]:
        """Reset consecutive failures and resume auto-load after the breaker tripped."""
        _require_session(orchestrator)
        try:
            return orchestrator.restart_auto_load().to_dict()
        except NoActiveSession as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

    @app.post("/sessions/current/dismiss-error")
    async def dismiss_error(orchestrator: AnalyticsOrchestrator = Depends(get_orchestrator)) -> dict[str, Any]:
        _require_session(orchestrator)
        try:
            return orchestrator.dismiss_error().to_dict()
        except NoActiveSession as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

    @app.exception_handler(HTTPException)
    def http_exception_handler(request: Any, exc: HTTPException) -> JSONResponse:
        """Consistent JSON error response for HTTPException."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
        )

    return app
