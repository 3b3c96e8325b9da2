"""
FastAPI server exposing stored IPOs, manual sync triggers and live updates.
This file wires:
- a DB adapter (Postgres or SQLite, see ipo_sync.db)
- the batch orchestrator with the two source clients
- the change broadcaster, forwarded to websocket clients
- the periodic scheduler
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from ..clients import ChittorgarhClient, IpoPremiumClient
from ..config import Settings
from ..core.listing import filter_by_status, ist_today, to_listing
from ..core.models import SyncResult
from ..core.orchestrator import BatchOrchestrator
from ..db import open_database
from ..notify import ChangeBroadcaster
from ..scheduler import SyncScheduler

LOGGER = logging.getLogger(__name__)


def build_orchestrator(db, broadcaster: ChangeBroadcaster, settings: Settings) -> BatchOrchestrator:
    primary = IpoPremiumClient(timeout=settings.http_timeout, user_agent=settings.user_agent)
    secondary = ChittorgarhClient(timeout=settings.http_timeout, user_agent=settings.user_agent)
    return BatchOrchestrator(db, primary, secondary, broadcaster, cutoff=settings.cutoff_date)


def create_app(
    settings: Optional[Settings] = None,
    db=None,
    orchestrator=None,
    broadcaster: Optional[ChangeBroadcaster] = None,
) -> FastAPI:
    """Build the app. Anything not injected is created from settings at startup."""
    settings = settings or Settings.from_env()
    broadcaster = broadcaster or ChangeBroadcaster()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_db = db is None
        app.state.db = await open_database(settings) if owns_db else db
        app.state.orchestrator = orchestrator or build_orchestrator(app.state.db, broadcaster, settings)
        scheduler = None
        if settings.scheduler_enabled:
            scheduler = SyncScheduler(app.state.orchestrator, app.state.db, settings)
            scheduler.start()
            LOGGER.info("Scheduler started")
        try:
            yield
        finally:
            if scheduler is not None:
                await scheduler.stop()
            if owns_db:
                await app.state.db.close()

    app = FastAPI(title="IPO Sync API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.broadcaster = broadcaster

    @app.get("/api/ipos")
    async def list_ipos(
        request: Request,
        category: Optional[List[str]] = Query(None),
        status: Optional[str] = None,
    ):
        """Stored IPOs, newest first, with the status derived from the IST calendar."""
        records = await request.app.state.db.list_ipos(category)
        today = ist_today()
        rows = [to_listing(r, today) for r in records]
        return filter_by_status(rows, status)

    @app.get("/api/details-ipo/{details_ipo_id}/{url_rewrite}")
    async def get_details(request: Request, details_ipo_id: str, url_rewrite: str):
        details = await request.app.state.db.get_details(details_ipo_id)
        if not details:
            return JSONResponse(status_code=404, content={"message": "IPO details not found."})
        return details

    @app.post("/api/sync/{category}/{status}", response_model=SyncResult)
    async def sync_now(request: Request, category: str, status: str):
        """Run one batch now. FAILURE is reported in the body, not as an HTTP error."""
        return await request.app.state.orchestrator.sync_batch(category, status)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/health/db")
    async def health_db(request: Request):
        try:
            ok = await request.app.state.db.ping()
        except Exception as exc:
            LOGGER.error("DB health check failed: %s", exc)
            ok = False
        if not ok:
            return JSONResponse(status_code=500, content={"status": "error"})
        return {"status": "ok"}

    @app.websocket("/ws")
    async def updates(websocket: WebSocket):
        await websocket.accept()

        async def forward(event_name, payload):
            await websocket.send_json({"event": event_name, "data": payload})

        await broadcaster.subscribe(forward)
        try:
            while True:
                # client messages are ignored; receiving detects the disconnect
                await websocket.receive_text()
        except WebSocketDisconnect:
            LOGGER.debug("Websocket client disconnected")
        finally:
            await broadcaster.unsubscribe(forward)

    return app
