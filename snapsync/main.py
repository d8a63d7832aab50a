"""SnapSync Server - FastAPI Application Entry Point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from snapsync.config import settings
from snapsync.database import create_db_engine, init_db
from snapsync.errors import SnapSyncError
from snapsync.services.registry import Services
from snapsync.ws.sync import ConnectionManager, websocket_sync

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database and build the services on startup."""
    configure_logging()
    engine = create_db_engine()
    init_db(engine)

    app.state.services = Services.build(engine)
    app.state.connections = ConnectionManager()
    logger.info("%s ready (db %s, blobs %s)", settings.server_name, settings.db_path, settings.storage_dir)

    yield

    engine.dispose()


app = FastAPI(
    title="SnapSync",
    description="Shared photo and video albums with live sync",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS - allow all origins for local network usage
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SnapSyncError)
async def snapsync_error_handler(request: Request, exc: SnapSyncError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.code},
    )


# --- Register API routers ---
from snapsync.api.albums import router as albums_router  # noqa: E402
from snapsync.api.media import router as media_router  # noqa: E402
from snapsync.api.notifications import router as notifications_router  # noqa: E402
from snapsync.api.users import router as users_router  # noqa: E402

API_PREFIX = "/api/v1"

app.include_router(albums_router, prefix=API_PREFIX)
app.include_router(media_router, prefix=API_PREFIX)
app.include_router(notifications_router, prefix=API_PREFIX)
app.include_router(users_router, prefix=API_PREFIX)


# --- WebSocket endpoint ---

@app.websocket("/ws")
async def ws_endpoint(ws: WebSocket, token: str = Query(default="")):
    await websocket_sync(ws, ws.app.state.services, ws.app.state.connections, token or None)


@app.get("/")
def root():
    """Health check / server info."""
    return {
        "name": settings.server_name,
        "version": "0.1.0",
        "status": "running",
    }


@app.get("/api/v1/health")
def health():
    return {"status": "ok"}


# --- Blob downloads (LocalBlobStore URLs) ---
app.mount("/blobs", StaticFiles(directory=str(settings.storage_dir)), name="blobs")
