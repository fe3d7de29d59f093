"""FastAPI application entry point."""
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from party_playlist.config import settings
from party_playlist.database import Base, engine

# Import routers
from party_playlist.routers import users, events, requests, public, spotify, admin

# Import all models so Base.metadata knows about them
from party_playlist.models.user import User                   # noqa: F401
from party_playlist.models.event import Event                 # noqa: F401
from party_playlist.models.request import SongRequest         # noqa: F401
from party_playlist.models.spotify_auth import SpotifyAuth    # noqa: F401
from party_playlist.models.event_mutation import EventMutation  # noqa: F401

from party_playlist.services.publisher import publisher
from party_playlist.services.request_store import SqlRequestStore
from party_playlist.services.spotify_client import spotify_client
from party_playlist.services.watcher import WatcherService

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Party Playlist",
    description="Live song requests and Spotify playback sync for DJs",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(events.router, prefix="/api/events", tags=["Events"])
app.include_router(requests.router, prefix="/api/requests", tags=["Requests"])
app.include_router(public.router, prefix="/api/public", tags=["Public"])
app.include_router(spotify.router, prefix="/api/spotify", tags=["Spotify"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])

# One watcher per process
app.state.watcher = WatcherService(spotify_client, SqlRequestStore(), publisher)


@app.on_event("startup")
async def on_startup():
    """Create tables (SQLite dev mode), connect fan-out, optionally start the watcher."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
    await publisher.connect()
    if settings.WATCHER_AUTOSTART:
        logger.info("Auto-starting Spotify watcher")
        await app.state.watcher.start(settings.WATCHER_INTERVAL_MS, settings.WATCHER_QUEUE_INTERVAL_MS)


@app.on_event("shutdown")
async def on_shutdown():
    await app.state.watcher.shutdown()
    await spotify_client.aclose()
    await publisher.disconnect()


@app.get("/api/health")
def health_check():
    return {"status": "ok", "watcher": app.state.watcher.running, "broadcast": publisher.connected}
