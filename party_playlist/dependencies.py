"""Shared FastAPI dependencies for process-wide collaborators."""
from fastapi import Header, HTTPException, Request, status

from party_playlist.config import settings
from party_playlist.services.publisher import Publisher, publisher
from party_playlist.services.spotify_client import SpotifyClient, spotify_client
from party_playlist.services.watcher import WatcherService


def get_publisher() -> Publisher:
    return publisher


def get_spotify() -> SpotifyClient:
    return spotify_client


def get_watcher(request: Request) -> WatcherService:
    watcher = getattr(request.app.state, "watcher", None)
    if watcher is None:
        raise HTTPException(status_code=503, detail="Watcher not initialized")
    return watcher


def require_system_token(x_system_token: str = Header(default="")) -> None:
    """Guard for operational endpoints when SYSTEM_CONTROL_TOKEN is configured."""
    if settings.SYSTEM_CONTROL_TOKEN and x_system_token != settings.SYSTEM_CONTROL_TOKEN:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid system token")
