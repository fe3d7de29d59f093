"""Operational routes: watcher control and on-demand stats."""
import logging
from dataclasses import asdict
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from party_playlist.database import get_db
from party_playlist.dependencies import get_spotify, get_watcher, require_system_token
from party_playlist.models.request import SongRequest
from party_playlist.schemas.watcher import StatsOut, WatcherCommand
from party_playlist.services.request_store import RequestRecord
from party_playlist.services.spotify_client import SpotifyClient
from party_playlist.services.stats import compute_stats
from party_playlist.services.watcher import WatcherService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/watcher", dependencies=[Depends(require_system_token)])
async def control_watcher(payload: WatcherCommand, watcher: WatcherService = Depends(get_watcher)):
    """start / stop / status / check."""
    if payload.action == "start":
        await watcher.start(payload.interval, payload.queueInterval)
        return {"success": True, "message": "Spotify watcher started", **watcher.status()}

    if payload.action == "stop":
        watcher.stop()
        return {"success": True, "message": "Spotify watcher stopped", **watcher.status()}

    if payload.action == "check":
        try:
            results = await watcher.check()
        except Exception as exc:
            logger.exception("Manual Spotify watcher check failed")
            raise HTTPException(status_code=502, detail=f"Watcher check failed: {exc}")
        return {
            "success": True,
            "message": "Manual check completed",
            "tenants": [asdict(r) for r in results],
        }

    return watcher.status()


@router.get("/watcher", dependencies=[Depends(require_system_token)])
def watcher_status(watcher: WatcherService = Depends(get_watcher)):
    return watcher.status()


@router.get("/stats", response_model=StatsOut)
async def get_stats(
    user_id: str = Query(...),
    db: Session = Depends(get_db),
    spotify: SpotifyClient = Depends(get_spotify),
):
    """Current request statistics for one host, computed on demand."""
    rows = db.query(SongRequest).filter(SongRequest.user_id == user_id).all()
    connected = await spotify.is_connected(user_id)
    return compute_stats([RequestRecord.from_orm(r) for r in rows], spotify_connected=connected).as_dict()
