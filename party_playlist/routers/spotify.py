"""Spotify connection routes. The OAuth dance itself happens elsewhere; tokens land here."""
import logging
from datetime import datetime, timedelta, timezone
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from party_playlist.database import get_db
from party_playlist.models.spotify_auth import SpotifyAuth
from party_playlist.models.user import User
from party_playlist.schemas.spotify import SpotifyStatusOut, SpotifyTokensIn

logger = logging.getLogger(__name__)
router = APIRouter()


def _status(user_id: str, auth) -> SpotifyStatusOut:
    connected = bool(auth and auth.access_token and auth.refresh_token)
    return SpotifyStatusOut(
        user_id=user_id,
        connected=connected,
        expires_at=auth.expires_at if connected else None,
        scope=auth.scope if connected else None,
    )


@router.put("/{user_id}/tokens", response_model=SpotifyStatusOut)
def store_tokens(user_id: str, payload: SpotifyTokensIn, db: Session = Depends(get_db)):
    if not db.query(User).filter(User.user_id == user_id).first():
        raise HTTPException(status_code=404, detail="User not found")
    auth = db.query(SpotifyAuth).filter(SpotifyAuth.user_id == user_id).first()
    if auth is None:
        auth = SpotifyAuth(user_id=user_id)
        db.add(auth)
    auth.access_token = payload.access_token
    auth.refresh_token = payload.refresh_token
    auth.expires_at = datetime.now(timezone.utc) + timedelta(seconds=payload.expires_in)
    auth.scope = payload.scope
    db.commit()
    db.refresh(auth)
    logger.info("Stored Spotify tokens for %s", user_id)
    return _status(user_id, auth)


@router.get("/{user_id}/status", response_model=SpotifyStatusOut)
def connection_status(user_id: str, db: Session = Depends(get_db)):
    auth = db.query(SpotifyAuth).filter(SpotifyAuth.user_id == user_id).first()
    return _status(user_id, auth)


@router.delete("/{user_id}", response_model=SpotifyStatusOut)
def reset_connection(user_id: str, request: Request, db: Session = Depends(get_db)):
    """Forget this host's Spotify tokens and the watcher's cached state for them."""
    auth = db.query(SpotifyAuth).filter(SpotifyAuth.user_id == user_id).first()
    if auth is not None:
        db.delete(auth)
        db.commit()
    watcher = getattr(request.app.state, "watcher", None)
    if watcher is not None:
        watcher.forget_tenant(user_id)
    logger.info("Reset Spotify connection for %s", user_id)
    return _status(user_id, None)
