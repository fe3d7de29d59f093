"""Song request workflow — guest submission and host review.

``played`` is never set here; only the watcher's reconciler moves a request
from approved to played.
"""
import logging
import random
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from party_playlist.models.request import RequestStatus, SongRequest
from party_playlist.models.user import User
from party_playlist.schemas.playback import Track
from party_playlist.services import event_service
from party_playlist.services.request_store import (
    TIMESTAMP_FIELDS,
    InvalidRequestTransition,
    apply_request_status,
    query_requests_by_status,
)
from party_playlist.services.state_machine import ENABLED

logger = logging.getLogger(__name__)

SUGGESTION_NICKNAME = "PartyPlaylist Suggestion"

POPULAR_SONGS = [
    "Levels Avicii",
    "Titanium David Guetta",
    "Animals Martin Garrix",
    "Wake Me Up Avicii",
    "Lean On Major Lazer",
    "Shape of You Ed Sheeran",
    "Blinding Lights The Weeknd",
    "Levitating Dua Lipa",
    "As It Was Harry Styles",
    "Heat Waves Glass Animals",
    "Mr. Brightside The Killers",
    "Don't Stop Me Now Queen",
    "Sweet Caroline Neil Diamond",
    "Livin' on a Prayer Bon Jovi",
    "Dancing Queen ABBA",
    "Uptown Funk Bruno Mars",
    "Happy Pharrell Williams",
    "Shut Up and Dance Walk the Moon",
    "HUMBLE. Kendrick Lamar",
    "Old Town Road Lil Nas X",
    "Sunflower Post Malone",
    "Bad Guy Billie Eilish",
    "Pumped Up Kicks Foster the People",
    "Believer Imagine Dragons",
    "Bohemian Rhapsody Queen",
]


def get_request(db: Session, request_id: str) -> SongRequest:
    req = db.query(SongRequest).filter(SongRequest.request_id == request_id).first()
    if not req:
        raise HTTPException(status_code=404, detail="Request not found")
    return req


def list_requests(
    db: Session,
    user_id: str,
    request_status: Optional[RequestStatus] = None,
    limit: int = 50,
    offset: int = 0,
) -> list[SongRequest]:
    if request_status is not None:
        return query_requests_by_status(db, request_status, limit, offset, user_id)
    return (
        db.query(SongRequest)
        .filter(SongRequest.user_id == user_id)
        .order_by(SongRequest.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def submit_request(
    db: Session,
    username: str,
    pin: str,
    track_uri: str,
    track_name: str,
    artist_name: str,
    album_name: Optional[str] = None,
    duration_ms: Optional[int] = None,
    requester_nickname: Optional[str] = None,
) -> SongRequest:
    """Guest submission through the PIN-protected request page."""
    if not db.query(User).filter(User.username == username).first():
        raise HTTPException(status_code=404, detail="Host not found")

    event = event_service.verify_pin(db, username, pin)
    if event is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid PIN or no active party")

    pages = event_service.page_state(event)
    if pages["requests"] != ENABLED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Requests are not open right now", "page_state": pages["requests"]},
        )

    config = event.config or {}
    nickname = (requester_nickname or "").strip() or None
    limit = config.get("request_limit")
    if limit and nickname:
        already = (
            db.query(SongRequest)
            .filter(SongRequest.event_id == event.event_id, SongRequest.requester_nickname == nickname)
            .count()
        )
        if already >= int(limit):
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Request limit of {limit} reached for {nickname}",
            )

    req = SongRequest(
        user_id=event.user_id,
        event_id=event.event_id,
        track_uri=track_uri,
        track_name=track_name,
        artist_name=artist_name,
        album_name=album_name,
        duration_ms=duration_ms,
        requester_nickname=nickname,
        status=RequestStatus.pending,
    )
    if config.get("auto_approve"):
        req.status = RequestStatus.approved
        req.approved_at = datetime.now(timezone.utc)
    db.add(req)
    db.commit()
    db.refresh(req)
    logger.info(
        "Request %s submitted for %s by %s (%s)",
        req.request_id, username, nickname or "Anonymous", req.status.value,
    )
    return req


def _transition(db: Session, request_id: str, actor_user_id: str, new_status: RequestStatus) -> SongRequest:
    req = get_request(db, request_id)
    if req.user_id != actor_user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the host may review this request")
    try:
        req = apply_request_status(db, req, new_status, TIMESTAMP_FIELDS[new_status])
    except InvalidRequestTransition as exc:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    logger.info("Request %s %s by host %s", request_id, new_status.value, actor_user_id)
    return req


def approve_request(db: Session, request_id: str, actor_user_id: str) -> SongRequest:
    return _transition(db, request_id, actor_user_id, RequestStatus.approved)


def reject_request(db: Session, request_id: str, actor_user_id: str) -> SongRequest:
    return _transition(db, request_id, actor_user_id, RequestStatus.rejected)


def pick_random_query() -> str:
    return random.choice(POPULAR_SONGS)


def create_suggested_request(db: Session, user_id: str, track: Track) -> SongRequest:
    """Host-initiated random pick; lands in pending like any guest request."""
    if not db.query(User).filter(User.user_id == user_id).first():
        raise HTTPException(status_code=404, detail="User not found")
    event = event_service.find_active_event(db, user_id)
    req = SongRequest(
        user_id=user_id,
        event_id=event.event_id if event else None,
        track_uri=track.uri,
        track_name=track.name,
        artist_name=", ".join(track.artist_names) or "Unknown Artist",
        album_name=track.album.name if track.album else "Unknown Album",
        duration_ms=track.duration_ms,
        requester_nickname=SUGGESTION_NICKNAME,
        status=RequestStatus.pending,
    )
    db.add(req)
    db.commit()
    db.refresh(req)
    logger.info("Random suggestion %s (%s) added for %s", req.request_id, req.track_name, user_id)
    return req


def request_payload(req: SongRequest) -> dict[str, Any]:
    """Payload for request-* fan-out events."""
    return {
        "id": req.request_id,
        "track_uri": req.track_uri,
        "track_name": req.track_name,
        "artist_name": req.artist_name,
        "album_name": req.album_name,
        "requester_nickname": req.requester_nickname,
        "status": req.status.value,
        "created_at": req.created_at.isoformat() if req.created_at else None,
        "approved_at": req.approved_at.isoformat() if req.approved_at else None,
        "rejected_at": req.rejected_at.isoformat() if req.rejected_at else None,
        "userId": req.user_id,
    }
