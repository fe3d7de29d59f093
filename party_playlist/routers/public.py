"""Guest-facing routes: page state, PIN-protected submission, display feed, live stream."""
import logging
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from party_playlist.database import get_db
from party_playlist.dependencies import get_publisher
from party_playlist.models.event import EventStatus
from party_playlist.models.request import RequestStatus
from party_playlist.models.user import User
from party_playlist.schemas.event import PageStateOut
from party_playlist.schemas.request import QueuedRequestOut, RequestOut, RequestSubmit
from party_playlist.services import event_service, request_service
from party_playlist.services.publisher import (
    REQUEST_APPROVED,
    REQUEST_SUBMITTED,
    BroadcastPublisher,
    Publisher,
    publish_safely,
    tenant_channel,
)
from party_playlist.services.request_store import query_requests_by_status
from party_playlist.services.state_machine import ENABLED

logger = logging.getLogger(__name__)
router = APIRouter()


def _host(db: Session, username: str) -> User:
    user = db.query(User).filter(User.username == username).first()
    if not user:
        raise HTTPException(status_code=404, detail="Host not found")
    return user


def _public_config(event) -> dict:
    if event is None:
        return {}
    config = event.config or {}
    return {k: config.get(k) for k in event_service.PUBLIC_CONFIG_KEYS}


@router.get("/{username}/pages", response_model=PageStateOut)
def get_page_state(username: str, db: Session = Depends(get_db)):
    """What the request page and display screen should show right now."""
    user = _host(db, username)
    event = event_service.find_active_event(db, user.user_id)
    return PageStateOut(
        username=username,
        status=event.status if event else EventStatus.offline,
        pages=event_service.page_state(event),
        config=_public_config(event),
    )


@router.post("/{username}/requests", response_model=RequestOut, status_code=status.HTTP_201_CREATED)
def submit_request(
    username: str,
    payload: RequestSubmit,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    publisher: Publisher = Depends(get_publisher),
):
    req = request_service.submit_request(
        db,
        username=username,
        pin=payload.pin,
        track_uri=payload.track_uri,
        track_name=payload.track_name,
        artist_name=payload.artist_name,
        album_name=payload.album_name,
        duration_ms=payload.duration_ms,
        requester_nickname=payload.requester_nickname,
    )
    body = request_service.request_payload(req)
    background_tasks.add_task(publish_safely, publisher, req.user_id, REQUEST_SUBMITTED, body)
    if req.status == RequestStatus.approved:
        background_tasks.add_task(publish_safely, publisher, req.user_id, REQUEST_APPROVED, body)
    return req


@router.get("/{username}/display")
def get_display_data(username: str, db: Session = Depends(get_db)):
    """Approved queue for the display screen, only while the display page is enabled."""
    user = _host(db, username)
    event = event_service.find_active_event(db, user.user_id)
    pages = event_service.page_state(event)
    if pages["display"] != ENABLED:
        return {"page_state": pages["display"], "config": _public_config(event), "queue": []}

    approved = query_requests_by_status(db, RequestStatus.approved, 50, 0, user.user_id)
    return {
        "page_state": pages["display"],
        "config": _public_config(event),
        "queue": [QueuedRequestOut.model_validate(r).model_dump() for r in approved],
    }


@router.get("/{username}/stream")
async def stream_events(
    username: str,
    request: Request,
    db: Session = Depends(get_db),
    publisher: Publisher = Depends(get_publisher),
):
    """Server-sent events for one host's channel."""
    user = _host(db, username)
    if not isinstance(publisher, BroadcastPublisher) or not publisher.connected:
        raise HTTPException(status_code=503, detail="Live updates unavailable")
    channel = tenant_channel(user.user_id)

    async def _events():
        async with publisher.broadcast.subscribe(channel=channel) as subscriber:
            async for event in subscriber:
                if await request.is_disconnected():
                    break
                yield f"data: {event.message}\n\n"

    return StreamingResponse(_events(), media_type="text/event-stream")
