"""Host-facing song request routes — review and random suggestions."""
import logging
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from party_playlist.database import get_db
from party_playlist.dependencies import get_publisher, get_spotify
from party_playlist.models.request import RequestStatus
from party_playlist.schemas.request import RequestOut
from party_playlist.services import request_service
from party_playlist.services.publisher import (
    REQUEST_APPROVED,
    REQUEST_REJECTED,
    REQUEST_SUBMITTED,
    Publisher,
    publish_safely,
)
from party_playlist.services.spotify_client import SpotifyClient, SpotifyError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=list[RequestOut])
def list_requests(
    user_id: str = Query(...),
    status: Optional[RequestStatus] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """List a host's requests; approved come back in play order."""
    return request_service.list_requests(db, user_id, status, limit, offset)


@router.post("/random", response_model=RequestOut, status_code=201)
async def add_random_request(
    background_tasks: BackgroundTasks,
    user_id: str = Query(...),
    db: Session = Depends(get_db),
    spotify: SpotifyClient = Depends(get_spotify),
    publisher: Publisher = Depends(get_publisher),
):
    """Search Spotify for a random party classic and add it as a pending request."""
    query = request_service.pick_random_query()
    try:
        tracks = await spotify.search_tracks(user_id, query, limit=10)
    except SpotifyError as exc:
        logger.warning("Random song search failed for %s: %s", user_id, exc)
        raise HTTPException(status_code=503, detail="Unable to search for random song. Spotify may be unavailable.")
    if not tracks:
        raise HTTPException(status_code=404, detail="No tracks found for random selection. Please try again.")

    req = await run_in_threadpool(request_service.create_suggested_request, db, user_id, tracks[0])
    background_tasks.add_task(publish_safely, publisher, req.user_id, REQUEST_SUBMITTED, request_service.request_payload(req))
    return req


@router.get("/{request_id}", response_model=RequestOut)
def get_request(request_id: str, db: Session = Depends(get_db)):
    return request_service.get_request(db, request_id)


@router.post("/{request_id}/approve", response_model=RequestOut)
def approve_request(
    request_id: str,
    background_tasks: BackgroundTasks,
    actor_user_id: str = Query(...),
    db: Session = Depends(get_db),
    publisher: Publisher = Depends(get_publisher),
):
    req = request_service.approve_request(db, request_id, actor_user_id)
    background_tasks.add_task(publish_safely, publisher, req.user_id, REQUEST_APPROVED, request_service.request_payload(req))
    return req


@router.post("/{request_id}/reject", response_model=RequestOut)
def reject_request(
    request_id: str,
    background_tasks: BackgroundTasks,
    actor_user_id: str = Query(...),
    db: Session = Depends(get_db),
    publisher: Publisher = Depends(get_publisher),
):
    req = request_service.reject_request(db, request_id, actor_user_id)
    background_tasks.add_task(publish_safely, publisher, req.user_id, REQUEST_REJECTED, request_service.request_payload(req))
    return req
