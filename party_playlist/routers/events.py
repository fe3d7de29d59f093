"""Event API routes — delegates to event_service for lifecycle enforcement."""
import logging
from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from party_playlist.database import get_db
from party_playlist.dependencies import get_publisher
from party_playlist.schemas.event import EventCreate, EventOut, EventStateUpdate
from party_playlist.services import event_service
from party_playlist.services.publisher import STATE_UPDATE, Publisher, publish_safely

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=EventOut, status_code=status.HTTP_201_CREATED)
def create_event(
    payload: EventCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    publisher: Publisher = Depends(get_publisher),
):
    """Start a new party (ends any previous one for this host)."""
    event = event_service.create_event(db, user_id=payload.user_id, name=payload.name)
    background_tasks.add_task(publish_safely, publisher, event.user_id, STATE_UPDATE, event_service.state_payload(event))
    return event


@router.get("/current", response_model=EventOut)
def get_current_event(user_id: str = Query(...), db: Session = Depends(get_db)):
    return event_service.get_active_event(db, user_id)


@router.get("/{event_id}", response_model=EventOut)
def get_event(event_id: str, db: Session = Depends(get_db)):
    return event_service.get_event(db, event_id)


@router.put("/{event_id}/state", response_model=EventOut)
def update_event_state(
    event_id: str,
    payload: EventStateUpdate,
    background_tasks: BackgroundTasks,
    actor_user_id: str = Query(..., description="ID of the host performing the update"),
    db: Session = Depends(get_db),
    publisher: Publisher = Depends(get_publisher),
):
    """Change lifecycle status, page toggles and/or config (optimistic locking enforced)."""
    pages = payload.pages_enabled.model_dump() if payload.pages_enabled else None
    event = event_service.update_event_state(
        db=db,
        event_id=event_id,
        actor_user_id=actor_user_id,
        version=payload.version,
        new_status=payload.status,
        pages_enabled=pages,
        config=payload.config,
    )
    background_tasks.add_task(publish_safely, publisher, event.user_id, STATE_UPDATE, event_service.state_payload(event))
    return event


@router.post("/{event_id}/end", response_model=EventOut)
def end_event(
    event_id: str,
    background_tasks: BackgroundTasks,
    actor_user_id: str = Query(...),
    db: Session = Depends(get_db),
    publisher: Publisher = Depends(get_publisher),
):
    event = event_service.end_event(db, event_id, actor_user_id)
    background_tasks.add_task(publish_safely, publisher, event.user_id, STATE_UPDATE, event_service.state_payload(event))
    return event
