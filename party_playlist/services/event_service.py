"""Event lifecycle service — every status/config write goes through here.

Responsibilities:
- Ownership hook: only the host who owns the event may change it
- Optimistic locking via the version field
- Lifecycle validation via the state machine (offline / standby / live)
- Mutation ledger (EventMutations) for every write
- Soft expiry: events are deactivated, never deleted
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from party_playlist.config import settings
from party_playlist.models.event import Event, EventStatus
from party_playlist.models.event_mutation import ActionType, EventMutation
from party_playlist.models.user import User
from party_playlist.services.state_machine import (
    EventState,
    PagesEnabled,
    get_page_state,
    validate_state_transition,
)

logger = logging.getLogger(__name__)

AVOIDED_PINS = {
    "1234", "4321", "0000", "1111", "2222", "3333", "4444", "5555",
    "6666", "7777", "8888", "9999", "1212", "6969", "0420",
}

DEFAULT_CONFIG: dict[str, Any] = {
    "pages_enabled": {"requests": False, "display": False},
    "event_title": "Party DJ Requests",
    "dj_name": "",
    "venue_info": "",
    "welcome_message": "Request your favorite songs!",
    "secondary_message": "Your requests will be reviewed by the DJ",
    "tertiary_message": "Keep the party going!",
    "show_qr_code": True,
    "request_limit": 10,
    "auto_approve": False,
}

PUBLIC_CONFIG_KEYS = ("event_title", "dj_name", "venue_info", "welcome_message", "secondary_message", "tertiary_message")


def generate_pin() -> str:
    while True:
        pin = str(1000 + secrets.randbelow(9000))
        if pin not in AVOIDED_PINS:
            return pin


def _event_snapshot(event: Event) -> dict[str, Any]:
    """Serialize an event to a JSON-safe dict for the mutation ledger."""
    return {
        "event_id": event.event_id,
        "status": event.status.value if event.status else None,
        "config": dict(event.config or {}),
        "active": event.active,
        "version": event.version,
    }


def _check_owner(event: Event, actor_user_id: str) -> None:
    if event.user_id != actor_user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the host who owns this event may change it.",
        )


def _record(db: Session, event: Event, actor_user_id: str, action: ActionType, before: Optional[dict]) -> None:
    db.add(EventMutation(
        event_id=event.event_id,
        actor_user_id=actor_user_id,
        action_type=action,
        before_snapshot=before,
        after_snapshot=_event_snapshot(event),
    ))


def get_event(db: Session, event_id: str) -> Event:
    event = db.query(Event).filter(Event.event_id == event_id).first()
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def find_active_event(db: Session, user_id: str) -> Optional[Event]:
    return (
        db.query(Event)
        .filter(
            Event.user_id == user_id,
            Event.active.is_(True),
            Event.expires_at > datetime.now(timezone.utc),
        )
        .order_by(Event.created_at.desc())
        .first()
    )


def get_active_event(db: Session, user_id: str) -> Event:
    event = find_active_event(db, user_id)
    if not event:
        raise HTTPException(status_code=404, detail="No active event. Start a party first.")
    return event


def create_event(db: Session, user_id: str, name: Optional[str] = None) -> Event:
    """Start a new party for a host; any previous active event is ended."""
    if not db.query(User).filter(User.user_id == user_id).first():
        raise HTTPException(status_code=404, detail="User not found")

    now = datetime.now(timezone.utc)
    previous = db.query(Event).filter(Event.user_id == user_id, Event.active.is_(True)).all()
    for old in previous:
        before = _event_snapshot(old)
        old.active = False
        old.ended_at = now
        old.version += 1
        _record(db, old, user_id, ActionType.end, before)

    event = Event(
        user_id=user_id,
        name=name,
        pin=generate_pin(),
        status=EventStatus.offline,
        config=dict(DEFAULT_CONFIG, pages_enabled=dict(DEFAULT_CONFIG["pages_enabled"])),
        active=True,
        version=1,
        expires_at=now + timedelta(hours=settings.EVENT_TTL_HOURS),
    )
    db.add(event)
    db.flush()
    _record(db, event, user_id, ActionType.create, None)
    db.commit()
    db.refresh(event)
    logger.info("Created event %s for user %s (ended %d previous)", event.event_id, user_id, len(previous))
    return event


def end_event(db: Session, event_id: str, actor_user_id: str) -> Event:
    """Deactivate the party and force it offline.

    Not run through ``validate_state_transition``: ending always changes
    ``active``, so it is never a no-op, and offline has no page requirement.
    An event that is already offline ends the same way as a live one.
    """
    event = get_event(db, event_id)
    _check_owner(event, actor_user_id)
    if not event.active:
        raise HTTPException(status_code=400, detail="Event has already ended")

    before = _event_snapshot(event)
    event.active = False
    event.ended_at = datetime.now(timezone.utc)
    event.status = EventStatus.offline
    event.version += 1
    _record(db, event, actor_user_id, ActionType.end, before)
    db.commit()
    db.refresh(event)
    logger.info("Ended event %s", event_id)
    return event


def update_event_state(
    db: Session,
    event_id: str,
    actor_user_id: str,
    version: int,
    new_status: Optional[EventStatus] = None,
    pages_enabled: Optional[dict[str, bool]] = None,
    config: Optional[dict[str, Any]] = None,
) -> Event:
    """Change status, page toggles and/or config in one validated write."""
    event = get_event(db, event_id)
    _check_owner(event, actor_user_id)

    if not event.active:
        raise HTTPException(status_code=400, detail="Event has ended")

    if event.version != version:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Version mismatch: expected {event.version}, got {version}. Re-fetch and retry.",
        )

    current_config = dict(event.config or {})
    new_config = dict(current_config)
    if config:
        new_config.update(config)
    if pages_enabled is not None:
        merged = PagesEnabled.from_config(new_config).as_dict()
        merged.update({k: bool(v) for k, v in pages_enabled.items() if v is not None})
        new_config["pages_enabled"] = merged
    target_status = EventStatus(new_status) if new_status is not None else event.status

    result = validate_state_transition(EventState(event.status, current_config), target_status, new_config)
    if not result.valid:
        raise HTTPException(status_code=400, detail=result.reason)

    before = _event_snapshot(event)
    event.status = target_status
    event.config = new_config
    event.version += 1
    event.updated_at = datetime.now(timezone.utc)
    _record(db, event, actor_user_id, ActionType.state_change, before)
    db.commit()
    db.refresh(event)
    logger.info("Event %s -> %s (version %d)", event_id, event.status.value, event.version)
    return event


def verify_pin(db: Session, username: str, pin: str) -> Optional[Event]:
    user = db.query(User).filter(User.username == username).first()
    if not user:
        return None
    event = find_active_event(db, user.user_id)
    if event is None or not secrets.compare_digest(event.pin, pin or ""):
        return None
    return event


def page_state(event: Optional[Event]) -> dict[str, str]:
    if event is None:
        return get_page_state(EventStatus.offline, PagesEnabled())
    return get_page_state(event.status, PagesEnabled.from_config(event.config))


def state_payload(event: Event) -> dict[str, Any]:
    """Payload for the ``state-update`` fan-out event."""
    config = event.config or {}
    return {
        "status": event.status.value,
        "version": event.version,
        "pagesEnabled": PagesEnabled.from_config(config).as_dict(),
        "pageState": page_state(event),
        "config": {k: config.get(k) for k in PUBLIC_CONFIG_KEYS},
        "userId": event.user_id,
    }
