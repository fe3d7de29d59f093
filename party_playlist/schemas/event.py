"""Pydantic schemas for Events."""
from __future__ import annotations
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel

from party_playlist.models.event import EventStatus


class EventCreate(BaseModel):
    user_id: str
    name: Optional[str] = None


class PagesEnabledIn(BaseModel):
    requests: Optional[bool] = None
    display: Optional[bool] = None


class EventStateUpdate(BaseModel):
    status: Optional[EventStatus] = None
    pages_enabled: Optional[PagesEnabledIn] = None
    config: Optional[dict[str, Any]] = None
    version: int  # required for optimistic locking


class EventOut(BaseModel):
    event_id: str
    user_id: str
    name: Optional[str] = None
    pin: str
    status: EventStatus
    pages_enabled: dict[str, bool]
    config: dict[str, Any]
    active: bool
    version: int
    expires_at: datetime
    ended_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PageStateOut(BaseModel):
    username: str
    status: EventStatus
    pages: dict[str, str]
    config: dict[str, Any] = {}
