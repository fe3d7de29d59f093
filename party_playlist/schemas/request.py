"""Pydantic schemas for song Requests."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from party_playlist.models.request import RequestStatus


class RequestSubmit(BaseModel):
    pin: str = Field(min_length=4, max_length=4)
    track_uri: str
    track_name: str
    artist_name: str
    album_name: Optional[str] = None
    duration_ms: Optional[int] = None
    requester_nickname: Optional[str] = Field(default=None, max_length=100)


class RequestOut(BaseModel):
    request_id: str
    user_id: str
    event_id: Optional[str] = None
    track_uri: str
    track_name: str
    artist_name: str
    album_name: Optional[str] = None
    duration_ms: Optional[int] = None
    requester_nickname: Optional[str] = None
    status: RequestStatus
    created_at: datetime
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    played_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class QueuedRequestOut(BaseModel):
    """Public view of an approved request on the display screen."""

    track_name: str
    artist_name: str
    album_name: Optional[str] = None
    requester_nickname: Optional[str] = None

    model_config = {"from_attributes": True}
