"""Pydantic schemas for the watcher control surface and stats."""
from typing import Literal, Optional
from pydantic import BaseModel, Field


class WatcherCommand(BaseModel):
    action: Literal["start", "stop", "status", "check"]
    interval: Optional[int] = Field(default=None, ge=500)
    queueInterval: Optional[int] = Field(default=None, ge=500)


class StatsOut(BaseModel):
    total_requests: int
    pending_requests: int
    approved_requests: int
    rejected_requests: int
    played_requests: int
    unique_requesters: int
    spotify_connected: bool
