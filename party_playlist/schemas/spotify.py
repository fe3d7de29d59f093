"""Pydantic schemas for storing Spotify credentials."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class SpotifyTokensIn(BaseModel):
    access_token: str
    refresh_token: str
    expires_in: int = 3600
    scope: Optional[str] = None


class SpotifyStatusOut(BaseModel):
    user_id: str
    connected: bool
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None
