"""Per-host Spotify credentials."""
from sqlalchemy import Column, String, DateTime, Text, ForeignKey
from sqlalchemy.sql import func
from party_playlist.database import Base


class SpotifyAuth(Base):
    __tablename__ = "spotify_auth"

    user_id = Column(String(36), ForeignKey("users.user_id"), primary_key=True)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    scope = Column(String(500), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
