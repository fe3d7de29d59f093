"""Song request ORM model — append-only history of guest asks."""
import uuid
import enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Enum as SAEnum
from party_playlist.database import Base


class RequestStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    played = "played"


class SongRequest(Base):
    __tablename__ = "requests"

    request_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.user_id"), nullable=False, index=True)
    event_id = Column(String(36), ForeignKey("events.event_id"), nullable=True)
    track_uri = Column(String(255), nullable=False, index=True)
    track_name = Column(String(500), nullable=False)
    artist_name = Column(String(500), nullable=False, default="")
    album_name = Column(String(500), nullable=True)
    duration_ms = Column(Integer, nullable=True)
    requester_nickname = Column(String(100), nullable=True)
    status = Column(SAEnum(RequestStatus), nullable=False, default=RequestStatus.pending)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    played_at = Column(DateTime(timezone=True), nullable=True)
