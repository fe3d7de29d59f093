"""Event ORM model — one live party per host."""
import uuid
import enum
from sqlalchemy import Column, String, DateTime, Integer, Boolean, JSON, ForeignKey, Enum as SAEnum
from sqlalchemy.sql import func
from party_playlist.database import Base


class EventStatus(str, enum.Enum):
    offline = "offline"
    standby = "standby"
    live = "live"


class Event(Base):
    __tablename__ = "events"

    event_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.user_id"), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    pin = Column(String(4), nullable=False)
    status = Column(SAEnum(EventStatus), nullable=False, default=EventStatus.offline)
    config = Column(JSON, nullable=False, default=dict)
    active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)
    started_at = Column(DateTime(timezone=True), server_default=func.now())
    ended_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def pages_enabled(self) -> dict[str, bool]:
        pages = (self.config or {}).get("pages_enabled") or {}
        return {
            "requests": bool(pages.get("requests", False)),
            "display": bool(pages.get("display", False)),
        }
