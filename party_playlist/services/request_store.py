"""Request store used by the watcher, reconciler and stats aggregator.

The watcher is async; the ORM is synchronous. ``SqlRequestStore`` runs each
query in the threadpool with its own short-lived session and hands back plain
``RequestRecord`` values so nothing outlives the session that loaded it.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from party_playlist.database import SessionLocal
from party_playlist.models.request import RequestStatus, SongRequest

logger = logging.getLogger(__name__)

# Legal request transitions. ``played`` is terminal.
REQUEST_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.pending: frozenset({RequestStatus.approved, RequestStatus.rejected}),
    RequestStatus.approved: frozenset({RequestStatus.played, RequestStatus.rejected}),
    RequestStatus.rejected: frozenset({RequestStatus.approved}),
    RequestStatus.played: frozenset(),
}

TIMESTAMP_FIELDS = {
    RequestStatus.approved: "approved_at",
    RequestStatus.rejected: "rejected_at",
    RequestStatus.played: "played_at",
}


class InvalidRequestTransition(ValueError):
    """Raised when a request status change is not allowed."""


class RequestNotFound(LookupError):
    pass


@dataclass(frozen=True)
class RequestRecord:
    request_id: str
    user_id: str
    track_uri: str
    track_name: str
    artist_name: str
    status: RequestStatus
    created_at: datetime
    album_name: Optional[str] = None
    duration_ms: Optional[int] = None
    requester_nickname: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    played_at: Optional[datetime] = None

    @classmethod
    def from_orm(cls, row: SongRequest) -> "RequestRecord":
        return cls(
            request_id=row.request_id,
            user_id=row.user_id,
            track_uri=row.track_uri,
            track_name=row.track_name,
            artist_name=row.artist_name,
            status=row.status,
            created_at=row.created_at,
            album_name=row.album_name,
            duration_ms=row.duration_ms,
            requester_nickname=row.requester_nickname,
            approved_at=row.approved_at,
            rejected_at=row.rejected_at,
            played_at=row.played_at,
        )


class RequestStore(Protocol):
    async def get_requests_by_status(
        self, status: RequestStatus, limit: int, offset: int, tenant_id: str
    ) -> list[RequestRecord]:
        ...

    async def get_all_requests(self, tenant_id: str) -> list[RequestRecord]:
        ...

    async def update_request_status(
        self, request_id: str, new_status: RequestStatus, timestamp_field: str
    ) -> RequestRecord:
        ...


def check_request_transition(current: RequestStatus, new_status: RequestStatus) -> None:
    if new_status not in REQUEST_TRANSITIONS[RequestStatus(current)]:
        raise InvalidRequestTransition(
            f"Cannot move request from {RequestStatus(current).value} to {RequestStatus(new_status).value}"
        )


def query_requests_by_status(
    db: Session, status: RequestStatus, limit: int, offset: int, tenant_id: str
) -> list[SongRequest]:
    """Approved requests come back in play order (oldest approval first); others newest first."""
    query = db.query(SongRequest).filter(
        SongRequest.user_id == tenant_id,
        SongRequest.status == RequestStatus(status),
    )
    if status == RequestStatus.approved:
        query = query.order_by(SongRequest.approved_at.asc(), SongRequest.created_at.asc())
    elif status == RequestStatus.played:
        query = query.order_by(SongRequest.played_at.desc())
    else:
        query = query.order_by(SongRequest.created_at.desc())
    return query.offset(offset).limit(limit).all()


def apply_request_status(db: Session, row: SongRequest, new_status: RequestStatus, timestamp_field: str) -> SongRequest:
    """Validate and apply a status change on an attached row, then commit."""
    check_request_transition(row.status, new_status)
    row.status = RequestStatus(new_status)
    setattr(row, timestamp_field, datetime.now(timezone.utc))
    db.commit()
    db.refresh(row)
    return row


class SqlRequestStore:
    """``RequestStore`` backed by the application database."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    async def get_requests_by_status(
        self, status: RequestStatus, limit: int, offset: int, tenant_id: str
    ) -> list[RequestRecord]:
        def _query() -> list[RequestRecord]:
            with self._session_factory() as db:
                rows = query_requests_by_status(db, status, limit, offset, tenant_id)
                return [RequestRecord.from_orm(r) for r in rows]

        return await run_in_threadpool(_query)

    async def get_all_requests(self, tenant_id: str) -> list[RequestRecord]:
        def _query() -> list[RequestRecord]:
            with self._session_factory() as db:
                rows = db.query(SongRequest).filter(SongRequest.user_id == tenant_id).all()
                return [RequestRecord.from_orm(r) for r in rows]

        return await run_in_threadpool(_query)

    async def update_request_status(
        self, request_id: str, new_status: RequestStatus, timestamp_field: str
    ) -> RequestRecord:
        def _update() -> RequestRecord:
            with self._session_factory() as db:
                row = db.query(SongRequest).filter(SongRequest.request_id == request_id).first()
                if row is None:
                    raise RequestNotFound(request_id)
                row = apply_request_status(db, row, new_status, timestamp_field)
                return RequestRecord.from_orm(row)

        record = await run_in_threadpool(_update)
        logger.info("Request %s -> %s", request_id, record.status.value)
        return record
