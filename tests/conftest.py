"""Pytest fixtures — SQLite database, TestClient, and in-memory collaborators."""
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Optional

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from party_playlist.database import Base, get_db
from party_playlist.dependencies import get_publisher, get_spotify
from party_playlist.main import app

# Import all models so they register with Base.metadata
from party_playlist.models.user import User                     # noqa: F401
from party_playlist.models.event import Event                   # noqa: F401
from party_playlist.models.request import RequestStatus, SongRequest  # noqa: F401
from party_playlist.models.spotify_auth import SpotifyAuth      # noqa: F401
from party_playlist.models.event_mutation import EventMutation  # noqa: F401

from party_playlist.schemas.playback import PlaybackSnapshot, QueueResponse, Track
from party_playlist.services.publisher import PublishError
from party_playlist.services.request_store import (
    RequestNotFound,
    RequestRecord,
    check_request_transition,
)
from party_playlist.services.spotify_client import SpotifyError

SQLITE_URL = "sqlite:///./test.db"


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Yield a database session, closed after the test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def recorder():
    return RecordingPublisher()


@pytest.fixture(scope="function")
def fake_spotify():
    return FakeSpotify()


@pytest.fixture(scope="function")
def client(session_factory, recorder, fake_spotify):
    """FastAPI TestClient with database, fan-out and Spotify dependencies overridden."""

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_publisher] = lambda: recorder
    app.dependency_overrides[get_spotify] = lambda: fake_spotify
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------
class RecordingPublisher:
    """Publisher that remembers every (channel, event_type, payload) it was given."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.messages: list[tuple[str, str, dict[str, Any]]] = []

    async def publish(self, channel: str, event_type: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise PublishError(f"channel {channel} unavailable")
        self.messages.append((channel, event_type, payload))

    def of_type(self, event_type: str) -> list[tuple[str, str, dict[str, Any]]]:
        return [m for m in self.messages if m[1] == event_type]


class InMemoryRequestStore:
    """RequestStore over a plain dict of RequestRecords."""

    def __init__(self, records: Optional[list[RequestRecord]] = None):
        self.records: dict[str, RequestRecord] = {r.request_id: r for r in records or []}
        self.updates: list[tuple[str, RequestStatus]] = []

    def add(self, record: RequestRecord) -> RequestRecord:
        self.records[record.request_id] = record
        return record

    async def get_requests_by_status(self, status, limit, offset, tenant_id):
        rows = [r for r in self.records.values() if r.user_id == tenant_id and r.status == status]
        # play order, as the SQL store returns approved rows
        rows.sort(key=lambda r: (r.approved_at or r.created_at, r.created_at))
        return rows[offset:offset + limit]

    async def get_all_requests(self, tenant_id):
        return [r for r in self.records.values() if r.user_id == tenant_id]

    async def update_request_status(self, request_id, new_status, timestamp_field):
        record = self.records.get(request_id)
        if record is None:
            raise RequestNotFound(request_id)
        check_request_transition(record.status, new_status)
        updated = replace(record, status=new_status, **{timestamp_field: datetime.now(timezone.utc)})
        self.records[request_id] = updated
        self.updates.append((request_id, new_status))
        return updated


class FakePlaybackSource:
    """PlaybackSource with per-tenant canned playback, queues and failures."""

    def __init__(self):
        self.connected: list[str] = []
        self.playback: dict[str, Optional[PlaybackSnapshot]] = {}
        self.queues: dict[str, list[dict[str, Any]]] = {}
        self.failing_playback: set[str] = set()
        self.failing_queue: set[str] = set()
        self.queue_calls: dict[str, int] = {}

    def connect(self, tenant_id: str, playback: Optional[PlaybackSnapshot] = None, queue=None) -> None:
        self.connected.append(tenant_id)
        self.playback[tenant_id] = playback
        self.queues[tenant_id] = list(queue or [])

    async def list_connected_tenants(self) -> list[str]:
        return list(self.connected)

    async def is_connected(self, tenant_id: str) -> bool:
        return tenant_id in self.connected

    async def get_current_playback(self, tenant_id: str) -> Optional[PlaybackSnapshot]:
        if tenant_id in self.failing_playback:
            raise SpotifyError("playback unavailable")
        return self.playback.get(tenant_id)

    async def get_queue(self, tenant_id: str) -> Optional[QueueResponse]:
        self.queue_calls[tenant_id] = self.queue_calls.get(tenant_id, 0) + 1
        if tenant_id in self.failing_queue:
            raise SpotifyError("queue unavailable")
        return QueueResponse(queue=self.queues.get(tenant_id, []))


class FakeSpotify:
    """Stands in for SpotifyClient on the API routes."""

    def __init__(self):
        self.connected: set[str] = set()
        self.search_results: list[Track] = []
        self.search_error: Optional[Exception] = None

    async def is_connected(self, tenant_id: str) -> bool:
        return tenant_id in self.connected

    async def search_tracks(self, tenant_id: str, query: str, limit: int = 10) -> list[Track]:
        if self.search_error is not None:
            raise self.search_error
        return list(self.search_results)


class FakeClock:
    """Monotonic clock in seconds, advanced by hand."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------
def make_track(uri: str = "spotify:track:A", name: str = "Track A") -> Track:
    return Track.model_validate({
        "id": uri.rsplit(":", 1)[-1],
        "name": name,
        "uri": uri,
        "duration_ms": 180000,
        "artists": [{"id": "artist1", "name": "Some Artist"}],
        "album": {"id": "album1", "name": "Some Album", "images": []},
    })


def make_playback(
    uri: Optional[str] = "spotify:track:A",
    is_playing: bool = True,
    progress_ms: int = 0,
    device_id: str = "device-1",
) -> PlaybackSnapshot:
    data: dict[str, Any] = {
        "is_playing": is_playing,
        "progress_ms": progress_ms,
        "device": {"id": device_id, "name": "Booth", "type": "Computer", "volume_percent": 80},
    }
    if uri is not None:
        data["item"] = make_track(uri).model_dump()
    return PlaybackSnapshot.model_validate(data)


def make_record(
    request_id: str,
    tenant_id: str = "tenant-1",
    track_uri: str = "spotify:track:A",
    status: RequestStatus = RequestStatus.approved,
    created_at: Optional[datetime] = None,
    nickname: Optional[str] = None,
    approved_at: Optional[datetime] = None,
) -> RequestRecord:
    return RequestRecord(
        request_id=request_id,
        user_id=tenant_id,
        track_uri=track_uri,
        track_name=f"Track {track_uri[-1]}",
        artist_name="Some Artist",
        status=status,
        created_at=created_at or datetime.now(timezone.utc),
        requester_nickname=nickname,
        approved_at=approved_at,
    )


# ---------------------------------------------------------------------------
# Helpers: create hosts and parties via the API, return the JSON response dict
# ---------------------------------------------------------------------------
def create_test_user(client: TestClient, username: str = "dj_test", display_name: str = "DJ Test") -> dict:
    """Helper — POST /api/users and return response JSON."""
    resp = client.post("/api/users/", json={
        "username": username,
        "display_name": display_name,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def create_test_event(client: TestClient, user_id: str, name: str = "Friday Night") -> dict:
    """Helper — POST /api/events and return response JSON."""
    resp = client.post("/api/events/", json={"user_id": user_id, "name": name})
    assert resp.status_code == 201, resp.text
    return resp.json()


def update_state(client: TestClient, event: dict, actor_user_id: Optional[str] = None, **changes):
    """Helper — PUT /api/events/{id}/state using the event's current version."""
    body = {"version": event["version"], **changes}
    return client.put(
        f"/api/events/{event['event_id']}/state",
        params={"actor_user_id": actor_user_id or event["user_id"]},
        json=body,
    )


def open_party(client: TestClient, username: str = "dj_test", requests: bool = True,
               display: bool = True, config: Optional[dict] = None) -> tuple[dict, dict]:
    """Create a host with a live party and return (user, event)."""
    user = create_test_user(client, username=username)
    event = create_test_event(client, user["user_id"])
    changes: dict[str, Any] = {"status": "live", "pages_enabled": {"requests": requests, "display": display}}
    if config:
        changes["config"] = config
    resp = update_state(client, event, **changes)
    assert resp.status_code == 200, resp.text
    return user, resp.json()
