"""Multi-tenant Spotify Web API client.

Each host's tokens live in ``spotify_auth``. Access tokens are refreshed when they
are within five minutes of expiry; a refresh rejected with ``invalid_grant``
clears the stored tokens so the host shows as disconnected.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Protocol

import httpx
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from sqlalchemy.orm import Session

from party_playlist.config import settings
from party_playlist.database import SessionLocal
from party_playlist.models.spotify_auth import SpotifyAuth
from party_playlist.schemas.playback import PlaybackSnapshot, QueueResponse, Track

logger = logging.getLogger(__name__)

REFRESH_MARGIN = timedelta(minutes=5)


class SpotifyError(RuntimeError):
    """Spotify request failed (network, HTTP error, or malformed payload)."""


class SpotifyAuthError(SpotifyError):
    """No usable credentials for this host."""


class PlaybackSource(Protocol):
    async def list_connected_tenants(self) -> list[str]:
        ...

    async def is_connected(self, tenant_id: str) -> bool:
        ...

    async def get_current_playback(self, tenant_id: str) -> Optional[PlaybackSnapshot]:
        ...

    async def get_queue(self, tenant_id: str) -> Optional[QueueResponse]:
        ...


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def connected_tenant_ids(db: Session, limit: int) -> list[str]:
    rows = (
        db.query(SpotifyAuth.user_id)
        .filter(SpotifyAuth.access_token.isnot(None), SpotifyAuth.refresh_token.isnot(None))
        .order_by(SpotifyAuth.user_id)
        .limit(limit)
        .all()
    )
    return [r.user_id for r in rows]


class SpotifyClient:

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._session_factory = session_factory
        self._http = http_client
        self._owns_http = http_client is None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=settings.SPOTIFY_TIMEOUT_SECONDS)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def _load_auth(self, tenant_id: str) -> Optional[dict[str, Any]]:
        with self._session_factory() as db:
            auth = db.query(SpotifyAuth).filter(SpotifyAuth.user_id == tenant_id).first()
            if auth is None:
                return None
            return {
                "access_token": auth.access_token,
                "refresh_token": auth.refresh_token,
                "expires_at": _as_utc(auth.expires_at),
            }

    def _store_tokens(self, tenant_id: str, access_token: str, expires_in: int, refresh_token: Optional[str]) -> None:
        with self._session_factory() as db:
            auth = db.query(SpotifyAuth).filter(SpotifyAuth.user_id == tenant_id).first()
            if auth is None:
                return
            auth.access_token = access_token
            auth.expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
            if refresh_token:
                auth.refresh_token = refresh_token
            db.commit()

    def _clear_tokens(self, tenant_id: str) -> None:
        with self._session_factory() as db:
            auth = db.query(SpotifyAuth).filter(SpotifyAuth.user_id == tenant_id).first()
            if auth is not None:
                auth.access_token = None
                auth.refresh_token = None
                auth.expires_at = None
                db.commit()

    async def list_connected_tenants(self) -> list[str]:
        def _query() -> list[str]:
            with self._session_factory() as db:
                return connected_tenant_ids(db, settings.WATCHER_MAX_TENANTS)

        return await run_in_threadpool(_query)

    async def is_connected(self, tenant_id: str) -> bool:
        auth = await run_in_threadpool(self._load_auth, tenant_id)
        return bool(auth and auth["access_token"] and auth["refresh_token"])

    async def get_access_token(self, tenant_id: str) -> str:
        auth = await run_in_threadpool(self._load_auth, tenant_id)
        if not auth or not auth["access_token"]:
            raise SpotifyAuthError(f"No Spotify authentication found for {tenant_id}")
        if not auth["refresh_token"]:
            raise SpotifyAuthError(f"No Spotify refresh token available for {tenant_id}")

        expires_at = auth["expires_at"]
        if expires_at is None or expires_at - datetime.now(timezone.utc) < REFRESH_MARGIN:
            return await self._refresh_access_token(tenant_id, auth["refresh_token"])
        return auth["access_token"]

    async def _refresh_access_token(self, tenant_id: str, refresh_token: str) -> str:
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": settings.SPOTIFY_CLIENT_ID,
        }
        auth = None
        if settings.SPOTIFY_CLIENT_SECRET:
            auth = (settings.SPOTIFY_CLIENT_ID, settings.SPOTIFY_CLIENT_SECRET)
        try:
            resp = await self.http.post(f"{settings.SPOTIFY_ACCOUNTS_URL}/api/token", data=data, auth=auth)
        except httpx.HTTPError as exc:
            raise SpotifyError(f"Token refresh failed: {exc}") from exc

        if resp.status_code >= 400:
            if resp.status_code == 400 and "invalid_grant" in resp.text:
                logger.warning("[%s] Refresh token revoked; clearing stored Spotify tokens", tenant_id)
                await run_in_threadpool(self._clear_tokens, tenant_id)
            raise SpotifyAuthError(f"Failed to refresh access token: {resp.status_code} {resp.text}")

        token = resp.json()
        await run_in_threadpool(
            self._store_tokens,
            tenant_id,
            token["access_token"],
            int(token.get("expires_in", 3600)),
            token.get("refresh_token"),
        )
        logger.info("[%s] Refreshed Spotify access token", tenant_id)
        return token["access_token"]

    # ------------------------------------------------------------------
    # Web API
    # ------------------------------------------------------------------

    async def _request(self, tenant_id: str, method: str, path: str, **kwargs) -> Optional[dict[str, Any]]:
        token = await self.get_access_token(tenant_id)
        headers = {"Authorization": f"Bearer {token}"}
        try:
            resp = await self.http.request(method, f"{settings.SPOTIFY_API_URL}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise SpotifyError(f"{method} {path} failed: {exc}") from exc

        if resp.status_code == 401:
            raise SpotifyAuthError(f"{method} {path} unauthorized")
        if resp.status_code >= 400:
            raise SpotifyError(f"{method} {path} returned {resp.status_code}: {resp.text}")
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise SpotifyError(f"{method} {path} returned invalid JSON") from exc

    async def get_current_playback(self, tenant_id: str) -> Optional[PlaybackSnapshot]:
        data = await self._request(tenant_id, "GET", "/me/player")
        if data is None:
            return None
        try:
            return PlaybackSnapshot.model_validate(data)
        except ValidationError as exc:
            raise SpotifyError(f"Malformed playback payload: {exc}") from exc

    async def get_queue(self, tenant_id: str) -> Optional[QueueResponse]:
        data = await self._request(tenant_id, "GET", "/me/player/queue")
        if data is None:
            return None
        try:
            return QueueResponse.model_validate(data)
        except ValidationError as exc:
            raise SpotifyError(f"Malformed queue payload: {exc}") from exc

    async def search_tracks(self, tenant_id: str, query: str, limit: int = 10) -> list[Track]:
        data = await self._request(
            tenant_id, "GET", "/search",
            params={"q": query, "type": "track", "limit": limit, "market": "US"},
        )
        items = ((data or {}).get("tracks") or {}).get("items") or []
        tracks = []
        for item in items:
            try:
                tracks.append(Track.model_validate(item))
            except ValidationError:
                logger.debug("Skipping malformed search result: %r", item)
        return tracks


spotify_client = SpotifyClient()
