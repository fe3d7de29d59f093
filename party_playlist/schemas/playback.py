"""Pydantic models for Spotify playback and queue payloads.

Optional nested fields are explicit (``item``, ``device``) so that "no playback",
"no device" and "malformed payload" are distinct states instead of ad hoc
dictionary lookups. Unknown keys from the Web API are ignored.
"""
from __future__ import annotations
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class _SpotifyModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class Image(_SpotifyModel):
    url: str
    width: Optional[int] = None
    height: Optional[int] = None


class Artist(_SpotifyModel):
    id: Optional[str] = None
    name: str = ""


class Album(_SpotifyModel):
    id: Optional[str] = None
    name: str = ""
    images: list[Image] = Field(default_factory=list)


class Track(_SpotifyModel):
    id: Optional[str] = None
    name: str = ""
    uri: str
    duration_ms: Optional[int] = None
    artists: list[Artist] = Field(default_factory=list)
    album: Optional[Album] = None

    @property
    def artist_names(self) -> list[str]:
        return [a.name for a in self.artists]


class Device(_SpotifyModel):
    id: Optional[str] = None
    name: str = ""
    type: str = ""
    volume_percent: Optional[int] = None


class PlaybackSnapshot(_SpotifyModel):
    """Raw ``GET /me/player`` response, including the volatile progress field."""

    is_playing: bool = False
    progress_ms: Optional[int] = None
    device: Optional[Device] = None
    item: Optional[Track] = None


class NormalizedPlayback(_SpotifyModel):
    """Playback state with volatile fields stripped, used only for comparison."""

    is_playing: bool
    device: Optional[Device] = None
    item: Optional[Track] = None


class QueueResponse(_SpotifyModel):
    """``GET /me/player/queue`` response. Queue items are kept as raw dicts."""

    currently_playing: Optional[dict] = None
    queue: list[dict] = Field(default_factory=list)
