"""Playback change detection.

Progress moves every second during playback, so it is stripped before comparing;
otherwise every poll would look like a change and fan-out could never be
suppressed. Two checks run side by side:

* a structural comparison of the normalized snapshots, and
* discrete checks on the fields that matter most (play/pause, track, device,
  playback appearing or disappearing).

Either one is enough to report a change.
"""
import logging
from typing import Any, Optional

from party_playlist.schemas.playback import (
    Album,
    Artist,
    Device,
    NormalizedPlayback,
    PlaybackSnapshot,
    Track,
)

logger = logging.getLogger(__name__)


def normalize(playback: Optional[PlaybackSnapshot]) -> Optional[NormalizedPlayback]:
    """Keep only the stability-relevant fields of a playback snapshot."""
    if playback is None:
        return None

    device = None
    if playback.device is not None:
        device = Device(
            id=playback.device.id,
            name=playback.device.name,
            type=playback.device.type,
            volume_percent=playback.device.volume_percent,
        )

    item = None
    if playback.item is not None:
        track = playback.item
        album = None
        if track.album is not None:
            album = Album(id=track.album.id, name=track.album.name, images=list(track.album.images))
        item = Track(
            id=track.id,
            name=track.name,
            uri=track.uri,
            duration_ms=track.duration_ms,
            artists=[Artist(id=a.id, name=a.name) for a in track.artists],
            album=album,
        )

    return NormalizedPlayback(is_playing=playback.is_playing, device=device, item=item)


def _track_id(playback: Optional[PlaybackSnapshot]) -> Optional[str]:
    if playback is None or playback.item is None:
        return None
    return playback.item.id


def _device_id(playback: Optional[PlaybackSnapshot]) -> Optional[str]:
    if playback is None or playback.device is None:
        return None
    return playback.device.id


def _is_playing(playback: Optional[PlaybackSnapshot]) -> Optional[bool]:
    return None if playback is None else playback.is_playing


def critical_changes(
    current: Optional[PlaybackSnapshot],
    previous: Optional[PlaybackSnapshot],
) -> dict[str, bool]:
    """The discrete change flags, keyed by name (useful for logging)."""
    return {
        "is_playing_changed": _is_playing(previous) != _is_playing(current),
        "track_changed": track_changed(current, previous),
        "device_changed": _device_id(previous) != _device_id(current),
        "has_new_playback": previous is None and current is not None,
        "lost_playback": previous is not None and current is None,
    }


def track_changed(
    current: Optional[PlaybackSnapshot],
    previous: Optional[PlaybackSnapshot],
) -> bool:
    return _track_id(previous) != _track_id(current)


def has_meaningful_change(
    current: Optional[PlaybackSnapshot],
    previous: Optional[PlaybackSnapshot],
) -> bool:
    structural = normalize(current) != normalize(previous)
    critical = [name for name, hit in critical_changes(current, previous).items() if hit]
    if critical:
        logger.debug("Critical playback changes: %s", ", ".join(critical))
    return structural or bool(critical)


def queue_changed(current: Optional[list[dict[str, Any]]], previous: Optional[list[dict[str, Any]]]) -> bool:
    """Literal comparison of the raw queue lists; ordering matters."""
    return current != previous
