"""Event lifecycle state machine — offline / standby / live.

Pure functions only: no I/O and no persistence. Every status-changing write in
``event_service`` is checked here first.
"""
from dataclasses import dataclass, field
from typing import Any, Optional

from party_playlist.models.event import EventStatus

NO_CHANGES = "No changes detected"
LIVE_REQUIRES_PAGE = "Live status requires at least one page to be enabled"

PARTY_NOT_STARTED = "party-not-started"
DISABLED = "disabled"
ENABLED = "enabled"


@dataclass(frozen=True)
class PagesEnabled:
    requests: bool = False
    display: bool = False

    @classmethod
    def from_config(cls, config: Optional[dict[str, Any]]) -> "PagesEnabled":
        pages = (config or {}).get("pages_enabled") or {}
        return cls(requests=bool(pages.get("requests", False)), display=bool(pages.get("display", False)))

    def any(self) -> bool:
        return self.requests or self.display

    def as_dict(self) -> dict[str, bool]:
        return {"requests": self.requests, "display": self.display}


@dataclass(frozen=True)
class EventState:
    """Current lifecycle state of one event."""

    status: EventStatus
    config: dict[str, Any] = field(default_factory=dict)

    @property
    def pages_enabled(self) -> PagesEnabled:
        return PagesEnabled.from_config(self.config)


@dataclass(frozen=True)
class TransitionResult:
    valid: bool
    reason: Optional[str] = None


def can_transition(from_status: EventStatus, to_status: EventStatus) -> bool:
    """Every status is reachable from every other; self-transitions are not."""
    return EventStatus(from_status) != EventStatus(to_status)


def validate_state_transition(
    current: EventState,
    new_status: EventStatus,
    new_config: dict[str, Any],
) -> TransitionResult:
    """Check a proposed (status, config) pair against the current state.

    ``new_config`` carries ``pages_enabled``; the resulting pages are taken from it.
    """
    new_status = EventStatus(new_status)
    new_pages = PagesEnabled.from_config(new_config)

    unchanged = (
        not can_transition(current.status, new_status)
        and new_pages == current.pages_enabled
        and (new_config or {}) == (current.config or {})
    )
    if unchanged:
        return TransitionResult(valid=False, reason=NO_CHANGES)

    if new_status == EventStatus.live and not new_pages.any():
        return TransitionResult(valid=False, reason=LIVE_REQUIRES_PAGE)

    return TransitionResult(valid=True)


def get_page_state(status: EventStatus, pages_enabled: PagesEnabled) -> dict[str, str]:
    """Derive what the guest request page and the display screen should show."""
    status = EventStatus(status)
    if status == EventStatus.offline:
        return {"requests": PARTY_NOT_STARTED, "display": PARTY_NOT_STARTED}
    if status == EventStatus.standby:
        return {"requests": DISABLED, "display": DISABLED}
    return {
        "requests": ENABLED if pages_enabled.requests else DISABLED,
        "display": ENABLED if pages_enabled.display else DISABLED,
    }
