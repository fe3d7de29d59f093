"""Tests for the event lifecycle state machine (pure functions, no database).

Covers:
- Self-transitions and unchanged writes are rejected
- Live requires at least one page
- Page state derivation for offline / standby / live
"""
from party_playlist.models.event import EventStatus
from party_playlist.services.state_machine import (
    DISABLED,
    ENABLED,
    LIVE_REQUIRES_PAGE,
    NO_CHANGES,
    PARTY_NOT_STARTED,
    EventState,
    PagesEnabled,
    can_transition,
    get_page_state,
    validate_state_transition,
)


def _config(requests: bool = False, display: bool = False, **extra) -> dict:
    return {"pages_enabled": {"requests": requests, "display": display}, **extra}


class TestCanTransition:

    def test_every_distinct_pair_is_allowed(self):
        for a in EventStatus:
            for b in EventStatus:
                assert can_transition(a, b) == (a != b)


class TestValidateStateTransition:

    def test_unchanged_write_is_rejected(self):
        """Same status, same pages, same config → no changes."""
        for status in EventStatus:
            current = EventState(status, _config(requests=True))
            result = validate_state_transition(current, status, _config(requests=True))
            assert not result.valid
            assert result.reason == NO_CHANGES

    def test_live_without_pages_is_rejected(self):
        current = EventState(EventStatus.standby, _config())
        result = validate_state_transition(current, EventStatus.live, _config())
        assert not result.valid
        assert result.reason == LIVE_REQUIRES_PAGE

    def test_live_with_one_page_is_accepted(self):
        current = EventState(EventStatus.offline, _config())
        assert validate_state_transition(current, EventStatus.live, _config(display=True)).valid
        assert validate_state_transition(current, EventStatus.live, _config(requests=True)).valid

    def test_page_toggle_without_status_change_is_accepted(self):
        current = EventState(EventStatus.live, _config(requests=True))
        result = validate_state_transition(current, EventStatus.live, _config(requests=True, display=True))
        assert result.valid

    def test_disabling_last_page_while_live_is_rejected(self):
        current = EventState(EventStatus.live, _config(requests=True))
        result = validate_state_transition(current, EventStatus.live, _config())
        assert result.reason == LIVE_REQUIRES_PAGE

    def test_config_only_change_is_accepted(self):
        current = EventState(EventStatus.standby, _config(dj_name=""))
        result = validate_state_transition(current, EventStatus.standby, _config(dj_name="DJ Nova"))
        assert result.valid

    def test_standby_and_offline_do_not_need_pages(self):
        current = EventState(EventStatus.live, _config(requests=True))
        assert validate_state_transition(current, EventStatus.standby, _config()).valid
        assert validate_state_transition(current, EventStatus.offline, _config()).valid


class TestGetPageState:

    def test_offline_is_party_not_started_regardless_of_pages(self):
        for pages in (PagesEnabled(), PagesEnabled(True, True)):
            assert get_page_state(EventStatus.offline, pages) == {
                "requests": PARTY_NOT_STARTED,
                "display": PARTY_NOT_STARTED,
            }

    def test_standby_disables_everything(self):
        assert get_page_state(EventStatus.standby, PagesEnabled(True, True)) == {
            "requests": DISABLED,
            "display": DISABLED,
        }

    def test_live_follows_page_toggles(self):
        assert get_page_state(EventStatus.live, PagesEnabled(requests=True)) == {
            "requests": ENABLED,
            "display": DISABLED,
        }
        assert get_page_state(EventStatus.live, PagesEnabled(display=True)) == {
            "requests": DISABLED,
            "display": ENABLED,
        }

    def test_pages_enabled_tolerates_missing_config(self):
        assert PagesEnabled.from_config(None) == PagesEnabled()
        assert PagesEnabled.from_config({"pages_enabled": {"requests": 1}}) == PagesEnabled(requests=True)
