"""Tests for guest-facing page state and the display feed."""
from tests.conftest import create_test_event, create_test_user, open_party, update_state


class TestPageState:

    def test_no_party(self, client):
        create_test_user(client, username="dj_quiet")
        resp = client.get("/api/public/dj_quiet/pages")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "offline"
        assert data["pages"] == {"requests": "party-not-started", "display": "party-not-started"}

    def test_standby(self, client):
        user = create_test_user(client)
        event = create_test_event(client, user["user_id"])
        update_state(client, event, status="standby", pages_enabled={"requests": True})
        data = client.get(f"/api/public/{user['username']}/pages").json()
        assert data["pages"] == {"requests": "disabled", "display": "disabled"}

    def test_live_reflects_toggles_and_hides_pin(self, client):
        user, _ = open_party(client, requests=True, display=False, config={"dj_name": "DJ Nova"})
        data = client.get(f"/api/public/{user['username']}/pages").json()
        assert data["status"] == "live"
        assert data["pages"] == {"requests": "enabled", "display": "disabled"}
        assert data["config"]["dj_name"] == "DJ Nova"
        assert "pin" not in data["config"]
        assert "request_limit" not in data["config"]

    def test_unknown_host(self, client):
        assert client.get("/api/public/nobody/pages").status_code == 404


class TestDisplay:

    def test_display_lists_approved_in_play_order(self, client):
        user, event = open_party(client, config={"auto_approve": True})
        for uri, nickname in (("spotify:track:A", "Al"), ("spotify:track:B", "Bo")):
            resp = client.post(f"/api/public/{user['username']}/requests", json={
                "pin": event["pin"],
                "track_uri": uri,
                "track_name": "Track " + uri[-1],
                "artist_name": "Some Artist",
                "requester_nickname": nickname,
            })
            assert resp.status_code == 201

        data = client.get(f"/api/public/{user['username']}/display").json()
        assert data["page_state"] == "enabled"
        assert [item["requester_nickname"] for item in data["queue"]] == ["Al", "Bo"]
        assert "track_uri" not in data["queue"][0]

    def test_display_disabled(self, client):
        user, _ = open_party(client, requests=True, display=False)
        data = client.get(f"/api/public/{user['username']}/display").json()
        assert data["page_state"] == "disabled"
        assert data["queue"] == []
