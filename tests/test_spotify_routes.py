"""Tests for storing, inspecting and resetting a host's Spotify connection."""
from tests.conftest import create_test_user


def _store_tokens(client, user_id: str):
    return client.put(f"/api/spotify/{user_id}/tokens", json={
        "access_token": "access",
        "refresh_token": "refresh",
        "expires_in": 3600,
        "scope": "user-read-playback-state",
    })


class TestSpotifyConnection:

    def test_store_tokens(self, client):
        user = create_test_user(client)
        resp = _store_tokens(client, user["user_id"])
        assert resp.status_code == 200
        data = resp.json()
        assert data["connected"] is True
        assert data["scope"] == "user-read-playback-state"
        assert data["expires_at"] is not None

    def test_store_tokens_unknown_user(self, client):
        assert _store_tokens(client, "ghost").status_code == 404

    def test_status(self, client):
        user = create_test_user(client)
        assert client.get(f"/api/spotify/{user['user_id']}/status").json()["connected"] is False
        _store_tokens(client, user["user_id"])
        assert client.get(f"/api/spotify/{user['user_id']}/status").json()["connected"] is True

    def test_reset(self, client):
        user = create_test_user(client)
        _store_tokens(client, user["user_id"])
        resp = client.delete(f"/api/spotify/{user['user_id']}")
        assert resp.status_code == 200
        assert resp.json()["connected"] is False
        assert client.get(f"/api/spotify/{user['user_id']}/status").json()["connected"] is False
