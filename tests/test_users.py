"""Tests for host (user) creation and lookup."""
from tests.conftest import create_test_user


class TestUsers:

    def test_create_user(self, client):
        user = create_test_user(client, username="dj_nova", display_name="DJ Nova")
        assert user["username"] == "dj_nova"
        assert user["display_name"] == "DJ Nova"
        assert user["user_id"]

    def test_duplicate_username(self, client):
        create_test_user(client, username="dj_nova")
        resp = client.post("/api/users/", json={"username": "dj_nova"})
        assert resp.status_code == 409

    def test_invalid_username(self, client):
        resp = client.post("/api/users/", json={"username": "no spaces allowed"})
        assert resp.status_code == 422

    def test_get_and_lookup(self, client):
        user = create_test_user(client, username="dj_nova")
        assert client.get(f"/api/users/{user['user_id']}").json()["username"] == "dj_nova"
        assert client.get("/api/users/lookup/dj_nova").json()["user_id"] == user["user_id"]

    def test_unknown_user(self, client):
        assert client.get("/api/users/does-not-exist").status_code == 404
        assert client.get("/api/users/lookup/nobody").status_code == 404
