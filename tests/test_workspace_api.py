import pytest

from fieldhub.config import settings

from conftest import auth


class TestCalendar:
    def test_any_role_creates_and_lists(self, client, seed):
        resp = client.post(
            "/api/calendar-events",
            json={"title": "Họp giao ban", "start_time": "2026-03-02T08:00:00", "end_time": "2026-03-02T09:00:00"},
            headers=auth("tech_a1"),
        )
        assert resp.status_code == 201, resp.text
        assert resp.json()["created_by_user_id"] == "tech_a1"
        data = client.get("/api/calendar-events", headers=auth("sales")).json()["data"]
        assert [e["title"] for e in data] == ["Họp giao ban"]

    def test_end_before_start(self, client, seed):
        resp = client.post(
            "/api/calendar-events",
            json={"title": "X", "start_time": "2026-03-02T09:00:00", "end_time": "2026-03-02T08:00:00"},
            headers=auth("admin"),
        )
        assert resp.status_code == 400

    def test_unassigned_user_is_denied(self, client, seed):
        assert client.get("/api/calendar-events", headers=auth("newcomer")).status_code == 403


class TestChat:
    def _session(self, client, actor="sales"):
        resp = client.post("/api/chat/sessions", json={"summary": "Báo giá"}, headers=auth(actor))
        assert resp.status_code == 201
        return resp.json()["id"]

    def _post(self, client, session_id, content="Xin chào", actor="sales"):
        return client.post(
            "/api/chat/messages", json={"session_id": session_id, "content": content}, headers=auth(actor)
        )

    def test_sessions_are_private(self, client, seed):
        session_id = self._session(client)
        assert client.get("/api/chat/sessions", headers=auth("admin")).json()["data"] == []
        resp = client.get("/api/chat/messages", params={"session_id": session_id}, headers=auth("admin"))
        assert resp.status_code == 404

    def test_messages_kept_without_dedupe(self, client, seed):
        session_id = self._session(client)
        first = self._post(client, session_id).json()
        second = self._post(client, session_id).json()
        assert first["id"] != second["id"]
        data = client.get("/api/chat/messages", params={"session_id": session_id}, headers=auth("sales")).json()["data"]
        assert len(data) == 2

    def test_duplicate_suppressed_inside_window(self, client, seed, monkeypatch):
        monkeypatch.setattr(settings, "chat_dedupe_window_seconds", 60)
        session_id = self._session(client)
        first = self._post(client, session_id).json()
        second = self._post(client, session_id).json()
        assert first["id"] == second["id"]
        third = self._post(client, session_id, content="Cho tôi báo giá").json()
        assert third["id"] != first["id"]


class TestHealth:
    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert "X-Request-ID" in resp.headers
