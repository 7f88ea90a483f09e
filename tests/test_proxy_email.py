import pytest
import requests
from fastapi.testclient import TestClient

import utils
from container import Container
from doubles import FakeResponse
from main import create_app


@pytest.fixture
def client():
    with TestClient(create_app(Container())) as c:
        yield c


class TestProxy:
    def test_chat_forwarded(self, client, monkeypatch):
        seen = {}

        def fake_post(url, json=None, headers=None, timeout=None):
            seen.update(url=url, json=json)
            return FakeResponse(200, {"reply": "hello"})

        monkeypatch.setattr(utils.requests, "post", fake_post)
        resp = client.post("/api/proxy-ai", json={"messages": [{"role": "user", "content": "hi"}]})

        assert resp.status_code == 200
        assert resp.json() == {"reply": "hello"}
        assert seen["url"].endswith("/chat")
        assert seen["json"]["messages"][0]["content"] == "hi"

    def test_image_forwarded(self, client, monkeypatch):
        seen = {}

        def fake_post(url, **kwargs):
            seen["url"] = url
            return FakeResponse(200, {"url": "https://img"})

        monkeypatch.setattr(utils.requests, "post", fake_post)
        resp = client.post("/api/proxy-image", json={"prompt": "a kettlebell"})

        assert resp.json() == {"url": "https://img"}
        assert seen["url"].endswith("/generate")

    def test_invalid_json(self, client):
        resp = client.post(
            "/api/proxy-ai", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid JSON in request body"

    @pytest.mark.parametrize("raw", [b"", b"null", b"false", b'""'])
    def test_body_required(self, client, monkeypatch, raw):
        calls = []
        monkeypatch.setattr(utils.requests, "post", lambda *a, **kw: calls.append(a) or FakeResponse(200, {}))

        resp = client.post("/api/proxy-ai", content=raw, headers={"Content-Type": "application/json"})

        assert resp.status_code == 400
        assert resp.json()["error"] == "Request body is required"
        assert calls == []

    @pytest.mark.parametrize("raw,expected", [(b"{}", {}), (b"[1, 2]", [1, 2])])
    def test_empty_object_and_arrays_are_forwarded(self, client, monkeypatch, raw, expected):
        seen = {}

        def fake_post(url, json=None, **kwargs):
            seen.update(url=url, json=json)
            return FakeResponse(200, {"reply": "ok"})

        monkeypatch.setattr(utils.requests, "post", fake_post)
        resp = client.post("/api/proxy-image", content=raw, headers={"Content-Type": "application/json"})

        assert resp.status_code == 200
        assert resp.json() == {"reply": "ok"}
        assert seen["url"].endswith("/generate")
        assert seen["json"] == expected

    def test_upstream_status_is_passed_through(self, client, monkeypatch):
        monkeypatch.setattr(
            utils.requests, "post", lambda *a, **kw: FakeResponse(429, {"error": "rate limited"})
        )
        resp = client.post("/api/proxy-ai", json={"messages": []})

        assert resp.status_code == 429
        assert resp.json() == {"error": "rate limited", "status": 429}

    def test_network_failure_is_500(self, client, monkeypatch):
        def boom(*a, **kw):
            raise requests.ConnectionError("refused")

        monkeypatch.setattr(utils.requests, "post", boom)
        resp = client.post("/api/proxy-image", json={"prompt": "x"})

        assert resp.status_code == 500
        assert resp.json()["error"] == "Internal server error"


class TestBoosterEmail:
    def test_sends_with_defaults(self, client, monkeypatch):
        seen = {}

        def fake_get(url, params=None, headers=None, timeout=None):
            seen.update(url=url, params=params)
            return FakeResponse(200, {"messageId": "m-1"})

        monkeypatch.setattr(utils.requests, "get", fake_get)
        resp = client.post(
            "/api/send-booster-email",
            json={"coachEmail": "coach@example.com", "userName": "Dana"},
        )

        assert resp.status_code == 200
        assert resp.json() == {"success": True, "messageId": "m-1", "email": "coach@example.com"}
        assert seen["url"] == utils.ROAMJET_API_URL
        assert seen["params"]["email"] == "coach@example.com"
        assert seen["params"]["title"] == utils.BOOSTER_DEFAULT_TITLE
        assert "Dana" in seen["params"]["text"]

    def test_custom_title_and_message(self, client, monkeypatch):
        seen = {}

        def fake_get(url, params=None, **kwargs):
            seen.update(params)
            return FakeResponse(200, {})

        monkeypatch.setattr(utils.requests, "get", fake_get)
        resp = client.post(
            "/api/send-booster-email",
            json={"coachEmail": "coach@example.com", "title": "Join", "message": "Please add me"},
        )

        assert resp.json()["messageId"] == "sent"
        assert (seen["title"], seen["text"]) == ("Join", "Please add me")

    def test_coach_email_required(self, client):
        resp = client.post("/api/send-booster-email", json={"userName": "Dana"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "Coach email is required"}

    def test_relay_failure_is_500(self, client, monkeypatch):
        monkeypatch.setattr(
            utils.requests, "get", lambda *a, **kw: FakeResponse(502, {"error": "smtp down"})
        )
        resp = client.post("/api/send-booster-email", json={"coachEmail": "coach@example.com"})

        assert resp.status_code == 500
        assert resp.json() == {"success": False, "error": "smtp down"}
