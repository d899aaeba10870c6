"""
Tests for the HTTP surface (FastAPI TestClient, in-memory database, fake model)
"""

import pytest
from fastapi.testclient import TestClient

from src.agents.orchestrator import no_delay
from src.api.app import create_app
from src.api.dependencies import AppServices
from src.api.routes.chat import message_limit_notice
from src.config.settings import settings
from tests.fakes import FakeGateway, FakeRefresher, make_registry

HEADERS = {"X-User-Id": "user-1", "X-User-Email": "ada@example.com", "X-User-Name": "Ada"}
OTHER_USER = {"X-User-Id": "user-2", "X-User-Email": "bob@example.com"}


@pytest.fixture
def gateway():
    return FakeGateway(chunks=["Hi ", "Ada!"])


@pytest.fixture
def client(gateway):
    async def services_factory():
        return await AppServices.create(
            ":memory:",
            gateway_factory=lambda model, api_key: gateway,
            delay=no_delay,
            refresher=FakeRefresher(),
            registry=make_registry(),
        )

    with TestClient(create_app(services_factory)) as test_client:
        yield test_client


def chat_body(content="hello", thread_id="t-1", history=None):
    messages = list(history or []) + [{"role": "user", "content": content}]
    return {"messages": messages, "threadId": thread_id, "model": "gemini-2.5-flash"}


class TestServiceEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root_lists_endpoints(self, client):
        assert client.get("/").json()["endpoints"]["chat"] == "/api/chat"

    def test_models(self, client):
        body = client.get("/api/models").json()
        assert body["defaultModel"] == settings.default_model
        assert any(model["id"] == "gpt-4o" for model in body["models"])


class TestChatEndpoint:

    def test_streams_plain_text(self, client):
        response = client.post("/api/chat", json=chat_body(), headers=HEADERS)

        assert response.status_code == 200
        assert response.text == "Hi Ada!"
        assert response.headers["content-type"].startswith("text/plain")
        assert response.headers["cache-control"] == "no-cache"

    def test_history_is_persisted(self, client):
        client.post("/api/chat", json=chat_body("hello"), headers=HEADERS)

        body = client.get("/api/chat/t-1", headers=HEADERS).json()

        assert body["success"] is True
        assert [(m["role"], m["content"]) for m in body["messages"]] == [
            ("user", "hello"),
            ("assistant", "Hi Ada!"),
        ]

    def test_missing_identity_is_401(self, client):
        assert client.post("/api/chat", json=chat_body()).status_code == 401

    def test_malformed_body_is_400(self, client):
        response = client.post("/api/chat", json={"threadId": "t-1"}, headers=HEADERS)
        assert response.status_code == 400

    def test_unsupported_role_is_400(self, client):
        body = {"messages": [{"role": "tool", "content": "x"}], "threadId": "t-1"}
        assert client.post("/api/chat", json=body, headers=HEADERS).status_code == 400

    def test_last_message_must_be_from_user(self, client):
        body = {
            "messages": [
                {"role": "user", "content": "hello"},
                {"role": "assistant", "content": "Hi Ada!"},
            ],
            "threadId": "t-1",
        }

        assert client.post("/api/chat", json=body, headers=HEADERS).status_code == 400
        assert client.get("/api/chat/t-1", headers=HEADERS).status_code == 404

    def test_foreign_thread_is_404(self, client):
        client.post("/api/chat", json=chat_body(), headers=HEADERS)

        response = client.post("/api/chat", json=chat_body(), headers=OTHER_USER)

        assert response.status_code == 404

    def test_deleted_thread_is_404(self, client):
        client.post("/api/chat", json=chat_body(), headers=HEADERS)
        assert client.delete("/api/conversations/t-1", headers=HEADERS).status_code == 200

        assert client.post("/api/chat", json=chat_body("again"), headers=HEADERS).status_code == 404
        assert client.get("/api/chat/t-1", headers=HEADERS).status_code == 404

    def test_message_limit_returns_notice(self, client, gateway, monkeypatch):
        monkeypatch.setattr(settings, "max_user_messages_per_chat", 1)
        client.post("/api/chat", json=chat_body("first"), headers=HEADERS)

        response = client.post("/api/chat", json=chat_body("second"), headers=HEADERS)

        assert response.text == message_limit_notice(1)
        assert gateway.classify_calls == 1
        messages = client.get("/api/chat/t-1", headers=HEADERS).json()["messages"]
        assert messages[-1]["content"] == message_limit_notice(1)


class TestConversationEndpoints:

    def test_list_and_search(self, client):
        client.post("/api/chat", json=chat_body("Plan the offsite", thread_id="t-1"), headers=HEADERS)
        client.post("/api/chat", json=chat_body("Quarterly numbers", thread_id="t-2"), headers=HEADERS)

        titles = [c["title"] for c in client.get("/api/conversations", headers=HEADERS).json()]
        assert sorted(titles) == ["Plan the offsite", "Quarterly numbers"]

        found = client.get("/api/conversations", params={"search": "offsite"}, headers=HEADERS).json()
        assert [c["id"] for c in found] == ["t-1"]

    def test_delete_unknown_is_404(self, client):
        assert client.delete("/api/conversations/nope", headers=HEADERS).status_code == 404


class TestAppsEndpoints:

    def test_connect_and_disconnect(self, client):
        apps = {a["id"]: a for a in client.get("/api/apps", headers=HEADERS).json()["apps"]}
        assert apps["gmail"]["isConnected"] is False

        response = client.post(
            "/api/apps/gmail/connect",
            json={"accessToken": "tok", "refreshToken": "ref", "expiresIn": 3600},
            headers=HEADERS,
        )
        assert response.status_code == 200
        apps = {a["id"]: a for a in client.get("/api/apps", headers=HEADERS).json()["apps"]}
        assert apps["gmail"]["isConnected"] is True

        assert client.post("/api/apps/gmail/disconnect", headers=HEADERS).json()["success"] is True
        apps = {a["id"]: a for a in client.get("/api/apps", headers=HEADERS).json()["apps"]}
        assert apps["gmail"]["isConnected"] is False

    def test_unknown_app_is_404(self, client):
        assert client.post("/api/apps/dropbox/disconnect", headers=HEADERS).status_code == 404
