"""
tests.test_api
~~~~~~~~~~~~~~

HTTP 与 WebSocket 端点集成测试（FastAPI ``TestClient``）。

lifespan 中创建的 ``ChatService`` 被替换为注入桩回复生成器的实例，
不会产生任何真实的 Gemini 调用。
"""
from __future__ import annotations

from collections.abc import Iterator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from persona_chat.core.config import settings
from persona_chat.llm.persona_responder import ResponderFailure, ResponderFailureKind
from persona_chat.main import app
from persona_chat.services.chat_service import ChatService
from tests.conftest import StubResponder


@pytest.fixture()
def stub_responder() -> StubResponder:
    return StubResponder()


@pytest.fixture()
def client(stub_responder: StubResponder) -> Iterator[TestClient]:
    with patch(
        "persona_chat.main.ChatService",
        side_effect=lambda: ChatService(responder=stub_responder),
    ):
        with TestClient(app) as test_client:
            yield test_client


def create_bot(client: TestClient, **body: str) -> dict:
    response = client.post("/api/bots", json=body)
    assert response.status_code == 200, response.text
    return response.json()["data"]


# ── HTTP 控制接口 ─────────────────────────────────────────────────────

class TestBotEndpoints:
    """测试 Bot 管理 REST 接口。"""

    def test_create_bot(self, client: TestClient) -> None:
        data = create_bot(client, name="Nova", description="a cheerful assistant")

        assert data["botUrl"] == f"/bot/{data['botId']}"
        assert data["bot"]["id"] == data["botId"]
        assert data["bot"]["name"] == "Nova"
        assert data["bot"]["messageCount"] == 0
        assert data["bot"]["imageUrl"] == settings.DEFAULT_AVATAR_URL
        assert "createdAt" in data["bot"]

    def test_create_bot_keeps_valid_image_url(self, client: TestClient) -> None:
        data = create_bot(
            client, name="Nova", description="persona", imageUrl="https://example.com/nova.png",
        )

        assert data["bot"]["imageUrl"] == "https://example.com/nova.png"

    @pytest.mark.parametrize(
        "body",
        [
            {"name": "  ", "description": "persona"},
            {"name": "Nova", "description": ""},
            {"name": "n" * 51, "description": "persona"},
            {"name": "Nova", "description": "d" * 501},
        ],
    )
    def test_create_bot_validation_error(self, client: TestClient, body: dict) -> None:
        response = client.post("/api/bots", json=body)

        assert response.status_code == 422
        assert response.json()["code"] == 422
        assert response.json()["msg"].startswith("invalid_message:")
        assert client.get("/api/bots").json()["data"] == []

    @pytest.mark.parametrize(
        "body",
        [{"description": "persona"}, {"name": "Nova"}, {"name": 42, "description": "persona"}],
    )
    def test_malformed_body_uses_api_response(self, client: TestClient, body: dict) -> None:
        response = client.post("/api/bots", json=body)

        assert response.status_code == 422
        payload = response.json()
        assert payload["code"] == 422
        assert payload["data"] is None
        assert "detail" not in payload

    def test_get_bot(self, client: TestClient) -> None:
        created = create_bot(client, name="Nova", description="persona")

        response = client.get(f"/api/bots/{created['botId']}")

        assert response.status_code == 200
        assert response.json()["data"] == created["bot"]

    def test_get_unknown_bot(self, client: TestClient) -> None:
        response = client.get("/api/bots/bot_missing")

        assert response.status_code == 404
        assert response.json()["code"] == 404
        assert response.json()["msg"].startswith("room_not_found:")

    def test_list_bots_newest_first(self, client: TestClient) -> None:
        first = create_bot(client, name="first", description="persona")
        second = create_bot(client, name="second", description="persona")

        data = client.get("/api/bots").json()["data"]

        assert [bot["id"] for bot in data] == [second["botId"], first["botId"]]

    def test_health(self, client: TestClient) -> None:
        create_bot(client, name="Nova", description="persona")

        body = client.get("/health").json()

        assert body["status"] == "ok"
        assert body["bots"] == 1


# ── WebSocket 实时接口 ────────────────────────────────────────────────

class TestChatWebSocket:
    """测试 /ws 端点的 join / send 协议。"""

    def test_join_send_and_receive_reply(self, client: TestClient) -> None:
        bot_id = create_bot(client, name="Nova", description="a cheerful assistant")["botId"]

        with client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "join", "botId": bot_id})
            assert ws.receive_json() == {"type": "history", "botId": bot_id, "messages": []}

            ws.send_json({"action": "send", "botId": bot_id, "content": " hi ", "senderName": "Ana"})
            user_event = ws.receive_json()
            bot_event = ws.receive_json()

        assert user_event["type"] == "message"
        assert user_event["message"]["type"] == "user"
        assert user_event["message"]["content"] == "hi"
        assert user_event["message"]["sender"] == "Ana"
        assert bot_event["message"]["type"] == "bot"
        assert bot_event["message"]["content"] == "echo: hi"
        assert bot_event["message"]["botId"] == bot_id

        bot = client.get(f"/api/bots/{bot_id}").json()["data"]
        assert bot["messageCount"] == 2

    def test_rejoin_replays_history(self, client: TestClient) -> None:
        bot_id = create_bot(client, name="Nova", description="persona")["botId"]

        with client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "join", "botId": bot_id})
            ws.receive_json()
            ws.send_json({"action": "send", "botId": bot_id, "content": "remember me"})
            ws.receive_json()
            ws.receive_json()

        with client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "join", "botId": bot_id})
            history = ws.receive_json()

        assert [(m["type"], m["content"]) for m in history["messages"]] == [
            ("user", "remember me"),
            ("bot", "echo: remember me"),
        ]

    def test_unknown_room_notice(self, client: TestClient) -> None:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "join", "botId": "bot_missing"})
            notice = ws.receive_json()

        assert notice["type"] == "notice"
        assert notice["code"] == "room_not_found"

    def test_invalid_frame_keeps_connection_open(self, client: TestClient) -> None:
        bot_id = create_bot(client, name="Nova", description="persona")["botId"]

        with client.websocket_connect("/ws") as ws:
            ws.send_text("not json")
            assert ws.receive_json()["code"] == "invalid_action"
            ws.send_json({"action": "dance"})
            assert ws.receive_json()["code"] == "invalid_action"

            ws.send_json({"action": "join", "botId": bot_id})
            assert ws.receive_json()["type"] == "history"

    def test_binary_frame_keeps_connection_open(self, client: TestClient) -> None:
        bot_id = create_bot(client, name="Nova", description="persona")["botId"]

        with client.websocket_connect("/ws") as ws:
            ws.send_bytes(b"\x00binary")
            notice = ws.receive_json()
            assert notice["type"] == "notice"
            assert notice["code"] == "invalid_action"

            ws.send_json({"action": "join", "botId": bot_id})
            assert ws.receive_json()["type"] == "history"

    def test_too_long_message_is_rejected(self, client: TestClient) -> None:
        bot_id = create_bot(client, name="Nova", description="persona")["botId"]

        with client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "join", "botId": bot_id})
            ws.receive_json()
            ws.send_json({"action": "send", "botId": bot_id, "content": "x" * 1001})
            notice = ws.receive_json()

        assert notice["code"] == "invalid_message"
        assert client.get(f"/api/bots/{bot_id}").json()["data"]["messageCount"] == 0

    def test_upstream_failure_sends_fallback(
        self, client: TestClient, stub_responder: StubResponder,
    ) -> None:
        stub_responder.result = ResponderFailure(kind=ResponderFailureKind.UPSTREAM_ERROR)
        bot_id = create_bot(client, name="Nova", description="persona")["botId"]

        with client.websocket_connect("/ws") as ws:
            ws.send_json({"action": "join", "botId": bot_id})
            ws.receive_json()
            ws.send_json({"action": "send", "botId": bot_id, "content": "hello?"})
            ws.receive_json()
            reply = ws.receive_json()

        assert reply["message"]["type"] == "bot"
        assert reply["message"]["content"] == settings.FALLBACK_REPLY
