"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 用假传输和桩回复生成器替代 WebSocket 与 Gemini，
使单元测试可在无网络环境下快速运行。
"""
from __future__ import annotations

import asyncio
import json
import os
from typing import Any

import pytest

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("GEMINI_API_KEY", "test-fake-key")
os.environ.setdefault("ENVIRONMENT", "test")

from persona_chat.llm.persona_responder import GeneratedText, ResponderResult  # noqa: E402
from persona_chat.services.chat_service import ChatService  # noqa: E402


class FakeTransport:
    """记录所有下发帧的假 WebSocket。"""

    def __init__(self, fail_on_send: bool = False) -> None:
        self.accepted = False
        self.fail_on_send = fail_on_send
        self.sent: list[str] = []

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, data: str) -> None:
        if self.fail_on_send:
            raise RuntimeError("socket is closed")
        self.sent.append(data)

    @property
    def events(self) -> list[dict[str, Any]]:
        return [json.loads(frame) for frame in self.sent]

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [event for event in self.events if event["type"] == event_type]

    @property
    def messages(self) -> list[dict[str, Any]]:
        """按收到顺序返回所有广播消息体。"""
        return [event["message"] for event in self.of_type("message")]


class StubResponder:
    """可控的回复生成器。

    ``result`` 为固定返回值；``gates`` 可以按用户消息挂起调用，直到测试放行。
    """

    def __init__(
        self,
        result: ResponderResult | None = None,
        error: Exception | None = None,
    ) -> None:
        self.result = result
        self.error = error
        self.calls: list[tuple[str, str]] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.in_flight = 0
        self.max_in_flight = 0

    def hold(self, user_message: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[user_message] = gate
        return gate

    async def respond(self, persona: str, user_message: str) -> ResponderResult:
        self.calls.append((persona, user_message))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            gate = self.gates.get(user_message)
            if gate is not None:
                await gate.wait()
            if self.error is not None:
                raise self.error
            return self.result or GeneratedText(text=f"echo: {user_message}")
        finally:
            self.in_flight -= 1


async def wait_until(predicate: Any, attempts: int = 200) -> None:
    """让出事件循环，直到条件满足。"""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not met")


@pytest.fixture()
def responder() -> StubResponder:
    return StubResponder()


@pytest.fixture()
def service(responder: StubResponder) -> ChatService:
    """使用桩回复生成器的独立服务实例。"""
    return ChatService(responder=responder)
