"""
persona_chat.client.session
~~~~~~~~~~~~~~~~~~~~~~~~~~~

客户端聊天会话 —— 一个浏览器标签页（或脚本）与聊天服务之间的单条逻辑连接。

生命周期: 连接 → join → 收发消息 → 断开。

会话自身不保存任何消息，只把服务端事件交给 ``SessionRenderer`` 渲染；
每次（重新）连接都会重新 join 并收到完整历史，渲染器应以此为准整体重绘。

消息内容按原文传递，渲染为 HTML 时必须由渲染器自行转义。
"""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Protocol

from pydantic import ValidationError as PydanticValidationError
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from persona_chat.core.logging import get_logger
from persona_chat.schemas.chat import Message
from persona_chat.schemas.events import (
    HistoryEvent,
    JoinAction,
    MessageEvent,
    NoticeCode,
    NoticeEvent,
    SendAction,
    server_event_adapter,
)

logger = get_logger(__name__)

Connector = Callable[[str], Awaitable[ClientConnection]]

_CONNECT_ERRORS: tuple[type[BaseException], ...] = (
    OSError,
    asyncio.TimeoutError,
    WebSocketException,
)


class SessionStatus(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class SessionRenderer(Protocol):
    """会话事件的渲染方（UI 层实现）。"""

    def on_history(self, messages: list[Message]) -> None: ...

    def on_message(self, message: Message) -> None: ...

    def on_notice(self, code: NoticeCode, text: str) -> None: ...

    def on_status(self, status: SessionStatus) -> None: ...


class SessionUnavailableError(Exception):
    """服务端暂时不可达且重试次数已用尽，或会话尚未连接。"""


class ChatSession:
    """面向单个 Bot 房间的客户端会话。

    区分两种断开:

    - 调用 ``close()`` 主动离开（离开页面）：立即结束，不重试
    - 其他任何原因的断开视为暂时不可达：指数退避后重连并重新 join

    Attributes:
        url: WebSocket 服务地址，例如 ``ws://localhost:8000/ws``。
        bot_id: 要加入的 Bot。
        sender_name: 发送消息时使用的昵称。
    """

    def __init__(
        self,
        url: str,
        bot_id: str,
        renderer: SessionRenderer,
        *,
        sender_name: str | None = None,
        connector: Connector | None = None,
        max_retries: int = 5,
        retry_base_delay: float = 0.5,
        retry_max_delay: float = 10.0,
    ) -> None:
        self.url = url
        self.bot_id = bot_id
        self.sender_name = sender_name
        self._renderer = renderer
        self._connector: Connector = connector or connect
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self._ws: ClientConnection | None = None
        self._closing = False
        self.status: SessionStatus = SessionStatus.CLOSED

    @property
    def connected(self) -> bool:
        return self._ws is not None and self.status is SessionStatus.CONNECTED

    async def run(self) -> None:
        """连接并持续接收事件，直到 ``close()`` 被调用。

        Raises:
            SessionUnavailableError: 连续失败次数超过 ``max_retries``。
        """
        failures = 0
        while not self._closing:
            self._set_status(SessionStatus.RECONNECTING if failures else SessionStatus.CONNECTING)
            try:
                ws = await self._connector(self.url)
            except _CONNECT_ERRORS as e:
                failures += 1
                await self._backoff(failures, e)
                continue

            if self._closing:
                # close() 在握手期间被调用：丢弃刚建立的连接，不再 join
                await ws.close()
                break

            self._ws = ws
            try:
                await ws.send(JoinAction(bot_id=self.bot_id).model_dump_json(by_alias=True))
                self._set_status(SessionStatus.CONNECTED)
                failures = 0
                async for raw in ws:
                    self._dispatch(raw)
                reason: BaseException | None = None
            except ConnectionClosed as e:
                reason = e
            finally:
                self._ws = None

            if self._closing:
                break
            failures += 1
            logger.warning("连接中断，准备重连 | bot=%s | %s", self.bot_id, reason)
            await self._backoff(failures, reason)

        self._set_status(SessionStatus.CLOSED)

    async def send(self, content: str) -> None:
        """向房间发送一条消息。服务端广播回显即为发送成功的确认。

        Raises:
            SessionUnavailableError: 当前未连接。
        """
        ws = self._ws
        if ws is None or self.status is not SessionStatus.CONNECTED:
            raise SessionUnavailableError("session is not connected")
        action = SendAction(bot_id=self.bot_id, content=content, sender_name=self.sender_name)
        await ws.send(action.model_dump_json(by_alias=True))

    async def close(self) -> None:
        """主动离开：关闭连接且不再重连。"""
        self._closing = True
        ws = self._ws
        if ws is not None:
            await ws.close()

    # ── 内部 ──────────────────────────────────────────────────────────

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            event = server_event_adapter.validate_json(raw)
        except PydanticValidationError as e:
            logger.warning("忽略无法解析的服务端事件: %s", e)
            return

        if isinstance(event, HistoryEvent):
            self._renderer.on_history(event.messages)
        elif isinstance(event, MessageEvent):
            self._renderer.on_message(event.message)
        elif isinstance(event, NoticeEvent):
            self._renderer.on_notice(event.code, event.text)

    async def _backoff(self, failures: int, reason: BaseException | None) -> None:
        if failures > self._max_retries:
            self._set_status(SessionStatus.CLOSED)
            raise SessionUnavailableError(
                f"server unreachable after {self._max_retries} retries: {reason}",
            )
        delay = min(self._retry_base_delay * 2 ** (failures - 1), self._retry_max_delay)
        logger.info("第 %d 次重连，%.1fs 后重试", failures, delay)
        await asyncio.sleep(delay)

    def _set_status(self, status: SessionStatus) -> None:
        if status is not self.status:
            self.status = status
            self._renderer.on_status(status)
