"""
persona_chat.services.connection
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

单条实时连接及其生命周期状态。

状态机::

    DISCONNECTED → CONNECTED → JOINED(bot_id) → DISCONNECTED（终态）
"""
from __future__ import annotations

from enum import Enum
from typing import Protocol

from persona_chat.core.ids import new_id
from persona_chat.schemas.events import HistoryEvent, MessageEvent, NoticeEvent, encode_event


class Transport(Protocol):
    """连接底层的传输，FastAPI 的 ``WebSocket`` 天然满足该协议。"""

    async def accept(self) -> None: ...

    async def send_text(self, data: str) -> None: ...


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    JOINED = "joined"


class ChatConnection:
    """``ChatRoomBroker`` 管理的一条连接。

    一条连接同一时间最多属于一个房间，不支持切换房间：
    换页面时客户端应新建连接。

    Attributes:
        id: 连接唯一标识（仅用于日志）。
        transport: 底层传输。
        state: 当前生命周期状态。
        bot_id: 已加入的房间，未加入时为 ``None``。
    """

    def __init__(self, transport: Transport) -> None:
        self.id: str = new_id("conn")
        self.transport = transport
        self.state: ConnectionState = ConnectionState.DISCONNECTED
        self.bot_id: str | None = None

    @property
    def is_open(self) -> bool:
        return self.state is not ConnectionState.DISCONNECTED

    def is_joined_to(self, bot_id: str) -> bool:
        return self.state is ConnectionState.JOINED and self.bot_id == bot_id

    async def deliver(self, event: HistoryEvent | MessageEvent | NoticeEvent) -> None:
        """向本连接发送一个服务端事件。"""
        await self.transport.send_text(encode_event(event))

    def __repr__(self) -> str:
        return f"ChatConnection(id={self.id!r}, state={self.state.value}, bot_id={self.bot_id!r})"
