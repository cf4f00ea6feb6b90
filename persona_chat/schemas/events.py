"""
persona_chat.schemas.events
~~~~~~~~~~~~~~~~~~~~~~~~~~~

WebSocket 实时协议 —— 客户端动作与服务端事件的封闭标签联合。

客户端 → 服务端（判别字段 ``action``）:
  - ``{"action": "join", "botId": ...}``
  - ``{"action": "send", "botId": ..., "content": ..., "senderName": ...}``

服务端 → 客户端（判别字段 ``type``）:
  - ``history`` —— 加入房间后单播的完整历史
  - ``message`` —— 房间内广播的一条新消息
  - ``notice``  —— 单播给请求方的提示（房间不存在、校验失败等）
"""
from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import Field, TypeAdapter

from persona_chat.schemas.chat import CamelModel, Message

NoticeCode = Literal[
    "room_not_found",
    "already_joined",
    "not_joined",
    "invalid_message",
    "invalid_action",
]


# ── 客户端动作 ────────────────────────────────────────────────────────

class JoinAction(CamelModel):
    """加入某个 Bot 的房间。"""

    action: Literal["join"] = "join"
    bot_id: str = Field(..., description="目标 Bot")


class SendAction(CamelModel):
    """向已加入的房间发送一条消息。"""

    action: Literal["send"] = "send"
    bot_id: str = Field(..., description="目标 Bot，必须与已加入的房间一致")
    content: str = Field(..., description="消息文本")
    sender_name: str | None = Field(default=None, description="发送者昵称")


ClientAction = Annotated[Union[JoinAction, SendAction], Field(discriminator="action")]


# ── 服务端事件 ────────────────────────────────────────────────────────

class HistoryEvent(CamelModel):
    """加入房间后的历史回放。"""

    type: Literal["history"] = "history"
    bot_id: str
    messages: list[Message]


class MessageEvent(CamelModel):
    """房间广播的一条消息。"""

    type: Literal["message"] = "message"
    message: Message


class NoticeEvent(CamelModel):
    """单播提示。"""

    type: Literal["notice"] = "notice"
    code: NoticeCode
    text: str


ServerEvent = Annotated[
    Union[HistoryEvent, MessageEvent, NoticeEvent], Field(discriminator="type"),
]

client_action_adapter: TypeAdapter[ClientAction] = TypeAdapter(ClientAction)
server_event_adapter: TypeAdapter[ServerEvent] = TypeAdapter(ServerEvent)


def encode_event(event: HistoryEvent | MessageEvent | NoticeEvent) -> str:
    """把服务端事件序列化为 WebSocket 文本帧。"""
    return event.model_dump_json(by_alias=True)
