"""
persona_chat.core.errors
~~~~~~~~~~~~~~~~~~~~~~~~

聊天核心的业务异常。

HTTP 层把它们转换为 ``ApiResponse.from_error()``，WebSocket 层把它们转换为
单播的 ``notice`` 事件。两者都不会中断进程或关闭连接。
"""
from __future__ import annotations

from persona_chat.schemas.events import NoticeCode


class ChatError(Exception):
    """聊天核心异常基类。

    Attributes:
        code: 对应的 notice 代码，WebSocket 层直接转发给客户端。
        message: 人类可读的错误描述。
    """

    code: NoticeCode = "invalid_action"

    def __init__(self, message: str, code: NoticeCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(ChatError):
    """Bot 或消息输入不合法，只回报给请求方。"""

    code: NoticeCode = "invalid_message"


class NotFoundError(ChatError):
    """引用了不存在的 Bot。"""

    code: NoticeCode = "room_not_found"
