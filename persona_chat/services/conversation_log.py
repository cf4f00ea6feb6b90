"""
persona_chat.services.conversation_log
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

按 Bot 分区的只追加消息日志（纯内存，进程重启即丢失）。

日志顺序即追加顺序；时间戳在同一 Bot 的日志内单调不减。
"""
from __future__ import annotations

from persona_chat.core.logging import get_logger
from persona_chat.schemas.chat import Message

logger = get_logger(__name__)


class ConversationLog:
    """每个 Bot 一条有序的消息列表。

    唯一的写入方是 ``ChatRoomBroker``。所有操作都是同步的单步操作，
    在事件循环中不会被打断，因此不需要加锁。
    """

    def __init__(self) -> None:
        self._entries: dict[str, list[Message]] = {}

    def open(self, bot_id: str) -> None:
        """为 Bot 分配一条空日志（已存在时不做任何事）。"""
        self._entries.setdefault(bot_id, [])

    def append(self, bot_id: str, message: Message) -> Message:
        """追加一条消息并返回实际存入的消息。

        日志不存在时隐式创建。如果墙钟回拨导致时间戳早于上一条，
        会把时间戳抬到上一条的值，保证日志内时间单调不减。
        """
        entry = self._entries.get(bot_id)
        if entry is None:
            logger.debug("日志不存在，隐式创建 | bot=%s", bot_id)
            entry = self._entries[bot_id] = []

        if entry and message.timestamp < entry[-1].timestamp:
            message = message.model_copy(update={"timestamp": entry[-1].timestamp})

        entry.append(message)
        return message

    def history(self, bot_id: str) -> list[Message]:
        """返回 Bot 的完整历史（按追加顺序的副本）。未知 Bot 返回空列表。"""
        return list(self._entries.get(bot_id, ()))

    def count(self, bot_id: str) -> int:
        return len(self._entries.get(bot_id, ()))
