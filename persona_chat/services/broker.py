"""
persona_chat.services.broker
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间发布/订阅核心 —— 管理连接生命周期、房间成员与消息广播。

一次 ``send`` 的完整流程:
  1. 校验连接状态、Bot 与消息内容，失败只单播 notice 给发送方
  2. 写入用户消息 → 消息数 +1 → 广播给房间全体（含发送方，即回显）
  3. 启动独立任务调用 ``PersonaResponder``，``send`` 立即返回
  4. 任务结束时写入恰好一条 bot 消息（生成结果或兜底回复）并广播

所有状态修改都是同步单步操作，唯一的挂起点是上游生成调用，
因此在单事件循环内无需加锁。
"""
from __future__ import annotations

import asyncio
import contextlib
from datetime import datetime, timezone
from typing import AsyncContextManager

from persona_chat.core.config import Settings, settings
from persona_chat.core.errors import ChatError, NotFoundError, ValidationError
from persona_chat.core.ids import new_id
from persona_chat.core.logging import get_logger
from persona_chat.llm.persona_responder import (
    GeneratedText,
    PersonaResponder,
    ResponderFailure,
    ResponderFailureKind,
    ResponderResult,
)
from persona_chat.schemas.chat import Bot, Message, MessageType
from persona_chat.schemas.events import (
    HistoryEvent,
    MessageEvent,
    NoticeCode,
    NoticeEvent,
    encode_event,
)
from persona_chat.services.bot_registry import BotRegistry
from persona_chat.services.connection import ChatConnection, ConnectionState, Transport
from persona_chat.services.conversation_log import ConversationLog

logger = get_logger(__name__)


class ChatRoomBroker:
    """按 Bot 划分房间的消息中转。

    Attributes:
        registry: Bot 注册表（只读 Bot，唯一可写的是消息数）。
        log: 会话日志，本类是它唯一的写入方。
        responder: 上游回复生成器。
    """

    def __init__(
        self,
        registry: BotRegistry,
        log: ConversationLog,
        responder: PersonaResponder,
        config: Settings | None = None,
    ) -> None:
        self.registry = registry
        self.log = log
        self.responder = responder
        self._config: Settings = config or settings
        self._connections: set[ChatConnection] = set()
        self._rooms: dict[str, set[ChatConnection]] = {}
        self._pending: set[asyncio.Task[None]] = set()
        self._reply_limits: dict[str, asyncio.Semaphore] = {}

    # ── 连接生命周期 ──────────────────────────────────────────────────

    async def connect(self, transport: Transport) -> ChatConnection:
        """完成传输握手，登记一条处于 ``CONNECTED`` 状态的新连接。"""
        connection = ChatConnection(transport)
        await transport.accept()
        connection.state = ConnectionState.CONNECTED
        self._connections.add(connection)
        logger.info("连接已建立 | conn=%s | 当前连接: %d", connection.id, len(self._connections))
        return connection

    async def join(self, connection: ChatConnection, bot_id: str) -> bool:
        """把连接加入 Bot 房间，并单播完整历史。

        房间不存在或连接已在房间内时只单播 notice，连接保持原状态。

        Returns:
            是否成功加入。
        """
        if not connection.is_open:
            logger.debug("忽略已断开连接的 join | conn=%s", connection.id)
            return False
        if connection.state is ConnectionState.JOINED:
            await self.notify(
                connection, "already_joined",
                f"already joined {connection.bot_id}; open a new connection to switch rooms",
            )
            return False
        if bot_id not in self.registry:
            await self.notify(connection, "room_not_found", f"bot {bot_id} not found")
            return False

        self._rooms.setdefault(bot_id, set()).add(connection)
        connection.state = ConnectionState.JOINED
        connection.bot_id = bot_id
        logger.info(
            "→ %s 加入房间 %s（%d 人在线）",
            connection.id, bot_id, self.member_count(bot_id),
        )

        # 历史回放只发给加入者本人，其他成员不感知
        await self._unicast(
            connection, HistoryEvent(bot_id=bot_id, messages=self.log.history(bot_id)),
        )
        return True

    def disconnect(self, connection: ChatConnection) -> None:
        """移除连接及其房间成员关系。重复调用无副作用。

        不会取消该连接发起的进行中回复：回复仍会写入日志并广播给剩余成员。
        """
        if connection.state is ConnectionState.DISCONNECTED:
            return
        bot_id = connection.bot_id
        if bot_id is not None:
            members = self._rooms.get(bot_id)
            if members is not None:
                members.discard(connection)
                if not members:
                    del self._rooms[bot_id]
        self._connections.discard(connection)
        connection.state = ConnectionState.DISCONNECTED
        logger.info("✗ 连接已断开 | conn=%s | 当前连接: %d", connection.id, len(self._connections))

    # ── 发送协议 ──────────────────────────────────────────────────────

    async def send(
        self,
        connection: ChatConnection,
        bot_id: str,
        content: str,
        sender_name: str | None = None,
    ) -> Message | None:
        """接收一条用户消息：写入、回显广播，并异步安排 bot 回复。

        在用户消息广播完成后立即返回，不等待上游生成。

        Returns:
            已写入的用户消息；校验失败时返回 ``None``（已单播 notice）。
        """
        try:
            bot, text = self._validate_send(connection, bot_id, content)
        except ChatError as e:
            await self.notify(connection, e.code, e.message)
            return None

        sender = (sender_name or "").strip() or self._config.DEFAULT_SENDER_NAME
        user_message = self._record(bot.id, "user", text, sender)
        await self.broadcast(bot.id, MessageEvent(message=user_message))

        self._schedule_reply(bot, text)
        return user_message

    def _validate_send(
        self, connection: ChatConnection, bot_id: str, content: str,
    ) -> tuple[Bot, str]:
        """校验发送请求，返回目标 Bot 与去空白后的消息文本。"""
        if not connection.is_joined_to(bot_id):
            raise ChatError(f"connection is not joined to {bot_id}", code="not_joined")
        bot = self.registry.find(bot_id)
        if bot is None:
            raise NotFoundError(f"bot {bot_id} not found")

        text = (content or "").strip()
        if not text:
            raise ValidationError("message must not be empty")
        limit = self._config.MESSAGE_MAX_LENGTH
        if len(text) > limit:
            raise ValidationError(f"message must be at most {limit} characters")
        return bot, text

    def _record(self, bot_id: str, kind: MessageType, content: str, sender: str) -> Message:
        """构造消息、写入日志并递增消息数。"""
        message = Message(
            id=new_id("msg"),
            bot_id=bot_id,
            type=kind,
            content=content,
            sender=sender,
            timestamp=datetime.now(timezone.utc),
        )
        stored = self.log.append(bot_id, message)
        self.registry.increment_message_count(bot_id)
        return stored

    # ── 异步回复 ──────────────────────────────────────────────────────

    def _schedule_reply(self, bot: Bot, text: str) -> None:
        task = asyncio.create_task(self._reply(bot, text), name=f"reply:{bot.id}")
        # 事件循环只持有弱引用，必须自己保存任务
        self._pending.add(task)
        task.add_done_callback(self._on_reply_done)

    def _on_reply_done(self, task: asyncio.Task[None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning("回复任务被取消 | task=%s", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error("回复任务异常 | task=%s", task.get_name(), exc_info=exc)

    async def _reply(self, bot: Bot, text: str) -> None:
        """生成并广播恰好一条 bot 消息。"""
        async with self._reply_slot(bot.id):
            result = await self._generate(bot.description, text)

        if isinstance(result, GeneratedText):
            content = result.text
        else:
            logger.warning(
                "回复生成失败，使用兜底回复 | bot=%s | kind=%s | %s",
                bot.id, result.kind.value, result.detail,
            )
            content = self._config.FALLBACK_REPLY

        bot_message = self._record(bot.id, "bot", content, bot.name)
        await self.broadcast(bot.id, MessageEvent(message=bot_message))

    async def _generate(self, persona: str, text: str) -> ResponderResult:
        try:
            return await self.responder.respond(persona, text)
        except Exception as e:
            logger.error("回复生成器意外抛出异常: %s", e, exc_info=True)
            return ResponderFailure(kind=ResponderFailureKind.UPSTREAM_ERROR, detail=str(e))

    def _reply_slot(self, bot_id: str) -> AsyncContextManager[object]:
        """房间级并发上限（``MAX_PENDING_REPLIES_PER_ROOM`` 为 0 时不限制）。"""
        limit = self._config.MAX_PENDING_REPLIES_PER_ROOM
        if limit <= 0:
            return contextlib.nullcontext()
        semaphore = self._reply_limits.get(bot_id)
        if semaphore is None:
            semaphore = self._reply_limits[bot_id] = asyncio.Semaphore(limit)
        return semaphore

    async def drain(self) -> None:
        """等待所有进行中的回复任务完成（关闭服务和测试时使用）。"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ── 投递 ──────────────────────────────────────────────────────────

    async def broadcast(self, bot_id: str, event: MessageEvent) -> int:
        """向房间内所有当前成员广播事件。

        发送失败的连接会被断开，不影响其他成员。

        Returns:
            成功投递的连接数。
        """
        members = list(self._rooms.get(bot_id, ()))
        if not members:
            logger.debug("房间无人在线，跳过广播 | bot=%s", bot_id)
            return 0

        payload = encode_event(event)
        results = await asyncio.gather(
            *(member.transport.send_text(payload) for member in members),
            return_exceptions=True,
        )
        delivered = 0
        for member, result in zip(members, results):
            if isinstance(result, Exception):
                logger.warning("广播失败，移除断开的连接 | conn=%s | %s", member.id, result)
                self.disconnect(member)
            else:
                delivered += 1
        return delivered

    async def _unicast(
        self, connection: ChatConnection, event: HistoryEvent | NoticeEvent,
    ) -> None:
        try:
            await connection.deliver(event)
        except Exception as e:
            logger.warning("单播失败，移除断开的连接 | conn=%s | %s", connection.id, e)
            self.disconnect(connection)

    async def notify(self, connection: ChatConnection, code: NoticeCode, text: str) -> None:
        logger.info("notice → %s | code=%s | %s", connection.id, code, text)
        await self._unicast(connection, NoticeEvent(code=code, text=text))

    # ── 状态查询 ──────────────────────────────────────────────────────

    def member_count(self, bot_id: str) -> int:
        """房间当前成员数。"""
        return len(self._rooms.get(bot_id, ()))

    @property
    def connection_count(self) -> int:
        """当前打开的连接数（含未加入房间的）。"""
        return len(self._connections)

    @property
    def pending_replies(self) -> int:
        """进行中的回复任务数。"""
        return len(self._pending)
