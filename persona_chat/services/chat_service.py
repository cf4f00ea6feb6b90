"""
persona_chat.services.chat_service
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

聊天业务服务 —— 持有注册表、会话日志、回复生成器和房间中转的服务对象。

架构设计:
  - ``ChatService`` 在 FastAPI lifespan 中创建并挂载到 ``app.state``
  - HTTP 层只调用控制类操作（``create_bot`` / ``get_bot`` / ``list_bots``）
  - WebSocket 层通过 ``broker`` 调用实时操作（join / send / disconnect）

不使用模块级全局状态，测试中可以创建多个互相隔离的实例。
"""
from __future__ import annotations

from persona_chat.core.config import Settings, settings
from persona_chat.core.logging import get_logger
from persona_chat.llm.persona_responder import PersonaResponder
from persona_chat.schemas.chat import Bot
from persona_chat.services.bot_registry import BotRegistry
from persona_chat.services.broker import ChatRoomBroker
from persona_chat.services.conversation_log import ConversationLog

logger = get_logger(__name__)


class ChatService:
    """人设聊天服务。

    Attributes:
        log: 会话日志。
        registry: Bot 注册表。
        responder: 回复生成器。
        broker: 房间中转。
    """

    def __init__(
        self,
        responder: PersonaResponder | None = None,
        config: Settings | None = None,
    ) -> None:
        """初始化服务。

        Args:
            responder: 可选的回复生成器（用于测试注入），默认创建真实的 Gemini 实现。
            config: 可选配置对象，默认使用全局 ``settings``。
        """
        cfg = config or settings
        self.log = ConversationLog()
        self.registry = BotRegistry(self.log, config=cfg)
        self.responder = responder or PersonaResponder(config=cfg)
        self.broker = ChatRoomBroker(self.registry, self.log, self.responder, config=cfg)

    def create_bot(self, name: str, description: str, image_url: str | None = None) -> Bot:
        """创建 Bot，同时分配空的会话日志。"""
        return self.registry.create(name, description, image_url)

    def get_bot(self, bot_id: str) -> Bot:
        """获取 Bot，不存在时抛出 ``NotFoundError``。"""
        return self.registry.get(bot_id)

    def list_bots(self) -> list[Bot]:
        """列出全部 Bot（最新在前）。"""
        return self.registry.list()

    async def shutdown(self) -> None:
        """等待进行中的回复完成。"""
        pending = self.broker.pending_replies
        if pending:
            logger.info("等待 %d 个进行中的回复完成", pending)
        await self.broker.drain()
