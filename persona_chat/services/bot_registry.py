"""
persona_chat.services.bot_registry
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Bot 定义的内存注册表。

创建 Bot 时同时在 ``ConversationLog`` 中分配一条空日志。Bot 在进程生命周期内
永不删除。
"""
from __future__ import annotations

from datetime import datetime, timezone

from pydantic import HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from persona_chat.core.config import Settings, settings
from persona_chat.core.errors import NotFoundError, ValidationError
from persona_chat.core.ids import new_id
from persona_chat.core.logging import get_logger
from persona_chat.schemas.chat import Bot
from persona_chat.services.conversation_log import ConversationLog

logger = get_logger(__name__)

_http_url: TypeAdapter[HttpUrl] = TypeAdapter(HttpUrl)


def _require_text(value: str | None, field: str, max_length: int) -> str:
    """去除首尾空白后校验非空与长度，返回清理后的文本。"""
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} must not be empty")
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


class BotRegistry:
    """Bot 注册表。

    Attributes:
        log: 与注册表配套的会话日志，创建 Bot 时为其分配条目。
    """

    def __init__(self, log: ConversationLog, config: Settings | None = None) -> None:
        self.log = log
        self._config: Settings = config or settings
        self._bots: dict[str, Bot] = {}

    def create(self, name: str, description: str, image_url: str | None = None) -> Bot:
        """校验输入并创建一个新的 Bot。

        Args:
            name: Bot 名称，去空白后非空且不超过 ``BOT_NAME_MAX_LENGTH``。
            description: 人设描述，去空白后非空且不超过 ``BOT_DESCRIPTION_MAX_LENGTH``。
            image_url: 可选头像地址，缺失或不是合法 http(s) URL 时使用占位图。

        Returns:
            新建的 ``Bot``，``message_count`` 为 0。

        Raises:
            ValidationError: 名称或描述不合法。
        """
        clean_name = _require_text(name, "name", self._config.BOT_NAME_MAX_LENGTH)
        clean_description = _require_text(
            description, "description", self._config.BOT_DESCRIPTION_MAX_LENGTH,
        )

        bot = Bot(
            id=new_id("bot"),
            name=clean_name,
            description=clean_description,
            image_url=self._resolve_image_url(image_url),
            created_at=datetime.now(timezone.utc),
            message_count=0,
        )
        self._bots[bot.id] = bot
        self.log.open(bot.id)
        logger.info("Bot 已创建 | id=%s | name=%s", bot.id, bot.name)
        return bot

    def _resolve_image_url(self, image_url: str | None) -> str:
        candidate = (image_url or "").strip()
        if not candidate:
            return self._config.DEFAULT_AVATAR_URL
        try:
            _http_url.validate_python(candidate)
        except PydanticValidationError:
            logger.debug("头像地址无效，使用占位图 | url=%s", candidate)
            return self._config.DEFAULT_AVATAR_URL
        return candidate

    def get(self, bot_id: str) -> Bot:
        """按 ID 获取 Bot。

        Raises:
            NotFoundError: Bot 不存在。
        """
        bot = self._bots.get(bot_id)
        if bot is None:
            raise NotFoundError(f"bot {bot_id} not found")
        return bot

    def find(self, bot_id: str) -> Bot | None:
        """按 ID 获取 Bot，不存在时返回 ``None``。"""
        return self._bots.get(bot_id)

    def list(self) -> list[Bot]:
        """返回全部 Bot，按创建时间倒序（最新在前）。

        创建时间相同时，后创建的排在前面。
        """
        newest_inserted_first = reversed(list(self._bots.values()))
        return sorted(newest_inserted_first, key=lambda bot: bot.created_at, reverse=True)

    def increment_message_count(self, bot_id: str) -> None:
        """消息数加一。Bot 不存在时静默忽略。"""
        bot = self._bots.get(bot_id)
        if bot is not None:
            bot.message_count += 1

    def __len__(self) -> int:
        return len(self._bots)

    def __contains__(self, bot_id: object) -> bool:
        return bot_id in self._bots
