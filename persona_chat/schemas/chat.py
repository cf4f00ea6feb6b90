"""
persona_chat.schemas.chat
~~~~~~~~~~~~~~~~~~~~~~~~~

Bot 与聊天消息的 Pydantic 模型。

线上格式统一使用 camelCase 别名（``imageUrl`` / ``createdAt`` / ``botId``），
入参同时接受别名与字段名。
"""
from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MessageType = Literal["user", "bot"]


class CamelModel(BaseModel):
    """使用 camelCase 别名序列化的基类。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Bot(CamelModel):
    """一个可聊天的人设 Bot。

    ``message_count`` 只允许 ``ChatRoomBroker`` 通过 ``BotRegistry`` 递增，
    其余字段创建后不再变化。
    """

    id: str = Field(..., description="Bot 唯一标识")
    name: str = Field(..., description="Bot 显示名称")
    description: str = Field(..., description="人设描述，用于约束生成回复")
    image_url: str = Field(..., description="头像地址")
    created_at: datetime = Field(..., description="创建时间（UTC）")
    message_count: int = Field(default=0, description="房间内累计消息数")


class Message(CamelModel):
    """房间内的一条消息，创建后不可变。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(..., description="消息唯一标识")
    bot_id: str = Field(..., description="所属 Bot")
    type: MessageType = Field(..., description="消息类型：user / bot")
    content: str = Field(..., description="消息文本（按原文传输，不做转义）")
    sender: str = Field(..., description="发送者显示名")
    timestamp: datetime = Field(..., description="追加到日志的时间（UTC）")


class CreateBotRequest(CamelModel):
    """创建 Bot 请求体。长度与非空校验由 ``BotRegistry`` 负责。"""

    name: str = Field(..., description="Bot 名称")
    description: str = Field(..., description="人设描述")
    image_url: str | None = Field(default=None, description="可选头像地址")


class CreateBotResponseData(CamelModel):
    """创建 Bot 响应数据。"""

    bot_id: str = Field(..., description="新 Bot 的 ID")
    bot_url: str = Field(..., description="聊天页面路径")
    bot: Bot = Field(..., description="新建的 Bot")
