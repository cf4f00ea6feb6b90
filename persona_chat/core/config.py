"""
persona_chat.core.config
~~~~~~~~~~~~~~~~~~~~~~~~

集中式配置管理，基于 pydantic-settings 自动从 ``.env`` 文件加载。

支持多环境配置（dev / test / prod），加载顺序为:
  1. 环境变量（最高优先级）
  2. ``.env.{ENVIRONMENT}`` 环境专属文件
  3. ``.env`` 基础文件
  4. 字段默认值（最低优先级）
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# 读取当前环境标识（在 Settings 类定义之前，用于决定加载哪个 .env 文件）
_CURRENT_ENV: str = os.getenv("ENVIRONMENT", "dev")


class Settings(BaseSettings):
    """全局配置对象，字段值按如下优先级加载：环境变量 > .env.{env} > .env > 默认值。"""

    # ── 基础 ──────────────────────────────────────────────────────────
    PROJECT_NAME: str = Field(default="Persona Chat", description="项目名称")
    VERSION: str = Field(default="0.1.0", description="版本号")
    ENVIRONMENT: Literal["dev", "test", "prod"] = Field(
        default="dev",
        description="运行环境：dev / test / prod",
    )

    # ── API Keys ──────────────────────────────────────────────────────
    GEMINI_API_KEY: str = Field(..., description="Google Gemini API Key")

    # ── LLM ───────────────────────────────────────────────────────────
    GEMINI_MODEL: str = Field(
        default="gemini-2.0-flash",
        description="Gemini 生成模型名称",
    )
    GEMINI_TEMPERATURE: float = Field(
        default=0.7, ge=0.0, le=2.0,
        description="生成温度",
    )
    GEMINI_MAX_OUTPUT_TOKENS: int = Field(
        default=500, gt=0,
        description="单次回复最大 token 数",
    )
    GEMINI_SAFETY_THRESHOLD: str = Field(
        default="BLOCK_MEDIUM_AND_ABOVE",
        description="Gemini 安全过滤阈值（HarmBlockThreshold 名称）",
    )
    RESPONDER_TIMEOUT_SECONDS: float = Field(
        default=15.0, gt=0,
        description="单次上游生成调用的超时时间（秒）",
    )

    # ── 聊天 ──────────────────────────────────────────────────────────
    BOT_NAME_MAX_LENGTH: int = Field(default=50, description="Bot 名称最大长度")
    BOT_DESCRIPTION_MAX_LENGTH: int = Field(default=500, description="Bot 人设描述最大长度")
    MESSAGE_MAX_LENGTH: int = Field(default=1000, description="用户单条消息最大长度")
    DEFAULT_AVATAR_URL: str = Field(
        default="/default-avatar.png",
        description="未提供或无效头像地址时使用的占位图",
    )
    DEFAULT_SENDER_NAME: str = Field(default="User", description="未提供昵称时的默认发送者")
    FALLBACK_REPLY: str = Field(
        default="Sorry, the service is temporarily unavailable. Please try again later.",
        description="上游生成失败时的兜底回复",
    )
    MAX_PENDING_REPLIES_PER_ROOM: int = Field(
        default=0, ge=0,
        description="每个房间并发上游调用上限，0 表示不限制",
    )

    # ── 服务 ──────────────────────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0", description="服务监听地址")
    PORT: int = Field(default=8000, description="服务监听端口")
    LOG_LEVEL: str = Field(default="INFO", description="日志级别（可被环境属性覆盖）")

    # ── Pydantic Settings ─────────────────────────────────────────────
    # 先加载 .env.{env} 再加载 .env，前者优先级更高
    model_config = SettingsConfigDict(
        env_file=(f".env.{_CURRENT_ENV}", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── 环境判断 ──────────────────────────────────────────────────────

    @property
    def is_prod(self) -> bool:
        """当前是否为生产环境。"""
        return self.ENVIRONMENT == "prod"

    @property
    def is_test(self) -> bool:
        """当前是否为测试环境。"""
        return self.ENVIRONMENT == "test"

    @property
    def is_dev(self) -> bool:
        """当前是否为开发环境。"""
        return self.ENVIRONMENT == "dev"

    # ── 环境差异化行为 ────────────────────────────────────────────────

    @property
    def debug(self) -> bool:
        """是否开启 debug 模式。仅 dev 环境开启。"""
        return self.is_dev

    @property
    def reload(self) -> bool:
        """是否开启热重载。仅 dev 环境开启。"""
        return self.is_dev

    @property
    def effective_log_level(self) -> str:
        """根据环境自动推断日志级别。

        - dev  → INFO
        - test → DEBUG（方便排查测试失败）
        - prod → WARNING（减少噪音）

        如果通过环境变量或 .env 文件显式设置了 LOG_LEVEL，会覆盖此默认推断。
        """
        if "LOG_LEVEL" in self.model_fields_set and self.LOG_LEVEL:
            return self.LOG_LEVEL
        return {
            "dev": "INFO",
            "test": "DEBUG",
            "prod": "WARNING",
        }.get(self.ENVIRONMENT, "INFO")

    @property
    def allow_cors_all_origins(self) -> bool:
        """是否允许所有 CORS 来源。非 prod 环境允许，方便本地调试。"""
        return not self.is_prod


@lru_cache
def get_settings() -> Settings:
    """获取全局 Settings 单例（带缓存，避免重复解析 .env）。"""
    return Settings()


settings: Settings = get_settings()
