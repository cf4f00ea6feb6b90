"""
persona_chat.llm.client
~~~~~~~~~~~~~~~~~~~~~~~

Gemini API 客户端工厂 —— 全局共享的客户端创建入口。
"""
from __future__ import annotations

from google import genai

from persona_chat.core.config import Settings, settings


def create_gemini_client(config: Settings | None = None) -> genai.Client:
    """创建 Gemini API 客户端实例。

    Args:
        config: 可选配置对象，默认使用全局 ``settings``。

    Returns:
        已认证的 ``genai.Client``。
    """
    return genai.Client(api_key=(config or settings).GEMINI_API_KEY)
