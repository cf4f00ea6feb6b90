"""
persona_chat.llm.persona_responder
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

人设回复生成器 —— 对 Google Gemini ``generate_content`` 的无状态封装。

``respond()`` 永远不会抛出异常：超时、上游非 2xx、传输错误和返回结构异常
都会被映射为带类型的 ``ResponderFailure``，由上层决定如何兜底。
"""
from __future__ import annotations

import asyncio
from enum import Enum

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import BaseModel, ConfigDict, Field

from persona_chat.core.config import Settings, settings
from persona_chat.core.logging import get_logger
from persona_chat.llm.client import create_gemini_client
from persona_chat.prompts.persona import build_persona_prompt

logger = get_logger(__name__)

_SAFETY_CATEGORIES: tuple[str, ...] = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


class ResponderFailureKind(str, Enum):
    """上游调用失败的类别。"""

    TIMEOUT = "timeout"
    UPSTREAM_ERROR = "upstream_error"
    MALFORMED_RESPONSE = "malformed_response"


class GeneratedText(BaseModel):
    """生成成功的回复文本。"""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="模型生成的回复")


class ResponderFailure(BaseModel):
    """生成失败，仅用于日志与兜底，不会原样展示给用户。"""

    model_config = ConfigDict(frozen=True)

    kind: ResponderFailureKind = Field(..., description="失败类别")
    detail: str = Field(default="", description="失败细节（仅日志）")


ResponderResult = GeneratedText | ResponderFailure


def _extract_text(response: types.GenerateContentResponse) -> str | None:
    """从响应的第一个候选中取出文本，结构不符合预期时返回 ``None``。"""
    if not response.candidates:
        return None
    content = response.candidates[0].content
    if content is None or not content.parts:
        return None
    text = "".join(part.text for part in content.parts if isinstance(part.text, str))
    return text.strip() or None


class PersonaResponder:
    """以人设口吻回复用户消息的 LLM 适配器。

    不在调用之间保留任何状态，多个房间可以安全共享同一个实例。

    Attributes:
        model_name: 使用的 Gemini 模型名称。
        timeout: 单次调用超时时间（秒）。
    """

    def __init__(
        self,
        client: genai.Client | None = None,
        config: Settings | None = None,
    ) -> None:
        """初始化生成器。

        Args:
            client: 可选的 ``genai.Client`` 实例（用于测试注入 mock）。
            config: 可选配置对象，默认使用全局 ``settings``。
        """
        cfg = config or settings
        self._client: genai.Client = client or create_gemini_client(cfg)
        self.model_name: str = cfg.GEMINI_MODEL
        self.timeout: float = cfg.RESPONDER_TIMEOUT_SECONDS
        self._generation_config = types.GenerateContentConfig(
            temperature=cfg.GEMINI_TEMPERATURE,
            max_output_tokens=cfg.GEMINI_MAX_OUTPUT_TOKENS,
            safety_settings=[
                types.SafetySetting(category=category, threshold=cfg.GEMINI_SAFETY_THRESHOLD)
                for category in _SAFETY_CATEGORIES
            ],
        )

    async def respond(self, persona: str, user_message: str) -> ResponderResult:
        """以 ``persona`` 的口吻回复 ``user_message``。

        Args:
            persona: Bot 的人设描述。
            user_message: 用户发送的文本。

        Returns:
            成功时为 ``GeneratedText``，否则为 ``ResponderFailure``。
        """
        prompt = build_persona_prompt(persona, user_message)
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self.model_name,
                    contents=prompt,
                    config=self._generation_config,
                ),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("LLM 调用超时 | timeout=%ss", self.timeout)
            return ResponderFailure(
                kind=ResponderFailureKind.TIMEOUT,
                detail=f"no response within {self.timeout}s",
            )
        except genai_errors.APIError as e:
            logger.error("LLM 上游返回错误 | code=%s | %s", e.code, e)
            return ResponderFailure(kind=ResponderFailureKind.UPSTREAM_ERROR, detail=str(e))
        except (httpx.HTTPError, OSError) as e:
            logger.error("LLM 传输异常: %s", e)
            return ResponderFailure(kind=ResponderFailureKind.UPSTREAM_ERROR, detail=str(e))
        except Exception as e:
            logger.error("LLM 调用异常: %s", e, exc_info=True)
            return ResponderFailure(kind=ResponderFailureKind.UPSTREAM_ERROR, detail=str(e))

        try:
            text = _extract_text(response)
        except (AttributeError, TypeError):
            text = None
        if text is None:
            logger.warning("LLM 返回结构异常，缺少候选文本")
            return ResponderFailure(
                kind=ResponderFailureKind.MALFORMED_RESPONSE,
                detail="response has no candidate text",
            )
        return GeneratedText(text=text)
