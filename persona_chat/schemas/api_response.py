"""
persona_chat.schemas.api_response
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

HTTP 接口的统一 JSON 外壳: ``{"code": ..., "data": ..., "msg": ...}``。

``code`` 与 HTTP 状态码保持一致；失败时 ``data`` 为 ``null``。
WebSocket 事件不使用此外壳（见 ``schemas.events``）。
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from persona_chat.core.errors import ChatError

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    code: int = Field(default=200, description="与 HTTP 状态码一致")
    data: T = Field(..., description="业务数据，失败时为 null")
    msg: str = Field(default="success", description="状态说明")

    @classmethod
    def ok(cls, data: T, msg: str = "success") -> ApiResponse[T]:
        return cls(code=200, data=data, msg=msg)

    @classmethod
    def fail(cls, msg: str, code: int, data: Any = None) -> ApiResponse[Any]:
        return cls(code=code, data=data, msg=msg)

    @classmethod
    def from_error(cls, exc: ChatError, code: int) -> ApiResponse[Any]:
        """把聊天核心异常转换为失败响应，``msg`` 带上 notice 代码。"""
        return cls(code=code, data=None, msg=f"{exc.code}: {exc.message}")
