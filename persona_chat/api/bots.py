"""
persona_chat.api.bots
~~~~~~~~~~~~~~~~~~~~~

Bot 管理 REST 接口。

端点（前缀 ``/api``）:
  - ``POST /bots``           → 创建 Bot
  - ``GET  /bots``           → 获取全部 Bot（最新在前）
  - ``GET  /bots/{bot_id}``  → 获取单个 Bot
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from persona_chat.api.deps import get_chat_service
from persona_chat.schemas.api_response import ApiResponse
from persona_chat.schemas.chat import Bot, CreateBotRequest, CreateBotResponseData
from persona_chat.services.chat_service import ChatService

router: APIRouter = APIRouter()


@router.post(
    "/bots",
    summary="创建人设 Bot",
    response_model=ApiResponse[CreateBotResponseData],
)
async def create_bot(
    request: CreateBotRequest,
    service: ChatService = Depends(get_chat_service),
) -> ApiResponse[CreateBotResponseData]:
    """创建一个新的人设 Bot，并返回其聊天页面路径。

    名称或描述不合法时由全局异常处理器返回 422。
    """
    bot = service.create_bot(request.name, request.description, request.image_url)
    return ApiResponse.ok(
        data=CreateBotResponseData(bot_id=bot.id, bot_url=f"/bot/{bot.id}", bot=bot),
    )


@router.get("/bots", summary="获取 Bot 列表", response_model=ApiResponse[list[Bot]])
async def list_bots(
    service: ChatService = Depends(get_chat_service),
) -> ApiResponse[list[Bot]]:
    """返回全部 Bot，按创建时间倒序。"""
    return ApiResponse.ok(data=service.list_bots())


@router.get("/bots/{bot_id}", summary="获取 Bot 详情", response_model=ApiResponse[Bot])
async def get_bot(
    bot_id: str,
    service: ChatService = Depends(get_chat_service),
) -> ApiResponse[Bot]:
    """返回指定 Bot，不存在时由全局异常处理器返回 404。

    Args:
        bot_id: Bot 唯一标识。
    """
    return ApiResponse.ok(data=service.get_bot(bot_id))
