"""
persona_chat.api.ws
~~~~~~~~~~~~~~~~~~~

WebSocket 实时交互接口 —— 按 Bot 划分的聊天房间。

一条连接加入一个房间；换房间时客户端应新建连接。
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from persona_chat.api.deps import get_ws_chat_service
from persona_chat.core.logging import get_logger
from persona_chat.schemas.events import JoinAction, SendAction, client_action_adapter
from persona_chat.services.chat_service import ChatService

logger = get_logger(__name__)

router: APIRouter = APIRouter()


@router.websocket("/ws")
async def websocket_chat_endpoint(
    websocket: WebSocket,
    service: ChatService = Depends(get_ws_chat_service),
) -> None:
    """WebSocket 聊天端点。

    消息协议（JSON 文本帧）:
      - ``{"action": "join", "botId": ...}`` —— 加入房间，单播 ``history``
      - ``{"action": "send", "botId": ..., "content": ..., "senderName": ...}``
        —— 广播用户消息，随后广播一条 bot 回复
      - 服务端事件: ``history`` / ``message`` / ``notice``

    无法解析的帧只回复 ``notice(invalid_action)``，不会关闭连接。
    """
    broker = service.broker
    connection = await broker.connect(websocket)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))

            raw = message.get("text")
            if raw is None:
                # 协议只使用 JSON 文本帧
                await broker.notify(connection, "invalid_action", "expected a JSON text frame")
                continue
            try:
                action = client_action_adapter.validate_json(raw)
            except PydanticValidationError as e:
                logger.debug("无法解析的客户端帧 | conn=%s | %s", connection.id, e)
                await broker.notify(connection, "invalid_action", "unrecognized action")
                continue

            if isinstance(action, JoinAction):
                await broker.join(connection, action.bot_id)
            elif isinstance(action, SendAction):
                await broker.send(
                    connection, action.bot_id, action.content, action.sender_name,
                )

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket 异常: %s | conn=%s", e, connection.id, exc_info=True)
    finally:
        broker.disconnect(connection)
