from fastapi import Request, WebSocket

from persona_chat.services.chat_service import ChatService


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def get_ws_chat_service(websocket: WebSocket) -> ChatService:
    return websocket.app.state.chat_service
