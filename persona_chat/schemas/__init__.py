"""
persona_chat.schemas
~~~~~~~~~~~~~~~~~~~~
Pydantic schemas and models for the API.
"""
from persona_chat.schemas.api_response import ApiResponse
from persona_chat.schemas.chat import (
    Bot,
    CreateBotRequest,
    CreateBotResponseData,
    Message,
    MessageType,
)
from persona_chat.schemas.events import (
    ClientAction,
    HistoryEvent,
    JoinAction,
    MessageEvent,
    NoticeCode,
    NoticeEvent,
    SendAction,
    ServerEvent,
)

# Call model_rebuild to resolve forward references in generic Pydantic models.
ApiResponse.model_rebuild()
