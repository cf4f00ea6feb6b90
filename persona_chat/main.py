"""
persona_chat.main
~~~~~~~~~~~~~~~~~

FastAPI 应用入口 —— 注册路由、挂载中间件、定义生命周期。
"""
from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from persona_chat.api import bots, ws
from persona_chat.core.config import settings
from persona_chat.core.errors import NotFoundError, ValidationError
from persona_chat.core.logging import get_logger, setup_logging
from persona_chat.schemas.api_response import ApiResponse
from persona_chat.services.chat_service import ChatService

# 初始化日志系统（必须在其他模块之前）
setup_logging()
logger = get_logger(__name__)


# ── 生命周期 ──────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期钩子，仅在 worker 启动/关闭时各执行一次。"""
    # ── 启动 ──
    app.state.chat_service = ChatService()
    logger.info(
        "🚀 应用已启动 | env=%s | model=%s | log_level=%s",
        settings.ENVIRONMENT,
        settings.GEMINI_MODEL,
        settings.effective_log_level,
    )
    yield
    # ── 关闭 ──
    await app.state.chat_service.shutdown()
    logger.info("👋 应用已关闭")


# ── 创建 FastAPI 实例 ─────────────────────────────────────────────────

app: FastAPI = FastAPI(
    title=settings.PROJECT_NAME,
    description="人设 Bot 实时聊天中转 API",
    version=settings.VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)

if settings.allow_cors_all_origins:
    # dev / test 环境：允许所有来源，方便本地调试
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

# ── 路由挂载 ──────────────────────────────────────────────────────────
app.include_router(bots.router, prefix="/api", tags=["Bots"])
app.include_router(ws.router, tags=["WebSocket Chat"])


# ── 异常处理器 ────────────────────────────────────────────────────────

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """输入校验失败 → 422。"""
    response = ApiResponse.from_error(exc, code=422)
    return JSONResponse(status_code=422, content=response.model_dump())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    """请求体结构不合法（缺字段、类型错误）→ 422。"""
    errors = exc.errors()
    detail = "invalid request"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = f"{location}: {first.get('msg', detail)}" if location else first.get("msg", detail)
    response = ApiResponse.fail(msg=detail, code=422)
    return JSONResponse(status_code=422, content=response.model_dump())


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Bot 不存在 → 404。"""
    response = ApiResponse.from_error(exc, code=404)
    return JSONResponse(status_code=404, content=response.model_dump())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """捕获所有未处理异常，返回统一的 ApiResponse.fail() 格式。"""
    logger.error("未捕获异常: %s %s -> %s", request.method, request.url, exc, exc_info=True)
    # 非 prod 环境返回详细错误信息，prod 环境隐藏内部细节
    detail = str(exc) if not settings.is_prod else "internal server error"
    response = ApiResponse.fail(msg=detail, code=500, data=None)
    return JSONResponse(status_code=500, content=response.model_dump())


@app.get("/health", tags=["System"])
async def health_check(request: Request) -> JSONResponse:
    """验证服务是否正常运行。"""
    service: ChatService = request.app.state.chat_service
    return JSONResponse(
        content={
            "status": "ok",
            "environment": settings.ENVIRONMENT,
            "bots": len(service.registry),
            "connections": service.broker.connection_count,
            "pending_replies": service.broker.pending_replies,
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "persona_chat.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.reload,  # 仅 dev 环境开启热重载
        log_level=settings.effective_log_level.lower(),
    )
