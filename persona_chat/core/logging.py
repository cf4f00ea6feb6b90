"""
persona_chat.core.logging
~~~~~~~~~~~~~~~~~~~~~~~~~

日志初始化。级别由 ``Settings.effective_log_level`` 决定。

各模块通过 ``get_logger(__name__)`` 获取 logger，房间和连接 ID
直接写进消息文本（``conn=... | bot=...``），便于按 ID grep。
"""
from __future__ import annotations

import logging
import sys

from persona_chat.core.config import Settings, settings

_LOG_FORMAT: str = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"

# 上游 SDK 与传输层：只保留告警
_QUIET_LOGGERS: tuple[str, ...] = (
    "httpcore",
    "httpx",
    "websockets",
    "google_genai",
)


def setup_logging(config: Settings | None = None) -> int:
    """配置根 logger，返回生效的日志级别。

    重复调用会覆盖之前的配置（``force=True``），测试中可放心调用。
    """
    cfg = config or settings
    level = logging.getLevelName(cfg.effective_log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format=_LOG_FORMAT,
        datefmt=_DATE_FORMAT,
        stream=sys.stdout,
        force=True,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    return level


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
