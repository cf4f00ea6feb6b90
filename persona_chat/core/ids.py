"""
persona_chat.core.ids
~~~~~~~~~~~~~~~~~~~~~

进程内唯一 ID 生成。

格式为 ``<prefix>_<纳秒时间戳hex><序号hex><随机hex>``：序号保证同一进程内
绝不重复，时间戳与随机部分保证跨进程重启后也不会撞上旧 ID。
"""
from __future__ import annotations

import itertools
import secrets
import time

_sequence = itertools.count(1)


def new_id(prefix: str) -> str:
    """生成一个带前缀的唯一 ID，例如 ``bot_17f3a...``。"""
    return f"{prefix}_{time.time_ns():x}{next(_sequence):x}{secrets.token_hex(3)}"
