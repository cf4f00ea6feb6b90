"""
persona_chat
~~~~~~~~~~~~

人设 Bot 实时聊天中转服务。
"""

__version__ = "0.1.0"
