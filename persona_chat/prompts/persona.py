"""
persona_chat.prompts.persona
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

人设对话 Prompt 模板。

将 Prompt 独立管理，方便在不修改 LLM 连接代码的前提下调整话术。
用户文本按原样插入，不做任何清洗（已知且接受的 prompt 注入风险）。
"""

PERSONA_PROMPT_TEMPLATE: str = """\
You are exactly this persona: {persona}
Stay in character at all times and never reveal that you are an AI or a language model.
Reply to the following user message the way this persona would.

User: {user_message}
You:"""


def build_persona_prompt(persona: str, user_message: str) -> str:
    """把人设描述和用户消息组装为发送给 LLM 的单条 Prompt。

    Args:
        persona: 创建 Bot 时填写的人设描述。
        user_message: 用户发送的原始文本。

    Returns:
        组装后的 Prompt 字符串。
    """
    return PERSONA_PROMPT_TEMPLATE.format(persona=persona, user_message=user_message)
