from .groq_client import LLMError, parse_tool_calls, send_chat_message

__all__ = [
    "LLMError",
    "parse_tool_calls",
    "send_chat_message",
]
