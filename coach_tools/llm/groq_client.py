from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Sequence

from groq import Groq

from coach_tools.config import get_settings
from coach_tools.models.program import Program
from coach_tools.models.tool_io import ChatMessage, ChatResponse, ToolCall
from coach_tools.services.export import to_record
from coach_tools.services.registry import agent_tool_schemas

PROMPTS_DIR = Path(__file__).resolve().parents[1] / "prompts"

_ROLES = {"user": "user", "coach": "assistant", "system": "system"}


class LLMError(RuntimeError):
    pass


def _load_prompt(name: str) -> str:
    return (PROMPTS_DIR / name).read_text(encoding="utf-8")


def parse_tool_calls(message: Any) -> List[ToolCall]:
    """Turn the ``tool_calls`` of a chat completion message into ``ToolCall`` values.

    Arguments stay a raw JSON string; decoding them is part of structural validation.
    """
    calls: List[ToolCall] = []
    for raw in getattr(message, "tool_calls", None) or []:
        fn = raw.function
        kwargs: Dict[str, Any] = {"name": fn.name, "params": fn.arguments or "{}"}
        if getattr(raw, "id", None):
            kwargs["id"] = raw.id
        calls.append(ToolCall(**kwargs))
    return calls


def send_chat_message(history: Sequence[ChatMessage], program: Program) -> ChatResponse:
    """Send the conversation plus the current program to the coach model.
    The reply may carry tool calls; nothing here validates or applies them.
    """
    settings = get_settings()
    if not settings.GROQ_API_KEY:
        raise LLMError("GROQ_API_KEY is not set; cannot perform LLM call.")
    if not settings.GROQ_MODEL:
        raise LLMError("GROQ_MODEL is not set; cannot perform LLM call.")

    system = _load_prompt("coach_system.md")
    program_json = json.dumps(to_record(program), ensure_ascii=False)
    messages: List[Dict[str, str]] = [
        {"role": "system", "content": f"{system}\n\nPROGRAM:\n{program_json}"},
    ]
    messages.extend({"role": _ROLES[m.role], "content": m.content} for m in history)

    client = Groq(api_key=settings.GROQ_API_KEY)
    try:
        resp = client.chat.completions.create(
            model=settings.GROQ_MODEL.strip(),
            messages=messages,
            temperature=settings.GROQ_TEMPERATURE,
            tools=agent_tool_schemas(),
            tool_choice="auto",
        )
    except Exception as e:
        raise LLMError(f"LLM call failed (model='{settings.GROQ_MODEL}'): {e}") from e

    message = resp.choices[0].message
    return ChatResponse(reply=message.content or "", tool_calls=parse_tool_calls(message))
