"""
LLM access through LangChain. One cached ChatOpenAI per temperature; structured
output for classification/extraction, free text for clarifications and Q&A.
No OPENAI_API_KEY → every helper returns None and callers use rule-based paths.
"""

import logging
import os
from typing import Any

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

logger = logging.getLogger(__name__)

_chats: dict[float, Any] = {}


def llm_enabled() -> bool:
    return bool(os.environ.get("OPENAI_API_KEY"))


def reset_chat_cache() -> None:
    _chats.clear()


def _get_chat(temperature: float = 0.7):
    if not llm_enabled():
        return None
    if temperature in _chats:
        return _chats[temperature]
    _chats[temperature] = ChatOpenAI(
        model=os.environ.get("OPENAI_CHAT_MODEL", "gpt-4o-mini"),
        temperature=temperature,
        api_key=os.environ["OPENAI_API_KEY"],
        timeout=float(os.environ.get("OPENAI_TIMEOUT_S", "30")),
    )
    return _chats[temperature]


def get_structured_chat(schema: type, temperature: float = 0.1):
    """Runnable returning `schema` instances, or None when no LLM is configured."""
    chat = _get_chat(temperature)
    if chat is None:
        return None
    return chat.with_structured_output(schema)


def _to_messages(system_prompt: str, history: list[dict[str, str]], user_message: str) -> list:
    messages = [SystemMessage(content=system_prompt)]
    for h in history:
        if h.get("role") == "user":
            messages.append(HumanMessage(content=h.get("text") or ""))
        else:
            messages.append(AIMessage(content=h.get("text") or ""))
    messages.append(HumanMessage(content=user_message.strip()))
    return messages


def get_llm_reply(
    system_prompt: str,
    history: list[dict[str, str]],
    user_message: str,
    temperature: float = 0.7,
) -> str | None:
    """
    Free-text reply given conversation history and the latest user message.
    history: list of {"role": "user"|"assistant", "text": "..."}
    Returns None if the LLM is not available or the call fails.
    """
    chat = _get_chat(temperature)
    if not chat:
        return None
    if not (user_message or "").strip():
        return None
    try:
        response = chat.invoke(_to_messages(system_prompt, history, user_message))
    except Exception as exc:
        logger.warning("LLM reply failed: %s", exc)
        return None
    content = getattr(response, "content", None) or str(response)
    return (content or "").strip() or None


CLARIFY_PROMPT = """You are the official WhatsApp assistant of Pune Zilla Panchayat, helping a citizen finish registration.
The citizen's last message did not give the information needed for this step.

Current step: {state_name}
Information needed: {required}
Citizen's message: "{message}"
Why it was not accepted: {reason}

Write ONE short, polite reply (at most two sentences) in {language_name} that briefly acknowledges what they said
and asks again for the needed information. For a village, remind them it must be within Pune district.
Do not invent facts about schemes or services. Do not say you are an AI."""

LANGUAGE_NAMES = {"en": "English", "mr": "Marathi (Devanagari script)"}


def generate_contextual_reply(context: dict[str, Any], language: str = "en") -> str | None:
    """
    Clarification reply for a turn that did not advance.
    context: state_name, required, message, reason. None on any failure.
    """
    chat = _get_chat(0.7)
    if not chat:
        return None
    prompt = CLARIFY_PROMPT.format(
        state_name=context.get("state_name", ""),
        required=", ".join(context.get("required") or []) or "-",
        message=context.get("message", ""),
        reason=context.get("reason") or "unclear",
        language_name=LANGUAGE_NAMES.get(language, "English"),
    )
    try:
        response = chat.invoke([SystemMessage(content=prompt)])
    except Exception as exc:
        logger.warning("Contextual reply generation failed: %s", exc)
        return None
    content = getattr(response, "content", None) or ""
    return content.strip() or None
