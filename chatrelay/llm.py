from __future__ import annotations

from functools import lru_cache
from typing import Any, Iterable, List, Optional

from loguru import logger
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI


CONTEXT_TURNS = 6


@lru_cache(maxsize=8)
def get_openai_chat(
    api_key: str,
    model: str = "gpt-3.5-turbo",
    temperature: float = 0.7,
    max_tokens: Optional[int] = 512,
    timeout: Optional[float] = None,
) -> Optional[ChatOpenAI]:
    """Return a cached LangChain ChatOpenAI client, or None without a key."""
    if not api_key:
        logger.error("OPENAI_API_KEY not set; cannot initialize OpenAI chat client")
        return None
    logger.debug(f"Initializing OpenAI chat model={model} temperature={temperature}")
    kwargs: dict[str, Any] = {"model": model, "temperature": temperature, "api_key": api_key}
    if max_tokens:
        kwargs["max_tokens"] = max_tokens
    if timeout:
        kwargs["timeout"] = timeout
    # Fallback ordering is handled by the orchestrator, not by SDK retries
    kwargs["max_retries"] = 0
    return ChatOpenAI(**kwargs)


def _sender_text(m: Any) -> tuple[str, str]:
    if isinstance(m, dict):
        sender, text = m.get("sender", ""), m.get("text", "")
    else:
        sender, text = getattr(m, "sender", ""), getattr(m, "text", "")
    return str(getattr(sender, "value", sender) or ""), str(text or "")


def context_turns(
    recent_history: Optional[Iterable[Any]],
    limit: int = CONTEXT_TURNS,
    current: Optional[str] = None,
) -> List[tuple[str, str]]:
    """Last `limit` turns as (role, text) with role in {'user', 'assistant'}.

    When the window ends with the user turn `current`, that turn is dropped;
    callers append it themselves as the final prompt message.
    """
    turns = [_sender_text(m) for m in list(recent_history or [])[-limit:]]
    if current is not None and turns and turns[-1] == ("user", current):
        turns.pop()
    out = []
    for sender, text in turns:
        out.append(("user" if sender == "user" else "assistant", text))
    return out


def build_chat_messages(system_prompt: str, recent_history: Optional[Iterable[Any]], user_text: str) -> List[BaseMessage]:
    messages: List[BaseMessage] = [SystemMessage(content=system_prompt)]
    for role, text in context_turns(recent_history, current=user_text):
        if role == "user":
            messages.append(HumanMessage(content=text))
        else:
            messages.append(AIMessage(content=text))
    messages.append(HumanMessage(content=user_text))
    return messages
