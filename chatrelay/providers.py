"""External reply backends.

Each provider turns (system prompt, last six turns, user text) into its own
wire schema and pulls plain text back out of the response. Responses are
read through an ordered list of extractor functions; the first non-empty
result wins, and an unparseable response yields "".

Every transport problem (missing key, connection failure, non-2xx status,
timeout) is raised as ProviderError so the orchestrator can fall through to
the next backend.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, List, Optional, Sequence

import httpx
import openai
from loguru import logger

from .config import Settings
from .llm import build_chat_messages, context_turns, get_openai_chat
from .personas import PersonaRegistry


Extractor = Callable[[Any], str]


class ProviderError(Exception):
    def __init__(self, backend: str, status: Optional[int], body: str) -> None:
        self.backend = backend
        self.status = status
        self.body = body
        super().__init__(f"{backend} error: {status if status is not None else '-'} {body}")


def _join_text(parts: Any) -> str:
    if not isinstance(parts, list):
        return ""
    out = []
    for p in parts:
        if isinstance(p, str):
            out.append(p)
        elif isinstance(p, dict):
            out.append(str(p.get("text") or ""))
    return "".join(out)


def extract_text(data: Any, extractors: Sequence[Extractor]) -> str:
    for fn in extractors:
        try:
            text = fn(data)
        except (KeyError, IndexError, TypeError, AttributeError):
            continue
        if isinstance(text, str) and text.strip():
            return text.strip()
    return ""


# Gemini / PaLM response layouts, newest first
def _gemini_candidate_content_list(data: Any) -> str:
    return _join_text(data["candidates"][0]["content"])


def _gemini_candidate_content_str(data: Any) -> str:
    content = data["candidates"][0]["content"]
    return content if isinstance(content, str) else ""


def _gemini_candidate_parts(data: Any) -> str:
    return _join_text(data["candidates"][0]["content"]["parts"])


def _gemini_output_content(data: Any) -> str:
    return _join_text(data["output"][0]["content"])


def _gemini_top_level_content(data: Any) -> str:
    text = data["content"][0]["text"]
    return text if isinstance(text, str) else ""


GEMINI_EXTRACTORS: List[Extractor] = [
    _gemini_candidate_content_list,
    _gemini_candidate_content_str,
    _gemini_candidate_parts,
    _gemini_output_content,
    _gemini_top_level_content,
]


def _openai_message_str(result: Any) -> str:
    content = result.content
    return content if isinstance(content, str) else ""


def _openai_message_blocks(result: Any) -> str:
    return _join_text(result.content)


def _openai_raw_choices(result: Any) -> str:
    return result["choices"][0]["message"]["content"]


OPENAI_EXTRACTORS: List[Extractor] = [
    _openai_message_str,
    _openai_message_blocks,
    _openai_raw_choices,
]


class ReplyProvider(ABC):
    """Capability: conversation context in, reply text out."""

    name = "provider"

    def __init__(self, registry: PersonaRegistry) -> None:
        self.registry = registry

    @property
    @abstractmethod
    def configured(self) -> bool:
        ...

    def system_prompt(self, persona_id: str) -> str:
        return self.registry.resolve(persona_id).system_prompt

    @abstractmethod
    async def generate(self, user_text: str, persona_id: str, recent_history: Optional[Iterable[Any]] = None) -> str:
        ...


class GeminiProvider(ReplyProvider):
    name = "gemini"
    base_url = "https://generativelanguage.googleapis.com/v1beta2/models"

    def __init__(
        self,
        registry: PersonaRegistry,
        api_key: str,
        model: str = "chat-bison-001",
        timeout: float = 20.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(registry)
        self.api_key = api_key or ""
        self.model = model
        self.timeout = timeout
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def build_payload(self, user_text: str, persona_id: str, recent_history: Optional[Iterable[Any]]) -> dict:
        def msg(author: str, text: str) -> dict:
            return {"author": author, "content": [{"type": "text", "text": text}]}

        messages = [msg("system", self.system_prompt(persona_id))]
        for role, text in context_turns(recent_history, current=user_text):
            messages.append(msg(role, text))
        messages.append(msg("user", user_text))
        return {"messages": messages, "temperature": 0.7, "maxOutputTokens": 512}

    def _redact(self, text: str) -> str:
        return text.replace(self.api_key, "***") if self.api_key else text

    async def _post(self, url: str, body: dict) -> httpx.Response:
        params = {"key": self.api_key}
        if self._client is not None:
            return await self._client.post(url, params=params, json=body)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(url, params=params, json=body)

    async def generate(self, user_text: str, persona_id: str, recent_history: Optional[Iterable[Any]] = None) -> str:
        if not self.configured:
            raise ProviderError(self.name, None, "GEMINI_API_KEY not set")
        url = f"{self.base_url}/{self.model}:generateMessage"
        body = self.build_payload(user_text, persona_id, recent_history)
        try:
            res = await self._post(url, body)
        except httpx.HTTPError as e:
            raise ProviderError(self.name, None, self._redact(f"{type(e).__name__}: {e}")) from e
        if not res.is_success:
            raise ProviderError(self.name, res.status_code, self._redact(res.text))
        try:
            data = res.json()
        except ValueError as e:
            raise ProviderError(self.name, res.status_code, "response was not JSON") from e
        reply = extract_text(data, GEMINI_EXTRACTORS)
        if not reply:
            logger.warning(f"provider_unparsed | backend={self.name} keys={list(data)[:5] if isinstance(data, dict) else type(data).__name__}")
        return reply


class OpenAIProvider(ReplyProvider):
    name = "openai"

    def __init__(
        self,
        registry: PersonaRegistry,
        api_key: str,
        model: str = "gpt-3.5-turbo",
        timeout: float = 20.0,
        chat: Any = None,
    ) -> None:
        super().__init__(registry)
        self.api_key = api_key or ""
        self.model = model
        self.timeout = timeout
        self._chat = chat

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> Any:
        if self._chat is not None:
            return self._chat
        return get_openai_chat(self.api_key, self.model, 0.7, 512, self.timeout)

    async def generate(self, user_text: str, persona_id: str, recent_history: Optional[Iterable[Any]] = None) -> str:
        if not self.configured:
            raise ProviderError(self.name, None, "OPENAI_API_KEY not set")
        chat = self._client()
        if chat is None:
            raise ProviderError(self.name, None, "OpenAI chat client unavailable")
        messages = build_chat_messages(self.system_prompt(persona_id), recent_history, user_text)
        try:
            result = await chat.ainvoke(messages)
        except openai.APIStatusError as e:
            raise ProviderError(self.name, e.status_code, e.message) from e
        except (openai.APIError, httpx.HTTPError) as e:
            raise ProviderError(self.name, None, f"{type(e).__name__}: {e}") from e
        return extract_text(result, OPENAI_EXTRACTORS)


def build_providers(settings: Settings, registry: PersonaRegistry) -> List[ReplyProvider]:
    """Providers in fallback order: Gemini first, then OpenAI."""
    return [
        GeminiProvider(
            registry,
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            timeout=settings.provider_timeout_s,
        ),
        OpenAIProvider(
            registry,
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            timeout=settings.provider_timeout_s,
        ),
    ]
