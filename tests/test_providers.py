from __future__ import annotations

import asyncio
import json

import httpx
import openai
import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from chatrelay.config import Settings
from chatrelay.llm import context_turns
from chatrelay.providers import (
    GEMINI_EXTRACTORS,
    OPENAI_EXTRACTORS,
    GeminiProvider,
    ReplyProvider,
    OpenAIProvider,
    ProviderError,
    build_providers,
    extract_text,
)


HISTORY = [
    {"sender": "user", "text": f"u{i}"} if i % 2 == 0 else {"sender": "bot", "text": f"b{i}"}
    for i in range(8)
]


@pytest.mark.parametrize(
    "data,expected",
    [
        ({"candidates": [{"content": [{"text": "a"}, {"text": "b"}]}]}, "ab"),
        ({"candidates": [{"author": "1", "content": " plain "}]}, "plain"),
        ({"candidates": [{"content": {"parts": [{"text": "parts"}]}}]}, "parts"),
        ({"output": [{"content": [{"text": "out"}]}]}, "out"),
        ({"content": [{"text": "top"}]}, "top"),
        ({"candidates": []}, ""),
        ({"unexpected": True}, ""),
        ([], ""),
    ],
)
def test_gemini_extractors(data, expected):
    assert extract_text(data, GEMINI_EXTRACTORS) == expected


def test_openai_extractors():
    assert extract_text(AIMessage(content=" hi "), OPENAI_EXTRACTORS) == "hi"
    assert extract_text(AIMessage(content=[{"type": "text", "text": "x"}, "y"]), OPENAI_EXTRACTORS) == "xy"
    assert extract_text({"choices": [{"message": {"content": "raw"}}]}, OPENAI_EXTRACTORS) == "raw"


def _gemini(registry, handler, api_key="secret-key"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiProvider(registry, api_key=api_key, model="chat-bison-001", client=client)


def test_gemini_builds_payload_and_parses(registry):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = request.url
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"candidates": [{"content": [{"type": "text", "text": "poetic reply"}]}]})

    provider = _gemini(registry, handler)
    out = asyncio.run(provider.generate("write a verse", "rabindr", HISTORY))
    assert out == "poetic reply"
    assert seen["url"].path.endswith("/models/chat-bison-001:generateMessage")
    assert seen["url"].params["key"] == "secret-key"
    messages = seen["body"]["messages"]
    assert messages[0]["author"] == "system"
    assert messages[0]["content"][0]["text"] == registry.resolve("rabindr").system_prompt
    # six context turns between the system prompt and the user text
    assert [m["content"][0]["text"] for m in messages[1:-1]] == ["u2", "b3", "u4", "b5", "u6", "b7"]
    assert [m["author"] for m in messages[1:3]] == ["user", "assistant"]
    assert messages[-1] == {"author": "user", "content": [{"type": "text", "text": "write a verse"}]}
    assert seen["body"]["maxOutputTokens"] == 512


def test_gemini_non_success_raises_with_status(registry):
    def handler(request):
        return httpx.Response(403, text="bad key secret-key")

    with pytest.raises(ProviderError) as exc:
        asyncio.run(_gemini(registry, handler).generate("hi", "zoya", []))
    assert exc.value.backend == "gemini"
    assert exc.value.status == 403
    assert "secret-key" not in exc.value.body


def test_gemini_transport_error_raises(registry):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProviderError) as exc:
        asyncio.run(_gemini(registry, handler).generate("hi", "zoya", []))
    assert exc.value.status is None


def test_gemini_missing_key(registry):
    provider = GeminiProvider(registry, api_key="")
    assert provider.configured is False
    with pytest.raises(ProviderError) as exc:
        asyncio.run(provider.generate("hi", "zoya", []))
    assert exc.value.status is None
    assert "GEMINI_API_KEY" in exc.value.body


class FakeChat:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.messages = None

    async def ainvoke(self, messages):
        self.messages = messages
        if self.error is not None:
            raise self.error
        return self.result


def test_openai_builds_langchain_messages(registry):
    chat = FakeChat(result=AIMessage(content="I hear you."))
    provider = OpenAIProvider(registry, api_key="k", chat=chat)
    out = asyncio.run(provider.generate("I feel low", "zoya", HISTORY))
    assert out == "I hear you."
    assert isinstance(chat.messages[0], SystemMessage)
    assert chat.messages[0].content == registry.resolve("zoya").system_prompt
    assert isinstance(chat.messages[1], HumanMessage) and chat.messages[1].content == "u2"
    assert isinstance(chat.messages[2], AIMessage) and chat.messages[2].content == "b3"
    assert isinstance(chat.messages[-1], HumanMessage) and chat.messages[-1].content == "I feel low"
    assert len(chat.messages) == 8


def test_openai_sdk_errors_become_provider_errors(registry):
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    chat = FakeChat(error=openai.APIConnectionError(request=request))
    provider = OpenAIProvider(registry, api_key="k", chat=chat)
    with pytest.raises(ProviderError) as exc:
        asyncio.run(provider.generate("hi", "zoya", []))
    assert exc.value.backend == "openai"


def test_openai_missing_key(registry):
    with pytest.raises(ProviderError):
        asyncio.run(OpenAIProvider(registry, api_key="").generate("hi", "zoya", []))


def test_build_providers_order(registry):
    providers = build_providers(Settings(gemini_api_key="g", openai_api_key=""), registry)
    assert [p.name for p in providers] == ["gemini", "openai"]
    assert [p.configured for p in providers] == [True, False]


def test_current_user_turn_is_not_repeated_in_context():
    history = HISTORY[:7] + [{"sender": "user", "text": "I feel low"}]
    assert context_turns(history, current="I feel low") == [
        ("user", "u2"), ("assistant", "b3"), ("user", "u4"), ("assistant", "b5"), ("user", "u6"),
    ]
    # a bot turn with the same text stays
    assert context_turns([{"sender": "bot", "text": "hi"}], current="hi") == [("assistant", "hi")]


def test_providers_send_the_current_turn_once(registry):
    history = HISTORY[:7] + [{"sender": "user", "text": "I feel low"}]
    chat = FakeChat(result=AIMessage(content="ok"))
    asyncio.run(OpenAIProvider(registry, api_key="k", chat=chat).generate("I feel low", "zoya", history))
    assert [m.content for m in chat.messages[1:]] == ["u2", "b3", "u4", "b5", "u6", "I feel low"]

    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"candidates": [{"content": "ok"}]})

    asyncio.run(_gemini(registry, handler).generate("I feel low", "zoya", history))
    texts = [m["content"][0]["text"] for m in seen["body"]["messages"][1:]]
    assert texts == ["u2", "b3", "u4", "b5", "u6", "I feel low"]


def test_reply_provider_is_abstract(registry):
    with pytest.raises(TypeError):
        ReplyProvider(registry)
