from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest


def _find_repo_root(start: Path) -> Path:
    cur = start.resolve()
    for candidate in [cur, *cur.parents]:
        if (candidate / "chatrelay").is_dir() and (candidate / "tests").is_dir():
            return candidate
    return cur


repo_root_str = str(_find_repo_root(Path(__file__).parent))
if repo_root_str not in sys.path:
    sys.path.insert(0, repo_root_str)

from chatrelay.heuristics import HeuristicReplyEngine  # noqa: E402
from chatrelay.orchestrator import ReplyOrchestrator  # noqa: E402
from chatrelay.personas import PersonaRegistry  # noqa: E402
from chatrelay.providers import ProviderError, ReplyProvider  # noqa: E402
from chatrelay.store import ConversationStore  # noqa: E402


class FakeSocketServer:
    """Records handler registration and emits like socketio.AsyncServer."""

    def __init__(self) -> None:
        self.handlers: Dict[str, Any] = {}
        self.emitted: List[Tuple[str, Any, Optional[str]]] = []

    def on(self, event: str, handler: Any = None, namespace: Optional[str] = None) -> Any:
        self.handlers[event] = handler
        return handler

    async def emit(self, event: str, data: Any = None, to: Optional[str] = None, **kwargs: Any) -> None:
        self.emitted.append((event, data, to))

    def received(self, sid: str, event: Optional[str] = None) -> List[Any]:
        return [d for e, d, t in self.emitted if t == sid and (event is None or e == event)]


class FakeProvider(ReplyProvider):
    def __init__(self, name: str, reply: Any = "model reply", configured: bool = True, calls: Optional[list] = None) -> None:
        super().__init__(PersonaRegistry(prompts_dir=""))
        self.name = name
        self._reply = reply
        self._configured = configured
        self.calls = calls if calls is not None else []

    @property
    def configured(self) -> bool:
        return self._configured

    async def generate(self, user_text, persona_id, recent_history=None) -> str:
        self.calls.append((self.name, user_text, persona_id))
        if isinstance(self._reply, BaseException):
            raise self._reply
        if callable(self._reply):
            return await self._reply()
        return self._reply


def failing(name: str, status: Optional[int] = 500) -> ProviderError:
    return ProviderError(name, status, "boom")


@pytest.fixture
def registry() -> PersonaRegistry:
    return PersonaRegistry(prompts_dir="")


@pytest.fixture
def engine() -> HeuristicReplyEngine:
    return HeuristicReplyEngine()


@pytest.fixture
def store() -> ConversationStore:
    return ConversationStore()


@pytest.fixture
def sio() -> FakeSocketServer:
    return FakeSocketServer()


@pytest.fixture
def orchestrator(engine) -> ReplyOrchestrator:
    return ReplyOrchestrator(engine, [])
