from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import socketio
from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from .broker import MessageBroker
from .config import Settings, get_settings
from .heuristics import HeuristicReplyEngine
from .orchestrator import ReplyOrchestrator
from .personas import DEFAULT_PERSONA, PersonaRegistry
from .providers import build_providers
from .store import ConversationStore


MAX_TAIL = 50
DEFAULT_TAIL = 20


@dataclass
class Relay:
    settings: Settings
    store: ConversationStore
    registry: PersonaRegistry
    engine: HeuristicReplyEngine
    orchestrator: ReplyOrchestrator
    sio: Any
    broker: MessageBroker
    api: FastAPI
    asgi: Any


def create_socketio_server(settings: Settings) -> socketio.AsyncServer:
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=list(settings.cors_origins),
        async_handlers=True,
        # chatHistory is emitted from the connect handler
        always_connect=True,
        max_http_buffer_size=1_000_000,
    )


def create_api(
    settings: Settings,
    store: ConversationStore,
    engine: HeuristicReplyEngine,
) -> FastAPI:
    """Read-only debug surface; nothing here appends to the store."""
    api = FastAPI(title="chatrelay", docs_url=None, redoc_url=None)
    api.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept"],
    )

    @api.get("/_status")
    async def status() -> Dict[str, Any]:
        return {
            "up": True,
            "geminiConfigured": settings.gemini_configured,
            "openaiConfigured": settings.openai_configured,
        }

    @api.get("/_testReply")
    async def test_reply(q: str = "", persona: Optional[str] = None) -> Dict[str, Any]:
        persona_id = persona or DEFAULT_PERSONA
        reply = engine.reply(q, persona_id, [])
        logger.info(f"test_reply | persona={persona_id} q='{q[:80]}' reply='{reply[:80]}'")
        return {"query": q, "persona": persona_id, "reply": reply}

    @api.get("/_lastMessages")
    async def last_messages(n: int = Query(DEFAULT_TAIL)) -> Dict[str, Any]:
        n = min(MAX_TAIL, n)
        return {"count": len(store), "last": [m.to_dict() for m in store.tail(n)]}

    return api


def build_relay(
    settings: Optional[Settings] = None,
    store: Optional[ConversationStore] = None,
    registry: Optional[PersonaRegistry] = None,
    orchestrator: Optional[ReplyOrchestrator] = None,
    sio: Any = None,
) -> Relay:
    settings = settings or get_settings()
    store = store if store is not None else ConversationStore()
    registry = registry or PersonaRegistry(prompts_dir=settings.prompts_dir)
    engine = orchestrator.engine if orchestrator is not None else HeuristicReplyEngine()
    if orchestrator is None:
        orchestrator = ReplyOrchestrator(
            engine,
            build_providers(settings, registry),
            timeout_s=settings.provider_timeout_s,
        )
    sio = sio if sio is not None else create_socketio_server(settings)
    broker = MessageBroker(sio, store, registry, orchestrator).register()
    api = create_api(settings, store, engine)
    asgi = socketio.ASGIApp(sio, other_asgi_app=api, socketio_path="socket.io")
    logger.info(
        f"relay_ready | gemini={settings.gemini_configured} openai={settings.openai_configured} "
        f"personas={','.join(registry.ids())}"
    )
    return Relay(
        settings=settings,
        store=store,
        registry=registry,
        engine=engine,
        orchestrator=orchestrator,
        sio=sio,
        broker=broker,
        api=api,
        asgi=asgi,
    )
