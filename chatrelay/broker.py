from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger

from .orchestrator import ReplyOrchestrator
from .personas import PersonaRegistry
from .states import USER_AVATAR, ConnectionSession, ConnectionState, Message, Sender
from .store import ConversationStore


APOLOGY_TEXT = "Sorry, I am temporarily unable to answer. Please try again later."


def parse_new_message(payload: Any) -> Tuple[str, Optional[str]]:
    """Accept either raw text or {text, persona}; anything else becomes empty text."""
    if isinstance(payload, str):
        return payload, None
    if isinstance(payload, dict):
        text = payload.get("text")
        persona = payload.get("persona")
        return (
            text if isinstance(text, str) else ("" if text is None else str(text)),
            persona if isinstance(persona, str) and persona else None,
        )
    return "", None


def _snippet(text: str, limit: int = 200) -> str:
    raw = text or ""
    snippet = raw if len(raw) <= limit else raw[:limit] + "..."
    return " ".join(snippet.split())


class MessageBroker:
    """Real-time relay over a Socket.IO server.

    Per connection: CONNECTED -> ACTIVE (after history replay) -> CLOSED.
    Every store append is broadcast to all ACTIVE connections while holding
    one lock, so all clients observe the store's order.
    """

    def __init__(
        self,
        sio: Any,
        store: ConversationStore,
        registry: PersonaRegistry,
        orchestrator: ReplyOrchestrator,
    ) -> None:
        self.sio = sio
        self.store = store
        self.registry = registry
        self.orchestrator = orchestrator
        self.sessions: Dict[str, ConnectionSession] = {}
        self._publish_lock = asyncio.Lock()

    def register(self) -> "MessageBroker":
        self.sio.on("connect", self.on_connect)
        self.sio.on("disconnect", self.on_disconnect)
        self.sio.on("newMessage", self.on_new_message)
        self.sio.on("setLLM", self.on_set_llm)
        self.sio.on("setMedicalConsent", self.on_set_medical_consent)
        return self

    def active_sids(self) -> List[str]:
        return [sid for sid, s in self.sessions.items() if s.active]

    def _session(self, sid: str, event: str) -> Optional[ConnectionSession]:
        session = self.sessions.get(sid)
        if session is None or session.state == ConnectionState.CLOSED:
            logger.debug(f"chat_event_ignored | sid={sid} event={event} reason=no_session")
            return None
        return session

    async def publish(self, message: Message) -> None:
        async with self._publish_lock:
            self.store.append(message)
            data = message.to_dict()
            for sid in self.active_sids():
                await self.sio.emit("message", data, to=sid)

    async def on_connect(self, sid: str, environ: Any = None, auth: Any = None) -> None:
        session = ConnectionSession(sid=sid)
        self.sessions[sid] = session
        async with self._publish_lock:
            history = [m.to_dict() for m in self.store.snapshot()]
            await self.sio.emit("chatHistory", history, to=sid)
            session.state = ConnectionState.ACTIVE
        logger.info(f"chat_connect | sid={sid} history={len(history)} connections={len(self.sessions)}")

    async def on_disconnect(self, sid: str, reason: Any = None) -> None:
        session = self.sessions.pop(sid, None)
        if session is not None:
            session.state = ConnectionState.CLOSED
        logger.info(f"chat_disconnect | sid={sid} reason={reason} connections={len(self.sessions)}")

    async def on_set_llm(self, sid: str, value: Any = None) -> None:
        session = self._session(sid, "setLLM")
        if session is None:
            return
        session.use_external_model = bool(value)
        logger.info(f"chat_set_llm | sid={sid} use_external_model={session.use_external_model}")

    async def on_set_medical_consent(self, sid: str, value: Any = None) -> None:
        session = self._session(sid, "setMedicalConsent")
        if session is None:
            return
        session.medical_consent_given = bool(value)
        logger.info(f"chat_set_medical_consent | sid={sid} medical_consent_given={session.medical_consent_given}")

    async def on_new_message(self, sid: str, payload: Any = None) -> None:
        session = self._session(sid, "newMessage")
        if session is None:
            return
        text, requested = parse_new_message(payload)
        persona = self.registry.resolve(requested)
        if requested is not None and not self.registry.is_known(requested):
            logger.warning(f"chat_unknown_persona | sid={sid} requested={requested} using={persona.id}")
        logger.info(f"chat_user_message | sid={sid} persona={persona.id} requested={requested} msg='{_snippet(text)}'")

        await self.publish(Message(sender=Sender.USER, text=text, persona=persona.id, avatar=USER_AVATAR))

        try:
            reply = await self.orchestrator.decide(persona.id, session, text, self.store.snapshot())
        except Exception:
            logger.exception(f"chat_reply_failed | sid={sid} persona={persona.id}")
            reply = APOLOGY_TEXT
        await self.publish(
            Message(
                sender=Sender.BOT,
                text=reply,
                persona=persona.id,
                avatar=persona.bot_avatar,
                persona_label=persona.display_label,
            )
        )
        logger.info(f"chat_bot_reply | sid={sid} persona={persona.id} msg='{_snippet(reply)}'")
