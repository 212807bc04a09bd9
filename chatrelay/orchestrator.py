from __future__ import annotations

import asyncio
import time
from typing import Any, Iterable, List, Optional, Sequence

from loguru import logger

from .heuristics import HeuristicReplyEngine
from .personas import DEFAULT_PERSONA
from .providers import ProviderError, ReplyProvider
from .states import ConnectionSession


MEDICAL_PERSONA = DEFAULT_PERSONA


class ReplyOrchestrator:
    """Chooses between external providers and the heuristic engine.

    Order: providers (as given, skipping unconfigured ones) -> heuristic.
    External use requires the connection's opt-in, and for the medical
    persona also its explicit consent.
    """

    def __init__(
        self,
        engine: HeuristicReplyEngine,
        providers: Sequence[ReplyProvider] = (),
        timeout_s: Optional[float] = 20.0,
    ) -> None:
        self.engine = engine
        self.providers: List[ReplyProvider] = list(providers)
        self.timeout_s = timeout_s

    def configured_providers(self) -> List[ReplyProvider]:
        return [p for p in self.providers if p.configured]

    def external_allowed(self, persona_id: str, session: ConnectionSession) -> bool:
        if not session.use_external_model:
            return False
        if persona_id == MEDICAL_PERSONA and not session.medical_consent_given:
            return False
        return True

    async def _call(self, provider: ReplyProvider, user_text: str, persona_id: str, history: Any) -> str:
        coro = provider.generate(user_text, persona_id, history)
        if not self.timeout_s:
            return await coro
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            raise ProviderError(provider.name, None, f"timed out after {self.timeout_s:.0f}s") from e

    async def decide(
        self,
        persona_id: str,
        session: ConnectionSession,
        user_text: str,
        history: Optional[Iterable[Any]] = None,
    ) -> str:
        history = list(history or [])
        if not self.external_allowed(persona_id, session):
            return self.engine.reply(user_text, persona_id, history)

        for provider in self.configured_providers():
            t0 = time.perf_counter()
            try:
                text = await self._call(provider, user_text, persona_id, history)
            except ProviderError as e:
                logger.warning(
                    f"provider_failed | backend={e.backend} status={e.status} persona={persona_id} "
                    f"body='{' '.join(str(e.body).split())[:200]}'"
                )
                continue
            dt = time.perf_counter() - t0
            if not text:
                logger.warning(f"provider_empty | backend={provider.name} persona={persona_id} dt={dt:.2f}s")
                continue
            logger.info(f"llm_call | backend={provider.name} persona={persona_id} dt={dt:.2f}s")
            return text

        logger.info(f"provider_fallback | persona={persona_id} using heuristic")
        return self.engine.reply(user_text, persona_id, history)
