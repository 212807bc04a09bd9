from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional

from loguru import logger


DEFAULT_PERSONA = "dr_gupta"


@dataclass(frozen=True)
class PersonaDefinition:
    id: str
    system_prompt: str
    display_label: str
    bot_avatar: str


_BUILTIN_PERSONAS = (
    PersonaDefinition(
        id="dr_gupta",
        system_prompt=(
            "You are Dr. Gupta, a careful and compassionate medical assistant. Ask clear, focused"
            " clarifying questions to understand a patient's symptoms. Never give definitive diagnoses"
            " or medical orders. If the user reports red-flag symptoms (for example: severe chest pain,"
            " difficulty breathing, uncontrolled bleeding, sudden weakness, or loss of consciousness),"
            " clearly instruct them to seek emergency care immediately and advise calling local emergency"
            " services. Be concise, polite, and ask one or two follow-up questions at a time. Signpost"
            " limits of your advice and encourage seeking a licensed provider for diagnosis."
        ),
        display_label="Dr. Gupta",
        bot_avatar="/avatar3.jpg",
    ),
    PersonaDefinition(
        id="zoya",
        system_prompt=(
            "You are Zoya, a compassionate listener. Provide emotional support, ask gentle follow-up"
            " questions, and validate feelings. Avoid clinical medical advice. Keep tone warm and empathetic."
        ),
        display_label="Zoya",
        bot_avatar="/avatar4.jpg",
    ),
    PersonaDefinition(
        id="robin",
        system_prompt=(
            "You are Robin, an emergency-preparedness assistant. Provide calm, practical, safety-first"
            " instructions for urgent situations. If the user's situation sounds life-threatening,"
            " instruct them to call emergency services immediately. Ask concise clarifying questions"
            " relevant to immediate safety."
        ),
        display_label="Robin",
        bot_avatar="/avatar5.jpg",
    ),
    PersonaDefinition(
        id="rabindr",
        system_prompt=(
            "You are Rabindr, a poet and literary companion. Reply in a poetic, reflective tone. Offer"
            " metaphors, short verses, and thoughtful commentary. Keep responses creative and kind."
        ),
        display_label="Rabindr",
        bot_avatar="/avatar.jpg",
    ),
)


def _load_prompt_override(prompts_dir: Optional[str], persona_id: str) -> Optional[str]:
    # PROMPTS_DIR/<persona_id>.md replaces the built-in prompt when present
    if not prompts_dir:
        return None
    path = Path(prompts_dir) / f"{persona_id}.md"
    if not path.is_file():
        return None
    try:
        text = path.read_text(encoding="utf-8").strip()
    except Exception as e:
        logger.warning(f"Falling back to built-in system prompt for {persona_id}: {e}")
        return None
    return text or None


class PersonaRegistry:
    """Static persona table; unknown ids resolve to the default persona."""

    def __init__(
        self,
        personas: Iterable[PersonaDefinition] = _BUILTIN_PERSONAS,
        prompts_dir: Optional[str] = None,
        default_id: str = DEFAULT_PERSONA,
    ) -> None:
        if prompts_dir is None:
            prompts_dir = os.getenv("PROMPTS_DIR")
        table: Dict[str, PersonaDefinition] = {}
        for p in personas:
            override = _load_prompt_override(prompts_dir, p.id)
            if override:
                logger.info(f"persona_prompt_override | persona={p.id}")
                p = PersonaDefinition(
                    id=p.id,
                    system_prompt=override,
                    display_label=p.display_label,
                    bot_avatar=p.bot_avatar,
                )
            table[p.id] = p
        if default_id not in table:
            raise ValueError(f"default persona {default_id!r} is not registered")
        self._table = table
        self.default_id = default_id

    def ids(self) -> list[str]:
        return list(self._table)

    def is_known(self, persona_id: Optional[str]) -> bool:
        return bool(persona_id) and persona_id in self._table

    def resolve(self, persona_id: Optional[str]) -> PersonaDefinition:
        if persona_id and persona_id in self._table:
            return self._table[persona_id]
        return self._table[self.default_id]
