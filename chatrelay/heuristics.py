from __future__ import annotations

import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from loguru import logger


HISTORY_WINDOW = 6

# dr_gupta
EMERGENCY_REPLY = (
    "These symptoms may be serious. If this is an emergency, please call your local emergency number now. "
    "Can you confirm your location and whether someone can call emergency services for you?"
)
SUMMARY_REPLY = (
    "Thank you — based on what you've shared I have a clearer picture. I can suggest next steps or ask more "
    "focused questions; would you like guidance on self-care, or should I ask about recent vitals "
    "(temperature, blood pressure) and see if urgent care is advised?"
)
MORE_DETAIL_REPLY = (
    "Thanks for the information. Could you provide any additional details such as onset, severity, "
    "or associated symptoms so I can help further?"
)
ONSET_QUESTION = "When did these symptoms start?"
DURATION_QUESTION = "How long have you been experiencing them?"
SEVERITY_QUESTION = "How severe would you rate the symptoms on a scale of 1 to 10?"
LOCATION_QUESTION = "Where exactly is the pain or discomfort located?"
ASSOCIATED_QUESTION = (
    "Are you experiencing any other symptoms such as fever, cough, nausea, or shortness of breath?"
)
HISTORY_QUESTION = "Do you have any relevant medical history, allergies, or current medications?"

# zoya
CRISIS_REPLY = (
    "I'm really sorry you're feeling this way. If you're in immediate danger or might hurt yourself, please "
    "contact your local emergency services or a crisis line right now. If you can, tell me whether you're "
    "safe at this moment and if someone is nearby who can help — I can also help find crisis resources in "
    "your area."
)
ZOYA_GREETING = "Hi — I'm Zoya. I'm here to listen whenever you're ready. What's been on your mind lately?"
ZOYA_FEELING_TEMPLATE = (
    "I hear that you're feeling {feeling}. That sounds really difficult — would you like to tell me more "
    "about what's been happening or when this started?"
)
ZOYA_HELP = (
    "I'm here for a heart-to-heart. You can tell me anything — no judgement. Would you like to talk about "
    "what's been most heavy for you right now?"
)
ZOYA_QUESTION = (
    "That's a thoughtful question — take your time. Would you like my perspective or would you prefer I "
    "just listen and reflect what you're saying?"
)
ZOYA_GROUNDING = (
    "That sounds really stressful. When it feels overwhelming, some people try a few grounding steps — "
    "breathe slowly for a minute, notice five things you can see, and try to name one small thing that "
    "feels manageable. Would you like some ideas tailored to your situation?"
)
ZOYA_SUPPORT_SEEKING = (
    "It can be really brave to seek support. I can help you think through what to look for in a therapist, "
    "how to start the conversation, or find resources. What would help most right now?"
)
ZOYA_DEFAULT = (
    "Thank you for trusting me with this. I'm here to support you — tell me more about what you're feeling "
    "or what happened, and we'll take it one step at a time."
)

# robin
ROBIN_ESCALATION = (
    "If this is an actual emergency call your local emergency services immediately. Tell me the situation "
    "and I'll guide you on immediate safety steps."
)
ROBIN_GREETING = "Robin here. What's the emergency or situation you're facing?"
ROBIN_QUESTION = "Stay calm. Describe what's happening and I'll suggest steps."
ROBIN_DEFAULT = "If someone is in danger, prioritize safety and call emergency services."

# rabindr
RABINDR_GREETING = "Greetings — I'm Rabindr. Would you like a poem or a discussion about poetry?"
RABINDR_VERSE = (
    "Here's a short verse: 'In whispered winds the stories start, a quiet bloom within the heart.' "
    "Would you like more like this?"
)
RABINDR_QUESTION = "A question! Let's explore it with a sprinkle of metaphor."
RABINDR_DEFAULT = "Poetry is a conversation with the soul — tell me a word and I'll answer in rhyme."

# anything else
FALLBACK_GREETING = "Hello! How can I assist you today?"
FALLBACK_HOW_ARE_YOU = "I'm doing well, thanks for asking — I'm here to help. What's on your mind?"
FALLBACK_HELP = "Sure, I am here to help! Please ask your question."
FALLBACK_WEATHER = "Sorry, I can't provide real-time weather info yet."
FALLBACK_QUESTION = "That's an interesting question."
FALLBACK_DEFAULT = "Thanks for sharing!"


_GREETING = re.compile(r"\b(hello|hi)\b")

_RED_FLAG = re.compile(
    r"\b(chest pain|severe chest|difficulty breathing|shortness of breath|unconscious|faint|severe bleeding"
    r"|shock|sudden weakness|stroke|slurred speech)\b"
)

_TIME_UNIT = r"(hours|hour|days|day|weeks|week|months|month)"
_ONSET_WORDS = re.compile(r"\b(onset|when did|started|since)\b")
_ONSET_SPAN = re.compile(r"\b\d+\s*" + _TIME_UNIT + r"\b")
_DURATION = re.compile(r"\b" + _TIME_UNIT + r"\b")
_SEVERITY = re.compile(r"\b([1-9]0?|mild|moderate|severe|intense)\b")
_LOCATION = re.compile(
    r"\b(left|right|upper|lower|stomach|chest|abdomen|head|back|arm|leg|throat|neck|jaw)\b"
)
_PAIN = re.compile(r"\b(pain|ache|sore|hurt)\b")
_ASSOCIATED = re.compile(
    r"\b(fever|cough|nausea|vomit|dizzy|shortness of breath|rash|bleed|swelling|diarrhea|vomiting)\b"
)
_MEDICAL_HISTORY = re.compile(
    r"\b(history|diabetes|hypertension|medication|allergy|allergies|asthma|cancer|surgery)\b"
)

# Fingerprints of the questions above, matched against the bot's own turns
_ASKED_ONSET = re.compile(r"when did these|when did|when did your|when did it start|when did symptoms")
_ASKED_DURATION = re.compile(r"how long have|how long have you|how long")
_ASKED_SEVERITY = re.compile(r"how severe|rate the symptoms|on a scale of")
_ASKED_LOCATION = re.compile(r"where exactly|where is the pain|location of the pain|where exactly is")
_ASKED_ASSOCIATED = re.compile(
    r"any other symptoms|are you experiencing any other|associated symptoms|fever, cough"
)
_ASKED_HISTORY = re.compile(
    r"medical history|any relevant medical history|current medications|allergies|do you have any relevant"
)

_CRISIS_KEYWORDS = [
    "suicide", "kill myself", "end my life", "want to die", "hurting myself", "harm myself",
    "i cant go on", "i can't go on", "i cant take it",
]
FEELING_WORDS = [
    "sad", "lonely", "anxious", "anxiety", "stressed", "overwhelmed", "depressed", "hopeless",
    "angry", "upset", "tearful", "hurt",
]
_STRESS_HINTS = ["stress", "busy", "tired", "burnout", "overwork", "panic", "panic attack"]
_SUPPORT_HINTS = ["therap", "counsel", "doctor", "psych"]


def _normalize(text: Any) -> str:
    return str(text or "").replace("’", "'").lower()


def _turn(m: Any) -> Tuple[str, str]:
    """(sender, text) for a Message or a plain dict."""
    if isinstance(m, dict):
        sender = m.get("sender", "")
        text = m.get("text", "")
    else:
        sender = getattr(m, "sender", "")
        text = getattr(m, "text", "")
    sender = getattr(sender, "value", sender)
    return str(sender or ""), _normalize(text)


def split_history(recent_history: Optional[Iterable[Any]], window: int = HISTORY_WINDOW) -> Tuple[str, str]:
    """Join the last `window` turns into (user_text, bot_text) blobs."""
    turns = [_turn(m) for m in list(recent_history or [])[-window:]]
    user = "\n".join(t for s, t in turns if s == "user")
    bot = "\n".join(t for s, t in turns if s == "bot")
    return user, bot


def _is_question(msg: str) -> bool:
    return msg.rstrip().endswith("?")


class HeuristicReplyEngine:
    """Deterministic rule chains, one per persona; first matching rule wins."""

    def __init__(self, window: int = HISTORY_WINDOW) -> None:
        self.window = window
        self._chains: Dict[str, Callable[[str, str, str], str]] = {
            "dr_gupta": self._dr_gupta,
            "zoya": self._zoya,
            "robin": self._robin,
            "rabindr": self._rabindr,
        }

    def reply(self, user_text: Any, persona_id: Optional[str], recent_history: Optional[Iterable[Any]] = None) -> str:
        msg = _normalize(user_text)
        user_ctx, bot_ctx = split_history(recent_history, self.window)
        chain = self._chains.get(persona_id or "", self._fallback)
        text = chain(msg, user_ctx, bot_ctx)
        logger.debug(f"heuristic_reply | persona={persona_id} rule_reply='{text[:60]}'")
        return text

    def _dr_gupta(self, msg: str, user_ctx: str, bot_ctx: str) -> str:
        said = msg + "\n" + user_ctx
        if _RED_FLAG.search(said):
            return EMERGENCY_REPLY

        slots: List[Tuple[bool, bool, str]] = [
            (
                bool(_ONSET_WORDS.search(msg) or _ONSET_SPAN.search(said)),
                bool(_ASKED_ONSET.search(bot_ctx)),
                ONSET_QUESTION,
            ),
            (bool(_DURATION.search(said)), bool(_ASKED_DURATION.search(bot_ctx)), DURATION_QUESTION),
            (bool(_SEVERITY.search(said)), bool(_ASKED_SEVERITY.search(bot_ctx)), SEVERITY_QUESTION),
            (bool(_LOCATION.search(said)), bool(_ASKED_LOCATION.search(bot_ctx)), LOCATION_QUESTION),
            (bool(_ASSOCIATED.search(said)), bool(_ASKED_ASSOCIATED.search(bot_ctx)), ASSOCIATED_QUESTION),
            (bool(_MEDICAL_HISTORY.search(said)), bool(_ASKED_HISTORY.search(bot_ctx)), HISTORY_QUESTION),
        ]
        mentions_pain = bool(_PAIN.search(said))

        if sum(1 for filled, _, _ in slots if filled) >= 4:
            return SUMMARY_REPLY

        for filled, asked, question in slots:
            if filled or asked:
                continue
            if question is LOCATION_QUESTION and not mentions_pain:
                continue
            return question
        return MORE_DETAIL_REPLY

    def _zoya(self, msg: str, user_ctx: str, bot_ctx: str) -> str:
        for k in _CRISIS_KEYWORDS:
            if k in msg:
                logger.warning("zoya_crisis_redirect | crisis language detected")
                return CRISIS_REPLY
        if _GREETING.search(msg):
            return ZOYA_GREETING
        for f in FEELING_WORDS:
            if f in msg:
                return ZOYA_FEELING_TEMPLATE.format(feeling=f)
        if "help" in msg:
            return ZOYA_HELP
        if _is_question(msg):
            return ZOYA_QUESTION
        if any(s in msg for s in _STRESS_HINTS):
            return ZOYA_GROUNDING
        if any(s in msg for s in _SUPPORT_HINTS):
            return ZOYA_SUPPORT_SEEKING
        return ZOYA_DEFAULT

    def _robin(self, msg: str, user_ctx: str, bot_ctx: str) -> str:
        if any(k in msg for k in ("emergency", "fire", "help")):
            return ROBIN_ESCALATION
        if _GREETING.search(msg):
            return ROBIN_GREETING
        if _is_question(msg):
            return ROBIN_QUESTION
        return ROBIN_DEFAULT

    def _rabindr(self, msg: str, user_ctx: str, bot_ctx: str) -> str:
        if _GREETING.search(msg):
            return RABINDR_GREETING
        if "poem" in msg or "verse" in msg:
            return RABINDR_VERSE
        if _is_question(msg):
            return RABINDR_QUESTION
        return RABINDR_DEFAULT

    def _fallback(self, msg: str, user_ctx: str, bot_ctx: str) -> str:
        if _GREETING.search(msg):
            return FALLBACK_GREETING
        if "how are you" in msg:
            return FALLBACK_HOW_ARE_YOU
        if "help" in msg:
            return FALLBACK_HELP
        if "weather" in msg:
            return FALLBACK_WEATHER
        if _is_question(msg):
            return FALLBACK_QUESTION
        return FALLBACK_DEFAULT
