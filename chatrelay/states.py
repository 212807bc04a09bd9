from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


USER_AVATAR = "/avatar.jpg"


class Sender(Enum):
    USER = "user"
    BOT = "bot"


class ConnectionState(Enum):
    CONNECTED = "connected"
    ACTIVE = "active"
    CLOSED = "closed"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Message:
    sender: Sender
    text: str
    persona: str
    avatar: str
    time: str = field(default_factory=utc_timestamp)
    persona_label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape shared by the Socket.IO events and the debug endpoints."""
        out: Dict[str, Any] = {
            "sender": self.sender.value,
            "text": self.text,
            "avatar": self.avatar,
            "persona": self.persona,
            "time": self.time,
        }
        if self.persona_label is not None:
            out["personaLabel"] = self.persona_label
        return out


@dataclass
class ConnectionSession:
    sid: str
    use_external_model: bool = False
    medical_consent_given: bool = False
    state: ConnectionState = ConnectionState.CONNECTED

    @property
    def active(self) -> bool:
        return self.state == ConnectionState.ACTIVE
