from __future__ import annotations

from typing import List

from .states import Message


class ConversationStore:
    """Append-only, process-lifetime message log shared by every connection.

    Confined to the event loop thread; the broker serialises append+broadcast.
    No eviction: the log grows for the life of the process.
    """

    def __init__(self) -> None:
        self._messages: List[Message] = []

    def append(self, message: Message) -> int:
        self._messages.append(message)
        return len(self._messages)

    def snapshot(self) -> List[Message]:
        return list(self._messages)

    def tail(self, n: int) -> List[Message]:
        if n <= 0:
            return []
        return self._messages[-n:]

    def __len__(self) -> int:
        return len(self._messages)
