"""In-memory message log for the active session."""

from __future__ import annotations

from typing import Iterable, Iterator, List, Optional

from .events import ChatEventKind, EventBus
from .models import Message, MessageRole


class MessageStore:
    """Ordered messages of the active session with upsert-by-id semantics."""

    def __init__(self, events: Optional[EventBus] = None) -> None:
        self.events = events or EventBus()
        self.session_id: Optional[str] = None
        self._messages: List[Message] = []

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def snapshot(self) -> List[Message]:
        return list(self._messages)

    def get(self, message_id: str) -> Optional[Message]:
        position = self._position(message_id)
        return self._messages[position] if position is not None else None

    def upsert(self, message: Message) -> bool:
        """Replace the message with the same id in place, or append it.

        Returns True when the message was appended.
        """

        position = self._position(message.id)
        if position is None:
            self._messages.append(message)
        else:
            self._messages[position] = message
        self.events.emit(ChatEventKind.MESSAGE_UPSERTED, self.session_id, message=message)
        return position is None

    def remove(self, message_id: str) -> Optional[Message]:
        position = self._position(message_id)
        if position is None:
            return None
        removed = self._messages.pop(position)
        self.events.emit(ChatEventKind.MESSAGE_REMOVED, self.session_id, message_id=message_id)
        return removed

    def reset(self, session_id: Optional[str], messages: Iterable[Message] = ()) -> None:
        self.session_id = session_id
        self._messages = list(messages)
        self.events.emit(ChatEventKind.MESSAGES_RESET, session_id, count=len(self._messages))

    def rebind(self, session_id: str) -> None:
        """Point the log at a new id for the same conversation (provisional to durable)."""

        self.session_id = session_id

    def conversation(self, exclude_ids: Iterable[str] = ()) -> List[Message]:
        """User and assistant messages in order; tool scaffolding is left out."""

        excluded = set(exclude_ids)
        return [
            message
            for message in self._messages
            if message.role in (MessageRole.USER, MessageRole.ASSISTANT) and message.id not in excluded
        ]

    def _position(self, message_id: str) -> Optional[int]:
        for idx, message in enumerate(self._messages):
            if message.id == message_id:
                return idx
        return None


__all__ = ["MessageStore"]
