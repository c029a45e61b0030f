"""Observable channel for chat state changes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class ChatEventKind(str, Enum):
    MESSAGE_UPSERTED = "message_upserted"
    MESSAGE_REMOVED = "message_removed"
    MESSAGES_RESET = "messages_reset"
    SESSION_CHANGED = "session_changed"
    SESSIONS_REFRESHED = "sessions_refreshed"
    SEND_STATE_CHANGED = "send_state_changed"
    BACKEND_STATUS = "backend_status"
    ERROR = "error"


@dataclass(frozen=True)
class ChatEvent:
    kind: ChatEventKind
    session_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)


Listener = Callable[[ChatEvent], None]


class EventBus:
    """Synchronous fan-out to subscribed listeners.

    A listener that raises is logged and skipped; the rest still receive the event.
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []
        self.logger = logging.getLogger("decision_coach.events")

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, kind: ChatEventKind, session_id: Optional[str] = None, **payload: Any) -> None:
        event = ChatEvent(kind=kind, session_id=session_id, payload=payload)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                self.logger.warning("Event listener failed for %s", kind.value, exc_info=True)


__all__ = ["ChatEvent", "ChatEventKind", "EventBus", "Listener"]
