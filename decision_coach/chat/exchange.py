"""Single-flight state for the send pipeline."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..llm_client import CancelToken


class SendState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"


@dataclass(eq=False)
class StreamingExchange:
    """One in-flight request: its cancel token and the buffer for one assistant message."""

    session_id: str
    assistant_message_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    token: CancelToken = field(default_factory=CancelToken)
    chunks: List[str] = field(default_factory=list)

    @property
    def aborted(self) -> bool:
        return self.token.aborted

    @property
    def text(self) -> str:
        return "".join(self.chunks)

    def append(self, chunk: str) -> str:
        self.chunks.append(chunk)
        return self.text


class ExchangeLock:
    """``Idle | Sending(exchange)`` with compare-and-set transitions.

    Both transitions are synchronous, so on a single event loop no other
    coroutine can observe a half-made change.
    """

    def __init__(self) -> None:
        self._current: Optional[StreamingExchange] = None

    @property
    def state(self) -> SendState:
        return SendState.IDLE if self._current is None else SendState.SENDING

    @property
    def current(self) -> Optional[StreamingExchange]:
        return self._current

    def try_acquire(self, exchange: StreamingExchange) -> bool:
        """Idle -> Sending(exchange). False if another exchange holds the lock."""

        if self._current is not None:
            return False
        self._current = exchange
        return True

    def release(self, exchange: StreamingExchange) -> bool:
        """Sending(exchange) -> Idle. False if ``exchange`` is not the holder."""

        if self._current is not exchange:
            return False
        self._current = None
        return True


__all__ = ["ExchangeLock", "SendState", "StreamingExchange"]
