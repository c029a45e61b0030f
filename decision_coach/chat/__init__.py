"""Conversation sessions, message state and the streaming send path."""

from __future__ import annotations

from .coalesce import CoalescingTimer
from .commands import CommandState, SlashCommand, parse_slash_command, remove_slash_command
from .db import ChatDB, PersistenceError
from .events import ChatEvent, ChatEventKind, EventBus
from .exchange import ExchangeLock, SendState, StreamingExchange
from .message_store import MessageStore
from .models import (
    Message,
    MessageRole,
    Session,
    SessionSummary,
    ToolExecution,
    ToolInputRequest,
    ToolInputStatus,
    TriggerType,
    is_provisional,
)
from .session_manager import SessionManager

__all__ = [
    "ChatDB",
    "ChatEvent",
    "ChatEventKind",
    "CoalescingTimer",
    "CommandState",
    "EventBus",
    "ExchangeLock",
    "Message",
    "MessageRole",
    "MessageStore",
    "PersistenceError",
    "SendState",
    "Session",
    "SessionManager",
    "SessionSummary",
    "SlashCommand",
    "StreamingExchange",
    "ToolExecution",
    "ToolInputRequest",
    "ToolInputStatus",
    "TriggerType",
    "is_provisional",
    "parse_slash_command",
    "remove_slash_command",
]
