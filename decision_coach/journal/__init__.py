"""Journal entries and profile data read by the chat orchestrator."""

from .db import JournalDB
from .models import Alternative, Decision, EmotionalFlag, ProfileContextItem, UserProfile

__all__ = [
    "Alternative",
    "Decision",
    "EmotionalFlag",
    "JournalDB",
    "ProfileContextItem",
    "UserProfile",
]
