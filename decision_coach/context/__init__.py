"""Prompt context assembly for coaching turns."""

from __future__ import annotations

from .assembler import AssembledContext, ContextAssembler
from .digest import Verbosity, build_anchor_block, build_decision_digest
from .few_shot import ConversationType, select_examples
from .history import NON_SEMANTIC_MARKER, RelatedDecision, build_history_block
from .profile import build_profile_block

__all__ = [
    "AssembledContext",
    "ContextAssembler",
    "ConversationType",
    "NON_SEMANTIC_MARKER",
    "RelatedDecision",
    "Verbosity",
    "build_anchor_block",
    "build_decision_digest",
    "build_history_block",
    "build_profile_block",
    "select_examples",
]
