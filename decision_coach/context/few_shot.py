"""Curated example exchanges that show the model the expected coaching shape."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .prompts import section


class ConversationType(str, Enum):
    GENERAL = "general"
    DECISION_LINKED = "decision-linked"
    TOOL_ASSISTED = "tool-assisted"


@dataclass(frozen=True)
class ExampleExchange:
    user: str
    assistant: str


PATTERN_KEYWORDS: Tuple[str, ...] = ("pattern", "similar", "past decision")

FEW_SHOT_EXAMPLES: Dict[str, List[ExampleExchange]] = {
    "decision-linked": [
        ExampleExchange(
            user="I'm leaning towards quitting my job to go freelance, but I keep second-guessing it.",
            assistant=(
                "That pull in both directions is worth listening to. If you imagine it is a year "
                "from now and freelancing did not work out, what do you think the most likely reason would be?"
            ),
        ),
        ExampleExchange(
            user="Should I move to a new city for a fresh start?",
            assistant=(
                "A fresh start can help, though problems sometimes move with us. What specifically "
                "do you expect to be different there that cannot change where you are now?"
            ),
        ),
        ExampleExchange(
            user="I have two job offers. One pays more, the other has a better team.",
            assistant=(
                "Money and people pull on very different needs. Thinking back to jobs you enjoyed, "
                "which of the two made the bigger difference to your day?"
            ),
        ),
    ],
    "pattern-recognition": [
        ExampleExchange(
            user="Do you notice any patterns in how I make decisions?",
            assistant=(
                "Several of your entries were made under time pressure and later rated lower than you "
                "expected. When you feel rushed, what usually happens to how you weigh your options?"
            ),
        ),
        ExampleExchange(
            user="Have I been in a similar situation before?",
            assistant=(
                "Your entry about changing teams last spring had the same tension between safety and "
                "growth. Looking back, what did you learn there that applies now?"
            ),
        ),
    ],
    "tool-interpretation": [
        ExampleExchange(
            user='The user just ran the "Calibration Coach" tool.',
            assistant=(
                "Your confidence runs about two points above how things actually turn out. Which kind "
                "of decision do you think most often catches you overestimating?"
            ),
        ),
        ExampleExchange(
            user='The user just ran the "Pre-Mortem" tool.',
            assistant=(
                "The scenario that stands out is running out of savings before the first clients sign. "
                "What early signal would tell you that is starting to happen?"
            ),
        ),
        ExampleExchange(
            user='The user just ran the "Bias Detector" tool.',
            assistant=(
                "Sunk cost looks like the strongest pull here, since two years already went into this path. "
                "If you were starting fresh today, would you still choose it?"
            ),
        ),
    ],
    "bias-detection": [
        ExampleExchange(
            user="Everyone I asked agrees this is the right move.",
            assistant=(
                "Agreement feels reassuring, though it matters who you asked. Is there someone who "
                "would likely disagree, and what would they say?"
            ),
        ),
        ExampleExchange(
            user="I've already put so much into this project, I can't stop now.",
            assistant=(
                "What you have already spent is gone either way. Looking only at the effort still "
                "ahead, would you start this project today?"
            ),
        ),
    ],
}


def classify(
    conversation_type: ConversationType,
    last_user_text: str = "",
    tool_id: Optional[str] = None,
) -> Optional[str]:
    """Pick the example category for the current turn, or None for no examples."""

    if tool_id or conversation_type is ConversationType.TOOL_ASSISTED:
        return "tool-interpretation"
    if conversation_type is ConversationType.DECISION_LINKED:
        return "decision-linked"
    lowered = (last_user_text or "").lower()
    if any(keyword in lowered for keyword in PATTERN_KEYWORDS):
        return "pattern-recognition"
    if "bias" in lowered:
        return "bias-detection"
    return None


def select_examples(
    conversation_type: ConversationType,
    last_user_text: str = "",
    tool_id: Optional[str] = None,
    count: int = 2,
) -> List[ExampleExchange]:
    category = classify(conversation_type, last_user_text, tool_id)
    if category is None or count <= 0:
        return []
    return FEW_SHOT_EXAMPLES[category][:count]


def format_examples(examples: List[ExampleExchange]) -> str:
    if not examples:
        return ""
    lines = ["", "Here is how a good coaching exchange looks:", ""]
    for idx, example in enumerate(examples, start=1):
        lines.append(f"Example {idx}:")
        lines.append(f"User: {example.user}")
        lines.append(f"Assistant: {example.assistant}")
        lines.append("")
    return section("EXAMPLE CONVERSATIONS", lines)


__all__ = [
    "ConversationType",
    "ExampleExchange",
    "FEW_SHOT_EXAMPLES",
    "PATTERN_KEYWORDS",
    "classify",
    "format_examples",
    "select_examples",
]
