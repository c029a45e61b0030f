"""Gary Klein pre-mortem: imagine the choice failed, then work backwards."""

from __future__ import annotations

import asyncio
from typing import Any, Dict

from ..context.prompts import truncate
from ..journal.models import Alternative, Decision
from ..llm_client import ChatMessage, OllamaClient
from .base import (
    CoachingTool,
    FieldType,
    FieldValidation,
    ToolCategory,
    ToolExecutionContext,
    ToolExecutionError,
    ToolInputField,
    ToolResult,
)


def choose_alternative(decision: Decision, index: Any = None) -> Alternative:
    """Alternative at 1-based ``index``, else the selected one, else the first."""

    alternatives = decision.alternatives
    if index:
        position = int(index) - 1
        if 0 <= position < len(alternatives):
            return alternatives[position]
    selected = decision.selected_alternative
    if selected is not None:
        return selected
    if alternatives:
        return alternatives[0]
    raise ToolExecutionError("No alternatives found for this decision. Add alternatives first.")


def build_pre_mortem_prompt(decision: Decision, alternative: Alternative) -> str:
    lines = [
        "# PRE-MORTEM EXERCISE",
        "You are running a pre-mortem using Gary Klein's method.",
        "",
        "## THE DECISION",
        f"**Problem:** {decision.problem_statement}",
    ]
    if decision.situation:
        lines.append(f"**Context:** {truncate(decision.situation, 500)}")
    lines.extend(["", "## THE CHOICE", f"**Option being analyzed:** {alternative.label}"])
    if alternative.pros:
        lines.append(f"**Pros:** {', '.join(alternative.pros)}")
    if alternative.cons:
        lines.append(f"**Cons:** {', '.join(alternative.cons)}")
    lines.extend(
        [
            "",
            "## YOUR TASK",
            "It is 6-12 months from now. The option was carried out and **failed completely**.",
            "Working backwards from that failure:",
            "1. Describe 5-7 specific failure scenarios. Be concrete, and cover our own mistakes,",
            "   outside forces and things nobody saw coming.",
            "2. Rate each scenario's likelihood as High, Medium or Low.",
            "3. Give 1-2 early warning signs for the most likely failures.",
            "",
            "## OUTPUT FORMAT",
            "## Failure Scenario 1: [Title]",
            "**Likelihood:** [High/Medium/Low]",
            "**What happened:** [2-3 sentences]",
            "**Why it happened:** [root cause]",
            "**Early warning sign:** [how to notice it early]",
            "",
            "Be pessimistic but realistic. Stick to plausible failures, not catastrophes.",
        ]
    )
    return "\n".join(lines)


def format_pre_mortem(decision: Decision, alternative: Alternative, analysis: str) -> str:
    return "\n".join(
        [
            "## Pre-Mortem Analysis",
            "",
            f"**Decision:** {decision.problem_statement or 'Your decision'}",
            f"**Option analyzed:** {alternative.label}",
            "",
            "---",
            "",
            "**Imagined outcome:** this decision failed completely.",
            "**Task:** work backwards to find what went wrong.",
            "",
            "---",
            "",
            analysis,
        ]
    )


class PreMortemTool(CoachingTool):
    id = "pre-mortem"
    name = "Pre-Mortem Facilitator"
    description = "Imagine this decision failed completely. What went wrong? (Gary Klein framework)"
    category = ToolCategory.RISK
    icon = "AlertTriangle"
    tags = ("risk", "failure", "planning", "gary klein")
    input_fields = (
        ToolInputField(
            name="alternative_index",
            type=FieldType.NUMBER,
            label="Which alternative do you want to pre-mortem? (1, 2, 3...)",
            placeholder="1",
            validation=FieldValidation(min=1, max=10),
        ),
    )
    requires_decision_link = True
    system_prompt = """You are interpreting a Pre-Mortem analysis of failure scenarios for the user's decision.

Your role:
1. Highlight the ONE most concerning failure scenario
2. Ask whether that risk feels real to them
3. Keep it to two or three sentences

Do not list every scenario, repeat the output, or offer solutions yet."""
    user_prompt_template = 'That was a pre-mortem on "{{alternative}}". Which of these failure scenarios concerns you most?'

    def __init__(self, llm_client: OllamaClient) -> None:
        self.llm_client = llm_client

    async def run(self, context: ToolExecutionContext) -> ToolResult:
        decision = context.current_decision
        if decision is None:
            raise ToolExecutionError("Pre-Mortem requires a decision-linked chat. Attach a decision and try again.")
        alternative = choose_alternative(decision, context.inputs.get("alternative_index"))
        if not await self.llm_client.is_reachable():
            raise ToolExecutionError("Ollama is not running. Start Ollama and try again.")

        prompt = build_pre_mortem_prompt(decision, alternative)
        analysis = await asyncio.to_thread(self.llm_client.chat, [ChatMessage(role="user", content=prompt)])
        return ToolResult(
            success=True,
            data={"alternative": alternative.label, "pre_mortem_analysis": analysis},
            markdown=format_pre_mortem(decision, alternative, analysis),
            metadata={"decisions_analyzed": 1},
        )

    def template_values(self, result: ToolResult, inputs: Dict[str, Any]) -> Dict[str, str]:
        values = super().template_values(result, inputs)
        if isinstance(result.data, dict):
            values["alternative"] = str(result.data.get("alternative") or "this option")
        return values


__all__ = ["PreMortemTool", "build_pre_mortem_prompt", "choose_alternative"]
