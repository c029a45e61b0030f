"""Checks a decision against a taxonomy of common cognitive biases."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from ..context.prompts import truncate
from ..journal.models import Decision
from ..llm_client import ChatMessage, OllamaClient
from .base import CoachingTool, ToolCategory, ToolExecutionContext, ToolExecutionError, ToolResult


@dataclass(frozen=True)
class Bias:
    name: str
    description: str
    indicators: Tuple[str, ...]


BIAS_TAXONOMY: Tuple[Bias, ...] = (
    Bias("Confirmation Bias", "Seeking information that confirms what you already believe",
         ("only looking at pros", "ignoring warnings", "dismissing contrary evidence")),
    Bias("Sunk Cost Fallacy", "Continuing because of what was already spent, not future value",
         ("already invested time or money", "too late to stop", "can't waste what we've done")),
    Bias("Availability Heuristic", "Overweighting recent or vivid examples",
         ("a recent similar situation", "just heard about it", "happened to someone I know")),
    Bias("Anchoring", "Leaning too hard on the first piece of information",
         ("first offer", "initial estimate", "original plan")),
    Bias("Overconfidence", "Overestimating how accurate your predictions are",
         ("very confident (8-10/10)", "seems certain", "no doubt")),
    Bias("Loss Aversion", "Losses feel bigger than equal gains",
         ("fear of losing", "playing it safe", "avoiding regret")),
    Bias("Status Quo Bias", "Preferring the current state over change",
         ("keep things as they are", "too risky to change", "works fine now")),
    Bias("FOMO (Fear of Missing Out)", "Anxiety about missing an opportunity",
         ("everyone else is doing it", "limited time", "might miss out")),
)

_BIAS_HEADING = re.compile(r"Bias\s*1\s*:\s*\**\s*([^\n*\[\]]+)", re.IGNORECASE)


def top_bias(analysis: str) -> Optional[str]:
    """Name of the first bias in the model's answer, if one can be found."""

    match = _BIAS_HEADING.search(analysis or "")
    if match:
        return match.group(1).strip()
    lowered = (analysis or "").lower()
    for bias in BIAS_TAXONOMY:
        if bias.name.lower() in lowered:
            return bias.name
    return None


def build_bias_prompt(decision: Decision) -> str:
    lines = [
        "# BIAS DETECTION ANALYSIS",
        "You are a cognitive psychology expert who spots cognitive biases (Kahneman, Tversky, Ariely).",
        "",
        "## THE DECISION",
        f"**Problem:** {decision.problem_statement}",
    ]
    if decision.situation:
        lines.append(f"**Context:** {truncate(decision.situation, 600)}")

    if decision.mental_state or decision.physical_state or decision.emotional_flags:
        lines.extend(["", "## MENTAL & EMOTIONAL STATE"])
        if decision.mental_state:
            lines.append(f"**Mental state:** {decision.mental_state}")
        if decision.physical_state:
            lines.append(f"**Physical state:** {decision.physical_state}")
        if decision.emotional_flags:
            lines.append(f"**Emotional flags:** {', '.join(decision.emotional_flags)}")
    if decision.confidence_level is not None:
        lines.append(f"**Confidence level:** {decision.confidence_level}/10")

    if decision.alternatives:
        lines.extend(["", "## ALTERNATIVES CONSIDERED"])
        for idx, alternative in enumerate(decision.alternatives, start=1):
            lines.append(f"{idx}. {alternative.label}")
            if alternative.pros:
                lines.append(f"   Pros: {', '.join(alternative.pros[:3])}")
            if alternative.cons:
                lines.append(f"   Cons: {', '.join(alternative.cons[:3])}")

    lines.extend(["", "## COMMON COGNITIVE BIASES TO CHECK"])
    for bias in BIAS_TAXONOMY:
        lines.append(f"- **{bias.name}**: {bias.description}")
        lines.append(f"  Indicators: {'; '.join(bias.indicators)}")

    lines.extend(
        [
            "",
            "## YOUR TASK",
            "For each bias you detect: name it, quote specific evidence from the decision,",
            "rate its likelihood (High/Medium/Low) and suggest one debiasing strategy.",
            "Report only the 2-3 most likely biases.",
            "",
            "## OUTPUT FORMAT",
            "### Bias 1: [Name]",
            "**Likelihood:** [High/Medium/Low]",
            "**Evidence:** [what in the decision suggests this bias]",
            "**Debiasing strategy:** [one concrete action]",
            "",
            "Be specific and evidence-based. Avoid generic advice.",
        ]
    )
    return "\n".join(lines)


def format_bias_result(decision: Decision, analysis: str) -> str:
    lines = ["## Bias Detector Analysis", "", f"**Decision:** {decision.problem_statement or 'Your decision'}"]
    if decision.emotional_flags or decision.mental_state:
        lines.extend(["", "### Decision Context"])
        if decision.mental_state:
            lines.append(f"- Mental state: {decision.mental_state}")
        if decision.emotional_flags:
            lines.append(f"- Emotions: {', '.join(decision.emotional_flags)}")
        if decision.confidence_level is not None:
            lines.append(f"- Confidence: {decision.confidence_level}/10")
    lines.extend(
        [
            "",
            "---",
            "",
            analysis,
            "",
            "---",
            "",
            "**Remember:** cognitive biases are normal. Noticing them is the first step to better decisions.",
        ]
    )
    return "\n".join(lines)


class BiasDetectorTool(CoachingTool):
    id = "bias-detector"
    name = "Bias Detector"
    description = "Identify cognitive biases that might be shaping your thinking (Kahneman/Tversky framework)"
    category = ToolCategory.FRAMEWORK
    icon = "Eye"
    tags = ("bias", "cognitive", "kahneman", "tversky", "psychology")
    requires_decision_link = True
    system_prompt = """You are interpreting a Bias Detector analysis of possible cognitive biases.

Your role:
1. Name the ONE bias that seems most active
2. Ask whether they can see evidence of it in their thinking
3. Keep it to two or three sentences

Do not list every bias, lecture about what biases are, or sound judgmental."""
    user_prompt_template = "Do you see evidence of {{top_bias}} in how I'm thinking about this?"

    def __init__(self, llm_client: OllamaClient) -> None:
        self.llm_client = llm_client

    async def run(self, context: ToolExecutionContext) -> ToolResult:
        decision = context.current_decision
        if decision is None:
            raise ToolExecutionError("Bias Detector requires a decision-linked chat. Attach a decision and try again.")
        if not await self.llm_client.is_reachable():
            raise ToolExecutionError("Ollama is not running. Start Ollama and try again.")

        prompt = build_bias_prompt(decision)
        analysis = await asyncio.to_thread(self.llm_client.chat, [ChatMessage(role="user", content=prompt)])
        return ToolResult(
            success=True,
            data={
                "decision": decision.problem_statement,
                "bias_analysis": analysis,
                "top_bias": top_bias(analysis),
                "emotional_context": {
                    "flags": decision.emotional_flags,
                    "mental_state": decision.mental_state,
                    "physical_state": decision.physical_state,
                },
            },
            markdown=format_bias_result(decision, analysis),
            metadata={"decisions_analyzed": 1},
        )

    def template_values(self, result: ToolResult, inputs: Dict[str, Any]) -> Dict[str, str]:
        values = super().template_values(result, inputs)
        detected = result.data.get("top_bias") if isinstance(result.data, dict) else None
        values["top_bias"] = detected or "these biases"
        return values


__all__ = ["BIAS_TAXONOMY", "Bias", "BiasDetectorTool", "build_bias_prompt", "top_bias"]
