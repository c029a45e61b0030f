"""Tests for the coaching tools, their registry and form validation."""

from __future__ import annotations

import asyncio

import pytest
from conftest import FakeLLM, FakeRetriever, job_offer_decision, make_decision

from decision_coach.tools import build_default_registry
from decision_coach.tools.analytics import brier_score, calibration_curve, outcome_score, tag_patterns
from decision_coach.tools.base import (
    CoachingTool,
    FieldType,
    FieldValidation,
    ToolCategory,
    ToolExecutionContext,
    ToolExecutionError,
    ToolInputField,
    ToolResult,
)
from decision_coach.tools.bias_detector import top_bias
from decision_coach.tools.pre_mortem import choose_alternative
from decision_coach.tools.registry import ToolRegistry
from decision_coach.tools.shortcuts import primary_shortcut, tool_for_shortcut
from decision_coach.tools.validation import coerce_inputs, validate_field, validate_inputs


class ExplodingTool(CoachingTool):
    id = "exploding"
    name = "Exploding"
    category = ToolCategory.RISK

    async def run(self, context):
        raise RuntimeError("boom")


def _reviewed(decision_id, confidence, rating, outcome="It went badly"):
    return make_decision(decision_id, confidence_level=confidence, outcome_rating=rating, actual_outcome=outcome)


def _run(registry, tool_id, context):
    return asyncio.run(registry.execute(tool_id, context))


# ---- validation ----


def test_number_field_messages():
    field_def = ToolInputField(
        name="limit", type=FieldType.NUMBER, label="Limit", validation=FieldValidation(min=3, max=20)
    )
    assert validate_field(field_def, "") is None
    assert validate_field(field_def, "abc") == "Limit must be a valid number"
    assert validate_field(field_def, "2") == "Limit must be at least 3"
    assert validate_field(field_def, 21) == "Limit must be at most 20"
    assert validate_field(field_def, "7") is None


def test_text_field_messages():
    field_def = ToolInputField(
        name="query",
        type=FieldType.TEXT,
        label="Query",
        required=True,
        validation=FieldValidation(min_length=3, max_length=5, pattern=r"^[a-z]+$"),
    )
    assert validate_field(field_def, "   ") == "Query is required"
    assert validate_field(field_def, "ab") == "Query must be at least 3 characters"
    assert validate_field(field_def, "abcdef") == "Query must be at most 5 characters"
    assert validate_field(field_def, "AB12") == "Query format is invalid"
    assert validate_inputs([field_def], {"query": "abc"}) == {}


def test_coerce_inputs_converts_declared_types():
    fields = [
        ToolInputField(name="limit", type=FieldType.NUMBER, label="Limit"),
        ToolInputField(name="strict", type=FieldType.BOOLEAN, label="Strict"),
        ToolInputField(name="tags", type=FieldType.MULTISELECT, label="Tags"),
    ]
    coerced = coerce_inputs(fields, {"limit": "5", "strict": "yes", "tags": "work, family,", "note": " x ", "empty": ""})
    assert coerced == {"limit": 5, "strict": True, "tags": ["work", "family"], "note": " x "}


# ---- registry ----


def test_register_rejects_incomplete_tools():
    registry = ToolRegistry()
    with pytest.raises(ValueError):
        registry.register(CoachingTool())

    nameless = ExplodingTool()
    nameless.name = ""
    with pytest.raises(ValueError):
        registry.register(nameless)


def test_execute_turns_every_problem_into_a_failed_result():
    registry = ToolRegistry()
    registry.register(ExplodingTool())
    context = ToolExecutionContext(session_id="s1")

    missing = _run(registry, "nope", context)
    assert not missing.success
    assert missing.error == "Tool 'nope' not found in registry"

    exploded = _run(registry, "exploding", context)
    assert not exploded.success
    assert exploded.error == "Exploding failed: boom"


def test_required_field_is_checked_before_running():
    retriever = FakeRetriever()
    registry = build_default_registry(FakeLLM(), retriever)
    result = _run(registry, "pattern-detective", ToolExecutionContext(session_id="s1"))
    assert not result.success
    assert result.error == 'Required field "What patterns are you looking for?" is missing'
    assert retriever.calls == []


def test_registry_lookup_helpers():
    registry = build_default_registry(FakeLLM(), FakeRetriever())
    assert [tool.id for tool in registry.list_by_category(ToolCategory.PATTERN)] == [
        "pattern-detective",
        "calibration-coach",
    ]
    assert registry.find_by_shortcut("CALIBRATE").id == "calibration-coach"
    assert [tool.id for tool in registry.search("kahneman")] == ["bias-detector"]
    assert len(registry.search("")) == 4
    assert tool_for_shortcut("unknown") is None
    assert primary_shortcut("pre-mortem") == "premortem"


# ---- analytics ----


def test_brier_score_is_mean_squared_gap():
    decisions = [_reviewed("a", 8, 8), _reviewed("b", 6, 2), make_decision("unreviewed", confidence_level=9)]
    assert brier_score(decisions) == pytest.approx(0.08)
    assert brier_score([make_decision("x")]) is None


def test_outcome_score_falls_back_to_text():
    assert outcome_score(make_decision("a", actual_outcome="Things got better")) == 1.0
    assert outcome_score(make_decision("b", actual_outcome="A bad call")) == 0.0
    assert outcome_score(make_decision("c", actual_outcome="Hard to say")) == 0.5


def test_calibration_curve_buckets_by_confidence():
    decisions = [_reviewed("a", 9, 2), _reviewed("b", 9, 9), _reviewed("c", 3, 6)]
    buckets = calibration_curve(decisions)
    assert [(b.confidence, b.count) for b in buckets] == [(30, 1), (90, 2)]
    assert buckets[1].actual == pytest.approx(50.0)
    assert buckets[1].gap == pytest.approx(0.4)
    assert calibration_curve(decisions[:2]) is None


def test_tag_patterns_are_ordered_by_frequency():
    decisions = [
        make_decision("a", tags=["career", "money"], confidence_level=8),
        make_decision("b", tags=["career"], confidence_level=6),
    ]
    patterns = tag_patterns(decisions)
    assert [(p.label, p.count) for p in patterns] == [("career", 2), ("money", 1)]
    assert patterns[0].avg_confidence == 7
    assert patterns[0].decision_ids == ["a", "b"]


# ---- individual tools ----


def test_calibration_needs_three_rated_reviews():
    registry = build_default_registry(FakeLLM(), FakeRetriever())
    context = ToolExecutionContext(session_id="s1", all_decisions=[_reviewed("a", 8, 3), _reviewed("b", 7, 4)])

    result = _run(registry, "calibration-coach", context)
    assert result.success
    assert "Not enough data yet" in result.markdown
    assert "**Current status:** 2/3 reviewed decisions" in result.markdown


def test_calibration_flags_overconfidence():
    registry = build_default_registry(FakeLLM(), FakeRetriever())
    decisions = [_reviewed("a", 9, 2), _reviewed("b", 9, 1), _reviewed("c", 7, 3), _reviewed("d", 7, 2)]

    result = _run(registry, "calibration-coach", ToolExecutionContext(session_id="s1", all_decisions=decisions))
    assert result.success
    assert result.markdown.startswith("## Calibration Coach Results")
    assert "You tend to be overconfident" in result.markdown
    assert result.data["analysis"]["main_issue"] == "overconfident"
    assert result.data["total_decisions"] == 4


def test_bias_detector_reports_unreachable_backend():
    registry = build_default_registry(FakeLLM(reachable=False), FakeRetriever())
    context = ToolExecutionContext(session_id="s1", current_decision=job_offer_decision())

    result = _run(registry, "bias-detector", context)
    assert not result.success
    assert "Ollama is not running" in result.error


def test_bias_detector_names_top_bias_in_followup():
    llm = FakeLLM(reply="### Bias 1: **Overconfidence**\n**Likelihood:** High")
    registry = build_default_registry(llm, FakeRetriever())
    context = ToolExecutionContext(session_id="s1", current_decision=job_offer_decision())

    result = _run(registry, "bias-detector", context)
    assert result.success
    assert result.data["top_bias"] == "Overconfidence"
    prompt = registry.get("bias-detector").interpretation_prompt(result)
    assert prompt.startswith('The user just ran the "Bias Detector" tool.')
    assert prompt.endswith("Do you see evidence of Overconfidence in how I'm thinking about this?")
    assert "Confidence level:** 8/10" in llm.chat_calls[0][0].content


def test_top_bias_falls_back_to_taxonomy_names():
    assert top_bias("Mostly this looks like anchoring to the first offer") == "Anchoring"
    assert top_bias("nothing notable") is None


def test_choose_alternative_prefers_index_then_selection():
    decision = job_offer_decision()
    assert choose_alternative(decision, "2").id == "a2"
    assert choose_alternative(decision, 9).id == "a1"
    assert choose_alternative(decision).id == "a1"

    unselected = make_decision("x", alternatives=decision.alternatives)
    assert choose_alternative(unselected).id == "a1"
    with pytest.raises(ToolExecutionError):
        choose_alternative(make_decision("empty"))


def test_interpretation_prompt_fills_inputs():
    tool = build_default_registry(FakeLLM(), FakeRetriever()).get("pattern-detective")
    result = ToolResult(success=True, markdown="## Pattern Detective Results")
    prompt = tool.interpretation_prompt(result, {"query": "moving cities"})
    assert "## Pattern Detective Results" in prompt
    assert prompt.endswith('I searched for "moving cities". What stands out to you about these patterns?')


def test_describe_includes_fields():
    tool = build_default_registry(FakeLLM(), FakeRetriever()).get("pattern-detective")
    described = tool.describe()
    assert described["category"] == "pattern"
    assert [f["name"] for f in described["fields"]] == ["query", "limit"]
    assert described["fields"][0]["validation"] == {"min_length": 3, "max_length": 500}
