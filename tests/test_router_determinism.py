"""
Tests for CPIR construction, candidate scoring and routing decisions.

These tests verify:
1. Identical inputs give identical decisions (no randomness)
2. Candidates are complete and sorted by descending score
3. Quality bias moves the choice between premium and cheap models
4. Cost / latency caps penalize candidates, with explicit constraints winning
5. CPIR validation rejects malformed input
"""

import pytest

from switchboard.runtime.context_pack import build_context_pack
from switchboard.runtime.errors import ContractViolationError
from switchboard.runtime.routing import (
    build_cpir,
    decide_route,
    estimate_token_need,
    merge_preference_caps,
    resolve_caps,
    resolve_preferences,
    score_candidates,
)
from switchboard.runtime.routing.scorer import CAP_PENALTY
from switchboard.runtime.types import Constraints, RouterPreferences


def _cpir(text, constraints=None):
    return build_cpir(text, build_context_pack(text, [], []), constraints=constraints)


class TestBuildCpir:
    def test_fields_are_classified(self):
        cpir = _cpir("Please debug this Python function step-by-step")
        assert cpir.task_type == "coding"
        assert cpir.depth == "deep"
        assert cpir.output_contract.type == "freeform"
        assert cpir.inputs.user_text == "Please debug this Python function step-by-step"

    def test_empty_text_rejected(self):
        with pytest.raises(ContractViolationError):
            _cpir("")

    def test_non_positive_cap_rejected(self):
        with pytest.raises(ContractViolationError):
            _cpir("hello", constraints={"max_cost_usd": 0})

    def test_unknown_constraint_rejected(self):
        with pytest.raises(ContractViolationError):
            _cpir("hello", constraints={"budget": 3})


class TestDeterminism:
    def test_same_input_same_decision(self, catalog):
        cpir = _cpir("Compare two caching strategies for a read-heavy API")
        prefs = {"quality_bias": 65}
        first = decide_route(cpir, prefs, catalog)
        second = decide_route(cpir, prefs, catalog)
        assert first == second
        assert first.model_dump() == second.model_dump()

    def test_every_catalog_entry_is_a_candidate(self, catalog):
        decision = decide_route(_cpir("hello"), None, catalog)
        assert len(decision.candidates) == len(catalog)
        assert {c.model_id for c in decision.candidates} == {e.model_id for e in catalog}

    def test_candidates_sorted_descending(self, catalog):
        decision = decide_route(_cpir("Explain the CAP theorem"), {"quality_bias": 30}, catalog)
        scores = [c.score for c in decision.candidates]
        assert scores == sorted(scores, reverse=True)
        assert decision.chosen.model_id == decision.candidates[0].model_id

    def test_reasoning_mentions_choice_and_bias(self, catalog):
        decision = decide_route(_cpir("hello"), {"quality_bias": 50}, catalog)
        assert decision.reasoning == (
            f"Selected {decision.chosen.model_id} for reasoning/shallow with preference bias 50."
        )

    def test_token_estimate_matches_scorer(self, catalog):
        cpir = _cpir("Summarize the meeting")
        assert decide_route(cpir, None, catalog).token_estimate == estimate_token_need(cpir)


class TestQualityBias:
    def test_high_bias_prefers_premium_model(self, catalog):
        decision = decide_route(_cpir("Why is the sky blue?"), {"quality_bias": 100}, catalog)
        assert decision.chosen.model_id == "claude-sonnet-4-20250514"

    def test_low_bias_prefers_cheap_fast_model(self, catalog):
        decision = decide_route(_cpir("Why is the sky blue?"), {"quality_bias": 0}, catalog)
        assert decision.chosen.model_id == "mock-balanced"

    def test_default_bias_is_50(self):
        assert resolve_preferences(None).quality_bias == 50
        assert resolve_preferences({}).quality_bias == 50

    def test_bias_out_of_range_rejected(self):
        with pytest.raises(ContractViolationError):
            resolve_preferences({"quality_bias": 101})


class TestCaps:
    def test_constraint_wins_over_preference(self):
        prefs = RouterPreferences(cost_cap_enabled=True, max_cost_usd=0.001)
        assert resolve_caps(Constraints(max_cost_usd=1.0), prefs) == (1.0, None)

    def test_preference_applies_when_enabled(self):
        prefs = RouterPreferences(latency_cap_enabled=True, max_latency_ms=500)
        assert resolve_caps(Constraints(), prefs) == (None, 500)

    def test_disabled_preference_is_ignored(self):
        prefs = RouterPreferences(cost_cap_enabled=False, max_cost_usd=0.001)
        assert resolve_caps(Constraints(), prefs) == (None, None)

    def test_merge_preference_caps(self):
        prefs = RouterPreferences(cost_cap_enabled=True, max_cost_usd=0.01)
        merged = merge_preference_caps({"tone": "formal", "citations": None}, prefs)
        assert merged == {"tone": "formal", "max_cost_usd": 0.01}

    def test_cost_cap_penalizes_priced_models_only(self, catalog):
        cpir = _cpir("hello", constraints={"max_cost_usd": 0.0001})
        uncapped = {c.model_id: c for c in score_candidates(_cpir("hello"), RouterPreferences(), catalog)}
        capped = {c.model_id: c for c in score_candidates(cpir, RouterPreferences(), catalog)}

        assert capped["mock-balanced"].score == pytest.approx(uncapped["mock-balanced"].score)
        assert not any("exceeds cap" in r for r in capped["mock-balanced"].reasons)

        assert capped["gpt-4.1"].score == pytest.approx(uncapped["gpt-4.1"].score - CAP_PENALTY)
        assert any(r.startswith("Projected cost") for r in capped["gpt-4.1"].reasons)

    def test_latency_cap_penalizes_everything_below_it(self, catalog):
        prefs = RouterPreferences(latency_cap_enabled=True, max_latency_ms=100)
        for candidate in score_candidates(_cpir("hello"), prefs, catalog):
            assert any(r.startswith("Projected latency") for r in candidate.reasons)
