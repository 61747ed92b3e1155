"""
Tests for heuristic request classification.

These tests verify:
1. Task type hints are checked in priority order
2. Depth from wording and length
3. Output contract inference
4. Intent truncation
"""

import pytest

from switchboard.runtime.routing.classifier import (
    JSON_SCHEMA_STUB,
    classify_depth,
    classify_task_type,
    infer_intent,
    infer_output_contract,
)


class TestClassifyTaskType:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("Please debug this Python function", "coding"),
            ("Find sources on battery chemistry", "research"),
            ("Write a poem about autumn", "creative"),
            ("Extract the dates from this email", "extraction"),
            ("Draft a roadmap for Q3", "planning"),
            ("Give feedback on my essay", "critique"),
            ("Why is the sky blue?", "reasoning"),
        ],
    )
    def test_categories(self, text, expected):
        assert classify_task_type(text) == expected

    def test_first_matching_category_wins(self):
        # "code" (coding) outranks "review" (critique)
        assert classify_task_type("Review this code") == "coding"

    def test_case_insensitive(self):
        assert classify_task_type("REFACTOR the module") == "coding"

    def test_json_mention_is_extraction(self):
        assert classify_task_type("Return json with the fields") == "extraction"


class TestClassifyDepth:
    def test_deep_hint(self):
        assert classify_depth("Give a thorough answer") == "deep"

    def test_medium_hint(self):
        assert classify_depth("Explain recursion") == "medium"

    def test_shallow_default(self):
        assert classify_depth("hello there") == "shallow"

    def test_length_thresholds(self):
        assert classify_depth("a" * 351) == "medium"
        assert classify_depth("a" * 350) == "shallow"
        assert classify_depth("a" * 901) == "deep"
        assert classify_depth("a" * 900) == "medium"


class TestInferOutputContract:
    def test_json_contract_carries_stub(self):
        contract = infer_output_contract("Reply in JSON please")
        assert contract == {"type": "json", "schema": JSON_SCHEMA_STUB}

    def test_schema_keyword(self):
        assert infer_output_contract("Follow this schema")["type"] == "json"

    def test_sections(self):
        assert infer_output_contract("Use bullet points") == {"type": "sections"}
        assert infer_output_contract("Split into sections") == {"type": "sections"}

    def test_freeform(self):
        assert infer_output_contract("Tell me a joke") == {"type": "freeform"}

    def test_stub_is_copied(self):
        contract = infer_output_contract("json")
        contract["schema"]["answer"] = "number"
        assert JSON_SCHEMA_STUB["answer"] == "string"


class TestInferIntent:
    def test_short_text_is_trimmed(self):
        assert infer_intent("  do the thing  ") == "do the thing"

    def test_long_text_truncated_to_120(self):
        intent = infer_intent("x" * 200)
        assert len(intent) == 120
        assert intent.endswith("...")

    def test_exactly_120_untouched(self):
        assert infer_intent("y" * 120) == "y" * 120
