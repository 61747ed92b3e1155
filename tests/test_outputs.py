"""
Tests for output normalization, disagreement detection and contract checks.
"""

import pytest

from switchboard.runtime.outputs import (
    DISAGREEMENT_THRESHOLD,
    MAX_DISAGREEMENTS,
    NormalizedOutput,
    check_output_contract,
    detect_disagreements,
    extract_json,
    normalize_output,
    similarity,
    stub_to_json_schema,
)
from switchboard.runtime.providers import synthesize_answer
from switchboard.runtime.types import OutputContract


STRUCTURED = """Intro line.

Answer:
Use a write-through cache.

Claims:
- Writes stay consistent
- 2) Reads are fast

Actions:
1. Add the cache layer
* Measure hit rate

CodeBlocks:
```python
cache = {}
```
"""


class TestNormalizeOutput:
    def test_sections(self):
        out = normalize_output(STRUCTURED)
        assert out.answer == "Use a write-through cache."
        assert out.claims == ["Writes stay consistent", "Reads are fast"]
        assert out.actions == ["Add the cache layer", "Measure hit rate"]
        assert out.code_blocks == ["```python\ncache = {}\n```"]

    def test_answer_fallback_is_first_600_chars(self):
        text = "no headings here " * 100
        out = normalize_output(text)
        assert out.answer == text[:600]
        assert out.claims == []
        assert out.actions == []

    def test_offline_answer_round_trip(self):
        out = normalize_output(synthesize_answer("prompt", "gpt-4o-mini"))
        assert out.answer == "This is a deterministic mock response generated for gpt-4o-mini."
        assert len(out.claims) == 3
        assert all("(gpt-4o-mini)" in claim for claim in out.claims)
        assert len(out.actions) == 3
        assert len(out.code_blocks) == 1


class TestDisagreements:
    def test_similarity(self):
        assert similarity("a b c", "a b c") == 1.0
        assert similarity("", "") == 0.0
        assert similarity("alpha beta", "gamma delta") == 0.0

    def test_identical_claims_do_not_disagree(self):
        outputs = [NormalizedOutput(answer="", claims=["the cache is fast"]) for _ in range(3)]
        assert detect_disagreements(outputs) == []

    def test_dissimilar_claims_flagged(self):
        outputs = [
            NormalizedOutput(answer="", claims=["postgres is the right database"]),
            NormalizedOutput(answer="", claims=["use redis streams for events"]),
        ]
        found = detect_disagreements(outputs)
        assert [d.claim for d in found] == ["postgres is the right database", "use redis streams for events"]
        assert found[0].disagrees_with == ["use redis streams for events"]

    def test_bounds(self):
        claims = [f"unique{i} topic{i} words{i}" for i in range(20)]
        found = detect_disagreements([NormalizedOutput(answer="", claims=claims)])
        assert len(found) == MAX_DISAGREEMENTS
        assert all(len(d.disagrees_with) <= 3 for d in found)
        assert len({d.claim for d in found}) == len(found)
        assert all(similarity(d.claim, other) < DISAGREEMENT_THRESHOLD for d in found for other in d.disagrees_with)

    def test_mock_outputs_from_different_models(self):
        outputs = [normalize_output(synthesize_answer("p", m)) for m in ("gpt-4o-mini", "gemini-2.5-flash")]
        found = detect_disagreements(outputs)
        assert len(found) <= MAX_DISAGREEMENTS
        for disagreement in found:
            assert disagreement.claim not in disagreement.disagrees_with
            for other in disagreement.disagrees_with:
                assert similarity(disagreement.claim, other) < DISAGREEMENT_THRESHOLD

    def test_similar_claims_never_listed_as_counterparts(self):
        outputs = [
            NormalizedOutput(answer="", claims=["the cache is fast"]),
            NormalizedOutput(answer="", claims=["the cache is very fast", "postgres stores rows on disk"]),
        ]
        found = {d.claim: d.disagrees_with for d in detect_disagreements(outputs)}
        assert found == {
            "the cache is fast": ["postgres stores rows on disk"],
            "the cache is very fast": ["postgres stores rows on disk"],
            "postgres stores rows on disk": ["the cache is fast", "the cache is very fast"],
        }


class TestOutputContract:
    def test_stub_to_schema(self):
        schema = stub_to_json_schema({"answer": "string", "actions": "string[]"})
        assert schema == {
            "type": "object",
            "properties": {
                "answer": {"type": "string"},
                "actions": {"type": "array", "items": {"type": "string"}},
            },
            "required": ["actions", "answer"],
        }

    def test_full_schema_passes_through(self):
        schema = {"type": "object", "properties": {"a": {"type": "number"}}}
        assert stub_to_json_schema(schema) is schema

    def test_extract_json_from_fence(self):
        assert extract_json('Here:\n```json\n{"a": 1}\n```') == {"a": 1}

    def test_extract_json_from_braces(self):
        assert extract_json('Result {"a": [1, 2]} done') == {"a": [1, 2]}

    def test_extract_json_failure(self):
        with pytest.raises(ValueError):
            extract_json("nothing here")

    def test_non_json_contract_always_valid(self):
        check = check_output_contract("anything", OutputContract(type="sections"))
        assert check.valid
        assert check.contract_type == "sections"

    def test_json_contract_valid(self):
        contract = OutputContract(type="json", schema={"answer": "string", "actions": "string[]"})
        check = check_output_contract('{"answer": "yes", "actions": ["ship"]}', contract)
        assert check.valid
        assert check.errors == []
        assert check.data == {"answer": "yes", "actions": ["ship"]}

    def test_json_contract_schema_violation(self):
        contract = OutputContract(type="json", schema={"answer": "string", "actions": "string[]"})
        check = check_output_contract('{"answer": 3}', contract)
        assert not check.valid
        assert any("actions" in error for error in check.errors)
        assert any(error.startswith("answer:") for error in check.errors)

    def test_json_contract_without_json(self):
        check = check_output_contract("plain prose", OutputContract(type="json"))
        assert not check.valid
        assert check.to_dict()["contract_type"] == "json"
