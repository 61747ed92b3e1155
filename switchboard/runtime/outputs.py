"""
outputs.py - Output normalization, disagreement detection and contract checks.

Model outputs are free text. This module pulls the structured parts the judge
and the run inspector need out of that text:

- normalize_output: the Answer / Claims / Actions sections and fenced code
- detect_disagreements: claims across outputs with low lexical overlap
- check_output_contract: JSON Schema validation for json output contracts

Disagreement detection is a lexical heuristic (Jaccard overlap of word sets),
not semantic entailment. False positives and negatives are expected.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set

import jsonschema

from .types import OutputContract

logger = logging.getLogger(__name__)

ANSWER_FALLBACK_CHARS = 600
DISAGREEMENT_THRESHOLD = 0.35
MAX_DISAGREEMENTS = 8
MAX_DISAGREES_WITH = 3

_LIST_MARKER = re.compile(r"^[-*\d.)\s]+")
_CODE_BLOCK = re.compile(r"```[\s\S]*?```")
_WORD_SPLIT = re.compile(r"\W+", re.ASCII)
_JSON_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)

# Stub type names used by inferred output contracts.
_STUB_TYPES: Dict[str, Dict[str, Any]] = {
    "string": {"type": "string"},
    "number": {"type": "number"},
    "integer": {"type": "integer"},
    "boolean": {"type": "boolean"},
    "object": {"type": "object"},
    "string[]": {"type": "array", "items": {"type": "string"}},
    "number[]": {"type": "array", "items": {"type": "number"}},
}


@dataclass
class NormalizedOutput:
    answer: str
    claims: List[str] = field(default_factory=list)
    actions: List[str] = field(default_factory=list)
    code_blocks: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Disagreement:
    claim: str
    disagrees_with: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ContractCheck:
    """Result of checking an output against its output contract."""

    contract_type: str
    valid: bool
    errors: List[str] = field(default_factory=list)
    data: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _section(text: str, heading: str) -> str:
    pattern = re.compile(
        rf"{re.escape(heading)}:\s*([\s\S]*?)(?:\n[A-Z][A-Za-z ]+:|$)",
        re.IGNORECASE,
    )
    match = pattern.search(text)
    return match.group(1).strip() if match else ""


def _split_list(section: str) -> List[str]:
    items = (_LIST_MARKER.sub("", line).strip() for line in section.split("\n"))
    return [item for item in items if item]


def normalize_output(text: str) -> NormalizedOutput:
    """Extract answer, claims, actions and code blocks from model text.

    The answer is the "Answer:" section, or the first 600 characters when
    that heading is absent. Claims and actions are the lines under their
    headings with bullet and number markers stripped. Code blocks are the
    fenced blocks, verbatim.
    """
    return NormalizedOutput(
        answer=_section(text, "Answer") or text[:ANSWER_FALLBACK_CHARS],
        claims=_split_list(_section(text, "Claims")),
        actions=_split_list(_section(text, "Actions")),
        code_blocks=_CODE_BLOCK.findall(text),
    )


def _words(text: str) -> Set[str]:
    return {word for word in _WORD_SPLIT.split(text.lower()) if word}


def similarity(a: str, b: str) -> float:
    """Jaccard similarity of the two texts' word sets."""
    words_a = _words(a)
    words_b = _words(b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def detect_disagreements(outputs: Sequence[NormalizedOutput]) -> List[Disagreement]:
    """Find claims that share little vocabulary with other claims.

    Every claim is compared with every other claim across all outputs; a
    claim "disagrees with" those whose similarity is below 0.35. Results
    are deduplicated by claim text, capped at 8, and each claim lists at
    most 3 counterparts.
    """
    all_claims = [claim for output in outputs for claim in output.claims]
    found: Dict[str, Disagreement] = {}

    for claim in all_claims:
        if claim in found:
            continue
        mismatches = [
            candidate
            for candidate in all_claims
            if candidate != claim and similarity(candidate, claim) < DISAGREEMENT_THRESHOLD
        ]
        if mismatches:
            found[claim] = Disagreement(claim=claim, disagrees_with=mismatches[:MAX_DISAGREES_WITH])
        if len(found) == MAX_DISAGREEMENTS:
            break

    return list(found.values())


def stub_to_json_schema(stub: Dict[str, Any]) -> Dict[str, Any]:
    """Turn a ``{"field": "type"}`` stub into a JSON Schema object.

    A mapping that already looks like a JSON Schema (declares ``type`` or
    ``properties``) is returned unchanged.
    """
    if "properties" in stub or stub.get("type") == "object":
        return stub
    properties = {name: _STUB_TYPES.get(str(kind), {}) for name, kind in stub.items()}
    return {
        "type": "object",
        "properties": properties,
        "required": sorted(properties),
    }


def extract_json(text: str) -> Any:
    """Return the first JSON value embedded in ``text``.

    Tries the whole text, then fenced blocks, then the outermost braces.

    Raises:
        ValueError: If no JSON value can be decoded.
    """
    candidates = [text.strip()]
    candidates.extend(match.strip() for match in _JSON_FENCE.findall(text))
    start, end = text.find("{"), text.rfind("}")
    if 0 <= start < end:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        if not candidate:
            continue
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    raise ValueError("No JSON object found in output")


def check_output_contract(text: str, contract: OutputContract) -> ContractCheck:
    """Check model text against its output contract.

    Only ``json`` contracts are structurally checked; freeform and sections
    outputs are always accepted.
    """
    if contract.type != "json":
        return ContractCheck(contract_type=contract.type, valid=True)

    try:
        data = extract_json(text)
    except ValueError as e:
        return ContractCheck(contract_type="json", valid=False, errors=[str(e)])

    if not contract.schema_:
        return ContractCheck(contract_type="json", valid=True, data=data)

    schema = stub_to_json_schema(contract.schema_)
    validator = jsonschema.Draft7Validator(schema)
    errors = [
        f"{'/'.join(str(p) for p in error.absolute_path) or '<root>'}: {error.message}"
        for error in sorted(validator.iter_errors(data), key=lambda e: str(list(e.absolute_path)))
    ]
    if errors:
        logger.debug("Output failed json contract: %s", errors)
    return ContractCheck(contract_type="json", valid=not errors, errors=errors, data=data)
