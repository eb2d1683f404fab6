from __future__ import annotations

import json
from typing import Any, Iterable

from autoheal.core.metadata import MarkupSummary, SelectorCandidate

SYSTEM_PROMPT = """You are an expert in web automation and CSS/XPath selectors. You re-rank replacement selectors for a UI test whose selector stopped matching.
Rules:
1. Only recommend selectors built from elements present in the provided markup snippet or the candidate list.
2. Do not invent tags, attributes, text, or hierarchy.
3. Prefer stability over brevity: test-id attributes, then aria-label, then role, then semantic classes.
4. Avoid positional indexes and generated-looking identifiers.
5. Return at most 3 ranked selectors with a rationale of 40 words or less and a confidence between 0 and 1.
6. Respond with a single JSON object and nothing else, no markdown and no code fence:
{"ranked": [{"selector": "...", "rationale": "...", "confidence": 0.9}], "explanationOfFailure": "..."}"""


def build_rerank_payload(
    *,
    markup_snippet: str,
    failed_selector: str,
    candidates: Iterable[SelectorCandidate],
    intended_action: str,
    nearby_texts: Iterable[str],
    summary: MarkupSummary | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "failed_selector": failed_selector,
        "intended_action": intended_action,
        "nearby_texts": list(nearby_texts),
        "markup_snippet": markup_snippet,
        "candidates": [
            {
                "selector": candidate.selector,
                "kind": candidate.kind.value,
                "score": candidate.confidence,
                "rationale": candidate.rationale,
            }
            for candidate in candidates
        ],
    }
    if summary is not None:
        payload["markup_summary"] = summary.to_dict()
    return payload


def build_user_prompt(payload: dict[str, Any]) -> str:
    """Formats a deterministic user payload for the model."""

    return json.dumps(payload, indent=2, sort_keys=True)
