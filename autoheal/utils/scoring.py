from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from autoheal.config.schema import DEFAULT_TEST_ID_ATTRIBUTES, ScoringConfig
from autoheal.core.metadata import CandidateKind, SelectorCandidate
from autoheal.core.volatility import VolatilityClassifier

BASE_SCORES = {
    "test-id": 0.95,
    "aria-label": 0.85,
    "role": 0.75,
    "id": 0.70,
    "anchored": 0.65,
    "class": 0.60,
    "text": 0.55,
}
KIND_FALLBACK_SIGNAL = {
    CandidateKind.ANCHORED_STRUCTURAL: "anchored",
    CandidateKind.TEXT_PROXIMITY: "text",
}
DEFAULT_BASE_SCORE = 0.30


class SelectorScorer:
    """Deterministic confidence for heuristic candidates."""

    def __init__(
        self,
        classifier: VolatilityClassifier,
        config: ScoringConfig | None = None,
        test_id_attributes: Iterable[str] = DEFAULT_TEST_ID_ATTRIBUTES,
    ) -> None:
        self.classifier = classifier
        self.config = config or ScoringConfig()
        self.test_id_attributes = tuple(test_id_attributes)

    def score(self, candidate: SelectorCandidate) -> float:
        score = self.base_score(candidate)
        if self.classifier.is_volatile(candidate.selector):
            score *= self.config.volatility_penalty

        length = len(candidate.selector)
        if length < self.config.short_selector_length:
            score += self.config.length_bonus
        elif length > self.config.long_selector_length:
            score -= self.config.length_bonus

        if self.references_test_id(candidate.selector):
            score += self.config.test_id_bonus
        return round(min(1.0, max(0.0, score)), 4)

    def rank(self, candidates: Iterable[SelectorCandidate]) -> list[SelectorCandidate]:
        scored = [replace(candidate, confidence=self.score(candidate)) for candidate in candidates]
        # list.sort is stable, so equal scores keep generation order.
        scored.sort(key=lambda item: item.confidence, reverse=True)
        return scored

    def base_score(self, candidate: SelectorCandidate) -> float:
        signal = candidate.signal if candidate.signal in BASE_SCORES else KIND_FALLBACK_SIGNAL.get(candidate.kind, "")
        return BASE_SCORES.get(signal, DEFAULT_BASE_SCORE)

    def references_test_id(self, selector: str) -> bool:
        lowered = selector.lower()
        return any(f"[{name}" in lowered or f"@{name}" in lowered for name in self.test_id_attributes)
