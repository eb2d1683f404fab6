from __future__ import annotations

import logging

from autoheal.config.schema import GeneratorConfig
from autoheal.core.anchors import AnchorDetector
from autoheal.core.metadata import AnchorKind, CandidateKind, MarkupTree, SelectorCandidate
from autoheal.core.text_proximity import TextProximityDetector
from autoheal.core.volatility import VolatilityClassifier
from autoheal.utils.selectors import attribute_selector, id_selector, is_css_identifier

log = logging.getLogger(__name__)

# Initial confidence per stable-attribute signal, before the scorer runs.
ATTRIBUTE_ANCHORS = {
    "test-id": 0.95,
    "aria-label": 0.85,
    "role": 0.75,
    "id": 0.70,
    "class": 0.60,
}


class CandidateGenerator:
    """Produces untested selector candidates for a located target element."""

    def __init__(self, classifier: VolatilityClassifier, config: GeneratorConfig | None = None) -> None:
        self.classifier = classifier
        self.config = config or GeneratorConfig()
        self.anchors = AnchorDetector(classifier, self.config)
        self.text_proximity = TextProximityDetector(self.config)

    def generate(self, tree: MarkupTree, target: int | None) -> list[SelectorCandidate]:
        if target is None:
            return []
        cap = self.config.max_candidates_per_strategy
        candidates: list[SelectorCandidate] = []
        for strategy in (self.stable_attribute, self.anchored_structural, self.text_based):
            produced = strategy(tree, target)
            log.debug("Strategy %s produced %d candidate(s)", strategy.__name__, len(produced))
            candidates.extend(produced[:cap])
        return _unique(candidates)

    def stable_attribute(self, tree: MarkupTree, target: int) -> list[SelectorCandidate]:
        element = tree.element(target)
        attributes = element.attributes
        found: list[SelectorCandidate] = []

        for name in self.config.test_id_attributes:
            value = attributes.get(name, "").strip()
            if value and not self.classifier.is_volatile_identifier(value):
                found.append(
                    self._attribute_candidate(
                        attribute_selector(name, value),
                        "test-id",
                        f"Found {name} attribute - most stable selector available",
                    )
                )
                break

        aria_label = attributes.get("aria-label", "").strip()
        if aria_label and not self.classifier.is_volatile_identifier(aria_label):
            found.append(
                self._attribute_candidate(
                    attribute_selector("aria-label", aria_label),
                    "aria-label",
                    "Found aria-label attribute - good accessibility-based selector",
                )
            )

        role = attributes.get("role", "").strip()
        if role in self.config.stable_roles:
            found.append(
                self._attribute_candidate(
                    attribute_selector("role", role),
                    "role",
                    "Found role attribute - semantic selector with good stability",
                )
            )

        element_id = attributes.get("id", "").strip()
        if element_id and not self.classifier.is_volatile_identifier(element_id):
            found.append(
                self._attribute_candidate(
                    id_selector(element_id),
                    "id",
                    "Element id does not look generated",
                )
            )

        for token in element.classes:
            if is_css_identifier(token) and self.classifier.is_stable_class(token):
                found.append(
                    self._attribute_candidate(
                        f"{element.tag}.{token}",
                        "class",
                        f'Class "{token}" looks semantic rather than generated',
                    )
                )
                break
        return found

    def anchored_structural(self, tree: MarkupTree, target: int) -> list[SelectorCandidate]:
        anchor = self.anchors.anchor_for(tree, target)
        if anchor is None:
            return []
        path = self.anchors.relative_path(tree, anchor.element_ref, target)
        if not path:
            return []
        described = {
            AnchorKind.SEMANTIC: "semantic landmark",
            AnchorKind.ATTRIBUTE: "stable attribute",
            AnchorKind.STRUCTURAL: "stable container class",
        }[anchor.kind]
        return [
            SelectorCandidate(
                selector=f"{anchor.prefix_selector} > {path}",
                kind=CandidateKind.ANCHORED_STRUCTURAL,
                rationale=f"Anchored to {described} {anchor.prefix_selector} with a minimal child path",
                confidence=0.65,
                signal="anchored",
            )
        ]

    def text_based(self, tree: MarkupTree, target: int) -> list[SelectorCandidate]:
        return self.text_proximity.candidates(tree, target)

    @staticmethod
    def _attribute_candidate(selector: str, signal: str, rationale: str) -> SelectorCandidate:
        return SelectorCandidate(
            selector=selector,
            kind=CandidateKind.STABLE_ATTRIBUTE,
            rationale=rationale,
            confidence=ATTRIBUTE_ANCHORS[signal],
            signal=signal,
        )


def _unique(candidates: list[SelectorCandidate]) -> list[SelectorCandidate]:
    seen: set[str] = set()
    unique: list[SelectorCandidate] = []
    for candidate in candidates:
        if candidate.selector in seen:
            continue
        seen.add(candidate.selector)
        unique.append(candidate)
    return unique
