from __future__ import annotations

from autoheal.config.schema import GeneratorConfig
from autoheal.core.metadata import AnchorKind, AnchorPoint, Element, MarkupTree
from autoheal.core.volatility import VolatilityClassifier
from autoheal.utils.selectors import attribute_selector, id_selector, is_css_identifier

_CONTAINER_TAGS = {"div", "section", "article", "main", "form", "ul", "ol", "table"}


class AnchorDetector:
    """Finds the nearest stable ancestor of a target element."""

    def __init__(self, classifier: VolatilityClassifier, config: GeneratorConfig) -> None:
        self.classifier = classifier
        self.config = config

    def anchor_for(self, tree: MarkupTree, target: int) -> AnchorPoint | None:
        """Walks ancestors nearest first.

        Attribute and landmark anchors win; a container with stable classes is
        only used when no such ancestor exists.
        """

        structural: AnchorPoint | None = None
        for ref in tree.ancestors(target):
            anchor = self.describe(tree.element(ref))
            if anchor is None:
                continue
            if anchor.kind is AnchorKind.STRUCTURAL:
                structural = structural or anchor
                continue
            return anchor
        return structural

    def describe(self, element: Element) -> AnchorPoint | None:
        options: list[AnchorPoint] = []
        for name in self.config.test_id_attributes:
            value = element.attributes.get(name)
            if value and not self.classifier.is_volatile_identifier(value):
                options.append(self._anchor(element, attribute_selector(name, value), 0.95, AnchorKind.ATTRIBUTE))
                break
        if element.tag in self.config.landmark_tags:
            options.append(self._anchor(element, element.tag, 0.9, AnchorKind.SEMANTIC))
        role = element.attributes.get("role", "").strip()
        if role in self.config.stable_roles:
            options.append(self._anchor(element, attribute_selector("role", role), 0.8, AnchorKind.ATTRIBUTE))
        aria_label = element.attributes.get("aria-label", "").strip()
        if aria_label and not self.classifier.is_volatile_identifier(aria_label):
            options.append(
                self._anchor(element, attribute_selector("aria-label", aria_label), 0.75, AnchorKind.ATTRIBUTE)
            )
        element_id = element.attributes.get("id", "").strip()
        if element_id and not self.classifier.is_volatile_identifier(element_id):
            options.append(self._anchor(element, id_selector(element_id), 0.7, AnchorKind.ATTRIBUTE))
        if options:
            return max(options, key=lambda item: item.stability)

        if element.tag in _CONTAINER_TAGS:
            stable = [
                token for token in element.classes if is_css_identifier(token) and self.classifier.is_stable_class(token)
            ][:2]
            if stable:
                return self._anchor(element, element.tag + "".join(f".{token}" for token in stable), 0.6, AnchorKind.STRUCTURAL)
        return None

    @staticmethod
    def relative_path(tree: MarkupTree, anchor_ref: int, target: int) -> str:
        hops: list[str] = []
        current: int | None = target
        while current is not None and current != anchor_ref:
            hops.append(f"{tree.element(current).tag}:nth-child({tree.child_position(current)})")
            current = tree.parent(current)
        return " > ".join(reversed(hops))

    @staticmethod
    def _anchor(element: Element, selector: str, stability: float, kind: AnchorKind) -> AnchorPoint:
        return AnchorPoint(element_ref=element.index, prefix_selector=selector, stability=stability, kind=kind)
