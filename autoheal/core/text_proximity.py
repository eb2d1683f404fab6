from __future__ import annotations

from autoheal.config.schema import GeneratorConfig
from autoheal.core.metadata import CandidateKind, MarkupTree, SelectorCandidate, normalize_space
from autoheal.utils.selectors import attribute_selector, quote, xpath_literal

_NON_VISUAL_TAGS = {"script", "style", "noscript", "template"}


class TextProximityDetector:
    """Builds text-anchored selectors from the target's own text or nearby signals."""

    def __init__(self, config: GeneratorConfig) -> None:
        self.config = config
        self._generic = set(config.generic_texts)

    def usable_text(self, value: str | None, min_length: int = 2) -> str | None:
        text = normalize_space(value or "")
        if len(text) < min_length or len(text) >= self.config.max_text_length:
            return None
        if text.lower() in self._generic:
            return None
        return text

    def candidates(self, tree: MarkupTree, target: int) -> list[SelectorCandidate]:
        element = tree.element(target)
        own_text = self.usable_text(tree.text_content(target), min_length=1)
        if own_text:
            return [
                SelectorCandidate(
                    selector=self._text_selector(tree, target, own_text),
                    kind=CandidateKind.TEXT_PROXIMITY,
                    rationale=f'Matches the {element.tag} element by its visible text "{own_text}"',
                    signal="own-text",
                )
            ]

        found: list[SelectorCandidate] = []
        for signal in (
            self._previous_sibling,
            self._next_sibling,
            self._label,
            self._labelled_by,
            self._placeholder,
        ):
            candidate = signal(tree, target)
            if candidate is not None:
                found.append(candidate)
        return found

    def _previous_sibling(self, tree: MarkupTree, target: int) -> SelectorCandidate | None:
        sibling = tree.previous_sibling(target)
        if sibling is None or tree.element(sibling).tag in _NON_VISUAL_TAGS:
            return None
        text = self.usable_text(tree.text_content(sibling))
        if not text:
            return None
        tag = tree.element(target).tag
        sibling_tag = tree.element(sibling).tag
        if text in tree.string_value(sibling):
            selector = f"{sibling_tag}:contains({quote(text)}) + {tag}"
        else:
            selector = f"//{sibling_tag}[normalize-space()={xpath_literal(text)}]/following-sibling::*[1][self::{tag}]"
        return SelectorCandidate(
            selector=selector,
            kind=CandidateKind.TEXT_PROXIMITY,
            rationale=f'Follows the {sibling_tag} element with text "{text}"',
            signal="previous-sibling",
        )

    def _next_sibling(self, tree: MarkupTree, target: int) -> SelectorCandidate | None:
        sibling = tree.next_sibling(target)
        if sibling is None or tree.element(sibling).tag in _NON_VISUAL_TAGS:
            return None
        text = self.usable_text(tree.text_content(sibling))
        if not text:
            return None
        tag = tree.element(target).tag
        sibling_tag = tree.element(sibling).tag
        return SelectorCandidate(
            selector=f"//{sibling_tag}[normalize-space()={xpath_literal(text)}]/preceding-sibling::*[1][self::{tag}]",
            kind=CandidateKind.TEXT_PROXIMITY,
            rationale=f'Precedes the {sibling_tag} element with text "{text}"',
            signal="next-sibling",
        )

    def _label(self, tree: MarkupTree, target: int) -> SelectorCandidate | None:
        element = tree.element(target)
        element_id = element.attributes.get("id")
        if element_id:
            for candidate in tree:
                if candidate.tag != "label" or candidate.attributes.get("for") != element_id:
                    continue
                text = self.usable_text(tree.text_content(candidate.index))
                if text:
                    return SelectorCandidate(
                        selector=(
                            f"//{element.tag}[@id=//label[normalize-space()={xpath_literal(text)}]/@for]"
                        ),
                        kind=CandidateKind.TEXT_PROXIMITY,
                        rationale=f'Associated with the label "{text}"',
                        signal="label",
                    )
                break
        for ancestor in tree.ancestors(target):
            if tree.element(ancestor).tag != "label":
                continue
            text = self.usable_text(tree.text_content(ancestor))
            if text:
                return SelectorCandidate(
                    selector=f"//label[normalize-space()={xpath_literal(text)}]//{element.tag}",
                    kind=CandidateKind.TEXT_PROXIMITY,
                    rationale=f'Wrapped by the label "{text}"',
                    signal="label",
                )
            break
        return None

    def _labelled_by(self, tree: MarkupTree, target: int) -> SelectorCandidate | None:
        element = tree.element(target)
        labelled_by = element.attributes.get("aria-labelledby", "").strip()
        if not labelled_by:
            return None
        label_ref = tree.find_by_id(labelled_by.split()[0])
        if label_ref is None:
            return None
        text = self.usable_text(tree.text_content(label_ref))
        if not text:
            return None
        return SelectorCandidate(
            selector=attribute_selector("aria-labelledby", labelled_by, tag=element.tag),
            kind=CandidateKind.TEXT_PROXIMITY,
            rationale=f'Labelled by the element with text "{text}"',
            signal="aria-labelledby",
        )

    def _placeholder(self, tree: MarkupTree, target: int) -> SelectorCandidate | None:
        element = tree.element(target)
        placeholder = self.usable_text(element.attributes.get("placeholder"))
        if not placeholder:
            return None
        return SelectorCandidate(
            selector=attribute_selector("placeholder", element.attributes["placeholder"], tag=element.tag),
            kind=CandidateKind.TEXT_PROXIMITY,
            rationale=f'Matches the placeholder text "{placeholder}"',
            signal="placeholder",
        )

    def _text_selector(self, tree: MarkupTree, target: int, text: str) -> str:
        tag = tree.element(target).tag
        if text in tree.string_value(target):
            return f"{tag}:contains({quote(text)})"
        return f"//{tag}[normalize-space()={xpath_literal(text)}]"
