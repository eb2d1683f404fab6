from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

ROOT_TAG = "#document"

_XPATH_SPACE = re.compile(r"[ \t\r\n]+")


def normalize_space(value: str) -> str:
    """Collapses whitespace the way XPath normalize-space() does."""

    return _XPATH_SPACE.sub(" ", value).strip()


class CandidateKind(str, Enum):
    STABLE_ATTRIBUTE = "stable-attribute"
    ANCHORED_STRUCTURAL = "anchored-structural"
    TEXT_PROXIMITY = "text-proximity"


class CandidateSource(str, Enum):
    HEURISTIC = "heuristic"
    RERANKED = "reranked"


class AnchorKind(str, Enum):
    SEMANTIC = "semantic"
    ATTRIBUTE = "attribute"
    STRUCTURAL = "structural"


@dataclass(slots=True)
class Element:
    index: int
    tag: str
    attributes: dict[str, str] = field(default_factory=dict)
    text: str = ""
    parent: int | None = None
    children: list[int] = field(default_factory=list)
    source_path: str = ""
    lead: str = ""
    tail: str = ""

    def get(self, name: str, default: str | None = None) -> str | None:
        return self.attributes.get(name, default)

    @property
    def classes(self) -> list[str]:
        return [token for token in self.attributes.get("class", "").split() if token]


class MarkupTree:
    """Arena of parsed elements addressed by integer index.

    Index 0 is always a synthetic document root. The tree is not modified after
    the analyzer hands it out.
    """

    __slots__ = ("_elements", "_document", "_by_path")

    def __init__(self, elements: list[Element], document: Any = None) -> None:
        self._elements = elements
        self._document = document
        self._by_path = {element.source_path: element.index for element in elements if element.source_path}

    @classmethod
    def empty(cls) -> MarkupTree:
        return cls([Element(index=0, tag=ROOT_TAG)])

    @property
    def root(self) -> int:
        return 0

    @property
    def document(self) -> Any:
        """The lxml document the arena was built from, if any."""

        return self._document

    def __len__(self) -> int:
        return len(self._elements)

    def __iter__(self) -> Iterator[Element]:
        return iter(self._elements)

    def element(self, ref: int) -> Element:
        return self._elements[ref]

    def is_empty(self) -> bool:
        return len(self._elements) <= 1

    def parent(self, ref: int) -> int | None:
        return self._elements[ref].parent

    def children(self, ref: int) -> list[int]:
        return list(self._elements[ref].children)

    def ancestors(self, ref: int) -> Iterator[int]:
        """Yields ancestor indexes nearest first, excluding the synthetic root."""

        current = self._elements[ref].parent
        while current is not None and current != self.root:
            yield current
            current = self._elements[current].parent

    def depth(self, ref: int) -> int:
        return sum(1 for _ in self.ancestors(ref))

    def child_position(self, ref: int) -> int:
        """1-based position among the parent's element children (``nth-child``)."""

        parent = self._elements[ref].parent
        if parent is None:
            return 1
        return self._elements[parent].children.index(ref) + 1

    def previous_sibling(self, ref: int) -> int | None:
        parent = self._elements[ref].parent
        if parent is None:
            return None
        siblings = self._elements[parent].children
        position = siblings.index(ref)
        return siblings[position - 1] if position > 0 else None

    def next_sibling(self, ref: int) -> int | None:
        parent = self._elements[ref].parent
        if parent is None:
            return None
        siblings = self._elements[parent].children
        position = siblings.index(ref)
        return siblings[position + 1] if position + 1 < len(siblings) else None

    def descendants(self, ref: int) -> Iterator[int]:
        stack = list(reversed(self._elements[ref].children))
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(self._elements[current].children))

    def string_value(self, ref: int) -> str:
        """Raw concatenated text of the subtree, in document order."""

        parts: list[str] = []
        stack: list[tuple[int, bool]] = [(ref, False)]
        while stack:
            current, leaving = stack.pop()
            element = self._elements[current]
            if leaving:
                parts.append(element.tail)
                continue
            parts.append(element.lead)
            if current != ref:
                stack.append((current, True))
            stack.extend((child, False) for child in reversed(element.children))
        return "".join(parts)

    def text_content(self, ref: int) -> str:
        return normalize_space(self.string_value(ref))

    def find_by_id(self, value: str) -> int | None:
        for element in self._elements:
            if element.attributes.get("id") == value:
                return element.index
        return None

    def find_by_source_path(self, path: str) -> int | None:
        return self._by_path.get(path)

    def dom_path(self, ref: int) -> str:
        chain = [self._elements[ref].tag]
        chain.extend(self._elements[index].tag for index in self.ancestors(ref))
        return " > ".join(reversed(chain))


@dataclass(frozen=True, slots=True)
class AnchorPoint:
    element_ref: int
    prefix_selector: str
    stability: float
    kind: AnchorKind


@dataclass(frozen=True, slots=True)
class SelectorCandidate:
    selector: str
    kind: CandidateKind
    rationale: str
    confidence: float = 0.0
    source: CandidateSource = CandidateSource.HEURISTIC
    signal: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", min(1.0, max(0.0, float(self.confidence))))

    def to_dict(self) -> dict[str, Any]:
        return {
            "selector": self.selector,
            "kind": self.kind.value,
            "rationale": self.rationale,
            "confidence": self.confidence,
            "source": self.source.value,
        }


@dataclass(frozen=True, slots=True)
class LocatorContext:
    dom_path: str = ""
    neighbor_texts: tuple[str, ...] = ()
    ancestor_chain: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RecoveryRequest:
    markup: str
    failed_selector: str
    locator_context: LocatorContext = field(default_factory=LocatorContext)
    intended_action: str = "click"


@dataclass(frozen=True, slots=True)
class RecoveryResult:
    candidates: tuple[SelectorCandidate, ...]
    top_choice: str
    failure_explanation: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "candidates": [candidate.to_dict() for candidate in self.candidates],
            "topChoice": self.top_choice,
            "failureExplanation": self.failure_explanation,
        }


@dataclass(frozen=True, slots=True)
class MarkupSummary:
    element_count: int = 0
    interactive_elements: int = 0
    form_elements: int = 0
    depth: int = 0
    has_test_ids: bool = False
    has_aria_labels: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "element_count": self.element_count,
            "interactive_elements": self.interactive_elements,
            "form_elements": self.form_elements,
            "depth": self.depth,
            "has_test_ids": self.has_test_ids,
            "has_aria_labels": self.has_aria_labels,
        }


@dataclass(frozen=True, slots=True)
class ContextWindow:
    snippet: str = ""
    nearby_texts: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class RerankOutcome:
    ranked: tuple[SelectorCandidate, ...]
    failure_explanation: str
    backend: str = "deterministic"
    fell_back: bool = False
