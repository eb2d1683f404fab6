from __future__ import annotations

import logging
import re
from typing import Iterable

import lxml.html
from cssselect import HTMLTranslator, SelectorError
from lxml import etree

from autoheal.core.exceptions import ParseFailure, SelectorSyntaxError
from autoheal.core.metadata import (
    ROOT_TAG,
    Element,
    LocatorContext,
    MarkupSummary,
    MarkupTree,
    normalize_space,
)
from autoheal.utils.selectors import (
    attribute_values,
    class_tokens,
    id_tokens,
    infer_selector_type,
    leading_tag,
    split_segments,
    word_tokens,
)

log = logging.getLogger(__name__)

_TRANSLATOR = HTMLTranslator()
_TAG = re.compile(r"^([A-Za-z][\w-]*)")
_SILENT_TAGS = {"script", "style", "noscript", "template"}
INTERACTIVE_TAGS = {"button", "a", "input", "select", "textarea"}
FORM_TAGS = {"input", "textarea", "select", "button"}
_TOKEN_ATTRIBUTES = ("id", "class", "name", "aria-label", "title", "placeholder")
_TOKEN_STOPWORDS = {"btn", "button", "div", "span", "nth", "child", "type", "contains", "item", "icon"}


def compile_selector(selector: str) -> str:
    """Returns an XPath expression for a CSS or XPath selector."""

    stripped = selector.strip()
    if not stripped:
        raise SelectorSyntaxError("Selector is empty")
    if infer_selector_type(stripped) == "xpath":
        try:
            etree.XPath(stripped)
        except etree.XPathError as exc:
            raise SelectorSyntaxError(f"Invalid XPath {stripped!r}: {exc}") from exc
        return stripped
    try:
        return _TRANSLATOR.css_to_xpath(stripped)
    except SelectorError as exc:
        raise SelectorSyntaxError(f"Invalid CSS selector {stripped!r}: {exc}") from exc


def _leading_text(node) -> str:
    parts = [node.text or ""]
    for child in node:
        if isinstance(child.tag, str):
            break
        parts.append(child.tail or "")
    return "".join(parts)


def _trailing_text(node) -> str:
    """Tail text up to the next element sibling, skipping comments in between."""

    parts = [node.tail or ""]
    sibling = node.getnext()
    while sibling is not None and not isinstance(sibling.tag, str):
        parts.append(sibling.tail or "")
        sibling = sibling.getnext()
    return "".join(parts)


def is_valid_selector(selector: str) -> bool:
    try:
        compile_selector(selector)
    except SelectorSyntaxError:
        return False
    return True


class MarkupAnalyzer:
    """Parses captured markup into an element arena and locates the failed target."""

    def __init__(self, test_id_attributes: Iterable[str] = ("data-testid",)) -> None:
        self.test_id_attributes = tuple(test_id_attributes)

    def parse(self, markup: str) -> MarkupTree:
        if not markup or not markup.strip():
            return MarkupTree.empty()
        try:
            document = self._parse_document(markup)
        except ParseFailure as exc:
            log.warning("Markup could not be parsed, continuing with an empty tree: %s", exc)
            return MarkupTree.empty()
        return self._build_arena(document)

    def locate(self, tree: MarkupTree, selector: str, context: LocatorContext | None = None) -> int | None:
        ref = self.match_first(tree, selector)
        if ref is not None:
            return ref
        return self.locate_by_context(tree, context or LocatorContext(), failed_selector=selector)

    def match_all(self, tree: MarkupTree, selector: str) -> list[int]:
        if tree.document is None:
            return []
        try:
            expression = compile_selector(selector)
        except SelectorSyntaxError as exc:
            log.debug("Direct match skipped: %s", exc)
            return []
        try:
            matches = tree.document.xpath(expression)
        except etree.XPathError as exc:
            log.debug("Direct match failed for %r: %s", selector, exc)
            return []
        if not isinstance(matches, list):
            return []
        roottree = tree.document.getroottree()
        refs: list[int] = []
        for node in matches:
            if not isinstance(getattr(node, "tag", None), str):
                continue
            ref = tree.find_by_source_path(roottree.getpath(node))
            if ref is not None and ref not in refs:
                refs.append(ref)
        return refs

    def match_first(self, tree: MarkupTree, selector: str) -> int | None:
        refs = self.match_all(tree, selector)
        return refs[0] if refs else None

    def locate_by_context(
        self,
        tree: MarkupTree,
        context: LocatorContext,
        failed_selector: str = "",
    ) -> int | None:
        if tree.is_empty():
            return None
        if context.dom_path:
            ref = self.match_first(tree, context.dom_path)
            if ref is None:
                ref = self._match_tag_chain(tree, context.dom_path)
            if ref is not None:
                return ref

        tag_hint = leading_tag(failed_selector) if failed_selector else ""
        if not tag_hint and context.dom_path:
            tag_hint = leading_tag(context.dom_path)
        pool = [
            element.index
            for element in tree
            if element.tag != ROOT_TAG
            and (element.tag == tag_hint if tag_hint else self._is_interactive(element))
        ]
        if context.ancestor_chain:
            pool = [ref for ref in pool if self._matches_ancestor_chain(tree, ref, context.ancestor_chain)]
        if pool and context.neighbor_texts:
            ref = self._best_by_neighbors(tree, pool, context.neighbor_texts)
            if ref is not None:
                return ref
        if pool and (context.ancestor_chain or len(pool) == 1):
            return pool[0]
        return self._match_tokens(tree, failed_selector)

    def summarize(self, tree: MarkupTree) -> MarkupSummary:
        element_count = interactive = form = depth = 0
        has_test_ids = has_aria_labels = False
        for element in tree:
            if element.tag == ROOT_TAG:
                continue
            element_count += 1
            depth = max(depth, tree.depth(element.index))
            if element.tag in FORM_TAGS:
                form += 1
            if self._is_interactive(element):
                interactive += 1
            if any(name in element.attributes for name in self.test_id_attributes):
                has_test_ids = True
            if "aria-label" in element.attributes or "aria-labelledby" in element.attributes:
                has_aria_labels = True
        return MarkupSummary(
            element_count=element_count,
            interactive_elements=interactive,
            form_elements=form,
            depth=depth,
            has_test_ids=has_test_ids,
            has_aria_labels=has_aria_labels,
        )

    @staticmethod
    def _parse_document(markup: str):
        parser = lxml.html.HTMLParser(recover=True, encoding="utf-8")
        try:
            return lxml.html.document_fromstring(markup.encode("utf-8"), parser=parser)
        except (etree.ParserError, etree.XMLSyntaxError, ValueError) as exc:
            raise ParseFailure(str(exc) or "Document is empty") from exc

    @staticmethod
    def _build_arena(document) -> MarkupTree:
        elements = [Element(index=0, tag=ROOT_TAG)]
        roottree = document.getroottree()
        stack = [(document, 0)]
        while stack:
            node, parent_index = stack.pop()
            index = len(elements)
            tag = node.tag.lower()
            direct = "" if tag in _SILENT_TAGS else " ".join([node.text or "", *(child.tail or "" for child in node)])
            elements.append(
                Element(
                    index=index,
                    tag=tag,
                    attributes={str(name).lower(): value for name, value in node.attrib.items()},
                    text=normalize_space(direct),
                    parent=parent_index,
                    source_path=roottree.getpath(node),
                    lead=_leading_text(node),
                    tail=_trailing_text(node) if parent_index != 0 else "",
                )
            )
            elements[parent_index].children.append(index)
            for child in reversed(node):
                if isinstance(child.tag, str):
                    stack.append((child, index))
        return MarkupTree(elements, document=document)

    @staticmethod
    def _is_interactive(element: Element) -> bool:
        return (
            element.tag in INTERACTIVE_TAGS
            or "onclick" in element.attributes
            or element.attributes.get("role") == "button"
        )

    @staticmethod
    def _match_tag_chain(tree: MarkupTree, dom_path: str) -> int | None:
        tags = []
        for segment in split_segments(dom_path):
            match = _TAG.match(segment)
            tags.append(match.group(1).lower() if match else "")
        if not tags or not tags[-1]:
            return None
        for element in tree:
            if element.tag != tags[-1]:
                continue
            chain = [tree.element(ref).tag for ref in tree.ancestors(element.index)]
            expected = list(reversed(tags[:-1]))
            if len(chain) < len(expected):
                continue
            if all(not tag or tag == chain[position] for position, tag in enumerate(expected)):
                return element.index
        return None

    @staticmethod
    def _matches_ancestor_chain(tree: MarkupTree, ref: int, chain: Iterable[str]) -> bool:
        ancestors = [tree.element(index) for index in tree.ancestors(ref)]
        for entry in chain:
            match = _TAG.match(entry.strip())
            tag = match.group(1).lower() if match else ""
            classes = set(class_tokens(entry))
            ids = set(id_tokens(entry))
            if not any(
                (not tag or ancestor.tag == tag)
                and classes <= set(ancestor.classes)
                and (not ids or ancestor.attributes.get("id") in ids)
                for ancestor in ancestors
            ):
                return False
        return True

    @staticmethod
    def _best_by_neighbors(tree: MarkupTree, pool: list[int], neighbor_texts: Iterable[str]) -> int | None:
        wanted = [text.strip().lower() for text in neighbor_texts if text and text.strip()]
        best_ref: int | None = None
        best_hits = 0
        for ref in pool:
            surroundings = [tree.text_content(ref)]
            for sibling in (tree.previous_sibling(ref), tree.next_sibling(ref)):
                if sibling is not None:
                    surroundings.append(tree.text_content(sibling))
            parent = tree.parent(ref)
            if parent is not None:
                surroundings.append(tree.element(parent).text)
            haystack = " | ".join(surroundings).lower()
            hits = sum(1 for text in wanted if text in haystack)
            if hits > best_hits:
                best_ref, best_hits = ref, hits
        return best_ref

    def _match_tokens(self, tree: MarkupTree, failed_selector: str) -> int | None:
        """Last resort: shared words between the failed selector and element attributes."""

        if not failed_selector:
            return None
        raw = " ".join(id_tokens(failed_selector) + class_tokens(failed_selector) + attribute_values(failed_selector))
        wanted = word_tokens(raw) - _TOKEN_STOPWORDS
        if not wanted:
            return None
        best_ref: int | None = None
        best_ratio = 0.0
        for element in tree:
            if element.tag == ROOT_TAG:
                continue
            names = (*self.test_id_attributes, *_TOKEN_ATTRIBUTES)
            values = " ".join(element.attributes.get(name, "") for name in names)
            shared = wanted & word_tokens(f"{values} {element.text}")
            ratio = len(shared) / len(wanted)
            if ratio > best_ratio:
                best_ref, best_ratio = element.index, ratio
        return best_ref if best_ratio >= 0.5 else None
