from __future__ import annotations

import copy

import lxml.html

from autoheal.config.schema import ContextWindowConfig
from autoheal.core.metadata import ContextWindow, MarkupTree, normalize_space

STRIPPED_TAGS = ("script", "style", "noscript")


def sanitize_markup(document) -> None:
    """Drops script-like elements and inline event handlers in place."""

    for node in list(document.iter(*STRIPPED_TAGS)):
        node.drop_tree()
    for node in document.iter():
        if not isinstance(node.tag, str):
            continue
        for name in [name for name in node.attrib if name.lower().startswith("on")]:
            del node.attrib[name]


def extract_context_window(
    tree: MarkupTree,
    target: int | None,
    config: ContextWindowConfig | None = None,
) -> ContextWindow:
    config = config or ContextWindowConfig()
    if tree.document is None:
        return ContextWindow()
    snippet = build_markup_snippet(tree, target, config.snippet_chars)
    nearby = collect_nearby_texts(tree, target, config) if target is not None else ()
    return ContextWindow(snippet=snippet, nearby_texts=tuple(nearby))


def build_markup_snippet(tree: MarkupTree, target: int | None, max_chars: int = 2000) -> str:
    """A fixed-size slice of the sanitized markup centered on the target element."""

    document = copy.deepcopy(tree.document)
    focus = None
    if target is not None:
        path = tree.element(target).source_path
        matches = document.xpath(path) if path else []
        focus = matches[0] if matches else None
    sanitize_markup(document)

    serialized = lxml.html.tostring(document, encoding="unicode")
    if len(serialized) <= max_chars:
        return serialized
    if focus is None:
        return serialized[:max_chars]

    marker = lxml.html.tostring(focus, encoding="unicode", with_tail=False)
    position = serialized.find(marker)
    if position < 0:
        return serialized[:max_chars]
    center = position + len(marker) // 2
    start = max(0, min(center - max_chars // 2, len(serialized) - max_chars))
    return serialized[start : start + max_chars]


def collect_nearby_texts(tree: MarkupTree, target: int, config: ContextWindowConfig | None = None) -> list[str]:
    config = config or ContextWindowConfig()
    refs: list[int] = [target]
    for sibling in (tree.previous_sibling(target), tree.next_sibling(target)):
        if sibling is not None:
            refs.append(sibling)
    parent = tree.parent(target)
    if parent is not None and parent != tree.root:
        refs.append(parent)
        refs.extend(ref for ref in tree.children(parent) if ref not in refs)

    texts: list[str] = []
    for ref in refs:
        if tree.element(ref).tag in STRIPPED_TAGS:
            continue
        text = normalize_space(tree.element(ref).text) if ref == parent else tree.text_content(ref)
        if 2 <= len(text) <= config.max_nearby_text_length and text not in texts:
            texts.append(text)
        if len(texts) >= config.max_nearby_texts:
            break
    return texts
