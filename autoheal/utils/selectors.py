from __future__ import annotations

import re

from autoheal.core.metadata import CandidateKind

_CSS_IDENT = re.compile(r"^-?[A-Za-z_][A-Za-z0-9_-]*$")
_COMBINATORS = {">", "+", "~"}
_ID_TOKEN = re.compile(r"#(-?[A-Za-z_][\w-]*)")
_CLASS_TOKEN = re.compile(r"\.(-?[A-Za-z_][\w-]*)")
_ATTRIBUTE_VALUE = re.compile(r"""\[\s*@?[\w:-]+\s*[~|^$*]?=\s*(?:"([^"]*)"|'([^']*)'|([^\]\s]+))\s*\]""")
_WORD = re.compile(r"[a-z0-9]+")


def infer_selector_type(selector: str) -> str:
    stripped = selector.strip()
    if stripped.startswith("/") or stripped.startswith("("):
        return "xpath"
    return "css"


def is_css_identifier(value: str) -> bool:
    return bool(_CSS_IDENT.match(value))


def quote(value: str) -> str:
    """Double-quoted string literal usable inside CSS attribute selectors."""

    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def xpath_literal(value: str) -> str:
    if '"' not in value:
        return f'"{value}"'
    if "'" not in value:
        return f"'{value}'"
    pieces = value.split('"')
    return "concat(" + ", '\"', ".join(f'"{piece}"' for piece in pieces) + ")"


def attribute_selector(name: str, value: str, tag: str = "") -> str:
    return f"{tag}[{name}={quote(value)}]"


def id_selector(value: str) -> str:
    if is_css_identifier(value):
        return f"#{value}"
    return attribute_selector("id", value)


def id_tokens(selector: str) -> list[str]:
    return _ID_TOKEN.findall(selector)


def class_tokens(selector: str) -> list[str]:
    return _CLASS_TOKEN.findall(selector)


def attribute_values(selector: str) -> list[str]:
    values = []
    for groups in _ATTRIBUTE_VALUE.findall(selector):
        value = next((group for group in groups if group), "")
        if value:
            values.append(value)
    return values


def word_tokens(value: str, min_length: int = 3) -> set[str]:
    return {word for word in _WORD.findall(value.lower()) if len(word) >= min_length}


def split_segments(selector: str) -> list[str]:
    """Splits a CSS selector into compound segments, dropping combinators.

    Brackets, parentheses and quoted strings are kept intact, so
    ``div[title="a b"] > span`` yields two segments.
    """

    segments: list[str] = []
    current: list[str] = []
    depth = 0
    quote_char = ""
    for char in selector.strip():
        if quote_char:
            current.append(char)
            if char == quote_char:
                quote_char = ""
            continue
        if char in ("'", '"'):
            quote_char = char
        elif char in "[(":
            depth += 1
        elif char in "])":
            depth = max(0, depth - 1)
        elif depth == 0 and (char.isspace() or char in _COMBINATORS):
            if current:
                segments.append("".join(current))
                current = []
            continue
        current.append(char)
    if current:
        segments.append("".join(current))
    return segments


def xpath_steps(selector: str) -> list[str]:
    return [step for step in re.split(r"/+", selector.strip().lstrip("(")) if step]


def path_depth(selector: str) -> int:
    if infer_selector_type(selector) == "xpath":
        return len(xpath_steps(selector))
    return len(split_segments(selector))


def leading_tag(selector: str) -> str:
    """Tag name of the last compound segment, if it names one."""

    if infer_selector_type(selector) == "xpath":
        steps = xpath_steps(selector)
        match = re.match(r"^([A-Za-z][\w-]*)", steps[-1]) if steps else None
    else:
        segments = split_segments(selector)
        match = re.match(r"^([A-Za-z][\w-]*)", segments[-1]) if segments else None
    return match.group(1).lower() if match else ""


def infer_candidate_kind(selector: str, test_id_attributes: tuple[str, ...] | list[str] = ()) -> CandidateKind:
    lowered = selector.lower()
    if any(f"[{name}" in lowered or f"@{name}" in lowered for name in test_id_attributes):
        return CandidateKind.STABLE_ATTRIBUTE
    if ":contains(" in lowered or "text()" in lowered or "normalize-space" in lowered or "placeholder" in lowered:
        return CandidateKind.TEXT_PROXIMITY
    if ">" in selector or ":nth-" in lowered or infer_selector_type(selector) == "xpath":
        return CandidateKind.ANCHORED_STRUCTURAL
    return CandidateKind.STABLE_ATTRIBUTE
