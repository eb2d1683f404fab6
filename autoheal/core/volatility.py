from __future__ import annotations

import re

from autoheal.config.schema import VolatilityThresholds
from autoheal.utils.selectors import attribute_values, class_tokens, id_tokens, path_depth

_UUID = re.compile(r"[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}", re.IGNORECASE)
_TRAILING_NUMBER = re.compile(r"_\d+$")
_DYNAMIC_KEYWORDS = frozenset({"random", "generated", "temp", "tmp"})
_WORD_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Za-z])(?=\d)|(?<=\d)(?=[A-Za-z])")
_NON_WORD = re.compile(r"[^A-Za-z0-9]+")

# Hash-shaped class tokens must mix letters and digits so plain words such as
# "container" stay usable.
_HASH_CLASS = re.compile(r"^(?=[a-z0-9]*\d)(?=[a-z0-9]*[a-z])[a-z0-9]{8,}$")

_GENERATED_CLASS_PATTERNS = (
    re.compile(r"^css-[a-z0-9]+$", re.IGNORECASE),
    re.compile(r"^sc-[a-z0-9]+$", re.IGNORECASE),
    re.compile(r"^jsx-\d+$"),
    re.compile(r"^jss\d+$"),
    re.compile(r"^makeStyles-[\w-]+-\d+$"),
    re.compile(r"^[A-Za-z][\w-]*__(?=[A-Za-z0-9]*\d)[A-Za-z0-9]{5,}$"),
)

_STRUCTURAL_INDEX = re.compile(r":nth-(?:child|of-type)\((\d+)\)|\[(\d+)\]")
_SEMANTIC_CLASS = re.compile(
    r"header|footer|nav|sidebar|main|content|button|input|form|modal|dialog|container|wrapper|box|panel",
    re.IGNORECASE,
)


def has_dynamic_keyword(text: str) -> bool:
    """Whole-word keyword match; "tmp-node" and "generatedButton" count, "template" does not."""

    words = _NON_WORD.split(_WORD_BOUNDARY.sub(" ", text))
    return any(word.lower() in _DYNAMIC_KEYWORDS for word in words)


class VolatilityClassifier:
    """Flags identifiers, class tokens and selector paths that look run-dependent."""

    def __init__(self, thresholds: VolatilityThresholds | None = None) -> None:
        self.thresholds = thresholds or VolatilityThresholds()
        self._digit_run = re.compile(r"\d{%d,}" % self.thresholds.digit_run_length)

    def is_volatile_identifier(self, value: str) -> bool:
        text = value.strip()
        if not text:
            return False
        return bool(
            self._digit_run.search(text)
            or _UUID.search(text)
            or _TRAILING_NUMBER.search(text)
            or has_dynamic_keyword(text)
        )

    def is_volatile_class(self, token: str) -> bool:
        text = token.strip()
        if not text:
            return False
        if self.is_volatile_identifier(text):
            return True
        if _HASH_CLASS.match(text):
            return True
        return any(pattern.match(text) for pattern in _GENERATED_CLASS_PATTERNS)

    def is_stable_class(self, token: str) -> bool:
        """Non-volatile and semantic-looking: a known UI word, or longer than three characters."""

        if self.is_volatile_class(token):
            return False
        return bool(_SEMANTIC_CLASS.search(token)) or len(token) > 3

    def has_excessive_index(self, selector: str) -> bool:
        for match in _STRUCTURAL_INDEX.finditer(selector):
            index = int(match.group(1) or match.group(2))
            if index > self.thresholds.nth_child_bound:
                return True
        return False

    def is_volatile_path(self, selector: str) -> bool:
        if self.has_excessive_index(selector):
            return True
        return path_depth(selector) > self.thresholds.max_path_depth

    def is_volatile(self, selector: str) -> bool:
        """Applies every check to an assembled selector string."""

        text = selector.strip()
        if not text:
            return False
        if self._digit_run.search(text) or _UUID.search(text) or has_dynamic_keyword(text):
            return True
        if self.is_volatile_path(text):
            return True
        if any(self.is_volatile_identifier(token) for token in id_tokens(text)):
            return True
        if any(self.is_volatile_class(token) for token in class_tokens(text)):
            return True
        return any(_TRAILING_NUMBER.search(value) for value in attribute_values(text))
