from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import replace
from typing import Iterable, Mapping, Sequence

from autoheal.config.schema import DEFAULT_TEST_ID_ATTRIBUTES, EngineConfig
from autoheal.core.exceptions import RerankBackendFailure, ResponseShapeError
from autoheal.core.markup import is_valid_selector
from autoheal.core.metadata import MarkupSummary, RerankOutcome, SelectorCandidate
from autoheal.llm.client import LLMProvider, create_llm_provider
from autoheal.llm.parser import parse_rerank_response
from autoheal.llm.prompts import SYSTEM_PROMPT, build_rerank_payload, build_user_prompt
from autoheal.utils.selectors import infer_candidate_kind

log = logging.getLogger(__name__)

RERANK_LIMIT = 3
LONG_SELECTOR = 80
MODEL_RATIONALE = "Proposed by the language model from the surrounding markup."

_NUMERIC_ID = re.compile(r"#[\w-]*\d")
_POSITIONAL = re.compile(r":nth-(?:child|of-type)\(|\[\d+\]")

EXPLANATIONS = {
    "dynamic-id": "The failed selector appears to use a dynamic ID containing numbers, which may change between test runs.",
    "positional": (
        "The failed selector relies on structural positioning (nth-child or index), "
        "which breaks when elements are added, removed, or reordered."
    ),
    "deep-path": "The failed selector is deeply nested and may be too specific, making it fragile to layout changes.",
    "class-churn": "The failed selector relies on multiple CSS classes, which may change during UI updates.",
    "generic": "The element structure may have changed, making the original selector invalid.",
}


def explain_failure(failed_selector: str) -> str:
    """Picks a canned explanation by the shape of the selector that broke."""

    if _NUMERIC_ID.search(failed_selector):
        return EXPLANATIONS["dynamic-id"]
    if _POSITIONAL.search(failed_selector):
        return EXPLANATIONS["positional"]
    if len(failed_selector.split(" ")) > 4:
        return EXPLANATIONS["deep-path"]
    if "." in failed_selector and len(failed_selector.split(".")) > 3:
        return EXPLANATIONS["class-churn"]
    return EXPLANATIONS["generic"]


class RerankBackend(ABC):
    """Reorders the best heuristic candidates and explains the original failure."""

    name = "unknown"

    @abstractmethod
    def rerank(
        self,
        markup_snippet: str,
        failed_selector: str,
        candidates: Sequence[SelectorCandidate],
        intended_action: str,
        nearby_texts: Sequence[str],
        summary: MarkupSummary | None = None,
    ) -> RerankOutcome:
        raise NotImplementedError


class HeuristicRerankBackend(RerankBackend):
    name = "deterministic"

    def __init__(self, test_id_attributes: Iterable[str] = DEFAULT_TEST_ID_ATTRIBUTES) -> None:
        self.test_id_attributes = tuple(test_id_attributes)

    def rerank(
        self,
        markup_snippet: str,
        failed_selector: str,
        candidates: Sequence[SelectorCandidate],
        intended_action: str,
        nearby_texts: Sequence[str],
        summary: MarkupSummary | None = None,
    ) -> RerankOutcome:
        adjusted = [self._adjust(candidate) for candidate in candidates]
        adjusted.sort(key=lambda item: item.confidence, reverse=True)
        return RerankOutcome(
            ranked=tuple(adjusted[:RERANK_LIMIT]),
            failure_explanation=explain_failure(failed_selector),
            backend=self.name,
        )

    def _adjust(self, candidate: SelectorCandidate) -> SelectorCandidate:
        confidence = candidate.confidence
        rationale = candidate.rationale
        if any(name in candidate.selector for name in self.test_id_attributes):
            confidence = min(0.95, confidence + 0.1)
            rationale = "High confidence: a test-id attribute provides excellent stability for automated testing"
        elif "aria-" in candidate.selector:
            confidence = min(0.85, confidence + 0.05)
            rationale = "Good confidence: ARIA attributes are semantic and relatively stable"
        elif len(candidate.selector) > LONG_SELECTOR:
            confidence *= 0.8
            rationale = "Lower confidence: complex selector may be brittle to DOM changes"
        return replace(candidate, confidence=round(confidence, 2), rationale=rationale)


class GenerativeRerankBackend(RerankBackend):
    """Asks a language model to rerank; any failure delegates to ``fallback``."""

    name = "generative"

    def __init__(
        self,
        provider: LLMProvider,
        fallback: RerankBackend | None = None,
        timeout: float = 10.0,
        test_id_attributes: Iterable[str] = DEFAULT_TEST_ID_ATTRIBUTES,
    ) -> None:
        self.provider = provider
        self.fallback = fallback or HeuristicRerankBackend(test_id_attributes)
        self.timeout = timeout
        self.test_id_attributes = tuple(test_id_attributes)

    def rerank(
        self,
        markup_snippet: str,
        failed_selector: str,
        candidates: Sequence[SelectorCandidate],
        intended_action: str,
        nearby_texts: Sequence[str],
        summary: MarkupSummary | None = None,
    ) -> RerankOutcome:
        payload = build_rerank_payload(
            markup_snippet=markup_snippet,
            failed_selector=failed_selector,
            candidates=candidates,
            intended_action=intended_action,
            nearby_texts=nearby_texts,
            summary=summary,
        )
        try:
            response = self._complete(build_user_prompt(payload))
            outcome = self._to_outcome(response, candidates)
        except Exception as exc:  # noqa: BLE001 - every provider failure degrades to the fallback.
            log.warning(
                "Generative rerank via %s failed (%s: %s); using deterministic fallback",
                getattr(self.provider, "provider_name", "unknown"),
                type(exc).__name__,
                exc,
            )
            outcome = self.fallback.rerank(
                markup_snippet, failed_selector, candidates, intended_action, nearby_texts, summary
            )
            return replace(outcome, fell_back=True)
        return outcome

    def _complete(self, user_prompt: str) -> str:
        # Single attempt; whichever comes first, the response or the deadline, wins.
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="autoheal-rerank")
        try:
            future = executor.submit(self.provider.complete, SYSTEM_PROMPT, user_prompt, self.timeout)
            try:
                return future.result(timeout=self.timeout)
            except FutureTimeout as exc:
                future.cancel()
                raise RerankBackendFailure(f"Generative rerank timed out after {self.timeout}s") from exc
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _to_outcome(self, response: str, candidates: Sequence[SelectorCandidate]) -> RerankOutcome:
        payload = parse_rerank_response(response)
        known = {candidate.selector: candidate for candidate in candidates}
        ranked: list[SelectorCandidate] = []
        for item in payload.ranked:
            selector = item.selector.strip()
            if not is_valid_selector(selector):
                log.debug("Dropping model selector with invalid syntax: %r", selector)
                continue
            if any(existing.selector == selector for existing in ranked):
                continue
            heuristic = known.get(selector)
            kind = heuristic.kind if heuristic else infer_candidate_kind(selector, self.test_id_attributes)
            ranked.append(
                SelectorCandidate(
                    selector=selector,
                    kind=kind,
                    rationale=item.rationale.strip() or (heuristic.rationale if heuristic else MODEL_RATIONALE),
                    confidence=item.confidence,
                    signal=heuristic.signal if heuristic else "",
                )
            )
            if len(ranked) == RERANK_LIMIT:
                break
        if not ranked:
            raise ResponseShapeError("Model returned no syntactically valid selectors")
        return RerankOutcome(
            ranked=tuple(ranked),
            failure_explanation=payload.explanation_of_failure,
            backend=self.name,
        )


def create_rerank_backend(config: EngineConfig, environ: Mapping[str, str] | None = None) -> RerankBackend:
    test_ids = config.generator.test_id_attributes
    deterministic = HeuristicRerankBackend(test_ids)
    if config.rerank.backend != "generative":
        return deterministic
    try:
        provider = create_llm_provider(config.rerank, environ)
    except RerankBackendFailure as exc:
        log.warning("Generative rerank unavailable, using deterministic backend: %s", exc)
        return deterministic
    return GenerativeRerankBackend(
        provider,
        fallback=deterministic,
        timeout=config.rerank.timeout_seconds,
        test_id_attributes=test_ids,
    )
