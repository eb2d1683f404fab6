from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from autoheal.config.schema import EngineConfig, FailurePayload, SelectorContextPayload
from autoheal.core.candidates import CandidateGenerator
from autoheal.core.exceptions import InvalidInput, TargetNotFound
from autoheal.core.markup import MarkupAnalyzer
from autoheal.core.metadata import (
    CandidateSource,
    LocatorContext,
    MarkupSummary,
    MarkupTree,
    RecoveryRequest,
    RecoveryResult,
    SelectorCandidate,
)
from autoheal.core.volatility import VolatilityClassifier
from autoheal.llm.backend import RerankBackend, create_rerank_backend, explain_failure
from autoheal.logging.audit import RecoveryAuditLogger
from autoheal.utils.dom_extract import extract_context_window
from autoheal.utils.scoring import SelectorScorer

log = logging.getLogger(__name__)

MAX_RESULTS = 5
HEURISTIC_TAIL = 2
HEURISTIC_ONLY_EXPLANATION = "Selector analysis completed with heuristic analysis only."


@dataclass(slots=True)
class _Trace:
    target_found: bool = False
    backend: str = "none"
    fell_back: bool = False
    summary: MarkupSummary | None = None


class RecoveryOrchestrator:
    """Runs one selector recovery end to end and never raises past input validation."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        backend: RerankBackend | None = None,
        audit_logger: RecoveryAuditLogger | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        test_ids = self.config.generator.test_id_attributes
        self.classifier = VolatilityClassifier(self.config.volatility)
        self.analyzer = MarkupAnalyzer(test_ids)
        self.generator = CandidateGenerator(self.classifier, self.config.generator)
        self.scorer = SelectorScorer(self.classifier, self.config.scoring, test_ids)
        self.backend = backend or create_rerank_backend(self.config)
        self.audit_logger = audit_logger or RecoveryAuditLogger()

    def generate_suggestions(
        self,
        markup: str,
        failed_selector: str,
        locator_context: LocatorContext | Mapping[str, Any] | None = None,
        intended_action: str = "click",
    ) -> RecoveryResult:
        request = RecoveryRequest(
            markup=markup,
            failed_selector=failed_selector,
            locator_context=_coerce_context(locator_context),
            intended_action=intended_action or "click",
        )
        return self.recover(request)

    def regenerate(
        self,
        markup: str,
        failed_selector: str,
        locator_context: LocatorContext | Mapping[str, Any] | None = None,
        intended_action: str = "click",
    ) -> RecoveryResult:
        """Recomputes suggestions from scratch; nothing from earlier runs is reused."""

        return self.generate_suggestions(markup, failed_selector, locator_context, intended_action)

    def recover_payload(self, payload: FailurePayload | Mapping[str, Any]) -> RecoveryResult:
        if not isinstance(payload, FailurePayload):
            try:
                payload = FailurePayload.model_validate(payload)
            except ValidationError as exc:
                raise InvalidInput(f"Invalid failure payload: {exc}") from exc
        context = payload.selector_context
        request = RecoveryRequest(
            markup=payload.dom_html,
            failed_selector=payload.current_selector,
            locator_context=LocatorContext(
                dom_path=context.dom_path,
                neighbor_texts=tuple(context.neighbors),
                ancestor_chain=tuple(context.parent_elements),
            ),
            intended_action=payload.intended_action or "click",
        )
        return self.recover(request)

    def recover(self, request: RecoveryRequest) -> RecoveryResult:
        self._validate(request)
        started = time.perf_counter()
        trace = _Trace()
        try:
            result = self._run(request, trace)
        except TargetNotFound as exc:
            log.info("%s", exc)
            result = self._empty_result(request.failed_selector, explain_failure(request.failed_selector))
        except Exception:  # noqa: BLE001 - callers always get a well-formed result.
            log.exception("Recovery pipeline failed for %r; returning heuristic-only result", request.failed_selector)
            result = self._heuristic_only(request, trace)
        self.audit_logger.write(
            failed_selector=request.failed_selector,
            target_found=trace.target_found,
            result=result,
            backend=trace.backend,
            fell_back=trace.fell_back,
            summary=trace.summary,
            elapsed_ms=(time.perf_counter() - started) * 1000,
        )
        return result

    def _run(self, request: RecoveryRequest, trace: _Trace) -> RecoveryResult:
        tree = self.analyzer.parse(request.markup)
        trace.summary = self.analyzer.summarize(tree)
        target = self._locate(tree, request, trace)
        ranked = self.scorer.rank(self.generator.generate(tree, target))
        if not ranked:
            return self._empty_result(request.failed_selector, explain_failure(request.failed_selector))

        window = extract_context_window(tree, target, self.config.context)
        outcome = self.backend.rerank(
            window.snippet,
            request.failed_selector,
            ranked,
            request.intended_action,
            window.nearby_texts,
            trace.summary,
        )
        trace.backend = outcome.backend
        trace.fell_back = outcome.fell_back
        reranked = [replace(candidate, source=CandidateSource.RERANKED) for candidate in outcome.ranked]
        return self._finalize(request.failed_selector, reranked, ranked, outcome.failure_explanation)

    def _locate(self, tree: MarkupTree, request: RecoveryRequest, trace: _Trace) -> int:
        if tree.is_empty():
            raise TargetNotFound("Markup is empty; no target element to recover")
        target = self.analyzer.locate(tree, request.failed_selector, request.locator_context)
        if target is None:
            raise TargetNotFound(f"No element matched {request.failed_selector!r} or its recorded context")
        trace.target_found = True
        return target

    def _heuristic_only(self, request: RecoveryRequest, trace: _Trace) -> RecoveryResult:
        trace.backend = "none"
        try:
            tree = self.analyzer.parse(request.markup)
            target = self.analyzer.locate(tree, request.failed_selector, request.locator_context)
            ranked = self.scorer.rank(self.generator.generate(tree, target))
            return self._finalize(request.failed_selector, [], ranked, HEURISTIC_ONLY_EXPLANATION)
        except Exception:  # noqa: BLE001 - last resort keeps the result well-formed.
            log.exception("Heuristic-only recovery also failed for %r", request.failed_selector)
            return self._empty_result(request.failed_selector, HEURISTIC_ONLY_EXPLANATION)

    @staticmethod
    def _finalize(
        failed_selector: str,
        reranked: Iterable[SelectorCandidate],
        heuristic: Iterable[SelectorCandidate],
        explanation: str,
    ) -> RecoveryResult:
        merged = list(reranked)
        used = {candidate.selector for candidate in merged}
        leftovers = [candidate for candidate in heuristic if candidate.selector not in used]
        merged.extend(leftovers[:HEURISTIC_TAIL] if merged else leftovers)

        unique: list[SelectorCandidate] = []
        seen: set[str] = set()
        for candidate in merged:
            if candidate.selector in seen:
                continue
            seen.add(candidate.selector)
            unique.append(candidate)
        final = sorted(unique[:MAX_RESULTS], key=lambda item: item.confidence, reverse=True)
        top_choice = final[0].selector if final else failed_selector
        return RecoveryResult(candidates=tuple(final), top_choice=top_choice, failure_explanation=explanation)

    @staticmethod
    def _empty_result(failed_selector: str, explanation: str) -> RecoveryResult:
        return RecoveryResult(candidates=(), top_choice=failed_selector, failure_explanation=explanation)

    @staticmethod
    def _validate(request: RecoveryRequest) -> None:
        if not isinstance(request.markup, str):
            raise InvalidInput("markup must be a string")
        if not isinstance(request.failed_selector, str) or not request.failed_selector.strip():
            raise InvalidInput("failed selector is required")


def _coerce_context(context: LocatorContext | Mapping[str, Any] | None) -> LocatorContext:
    if context is None:
        return LocatorContext()
    if isinstance(context, LocatorContext):
        return context
    if not isinstance(context, Mapping):
        raise InvalidInput(f"locator context must be a mapping, got {type(context).__name__}")
    # Accepts both the capture payload keys and the snake_case field names.
    try:
        payload = SelectorContextPayload.model_validate(
            {
                "domPath": context.get("dom_path", context.get("domPath")) or "",
                "neighbors": context.get("neighbor_texts", context.get("neighbors")) or [],
                "parentElements": context.get("ancestor_chain", context.get("parentElements")) or [],
            }
        )
    except ValidationError as exc:
        raise InvalidInput(f"Invalid locator context: {exc}") from exc
    return LocatorContext(
        dom_path=payload.dom_path,
        neighbor_texts=tuple(payload.neighbors),
        ancestor_chain=tuple(payload.parent_elements),
    )
