from __future__ import annotations

import pytest

from autoheal.config.schema import ScoringConfig
from autoheal.core.metadata import CandidateKind, SelectorCandidate
from autoheal.core.volatility import VolatilityClassifier
from autoheal.utils.scoring import SelectorScorer


@pytest.fixture()
def scorer(classifier, engine_config):
    return SelectorScorer(classifier, engine_config.scoring, engine_config.generator.test_id_attributes)


def _candidate(selector: str, signal: str, kind: CandidateKind = CandidateKind.STABLE_ATTRIBUTE) -> SelectorCandidate:
    return SelectorCandidate(selector=selector, kind=kind, rationale="", signal=signal)


def test_test_id_candidate_scores_at_the_top(scorer):
    assert scorer.score(_candidate('[data-testid="add-to-cart-btn"]', "test-id")) == 1.0


def test_base_scores_follow_preference_order(scorer):
    scores = [
        scorer.score(_candidate('[aria-label="Close dialog"]', "aria-label")),
        scorer.score(_candidate('[role="dialog"]', "role")),
        scorer.score(_candidate("#close-dialog", "id")),
        scorer.score(_candidate("nav > a:nth-child(1)", "anchored", CandidateKind.ANCHORED_STRUCTURAL)),
        scorer.score(_candidate("span.dialog-close", "class")),
        scorer.score(_candidate('span:contains("Close")', "own-text", CandidateKind.TEXT_PROXIMITY)),
    ]
    assert scores == [0.95, 0.85, 0.8, 0.75, 0.7, 0.65]


def test_unknown_signal_falls_back_to_kind_then_default(scorer):
    assert scorer.score(_candidate("main > a", "", CandidateKind.ANCHORED_STRUCTURAL)) == 0.75
    assert scorer.score(_candidate("a.link", "mystery")) == 0.4


@pytest.mark.parametrize(
    ("volatile", "stable"),
    [
        ('[data-testid="row-12345678"]', '[data-testid="row-abcdefgh"]'),
        ("#item-123e4567-e89b-12d3-a456-426614174000", "#item-checkout-summary-panel"),
    ],
)
def test_volatile_selector_scores_lower(scorer, volatile, stable):
    signal = "test-id" if volatile.startswith("[") else "id"
    assert scorer.score(_candidate(volatile, signal)) < scorer.score(_candidate(stable, signal))


def test_length_adjustment(scorer):
    short = scorer.score(_candidate("#save", "id"))
    medium = scorer.score(_candidate("#" + "a" * 60, "id"))
    long = scorer.score(_candidate("#" + "a" * 120, "id"))
    assert (short, medium, long) == (0.8, 0.7, 0.6)


def test_scores_are_clamped():
    scorer = SelectorScorer(
        classifier=VolatilityClassifier(),
        config=ScoringConfig(length_bonus=0.5, test_id_bonus=0.5),
    )
    assert scorer.score(_candidate('[data-testid="x"]', "test-id")) == 1.0


def test_rank_is_stable_and_descending(scorer):
    first = _candidate('span:contains("One")', "own-text", CandidateKind.TEXT_PROXIMITY)
    second = _candidate('span:contains("Two")', "own-text", CandidateKind.TEXT_PROXIMITY)
    best = _candidate('[data-testid="x"]', "test-id")
    ranked = scorer.rank([first, second, best])
    assert [candidate.selector for candidate in ranked] == [best.selector, first.selector, second.selector]
    assert ranked[1].confidence == ranked[2].confidence
    assert first.confidence == 0.0
