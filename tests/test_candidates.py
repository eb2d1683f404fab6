from __future__ import annotations

from autoheal.config.schema import GeneratorConfig
from autoheal.core.candidates import CandidateGenerator
from autoheal.core.metadata import CandidateKind

from tests.helpers import LOGIN_FORM_MARKUP, NAV_ONLY_MARKUP, PRODUCT_CARD_MARKUP


def _target(analyzer, markup: str, selector: str):
    tree = analyzer.parse(markup)
    return tree, analyzer.match_first(tree, selector)


def test_stable_attribute_prefers_test_id(analyzer, generator):
    tree, target = _target(analyzer, PRODUCT_CARD_MARKUP, "button")
    found = generator.stable_attribute(tree, target)
    assert found[0].selector == '[data-testid="add-to-cart-btn"]'
    assert found[0].kind is CandidateKind.STABLE_ATTRIBUTE
    assert found[0].confidence == 0.95
    assert "button.btn-primary" in [candidate.selector for candidate in found]


def test_stable_attribute_covers_aria_role_and_id(analyzer, generator):
    markup = '<div><span id="close-dialog" role="button" aria-label="Close dialog">x</span></div>'
    tree, target = _target(analyzer, markup, "span")
    found = {candidate.signal: candidate.selector for candidate in generator.stable_attribute(tree, target)}
    assert found == {
        "aria-label": '[aria-label="Close dialog"]',
        "role": '[role="button"]',
        "id": "#close-dialog",
    }


def test_stable_attribute_skips_volatile_id_and_generated_classes(analyzer, generator):
    tree, target = _target(analyzer, LOGIN_FORM_MARKUP, "button")
    assert generator.stable_attribute(tree, target) == []


def test_anchored_structural_uses_landmark(analyzer, generator):
    tree, target = _target(analyzer, NAV_ONLY_MARKUP, "a")
    found = generator.anchored_structural(tree, target)
    assert [candidate.selector for candidate in found] == ["nav > div:nth-child(1) > a:nth-child(1)"]
    assert found[0].kind is CandidateKind.ANCHORED_STRUCTURAL


def test_anchored_structural_prefers_attribute_anchor(analyzer, generator):
    markup = '<section data-testid="checkout"><div><p>Total</p><button>Pay</button></div></section>'
    tree, target = _target(analyzer, markup, "button")
    found = generator.anchored_structural(tree, target)
    assert found[0].selector == '[data-testid="checkout"] > div:nth-child(1) > button:nth-child(2)'


def test_anchored_structural_without_anchor_emits_nothing(analyzer, generator):
    tree, target = _target(analyzer, "<div><span><button>Pay</button></span></div>", "button")
    assert generator.anchored_structural(tree, target) == []


def test_text_based_uses_own_text(analyzer, generator):
    tree, target = _target(analyzer, PRODUCT_CARD_MARKUP, "button")
    found = generator.text_based(tree, target)
    assert [candidate.selector for candidate in found] == ['button:contains("Add to Cart")']
    assert found[0].signal == "own-text"


def test_text_based_skips_generic_words_and_uses_neighbors(analyzer, generator):
    markup = "<div><p>Newsletter</p><button>Submit</button></div>"
    tree, target = _target(analyzer, markup, "button")
    found = generator.text_based(tree, target)
    assert [candidate.signal for candidate in found] == ["previous-sibling"]
    assert found[0].selector == 'p:contains("Newsletter") + button'


def test_text_based_finds_label_and_placeholder(analyzer, generator):
    tree, email = _target(analyzer, LOGIN_FORM_MARKUP, "#email")
    signals = {candidate.signal: candidate.selector for candidate in generator.text_based(tree, email)}
    assert signals["label"] == '//input[@id=//label[normalize-space()="Email address"]/@for]'

    search = analyzer.match_first(tree, "input[placeholder]")
    placeholder = [candidate for candidate in generator.text_based(tree, search) if candidate.signal == "placeholder"]
    assert placeholder[0].selector == 'input[placeholder="Search products"]'


def test_text_based_follows_aria_labelledby(analyzer, generator):
    markup = '<div><h2 id="billing-title">Billing</h2><div role="group" aria-labelledby="billing-title"></div></div>'
    tree, target = _target(analyzer, markup, "div[role]")
    found = generator.text_based(tree, target)
    assert 'div[aria-labelledby="billing-title"]' in [candidate.selector for candidate in found]


def test_text_based_rejects_long_text(analyzer, generator):
    long_text = "This call to action label is far too long to be a stable text selector anchor"
    tree, target = _target(analyzer, f"<div><button>{long_text}</button></div>", "button")
    assert generator.text_based(tree, target) == []


def test_generate_runs_all_strategies_and_candidates_resolve_to_target(analyzer, generator):
    tree, target = _target(analyzer, PRODUCT_CARD_MARKUP, "button")
    candidates = generator.generate(tree, target)
    kinds = {candidate.kind for candidate in candidates}
    assert kinds == set(CandidateKind)
    assert len({candidate.selector for candidate in candidates}) == len(candidates)
    for candidate in candidates:
        assert analyzer.match_first(tree, candidate.selector) == target, candidate.selector


def test_generate_without_target_is_empty(analyzer, generator):
    tree = analyzer.parse(PRODUCT_CARD_MARKUP)
    assert generator.generate(tree, None) == []


def test_generate_caps_each_strategy(analyzer, classifier):
    markup = '<div><span id="close-dialog" role="button" aria-label="Close dialog" class="dialog-close">x</span></div>'
    generator = CandidateGenerator(classifier, GeneratorConfig(max_candidates_per_strategy=1))
    tree, target = _target(analyzer, markup, "span")
    stable = [c for c in generator.generate(tree, target) if c.kind is CandidateKind.STABLE_ATTRIBUTE]
    assert [candidate.selector for candidate in stable] == ['[aria-label="Close dialog"]']
