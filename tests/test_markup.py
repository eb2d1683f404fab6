from __future__ import annotations

from autoheal.config.schema import ContextWindowConfig
from autoheal.core.markup import is_valid_selector
from autoheal.core.metadata import ROOT_TAG, LocatorContext
from autoheal.utils.dom_extract import collect_nearby_texts, extract_context_window

from tests.helpers import LOGIN_FORM_MARKUP, PRODUCT_CARD_MARKUP, SIDEBAR_MARKUP, padded_markup


def test_parse_builds_arena_with_synthetic_root(analyzer):
    tree = analyzer.parse(PRODUCT_CARD_MARKUP)
    root = tree.element(tree.root)
    assert root.tag == ROOT_TAG
    assert root.parent is None
    button = analyzer.match_first(tree, "button")
    assert tree.element(button).attributes["data-testid"] == "add-to-cart-btn"
    assert tree.dom_path(button) == "html > body > div > button"
    assert tree.child_position(button) == 3
    assert [tree.element(ref).tag for ref in tree.ancestors(button)] == ["div", "body", "html"]


def test_parse_recovers_from_malformed_markup(analyzer):
    tree = analyzer.parse("<div><span>unclosed <b>bold</div><button>Go")
    assert not tree.is_empty()
    assert analyzer.match_first(tree, "button") is not None


def test_parse_empty_markup_yields_empty_tree(analyzer):
    assert analyzer.parse("").is_empty()
    assert analyzer.parse("   \n").is_empty()
    assert analyzer.locate(analyzer.parse(""), "#anything") is None


def test_text_content_matches_xpath_normalize_space(analyzer):
    tree = analyzer.parse("<div><button>  Add <b>to</b>\n  Cart <!-- note --> </button></div>")
    button = analyzer.match_first(tree, "button")
    assert tree.text_content(button) == "Add to Cart"
    assert analyzer.match_first(tree, '//button[normalize-space()="Add to Cart"]') == button
    assert analyzer.match_first(tree, 'button:contains("Add")') == button


def test_locate_matches_css_and_xpath_directly(analyzer):
    tree = analyzer.parse(SIDEBAR_MARKUP)
    by_css = analyzer.locate(tree, "#sidebar-nav li:nth-child(2) a")
    by_xpath = analyzer.locate(tree, "//a[@href='/returns']")
    assert by_css == by_xpath
    assert tree.text_content(by_css) == "Returns"


def test_locate_falls_back_to_dom_path(analyzer):
    tree = analyzer.parse(PRODUCT_CARD_MARKUP)
    ref = analyzer.locate(tree, ".add-to-cart", LocatorContext(dom_path="div.product-card > button"))
    assert tree.element(ref).tag == "button"


def test_locate_falls_back_to_tag_chain_when_dom_path_classes_changed(analyzer):
    tree = analyzer.parse(PRODUCT_CARD_MARKUP)
    ref = analyzer.locate(tree, ".add-to-cart", LocatorContext(dom_path="div.old-card > button.old"))
    assert tree.element(ref).tag == "button"


def test_locate_uses_ancestor_chain_and_neighbor_texts(analyzer):
    tree = analyzer.parse(SIDEBAR_MARKUP)
    context = LocatorContext(neighbor_texts=("Returns",), ancestor_chain=("aside#sidebar-nav", "ul"))
    ref = analyzer.locate(tree, "a.menu-link-2", context)
    assert tree.element(ref).attributes["href"] == "/returns"


def test_locate_uses_token_similarity_as_last_resort(analyzer):
    markup = "<div><a href='/a'>Home</a><button data-testid='checkout-submit'>Pay now</button></div>"
    tree = analyzer.parse(markup)
    ref = analyzer.locate(tree, "#checkout-submit-old")
    assert tree.element(ref).tag == "button"


def test_locate_returns_none_when_nothing_matches(analyzer):
    tree = analyzer.parse("<div><a href='/a'>Home</a><a href='/b'>About</a></div>")
    assert analyzer.locate(tree, "#payment-form") is None


def test_summarize_counts_elements(analyzer):
    summary = analyzer.summarize(analyzer.parse(LOGIN_FORM_MARKUP))
    assert summary.form_elements == 3
    assert summary.interactive_elements == 3
    assert summary.has_test_ids is False
    assert summary.has_aria_labels is False
    assert summary.depth >= 4
    assert analyzer.summarize(analyzer.parse(PRODUCT_CARD_MARKUP)).has_test_ids is True


def test_is_valid_selector_checks_css_and_xpath():
    assert is_valid_selector('[data-testid="a"]')
    assert is_valid_selector("//label[normalize-space()='Email']//input")
    assert is_valid_selector('button:contains("Pay")')
    assert not is_valid_selector("div[[")
    assert not is_valid_selector("//div[")
    assert not is_valid_selector("   ")


def test_context_window_strips_scripts_and_event_handlers(analyzer):
    tree = analyzer.parse(LOGIN_FORM_MARKUP.replace("<button", '<button onclick="steal()"'))
    target = analyzer.match_first(tree, "button")
    window = extract_context_window(tree, target)
    assert "<script" not in window.snippet
    assert "onclick" not in window.snippet
    assert "Submit" in window.snippet
    assert "onclick" in tree.element(target).attributes


def test_context_window_is_bounded_and_centered_on_target(analyzer):
    tree = analyzer.parse(padded_markup('<button id="buy-now">Buy now</button>'))
    target = analyzer.match_first(tree, "#buy-now")
    window = extract_context_window(tree, target, ContextWindowConfig(snippet_chars=500))
    assert len(window.snippet) == 500
    assert '<button id="buy-now">Buy now</button>' in window.snippet


def test_collect_nearby_texts_is_short_and_unique(analyzer):
    tree = analyzer.parse(PRODUCT_CARD_MARKUP)
    target = analyzer.match_first(tree, "button")
    texts = collect_nearby_texts(tree, target)
    assert texts[0] == "Add to Cart"
    assert "$24.99" in texts
    assert "Wireless Mouse" in texts
    assert len(texts) <= 5
    assert len(set(texts)) == len(texts)
