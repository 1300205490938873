"""Unit tests for selector generation and confidence scoring."""

import pytest

from src.selector_healing.core.models import BoundingBox, ElementFacts, SelectorStrategy, SelectorType
from src.selector_healing.services.confidence_scorer import ConfidenceScorer
from src.selector_healing.services.selector_generator import (
    SelectorStrategyGenerator,
    attribute_selector,
    is_stable_class,
    text_selector
)


def make_facts(tag_name="div", attributes=None, text="", **kwargs):
    return ElementFacts(
        tag_name=tag_name,
        attributes=attributes or {},
        text_content=text,
        bounding_box=BoundingBox(0, 0, 100, 20),
        **kwargs
    )


class TestStableClasses:
    """Test detection of framework-generated class names."""

    @pytest.mark.parametrize("class_name", ["btn", "btn-primary", "login-form", "nav-item"])
    def test_hand_written_classes_are_stable(self, class_name):
        assert is_stable_class(class_name)

    @pytest.mark.parametrize("class_name", [
        "ng-star-inserted", "ng-tns-c12-3", "Button_root__x1", "css-1x2y3z",
        "sc-bdVaJa", "jsx-123456", "emotion-abc", "svelte-1abc2", "card-a1b2c3"
    ])
    def test_generated_classes_are_unstable(self, class_name):
        assert not is_stable_class(class_name)


class TestSelectorGeneration:
    """Test the strategy table and ranking."""

    def setup_method(self):
        self.generator = SelectorStrategyGenerator()

    def test_scenario_id_and_text(self):
        """An id wins over text; the text selector is kept as an alternative."""
        facts = make_facts("button", {"id": "login-btn"}, "Login", is_interactive=True)

        ranked = self.generator.generate_ranked(facts)

        assert ranked.primary_selector == "#login-btn"
        assert ranked.confidence_scores[0] == 0.95
        assert ranked.alternative_selectors == ['button:has-text("Login")']
        assert ranked.confidence_scores == [0.95, 0.75]

    def test_scenario_generated_class_only(self):
        """A framework class is skipped and only the fallback remains."""
        facts = make_facts("div", {"class": "ng-star-inserted"})

        candidates = self.generator.generate(facts, structural_path="body > div:nth-of-type(2)")

        assert len(candidates) == 1
        assert candidates[0].strategy == SelectorStrategy.FALLBACK
        assert candidates[0].selector == "body > div:nth-of-type(2)"
        assert candidates[0].confidence == 0.10

    def test_fallback_without_structural_path_uses_tag(self):
        candidates = self.generator.generate(make_facts("span"))
        assert candidates[0].selector == "span"

    def test_full_table_order(self):
        facts = make_facts("a", {
            "id": "home",
            "data-testid": "home-link",
            "aria-label": "Home page",
            "name": "home",
            "class": "nav-link css-1abc2"
        }, "Home")

        ranked = self.generator.generate_ranked(facts)

        assert [c.strategy for c in ranked.candidates] == [
            SelectorStrategy.ID_ATTRIBUTE,
            SelectorStrategy.TEST_ATTRIBUTE,
            SelectorStrategy.ARIA_LABEL,
            SelectorStrategy.NAME_ATTRIBUTE,
            SelectorStrategy.TEXT_CONTENT,
            SelectorStrategy.CLASS_SELECTOR
        ]
        assert ranked.primary_selector == "#home"
        assert ranked.alternative_selectors == [
            '[data-testid="home-link"]',
            '[aria-label="Home page"]',
            '[name="home"]',
            'a:has-text("Home")',
            '.nav-link'
        ]
        assert ranked.confidence_scores == sorted(ranked.confidence_scores, reverse=True)

    def test_selector_types_follow_strategy(self):
        facts = make_facts("button", {"data-test": "save", "aria-label": "Save"}, "Save")

        types = {c.strategy: c.selector_type for c in self.generator.generate(facts)}

        assert types[SelectorStrategy.TEST_ATTRIBUTE] == SelectorType.DATA_ATTRIBUTE
        assert types[SelectorStrategy.ARIA_LABEL] == SelectorType.ARIA
        assert types[SelectorStrategy.TEXT_CONTENT] == SelectorType.TEXT

    def test_alternatives_are_capped_at_five(self):
        attributes = {f"data-test-{i}": str(i) for i in range(8)}
        ranked = self.generator.generate_ranked(make_facts("div", attributes))

        assert len(ranked.alternative_selectors) == 5
        assert len(ranked.confidence_scores) == 6

    def test_duplicate_selectors_are_collapsed(self):
        generator = SelectorStrategyGenerator()
        candidates = generator.generate(make_facts("div", {"id": "x"}))
        ranked = generator.rank(candidates + candidates)
        assert ranked.primary_selector == "#x"
        assert ranked.alternative_selectors == []

    def test_text_selector_only_for_buttons_and_links(self):
        candidates = self.generator.generate(make_facts("span", {}, "Hello"))
        assert all(c.strategy != SelectorStrategy.TEXT_CONTENT for c in candidates)

    def test_quoting(self):
        assert attribute_selector("aria-label", 'Say "hi"') == '[aria-label="Say \\"hi\\""]'
        assert text_selector("button", "x" * 80) == f'button:has-text("{"x" * 50}")'


class TestConfidenceScorer:
    """Test the overall confidence formula."""

    def setup_method(self):
        self.scorer = ConfidenceScorer()
        self.generator = SelectorStrategyGenerator()

    def test_scenario_id_and_text_overall(self):
        facts = make_facts("button", {"id": "login-btn"}, "Login", is_interactive=True)
        ranked = self.generator.generate_ranked(facts)

        metrics = self.scorer.score(facts, ranked.confidence_scores)

        assert metrics.element_recognition == 1.0
        assert metrics.selector_reliability == 0.95
        assert metrics.overall >= 0.75
        assert metrics.overall == 0.5 * metrics.element_recognition + 0.5 * metrics.selector_reliability

    def test_scenario_fallback_only_overall(self):
        facts = make_facts("div", {"class": "ng-star-inserted"})
        ranked = self.generator.generate_ranked(facts, "body > div:nth-of-type(1)")

        metrics = self.scorer.score(facts, ranked.confidence_scores)

        assert metrics.element_recognition == 0.5
        assert metrics.selector_reliability == 0.10
        assert metrics.overall == pytest.approx(0.3)
        assert metrics.overall <= 0.3 + 1e-9

    def test_increments_are_additive_and_clamped(self):
        facts = make_facts("button", {"id": "a", "data-testid": "b"}, "Go")
        assert self.scorer.element_recognition(facts) == 1.0

        facts = make_facts("div", {"data-test": "b"})
        assert self.scorer.element_recognition(facts) == pytest.approx(0.9)

        facts = make_facts("div", {"id": "a"})
        assert self.scorer.element_recognition(facts) == pytest.approx(0.8)

    def test_no_candidates_gives_zero_reliability(self):
        assert self.scorer.selector_reliability([]) == 0.0

    @pytest.mark.parametrize("attributes,text", [
        ({}, ""),
        ({"id": "a"}, ""),
        ({"id": "a", "data-testid": "t", "aria-label": "l", "name": "n", "class": "c"}, "text"),
        ({"class": "css-abc12 ng-x"}, "some text"),
        ({"name": "q"}, ""),
    ])
    def test_overall_is_bounded(self, attributes, text):
        for tag in ("button", "a", "div", "input"):
            facts = make_facts(tag, attributes, text)
            ranked = self.generator.generate_ranked(facts, "body > div:nth-of-type(1)")
            metrics = self.scorer.score(facts, ranked.confidence_scores)
            assert 0.0 <= metrics.overall <= 1.0
            assert metrics.overall == 0.5 * metrics.element_recognition + 0.5 * metrics.selector_reliability

    def test_interaction_prediction(self):
        assert self.scorer.interaction_prediction(make_facts("button", is_interactive=True)) == 0.9
        assert self.scorer.interaction_prediction(make_facts("div", role="button")) == 0.6
        assert self.scorer.interaction_prediction(make_facts("div")) == 0.3
        assert self.scorer.interaction_prediction(make_facts("button", is_interactive=True, is_visible=False)) == 0.1
