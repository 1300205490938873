"""Confidence scoring for element identifications."""

from typing import List

from ..core.models import ConfidenceMetrics, ElementFacts

RECOGNITION_BASE = 0.5
ID_BONUS = 0.3
TEST_ID_BONUS = 0.4
TEXT_BONUS = 0.2

INTERACTIVE_ROLES = {"button", "link", "checkbox", "radio", "textbox", "combobox",
                     "searchbox", "slider", "spinbutton", "menuitem", "tab", "switch"}


class ConfidenceScorer:
    """Combines selector and recognition confidence into one overall score.

    ``overall`` is ``0.5 * element_recognition + 0.5 * selector_reliability``;
    ``interaction_prediction`` is reported alongside but not blended in.
    """

    def element_recognition(self, facts: ElementFacts) -> float:
        score = RECOGNITION_BASE
        if facts.attributes.get("id"):
            score += ID_BONUS
        if any(name.startswith("data-test") for name in facts.attributes):
            score += TEST_ID_BONUS
        if facts.text_content:
            score += TEXT_BONUS
        return min(score, 1.0)

    def selector_reliability(self, confidence_scores: List[float]) -> float:
        return max(confidence_scores) if confidence_scores else 0.0

    def interaction_prediction(self, facts: ElementFacts) -> float:
        if not facts.is_visible:
            return 0.1
        if facts.is_interactive:
            return 0.9
        if facts.role in INTERACTIVE_ROLES:
            return 0.6
        return 0.3

    def score(self, facts: ElementFacts, confidence_scores: List[float]) -> ConfidenceMetrics:
        element_recognition = self.element_recognition(facts)
        selector_reliability = self.selector_reliability(confidence_scores)
        return ConfidenceMetrics(
            element_recognition=element_recognition,
            selector_reliability=selector_reliability,
            interaction_prediction=self.interaction_prediction(facts),
            overall=0.5 * element_recognition + 0.5 * selector_reliability
        )
