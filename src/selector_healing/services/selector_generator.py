"""
Selector strategy generation.

Turns extracted element facts into ranked selector candidates. Each strategy
carries a fixed base confidence; candidates are ordered by that confidence,
with ties resolved by strategy order.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import soupsieve

from ..core.models import ElementFacts, SelectorCandidate, SelectorStrategy, SelectorType

logger = logging.getLogger(__name__)

BASE_CONFIDENCE: Dict[SelectorStrategy, float] = {
    SelectorStrategy.ID_ATTRIBUTE: 0.95,
    SelectorStrategy.TEST_ATTRIBUTE: 0.90,
    SelectorStrategy.ARIA_LABEL: 0.85,
    SelectorStrategy.NAME_ATTRIBUTE: 0.80,
    SelectorStrategy.TEXT_CONTENT: 0.75,
    SelectorStrategy.CLASS_SELECTOR: 0.60,
    SelectorStrategy.FALLBACK: 0.10
}

SELECTOR_TYPES: Dict[SelectorStrategy, SelectorType] = {
    SelectorStrategy.ID_ATTRIBUTE: SelectorType.CSS,
    SelectorStrategy.TEST_ATTRIBUTE: SelectorType.DATA_ATTRIBUTE,
    SelectorStrategy.ARIA_LABEL: SelectorType.ARIA,
    SelectorStrategy.NAME_ATTRIBUTE: SelectorType.CSS,
    SelectorStrategy.TEXT_CONTENT: SelectorType.TEXT,
    SelectorStrategy.CLASS_SELECTOR: SelectorType.CSS,
    SelectorStrategy.FALLBACK: SelectorType.CSS
}

MAX_ALTERNATIVES = 5
TEXT_SELECTOR_TAGS = {"button", "a"}
TEXT_SELECTOR_LENGTH = 50

GENERATED_CLASS_PREFIXES = ("css-", "sc-", "jsx-", "emotion-", "svelte-")
HASHED_CLASS_PATTERN = re.compile(r'-(?=[a-zA-Z0-9]*\d)[a-zA-Z0-9]{5,}$')


def is_stable_class(class_name: str) -> bool:
    """Whether a class looks hand-written rather than framework-generated."""
    if not class_name or "ng-" in class_name or "_" in class_name:
        return False
    if class_name.startswith(GENERATED_CLASS_PREFIXES):
        return False
    return HASHED_CLASS_PATTERN.search(class_name) is None


def quote_value(value: str) -> str:
    """Quote a string for use inside a selector."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def attribute_selector(name: str, value: str) -> str:
    return f"[{name}={quote_value(value)}]"


def text_selector(tag_name: str, text: str) -> str:
    return f"{tag_name}:has-text({quote_value(text[:TEXT_SELECTOR_LENGTH])})"


@dataclass
class RankedSelectors:
    """Ranked selector set for one element."""
    primary_selector: str
    alternative_selectors: List[str]
    confidence_scores: List[float]
    candidates: List[SelectorCandidate] = field(default_factory=list)

    @property
    def primary_candidate(self) -> SelectorCandidate:
        return self.candidates[0]


class SelectorStrategyGenerator:
    """Generates and ranks selector candidates from element facts."""

    def __init__(self, max_alternatives: int = MAX_ALTERNATIVES):
        self.max_alternatives = max_alternatives

    def generate(self, facts: ElementFacts, structural_path: Optional[str] = None) -> List[SelectorCandidate]:
        """Generate candidates in strategy table order.

        Args:
            facts: Extracted element facts
            structural_path: CSS path used when no other strategy applies
        """
        attributes = facts.attributes
        candidates: List[SelectorCandidate] = []

        element_id = (attributes.get("id") or "").strip()
        if element_id:
            candidates.append(self._candidate(
                f"#{soupsieve.escape(element_id)}", SelectorStrategy.ID_ATTRIBUTE))

        for name, value in attributes.items():
            if name.startswith("data-test"):
                candidates.append(self._candidate(
                    attribute_selector(name, value), SelectorStrategy.TEST_ATTRIBUTE))

        aria_label = attributes.get("aria-label")
        if aria_label:
            candidates.append(self._candidate(
                attribute_selector("aria-label", aria_label), SelectorStrategy.ARIA_LABEL))

        name = attributes.get("name")
        if name:
            candidates.append(self._candidate(
                attribute_selector("name", name), SelectorStrategy.NAME_ATTRIBUTE))

        text = facts.text_content.strip()
        if facts.tag_name in TEXT_SELECTOR_TAGS and text:
            candidates.append(self._candidate(
                text_selector(facts.tag_name, text), SelectorStrategy.TEXT_CONTENT))

        stable_classes = [c for c in (attributes.get("class") or "").split() if is_stable_class(c)]
        if stable_classes:
            candidates.append(self._candidate(
                f".{soupsieve.escape(stable_classes[0])}", SelectorStrategy.CLASS_SELECTOR))

        if not candidates:
            candidates.append(self._candidate(
                structural_path or facts.tag_name or "*", SelectorStrategy.FALLBACK))

        return candidates

    def rank(self, candidates: List[SelectorCandidate]) -> RankedSelectors:
        """Order candidates by base confidence and split primary/alternatives."""
        seen = set()
        unique = []
        for candidate in candidates:
            if candidate.selector not in seen:
                seen.add(candidate.selector)
                unique.append(candidate)

        # sorted() is stable, so equal confidences keep table order
        ordered = sorted(unique, key=lambda c: c.confidence, reverse=True)
        ordered = ordered[:1 + self.max_alternatives]
        if not ordered:
            return RankedSelectors(primary_selector="", alternative_selectors=[], confidence_scores=[])

        return RankedSelectors(
            primary_selector=ordered[0].selector,
            alternative_selectors=[c.selector for c in ordered[1:]],
            confidence_scores=[c.confidence for c in ordered],
            candidates=ordered
        )

    def generate_ranked(self, facts: ElementFacts, structural_path: Optional[str] = None) -> RankedSelectors:
        return self.rank(self.generate(facts, structural_path))

    def _candidate(self, selector: str, strategy: SelectorStrategy) -> SelectorCandidate:
        return SelectorCandidate(
            selector=selector,
            strategy=strategy,
            confidence=BASE_CONFIDENCE[strategy],
            selector_type=SELECTOR_TYPES[strategy]
        )
