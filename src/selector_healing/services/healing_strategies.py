"""
Healing strategy set.

Every strategy answers the same question: given the current page, the
element as it was last identified, and the failure that broke the step,
which selector should the step use now, and how sure are we? Strategies
differ only in how they look for the element:

- SemanticMatchingStrategy: tag, role, stable attributes and text
- VisualRecognitionStrategy: position, size and a tag/text fingerprint
- ContextAnalysisStrategy: neighbouring text and parent chain
- MLPredictionStrategy: an external prediction service, taken at its word
- FallbackSearchStrategy: broad text/role search with a low ceiling

Strategies hold no per-session state; the orchestrator passes everything an
attempt needs in a StrategyContext.
"""

import re
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

from ..core.models import (
    AccessibilityImpact,
    BoundingBox,
    ElementContext,
    ElementFacts,
    ElementIdentification,
    FailureDetails,
    HealingStrategyName,
    SelectorType,
    SelectorUpdate,
    SemanticPreservation
)
from .element_extractor import ElementExtractor, facts_from_identification
from .page_snapshot import ElementNode, PageHandle
from .prediction_client import PredictionClient
from .selector_generator import SelectorStrategyGenerator
from .similarity_scorer import ElementSimilarityScorer

logger = logging.getLogger(__name__)

MAX_BACKUP_SELECTORS = 3
HAS_TEXT_ARGUMENT = re.compile(r':has-text\("((?:[^"\\]|\\.)*)"\)')


@dataclass
class StrategyContext:
    """Inputs for one strategy attempt."""
    session_id: str
    failure_details: FailureDetails
    page: Optional[PageHandle]
    reference: Optional[ElementIdentification]
    attempt_number: int = 1
    excluded_selectors: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def reference_facts(self) -> Optional[ElementFacts]:
        return facts_from_identification(self.reference) if self.reference else None


@dataclass
class StrategyOutcome:
    """Result of one attempt: proposals, confidence and why."""
    updates: List[SelectorUpdate]
    confidence: float
    reasoning: str

    @classmethod
    def empty(cls, reasoning: str) -> 'StrategyOutcome':
        return cls(updates=[], confidence=0.0, reasoning=reasoning)


class HealingStrategy(ABC):
    """Common contract for all recovery strategies."""

    name: HealingStrategyName
    confidence_ceiling: float = 1.0
    accessibility_impact: AccessibilityImpact = AccessibilityImpact.NONE

    @abstractmethod
    async def attempt(self, context: StrategyContext) -> StrategyOutcome:
        pass

    def _clamp(self, confidence: float) -> float:
        return max(0.0, min(confidence, self.confidence_ceiling))

    def _build_update(self, context: StrategyContext, new_selector: str, selector_type: SelectorType,
                      confidence: float, reasoning: str, facts: Optional[ElementFacts] = None,
                      backups: Optional[List[str]] = None) -> SelectorUpdate:
        if facts is not None:
            element_context = ElementContext(
                tag_name=facts.tag_name,
                attributes=dict(facts.attributes),
                text_content=facts.text_content,
                parent_selectors=list(facts.ancestor_tags),
                sibling_context=list(facts.sibling_texts)
            )
        else:
            element_context = ElementContext(tag_name="")

        return SelectorUpdate(
            step_id=context.failure_details.failed_step_id,
            original_selector=context.failure_details.original_selector,
            new_selector=new_selector,
            selector_type=selector_type,
            confidence_score=confidence,
            change_reasoning=reasoning,
            element_context=element_context,
            semantic_preservation=SemanticPreservation(accessibility_impact=self.accessibility_impact),
            backup_selectors=list(backups or [])[:MAX_BACKUP_SELECTORS]
        )


class PageSearchStrategy(HealingStrategy):
    """Base for strategies that score every element on the current page
    against the reference element and heal to the best scoring one."""

    scorer_name = "semantic"

    def __init__(self, extractor: Optional[ElementExtractor] = None,
                 generator: Optional[SelectorStrategyGenerator] = None,
                 scorer: Optional[ElementSimilarityScorer] = None):
        self.extractor = extractor or ElementExtractor()
        self.generator = generator or SelectorStrategyGenerator()
        self.scorer = scorer or ElementSimilarityScorer()

    async def attempt(self, context: StrategyContext) -> StrategyOutcome:
        if context.page is None:
            return StrategyOutcome.empty("page unavailable")

        reference = self._reference_for(context)
        if reference is None:
            return StrategyOutcome.empty("no reference identification for the failed step")

        unavailable = self._unusable_reason(reference)
        if unavailable:
            return StrategyOutcome.empty(unavailable)

        candidates = []
        for node in await context.page.all_elements():
            facts = self.extractor.facts_for(node)
            if facts.is_visible:
                candidates.append((node, facts))
        if not candidates:
            return StrategyOutcome.empty("no visible elements on page")

        for node, facts, similarity in self.scorer.rank(reference, candidates, self.scorer_name):
            if similarity <= 0.0:
                break
            selectors = await self._resolving_selectors(context.page, node, facts)
            selectors = [c for c in selectors if c[0] not in context.excluded_selectors]
            if not selectors:
                continue

            new_selector, selector_type, selector_confidence = selectors[0]
            confidence = self._clamp(self._confidence(similarity, selector_confidence))
            reasoning = self._reasoning(similarity, facts, new_selector)
            update = self._build_update(
                context, new_selector, selector_type, confidence, reasoning,
                facts=facts, backups=[s[0] for s in selectors[1:]])
            return StrategyOutcome(updates=[update], confidence=confidence, reasoning=reasoning)

        return StrategyOutcome.empty(f"no {self.scorer_name} match on page")

    def _reference_for(self, context: StrategyContext) -> Optional[ElementFacts]:
        return context.reference_facts

    def _unusable_reason(self, reference: ElementFacts) -> Optional[str]:
        return None

    @abstractmethod
    def _confidence(self, similarity: float, selector_confidence: float) -> float:
        pass

    def _reasoning(self, similarity: float, facts: ElementFacts, selector: str) -> str:
        return (f"{self.scorer_name} match <{facts.tag_name}> "
                f"(similarity {similarity:.2f}) via {selector}")

    async def _resolving_selectors(self, page: PageHandle, node: ElementNode,
                                   facts: ElementFacts) -> List[Tuple[str, SelectorType, float]]:
        """Generated selectors whose first match on the page is ``node``."""
        candidates = self.generator.generate(facts, node.structural_path())
        ranked = self.generator.rank(candidates).candidates
        resolving = []
        for candidate in ranked:
            if await page.query_selector(candidate.selector) == node:
                resolving.append((candidate.selector, candidate.selector_type, candidate.confidence))

        path = node.structural_path()
        if path and path not in [r[0] for r in resolving]:
            resolving.append((path, SelectorType.CSS, 0.10))
        return resolving


class SemanticMatchingStrategy(PageSearchStrategy):
    """Match on the element's own identity: tag, role, stable attributes, text."""

    name = HealingStrategyName.SEMANTIC_MATCHING
    scorer_name = "semantic"

    def _confidence(self, similarity: float, selector_confidence: float) -> float:
        return 0.7 * similarity + 0.3 * selector_confidence


class VisualRecognitionStrategy(PageSearchStrategy):
    """Match by where the element sat and how big it was."""

    name = HealingStrategyName.VISUAL_RECOGNITION
    scorer_name = "visual"
    confidence_ceiling = 0.9
    accessibility_impact = AccessibilityImpact.MINIMAL

    def _unusable_reason(self, reference: ElementFacts) -> Optional[str]:
        if reference.bounding_box.area <= 0:
            return "no reference position recorded"
        return None

    def _confidence(self, similarity: float, selector_confidence: float) -> float:
        return similarity


class ContextAnalysisStrategy(PageSearchStrategy):
    """Match by neighbourhood for elements that moved or lost their attributes."""

    name = HealingStrategyName.CONTEXT_ANALYSIS
    scorer_name = "context"
    confidence_ceiling = 0.85
    accessibility_impact = AccessibilityImpact.MINIMAL

    def _unusable_reason(self, reference: ElementFacts) -> Optional[str]:
        if not reference.sibling_texts and not reference.ancestor_tags:
            return "no surrounding context recorded"
        return None

    def _confidence(self, similarity: float, selector_confidence: float) -> float:
        return similarity


class FallbackSearchStrategy(PageSearchStrategy):
    """Broad text search; when no text is known, match on role alone.

    Works without a stored identification by reading the text out of a
    ``:has-text(...)`` original selector.
    """

    name = HealingStrategyName.FALLBACK_SEARCH
    scorer_name = "text"
    confidence_ceiling = 0.5
    accessibility_impact = AccessibilityImpact.MODERATE

    def _reference_for(self, context: StrategyContext) -> Optional[ElementFacts]:
        reference = context.reference_facts
        if reference is not None:
            return reference

        original = context.failure_details.original_selector or ""
        match = HAS_TEXT_ARGUMENT.search(original)
        if not match:
            return None
        return ElementFacts(
            tag_name=original[:match.start()].strip(),
            attributes={},
            text_content=re.sub(r'\\(.)', r'\1', match.group(1)),
            bounding_box=BoundingBox()
        )

    def _unusable_reason(self, reference: ElementFacts) -> Optional[str]:
        if not reference.text_content and not reference.role:
            return "no text or role to search for"
        return None

    def _confidence(self, similarity: float, selector_confidence: float) -> float:
        return 0.5 * similarity


class MLPredictionStrategy(HealingStrategy):
    """Delegate to the prediction service; its confidence is authoritative."""

    name = HealingStrategyName.ML_PREDICTION

    def __init__(self, client: Optional[PredictionClient] = None):
        self.client = client or PredictionClient()

    async def attempt(self, context: StrategyContext) -> StrategyOutcome:
        if not self.client.is_configured:
            return StrategyOutcome.empty("prediction service unavailable")

        predictions = await self.client.predict(context.reference, context.failure_details)
        for prediction in predictions:
            if prediction.selector in context.excluded_selectors:
                continue
            confidence = self._clamp(prediction.confidence)
            reasoning = prediction.reasoning or f"predicted selector {prediction.selector}"
            facts = context.reference_facts
            update = self._build_update(
                context, prediction.selector, prediction.selector_type,
                confidence, reasoning, facts=facts)
            return StrategyOutcome(updates=[update], confidence=confidence, reasoning=reasoning)

        return StrategyOutcome.empty("prediction service returned no usable selector")


def build_default_strategies(prediction_client: Optional[PredictionClient] = None
                             ) -> Dict[HealingStrategyName, HealingStrategy]:
    """One instance per strategy name, sharing extractor and generator."""
    extractor = ElementExtractor()
    generator = SelectorStrategyGenerator()
    scorer = ElementSimilarityScorer()
    return {
        HealingStrategyName.SEMANTIC_MATCHING: SemanticMatchingStrategy(extractor, generator, scorer),
        HealingStrategyName.VISUAL_RECOGNITION: VisualRecognitionStrategy(extractor, generator, scorer),
        HealingStrategyName.CONTEXT_ANALYSIS: ContextAnalysisStrategy(extractor, generator, scorer),
        HealingStrategyName.ML_PREDICTION: MLPredictionStrategy(prediction_client),
        HealingStrategyName.FALLBACK_SEARCH: FallbackSearchStrategy(extractor, generator, scorer)
    }
