"""
Element recognition service.

Implements IdentifyElement: resolve the element at click coordinates (or by
reference), extract its facts, rank selectors, score confidence, classify it
and label it. Results can be stored against a test step, persisted, and
reported on a recording channel.
"""

import asyncio
import logging
import time
import uuid
from typing import List, Optional, Set, Tuple

from ..core.config import settings
from ..core.exceptions import ElementNotFound, ExtractionTimeout
from ..core.logging_config import get_healing_logger
from ..core.metrics import get_metrics_collector
from ..core.models import (
    ElementFacts,
    ElementIdentification,
    ElementType,
    FailureType,
    TechnicalDetails,
    VisualContext
)
from .confidence_scorer import ConfidenceScorer
from .description_generator import DescriptionGenerator, fallback_description, get_description_generator
from .element_extractor import ElementExtractor
from .event_broadcaster import EventBroadcaster
from .page_snapshot import HtmlSnapshotPage, PageHandle
from .persistence import PersistenceSink
from .selector_generator import SelectorStrategyGenerator, attribute_selector, text_selector
from .session_store import IdentificationStore

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 5

BUTTON_INPUT_TYPES = {"button", "submit", "reset"}
LANDMARK_TYPES = {
    "form": ElementType.FORM,
    "nav": ElementType.NAVIGATION,
    "header": ElementType.HEADER,
    "footer": ElementType.FOOTER,
    "article": ElementType.ARTICLE,
    "section": ElementType.SECTION
}


def classify_element_type(facts: ElementFacts) -> ElementType:
    """Map tag, input type and role onto the closed element type set."""
    tag = facts.tag_name
    input_type = (facts.attributes.get("type") or "").lower()
    role = (facts.attributes.get("role") or "").strip().lower()

    if tag == "button" or role == "button" or (tag == "input" and input_type in BUTTON_INPUT_TYPES):
        return ElementType.BUTTON
    if tag == "input":
        if input_type == "checkbox":
            return ElementType.CHECKBOX
        if input_type == "radio":
            return ElementType.RADIO
        return ElementType.INPUT
    if tag == "textarea":
        return ElementType.TEXTAREA
    if tag == "select":
        return ElementType.SELECT
    if role in ("listbox", "combobox"):
        return ElementType.DROPDOWN
    if tag == "a":
        return ElementType.LINK
    if tag == "img":
        return ElementType.IMAGE
    if role == "navigation":
        return ElementType.NAVIGATION
    return LANDMARK_TYPES.get(tag, ElementType.TEXT)


def categorize_failure(error_message: str) -> FailureType:
    """Infer the failure type from a step's error message."""
    message = (error_message or "").lower()
    if "element" in message and ("not found" in message or "not visible" in message):
        return FailureType.ELEMENT_NOT_FOUND
    if "timeout" in message:
        return FailureType.TIMEOUT
    if "assertion" in message or "expected" in message:
        return FailureType.ASSERTION_FAILED
    return FailureType.INTERACTION_FAILED


def suggest_alternative_selectors(identification: ElementIdentification) -> List[str]:
    """Existing alternatives plus text and ARIA suggestions, at most five."""
    suggestions: List[str] = list(identification.alternative_selectors)

    nearby = identification.visual_context.nearby_text
    is_button = (identification.element_type == ElementType.BUTTON
                 or "button" in identification.natural_description.lower())
    if is_button and nearby:
        suggestions.append(text_selector("button", nearby[0]))

    for label in identification.visual_context.aria_labels:
        suggestions.append(attribute_selector("aria-label", label))

    unique = []
    for selector in suggestions:
        if selector not in unique:
            unique.append(selector)
    return unique[:MAX_SUGGESTIONS]


class ElementRecognitionService:
    """IdentifyElement pipeline."""

    def __init__(self, extractor: Optional[ElementExtractor] = None,
                 generator: Optional[SelectorStrategyGenerator] = None,
                 scorer: Optional[ConfidenceScorer] = None,
                 description_generator: Optional[DescriptionGenerator] = None,
                 identification_store: Optional[IdentificationStore] = None,
                 broadcaster: Optional[EventBroadcaster] = None,
                 persistence: Optional[PersistenceSink] = None,
                 timeout: Optional[float] = None):
        self.extractor = extractor or ElementExtractor()
        self.generator = generator or SelectorStrategyGenerator()
        self.scorer = scorer or ConfidenceScorer()
        self.description_generator = description_generator or get_description_generator()
        self.identification_store = identification_store
        self.broadcaster = broadcaster
        self.persistence = persistence
        self.timeout = timeout or settings.IDENTIFICATION_TIMEOUT
        self.metrics_collector = get_metrics_collector()
        self._background_tasks: Set[asyncio.Task] = set()

    async def identify_element(self, page: Optional[PageHandle] = None,
                               coordinates: Optional[Tuple[float, float]] = None,
                               page_snapshot: Optional[str] = None,
                               reference: Optional[str] = None,
                               recording_id: Optional[str] = None,
                               test_case_id: Optional[str] = None,
                               step_id: Optional[str] = None) -> ElementIdentification:
        """Identify the element at ``coordinates`` (or matching ``reference``).

        Args:
            page: Live page handle; built from ``page_snapshot`` HTML when absent
            coordinates: Click coordinates (x, y)
            page_snapshot: Captured page HTML
            reference: Element reference (selector) used when no coordinates
            recording_id: Publish recording feedback on ``recording:<id>``
            test_case_id: With ``step_id``, store the result as the step's
                current identification
            step_id: Step the element belongs to

        Raises:
            ElementNotFound: If nothing resolves at the coordinates/reference
            ExtractionTimeout: If the page does not answer within ``timeout``
        """
        start_time = time.time()
        healing_logger = get_healing_logger("identification", test_case=test_case_id)
        healing_logger.log_operation_start("identify_element", coordinates=coordinates, reference=reference)

        if page is None:
            page = HtmlSnapshotPage(page_snapshot or "")

        try:
            node, facts = await asyncio.wait_for(
                self.extractor.extract(page, coordinates=coordinates, reference=reference), timeout=self.timeout)
        except ElementNotFound as e:
            await self._report_failure(healing_logger, start_time, recording_id, e, "element_not_found")
            raise
        except asyncio.TimeoutError:
            error = ExtractionTimeout(f"Page inspection timed out after {self.timeout}s", self.timeout)
            await self._report_failure(healing_logger, start_time, recording_id, error, "extraction_timeout")
            raise error

        ranked = self.generator.generate_ranked(facts, node.structural_path())
        metrics = self.scorer.score(facts, ranked.confidence_scores)
        description = await self._describe(facts)

        identification = ElementIdentification(
            id=str(uuid.uuid4()),
            element_type=classify_element_type(facts),
            natural_description=description,
            primary_selector=ranked.primary_selector,
            alternative_selectors=ranked.alternative_selectors,
            confidence_scores=ranked.confidence_scores,
            visual_context=VisualContext(
                nearby_text=list(facts.sibling_texts),
                parent_elements=list(facts.ancestor_tags),
                aria_labels=list(facts.aria_labels),
                position=facts.bounding_box
            ),
            technical_details=TechnicalDetails(
                tag_name=facts.tag_name,
                attributes=dict(facts.attributes),
                text_content=facts.text_content,
                role=facts.role,
                is_interactive=facts.is_interactive,
                is_visible=facts.is_visible
            ),
            confidence_metrics=metrics
        )

        if test_case_id and step_id and self.identification_store:
            await self.identification_store.put(test_case_id, step_id, identification)

        self.metrics_collector.record_identification(metrics.overall)
        healing_logger.log_operation_success(
            "identify_element", time.time() - start_time,
            element_type=identification.element_type.value,
            primary_selector=identification.primary_selector,
            confidence=metrics.overall)

        if self.persistence:
            task = asyncio.create_task(self._persist(identification))
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)
        if recording_id and self.broadcaster:
            await self.broadcaster.element_identified(recording_id, identification)

        return identification

    async def _describe(self, facts: ElementFacts) -> str:
        try:
            return await asyncio.wait_for(self.description_generator.describe(facts), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Description timed out after {self.timeout}s, using fallback label")
            return fallback_description(facts)

    async def _report_failure(self, healing_logger, start_time: float, recording_id: Optional[str],
                              error: Exception, error_type: str) -> None:
        healing_logger.log_operation_failure(
            "identify_element", time.time() - start_time, str(error), error_type.upper())
        if recording_id and self.broadcaster:
            await self.broadcaster.error_occurred(recording_id, str(error), error_type)

    async def _persist(self, identification: ElementIdentification) -> None:
        try:
            await self.persistence.persist_identification(identification)
        except Exception as e:
            logger.error(f"Failed to persist identification {identification.id}: {e}")
