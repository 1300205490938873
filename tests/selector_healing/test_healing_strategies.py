"""Tests for the healing strategy set."""

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, Mock

from src.selector_healing.core.models import (
    AccessibilityImpact,
    FailureDetails,
    FailureType,
    HealingStrategyName,
    SelectorType
)
from src.selector_healing.services.description_generator import FallbackDescriptionGenerator
from src.selector_healing.services.element_recognition_service import ElementRecognitionService
from src.selector_healing.services.healing_strategies import (
    ContextAnalysisStrategy,
    FallbackSearchStrategy,
    MLPredictionStrategy,
    SemanticMatchingStrategy,
    StrategyContext,
    VisualRecognitionStrategy,
    build_default_strategies
)
from src.selector_healing.services.page_snapshot import HtmlSnapshotPage
from src.selector_healing.services.prediction_client import Prediction

from tests.utils.healing_test_helpers import HEALED_LOGIN_PAGE, LOGIN_BUTTON_POINT, LOGIN_PAGE


@pytest_asyncio.fixture
async def reference():
    """Identification of the login button on the original page."""
    service = ElementRecognitionService(description_generator=FallbackDescriptionGenerator())
    return await service.identify_element(page=HtmlSnapshotPage(LOGIN_PAGE), coordinates=LOGIN_BUTTON_POINT)


@pytest.fixture
def healed_page():
    return HtmlSnapshotPage(HEALED_LOGIN_PAGE)


def make_context(failure_details, page, reference, excluded=("#login-btn",)):
    return StrategyContext(
        session_id="session-1",
        failure_details=failure_details,
        page=page,
        reference=reference,
        excluded_selectors=frozenset(excluded)
    )


class TestPageSearchStrategies:
    """Strategies that search the current page for the reference element."""

    @pytest.mark.asyncio
    async def test_semantic_matching_finds_renamed_button(self, failure_details, healed_page, reference):
        outcome = await SemanticMatchingStrategy().attempt(make_context(failure_details, healed_page, reference))

        assert len(outcome.updates) == 1
        update = outcome.updates[0]
        assert update.new_selector == "#signin-btn"
        assert update.original_selector == "#login-btn"
        assert update.step_id == "step-login"
        assert update.selector_type == SelectorType.CSS
        assert update.element_context.tag_name == "button"
        assert update.semantic_preservation.accessibility_impact == AccessibilityImpact.NONE
        assert update.backup_selectors[0] == 'button:has-text("Login")'
        assert len(update.backup_selectors) <= 3
        assert 0.5 <= outcome.confidence < 0.9
        assert update.confidence_score == outcome.confidence

    @pytest.mark.asyncio
    async def test_excluded_selectors_are_not_proposed(self, failure_details, healed_page, reference):
        context = make_context(failure_details, healed_page, reference, excluded=("#login-btn", "#signin-btn"))

        outcome = await SemanticMatchingStrategy().attempt(context)

        assert outcome.updates[0].new_selector == 'button:has-text("Login")'

    @pytest.mark.asyncio
    async def test_proposals_resolve_to_the_matched_element(self, failure_details, healed_page, reference):
        outcome = await SemanticMatchingStrategy().attempt(make_context(failure_details, healed_page, reference))
        update = outcome.updates[0]

        target = await healed_page.query_selector(update.new_selector)
        for backup in update.backup_selectors:
            assert await healed_page.query_selector(backup) == target

    @pytest.mark.asyncio
    async def test_visual_recognition_is_capped(self, failure_details, healed_page, reference):
        strategy = VisualRecognitionStrategy()
        outcome = await strategy.attempt(make_context(failure_details, healed_page, reference))

        assert outcome.updates[0].new_selector == "#signin-btn"
        assert outcome.confidence <= 0.9
        assert outcome.updates[0].semantic_preservation.accessibility_impact == AccessibilityImpact.MINIMAL

    @pytest.mark.asyncio
    async def test_context_analysis_is_capped(self, failure_details, healed_page, reference):
        outcome = await ContextAnalysisStrategy().attempt(make_context(failure_details, healed_page, reference))

        assert outcome.updates
        assert outcome.confidence <= 0.85

    @pytest.mark.asyncio
    async def test_no_page(self, failure_details, reference):
        outcome = await SemanticMatchingStrategy().attempt(make_context(failure_details, None, reference))
        assert outcome.updates == []
        assert outcome.confidence == 0.0
        assert outcome.reasoning == "page unavailable"

    @pytest.mark.asyncio
    async def test_no_reference(self, failure_details, healed_page):
        outcome = await SemanticMatchingStrategy().attempt(make_context(failure_details, healed_page, None))
        assert outcome.confidence == 0.0
        assert "no reference identification" in outcome.reasoning


class TestFallbackSearchStrategy:
    """Broad text search with a low ceiling."""

    @pytest.mark.asyncio
    async def test_ceiling(self, failure_details, healed_page, reference):
        outcome = await FallbackSearchStrategy().attempt(make_context(failure_details, healed_page, reference))

        assert outcome.updates
        assert outcome.confidence <= 0.5
        assert outcome.updates[0].semantic_preservation.accessibility_impact == AccessibilityImpact.MODERATE

    @pytest.mark.asyncio
    async def test_works_from_text_selector_without_reference(self, healed_page):
        failure = FailureDetails(
            failed_step_id="step-login",
            failure_type=FailureType.ELEMENT_NOT_FOUND,
            original_selector='button:has-text("Log in")',
            error_message="Element not found"
        )
        outcome = await FallbackSearchStrategy().attempt(
            make_context(failure, healed_page, None, excluded=(failure.original_selector,)))

        assert outcome.updates[0].new_selector == "#signin-btn"
        assert 0.0 < outcome.confidence <= 0.5

    @pytest.mark.asyncio
    async def test_nothing_to_search_for(self, failure_details, healed_page):
        outcome = await FallbackSearchStrategy().attempt(make_context(failure_details, healed_page, None))
        assert outcome.updates == []
        assert outcome.confidence == 0.0


class TestMLPredictionStrategy:
    """Delegation to the prediction service."""

    @pytest.mark.asyncio
    async def test_unconfigured_service(self, failure_details, healed_page, reference):
        client = Mock(is_configured=False)
        outcome = await MLPredictionStrategy(client).attempt(make_context(failure_details, healed_page, reference))

        assert outcome.confidence == 0.0
        assert outcome.reasoning == "prediction service unavailable"

    @pytest.mark.asyncio
    async def test_confidence_is_taken_as_given(self, failure_details, healed_page, reference):
        client = Mock(is_configured=True)
        client.predict = AsyncMock(return_value=[
            Prediction(selector="#login-btn", confidence=0.99),
            Prediction(selector="[data-test=login]", confidence=0.87, reasoning="model says so",
                       selector_type=SelectorType.DATA_ATTRIBUTE)
        ])

        outcome = await MLPredictionStrategy(client).attempt(make_context(failure_details, healed_page, reference))

        assert outcome.confidence == 0.87
        assert outcome.reasoning == "model says so"
        assert outcome.updates[0].new_selector == "[data-test=login]"
        assert outcome.updates[0].selector_type == SelectorType.DATA_ATTRIBUTE
        client.predict.assert_awaited_once_with(reference, failure_details)

    @pytest.mark.asyncio
    async def test_confidence_is_clamped(self, failure_details, healed_page, reference):
        client = Mock(is_configured=True)
        client.predict = AsyncMock(return_value=[Prediction(selector="#x", confidence=1.7)])

        outcome = await MLPredictionStrategy(client).attempt(make_context(failure_details, healed_page, reference))

        assert outcome.confidence == 1.0

    @pytest.mark.asyncio
    async def test_no_usable_prediction(self, failure_details, healed_page, reference):
        client = Mock(is_configured=True)
        client.predict = AsyncMock(return_value=[Prediction(selector="#login-btn", confidence=0.9)])

        outcome = await MLPredictionStrategy(client).attempt(make_context(failure_details, healed_page, reference))

        assert outcome.updates == []
        assert outcome.confidence == 0.0


class TestStrategyPurity:
    """Attempts depend only on their inputs."""

    @pytest.mark.asyncio
    async def test_repeated_attempts_are_identical(self, failure_details, healed_page, reference):
        strategy = SemanticMatchingStrategy()
        context = make_context(failure_details, healed_page, reference)

        first = await strategy.attempt(context)
        second = await strategy.attempt(context)

        assert first.updates[0].to_dict() == second.updates[0].to_dict()
        assert first.confidence == second.confidence

    def test_default_set_covers_every_name(self):
        strategies = build_default_strategies()
        assert set(strategies) == set(HealingStrategyName)
        assert all(strategy.name == name for name, strategy in strategies.items())
