"""
Validation of candidate selectors.

The browser-automation collaborator re-executes the step intent against a
candidate selector (ValidationBackend). ValidationRunner bounds that call by
the configured timeout and applies the visual similarity policy.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Optional

from ..core.models import FailureDetails, SelectorUpdate, ValidationResult, ValidationSettings
from .page_snapshot import PageProvider

logger = logging.getLogger(__name__)


class ValidationBackend(ABC):
    """RunValidation(candidateSelector, originalIntent) port."""

    @abstractmethod
    async def run_validation(self, candidate_selector: str, original_intent: FailureDetails,
                             test_case_id: str, full_test: bool = False) -> ValidationResult:
        pass


class SnapshotValidationBackend(ValidationBackend):
    """Validates against the current page snapshot.

    A candidate passes when it resolves on the page; ``similarity_score`` is
    ``1 / match_count`` so ambiguous selectors score lower.
    """

    def __init__(self, page_provider: PageProvider):
        self.page_provider = page_provider

    async def run_validation(self, candidate_selector: str, original_intent: FailureDetails,
                             test_case_id: str, full_test: bool = False) -> ValidationResult:
        page = await self.page_provider.get_page(test_case_id, original_intent.page_url)
        if page is None:
            return ValidationResult(success=False, error_message="page unavailable for validation")

        matches = await page.query_selector_all(candidate_selector)
        if not matches:
            return ValidationResult(
                success=False,
                similarity_score=0.0,
                error_message=f"Selector '{candidate_selector}' matches no element"
            )
        return ValidationResult(success=True, similarity_score=1.0 / len(matches))


class ValidationRunner:
    """Runs the validation backend under a timeout."""

    def __init__(self, backend: ValidationBackend):
        self.backend = backend

    async def validate(self, update: SelectorUpdate, failure_details: FailureDetails,
                       test_case_id: str, settings: ValidationSettings,
                       timeout: Optional[float] = None) -> ValidationResult:
        """Validate one proposed selector change.

        Never raises for backend problems: timeouts and errors come back as an
        unsuccessful ValidationResult carrying the detail.
        """
        start_time = time.time()
        try:
            result = await asyncio.wait_for(
                self.backend.run_validation(
                    update.new_selector,
                    failure_details,
                    test_case_id,
                    full_test=settings.execute_full_test_validation
                ),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Validation of '{update.new_selector}' timed out after {timeout}s")
            result = ValidationResult(success=False, error_message="validation timed out")
        except Exception as e:
            logger.error(f"Validation of '{update.new_selector}' failed: {e}")
            result = ValidationResult(success=False, error_message=f"validation error: {e}")

        if result.success and settings.require_screenshot_comparison:
            score = result.similarity_score
            if score is None or score < settings.similarity_threshold:
                result = ValidationResult(
                    success=False,
                    similarity_score=score,
                    error_message=(f"visual similarity {score if score is not None else 'unknown'} "
                                   f"below threshold {settings.similarity_threshold}")
                )

        result.execution_time_ms = (time.time() - start_time) * 1000
        return result
