"""
Shared pages, stubs and builders for selector healing tests.
"""

import asyncio
from typing import List, Optional

from src.selector_healing.core.models import (
    ElementContext,
    HealingConfiguration,
    HealingStrategyName,
    PerformanceLimits,
    SelectorType,
    SelectorUpdate,
    StrategySettings,
    ValidationResult
)
from src.selector_healing.services.healing_strategies import HealingStrategy, StrategyContext, StrategyOutcome
from src.selector_healing.services.validation_runner import ValidationBackend

LOGIN_PAGE = """
<html>
  <head><title>Login</title></head>
  <body>
    <form id="login-form" data-bbox="0,0,400,300">
      <label for="email" data-bbox="10,0,60,10">Email</label>
      <input id="email" name="email" placeholder="Email" data-bbox="10,10,200,30">
      <button id="login-btn" type="submit" class="btn btn-primary" data-bbox="10,60,100,40">Login</button>
    </form>
  </body>
</html>
"""

HEALED_LOGIN_PAGE = """
<html>
  <head><title>Login</title></head>
  <body>
    <form id="login-form" data-bbox="0,0,400,300">
      <label for="email" data-bbox="10,0,60,10">Email</label>
      <input id="email" name="email" placeholder="Email" data-bbox="10,10,200,30">
      <button id="signin-btn" type="submit" class="btn btn-primary" data-bbox="10,60,100,40">Login</button>
    </form>
  </body>
</html>
"""

LOGIN_BUTTON_POINT = (50, 80)


class StubStrategy(HealingStrategy):
    """Strategy returning canned confidences, one per attempt."""

    def __init__(self, name: HealingStrategyName, confidences: List[float],
                 selector_prefix: Optional[str] = None, delay: float = 0.0,
                 gate: Optional[asyncio.Event] = None):
        self.name = name
        self.confidences = list(confidences)
        self.selector_prefix = selector_prefix or f"#{name.value}"
        self.delay = delay
        self.gate = gate
        self.contexts: List[StrategyContext] = []

    async def attempt(self, context: StrategyContext) -> StrategyOutcome:
        self.contexts.append(context)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)

        index = len(self.contexts) - 1
        confidence = self.confidences[min(index, len(self.confidences) - 1)]
        selector = f"{self.selector_prefix}-{len(self.contexts)}"
        update = SelectorUpdate(
            step_id=context.failure_details.failed_step_id,
            original_selector=context.failure_details.original_selector,
            new_selector=selector,
            selector_type=SelectorType.CSS,
            confidence_score=confidence,
            change_reasoning=f"stub {self.name.value}",
            element_context=ElementContext(tag_name="button"),
            backup_selectors=[f"{selector}-backup"]
        )
        return StrategyOutcome(updates=[update], confidence=confidence,
                               reasoning=f"stub {self.name.value} at {confidence}")


class StubValidationBackend(ValidationBackend):
    """Validation backend with a fixed answer."""

    def __init__(self, result: Optional[ValidationResult] = None):
        self.result = result or ValidationResult(success=True, similarity_score=1.0)
        self.calls = []

    async def run_validation(self, candidate_selector, original_intent, test_case_id, full_test=False):
        self.calls.append(candidate_selector)
        return ValidationResult(
            success=self.result.success,
            similarity_score=self.result.similarity_score,
            error_message=self.result.error_message
        )


def make_config(strategies: Optional[List[HealingStrategyName]] = None,
                max_attempts_per_strategy: int = 2,
                total_max_attempts: int = 6,
                **overrides) -> HealingConfiguration:
    """Healing configuration with short timeouts for tests."""
    config = HealingConfiguration(
        healing_strategies=StrategySettings(
            enabled_strategies=list(strategies) if strategies is not None else list(HealingStrategyName),
            max_attempts_per_strategy=max_attempts_per_strategy,
            total_max_attempts=total_max_attempts
        ),
        performance_limits=PerformanceLimits(
            strategy_timeout_seconds=2.0,
            validation_timeout_seconds=2.0,
            healing_timeout_seconds=10.0
        )
    )
    for name, value in overrides.items():
        setattr(config, name, value)
    return config



async def identify_login_button(page_html: str = LOGIN_PAGE):
    """Identify the login button through the real extraction pipeline."""
    from src.selector_healing.services.description_generator import FallbackDescriptionGenerator
    from src.selector_healing.services.element_recognition_service import ElementRecognitionService
    from src.selector_healing.services.page_snapshot import HtmlSnapshotPage

    service = ElementRecognitionService(description_generator=FallbackDescriptionGenerator())
    return await service.identify_element(page=HtmlSnapshotPage(page_html), coordinates=LOGIN_BUTTON_POINT)
