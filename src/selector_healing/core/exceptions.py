"""Error taxonomy for element identification and selector healing."""

from typing import Optional, Any


class SelectorHealingError(Exception):
    """Base class for all engine errors."""
    pass


class ElementNotFound(SelectorHealingError):
    """Raised when no element resolves at the given coordinates or reference."""

    def __init__(self, message: str, coordinates: Optional[tuple] = None,
                 reference: Optional[str] = None):
        super().__init__(message)
        self.coordinates = coordinates
        self.reference = reference


class DuplicateSession(SelectorHealingError):
    """Raised when an active session already exists for a step."""

    def __init__(self, existing_session: Any):
        super().__init__(
            f"Active healing session {existing_session.id} already exists for "
            f"test case {existing_session.test_case_id}, step "
            f"{existing_session.failure_details.failed_step_id}"
        )
        self.existing_session = existing_session


class StrategyTimeout(SelectorHealingError):
    """Raised when a strategy attempt exceeds its time budget."""
    pass


class ExtractionTimeout(SelectorHealingError):
    """Raised when page inspection does not answer within the identification timeout."""

    def __init__(self, message: str, timeout: float):
        super().__init__(message)
        self.timeout = timeout


class NoEligibleStrategy(SelectorHealingError):
    """Raised when configuration leaves no strategy for a failure type."""
    pass


class AttemptBudgetExhausted(SelectorHealingError):
    """Raised when the attempt budget is spent without a viable candidate."""
    pass


class ValidationFailed(SelectorHealingError):
    """Raised when a candidate selector does not satisfy the step intent."""

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.detail = detail


class SessionCancelled(SelectorHealingError):
    """Raised inside a session workflow once a cancel request is observed."""
    pass


class PersistenceFailure(SelectorHealingError):
    """Raised by persistence collaborators when a write cannot be completed."""
    pass


class HealingDisabled(SelectorHealingError):
    """Raised when healing is switched off for the project."""
    pass


class SessionNotFound(SelectorHealingError):
    """Raised when a session id is unknown."""
    pass


class InvalidReviewState(SelectorHealingError):
    """Raised when a review targets a session that is not awaiting review."""
    pass


class ConcurrentModificationError(SelectorHealingError):
    """Raised when an optimistic version check fails on a store write."""

    def __init__(self, key: Any, expected_version: int, actual_version: int):
        super().__init__(
            f"Version conflict for {key}: expected {expected_version}, found {actual_version}"
        )
        self.key = key
        self.expected_version = expected_version
        self.actual_version = actual_version
