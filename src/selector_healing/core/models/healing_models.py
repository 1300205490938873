"""Data models for the selector self-healing system."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Any, Tuple
from enum import Enum

from .identification_models import SelectorType


class FailureType(Enum):
    """Types of step failures that can trigger healing."""
    ELEMENT_NOT_FOUND = "element_not_found"
    TIMEOUT = "timeout"
    ASSERTION_FAILED = "assertion_failed"
    INTERACTION_FAILED = "interaction_failed"


class TriggerType(Enum):
    """What started a healing session."""
    FAILURE_DETECTION = "failure_detection"
    SCHEDULED_CHECK = "scheduled_check"
    MANUAL_TRIGGER = "manual_trigger"


class HealingStatus(Enum):
    """State machine values of a healing session."""
    PENDING = "pending"
    ANALYZING = "analyzing"
    HEALING = "healing"
    VALIDATING = "validating"
    COMPLETED = "completed"
    FAILED = "failed"
    REQUIRES_REVIEW = "requires_review"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    HealingStatus.COMPLETED,
    HealingStatus.FAILED,
    HealingStatus.REQUIRES_REVIEW
})


class HealingStrategyName(Enum):
    """Names of the pluggable recovery strategies."""
    SEMANTIC_MATCHING = "semantic_matching"
    VISUAL_RECOGNITION = "visual_recognition"
    CONTEXT_ANALYSIS = "context_analysis"
    ML_PREDICTION = "ml_prediction"
    FALLBACK_SEARCH = "fallback_search"


class ResolutionType(Enum):
    """How a session was resolved."""
    AUTO_HEALED = "auto_healed"
    MANUAL_REVIEW_REQUIRED = "manual_review_required"
    MANUALLY_APPROVED = "manually_approved"


class ReviewDecision(Enum):
    """Reviewer decisions for sessions awaiting review."""
    APPROVE = "approve"
    REJECT = "reject"
    MODIFY = "modify"


class AccessibilityImpact(Enum):
    NONE = "none"
    MINIMAL = "minimal"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"


@dataclass
class FailureDetails:
    """Details of the failed step that triggered healing."""
    failed_step_id: str
    failure_type: FailureType
    original_selector: str
    error_message: str
    page_url: str = ""
    timestamp: datetime = field(default_factory=datetime.now)
    screenshot_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "failed_step_id": self.failed_step_id,
            "failure_type": self.failure_type.value,
            "original_selector": self.original_selector,
            "error_message": self.error_message,
            "page_url": self.page_url,
            "timestamp": self.timestamp.isoformat(),
            "screenshot_url": self.screenshot_url
        }


@dataclass
class SemanticPreservation:
    """Whether a proposed change keeps the step's meaning.

    ``accessibility_impact`` is passed through from the strategy that
    produced the proposal.
    """
    intent_maintained: bool = True
    functionality_preserved: bool = True
    accessibility_impact: AccessibilityImpact = AccessibilityImpact.NONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent_maintained": self.intent_maintained,
            "functionality_preserved": self.functionality_preserved,
            "accessibility_impact": self.accessibility_impact.value
        }


@dataclass
class ElementContext:
    """Snapshot of the element a proposal points at."""
    tag_name: str
    attributes: Dict[str, str] = field(default_factory=dict)
    text_content: str = ""
    parent_selectors: List[str] = field(default_factory=list)
    sibling_context: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tag_name": self.tag_name,
            "attributes": dict(self.attributes),
            "text_content": self.text_content,
            "parent_selectors": list(self.parent_selectors),
            "sibling_context": list(self.sibling_context)
        }


@dataclass
class SelectorUpdate:
    """A proposed replacement for a broken selector."""
    step_id: str
    original_selector: str
    new_selector: str
    selector_type: SelectorType
    confidence_score: float
    change_reasoning: str
    element_context: ElementContext
    semantic_preservation: SemanticPreservation = field(default_factory=SemanticPreservation)
    backup_selectors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "original_selector": self.original_selector,
            "new_selector": self.new_selector,
            "selector_type": self.selector_type.value,
            "confidence_score": self.confidence_score,
            "change_reasoning": self.change_reasoning,
            "element_context": self.element_context.to_dict(),
            "semantic_preservation": self.semantic_preservation.to_dict(),
            "backup_selectors": list(self.backup_selectors)
        }


@dataclass
class ValidationResult:
    """Outcome of re-running the step intent against a candidate."""
    success: bool
    similarity_score: Optional[float] = None
    error_message: Optional[str] = None
    execution_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "similarity_score": self.similarity_score,
            "error_message": self.error_message,
            "execution_time_ms": self.execution_time_ms
        }


@dataclass
class HealingAttempt:
    """Record of one strategy execution within a session."""
    attempt_number: int
    strategy_used: HealingStrategyName
    proposed_changes: List[SelectorUpdate]
    confidence_score: float
    reasoning: str
    validation_result: Optional[ValidationResult] = None
    execution_time_ms: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def best_change(self) -> Optional[SelectorUpdate]:
        return self.proposed_changes[0] if self.proposed_changes else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt_number": self.attempt_number,
            "strategy_used": self.strategy_used.value,
            "proposed_changes": [change.to_dict() for change in self.proposed_changes],
            "confidence_score": self.confidence_score,
            "reasoning": self.reasoning,
            "validation_result": self.validation_result.to_dict() if self.validation_result else None,
            "execution_time_ms": self.execution_time_ms,
            "timestamp": self.timestamp.isoformat()
        }


@dataclass
class FinalResolution:
    """Outcome attached to a session once it reaches a terminal state."""
    reasoning: str
    resolution_type: Optional[ResolutionType] = None
    updated_selectors: List[SelectorUpdate] = field(default_factory=list)
    confidence_score: float = 0.0
    validation_results: List[ValidationResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resolution_type": self.resolution_type.value if self.resolution_type else None,
            "reasoning": self.reasoning,
            "updated_selectors": [update.to_dict() for update in self.updated_selectors],
            "confidence_score": self.confidence_score,
            "validation_results": [result.to_dict() for result in self.validation_results]
        }


@dataclass
class ConfidenceThresholds:
    """Policy thresholds; strictly decreasing in (0, 1]."""
    auto_apply: float = 0.9
    suggest_review: float = 0.7
    attempt_healing: float = 0.5
    min_viable: float = 0.3


@dataclass
class StrategySettings:
    """Which strategies run, in what order, and how often."""
    enabled_strategies: List[HealingStrategyName] = field(default_factory=lambda: list(HealingStrategyName))
    strategy_priorities: Dict[HealingStrategyName, int] = field(default_factory=dict)
    max_attempts_per_strategy: int = 2
    total_max_attempts: int = 6


@dataclass
class ValidationSettings:
    require_screenshot_comparison: bool = False
    similarity_threshold: float = 0.8
    execute_full_test_validation: bool = False


@dataclass
class PerformanceLimits:
    strategy_timeout_seconds: float = 10.0
    validation_timeout_seconds: float = 30.0
    healing_timeout_seconds: float = 300.0


@dataclass
class HealingConfiguration:
    """Tenant/project scoped healing policy."""
    enabled: bool = True
    auto_healing_enabled: bool = True
    confidence_thresholds: ConfidenceThresholds = field(default_factory=ConfidenceThresholds)
    healing_strategies: StrategySettings = field(default_factory=StrategySettings)
    excluded_failure_types: List[FailureType] = field(default_factory=list)
    validation_settings: ValidationSettings = field(default_factory=ValidationSettings)
    performance_limits: PerformanceLimits = field(default_factory=PerformanceLimits)

    @property
    def max_attempts_per_strategy(self) -> int:
        return self.healing_strategies.max_attempts_per_strategy

    @property
    def total_max_attempts(self) -> int:
        return self.healing_strategies.total_max_attempts

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        thresholds = self.confidence_thresholds
        strategies = self.healing_strategies
        return {
            "enabled": self.enabled,
            "auto_healing_enabled": self.auto_healing_enabled,
            "confidence_thresholds": {
                "auto_apply": thresholds.auto_apply,
                "suggest_review": thresholds.suggest_review,
                "attempt_healing": thresholds.attempt_healing,
                "min_viable": thresholds.min_viable
            },
            "healing_strategies": {
                "enabled_strategies": [s.value for s in strategies.enabled_strategies],
                "strategy_priorities": {s.value: p for s, p in strategies.strategy_priorities.items()},
                "max_attempts_per_strategy": strategies.max_attempts_per_strategy,
                "total_max_attempts": strategies.total_max_attempts
            },
            "excluded_failure_types": [f.value for f in self.excluded_failure_types],
            "validation_settings": {
                "require_screenshot_comparison": self.validation_settings.require_screenshot_comparison,
                "similarity_threshold": self.validation_settings.similarity_threshold,
                "execute_full_test_validation": self.validation_settings.execute_full_test_validation
            },
            "performance_limits": {
                "strategy_timeout_seconds": self.performance_limits.strategy_timeout_seconds,
                "validation_timeout_seconds": self.performance_limits.validation_timeout_seconds,
                "healing_timeout_seconds": self.performance_limits.healing_timeout_seconds
            }
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HealingConfiguration':
        """Create configuration from dictionary; missing keys keep defaults."""
        strategies = data.get("healing_strategies", {})
        defaults = StrategySettings()
        enabled = strategies.get("enabled_strategies")
        return cls(
            enabled=data.get("enabled", True),
            auto_healing_enabled=data.get("auto_healing_enabled", True),
            confidence_thresholds=ConfidenceThresholds(**data.get("confidence_thresholds", {})),
            healing_strategies=StrategySettings(
                enabled_strategies=([HealingStrategyName(s) for s in enabled]
                                    if enabled is not None else defaults.enabled_strategies),
                strategy_priorities={
                    HealingStrategyName(name): int(priority)
                    for name, priority in strategies.get("strategy_priorities", {}).items()
                },
                max_attempts_per_strategy=strategies.get(
                    "max_attempts_per_strategy", defaults.max_attempts_per_strategy),
                total_max_attempts=strategies.get("total_max_attempts", defaults.total_max_attempts)
            ),
            excluded_failure_types=[FailureType(f) for f in data.get("excluded_failure_types", [])],
            validation_settings=ValidationSettings(**data.get("validation_settings", {})),
            performance_limits=PerformanceLimits(**data.get("performance_limits", {}))
        )


@dataclass
class HealingSession:
    """One recovery attempt lifecycle for one failed step."""
    id: str
    test_case_id: str
    trigger_type: TriggerType
    failure_details: FailureDetails
    configuration: HealingConfiguration
    execution_id: Optional[str] = None
    status: HealingStatus = HealingStatus.PENDING
    healing_attempts: List[HealingAttempt] = field(default_factory=list)
    final_resolution: Optional[FinalResolution] = None
    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    progress: float = 0.0
    current_stage: str = HealingStatus.PENDING.value
    reference_identification_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    cancel_requested: bool = False

    @property
    def active_key(self) -> Tuple[str, str]:
        """Key under which at most one non-terminal session may exist."""
        return (self.test_case_id, self.failure_details.failed_step_id)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration(self) -> Optional[float]:
        """Calculate session duration in seconds."""
        if self.completed_at and self.started_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def best_attempt(self) -> Optional[HealingAttempt]:
        """Highest-confidence attempt with a proposal; earliest wins ties."""
        best = None
        for attempt in self.healing_attempts:
            if not attempt.proposed_changes:
                continue
            if best is None or attempt.confidence_score > best.confidence_score:
                best = attempt
        return best

    def to_dict(self) -> Dict[str, Any]:
        """Convert session to dictionary for API responses and storage."""
        return {
            "id": self.id,
            "test_case_id": self.test_case_id,
            "execution_id": self.execution_id,
            "trigger_type": self.trigger_type.value,
            "status": self.status.value,
            "failure_details": self.failure_details.to_dict(),
            "healing_attempts": [attempt.to_dict() for attempt in self.healing_attempts],
            "final_resolution": self.final_resolution.to_dict() if self.final_resolution else None,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "progress": self.progress,
            "current_stage": self.current_stage,
            "reference_identification_id": self.reference_identification_id,
            "metadata": dict(self.metadata),
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "review_notes": self.review_notes
        }
