"""Core data models for the selector self-healing system."""

from .identification_models import (
    BoundingBox,
    ConfidenceMetrics,
    ElementFacts,
    ElementIdentification,
    ElementType,
    SelectorCandidate,
    SelectorStrategy,
    SelectorType,
    TechnicalDetails,
    VisualContext
)
from .healing_models import (
    AccessibilityImpact,
    ConfidenceThresholds,
    ElementContext,
    FailureDetails,
    FailureType,
    FinalResolution,
    HealingAttempt,
    HealingConfiguration,
    HealingSession,
    HealingStatus,
    HealingStrategyName,
    PerformanceLimits,
    ResolutionType,
    ReviewDecision,
    SelectorUpdate,
    SemanticPreservation,
    StrategySettings,
    TriggerType,
    ValidationResult,
    ValidationSettings,
    TERMINAL_STATUSES
)

__all__ = [
    "BoundingBox",
    "ConfidenceMetrics",
    "ElementFacts",
    "ElementIdentification",
    "ElementType",
    "SelectorCandidate",
    "SelectorStrategy",
    "SelectorType",
    "TechnicalDetails",
    "VisualContext",
    "AccessibilityImpact",
    "ConfidenceThresholds",
    "ElementContext",
    "FailureDetails",
    "FailureType",
    "FinalResolution",
    "HealingAttempt",
    "HealingConfiguration",
    "HealingSession",
    "HealingStatus",
    "HealingStrategyName",
    "PerformanceLimits",
    "ResolutionType",
    "ReviewDecision",
    "SelectorUpdate",
    "SemanticPreservation",
    "StrategySettings",
    "TriggerType",
    "ValidationResult",
    "ValidationSettings",
    "TERMINAL_STATUSES"
]
