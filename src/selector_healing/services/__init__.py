"""
Services module for element identification and selector healing.
"""

from .element_recognition_service import ElementRecognitionService
from .event_broadcaster import EventBroadcaster, InMemoryEventSink
from .healing_orchestrator import HealingOrchestrator
from .validation_runner import ValidationRunner

__all__ = [
    "ElementRecognitionService",
    "EventBroadcaster",
    "InMemoryEventSink",
    "HealingOrchestrator",
    "ValidationRunner"
]
