"""
Metrics collection for element identification and selector healing.

Tracks healing outcomes, per-strategy effectiveness and identification
confidence so operators can see how well the engine is doing.
"""

import threading
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Any
import logging

from .models import HealingStatus, FailureType, HealingStrategyName, ReviewDecision


@dataclass
class MetricPoint:
    """A single metric data point."""
    timestamp: datetime
    value: float
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class HealingMetrics:
    """Snapshot of healing metrics."""
    total_sessions: int = 0
    completed_sessions: int = 0
    failed_sessions: int = 0
    review_sessions: int = 0
    active_sessions: int = 0
    avg_healing_time: float = 0.0
    total_attempts: int = 0
    timed_out_attempts: int = 0
    failure_type_counts: Dict[str, int] = field(default_factory=dict)
    strategy_success_rates: Dict[str, float] = field(default_factory=dict)
    review_decisions: Dict[str, int] = field(default_factory=dict)
    identifications: int = 0
    avg_identification_confidence: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_sessions": self.total_sessions,
            "completed_sessions": self.completed_sessions,
            "failed_sessions": self.failed_sessions,
            "review_sessions": self.review_sessions,
            "active_sessions": self.active_sessions,
            "avg_healing_time": self.avg_healing_time,
            "total_attempts": self.total_attempts,
            "timed_out_attempts": self.timed_out_attempts,
            "failure_type_counts": dict(self.failure_type_counts),
            "strategy_success_rates": dict(self.strategy_success_rates),
            "review_decisions": dict(self.review_decisions),
            "identifications": self.identifications,
            "avg_identification_confidence": self.avg_identification_confidence
        }


class MetricsCollector:
    """Thread-safe metrics collector for healing operations."""

    def __init__(self):
        self._lock = threading.RLock()

        self._counters: Dict[str, int] = defaultdict(int)
        self._gauges: Dict[str, float] = {}
        self._timers: Dict[str, deque] = defaultdict(lambda: deque(maxlen=1000))

        self._active_sessions: Dict[str, Dict[str, Any]] = {}
        self._strategy_attempts: Dict[str, deque] = defaultdict(lambda: deque(maxlen=1000))
        self._identification_confidences: deque = deque(maxlen=1000)

        self.logger = logging.getLogger("healing.metrics")

    def increment_counter(self, name: str, value: int = 1, labels: Optional[Dict[str, str]] = None):
        """Increment a counter metric."""
        with self._lock:
            self._counters[self._make_key(name, labels)] += value

    def set_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None):
        """Set a gauge metric value."""
        with self._lock:
            self._gauges[self._make_key(name, labels)] = value

    def record_timer(self, name: str, duration: float, labels: Optional[Dict[str, str]] = None):
        """Record a duration in seconds."""
        with self._lock:
            self._timers[self._make_key(name, labels)].append(MetricPoint(
                timestamp=datetime.now(),
                value=duration,
                labels=labels or {}
            ))

    def get_counter(self, name: str, labels: Optional[Dict[str, str]] = None) -> int:
        with self._lock:
            return self._counters.get(self._make_key(name, labels), 0)

    def get_gauge(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        with self._lock:
            return self._gauges.get(self._make_key(name, labels))

    def record_healing_session_start(self, session_id: str, test_case: str, failure_type: FailureType):
        """Record the start of a healing session."""
        with self._lock:
            self._active_sessions[session_id] = {
                "test_case": test_case,
                "failure_type": failure_type.value,
                "start_time": datetime.now()
            }
            self.increment_counter("healing_sessions_total")
            self.increment_counter("healing_sessions_by_type", labels={"failure_type": failure_type.value})
            self.set_gauge("active_healing_sessions", len(self._active_sessions))

    def record_healing_attempt(self, strategy: HealingStrategyName, confidence: float,
                               duration: float, reached_threshold: bool, timed_out: bool = False):
        """Record one strategy attempt."""
        with self._lock:
            self.increment_counter("healing_attempts_total")
            if timed_out:
                self.increment_counter("healing_attempt_timeouts_total")
            self._strategy_attempts[strategy.value].append(reached_threshold)
            self.record_timer("healing_attempt_duration", duration, labels={"strategy": strategy.value})

    def record_healing_session_complete(self, session_id: str, status: HealingStatus):
        """Record a session reaching a terminal state."""
        with self._lock:
            session_data = self._active_sessions.pop(session_id, None)
            self.increment_counter("healing_sessions_completed", labels={"status": status.value})
            if session_data:
                duration = (datetime.now() - session_data["start_time"]).total_seconds()
                self.record_timer("healing_session_duration", duration)
            self.set_gauge("active_healing_sessions", len(self._active_sessions))

        self.logger.info(f"Healing session {session_id} finished with status {status.value}")

    def record_review_decision(self, decision: str, status: HealingStatus):
        """Record how a reviewer resolved a session already counted under ``requires_review``."""
        with self._lock:
            self.increment_counter("healing_reviews_total", labels={"decision": decision})

        self.logger.info(f"Review decision {decision} moved a session to {status.value}")

    def record_identification(self, overall_confidence: float):
        """Record a completed element identification."""
        with self._lock:
            self.increment_counter("identifications_total")
            self._identification_confidences.append(overall_confidence)

    def get_healing_metrics(self) -> HealingMetrics:
        """Build a snapshot of the healing metrics."""
        with self._lock:
            durations = [point.value for point in self._timers.get("healing_session_duration", [])]
            failure_type_counts = {}
            for failure_type in FailureType:
                key = self._make_key("healing_sessions_by_type", {"failure_type": failure_type.value})
                if self._counters.get(key):
                    failure_type_counts[failure_type.value] = self._counters[key]

            strategy_rates = {
                name: (sum(results) / len(results))
                for name, results in self._strategy_attempts.items() if results
            }

            confidences = list(self._identification_confidences)
            review_decisions = {}
            for decision in ReviewDecision:
                count = self.get_counter("healing_reviews_total", {"decision": decision.value})
                if count:
                    review_decisions[decision.value] = count

            return HealingMetrics(
                total_sessions=self._counters.get("healing_sessions_total", 0),
                completed_sessions=self._status_count(HealingStatus.COMPLETED),
                failed_sessions=self._status_count(HealingStatus.FAILED),
                review_sessions=self._status_count(HealingStatus.REQUIRES_REVIEW),
                active_sessions=len(self._active_sessions),
                avg_healing_time=(sum(durations) / len(durations)) if durations else 0.0,
                total_attempts=self._counters.get("healing_attempts_total", 0),
                timed_out_attempts=self._counters.get("healing_attempt_timeouts_total", 0),
                failure_type_counts=failure_type_counts,
                strategy_success_rates=strategy_rates,
                review_decisions=review_decisions,
                identifications=self._counters.get("identifications_total", 0),
                avg_identification_confidence=(sum(confidences) / len(confidences)) if confidences else 0.0
            )

    def reset(self):
        """Clear all collected metrics."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._timers.clear()
            self._active_sessions.clear()
            self._strategy_attempts.clear()
            self._identification_confidences.clear()

    def _status_count(self, status: HealingStatus) -> int:
        return self._counters.get(
            self._make_key("healing_sessions_completed", {"status": status.value}), 0)

    def _make_key(self, name: str, labels: Optional[Dict[str, str]] = None) -> str:
        """Create a unique key for a metric with labels."""
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector
