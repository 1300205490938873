"""
Real-time event broadcasting for recording feedback and healing progress.

Events go to an EventSink on a per-entity channel (``recording:<id>`` or
``validation:<test_case_id>``). Every event carries the entity id as
``correlation_id``, a per-correlation ``sequence`` number and a timestamp so
subscribers can de-duplicate. Publishing never raises into the caller: a
failed delivery is logged and the state change that produced the event
stands.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from ..core.models import ElementIdentification, HealingSession

logger = logging.getLogger(__name__)

DEFAULT_PUBLISH_TIMEOUT = 5.0
DEFAULT_HISTORY_SIZE = 500
SUBSCRIBER_QUEUE_SIZE = 1000

RECORDING_EVENTS = (
    "recording_started",
    "step_captured",
    "element_identified",
    "recording_paused",
    "recording_stopped",
    "error_occurred"
)


def recording_channel(recording_id: str) -> str:
    return f"recording:{recording_id}"


def validation_channel(test_case_id: str) -> str:
    return f"validation:{test_case_id}"


class EventSink(ABC):
    """PublishEvent(channel, event) port."""

    @abstractmethod
    async def publish(self, channel: str, event: Dict[str, Any]) -> None:
        pass


class InMemoryEventSink(EventSink):
    """Keeps recent events per channel and fans them out to subscriber queues."""

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE):
        self._history: Dict[str, Deque[Dict[str, Any]]] = defaultdict(lambda: deque(maxlen=history_size))
        self._subscribers: Dict[str, List[asyncio.Queue]] = defaultdict(list)

    async def publish(self, channel: str, event: Dict[str, Any]) -> None:
        self._history[channel].append(event)
        for queue in list(self._subscribers.get(channel, [])):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Dropping event {event.get('type')} for slow subscriber on {channel}")

    def subscribe(self, channel: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=SUBSCRIBER_QUEUE_SIZE)
        self._subscribers[channel].append(queue)
        return queue

    def unsubscribe(self, channel: str, queue: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(channel, [])
        if queue in subscribers:
            subscribers.remove(queue)
        if not subscribers:
            self._subscribers.pop(channel, None)

    def get_events(self, channel: str) -> List[Dict[str, Any]]:
        return list(self._history.get(channel, []))

    def clear(self) -> None:
        self._history.clear()


class EventBroadcaster:
    """Builds, sequences and publishes events."""

    def __init__(self, sink: EventSink, publish_timeout: float = DEFAULT_PUBLISH_TIMEOUT):
        self.sink = sink
        self.publish_timeout = publish_timeout
        self._sequences: Dict[str, int] = defaultdict(int)

    async def emit(self, channel: str, event_type: str, correlation_id: str,
                   data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Publish one event; returns the event whether or not delivery worked."""
        self._sequences[correlation_id] += 1
        event = {
            "type": event_type,
            "channel": channel,
            "correlation_id": correlation_id,
            "sequence": self._sequences[correlation_id],
            "timestamp": datetime.now().isoformat(),
            "data": data or {}
        }
        try:
            await asyncio.wait_for(self.sink.publish(channel, event), timeout=self.publish_timeout)
        except Exception as e:
            logger.warning(f"Failed to publish {event_type} on {channel} "
                           f"(correlation {correlation_id}, seq {event['sequence']}): {e}")
        return event

    def forget(self, correlation_id: str) -> None:
        """Drop the sequence counter for a finished entity."""
        self._sequences.pop(correlation_id, None)

    # Healing progress

    async def healing_progress(self, session: HealingSession, stage: str, progress_percentage: float,
                               current_strategy: Optional[str] = None,
                               intermediate_results: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "session_id": session.id,
            "test_case_id": session.test_case_id,
            "stage": stage,
            "progress_percentage": progress_percentage
        }
        if current_strategy is not None:
            data["current_strategy"] = current_strategy
        if intermediate_results is not None:
            data["intermediate_results"] = intermediate_results
        return await self.emit(validation_channel(session.test_case_id), "healing_progress", session.id, data)

    async def healing_completed(self, session: HealingSession, result: str,
                                next_actions: List[str]) -> Dict[str, Any]:
        data = {
            "session_id": session.id,
            "test_case_id": session.test_case_id,
            "result": result,
            "status": session.status.value,
            "final_resolution": session.final_resolution.to_dict() if session.final_resolution else None,
            "next_actions": list(next_actions)
        }
        return await self.emit(validation_channel(session.test_case_id), "healing_completed", session.id, data)

    # Recording feedback

    async def recording_event(self, recording_id: str, event_type: str,
                              data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if event_type not in RECORDING_EVENTS:
            raise ValueError(f"Unknown recording event type: {event_type}")
        event = await self.emit(recording_channel(recording_id), event_type, recording_id, data)
        if event_type == "recording_stopped":
            self.forget(recording_id)
        return event

    async def element_identified(self, recording_id: str,
                                 identification: ElementIdentification) -> Dict[str, Any]:
        return await self.recording_event(recording_id, "element_identified", {
            "identification": identification.to_dict()
        })

    async def error_occurred(self, recording_id: str, error: str,
                             error_type: Optional[str] = None) -> Dict[str, Any]:
        return await self.recording_event(recording_id, "error_occurred", {
            "error": error,
            "error_type": error_type
        })
