"""
Healing API endpoints for the selector self-healing engine.

This module provides REST endpoints for triggering, inspecting, cancelling
and reviewing healing sessions, for identifying elements on an HTML
snapshot, and Server-Sent Events for real-time progress and recording
feedback.
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from ..core.config_loader import get_healing_config
from ..core.exceptions import (
    ConcurrentModificationError,
    ElementNotFound,
    ExtractionTimeout,
    HealingDisabled,
    InvalidReviewState,
    SessionNotFound
)
from ..core.metrics import get_metrics_collector
from ..core.models import FailureDetails, FailureType, ReviewDecision, TriggerType
from ..services.element_recognition_service import (
    ElementRecognitionService,
    categorize_failure,
    suggest_alternative_selectors
)
from ..services.event_broadcaster import EventBroadcaster, InMemoryEventSink
from ..services.healing_orchestrator import HealingOrchestrator
from ..services.healing_strategies import build_default_strategies
from ..services.page_snapshot import SnapshotPageProvider
from ..services.persistence import JsonFilePersistence
from ..services.session_store import InMemoryHealingSessionStore, InMemoryIdentificationStore
from ..services.validation_runner import SnapshotValidationBackend, ValidationRunner

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 15.0

# Global engine instances
_healing_orchestrator: Optional[HealingOrchestrator] = None
_recognition_service: Optional[ElementRecognitionService] = None
_page_provider: Optional[SnapshotPageProvider] = None
_event_sink: Optional[InMemoryEventSink] = None

router = APIRouter(prefix="/healing", tags=["healing"])


# Pydantic models for API requests/responses
class TriggerHealingRequest(BaseModel):
    test_case_id: str
    failed_step_id: str
    original_selector: str
    error_message: str = ""
    failure_type: Optional[str] = None
    page_url: str = ""
    screenshot_url: Optional[str] = None
    trigger_type: str = TriggerType.FAILURE_DETECTION.value
    execution_id: Optional[str] = None
    force_healing: bool = False
    page_html: Optional[str] = Field(None, description="Current page snapshot used for healing and validation")


class ReviewHealingRequest(BaseModel):
    decision: str
    modifications: Optional[Dict[str, Any]] = None
    reviewer: Optional[str] = None
    notes: Optional[str] = None


class IdentifyElementRequest(BaseModel):
    page_html: str
    page_url: str = ""
    x: Optional[float] = None
    y: Optional[float] = None
    reference: Optional[str] = None
    recording_id: Optional[str] = None
    test_case_id: Optional[str] = None
    step_id: Optional[str] = None


class HealingSessionResponse(BaseModel):
    session_id: str
    test_case_id: str
    status: str
    current_stage: str
    progress: float = 0.0
    failed_step_id: str
    original_selector: str
    created_at: datetime
    completed_at: Optional[datetime] = None
    attempts_count: int = 0


def configure_healing_services(orchestrator: HealingOrchestrator,
                               recognition_service: ElementRecognitionService,
                               page_provider: SnapshotPageProvider,
                               event_sink: InMemoryEventSink):
    """Install engine instances built elsewhere (application start-up, tests)."""
    global _healing_orchestrator, _recognition_service, _page_provider, _event_sink
    _healing_orchestrator = orchestrator
    _recognition_service = recognition_service
    _page_provider = page_provider
    _event_sink = event_sink


def reset_healing_services():
    global _healing_orchestrator, _recognition_service, _page_provider, _event_sink
    _healing_orchestrator = None
    _recognition_service = None
    _page_provider = None
    _event_sink = None


async def get_healing_orchestrator() -> HealingOrchestrator:
    """Get or create the global healing orchestrator instance."""
    global _healing_orchestrator, _recognition_service, _page_provider, _event_sink

    if _healing_orchestrator is None:
        _page_provider = SnapshotPageProvider()
        _event_sink = InMemoryEventSink()
        broadcaster = EventBroadcaster(_event_sink)
        identification_store = InMemoryIdentificationStore()
        persistence = JsonFilePersistence()

        _recognition_service = ElementRecognitionService(
            identification_store=identification_store,
            broadcaster=broadcaster,
            persistence=persistence
        )
        _healing_orchestrator = HealingOrchestrator(
            ValidationRunner(SnapshotValidationBackend(_page_provider)),
            session_store=InMemoryHealingSessionStore(),
            identification_store=identification_store,
            broadcaster=broadcaster,
            strategies=build_default_strategies(),
            page_provider=_page_provider,
            persistence=persistence
        )
        await _healing_orchestrator.start()
        logger.info("Healing engine initialized with in-memory stores and snapshot pages")

    return _healing_orchestrator


async def get_recognition_service() -> ElementRecognitionService:
    await get_healing_orchestrator()
    return _recognition_service


async def get_event_sink() -> InMemoryEventSink:
    await get_healing_orchestrator()
    return _event_sink


def _session_summary(session) -> HealingSessionResponse:
    return HealingSessionResponse(
        session_id=session.id,
        test_case_id=session.test_case_id,
        status=session.status.value,
        current_stage=session.current_stage,
        progress=session.progress,
        failed_step_id=session.failure_details.failed_step_id,
        original_selector=session.failure_details.original_selector,
        created_at=session.created_at,
        completed_at=session.completed_at,
        attempts_count=len(session.healing_attempts)
    )


@router.get("/status")
async def get_healing_status():
    """Get current healing system status and configuration."""
    try:
        config = get_healing_config()
        orchestrator = await get_healing_orchestrator()
        active_sessions = await orchestrator.list_sessions(active_only=True)

        return {
            "status": "success",
            "healing_enabled": config.enabled,
            "auto_healing_enabled": config.auto_healing_enabled,
            "active_sessions": len(active_sessions),
            "configuration": config.to_dict()
        }
    except Exception as e:
        logger.error(f"Failed to get healing status: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to get healing status: {str(e)}")


@router.post("/sessions")
async def trigger_healing(request: TriggerHealingRequest):
    """Start healing a failed step (or return the session already healing it)."""
    try:
        failure_type = (FailureType(request.failure_type) if request.failure_type
                        else categorize_failure(request.error_message))
        trigger_type = TriggerType(request.trigger_type)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    try:
        orchestrator = await get_healing_orchestrator()
        if request.page_html is not None:
            _page_provider.register(request.test_case_id, request.page_html, url=request.page_url)

        session = await orchestrator.trigger_healing(
            request.test_case_id,
            FailureDetails(
                failed_step_id=request.failed_step_id,
                failure_type=failure_type,
                original_selector=request.original_selector,
                error_message=request.error_message,
                page_url=request.page_url,
                screenshot_url=request.screenshot_url
            ),
            trigger_type=trigger_type,
            execution_id=request.execution_id,
            force_healing=request.force_healing
        )

        return {
            "status": "success",
            "session": _session_summary(session)
        }

    except HealingDisabled as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to trigger healing for {request.test_case_id}/{request.failed_step_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to trigger healing: {str(e)}")


@router.get("/sessions")
async def list_healing_sessions(test_case_id: Optional[str] = None, active_only: bool = False):
    """List healing sessions, oldest first."""
    orchestrator = await get_healing_orchestrator()
    sessions = await orchestrator.list_sessions(test_case_id, active_only=active_only)
    return {
        "status": "success",
        "sessions": [_session_summary(session) for session in sessions],
        "total_count": len(sessions)
    }


@router.get("/sessions/{session_id}")
async def get_healing_session(session_id: str):
    """Get detailed information about a specific healing session."""
    orchestrator = await get_healing_orchestrator()
    session = await orchestrator.get_session(session_id)

    if not session:
        raise HTTPException(status_code=404, detail=f"Healing session {session_id} not found")

    return {
        "status": "success",
        "session": session.to_dict()
    }


@router.post("/sessions/{session_id}/cancel")
async def cancel_healing_session(session_id: str):
    """Request cancellation of an active healing session."""
    try:
        orchestrator = await get_healing_orchestrator()
        cancelled = await orchestrator.cancel_session(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    if not cancelled:
        raise HTTPException(
            status_code=409,
            detail=f"Healing session {session_id} has already finished"
        )

    logger.info(f"Healing session {session_id} cancellation requested")
    return {
        "status": "success",
        "message": f"Cancellation of healing session {session_id} requested"
    }


@router.post("/sessions/{session_id}/review")
async def review_healing_session(session_id: str, request: ReviewHealingRequest):
    """Approve, reject or modify a session awaiting review."""
    try:
        decision = ReviewDecision(request.decision)
    except ValueError:
        raise HTTPException(status_code=422, detail=f"Unknown review decision: {request.decision}")

    try:
        orchestrator = await get_healing_orchestrator()
        session = await orchestrator.review_healing(
            session_id,
            decision,
            modifications=request.modifications,
            reviewer=request.reviewer,
            notes=request.notes
        )
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (InvalidReviewState, ConcurrentModificationError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    logger.info(f"Healing session {session_id} reviewed ({decision.value}) by {request.reviewer or 'unknown'}")
    return {
        "status": "success",
        "session": session.to_dict()
    }


@router.post("/identifications")
async def identify_element(request: IdentifyElementRequest):
    """Identify an element on an HTML snapshot by coordinates or reference."""
    coordinates = None
    if request.x is not None and request.y is not None:
        coordinates = (request.x, request.y)
    elif not request.reference:
        raise HTTPException(status_code=422, detail="Either x/y coordinates or a reference selector is required")

    try:
        service = await get_recognition_service()
        if request.test_case_id:
            page = _page_provider.register(request.test_case_id, request.page_html, url=request.page_url)
        else:
            page = None

        identification = await service.identify_element(
            page=page,
            coordinates=coordinates,
            page_snapshot=request.page_html,
            reference=request.reference,
            recording_id=request.recording_id,
            test_case_id=request.test_case_id,
            step_id=request.step_id
        )
    except ElementNotFound as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ExtractionTimeout as e:
        raise HTTPException(status_code=504, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to identify element: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to identify element: {str(e)}")

    return {
        "status": "success",
        "identification": identification.to_dict(),
        "suggested_selectors": suggest_alternative_selectors(identification)
    }


@router.get("/events/{channel}")
async def stream_events(channel: str, request: Request):
    """Stream events for ``recording:<id>`` or ``validation:<test_case_id>`` via Server-Sent Events."""
    sink = await get_event_sink()

    async def event_generator():
        queue = sink.subscribe(channel)
        try:
            for event in sink.get_events(channel):
                yield {"event": event["type"], "id": str(event["sequence"]), "data": json.dumps(event)}

            while True:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_INTERVAL)
                except asyncio.TimeoutError:
                    yield {
                        "event": "heartbeat",
                        "data": json.dumps({"timestamp": datetime.now().isoformat()})
                    }
                    continue
                yield {"event": event["type"], "id": str(event["sequence"]), "data": json.dumps(event)}
        finally:
            sink.unsubscribe(channel, queue)

    return EventSourceResponse(event_generator())


@router.get("/metrics")
async def get_healing_metrics():
    """Get healing and identification metrics."""
    return {
        "status": "success",
        "metrics": get_metrics_collector().get_healing_metrics().to_dict()
    }
