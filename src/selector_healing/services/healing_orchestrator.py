"""
Healing Orchestrator Service for selector self-healing.

Runs the healing session state machine:

    pending -> analyzing -> healing -> validating -> completed | failed | requires_review

A session is created and moved to ``analyzing`` synchronously inside
``trigger_healing``; the rest of the workflow runs as a background task
bounded by the configured healing timeout. Every transition publishes a
progress event, and every terminal transition also publishes
``healing_completed``.
"""

import asyncio
import copy
import dataclasses
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

from ..core.config_loader import get_healing_config
from ..core.exceptions import (
    AttemptBudgetExhausted,
    ConcurrentModificationError,
    DuplicateSession,
    HealingDisabled,
    InvalidReviewState,
    NoEligibleStrategy,
    SessionCancelled,
    SessionNotFound,
    StrategyTimeout,
    ValidationFailed
)
from ..core.logging_config import HealingLoggerAdapter, get_healing_logger
from ..core.metrics import get_metrics_collector
from ..core.models import (
    FailureDetails,
    FinalResolution,
    HealingAttempt,
    HealingConfiguration,
    HealingSession,
    HealingStatus,
    HealingStrategyName,
    ResolutionType,
    ReviewDecision,
    SelectorUpdate,
    TriggerType
)
from .event_broadcaster import EventBroadcaster, InMemoryEventSink
from .healing_strategies import HealingStrategy, StrategyContext, StrategyOutcome, build_default_strategies
from .page_snapshot import PageHandle, PageProvider
from .persistence import PersistenceSink
from .session_store import (
    HealingSessionStore,
    IdentificationStore,
    InMemoryHealingSessionStore,
    InMemoryIdentificationStore
)
from .validation_runner import ValidationRunner

logger = logging.getLogger(__name__)

STAGE_PROGRESS = {
    HealingStatus.PENDING: 0.0,
    HealingStatus.ANALYZING: 10.0,
    HealingStatus.HEALING: 30.0,
    HealingStatus.VALIDATING: 70.0
}
TERMINAL_PROGRESS = 100.0

COMPLETION_RESULTS = {
    HealingStatus.COMPLETED: "success",
    HealingStatus.REQUIRES_REVIEW: "manual_review_required",
    HealingStatus.FAILED: "failure"
}
NEXT_ACTIONS = {
    HealingStatus.COMPLETED: ["apply_changes"],
    HealingStatus.REQUIRES_REVIEW: ["schedule_review"],
    HealingStatus.FAILED: ["retry_healing"]
}


class HealingOrchestrator:
    """Coordinates healing sessions for one tenant/project."""

    def __init__(
        self,
        validation_runner: ValidationRunner,
        session_store: Optional[HealingSessionStore] = None,
        identification_store: Optional[IdentificationStore] = None,
        broadcaster: Optional[EventBroadcaster] = None,
        strategies: Optional[Dict[HealingStrategyName, HealingStrategy]] = None,
        page_provider: Optional[PageProvider] = None,
        persistence: Optional[PersistenceSink] = None,
        config_provider: Callable[[], HealingConfiguration] = get_healing_config
    ):
        """Initialize the healing orchestrator.

        Args:
            validation_runner: Runs RunValidation for the best candidate
            session_store: Tenant-scoped session store
            identification_store: Tenant-scoped identification store
            broadcaster: Event broadcaster for progress events
            strategies: Strategy implementations by name
            page_provider: Supplies the current page for a failed step
            persistence: Optional persistence sink
            config_provider: Returns the current healing policy
        """
        self.validation_runner = validation_runner
        self.session_store = session_store or InMemoryHealingSessionStore()
        self.identification_store = identification_store or InMemoryIdentificationStore()
        self.broadcaster = broadcaster or EventBroadcaster(InMemoryEventSink())
        self.strategies = strategies if strategies is not None else build_default_strategies()
        self.page_provider = page_provider
        self.persistence = persistence
        self.config_provider = config_provider

        self.metrics_collector = get_metrics_collector()
        self._workflows: Dict[str, asyncio.Task] = {}
        self._background_tasks: Set[asyncio.Task] = set()
        self._review_lock = asyncio.Lock()

        logger.info(f"Healing orchestrator initialized with {len(self.strategies)} strategies")

    async def start(self):
        logger.info("Healing orchestrator started")

    async def stop(self):
        """Cancel running workflows and wait for them to settle."""
        tasks = list(self._workflows.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
        logger.info("Healing orchestrator stopped")

    # ------------------------------------------------------------------
    # Inbound operations
    # ------------------------------------------------------------------

    async def trigger_healing(
        self,
        test_case_id: str,
        failure_details: FailureDetails,
        trigger_type: TriggerType = TriggerType.FAILURE_DETECTION,
        execution_id: Optional[str] = None,
        force_healing: bool = False,
        configuration: Optional[HealingConfiguration] = None
    ) -> HealingSession:
        """Start healing a failed step, or return the session already healing it.

        Args:
            test_case_id: Test case the failed step belongs to
            failure_details: What failed and how
            trigger_type: What started this request
            execution_id: Test execution that failed
            force_healing: Replace an active session for the same step and
                bypass the automatic-healing switch
            configuration: Policy override; defaults to the loaded policy

        Returns:
            The new session, already in ``analyzing``, or the existing
            active session for the same (test case, step)

        Raises:
            HealingDisabled: If healing (or automatic healing) is switched off
        """
        config = copy.deepcopy(configuration or self.config_provider())
        if not config.enabled:
            raise HealingDisabled("Self-healing is disabled in configuration")
        if (trigger_type == TriggerType.FAILURE_DETECTION
                and not config.auto_healing_enabled and not force_healing):
            raise HealingDisabled("Automatic healing is disabled; use a manual trigger or force healing")

        session = HealingSession(
            id=str(uuid.uuid4()),
            test_case_id=test_case_id,
            trigger_type=trigger_type,
            failure_details=failure_details,
            configuration=config,
            execution_id=execution_id
        )

        if force_healing:
            previous = await self.session_store.replace_active(session)
            if previous is not None and not previous.is_terminal:
                previous.cancel_requested = True
                logger.info(f"Force healing: session {previous.id} superseded by {session.id}")
        else:
            try:
                await self.session_store.insert_if_absent(session)
            except DuplicateSession as e:
                logger.info(f"Replayed trigger for test {test_case_id} step "
                            f"{failure_details.failed_step_id}; returning session {e.existing_session.id}")
                return e.existing_session

        healing_logger = self._session_logger(session)
        healing_logger.log_operation_start(
            "healing_session",
            trigger_type=trigger_type.value,
            failed_step_id=failure_details.failed_step_id,
            original_selector=failure_details.original_selector,
            failure_type=failure_details.failure_type.value)
        self.metrics_collector.record_healing_session_start(
            session.id, test_case_id, failure_details.failure_type)

        session.started_at = datetime.now()
        await self._transition(session, HealingStatus.ANALYZING)
        self._schedule_persist_session(session)

        task = asyncio.create_task(self._run_session(session))
        self._workflows[session.id] = task
        task.add_done_callback(lambda _: self._workflows.pop(session.id, None))

        return session

    async def get_session(self, session_id: str) -> Optional[HealingSession]:
        return await self.session_store.get(session_id)

    async def list_sessions(self, test_case_id: Optional[str] = None,
                            active_only: bool = False) -> List[HealingSession]:
        sessions = await self.session_store.list_sessions(test_case_id)
        if active_only:
            sessions = [s for s in sessions if not s.is_terminal]
        return sessions

    async def cancel_session(self, session_id: str) -> bool:
        """Request cancellation; observed at the next attempt boundary.

        Returns:
            True if the request was recorded, False if the session is already terminal

        Raises:
            SessionNotFound: If the session id is unknown
        """
        session = await self.session_store.get(session_id)
        if session is None:
            raise SessionNotFound(f"Healing session {session_id} not found")
        if session.is_terminal:
            return False
        session.cancel_requested = True
        logger.info(f"Cancellation requested for healing session {session_id}")
        return True

    async def wait_for_completion(self, session_id: str, timeout: Optional[float] = None) -> HealingSession:
        """Wait until the session's workflow has finished running."""
        task = self._workflows.get(session_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        session = await self.session_store.get(session_id)
        if session is None:
            raise SessionNotFound(f"Healing session {session_id} not found")
        return session

    async def review_healing(
        self,
        session_id: str,
        decision: ReviewDecision,
        modifications: Optional[Dict[str, Any]] = None,
        reviewer: Optional[str] = None,
        notes: Optional[str] = None
    ) -> HealingSession:
        """Resolve a session awaiting review.

        Args:
            session_id: Session in ``requires_review``
            decision: approve, reject or modify
            modifications: For ``modify``: ``new_selector`` and optional
                ``backup_selectors``
            reviewer: Who made the decision
            notes: Free-text reviewer notes

        Raises:
            SessionNotFound: If the session id is unknown
            InvalidReviewState: If the session is not awaiting review
            ValueError: If ``modify`` comes without a new selector
            ConcurrentModificationError: If the step's identification changed
                since the session started; the session stays in review and
                a repeated decision applies against the record now stored
        """
        session = await self.session_store.get(session_id)
        if session is None:
            raise SessionNotFound(f"Healing session {session_id} not found")

        async with self._review_lock:
            if session.status != HealingStatus.REQUIRES_REVIEW:
                raise InvalidReviewState(
                    f"Session {session_id} is {session.status.value}, not awaiting review")

            proposed = session.final_resolution.updated_selectors if session.final_resolution else []
            validation_results = session.final_resolution.validation_results if session.final_resolution else []

            if decision == ReviewDecision.REJECT:
                self._record_review(session, reviewer, notes)
                reasoning = "rejected by reviewer" + (f": {notes}" if notes else "")
                await self._finalize(session, HealingStatus.FAILED, FinalResolution(
                    reasoning=reasoning,
                    confidence_score=session.final_resolution.confidence_score if session.final_resolution else 0.0,
                    validation_results=validation_results
                ), review_decision=decision)
                return session

            if decision == ReviewDecision.MODIFY:
                if not modifications or not modifications.get("new_selector"):
                    raise ValueError("A modify decision requires modifications.new_selector")
                updates = [self._apply_modifications(update, modifications) for update in proposed[:1]]
            else:
                updates = list(proposed)

            if updates:
                try:
                    await self._write_identification(session, updates[0])
                except ConcurrentModificationError as e:
                    session.metadata["reference_version"] = e.actual_version
                    raise

            self._record_review(session, reviewer, notes)
            verb = "modified" if decision == ReviewDecision.MODIFY else "approved"
            await self._finalize(session, HealingStatus.COMPLETED, FinalResolution(
                reasoning=f"{verb} by reviewer" + (f": {notes}" if notes else ""),
                resolution_type=ResolutionType.MANUALLY_APPROVED,
                updated_selectors=updates,
                confidence_score=updates[0].confidence_score if updates else 0.0,
                validation_results=validation_results
            ),
                result="partial_success" if decision == ReviewDecision.MODIFY else None,
                review_decision=decision)
            return session

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    async def _run_session(self, session: HealingSession):
        """Run the workflow under the healing timeout; always ends terminal."""
        limit = session.configuration.performance_limits.healing_timeout_seconds
        healing_logger = self._session_logger(session)
        try:
            await asyncio.wait_for(self._execute_healing_workflow(session), timeout=limit)
        except asyncio.TimeoutError:
            healing_logger.log_operation_failure(
                "healing_session", limit, "healing timed out", "HEALING_TIMEOUT")
            if not session.is_terminal:
                await self._fail(session, f"healing timed out after {limit}s")
        except asyncio.CancelledError:
            if not session.is_terminal:
                await self._fail(session, "cancelled: orchestrator shutdown")
            raise
        except Exception as e:
            logger.error(f"Healing workflow failed for session {session.id}: {e}", exc_info=True)
            if not session.is_terminal:
                await self._fail(session, f"healing error: {e}")

    async def _execute_healing_workflow(self, session: HealingSession):
        try:
            await self._analyze_and_heal(session)
        except SessionCancelled:
            await self._fail(session, "cancelled")
        except (NoEligibleStrategy, AttemptBudgetExhausted) as e:
            await self._fail(session, str(e))
        except ValidationFailed as e:
            reasoning = f"{e}: {e.detail}" if e.detail else str(e)
            await self._fail(session, reasoning)

    async def _analyze_and_heal(self, session: HealingSession):
        config = session.configuration
        thresholds = config.confidence_thresholds

        # analyzing
        reference = await self._load_reference(session)
        self._check_cancelled(session)
        strategies = self._eligible_strategies(session)
        if not strategies:
            raise NoEligibleStrategy(
                f"no eligible strategy for failure type {session.failure_details.failure_type.value}")
        if config.total_max_attempts <= 0:
            raise AttemptBudgetExhausted("attempt budget is zero")
        page = await self._get_page(session)

        # healing
        await self._transition(session, HealingStatus.HEALING, current_strategy=strategies[0].value)
        await self._run_strategies(session, strategies, reference, page)
        self._check_cancelled(session)

        best = session.best_attempt
        if best is None or best.confidence_score < thresholds.min_viable:
            best_confidence = best.confidence_score if best else 0.0
            raise AttemptBudgetExhausted(
                f"no candidate reached minimum viable confidence {thresholds.min_viable} "
                f"after {len(session.healing_attempts)} attempts (best {best_confidence:.2f})")

        # validating
        await self._transition(session, HealingStatus.VALIDATING, intermediate_results={
            "attempts": len(session.healing_attempts),
            "best_strategy": best.strategy_used.value,
            "best_confidence": best.confidence_score,
            "candidate_selector": best.best_change.new_selector
        })
        result = await self.validation_runner.validate(
            best.best_change,
            session.failure_details,
            session.test_case_id,
            config.validation_settings,
            timeout=config.performance_limits.validation_timeout_seconds
        )
        self._check_cancelled(session)
        best.validation_result = result
        if not result.success:
            raise ValidationFailed("validation failed", detail=result.error_message)

        confidence = best.confidence_score
        update = best.best_change
        if confidence >= thresholds.auto_apply:
            try:
                await self._write_identification(session, update)
            except ConcurrentModificationError as e:
                session.metadata["reference_version"] = e.actual_version
                session.metadata["identification_conflict"] = True
                await self._finalize(session, HealingStatus.REQUIRES_REVIEW, FinalResolution(
                    reasoning=(f"{best.reasoning}; identification changed while healing "
                               f"(expected version {e.expected_version}, found {e.actual_version})"),
                    resolution_type=ResolutionType.MANUAL_REVIEW_REQUIRED,
                    updated_selectors=[update],
                    confidence_score=confidence,
                    validation_results=[result]
                ))
                return
            await self._finalize(session, HealingStatus.COMPLETED, FinalResolution(
                reasoning=best.reasoning,
                resolution_type=ResolutionType.AUTO_HEALED,
                updated_selectors=[update],
                confidence_score=confidence,
                validation_results=[result]
            ))
        elif confidence >= thresholds.suggest_review:
            await self._finalize(session, HealingStatus.REQUIRES_REVIEW, FinalResolution(
                reasoning=(f"{best.reasoning}; confidence {confidence:.2f} is below auto-apply "
                           f"threshold {thresholds.auto_apply}"),
                resolution_type=ResolutionType.MANUAL_REVIEW_REQUIRED,
                updated_selectors=[update],
                confidence_score=confidence,
                validation_results=[result]
            ))
        else:
            await self._fail(session, (
                f"validated candidate confidence {confidence:.2f} is below review threshold "
                f"{thresholds.suggest_review}"), validation_results=[result])

    async def _run_strategies(self, session: HealingSession, strategies: List[HealingStrategyName],
                              reference, page: Optional[PageHandle]):
        """Run attempts in priority order until the budget or a good candidate is reached."""
        config = session.configuration
        attempt_threshold = config.confidence_thresholds.attempt_healing

        for name in strategies:
            strategy = self.strategies.get(name)
            if strategy is None:
                logger.warning(f"Strategy {name.value} is enabled but not registered; skipping")
                continue

            proposed = {session.failure_details.original_selector}
            for _ in range(config.max_attempts_per_strategy):
                if len(session.healing_attempts) >= config.total_max_attempts:
                    return
                self._check_cancelled(session)

                context = StrategyContext(
                    session_id=session.id,
                    failure_details=session.failure_details,
                    page=page,
                    reference=reference,
                    attempt_number=len(session.healing_attempts) + 1,
                    excluded_selectors=frozenset(proposed)
                )
                attempt = await self._run_attempt(session, strategy, context)
                self._check_cancelled(session)

                session.healing_attempts.append(attempt)
                proposed.update(change.new_selector for change in attempt.proposed_changes)

                if attempt.proposed_changes and attempt.confidence_score >= attempt_threshold:
                    return

    async def _run_attempt(self, session: HealingSession, strategy: HealingStrategy,
                           context: StrategyContext) -> HealingAttempt:
        config = session.configuration
        start_time = time.time()
        timed_out = False
        try:
            outcome = await self._invoke_strategy(
                strategy, context, config.performance_limits.strategy_timeout_seconds)
        except StrategyTimeout:
            timed_out = True
            outcome = StrategyOutcome.empty("timeout")
        except Exception as e:
            logger.warning(f"Strategy {strategy.name.value} failed in session {session.id}: {e}")
            outcome = StrategyOutcome.empty(f"strategy error: {e}")

        duration = time.time() - start_time
        confidence = max(0.0, min(outcome.confidence, 1.0))
        attempt = HealingAttempt(
            attempt_number=context.attempt_number,
            strategy_used=strategy.name,
            proposed_changes=list(outcome.updates),
            confidence_score=confidence,
            reasoning=outcome.reasoning,
            execution_time_ms=duration * 1000
        )

        self.metrics_collector.record_healing_attempt(
            strategy.name, confidence, duration,
            reached_threshold=confidence >= config.confidence_thresholds.attempt_healing,
            timed_out=timed_out)
        self._session_logger(session).log_progress(
            "healing_attempt", STAGE_PROGRESS[HealingStatus.HEALING],
            f"attempt {attempt.attempt_number} with {strategy.name.value}: {confidence:.2f}",
            reasoning=outcome.reasoning)
        return attempt

    async def _invoke_strategy(self, strategy: HealingStrategy, context: StrategyContext,
                               timeout: float) -> StrategyOutcome:
        try:
            return await asyncio.wait_for(strategy.attempt(context), timeout=timeout)
        except asyncio.TimeoutError:
            raise StrategyTimeout(f"{strategy.name.value} exceeded {timeout}s")

    def _eligible_strategies(self, session: HealingSession) -> List[HealingStrategyName]:
        """Enabled strategies by priority (lower runs first); fallback search last."""
        config = session.configuration
        if session.failure_details.failure_type in config.excluded_failure_types:
            return []

        declared = list(HealingStrategyName)
        priorities = config.healing_strategies.strategy_priorities
        enabled = [
            name for name in dict.fromkeys(config.healing_strategies.enabled_strategies)
            if name != HealingStrategyName.FALLBACK_SEARCH
        ]
        enabled.sort(key=lambda name: (priorities.get(name, float('inf')), declared.index(name)))
        return enabled + [HealingStrategyName.FALLBACK_SEARCH]

    async def _load_reference(self, session: HealingSession):
        versioned = await self.identification_store.get(
            session.test_case_id, session.failure_details.failed_step_id)
        if versioned is None:
            session.metadata["reference_version"] = 0
            logger.info(f"No stored identification for step {session.failure_details.failed_step_id}")
            return None
        session.reference_identification_id = versioned.identification.id
        session.metadata["reference_version"] = versioned.version
        return versioned.identification

    async def _get_page(self, session: HealingSession) -> Optional[PageHandle]:
        if self.page_provider is None:
            return None
        try:
            return await self.page_provider.get_page(session.test_case_id, session.failure_details.page_url)
        except Exception as e:
            logger.warning(f"Could not obtain page for session {session.id}: {e}")
            return None

    async def _write_identification(self, session: HealingSession, update: SelectorUpdate):
        """Supersede the step's identification with the healed selector set.

        Raises:
            ConcurrentModificationError: If the record changed since analysis
        """
        step_id = session.failure_details.failed_step_id
        versioned = await self.identification_store.get(session.test_case_id, step_id)
        if versioned is None:
            logger.info(f"No identification to supersede for step {step_id}; skipping write")
            return

        expected_version = session.metadata.get("reference_version", 0)
        successor = versioned.identification.supersede(
            new_id=str(uuid.uuid4()),
            primary_selector=update.new_selector,
            alternative_selectors=update.backup_selectors,
            confidence_scores=[update.confidence_score] * (1 + len(update.backup_selectors))
        )
        version = await self.identification_store.put(
            session.test_case_id, step_id, successor, expected_version=expected_version)
        session.metadata["reference_version"] = version
        self._schedule_persist_identification(successor)

    def _apply_modifications(self, update: SelectorUpdate, modifications: Dict[str, Any]) -> SelectorUpdate:
        return dataclasses.replace(
            update,
            new_selector=modifications["new_selector"],
            backup_selectors=list(modifications.get("backup_selectors", update.backup_selectors)),
            change_reasoning=f"modified by reviewer from {update.new_selector}"
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _check_cancelled(self, session: HealingSession):
        if session.cancel_requested:
            raise SessionCancelled(f"session {session.id} cancelled")

    async def _transition(self, session: HealingSession, status: HealingStatus,
                          current_strategy: Optional[str] = None,
                          intermediate_results: Optional[Dict[str, Any]] = None):
        session.status = status
        session.current_stage = status.value
        session.progress = STAGE_PROGRESS[status]
        self._session_logger(session).log_progress("healing_session", session.progress, status.value)
        await self.broadcaster.healing_progress(
            session, status.value, session.progress,
            current_strategy=current_strategy,
            intermediate_results=intermediate_results)

    async def _fail(self, session: HealingSession, reasoning: str,
                    validation_results: Optional[list] = None):
        if not validation_results:
            validation_results = [a.validation_result for a in session.healing_attempts if a.validation_result]
        best = session.best_attempt
        await self._finalize(session, HealingStatus.FAILED, FinalResolution(
            reasoning=reasoning,
            confidence_score=best.confidence_score if best else 0.0,
            validation_results=list(validation_results)
        ))

    async def _finalize(self, session: HealingSession, status: HealingStatus,
                        resolution: FinalResolution, result: Optional[str] = None,
                        review_decision: Optional[ReviewDecision] = None):
        """Enter a terminal state and publish the outcome.

        A session resolved by review was already counted when it entered
        ``requires_review``; only the decision is recorded for it.
        """
        session.status = status
        session.final_resolution = resolution
        session.completed_at = datetime.now()
        session.progress = TERMINAL_PROGRESS
        session.current_stage = status.value
        self._update_metadata(session)

        await self.session_store.release(session)
        if review_decision is None:
            self.metrics_collector.record_healing_session_complete(session.id, status)
        else:
            self.metrics_collector.record_review_decision(review_decision.value, status)

        healing_logger = self._session_logger(session)
        duration = session.duration or 0.0
        if status == HealingStatus.FAILED:
            healing_logger.log_operation_failure(
                "healing_session", duration, resolution.reasoning, "HEALING_FAILED")
        else:
            healing_logger.log_operation_success(
                "healing_session", duration, status=status.value,
                confidence=resolution.confidence_score)

        await self.broadcaster.healing_progress(session, status.value, TERMINAL_PROGRESS)
        await self.broadcaster.healing_completed(
            session, result or COMPLETION_RESULTS[status], NEXT_ACTIONS[status])
        if status != HealingStatus.REQUIRES_REVIEW:
            self.broadcaster.forget(session.id)
        self._schedule_persist_session(session)

    def _update_metadata(self, session: HealingSession):
        thresholds = session.configuration.confidence_thresholds
        strategy_confidences: Dict[str, float] = {}
        for attempt in session.healing_attempts:
            name = attempt.strategy_used.value
            strategy_confidences[name] = max(strategy_confidences.get(name, 0.0), attempt.confidence_score)

        used = list(dict.fromkeys(a.strategy_used.value for a in session.healing_attempts))
        session.metadata.update({
            "healing_duration_ms": (session.duration or 0.0) * 1000,
            "strategy_confidences": strategy_confidences,
            "fallback_strategies_used": used[1:]
        })

        if session.status == HealingStatus.REQUIRES_REVIEW:
            session.metadata["review_priority"] = self._review_priority(session, thresholds)

    def _review_priority(self, session: HealingSession, thresholds) -> str:
        """high after a conflicting identification write, medium in the lower half of the review band."""
        if session.metadata.get("identification_conflict"):
            return "high"
        confidence = session.final_resolution.confidence_score if session.final_resolution else 0.0
        midpoint = (thresholds.suggest_review + thresholds.auto_apply) / 2
        return "low" if confidence >= midpoint else "medium"

    def _record_review(self, session: HealingSession, reviewer: Optional[str], notes: Optional[str]):
        session.reviewed_by = reviewer
        session.reviewed_at = datetime.now()
        session.review_notes = notes

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _schedule_persist_session(self, session: HealingSession):
        if self.persistence is not None:
            self._spawn(self._persist(self.persistence.persist_healing_session, session, f"session {session.id}"))

    def _schedule_persist_identification(self, identification):
        if self.persistence is not None:
            self._spawn(self._persist(self.persistence.persist_identification, identification,
                                      f"identification {identification.id}"))

    async def _persist(self, write, record, label: str):
        try:
            await write(record)
        except Exception as e:
            logger.error(f"Failed to persist {label}: {e}")

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    def _session_logger(self, session: HealingSession) -> HealingLoggerAdapter:
        return get_healing_logger("orchestrator", session.id, session.test_case_id)
