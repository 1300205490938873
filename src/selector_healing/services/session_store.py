"""
Session and identification stores.

One store instance is scoped to a tenant/project and passed into the
orchestrator. The session store's ``insert_if_absent`` is the single atomic
check-and-insert behind the one-active-session-per-step rule; the
identification store uses optimistic version checks so two healed sessions
cannot silently overwrite each other's update to the same record.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..core.exceptions import ConcurrentModificationError, DuplicateSession
from ..core.models import ElementIdentification, HealingSession

logger = logging.getLogger(__name__)

StepKey = Tuple[str, str]


class HealingSessionStore(ABC):
    """Storage for healing sessions with an active-session index per step."""

    @abstractmethod
    async def insert_if_absent(self, session: HealingSession) -> HealingSession:
        """Insert ``session`` unless an active session exists for its step.

        Raises:
            DuplicateSession: Carrying the existing active session
        """
        pass

    @abstractmethod
    async def replace_active(self, session: HealingSession) -> Optional[HealingSession]:
        """Insert ``session`` as the active one for its step; returns the one displaced."""
        pass

    @abstractmethod
    async def release(self, session: HealingSession) -> None:
        """Clear the active index entry if it still points at ``session``."""
        pass

    @abstractmethod
    async def get(self, session_id: str) -> Optional[HealingSession]:
        pass

    @abstractmethod
    async def get_active(self, test_case_id: str, step_id: str) -> Optional[HealingSession]:
        pass

    @abstractmethod
    async def list_sessions(self, test_case_id: Optional[str] = None) -> List[HealingSession]:
        pass


class InMemoryHealingSessionStore(HealingSessionStore):

    def __init__(self):
        self._sessions: Dict[str, HealingSession] = {}
        self._active: Dict[StepKey, str] = {}
        self._lock = asyncio.Lock()

    async def insert_if_absent(self, session: HealingSession) -> HealingSession:
        async with self._lock:
            existing_id = self._active.get(session.active_key)
            if existing_id is not None:
                existing = self._sessions[existing_id]
                if not existing.is_terminal:
                    raise DuplicateSession(existing)
            self._sessions[session.id] = session
            self._active[session.active_key] = session.id
            return session

    async def replace_active(self, session: HealingSession) -> Optional[HealingSession]:
        async with self._lock:
            previous_id = self._active.get(session.active_key)
            self._sessions[session.id] = session
            self._active[session.active_key] = session.id
            if previous_id is None:
                return None
            return self._sessions.get(previous_id)

    async def release(self, session: HealingSession) -> None:
        async with self._lock:
            if self._active.get(session.active_key) == session.id:
                del self._active[session.active_key]

    async def get(self, session_id: str) -> Optional[HealingSession]:
        async with self._lock:
            return self._sessions.get(session_id)

    async def get_active(self, test_case_id: str, step_id: str) -> Optional[HealingSession]:
        async with self._lock:
            session_id = self._active.get((test_case_id, step_id))
            return self._sessions.get(session_id) if session_id else None

    async def list_sessions(self, test_case_id: Optional[str] = None) -> List[HealingSession]:
        async with self._lock:
            sessions = list(self._sessions.values())
        if test_case_id is not None:
            sessions = [s for s in sessions if s.test_case_id == test_case_id]
        return sorted(sessions, key=lambda s: s.created_at)


@dataclass(frozen=True)
class VersionedIdentification:
    identification: ElementIdentification
    version: int


class IdentificationStore(ABC):
    """Current identification per (test case, step), versioned."""

    @abstractmethod
    async def get(self, test_case_id: str, step_id: str) -> Optional[VersionedIdentification]:
        pass

    @abstractmethod
    async def get_by_id(self, identification_id: str) -> Optional[ElementIdentification]:
        pass

    @abstractmethod
    async def put(self, test_case_id: str, step_id: str, identification: ElementIdentification,
                  expected_version: Optional[int] = None) -> int:
        """Store ``identification`` as current and return the new version.

        ``expected_version`` of None writes unconditionally; otherwise the
        current version (0 when absent) must match.

        Raises:
            ConcurrentModificationError: If the version check fails
        """
        pass


class InMemoryIdentificationStore(IdentificationStore):

    def __init__(self):
        self._current: Dict[StepKey, VersionedIdentification] = {}
        self._by_id: Dict[str, ElementIdentification] = {}
        self._lock = asyncio.Lock()

    async def get(self, test_case_id: str, step_id: str) -> Optional[VersionedIdentification]:
        async with self._lock:
            return self._current.get((test_case_id, step_id))

    async def get_by_id(self, identification_id: str) -> Optional[ElementIdentification]:
        async with self._lock:
            return self._by_id.get(identification_id)

    async def put(self, test_case_id: str, step_id: str, identification: ElementIdentification,
                  expected_version: Optional[int] = None) -> int:
        key = (test_case_id, step_id)
        async with self._lock:
            current = self._current.get(key)
            current_version = current.version if current else 0
            if expected_version is not None and expected_version != current_version:
                raise ConcurrentModificationError(key, expected_version, current_version)

            new_version = current_version + 1
            self._current[key] = VersionedIdentification(identification, new_version)
            self._by_id[identification.id] = identification
            logger.debug(f"Stored identification {identification.id} for {key} at version {new_version}")
            return new_version
