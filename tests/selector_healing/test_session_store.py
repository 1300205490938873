"""Tests for the in-memory session and identification stores."""

import asyncio
from datetime import datetime, timedelta

import pytest

from src.selector_healing.core.exceptions import ConcurrentModificationError, DuplicateSession
from src.selector_healing.core.models import (
    FailureDetails,
    FailureType,
    HealingConfiguration,
    HealingSession,
    HealingStatus,
    TriggerType
)
from src.selector_healing.services.session_store import InMemoryHealingSessionStore, InMemoryIdentificationStore

from tests.utils.healing_test_helpers import HEALED_LOGIN_PAGE, identify_login_button


def make_session(session_id, test_case_id="tc-1", step_id="step-login", status=HealingStatus.PENDING,
                 created_at=None):
    session = HealingSession(
        id=session_id,
        test_case_id=test_case_id,
        trigger_type=TriggerType.FAILURE_DETECTION,
        failure_details=FailureDetails(
            failed_step_id=step_id,
            failure_type=FailureType.ELEMENT_NOT_FOUND,
            original_selector="#login-btn",
            error_message="not found"
        ),
        configuration=HealingConfiguration(),
        status=status
    )
    if created_at is not None:
        session.created_at = created_at
    return session


class TestInMemoryHealingSessionStore:
    """Test cases for the healing session store."""

    def setup_method(self):
        self.store = InMemoryHealingSessionStore()

    @pytest.mark.asyncio
    async def test_insert_and_get(self):
        session = make_session("s1")
        await self.store.insert_if_absent(session)

        assert await self.store.get("s1") is session
        assert await self.store.get_active("tc-1", "step-login") is session
        assert await self.store.get("missing") is None

    @pytest.mark.asyncio
    async def test_second_active_session_rejected(self):
        first = make_session("s1")
        await self.store.insert_if_absent(first)

        with pytest.raises(DuplicateSession) as exc_info:
            await self.store.insert_if_absent(make_session("s2"))

        assert exc_info.value.existing_session is first
        assert await self.store.get("s2") is None

    @pytest.mark.asyncio
    async def test_concurrent_inserts_admit_one(self):
        sessions = [make_session(f"s{i}") for i in range(10)]

        results = await asyncio.gather(
            *(self.store.insert_if_absent(s) for s in sessions), return_exceptions=True)

        admitted = [r for r in results if isinstance(r, HealingSession)]
        rejected = [r for r in results if isinstance(r, DuplicateSession)]
        assert len(admitted) == 1
        assert len(rejected) == 9

    @pytest.mark.asyncio
    async def test_terminal_session_does_not_block(self):
        done = make_session("s1", status=HealingStatus.COMPLETED)
        await self.store.insert_if_absent(done)

        fresh = make_session("s2")
        await self.store.insert_if_absent(fresh)

        assert await self.store.get_active("tc-1", "step-login") is fresh

    @pytest.mark.asyncio
    async def test_other_steps_are_independent(self):
        await self.store.insert_if_absent(make_session("s1"))
        await self.store.insert_if_absent(make_session("s2", step_id="step-other"))
        await self.store.insert_if_absent(make_session("s3", test_case_id="tc-2"))

        assert len(await self.store.list_sessions()) == 3

    @pytest.mark.asyncio
    async def test_replace_active_returns_displaced(self):
        first = make_session("s1")
        await self.store.insert_if_absent(first)

        displaced = await self.store.replace_active(make_session("s2"))

        assert displaced is first
        assert (await self.store.get_active("tc-1", "step-login")).id == "s2"
        assert await self.store.get("s1") is first

    @pytest.mark.asyncio
    async def test_release_only_own_entry(self):
        first = make_session("s1")
        await self.store.insert_if_absent(first)
        await self.store.replace_active(make_session("s2"))

        await self.store.release(first)
        assert (await self.store.get_active("tc-1", "step-login")).id == "s2"

        await self.store.release(await self.store.get("s2"))
        assert await self.store.get_active("tc-1", "step-login") is None

    @pytest.mark.asyncio
    async def test_list_sessions_filters_and_orders(self):
        now = datetime.now()
        await self.store.insert_if_absent(make_session("late", step_id="a", created_at=now))
        await self.store.insert_if_absent(make_session("early", step_id="b", created_at=now - timedelta(minutes=1)))
        await self.store.insert_if_absent(make_session("other", test_case_id="tc-2"))

        sessions = await self.store.list_sessions("tc-1")

        assert [s.id for s in sessions] == ["early", "late"]


class TestInMemoryIdentificationStore:
    """Test cases for the versioned identification store."""

    def setup_method(self):
        self.store = InMemoryIdentificationStore()

    @pytest.mark.asyncio
    async def test_versions_increase(self):
        first = await identify_login_button()
        second = await identify_login_button(HEALED_LOGIN_PAGE)

        assert await self.store.put("tc-1", "step-login", first) == 1
        assert await self.store.put("tc-1", "step-login", second) == 2

        current = await self.store.get("tc-1", "step-login")
        assert current.version == 2
        assert current.identification is second
        assert await self.store.get_by_id(first.id) is first

    @pytest.mark.asyncio
    async def test_expected_version_checked(self):
        identification = await identify_login_button()
        await self.store.put("tc-1", "step-login", identification, expected_version=0)

        with pytest.raises(ConcurrentModificationError) as exc_info:
            await self.store.put("tc-1", "step-login", identification, expected_version=0)

        assert exc_info.value.expected_version == 0
        assert exc_info.value.actual_version == 1
        assert (await self.store.get("tc-1", "step-login")).version == 1

    @pytest.mark.asyncio
    async def test_missing(self):
        assert await self.store.get("tc-1", "nope") is None
        assert await self.store.get_by_id("nope") is None
