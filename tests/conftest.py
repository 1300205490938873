"""
Pytest configuration and shared fixtures for the test suite.
"""

import logging

import pytest
import pytest_asyncio

from src.selector_healing.core.metrics import get_metrics_collector
from src.selector_healing.core.models import FailureDetails, FailureType
from src.selector_healing.services.event_broadcaster import EventBroadcaster, InMemoryEventSink
from src.selector_healing.services.healing_orchestrator import HealingOrchestrator
from src.selector_healing.services.session_store import InMemoryHealingSessionStore, InMemoryIdentificationStore
from src.selector_healing.services.validation_runner import ValidationRunner

from tests.utils.healing_test_helpers import StubValidationBackend, make_config


@pytest.fixture(autouse=True)
def setup_test_logging():
    """Set up logging for tests."""
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with empty metrics."""
    get_metrics_collector().reset()
    yield
    get_metrics_collector().reset()


@pytest.fixture
def failure_details():
    """Failure of the login step."""
    return FailureDetails(
        failed_step_id="step-login",
        failure_type=FailureType.ELEMENT_NOT_FOUND,
        original_selector="#login-btn",
        error_message="Element #login-btn not found",
        page_url="https://example.com/login"
    )


@pytest.fixture
def event_sink():
    return InMemoryEventSink()


@pytest.fixture
def broadcaster(event_sink):
    return EventBroadcaster(event_sink)


@pytest.fixture
def validation_backend():
    return StubValidationBackend()


@pytest.fixture
def identification_store():
    return InMemoryIdentificationStore()


@pytest_asyncio.fixture
async def orchestrator_factory(broadcaster, validation_backend, identification_store):
    """Build orchestrators around stub strategies; stops them on teardown."""
    created = []

    def factory(strategies, config=None, backend=None, **kwargs):
        orchestrator = HealingOrchestrator(
            ValidationRunner(backend or validation_backend),
            session_store=InMemoryHealingSessionStore(),
            identification_store=kwargs.pop("identification_store", identification_store),
            broadcaster=kwargs.pop("broadcaster", broadcaster),
            strategies={strategy.name: strategy for strategy in strategies},
            config_provider=lambda: config or make_config(),
            **kwargs
        )
        created.append(orchestrator)
        return orchestrator

    yield factory

    for orchestrator in created:
        await orchestrator.stop()
