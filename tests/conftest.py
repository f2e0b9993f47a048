"""Pytest configuration for pipeline engine tests."""

import pytest

from ats_pipeline.core.config import Settings
from ats_pipeline.core.events import EventBus
from ats_pipeline.models.stage import Stage
from ats_pipeline.services.candidate_store import CandidateStore

from tests.factories import EventRecorder, FakeBackend, make_application

# Configure Hypothesis before test modules are collected
from tests.property_based.config import PropertyTestConfig
PropertyTestConfig.configure_hypothesis()


@pytest.fixture
def test_settings():
    """Settings with short timeouts for tests."""
    return Settings(request_timeout_seconds=0.2, bulk_max_concurrency=3)


@pytest.fixture
def pipeline_applications():
    """One job with an application in every stage plus an extra newcomer."""
    return [
        make_application("a1", Stage.NEW, days_ago=1, tags=["Remote"], experience=2),
        make_application("a2", Stage.REVIEWED, days_ago=3, tags=["Senior", "Technical"], experience=8),
        make_application("a3", Stage.INTERVIEW, days_ago=10, experience=5),
        make_application("a4", Stage.HIRED, days_ago=40, experience=12),
        make_application("a5", Stage.REJECTED, days_ago=100),
        make_application("a6", Stage.NEW, days_ago=1, tags=["Urgent"], experience=1),
        make_application("b1", Stage.NEW, job_id="job-2"),
    ]


@pytest.fixture
def backend(pipeline_applications):
    return FakeBackend(pipeline_applications)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def store(backend, event_bus):
    return CandidateStore(backend, event_bus)


@pytest.fixture
def recorder(event_bus):
    return EventRecorder(event_bus)


# Pytest markers for organizing tests
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "property_test: mark test as a property-based test"
    )
    config.addinivalue_line(
        "markers", "unit: mark test as unit test"
    )
