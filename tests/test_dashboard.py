"""Tests for the dashboard context wiring."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError

from ats_pipeline.core.error_handling import FetchError, NetworkError, ServerError
from ats_pipeline.core.events import EventKind, NoticeLevel
from ats_pipeline.models.stage import Stage
from ats_pipeline.schemas.bulk import BulkOutcome
from ats_pipeline.services.dashboard import DashboardContext
from ats_pipeline.services.transition_controller import TransitionState

from tests.factories import BASE_TIME


@pytest.fixture
def dashboard(backend, test_settings):
    return DashboardContext(backend, test_settings, clock=lambda: BASE_TIME)


class TestDashboardContext:
    """Test the end-to-end recruiter flows."""
    
    @pytest.mark.asyncio
    async def test_select_job_loads_view(self, dashboard):
        """Test that choosing a job fills the filtered view."""
        await dashboard.select_job("job-1")
        
        assert dashboard.job_id == "job-1"
        assert not dashboard.loading
        assert dashboard.view.visible_ids() == ["a1", "a6", "a2", "a3", "a4", "a5"]
    
    @pytest.mark.asyncio
    async def test_switching_job_clears_selection(self, dashboard):
        """Test that the selection never spans two jobs."""
        await dashboard.select_job("job-1")
        dashboard.selection.select_all(dashboard.view.visible_ids())
        
        await dashboard.select_job("job-2")
        
        assert len(dashboard.selection) == 0
        assert dashboard.view.visible_ids() == ["b1"]
    
    @pytest.mark.asyncio
    async def test_failed_load_reports_and_keeps_data(self, dashboard, backend):
        """Test that a failed refresh leaves the old list on screen."""
        await dashboard.select_job("job-1")
        notices = []
        dashboard.subscribe(lambda e: notices.append(e) if e.kind is EventKind.NOTICE else None)
        backend.fetch_error = ServerError("Service unavailable", status_code=503)
        
        with pytest.raises(FetchError):
            await dashboard.refresh()
        
        assert isinstance(dashboard.last_error, FetchError)
        assert not dashboard.loading
        assert len(dashboard.view.visible) == 6
        assert notices[-1].level is NoticeLevel.ERROR
        assert "Service unavailable" in notices[-1].message
        
        backend.fetch_error = None
        await dashboard.refresh()
        assert dashboard.last_error is None
    
    @pytest.mark.asyncio
    async def test_bulk_with_invalid_payload_keeps_selection(self, dashboard, backend):
        """Test that a rejected payload neither starts a batch nor drops the selection."""
        await dashboard.select_job("job-1")
        dashboard.selection.select_all(["a1", "a2"])
        
        with pytest.raises(ValidationError):
            dashboard.start_bulk("tag", {"tags": [" "]})
        
        assert dashboard.selection.snapshot() == frozenset({"a1", "a2"})
        assert dashboard.bulk.in_flight == 0
        assert backend.request_count("tag") == 0
    
    @pytest.mark.asyncio
    async def test_refresh_requires_job(self, dashboard):
        """Test refreshing before any job is chosen."""
        with pytest.raises(ValueError, match="No job selected"):
            await dashboard.refresh()
    
    @pytest.mark.asyncio
    async def test_move(self, dashboard):
        """Test a single drag-and-drop move through the context."""
        await dashboard.select_job("job-1")
        
        outcome = await dashboard.move("a3", "hired")
        
        assert outcome.state is TransitionState.COMMITTED
        assert [a.id for a in dashboard.view.columns()[Stage.HIRED]] == ["a3", "a4"]
    
    @pytest.mark.asyncio
    async def test_bulk_on_selection_clears_it(self, dashboard):
        """Test a bulk tag over the current selection."""
        await dashboard.select_job("job-1")
        dashboard.selection.select_all(["a1", "a2"])
        
        summary = await dashboard.run_bulk("tag", {"tags": ["Shortlist"]})
        
        assert summary.succeeded == ["a1", "a2"]
        assert len(dashboard.selection) == 0
        dashboard.view.update_criteria(tags=["Shortlist"])
        assert dashboard.view.visible_ids() == ["a1", "a2"]
    
    @pytest.mark.asyncio
    async def test_retry_failed(self, dashboard, backend):
        """Test resubmitting only the retryable failures."""
        await dashboard.select_job("job-1")
        backend.fail_ids["a1"] = NetworkError("connection reset")
        backend.fail_ids["a6"] = ServerError("Forbidden", status_code=403)
        
        summary = await dashboard.run_bulk("status-change", {"stage": "reviewed"}, ["a1", "a6"])
        assert summary.outcome is BulkOutcome.FAILURE
        assert summary.retryable_ids() == ["a1"]
        
        backend.fail_ids.clear()
        retried = await dashboard.retry_failed(summary, {"stage": "reviewed"})
        
        assert retried.succeeded == ["a1"]
        assert dashboard.store.get("a1").stage == Stage.REVIEWED
        assert dashboard.store.get("a6").stage == Stage.NEW
    
    @pytest.mark.asyncio
    async def test_close_releases_backend(self, backend, test_settings):
        """Test that closing the context closes the backend."""
        backend.close = AsyncMock()
        
        async with DashboardContext(backend, test_settings) as dashboard:
            await dashboard.select_job("job-1")
        
        backend.close.assert_awaited_once()
        assert dashboard.store.events.subscriber_count == 0


class TestDashboardLoadState:
    """Test loading and last_error when loads overlap."""
    
    @pytest.fixture
    def gates(self, backend):
        gates = {"job-1": asyncio.Event(), "job-2": asyncio.Event()}
        fetch = backend.fetch_applications
        
        async def gated_fetch(job_id):
            await gates[job_id].wait()
            return await fetch(job_id)
        
        backend.fetch_applications = gated_fetch
        return gates
    
    @pytest.mark.asyncio
    async def test_older_load_does_not_clear_loading(self, dashboard, gates):
        """Test that the dashboard stays loading until the latest load ends."""
        first = asyncio.ensure_future(dashboard.select_job("job-1"))
        second = asyncio.ensure_future(dashboard.select_job("job-2"))
        await asyncio.sleep(0)
        assert dashboard.loading
        
        gates["job-1"].set()
        await first
        assert dashboard.loading
        
        gates["job-2"].set()
        await second
        assert not dashboard.loading
        assert dashboard.job_id == "job-2"
    
    @pytest.mark.asyncio
    async def test_failed_older_load_is_not_reported(self, dashboard, backend, gates):
        """Test that a superseded load failing later leaves the current state alone."""
        notices = []
        dashboard.subscribe(lambda e: notices.append(e) if e.kind is EventKind.NOTICE else None)
        first = asyncio.ensure_future(dashboard.select_job("job-1"))
        second = asyncio.ensure_future(dashboard.select_job("job-2"))
        await asyncio.sleep(0)
        
        gates["job-2"].set()
        await second
        backend.fetch_error = ServerError("Service unavailable", status_code=503)
        gates["job-1"].set()
        with pytest.raises(FetchError):
            await first
        
        assert dashboard.last_error is None
        assert not dashboard.loading
        assert notices == []
        assert dashboard.view.visible_ids() == ["b1"]
