"""Explicit service object wiring the pipeline components for one dashboard."""

from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, Union

from pydantic import BaseModel
import structlog

from ats_pipeline.core.config import Settings, settings as default_settings
from ats_pipeline.core.error_handling import FetchError
from ats_pipeline.core.events import EventBus, NoticeLevel, StoreEvent
from ats_pipeline.models.stage import Stage
from ats_pipeline.schemas.application import Application
from ats_pipeline.schemas.bulk import BulkActionKind, BulkSummary
from .backend_client import PipelineBackend
from .bulk_orchestrator import BulkOperation, BulkOrchestrator
from .candidate_store import CandidateStore
from .filter_engine import FilteredView
from .selection_manager import SelectionManager
from .transition_controller import TransitionController, TransitionOutcome

logger = structlog.get_logger(__name__)


class DashboardContext:
    """Candidate pipeline state for the recruiter dashboard.
    
    Created once per dashboard and handed to the views that need it. Owns the
    store, the filtered view, the selection and both controllers.
    """
    
    def __init__(
        self,
        backend: PipelineBackend,
        config: Optional[Settings] = None,
        events: Optional[EventBus] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.config = config or default_settings
        self.backend = backend
        self.events = events or EventBus()
        self.store = CandidateStore(backend, self.events)
        self.selection = SelectionManager(self.store)
        self.view = FilteredView(self.store, clock=clock) if clock else FilteredView(self.store)
        self.transitions = TransitionController(self.store, self.config)
        self.bulk = BulkOrchestrator(self.store, self.config)
        self.loading = False
        self.last_error: Optional[FetchError] = None
        self._load_sequence = 0
    
    async def __aenter__(self) -> "DashboardContext":
        return self
    
    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
    
    @property
    def job_id(self) -> Optional[str]:
        return self.store.job_id
    
    def subscribe(self, callback: Callable[[StoreEvent], None]) -> Callable[[], None]:
        return self.events.subscribe(callback)
    
    async def select_job(self, job_id: str) -> Tuple[Application, ...]:
        """Switch to another job: clear the selection and load its applications.
        
        Raises:
            FetchError: If loading fails; the previously loaded records stay visible
        """
        if job_id != self.store.job_id:
            self.selection.clear()
        return await self._load(job_id)
    
    async def refresh(self) -> Tuple[Application, ...]:
        """Reload the current job."""
        if self.store.job_id is None:
            raise ValueError("No job selected")
        return await self._load(self.store.job_id)
    
    async def _load(self, job_id: str) -> Tuple[Application, ...]:
        # Only the most recent load drives loading and last_error
        self._load_sequence += 1
        sequence = self._load_sequence
        self.loading = True
        try:
            records = await self.store.load(job_id)
        except FetchError as e:
            if sequence == self._load_sequence:
                self.last_error = e
                self.events.notify(e.message, level=NoticeLevel.ERROR, job_id=job_id)
            raise
        finally:
            if sequence == self._load_sequence:
                self.loading = False
        
        if sequence == self._load_sequence:
            self.last_error = None
        return records
    
    async def move(self, application_id: str, stage: Union[Stage, str], note: Optional[str] = None) -> TransitionOutcome:
        return await self.transitions.request_transition(application_id, Stage(stage), note)
    
    def start_bulk(
        self,
        action: Union[BulkActionKind, str],
        payload: Union[BaseModel, Dict[str, Any], None] = None,
        application_ids: Optional[Iterable[str]] = None
    ) -> BulkOperation:
        """Start a bulk action on the current selection (or the given IDs).
        
        The selection is cleared once the operation completes.
        """
        ids = self.selection.snapshot() if application_ids is None else application_ids
        operation = self.bulk.start(action, payload, ids)
        operation.add_done_callback(lambda summary: self.selection.clear())
        return operation
    
    async def run_bulk(
        self,
        action: Union[BulkActionKind, str],
        payload: Union[BaseModel, Dict[str, Any], None] = None,
        application_ids: Optional[Iterable[str]] = None
    ) -> BulkSummary:
        return await self.start_bulk(action, payload, application_ids).wait()
    
    async def retry_failed(
        self,
        summary: BulkSummary,
        payload: Union[BaseModel, Dict[str, Any], None] = None
    ) -> BulkSummary:
        """Rerun a bulk action on the failures that may succeed on retry."""
        return await self.run_bulk(summary.action, payload, summary.retryable_ids())
    
    async def close(self) -> None:
        self.selection.close()
        self.view.close()
        close = getattr(self.backend, "close", None)
        if close is not None:
            await close()
