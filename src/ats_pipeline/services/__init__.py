"""Service layer for the application pipeline."""

from .backend_client import PipelineBackend, HttpPipelineBackend
from .candidate_store import CandidateStore
from .filter_engine import FilteredView, filter_applications, group_by_stage, stage_counts
from .transition_controller import TransitionController, TransitionOutcome, TransitionState
from .bulk_orchestrator import BulkOperation, BulkOrchestrator
from .selection_manager import SelectionManager
from .dashboard import DashboardContext

__all__ = [
    "PipelineBackend",
    "HttpPipelineBackend",
    "CandidateStore",
    "FilteredView",
    "filter_applications",
    "group_by_stage",
    "stage_counts",
    "TransitionController",
    "TransitionOutcome",
    "TransitionState",
    "BulkOperation",
    "BulkOrchestrator",
    "SelectionManager",
    "DashboardContext",
]
