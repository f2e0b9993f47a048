"""Optimistic apply / confirm / commit-or-revert cycle for one application."""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog

from ats_pipeline.core.error_handling import NetworkError, PipelineError, StaleOperationError
from ats_pipeline.schemas.application import Application
from .candidate_store import CandidateStore

logger = structlog.get_logger(__name__)

CommitPatch = Callable[[Application, Any], Optional[Dict[str, Any]]]


@dataclass(frozen=True)
class OptimisticResult:
    """How one optimistic operation settled."""
    application_id: str
    snapshot: Application
    record: Optional[Application]
    error: Optional[PipelineError] = None
    superseded: bool = False
    
    @property
    def committed(self) -> bool:
        return self.error is None and not self.superseded


async def run_optimistic(
    store: CandidateStore,
    application_id: str,
    patch: Dict[str, Any],
    kind: str,
    request: Callable[[], Awaitable[Any]],
    timeout: Optional[float],
    commit_patch: Optional[CommitPatch] = None,
    remove_on_success: bool = False
) -> OptimisticResult:
    """
    Patch a record locally, confirm with the backend, then commit or revert.
    
    The record is pending from the local patch until this coroutine returns;
    every exit path (success, server error, timeout, unexpected error or
    cancellation) clears the pending marker exactly once.
    
    Args:
        store: Candidate store holding the record
        application_id: Record to mutate
        patch: Optimistic field values
        kind: Operation name for the pending marker and logs
        request: Zero-argument coroutine factory issuing the backend call
        timeout: Seconds before the call counts as a network failure; None when
            the request enforces its own bound
        commit_patch: Builds the commit values from (snapshot, server response)
        remove_on_success: Drop the record on success instead of committing
        
    Returns:
        OptimisticResult with the settled record or the error; ``superseded``
        is set when the store dropped the operation before it could commit
        
    Raises:
        NotFoundError: If the record is not in the store
        OperationInProgressError: If the record already has a pending operation
    """
    snapshot = store.apply_local_patch(application_id, patch, kind=kind)
    operation_id = store.pending_operation_id(application_id)
    
    try:
        response = await asyncio.wait_for(request(), timeout=timeout)
    except asyncio.CancelledError:
        store.revert(application_id, snapshot, operation_id)
        logger.warning("Operation cancelled before confirmation", application_id=application_id, operation=kind)
        raise
    except asyncio.TimeoutError as e:
        error: PipelineError = NetworkError(
            f"Request timed out after {timeout}s" if timeout else "Request timed out",
            application_id=application_id,
            original_error=e
        )
    except PipelineError as e:
        error = e
    except Exception as e:
        logger.error(
            "Unexpected backend failure",
            application_id=application_id,
            operation=kind,
            error=str(e),
            exc_info=True
        )
        error = NetworkError(str(e) or type(e).__name__, application_id=application_id, original_error=e)
    else:
        if remove_on_success:
            if store.commit_removal(application_id, operation_id):
                return OptimisticResult(application_id, snapshot, None)
            return _superseded(application_id, snapshot, kind)
        
        update = commit_patch(snapshot, response) if commit_patch else None
        record = store.commit(application_id, update, operation_id)
        if record is None:
            return _superseded(application_id, snapshot, kind)
        return OptimisticResult(application_id, snapshot, record)
    
    record = store.revert(application_id, snapshot, operation_id)
    logger.warning(
        "Operation rolled back",
        application_id=application_id,
        operation=kind,
        error=error.message,
        error_type=type(error).__name__
    )
    return OptimisticResult(application_id, snapshot, record, error)


def _superseded(application_id: str, snapshot: Application, kind: str) -> OptimisticResult:
    # The server accepted the change but the local record no longer carries this operation
    logger.warning(
        "Confirmed operation could not be applied locally",
        application_id=application_id,
        operation=kind
    )
    return OptimisticResult(
        application_id,
        snapshot,
        None,
        StaleOperationError(application_id, kind),
        superseded=True
    )
