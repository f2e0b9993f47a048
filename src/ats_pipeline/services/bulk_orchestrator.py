"""Bulk actions over the selection with per-application success tracking."""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from pydantic import BaseModel
import structlog

from ats_pipeline.core.config import Settings, settings as default_settings
from ats_pipeline.core.error_handling import (
    NetworkError,
    NotFoundError,
    OperationInProgressError,
    PipelineError,
    describe_error,
    is_retryable,
)
from ats_pipeline.core.events import NoticeLevel
from ats_pipeline.core.logging import performance_logger
from ats_pipeline.models.stage import check_transition
from ats_pipeline.schemas.application import Application
from ats_pipeline.schemas.bulk import (
    BulkActionKind,
    BulkItemIssue,
    BulkOutcome,
    BulkSummary,
    DeletePayload,
    EmailPayload,
    StatusChangePayload,
    TagPayload,
)
from .candidate_store import CandidateStore
from .optimistic import CommitPatch, run_optimistic
from .transition_controller import status_commit_patch

logger = structlog.get_logger(__name__)

PAYLOAD_TYPES = {
    BulkActionKind.STATUS_CHANGE: StatusChangePayload,
    BulkActionKind.TAG: TagPayload,
    BulkActionKind.EMAIL: EmailPayload,
    BulkActionKind.DELETE: DeletePayload,
}

NOTICE_LEVELS = {
    BulkOutcome.SUCCESS: NoticeLevel.SUCCESS,
    BulkOutcome.PARTIAL_FAILURE: NoticeLevel.WARNING,
    BulkOutcome.FAILURE: NoticeLevel.ERROR,
    BulkOutcome.EMPTY: NoticeLevel.INFO,
}


@dataclass(frozen=True)
class _ItemPlan:
    patch: Dict[str, Any]
    call: Callable[[], Awaitable[Any]]
    commit_patch: Optional[CommitPatch] = None
    remove_on_success: bool = False


class BulkOperation:
    """Handle on a running bulk operation.
    
    Detaching only stops the caller from waiting; the dispatched requests
    still finish and their results are still applied to the store.
    """
    
    def __init__(self, action: BulkActionKind, application_ids: Tuple[str, ...], task: "asyncio.Task[BulkSummary]"):
        self.action = action
        self.application_ids = application_ids
        self.detached = False
        self._task = task
    
    def done(self) -> bool:
        return self._task.done()
    
    @property
    def summary(self) -> Optional[BulkSummary]:
        if not self._task.done() or self._task.cancelled() or self._task.exception() is not None:
            return None
        return self._task.result()
    
    async def wait(self) -> BulkSummary:
        # Cancelling the waiter must not cancel the batch
        return await asyncio.shield(self._task)
    
    def detach(self) -> None:
        self.detached = True
        logger.info(
            "Bulk operation detached from caller",
            action=self.action.value,
            application_count=len(self.application_ids)
        )
    
    def add_done_callback(self, callback: Callable[[BulkSummary], None]) -> None:
        def _deliver(task: asyncio.Task) -> None:
            if not task.cancelled() and task.exception() is None:
                callback(task.result())
        self._task.add_done_callback(_deliver)


class BulkOrchestrator:
    """Applies one action to a set of applications, item by item.
    
    Every application gets its own optimistic patch and its own backend
    request; a failure rolls back only that application. The result is
    always a complete ``BulkSummary``, whatever happened to the items.
    """
    
    def __init__(self, store: CandidateStore, config: Optional[Settings] = None):
        self.store = store
        self.config = config or default_settings
        self._running: Set[asyncio.Task] = set()
    
    @property
    def in_flight(self) -> int:
        return len(self._running)
    
    def start(
        self,
        action: Union[BulkActionKind, str],
        payload: Union[BaseModel, Dict[str, Any], None],
        selection: Iterable[str]
    ) -> BulkOperation:
        """
        Schedule ``run`` as a task and return a handle to it.
        
        Raises:
            pydantic.ValidationError: If the payload is invalid for the action;
                nothing is scheduled in that case
        """
        action = BulkActionKind(action)
        payload = self._coerce_payload(action, payload)
        ids = self._ordered_ids(selection)
        task = asyncio.get_running_loop().create_task(self.run(action, payload, ids))
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        task.add_done_callback(self._log_failure)
        return BulkOperation(action, ids, task)
    
    async def run(
        self,
        action: Union[BulkActionKind, str],
        payload: Union[BaseModel, Dict[str, Any], None],
        selection: Iterable[str]
    ) -> BulkSummary:
        """
        Apply ``action`` to every ID in ``selection``.
        
        Args:
            action: Bulk action kind
            payload: Action payload (model instance or dict)
            selection: Application IDs; copied at call time
            
        Returns:
            BulkSummary with succeeded, failed and skipped buckets whose sizes
            add up to the number of distinct IDs
            
        Raises:
            pydantic.ValidationError: If the payload is invalid for the action
        """
        action = BulkActionKind(action)
        payload = self._coerce_payload(action, payload)
        ids = self._ordered_ids(selection)
        summary = BulkSummary(action=action, started_at=datetime.now(timezone.utc))
        
        dispatch: List[Application] = []
        for application_id in ids:
            record = self.store.find(application_id)
            if record is None:
                summary.skipped.append(BulkItemIssue(id=application_id, reason="Application not found"))
                continue
            if record.is_pending:
                summary.skipped.append(self._issue(record, OperationInProgressError(application_id, record.pending_operation.kind)))
                continue
            if action is BulkActionKind.STATUS_CHANGE:
                legal, reason = check_transition(record.stage, payload.stage)
                if not legal:
                    summary.skipped.append(
                        BulkItemIssue(
                            id=application_id,
                            reason=reason,
                            candidate_name=record.display_name,
                            error_type="IllegalTransitionError"
                        )
                    )
                    continue
                if record.stage == payload.stage:
                    summary.succeeded.append(application_id)
                    continue
            dispatch.append(record)
        
        logger.info(
            "Bulk operation started",
            action=action.value,
            job_id=self.store.job_id,
            selected=len(ids),
            dispatched=len(dispatch),
            skipped=len(summary.skipped)
        )
        
        start_time = time.monotonic()
        semaphore = asyncio.Semaphore(self.config.bulk_max_concurrency)
        results = await asyncio.gather(
            *(self._run_item(record, action, payload, semaphore) for record in dispatch),
            return_exceptions=True
        )
        
        for record, result in zip(dispatch, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Bulk item raised unexpectedly",
                    application_id=record.id,
                    error=str(result),
                    exc_info=result
                )
                summary.failed.append(self._issue(record, result))
                continue
            
            error, skipped = result
            if error is None:
                summary.succeeded.append(record.id)
            elif skipped:
                summary.skipped.append(self._issue(record, error))
            else:
                summary.failed.append(self._issue(record, error))
        
        summary.finished_at = datetime.now(timezone.utc)
        performance_logger.log_processing_metrics(
            operation=f"bulk_{action.value}",
            items_processed=len(dispatch),
            duration_seconds=time.monotonic() - start_time,
            success_count=len(summary.succeeded),
            error_count=len(summary.failed)
        )
        
        self.store.events.notify(
            summary.headline(),
            level=NOTICE_LEVELS[summary.outcome],
            application_ids=tuple(ids),
            job_id=self.store.job_id,
            summary=summary.model_dump(mode="json")
        )
        return summary
    
    async def _run_item(
        self,
        record: Application,
        action: BulkActionKind,
        payload: BaseModel,
        semaphore: asyncio.Semaphore
    ) -> Tuple[Optional[PipelineError], bool]:
        """Returns (error, skipped) for one application."""
        plan = self._plan(record, action, payload)
        timeout = self.config.request_timeout_seconds
        
        async def throttled() -> Any:
            # Queueing time does not count against the request timeout
            async with semaphore:
                return await asyncio.wait_for(plan.call(), timeout=timeout)
        
        try:
            result = await run_optimistic(
                self.store,
                record.id,
                plan.patch,
                kind=f"bulk_{action.value}",
                request=throttled,
                timeout=None,
                commit_patch=plan.commit_patch,
                remove_on_success=plan.remove_on_success
            )
        except (NotFoundError, OperationInProgressError) as e:
            # Changed between pre-validation and dispatch
            return e, True
        return result.error, result.superseded
    
    def _plan(self, record: Application, action: BulkActionKind, payload: BaseModel) -> _ItemPlan:
        backend = self.store.backend
        application_id = record.id
        
        if action is BulkActionKind.STATUS_CHANGE:
            return _ItemPlan(
                patch={"stage": payload.stage},
                call=lambda: backend.update_application_status(application_id, payload.stage, payload.note),
                commit_patch=status_commit_patch(payload.stage, payload.note)
            )
        
        if action is BulkActionKind.TAG:
            merged = record.tags | frozenset(payload.tags)
            
            def tag_commit(snapshot: Application, server_record: Any) -> Dict[str, Any]:
                if isinstance(server_record, Application):
                    return {"tags": server_record.tags | merged}
                return {"tags": merged}
            
            return _ItemPlan(
                patch={"tags": merged},
                call=lambda: backend.tag_application(application_id, payload.tags),
                commit_patch=tag_commit
            )
        
        if action is BulkActionKind.EMAIL:
            return _ItemPlan(
                patch={},
                call=lambda: backend.send_email(application_id, payload.subject, payload.body)
            )
        
        return _ItemPlan(
            patch={},
            call=lambda: backend.delete_application(application_id),
            remove_on_success=True
        )
    
    def _log_failure(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is None:
            return
        error = task.exception()
        logger.error(
            "Bulk operation aborted",
            job_id=self.store.job_id,
            error=str(error),
            error_type=type(error).__name__,
            exc_info=error
        )
        self.store.events.notify(
            f"Bulk operation aborted: {describe_error(error)}",
            level=NoticeLevel.ERROR,
            job_id=self.store.job_id
        )
    
    @staticmethod
    def _coerce_payload(action: BulkActionKind, payload: Union[BaseModel, Dict[str, Any], None]) -> BaseModel:
        payload_type = PAYLOAD_TYPES[action]
        if isinstance(payload, payload_type):
            return payload
        if isinstance(payload, BaseModel):
            payload = payload.model_dump()
        return payload_type.model_validate(payload or {})
    
    @staticmethod
    def _ordered_ids(selection: Iterable[str]) -> Tuple[str, ...]:
        if isinstance(selection, (set, frozenset)):
            return tuple(sorted(selection))
        return tuple(dict.fromkeys(selection))
    
    @staticmethod
    def _issue(record: Application, error: BaseException) -> BulkItemIssue:
        if not isinstance(error, PipelineError):
            error = NetworkError(str(error) or type(error).__name__, application_id=record.id)
        return BulkItemIssue(
            id=record.id,
            reason=describe_error(error),
            candidate_name=record.display_name,
            error_type=type(error).__name__,
            retryable=is_retryable(error)
        )
