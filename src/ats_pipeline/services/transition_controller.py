"""Single-application stage transitions with optimistic update and rollback."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import structlog

from ats_pipeline.core.config import Settings, settings as default_settings
from ats_pipeline.core.error_handling import (
    IllegalTransitionError,
    OperationInProgressError,
    PipelineError,
    describe_error,
)
from ats_pipeline.core.events import NoticeLevel
from ats_pipeline.models.stage import STAGE_LABELS, Stage, check_transition, next_stage
from ats_pipeline.schemas.application import Application, Note
from .candidate_store import CandidateStore
from .optimistic import run_optimistic

logger = structlog.get_logger(__name__)


class TransitionState(str, Enum):
    """Where a transition request ended up."""
    UNCHANGED = "unchanged"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    # Server accepted the change after the store had dropped the operation
    SUPERSEDED = "superseded"


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of one transition request."""
    application_id: str
    from_stage: Stage
    to_stage: Stage
    state: TransitionState
    application: Optional[Application]
    error: Optional[PipelineError] = None
    
    @property
    def succeeded(self) -> bool:
        return self.state in (TransitionState.UNCHANGED, TransitionState.COMMITTED)


def status_commit_patch(target: Stage, note: Optional[str] = None):
    """Build the commit values for a confirmed stage change."""
    
    def build(snapshot: Application, server_record: Any) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        confirmed_at = now
        if isinstance(server_record, Application) and server_record.stage == target:
            confirmed_at = max(server_record.last_transition_at, now)
        
        patch: Dict[str, Any] = {"stage": target, "last_transition_at": confirmed_at}
        if note and note.strip():
            patch["notes"] = snapshot.notes + (Note(text=note.strip(), authored_at=now),)
        return patch
    
    return build


class TransitionController:
    """Moves one application between stages.
    
    Button clicks and drag-and-drop drops both call ``request_transition``.
    """
    
    def __init__(self, store: CandidateStore, config: Optional[Settings] = None):
        self.store = store
        self.config = config or default_settings
    
    def validate(self, application_id: str, target_stage: Stage) -> Application:
        """
        Check a transition without touching any state.
        
        Returns:
            The current record
            
        Raises:
            NotFoundError: If the application is not loaded
            OperationInProgressError: If the application has a pending operation
            IllegalTransitionError: If the stage graph forbids the move
        """
        target = Stage(target_stage)
        record = self.store.get(application_id)
        
        if record.is_pending:
            raise OperationInProgressError(application_id, record.pending_operation.kind)
        
        legal, reason = check_transition(record.stage, target)
        if not legal:
            logger.info(
                "Illegal transition rejected",
                application_id=application_id,
                old_stage=record.stage.value,
                new_stage=target.value,
                reason=reason
            )
            raise IllegalTransitionError(record.stage, target, application_id=application_id)
        
        return record
    
    async def request_transition(
        self,
        application_id: str,
        target_stage: Stage,
        note: Optional[str] = None
    ) -> TransitionOutcome:
        """
        Move an application to ``target_stage``.
        
        The record shows the target stage immediately, then is committed when
        the backend confirms or put back in its original stage when the backend
        fails or times out. Server failures are reported in the outcome and as
        an error notice, never raised.
        
        Args:
            application_id: Application to move
            target_stage: Requested stage
            note: Optional note sent with the change and appended on commit
            
        Returns:
            TransitionOutcome describing how the request settled
            
        Raises:
            NotFoundError: If the application is not loaded
            OperationInProgressError: If the application has a pending operation
            IllegalTransitionError: If the stage graph forbids the move
        """
        target = Stage(target_stage)
        record = self.validate(application_id, target)
        
        if record.stage == target:
            return TransitionOutcome(application_id, target, target, TransitionState.UNCHANGED, record)
        
        result = await run_optimistic(
            self.store,
            application_id,
            {"stage": target},
            kind="transition",
            request=lambda: self.store.backend.update_application_status(application_id, target, note),
            timeout=self.config.request_timeout_seconds,
            commit_patch=status_commit_patch(target, note)
        )
        
        if result.committed:
            logger.info(
                "Application stage transition committed",
                application_id=application_id,
                job_id=record.job_id,
                old_stage=record.stage.value,
                new_stage=target.value
            )
            return TransitionOutcome(
                application_id, record.stage, target, TransitionState.COMMITTED, result.record
            )
        
        if result.superseded:
            self.store.events.notify(
                f"{record.display_name} was moved to {STAGE_LABELS[target]} on the server; refresh to see it",
                level=NoticeLevel.WARNING,
                application_ids=(application_id,),
                job_id=record.job_id
            )
            return TransitionOutcome(
                application_id, record.stage, target, TransitionState.SUPERSEDED, None, result.error
            )
        
        self.store.events.notify(
            f"Could not move {record.display_name} to {STAGE_LABELS[target]}: {describe_error(result.error)}",
            level=NoticeLevel.ERROR,
            application_ids=(application_id,),
            job_id=record.job_id,
            error=result.error.to_dict()
        )
        return TransitionOutcome(
            application_id, record.stage, target, TransitionState.ROLLED_BACK, result.record, result.error
        )
    
    async def advance(self, application_id: str, note: Optional[str] = None) -> TransitionOutcome:
        """Move an application one step along the chain."""
        record = self.store.get(application_id)
        if record.is_pending:
            raise OperationInProgressError(application_id, record.pending_operation.kind)
        target = next_stage(record.stage)
        if target is None:
            raise IllegalTransitionError(record.stage, "the next stage", application_id=application_id)
        return await self.request_transition(application_id, target, note)
    
    async def reject(self, application_id: str, note: Optional[str] = None) -> TransitionOutcome:
        return await self.request_transition(application_id, Stage.REJECTED, note)
    
    async def handle_drop(self, application_id: str, column: str) -> TransitionOutcome:
        """Drop handler for the Kanban board; ``column`` is the stage value of the target column."""
        return await self.request_transition(application_id, Stage(column))
