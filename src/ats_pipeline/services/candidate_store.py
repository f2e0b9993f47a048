"""In-memory store of the applications for the selected job."""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple
from uuid import uuid4

import structlog

from ats_pipeline.core.error_handling import (
    FetchError,
    NotFoundError,
    OperationInProgressError,
    PipelineError,
)
from ats_pipeline.core.events import EventBus, EventKind, StoreEvent
from ats_pipeline.core.logging import performance_logger
from ats_pipeline.models.stage import Stage
from ats_pipeline.schemas.application import Application, PendingOperation, normalize_tags
from .backend_client import PipelineBackend

logger = structlog.get_logger(__name__)

# Fields a local patch or a commit may change; the rest is immutable here
PATCHABLE_FIELDS = frozenset({"stage", "tags", "notes", "last_transition_at"})


class CandidateStore:
    """Authoritative local copy of one job's applications.
    
    Entries are addressed by application ID. Every mutation replaces the
    entry with an updated immutable copy, bumps ``generation`` and notifies
    subscribers before returning.
    """
    
    def __init__(self, backend: PipelineBackend, events: Optional[EventBus] = None):
        self.backend = backend
        self.events = events or EventBus()
        self.job_id: Optional[str] = None
        self.generation = 0
        self._records: Dict[str, Application] = {}
        self._load_sequence = 0
    
    # ------------------------------------------------------------------ reads
    
    def __len__(self) -> int:
        return len(self._records)
    
    def __contains__(self, application_id: object) -> bool:
        return application_id in self._records
    
    def get(self, application_id: str) -> Application:
        """Return the current record or raise ``NotFoundError``."""
        try:
            return self._records[application_id]
        except KeyError:
            raise NotFoundError(application_id) from None
    
    def find(self, application_id: str) -> Optional[Application]:
        return self._records.get(application_id)
    
    def snapshot(self) -> Tuple[Application, ...]:
        """All records in load order."""
        return tuple(self._records.values())
    
    def ids(self) -> FrozenSet[str]:
        return frozenset(self._records)
    
    def applications_by_id(self, application_ids) -> List[Application]:
        """Records for the given IDs that are still present, in the given order."""
        return [self._records[i] for i in application_ids if i in self._records]
    
    def pending_ids(self) -> FrozenSet[str]:
        return frozenset(i for i, record in self._records.items() if record.is_pending)
    
    def subscribe(self, callback: Callable[[StoreEvent], None]) -> Callable[[], None]:
        return self.events.subscribe(callback)
    
    # ---------------------------------------------------------------- loading
    
    async def load(self, job_id: str) -> Tuple[Application, ...]:
        """
        Replace the store contents with the applications of ``job_id``.
        
        Reloading the current job keeps every pending record as it is, so the
        commit or revert of its operation still applies.
        
        Args:
            job_id: Job whose applications to load
            
        Returns:
            The loaded records
            
        Raises:
            FetchError: If the backend call fails; the previous contents stay
        """
        self._load_sequence += 1
        sequence = self._load_sequence
        
        try:
            with performance_logger.log_operation_time("load_applications", job_id=job_id):
                applications = await self.backend.fetch_applications(job_id)
        except Exception as e:
            if isinstance(e, PipelineError):
                reason = e.message
            else:
                reason = str(e) or type(e).__name__
                logger.error(
                    "Unexpected backend failure while loading applications",
                    job_id=job_id,
                    error=reason,
                    exc_info=True
                )
            if sequence == self._load_sequence:
                self.events.publish(
                    StoreEvent(
                        kind=EventKind.LOAD_FAILED,
                        job_id=job_id,
                        generation=self.generation,
                        message=reason
                    )
                )
            raise FetchError(
                f"Failed to load applications for job {job_id}: {reason}",
                job_id=job_id,
                original_error=e
            ) from e
        
        if sequence != self._load_sequence:
            # A later load for another (or the same) job has been started
            logger.info("Discarding superseded application load", job_id=job_id)
            return tuple(applications)
        
        records: Dict[str, Application] = {}
        for application in applications:
            if application.job_id != job_id:
                logger.warning(
                    "Dropping application belonging to another job",
                    application_id=application.id,
                    job_id=job_id,
                    record_job_id=application.job_id
                )
                continue
            if application.id in records:
                logger.warning("Duplicate application in load", application_id=application.id, job_id=job_id)
            records[application.id] = application
        
        if job_id == self.job_id:
            # In-flight operations keep their optimistic copy until they settle
            carried = [r for r in self._records.values() if r.is_pending]
            for record in carried:
                records[record.id] = record
            if carried:
                logger.info(
                    "Keeping pending applications across reload",
                    job_id=job_id,
                    application_ids=[r.id for r in carried]
                )
        
        previous_job = self.job_id
        self._records = records
        self.job_id = job_id
        self._publish(EventKind.LOADED, tuple(records), previous_job_id=previous_job)
        
        logger.info("Applications loaded", job_id=job_id, count=len(records))
        return self.snapshot()
    
    # -------------------------------------------------------------- mutations
    
    def apply_local_patch(self, application_id: str, patch: Dict[str, Any], kind: str = "update") -> Application:
        """
        Optimistically change one record and mark it pending.
        
        Args:
            application_id: Record to patch
            patch: Field values to set (only ``PATCHABLE_FIELDS``)
            kind: Operation name stored on the pending marker
            
        Returns:
            The record as it was before the patch, for ``revert``
            
        Raises:
            NotFoundError: If the record is not in the store
            OperationInProgressError: If the record already has a pending operation
        """
        record = self.get(application_id)
        if record.is_pending:
            raise OperationInProgressError(application_id, record.pending_operation.kind)
        
        update = self._validated_update(record, patch)
        update["pending_operation"] = PendingOperation(
            operation_id=uuid4().hex,
            kind=kind,
            started_at=datetime.now(timezone.utc)
        )
        self._records[application_id] = record.model_copy(update=update)
        self._publish(EventKind.PATCHED, (application_id,), operation=kind)
        return record
    
    def pending_operation_id(self, application_id: str) -> Optional[str]:
        record = self._records.get(application_id)
        if record is None or record.pending_operation is None:
            return None
        return record.pending_operation.operation_id
    
    def commit(
        self,
        application_id: str,
        patch: Optional[Dict[str, Any]] = None,
        operation_id: Optional[str] = None
    ) -> Optional[Application]:
        """
        Finalize a pending patch with server-confirmed values.
        
        Returns the committed record, or None when the pending operation no
        longer exists (the store was reloaded or the operation already ended).
        """
        record = self._pending_record(application_id, operation_id, "commit")
        if record is None:
            return None
        
        update = self._validated_update(record, patch or {})
        if "last_transition_at" in update:
            update["last_transition_at"] = max(update["last_transition_at"], record.last_transition_at)
        update["pending_operation"] = None
        
        committed = record.model_copy(update=update)
        self._records[application_id] = committed
        self._publish(EventKind.COMMITTED, (application_id,))
        return committed
    
    def revert(
        self,
        application_id: str,
        snapshot: Application,
        operation_id: Optional[str] = None
    ) -> Optional[Application]:
        """Restore the pre-patch snapshot of a pending record."""
        if snapshot.id != application_id:
            raise ValueError(f"Snapshot {snapshot.id} does not belong to application {application_id}")
        
        record = self._pending_record(application_id, operation_id, "revert")
        if record is None:
            return None
        
        restored = snapshot.model_copy(update={"pending_operation": None})
        self._records[application_id] = restored
        self._publish(EventKind.REVERTED, (application_id,))
        return restored
    
    def commit_removal(self, application_id: str, operation_id: Optional[str] = None) -> bool:
        """Drop a pending record after the server confirmed its deletion."""
        record = self._pending_record(application_id, operation_id, "removal")
        if record is None:
            return False
        
        del self._records[application_id]
        self._publish(EventKind.REMOVED, (application_id,))
        return True
    
    # ---------------------------------------------------------------- helpers
    
    def _pending_record(
        self,
        application_id: str,
        operation_id: Optional[str],
        action: str
    ) -> Optional[Application]:
        record = self._records.get(application_id)
        if record is None or record.pending_operation is None:
            logger.warning(
                f"Ignoring {action} without a pending operation",
                application_id=application_id,
                operation_id=operation_id
            )
            return None
        if operation_id is not None and record.pending_operation.operation_id != operation_id:
            logger.warning(
                f"Ignoring {action} for a superseded operation",
                application_id=application_id,
                operation_id=operation_id,
                current_operation_id=record.pending_operation.operation_id
            )
            return None
        return record
    
    @staticmethod
    def _validated_update(record: Application, patch: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be patched: {', '.join(sorted(unknown))}")
        
        update = dict(patch)
        if "stage" in update:
            update["stage"] = Stage(update["stage"])
        if "tags" in update:
            update["tags"] = normalize_tags(update["tags"])
        if "notes" in update:
            notes = tuple(update["notes"])
            if notes[:len(record.notes)] != record.notes:
                raise ValueError("Notes are append-only")
            update["notes"] = notes
        return update
    
    def _publish(self, kind: EventKind, application_ids: Tuple[str, ...], **data: Any) -> None:
        self.generation += 1
        self.events.publish(
            StoreEvent(
                kind=kind,
                job_id=self.job_id,
                application_ids=application_ids,
                generation=self.generation,
                data=data
            )
        )
    