"""Selection of applications for bulk actions."""

from typing import Dict, FrozenSet, Iterable, List

import structlog

from ats_pipeline.core.error_handling import NotFoundError
from ats_pipeline.core.events import EventKind, StoreEvent
from ats_pipeline.models.stage import Stage
from .filter_engine import stage_counts
from .candidate_store import CandidateStore

logger = structlog.get_logger(__name__)


class SelectionManager:
    """Selected application IDs for the loaded job.
    
    The selection only ever holds IDs present in the store: it is pruned when
    records leave the store and cleared when another job is loaded.
    """
    
    def __init__(self, store: CandidateStore):
        self.store = store
        self._job_id = store.job_id
        # dict keeps selection order for display
        self._selected: Dict[str, None] = {}
        self._unsubscribe = store.subscribe(self._on_store_event)
    
    def __len__(self) -> int:
        return len(self._selected)
    
    def __contains__(self, application_id: object) -> bool:
        return application_id in self._selected
    
    def snapshot(self) -> FrozenSet[str]:
        """Immutable copy of the selection, e.g. to hand to a bulk operation."""
        return frozenset(self._selected)
    
    def selected_ids(self) -> List[str]:
        return list(self._selected)
    
    def toggle(self, application_id: str) -> bool:
        """Flip one ID; returns whether it is selected afterwards."""
        if application_id in self._selected:
            del self._selected[application_id]
            return False
        if application_id not in self.store:
            raise NotFoundError(application_id)
        self._selected[application_id] = None
        return True
    
    def select_all(self, visible_ids: Iterable[str]) -> None:
        for application_id in visible_ids:
            if application_id in self.store:
                self._selected.setdefault(application_id, None)
    
    def deselect(self, application_ids: Iterable[str]) -> None:
        for application_id in application_ids:
            self._selected.pop(application_id, None)
    
    def is_all_selected(self, visible_ids: Iterable[str]) -> bool:
        visible = list(visible_ids)
        return bool(visible) and all(i in self._selected for i in visible)
    
    def toggle_all(self, visible_ids: Iterable[str]) -> None:
        """Header checkbox: select every visible ID, or clear if all already are."""
        visible = list(visible_ids)
        if self.is_all_selected(visible):
            self.clear()
        else:
            self.select_all(visible)
    
    def clear(self) -> None:
        self._selected.clear()
    
    def stage_counts(self) -> Dict[Stage, int]:
        """Per-stage breakdown of the selection for the bulk action bar."""
        return stage_counts(self.store.applications_by_id(self._selected))
    
    def close(self) -> None:
        self._unsubscribe()
    
    def _on_store_event(self, event: StoreEvent) -> None:
        if event.kind is EventKind.LOADED and event.job_id != self._job_id:
            self._job_id = event.job_id
            if self._selected:
                logger.debug("Selection cleared for job change", job_id=event.job_id)
            self.clear()
            return
        
        if event.kind in (EventKind.LOADED, EventKind.REMOVED):
            stale = [i for i in self._selected if i not in self.store]
            if stale:
                self.deselect(stale)
                logger.debug("Pruned selection", removed=len(stale))
