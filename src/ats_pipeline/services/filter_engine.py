"""Deterministic filtering and grouping of the candidate list."""

from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import structlog

from ats_pipeline.core.events import EventKind, StoreEvent
from ats_pipeline.models.stage import KANBAN_COLUMNS, Stage
from ats_pipeline.schemas.application import Application
from ats_pipeline.schemas.filters import DateRange, FilterCriteria
from .candidate_store import CandidateStore

logger = structlog.get_logger(__name__)


def _matches(application: Application, criteria: FilterCriteria, window_start: Optional[datetime]) -> bool:
    if criteria.stage != "all" and application.stage != criteria.stage:
        return False
    
    if criteria.text:
        needle = criteria.text.casefold()
        if not any(needle in value.casefold() for value in application.searchable_text()):
            return False
    
    # Any one selected tag or skill is enough
    if criteria.tags and not (application.tags & criteria.tags):
        return False
    if criteria.skills and criteria.skills.isdisjoint(application.skills):
        return False
    
    experience = application.experience or 0
    if criteria.experience_min is not None and experience < criteria.experience_min:
        return False
    if criteria.experience_max is not None and experience > criteria.experience_max:
        return False
    
    if window_start is not None and application.applied_at < window_start:
        return False
    
    return True


def sort_applications(applications: Iterable[Application]) -> List[Application]:
    """Newest application first, ties by ascending ID."""
    ordered = sorted(applications, key=lambda a: a.id)
    ordered.sort(key=lambda a: a.applied_at, reverse=True)
    return ordered


def filter_applications(
    snapshot: Iterable[Application],
    criteria: Optional[FilterCriteria] = None,
    now: Optional[datetime] = None
) -> List[Application]:
    """
    Return the applications matching every criterion, in display order.
    
    Args:
        snapshot: Store snapshot to filter
        criteria: Active filters; None means no filtering
        now: Reference time for the date-range window (defaults to current UTC time)
        
    Returns:
        Matching applications sorted by applied_at descending, then id ascending
    """
    criteria = criteria or FilterCriteria()
    window_start = None
    if criteria.date_range is not DateRange.ALL:
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        window_start = criteria.date_range.window_start(now)
    
    return sort_applications(a for a in snapshot if _matches(a, criteria, window_start))


def stage_counts(applications: Iterable[Application]) -> Dict[Stage, int]:
    """Number of applications per stage, in Kanban column order."""
    counts = {stage: 0 for stage in KANBAN_COLUMNS}
    for application in applications:
        counts[application.stage] += 1
    return counts


def group_by_stage(applications: Iterable[Application]) -> Dict[Stage, List[Application]]:
    """Kanban columns; order within a column follows the input order."""
    columns: Dict[Stage, List[Application]] = {stage: [] for stage in KANBAN_COLUMNS}
    for application in applications:
        columns[application.stage].append(application)
    return columns


class FilteredView:
    """Visible candidate list kept in step with the store and the criteria.
    
    The result is tied to the store generation and criteria it was computed
    from and is recomputed from scratch whenever either changes.
    """
    
    def __init__(
        self,
        store: CandidateStore,
        criteria: Optional[FilterCriteria] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    ):
        self.store = store
        self._criteria = criteria or FilterCriteria()
        self._clock = clock
        self._visible: Tuple[Application, ...] = ()
        self._computed_for: Optional[Tuple[int, FilterCriteria]] = None
        self._unsubscribe = store.subscribe(self._on_store_event)
        self._recompute()
    
    @property
    def criteria(self) -> FilterCriteria:
        return self._criteria
    
    def set_criteria(self, criteria: FilterCriteria) -> Tuple[Application, ...]:
        self._criteria = criteria
        return self._recompute()
    
    def update_criteria(self, **changes) -> Tuple[Application, ...]:
        """Change some criteria keys, keeping the others."""
        data = self._criteria.model_dump()
        data.update(changes)
        return self.set_criteria(FilterCriteria.model_validate(data))
    
    def clear_criteria(self) -> Tuple[Application, ...]:
        return self.set_criteria(FilterCriteria())
    
    @property
    def visible(self) -> Tuple[Application, ...]:
        if self._computed_for != (self.store.generation, self._criteria):
            self._recompute()
        return self._visible
    
    def visible_ids(self) -> List[str]:
        return [application.id for application in self.visible]
    
    def columns(self) -> Dict[Stage, List[Application]]:
        return group_by_stage(self.visible)
    
    def stage_counts(self) -> Dict[Stage, int]:
        """Per-stage badge counts under every criterion except the stage filter."""
        criteria = self._criteria.model_copy(update={"stage": "all"})
        return stage_counts(filter_applications(self.store.snapshot(), criteria, self._clock()))
    
    def close(self) -> None:
        self._unsubscribe()
    
    def _on_store_event(self, event: StoreEvent) -> None:
        if event.kind in (EventKind.NOTICE, EventKind.LOAD_FAILED):
            return
        self._recompute()
    
    def _recompute(self) -> Tuple[Application, ...]:
        generation = self.store.generation
        criteria = self._criteria
        self._visible = tuple(filter_applications(self.store.snapshot(), criteria, self._clock()))
        self._computed_for = (generation, criteria)
        return self._visible
