"""Synchronous change notification for the candidate store and its views."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)


class EventKind(Enum):
    """Kinds of events published on the bus."""
    LOADED = "loaded"
    LOAD_FAILED = "load_failed"
    PATCHED = "patched"
    COMMITTED = "committed"
    REVERTED = "reverted"
    REMOVED = "removed"
    NOTICE = "notice"


class NoticeLevel(Enum):
    """Severity of a user-visible notice."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class StoreEvent:
    """A single change notification.
    
    ``application_ids`` lists the records touched by the change; ``generation``
    is the store generation after the change was applied.
    """
    kind: EventKind
    job_id: Optional[str] = None
    application_ids: Tuple[str, ...] = ()
    generation: int = 0
    message: Optional[str] = None
    level: Optional[NoticeLevel] = None
    data: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Subscriber = Callable[[StoreEvent], None]


class EventBus:
    """Delivers events to subscribers inside the publishing call."""
    
    def __init__(self):
        self._subscribers: List[Subscriber] = []
    
    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback and return a function that removes it."""
        self._subscribers.append(callback)
        
        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        
        return unsubscribe
    
    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
    
    def publish(self, event: StoreEvent) -> None:
        """Deliver an event to every subscriber registered at call time."""
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                # A broken view must not undo or block a store mutation
                logger.error(
                    "Event subscriber failed",
                    event_kind=event.kind.value,
                    subscriber=getattr(callback, "__qualname__", repr(callback)),
                    error=str(e),
                    exc_info=True
                )
    
    def notify(
        self,
        message: str,
        level: NoticeLevel = NoticeLevel.INFO,
        application_ids: Tuple[str, ...] = (),
        job_id: Optional[str] = None,
        **data: Any
    ) -> None:
        """Publish a user-visible notice (toast)."""
        self.publish(
            StoreEvent(
                kind=EventKind.NOTICE,
                job_id=job_id,
                application_ids=tuple(application_ids),
                message=message,
                level=level,
                data=data
            )
        )
