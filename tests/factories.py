"""Factories and backend doubles shared by the test suite."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ats_pipeline.core.error_handling import PipelineError
from ats_pipeline.core.events import EventBus, EventKind, StoreEvent
from ats_pipeline.models.stage import Stage
from ats_pipeline.schemas.application import Application, normalize_tags
from ats_pipeline.services.backend_client import PipelineBackend

BASE_TIME = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
JOB_ID = "job-1"


def make_application(
    application_id: str,
    stage: Stage = Stage.NEW,
    job_id: str = JOB_ID,
    days_ago: float = 0,
    **fields
) -> Application:
    """Build an application record applied ``days_ago`` days before BASE_TIME."""
    data = {
        "id": application_id,
        "job_id": job_id,
        "name": f"Candidate {application_id}",
        "email": f"{application_id}@example.com",
        "stage": stage,
        "applied_at": BASE_TIME - timedelta(days=days_ago),
    }
    data.update(fields)
    return Application.model_validate(data)


class FakeBackend(PipelineBackend):
    """In-memory backend double.
    
    ``fail_ids`` maps IDs to the error their requests raise, ``hang_ids``
    never answer, and when ``gate`` is set every item request waits for it.
    """
    
    def __init__(self, applications: Iterable[Application] = ()):
        self.records: Dict[str, Application] = {a.id: a for a in applications}
        self.fail_ids: Dict[str, PipelineError] = {}
        self.hang_ids: Set[str] = set()
        self.fetch_error: Optional[PipelineError] = None
        self.gate: Optional[asyncio.Event] = None
        self.calls: List[Tuple] = []
        self.sent_emails: List[Tuple[str, str, str]] = []
    
    async def _respond(self, application_id: str) -> None:
        if application_id in self.hang_ids:
            await asyncio.Event().wait()
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)
        if application_id in self.fail_ids:
            raise self.fail_ids[application_id]
    
    async def fetch_applications(self, job_id: str) -> List[Application]:
        self.calls.append(("fetch", job_id))
        await asyncio.sleep(0)
        if self.fetch_error is not None:
            raise self.fetch_error
        return [a for a in self.records.values() if a.job_id == job_id]
    
    async def update_application_status(self, application_id, stage, note=None):
        self.calls.append(("status", application_id, Stage(stage)))
        await self._respond(application_id)
        record = self.records[application_id].model_copy(
            update={"stage": Stage(stage), "last_transition_at": datetime.now(timezone.utc)}
        )
        self.records[application_id] = record
        return record
    
    async def tag_application(self, application_id, tags):
        self.calls.append(("tag", application_id, tuple(tags)))
        await self._respond(application_id)
        record = self.records[application_id]
        record = record.model_copy(update={"tags": record.tags | normalize_tags(tags)})
        self.records[application_id] = record
        return record
    
    async def delete_application(self, application_id):
        self.calls.append(("delete", application_id))
        await self._respond(application_id)
        self.records.pop(application_id, None)
    
    async def send_email(self, application_id, subject, body):
        self.calls.append(("email", application_id))
        await self._respond(application_id)
        self.sent_emails.append((application_id, subject, body))
    
    def request_count(self, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind)


class EventRecorder:
    """Subscriber collecting every published event."""
    
    def __init__(self, bus: EventBus):
        self.events: List[StoreEvent] = []
        bus.subscribe(self.events.append)
    
    def kinds(self) -> List[EventKind]:
        return [event.kind for event in self.events]
    
    def notices(self) -> List[StoreEvent]:
        return [event for event in self.events if event.kind is EventKind.NOTICE]

