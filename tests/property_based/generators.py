"""Test data generators for property-based testing using Hypothesis."""

from datetime import timedelta
from typing import List

from hypothesis import strategies as st
from hypothesis.strategies import composite

from ats_pipeline.models.stage import Stage
from ats_pipeline.schemas.application import Application
from ats_pipeline.schemas.filters import DateRange, FilterCriteria
from tests.factories import BASE_TIME, JOB_ID

TAG_POOL = ["Technical", "Senior", "Remote", "Urgent", "Follow-up", "Top Candidate"]

SKILL_POOL = ["Python", "SQL", "React", "Node.js", "AWS", "Docker"]

NAME_POOL = [
    "John Smith", "Jane Garcia", "Maria Lopez", "David Lee", "Emily Clark",
    "Robert Brown", "Lisa Wilson", "Thomas Moore", "Susan Martin", "Paul Harris",
]

stages = st.sampled_from(list(Stage))


@composite
def applications(draw, application_id: str) -> Application:
    """Generate one application record for the default job."""
    name = draw(st.sampled_from(NAME_POOL))
    return Application(
        id=application_id,
        job_id=JOB_ID,
        name=name,
        email=f"{name.split()[0].lower()}.{application_id}@example.com",
        experience=draw(st.one_of(st.none(), st.integers(min_value=0, max_value=20))),
        stage=draw(stages),
        # Coarse offsets so equal timestamps (and the id tie-break) occur
        applied_at=BASE_TIME - timedelta(days=draw(st.integers(min_value=0, max_value=120))),
        tags=frozenset(draw(st.lists(st.sampled_from(TAG_POOL), max_size=3))),
        skills=draw(st.lists(st.sampled_from(SKILL_POOL), max_size=3, unique=True)),
    )


@composite
def application_snapshots(draw, min_size: int = 0, max_size: int = 25) -> List[Application]:
    """Generate a store snapshot with unique application IDs."""
    count = draw(st.integers(min_value=min_size, max_value=max_size))
    ids = draw(st.permutations([f"app-{i:03d}" for i in range(count)]))
    return [draw(applications(application_id)) for application_id in ids]


@composite
def filter_criteria(draw) -> FilterCriteria:
    """Generate filter criteria over the same vocabulary as the snapshots."""
    low = draw(st.one_of(st.none(), st.integers(min_value=0, max_value=10)))
    high = draw(st.one_of(st.none(), st.integers(min_value=10, max_value=20)))
    return FilterCriteria(
        text=draw(st.sampled_from(["", "john", "LOPEZ", "senior", "example.com", "app-00", "zzz"])),
        stage=draw(st.one_of(st.just("all"), stages)),
        tags=frozenset(draw(st.lists(st.sampled_from(TAG_POOL), max_size=2))),
        skills=frozenset(draw(st.lists(st.sampled_from(SKILL_POOL), max_size=2))),
        experience_min=low,
        experience_max=high,
        date_range=draw(st.sampled_from(list(DateRange))),
    )
