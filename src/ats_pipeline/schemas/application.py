"""Pydantic schemas for Application records."""

from datetime import datetime, timezone
from typing import Any, FrozenSet, Iterable, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from ats_pipeline.models.stage import Stage


def normalize_tags(tags: Iterable[str]) -> FrozenSet[str]:
    """Strip tag labels and drop empty ones; duplicates collapse."""
    return frozenset(t.strip() for t in tags if t and t.strip())


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Note(BaseModel):
    """Append-only recruiter note on an application."""
    
    model_config = ConfigDict(frozen=True, populate_by_name=True)
    
    text: str = Field(..., min_length=1, description="Note text")
    authored_at: Optional[datetime] = Field(
        None,
        validation_alias=AliasChoices("authored_at", "authoredAt", "createdAt"),
        description="When the note was written"
    )
    
    @field_validator("authored_at")
    @classmethod
    def validate_authored_at(cls, v):
        return _as_utc(v)


class PendingOperation(BaseModel):
    """Marker for a local mutation awaiting server confirmation."""
    
    model_config = ConfigDict(frozen=True)
    
    operation_id: str
    kind: str
    started_at: datetime


class Application(BaseModel):
    """One candidate's application to one job.
    
    Records are immutable; the candidate store replaces an entry with an
    updated copy on every change.
    """
    
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")
    
    id: str = Field(..., validation_alias=AliasChoices("id", "_id"), description="Application ID")
    job_id: str = Field(..., validation_alias=AliasChoices("job_id", "jobId", "job"), description="Job ID")
    name: str = Field(
        default="",
        validation_alias=AliasChoices("name", "candidateName", "fullname"),
        description="Candidate name"
    )
    email: Optional[str] = Field(None, description="Candidate email")
    phone: Optional[str] = Field(None, description="Candidate phone")
    experience: Optional[float] = Field(
        None,
        ge=0,
        validation_alias=AliasChoices("experience", "experienceYears"),
        description="Years of experience"
    )
    skills: Tuple[str, ...] = Field(default=(), description="Candidate skills")
    stage: Stage = Field(
        default=Stage.NEW,
        validation_alias=AliasChoices("stage", "status"),
        description="Current pipeline stage"
    )
    applied_at: datetime = Field(
        ...,
        validation_alias=AliasChoices("applied_at", "appliedAt", "appliedDate", "createdAt"),
        description="Application timestamp"
    )
    last_transition_at: Optional[datetime] = Field(
        None,
        validation_alias=AliasChoices("last_transition_at", "lastTransitionAt", "updatedAt"),
        description="Timestamp of the latest confirmed stage change"
    )
    tags: FrozenSet[str] = Field(default=frozenset(), description="Free-text labels")
    notes: Tuple[Note, ...] = Field(default=(), description="Recruiter notes, oldest first")
    pending_operation: Optional[PendingOperation] = Field(default=None, exclude=True)
    
    @model_validator(mode="before")
    @classmethod
    def coerce_legacy_notes(cls, data: Any) -> Any:
        """Older records carry notes as a single string."""
        if isinstance(data, dict) and isinstance(data.get("notes"), str):
            text = data["notes"].strip()
            data = dict(data)
            data["notes"] = [{"text": text}] if text else []
        return data
    
    @field_validator("id", "job_id", mode="before")
    @classmethod
    def validate_identifier(cls, v):
        if isinstance(v, dict):
            # Populated references arrive as nested documents
            v = v.get("_id") or v.get("id")
        if v is None or str(v) == "":
            raise ValueError("Identifier must not be empty")
        return str(v)
    
    @field_validator("stage", mode="before")
    @classmethod
    def validate_stage(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v
    
    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v):
        if v is None:
            return frozenset()
        if isinstance(v, str):
            v = [v]
        return normalize_tags(v)
    
    @field_validator("skills", mode="before")
    @classmethod
    def validate_skills(cls, v):
        if v is None:
            return ()
        if isinstance(v, str):
            v = v.split(",")
        return tuple(dict.fromkeys(s.strip() for s in v if s and s.strip()))
    
    @field_validator("applied_at", "last_transition_at")
    @classmethod
    def validate_timestamps(cls, v):
        return _as_utc(v)
    
    @model_validator(mode="after")
    def default_last_transition(self) -> "Application":
        if self.last_transition_at is None or self.last_transition_at < self.applied_at:
            object.__setattr__(self, "last_transition_at", self.applied_at)
        return self
    
    @property
    def is_pending(self) -> bool:
        return self.pending_operation is not None
    
    @property
    def display_name(self) -> str:
        return self.name or self.email or self.id
    
    def searchable_text(self) -> List[str]:
        """Fields matched by free-text search."""
        values = [self.name, self.email or ""]
        values.extend(self.tags)
        return values
