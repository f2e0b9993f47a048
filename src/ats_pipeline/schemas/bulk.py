"""Pydantic schemas for bulk actions and their summaries."""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ats_pipeline.models.stage import Stage
from .application import normalize_tags


class BulkActionKind(str, Enum):
    """Action applied to every selected application."""
    STATUS_CHANGE = "status-change"
    TAG = "tag"
    EMAIL = "email"
    DELETE = "delete"


class EmailTemplate(str, Enum):
    """Predefined bulk email templates."""
    DEFAULT = "default"
    INTERVIEW = "interview"
    REJECTION = "rejection"
    OFFER = "offer"
    
    @property
    def default_subject(self) -> str:
        return {
            EmailTemplate.DEFAULT: "Follow-up on your application",
            EmailTemplate.INTERVIEW: "Interview Invitation",
            EmailTemplate.REJECTION: "Update on your application",
            EmailTemplate.OFFER: "Job Offer Letter",
        }[self]


class StatusChangePayload(BaseModel):
    """Move every selected application to one stage."""
    
    model_config = ConfigDict(frozen=True)
    
    stage: Stage = Field(..., description="Target stage")
    note: Optional[str] = Field(None, description="Note recorded with the change")


class TagPayload(BaseModel):
    """Add tags to every selected application."""
    
    model_config = ConfigDict(frozen=True)
    
    tags: Tuple[str, ...] = Field(..., description="Tags to add")
    
    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v):
        if isinstance(v, str):
            v = [v]
        tags = tuple(sorted(normalize_tags(v or [])))
        if not tags:
            raise ValueError("At least one non-empty tag is required")
        return tags


class EmailPayload(BaseModel):
    """Send one email to every selected candidate."""
    
    model_config = ConfigDict(frozen=True)
    
    subject: str = Field(default="", max_length=255)
    body: str = Field(..., min_length=1)
    template: EmailTemplate = Field(default=EmailTemplate.DEFAULT)
    
    @model_validator(mode="after")
    def fill_subject_from_template(self) -> "EmailPayload":
        if not self.subject.strip():
            object.__setattr__(self, "subject", self.template.default_subject)
        return self


class DeletePayload(BaseModel):
    """Delete every selected application."""
    
    model_config = ConfigDict(frozen=True)


class BulkItemIssue(BaseModel):
    """Why one application failed or was skipped."""
    
    model_config = ConfigDict(frozen=True)
    
    id: str
    reason: str
    candidate_name: Optional[str] = None
    error_type: Optional[str] = None
    retryable: bool = False


class BulkOutcome(str, Enum):
    """Overall result of a bulk operation."""
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FAILURE = "failure"
    EMPTY = "empty"


class BulkSummary(BaseModel):
    """Per-item result buckets of one bulk operation."""
    
    action: BulkActionKind
    succeeded: List[str] = Field(default_factory=list)
    failed: List[BulkItemIssue] = Field(default_factory=list)
    skipped: List[BulkItemIssue] = Field(default_factory=list)
    started_at: datetime
    finished_at: Optional[datetime] = None
    
    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed) + len(self.skipped)
    
    @property
    def outcome(self) -> BulkOutcome:
        if self.total == 0:
            return BulkOutcome.EMPTY
        if not self.failed and not self.skipped:
            return BulkOutcome.SUCCESS
        if not self.succeeded:
            return BulkOutcome.FAILURE
        return BulkOutcome.PARTIAL_FAILURE
    
    @property
    def is_partial_failure(self) -> bool:
        return self.outcome is BulkOutcome.PARTIAL_FAILURE
    
    def retryable_ids(self) -> List[str]:
        """Failed IDs worth resubmitting."""
        return [issue.id for issue in self.failed if issue.retryable]
    
    def headline(self) -> str:
        """One-line toast text."""
        parts = [f"{len(self.succeeded)} succeeded"]
        if self.failed:
            parts.append(f"{len(self.failed)} failed")
        if self.skipped:
            parts.append(f"{len(self.skipped)} skipped")
        return f"{self.action.value}: " + ", ".join(parts)
