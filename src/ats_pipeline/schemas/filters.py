"""Pydantic schemas for candidate filter criteria."""

from datetime import datetime, timedelta
from enum import Enum
from typing import FrozenSet, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from ats_pipeline.models.stage import Stage
from .application import normalize_tags


class DateRange(str, Enum):
    """Applied-date window relative to the moment of filtering."""
    ALL = "all"
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    
    def window_start(self, now: datetime) -> Optional[datetime]:
        """Earliest applied_at still inside the window, None for ALL."""
        if self is DateRange.ALL:
            return None
        if self is DateRange.TODAY:
            return now.replace(hour=0, minute=0, second=0, microsecond=0)
        days = {DateRange.WEEK: 7, DateRange.MONTH: 30, DateRange.QUARTER: 90}[self]
        return now - timedelta(days=days)


class FilterCriteria(BaseModel):
    """Active filters for the candidate list. All categories combine with AND."""
    
    model_config = ConfigDict(frozen=True, populate_by_name=True)
    
    text: str = Field(default="", validation_alias=AliasChoices("text", "keywords", "search"))
    stage: Union[Stage, Literal["all"]] = Field(
        default="all",
        validation_alias=AliasChoices("stage", "status")
    )
    tags: FrozenSet[str] = Field(default=frozenset())
    skills: FrozenSet[str] = Field(default=frozenset())
    experience_min: Optional[float] = Field(
        None,
        ge=0,
        validation_alias=AliasChoices("experience_min", "experienceMin")
    )
    experience_max: Optional[float] = Field(
        None,
        ge=0,
        validation_alias=AliasChoices("experience_max", "experienceMax")
    )
    date_range: DateRange = Field(
        default=DateRange.ALL,
        validation_alias=AliasChoices("date_range", "dateRange", "dateApplied")
    )
    
    @field_validator("text", mode="before")
    @classmethod
    def validate_text(cls, v):
        return (v or "").strip()
    
    @field_validator("stage", mode="before")
    @classmethod
    def validate_stage(cls, v):
        if v is None or v == "":
            return "all"
        if isinstance(v, str):
            return v.strip().lower()
        return v
    
    @field_validator("tags", "skills", mode="before")
    @classmethod
    def validate_labels(cls, v):
        if v is None:
            return frozenset()
        if isinstance(v, str):
            v = [v]
        return normalize_tags(v)
    
    @field_validator("experience_min", "experience_max", mode="before")
    @classmethod
    def validate_experience(cls, v):
        # Form inputs send empty strings for cleared bounds
        if v == "":
            return None
        return v
    
    @field_validator("date_range", mode="before")
    @classmethod
    def validate_date_range(cls, v):
        if v is None or v == "":
            return DateRange.ALL
        if v == "3months":
            return DateRange.QUARTER
        return v
    
    @model_validator(mode="after")
    def validate_experience_bounds(self) -> "FilterCriteria":
        if (
            self.experience_min is not None
            and self.experience_max is not None
            and self.experience_min > self.experience_max
        ):
            raise ValueError("experience_min must not exceed experience_max")
        return self
    
    def active_count(self) -> int:
        """Number of active filters, as shown on the filter panel badge."""
        count = len(self.tags) + len(self.skills)
        if self.text:
            count += 1
        if self.stage != "all":
            count += 1
        if self.experience_min is not None:
            count += 1
        if self.experience_max is not None:
            count += 1
        if self.date_range is not DateRange.ALL:
            count += 1
        return count
    
    def is_empty(self) -> bool:
        return self.active_count() == 0
