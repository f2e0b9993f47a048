"""Pydantic schemas for pipeline records, filters and bulk operations."""

from .application import Application, Note, PendingOperation, normalize_tags
from .filters import FilterCriteria, DateRange
from .bulk import (
    BulkActionKind,
    BulkItemIssue,
    BulkOutcome,
    BulkSummary,
    DeletePayload,
    EmailPayload,
    EmailTemplate,
    StatusChangePayload,
    TagPayload,
)

__all__ = [
    "Application", "Note", "PendingOperation", "normalize_tags",
    "FilterCriteria", "DateRange",
    "BulkActionKind", "BulkItemIssue", "BulkOutcome", "BulkSummary",
    "DeletePayload", "EmailPayload", "EmailTemplate", "StatusChangePayload", "TagPayload",
]
