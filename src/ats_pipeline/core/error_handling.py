"""Error taxonomy for the application pipeline engine."""

from typing import Any, Dict, Optional
from datetime import datetime, timezone
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for classification and handling."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ErrorCategory(Enum):
    """Error categories for classification and routing."""
    VALIDATION = "validation"
    CONCURRENCY = "concurrency"
    NOT_FOUND = "not_found"
    NETWORK = "network"
    SERVER = "server"


class PipelineError(Exception):
    """Base exception class for pipeline engine errors."""
    
    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        application_id: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.application_id = application_id
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging and user notices."""
        return {
            "message": self.message,
            "error_type": type(self).__name__,
            "category": self.category.value,
            "severity": self.severity.value,
            "application_id": self.application_id,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_error) if self.original_error else None,
            "original_error_type": type(self.original_error).__name__ if self.original_error else None,
        }


class IllegalTransitionError(PipelineError):
    """Requested stage change is not an edge of the stage graph."""
    
    def __init__(self, from_stage, to_stage, application_id: Optional[str] = None, **kwargs):
        super().__init__(
            f"Cannot move from {getattr(from_stage, 'value', from_stage)} "
            f"to {getattr(to_stage, 'value', to_stage)}",
            ErrorCategory.VALIDATION,
            ErrorSeverity.LOW,
            application_id=application_id,
            **kwargs
        )
        self.from_stage = from_stage
        self.to_stage = to_stage


class OperationInProgressError(PipelineError):
    """Application already has an unconfirmed mutation in flight."""
    
    def __init__(self, application_id: str, operation: Optional[str] = None, **kwargs):
        message = f"Application {application_id} has an operation in progress"
        if operation:
            message = f"{message} ({operation})"
        super().__init__(
            message,
            ErrorCategory.CONCURRENCY,
            ErrorSeverity.LOW,
            application_id=application_id,
            **kwargs
        )
        self.operation = operation


class StaleOperationError(PipelineError):
    """Operation settled after the store had dropped its pending marker."""
    
    def __init__(self, application_id: str, operation: Optional[str] = None, **kwargs):
        super().__init__(
            f"Application {application_id} changed before its {operation or 'operation'} could be applied",
            ErrorCategory.CONCURRENCY,
            ErrorSeverity.MEDIUM,
            application_id=application_id,
            **kwargs
        )
        self.operation = operation


class NotFoundError(PipelineError):
    """Application is not present in the candidate store."""
    
    def __init__(self, application_id: str, **kwargs):
        super().__init__(
            f"Application {application_id} not found",
            ErrorCategory.NOT_FOUND,
            ErrorSeverity.LOW,
            application_id=application_id,
            **kwargs
        )


class FetchError(PipelineError):
    """Loading the application list for a job failed."""
    
    def __init__(self, message: str, job_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            ErrorCategory.NETWORK,
            ErrorSeverity.HIGH,
            **kwargs
        )
        self.job_id = job_id


class NetworkError(PipelineError):
    """Transport failure or timeout while talking to the backend."""
    
    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            ErrorCategory.NETWORK,
            ErrorSeverity.MEDIUM,
            **kwargs
        )


class ServerError(PipelineError):
    """Backend answered but refused or failed the operation."""
    
    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        super().__init__(
            message,
            ErrorCategory.SERVER,
            ErrorSeverity.MEDIUM,
            **kwargs
        )
        self.status_code = status_code


def is_retryable(error: Exception) -> bool:
    """Whether rerunning the same request could plausibly succeed."""
    if isinstance(error, NetworkError):
        return True
    if isinstance(error, ServerError):
        return error.status_code is not None and (
            error.status_code >= 500 or error.status_code in (408, 429)
        )
    return False


def describe_error(error: Exception) -> str:
    """Short human-readable reason for notices and bulk summaries."""
    if isinstance(error, PipelineError):
        return error.message
    return str(error) or type(error).__name__
