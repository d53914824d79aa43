"""Exception hierarchy for the casework engine.

Each error class carries its category, severity and HTTP status as class
attributes. Keyword arguments passed to an error become its ``context``
(where it happened) unless the class lists them in ``detail_keys``, in which
case they land in ``details`` (what the caller needs to fix it).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ErrorSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    VALIDATION = "validation"
    REFERENCE = "reference"
    PERMISSION = "permission"
    TRANSITION = "transition"
    STORAGE = "storage"
    CONFIGURATION = "configuration"


class WorkflowEngineError(Exception):
    """Base exception for all casework engine errors."""

    category: ErrorCategory = ErrorCategory.TRANSITION
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    status_code: int = 500
    detail_keys: Tuple[str, ...] = ()

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, **fields: Any):
        super().__init__(message)
        self.message = message
        self.error_code = type(self).__name__
        self.details: Dict[str, Any] = dict(details or {})
        self.context: Dict[str, Any] = {}
        self.timestamp = datetime.now(timezone.utc)
        for key, value in fields.items():
            if value is None:
                continue
            target = self.details if key in self.detail_keys else self.context
            target[key] = value

    def to_dict(self) -> Dict[str, Any]:
        """Full description of the error, used for log records."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "details": self.details,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


class WorkflowValidationError(WorkflowEngineError):
    """Raised for malformed or missing form input and invalid document edits."""

    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.LOW
    status_code = 400
    detail_keys = ("validation_errors",)

    def __init__(self, message: str, validation_errors: Optional[List[str]] = None, **fields: Any):
        self.validation_errors = list(validation_errors or [])
        super().__init__(message, validation_errors=self.validation_errors or None, **fields)


class NodeReferenceError(WorkflowEngineError):
    """Raised when a node, edge or field id does not exist in the document."""

    category = ErrorCategory.REFERENCE
    severity = ErrorSeverity.HIGH
    status_code = 404

    def __init__(self, message: str, reference: Optional[str] = None, kind: str = "node", **fields: Any):
        self.reference = reference
        self.kind = kind
        super().__init__(message, reference=reference, kind=kind if reference else None, **fields)


class PermissionDeniedError(WorkflowEngineError):
    """Raised when the acting user may not perform an operation."""

    category = ErrorCategory.PERMISSION
    status_code = 403


class StepPermissionError(PermissionDeniedError):
    """Raised when a user attempts to complete a step gated to someone else."""

    detail_keys = ("assignee_id",)


class TransitionError(WorkflowEngineError):
    """A transition that cannot be applied to the case in its current state."""

    status_code = 409

    def __init__(self, message: str, step_id: Optional[str] = None, **fields: Any):
        self.step_id = step_id
        super().__init__(message, step_id=step_id, **fields)


class DeadEndError(TransitionError):
    """Raised when the current step has no outgoing edge."""


class AmbiguousTransitionError(TransitionError):
    """Raised in strict mode when a step has several outgoing edges and no valid choice."""

    detail_keys = ("candidates",)


class CaseClosedError(TransitionError):
    """Raised when a transition is attempted from a terminal step."""


class StaleStepError(TransitionError):
    """Raised when a case is no longer sitting at the step being completed."""

    detail_keys = ("current_step_id",)


class NotFoundError(WorkflowEngineError):
    """Raised when an app, case or user does not exist."""

    category = ErrorCategory.STORAGE
    severity = ErrorSeverity.LOW
    status_code = 404


class StorageError(WorkflowEngineError):
    """Raised when the database rejects a read or write."""

    category = ErrorCategory.STORAGE
    severity = ErrorSeverity.HIGH


class ConfigurationError(WorkflowEngineError):
    category = ErrorCategory.CONFIGURATION
    severity = ErrorSeverity.HIGH


def http_status_for_error(error: WorkflowEngineError) -> int:
    """HTTP status code the API answers with for ``error``."""
    return error.status_code


def create_error_response(error: WorkflowEngineError) -> Dict[str, Any]:
    """JSON body returned to API clients for an engine error."""
    return {
        "error": error.error_code,
        "message": error.message,
        "details": {
            **error.details,
            "severity": error.severity.value,
            "category": error.category.value,
            "timestamp": error.timestamp.isoformat(),
        },
        "context": error.context,
    }
