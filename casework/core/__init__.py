"""Core casework components."""

from .exceptions import (
    WorkflowEngineError,
    WorkflowValidationError,
    NodeReferenceError,
    PermissionDeniedError,
    StepPermissionError,
    TransitionError,
    DeadEndError,
    AmbiguousTransitionError,
    CaseClosedError,
    StaleStepError,
    NotFoundError,
    StorageError,
    ConfigurationError,
)
from .logging import setup_logging, get_logger
from .graph_editor import WorkflowEditor, validate_document
from .progression import CaseProgressionEngine
from .identity import UserDirectory
from .app_manager import AppManager
from .case_manager import CaseManager

__all__ = [
    "WorkflowEngineError",
    "WorkflowValidationError",
    "NodeReferenceError",
    "PermissionDeniedError",
    "StepPermissionError",
    "TransitionError",
    "DeadEndError",
    "AmbiguousTransitionError",
    "CaseClosedError",
    "StaleStepError",
    "NotFoundError",
    "StorageError",
    "ConfigurationError",
    "setup_logging",
    "get_logger",
    "WorkflowEditor",
    "validate_document",
    "CaseProgressionEngine",
    "UserDirectory",
    "AppManager",
    "CaseManager",
]
