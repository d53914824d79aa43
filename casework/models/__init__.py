"""Data models for the casework engine."""

from .workflow import (
    NodeType,
    FormMode,
    FormFieldType,
    ValidationResult,
    Position,
    FormField,
    NodeForm,
    WorkflowNode,
    WorkflowEdge,
    WorkflowDocument,
)
from .case import (
    CaseStatus,
    CasePriority,
    UserRole,
    StepDisplayStatus,
    User,
    WorkflowEvent,
    Case,
    AppDefinition,
)
from .defaults import default_workflow, DEFAULT_USERS, DEMO_APPS, DEMO_CASES

__all__ = [
    "NodeType",
    "FormMode",
    "FormFieldType",
    "ValidationResult",
    "Position",
    "FormField",
    "NodeForm",
    "WorkflowNode",
    "WorkflowEdge",
    "WorkflowDocument",
    "CaseStatus",
    "CasePriority",
    "UserRole",
    "StepDisplayStatus",
    "User",
    "WorkflowEvent",
    "Case",
    "AppDefinition",
    "default_workflow",
    "DEFAULT_USERS",
    "DEMO_APPS",
    "DEMO_CASES",
]
