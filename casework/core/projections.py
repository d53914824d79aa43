"""Read-only views of an app's cases for the board, list and launcher screens."""

from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from ..models.case import Case, CaseStatus
from ..models.workflow import NodeType, WorkflowDocument, WorkflowNode

_COLUMN_NODE_TYPES = {NodeType.START, NodeType.TASK, NodeType.END}

# List view order.
STATUS_ORDER: List[CaseStatus] = [
    CaseStatus.NEW,
    CaseStatus.IN_PROGRESS,
    CaseStatus.REVIEW,
    CaseStatus.CLOSED,
]


class BoardColumn(BaseModel):
    """One board column and the cases currently sitting at its step."""
    step_id: str = Field(..., description="Node the column represents")
    label: str = Field(..., description="Column heading")
    type: NodeType = Field(..., description="Node type")
    cases: List[Case] = Field(default_factory=list, description="Cases at this step")


def derive_columns(document: WorkflowDocument) -> List[WorkflowNode]:
    """Start, Task and End nodes ordered left to right by canvas x.

    Nodes sharing an x keep their document order.
    """
    columns = [node for node in document.nodes if node.type in _COLUMN_NODE_TYPES]
    return sorted(columns, key=lambda node: node.position.x)


def group_cases_by_column(cases: Iterable[Case], columns: Iterable[WorkflowNode]) -> Dict[str, List[Case]]:
    """Bucket cases by exact current step; cases on non-column steps are left out."""
    groups: Dict[str, List[Case]] = {column.id: [] for column in columns}
    for case in cases:
        if case.current_workflow_step_id in groups:
            groups[case.current_workflow_step_id].append(case)
    return groups


def build_board(document: WorkflowDocument, cases: Iterable[Case]) -> List[BoardColumn]:
    columns = derive_columns(document)
    groups = group_cases_by_column(cases, columns)
    return [
        BoardColumn(step_id=node.id, label=node.label, type=node.type, cases=groups[node.id])
        for node in columns
    ]


def group_cases_by_status(cases: Iterable[Case]) -> Dict[CaseStatus, List[Case]]:
    """Cases grouped by status, every status present and in list view order."""
    groups: Dict[CaseStatus, List[Case]] = {status: [] for status in STATUS_ORDER}
    for case in cases:
        groups[case.status].append(case)
    return groups


def recent_cases(cases: Iterable[Case], limit: Optional[int] = 4) -> List[Case]:
    """Newest cases first."""
    ordered = sorted(cases, key=lambda case: case.created_at, reverse=True)
    return ordered if limit is None else ordered[:limit]


def cases_awaiting_user(cases: Iterable[Case], document: WorkflowDocument, user_id: str) -> List[Case]:
    """Cases whose current step is gated to ``user_id``."""
    gated = {node.id for node in document.nodes if node.assignee_id == user_id}
    return [case for case in cases if case.current_workflow_step_id in gated]
