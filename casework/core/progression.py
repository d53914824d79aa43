"""Case progression: moving cases through their app's workflow graph.

The module-level functions are pure; they take a case and a document and
return a new case. :class:`CaseProgressionEngine` is the boundary that adds
authorization, form submission and the persistence callback around them.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from ..models.case import Case, CasePriority, CaseStatus, StepDisplayStatus, User, WorkflowEvent
from ..models.workflow import NodeType, WorkflowDocument, WorkflowNode
from .exceptions import (
    AmbiguousTransitionError,
    CaseClosedError,
    DeadEndError,
    NodeReferenceError,
    StaleStepError,
    StepPermissionError,
    WorkflowEngineError,
    WorkflowValidationError,
)
from .form_interpreter import validate_submission
from .logging import CaseEventLogger, get_logger

logger = get_logger(__name__)
events = CaseEventLogger("progression")

ResolveUser = Callable[[str], Optional[User]]
CaseCallback = Callable[[Case], None]
Clock = Callable[[], datetime]

_STATUS_FOR_NODE_TYPE: Dict[NodeType, CaseStatus] = {
    NodeType.START: CaseStatus.NEW,
    NodeType.END: CaseStatus.CLOSED,
    NodeType.TASK: CaseStatus.IN_PROGRESS,
    NodeType.GATEWAY: CaseStatus.IN_PROGRESS,
    NodeType.TIMER: CaseStatus.IN_PROGRESS,
    NodeType.MESSAGE: CaseStatus.IN_PROGRESS,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def status_for_node(node: WorkflowNode) -> CaseStatus:
    """Status a case takes when placed directly on ``node``."""
    return _STATUS_FOR_NODE_TYPE[node.type]


def _require_step(document: WorkflowDocument, step_id: Optional[str]) -> WorkflowNode:
    node = document.get_node(step_id)
    if node is None:
        raise NodeReferenceError(f"Step '{step_id}' does not exist in the workflow", reference=step_id)
    return node


def open_case(document: WorkflowDocument, app_id: str, title: str, description: str = "",
              priority: CasePriority = CasePriority.MEDIUM, assignee_id: Optional[str] = None,
              client: str = "", tags: Iterable[str] = (), case_id: Optional[str] = None,
              now: Optional[datetime] = None) -> Case:
    """Create a case sitting at the workflow's Start node."""
    starts = document.start_nodes()
    if not starts:
        raise WorkflowValidationError("Workflow has no Start node; cases cannot be created")
    return Case(
        id=case_id or f"case-{uuid.uuid4().hex[:12]}",
        app_id=app_id,
        title=title,
        description=description,
        status=CaseStatus.NEW,
        priority=priority,
        assignee_id=assignee_id,
        client=client,
        tags=list(tags),
        created_at=now or utcnow(),
        current_workflow_step_id=starts[0].id,
        workflow_history=[],
        form_data={},
    )


def resolve_next_step(document: WorkflowDocument, from_step_id: str,
                      chosen_next_step_id: Optional[str] = None, strict: bool = False) -> str:
    """
    Pick the node a case moves to when it leaves ``from_step_id``.

    A single outgoing edge always wins. With several edges, a choice that
    matches one of their targets decides; otherwise the first edge is taken
    (or, when ``strict``, the transition is refused).

    Raises:
        NodeReferenceError: If a step id is not in the document
        DeadEndError: If the step has no outgoing edge
        AmbiguousTransitionError: If ``strict`` and no valid choice was made
    """
    _require_step(document, from_step_id)
    outgoing = document.outgoing_edges(from_step_id)
    if not outgoing:
        logger.warning(f"No outgoing edge from step {from_step_id}")
        raise DeadEndError(f"Step '{from_step_id}' has no outgoing transition", step_id=from_step_id)

    if len(outgoing) == 1:
        next_step_id = outgoing[0].target
    elif chosen_next_step_id and any(edge.target == chosen_next_step_id for edge in outgoing):
        next_step_id = chosen_next_step_id
    else:
        candidates = [edge.target for edge in outgoing]
        if strict:
            raise AmbiguousTransitionError(
                f"Step '{from_step_id}' has {len(outgoing)} outgoing transitions and no valid choice was made",
                step_id=from_step_id,
                candidates=candidates,
            )
        logger.warning(
            f"Step {from_step_id} has {len(outgoing)} outgoing edges and no valid choice "
            f"({chosen_next_step_id!r}); following the first to {candidates[0]}"
        )
        next_step_id = candidates[0]

    _require_step(document, next_step_id)
    return next_step_id


def authorize_step(node: WorkflowNode, acting_user_id: Optional[str], resolve_user: ResolveUser) -> User:
    """Return the acting user if they may complete ``node``.

    Raises:
        StepPermissionError: If the user is unknown or the step is gated to someone else
    """
    user = resolve_user(acting_user_id) if acting_user_id else None
    if user is None:
        raise StepPermissionError(
            f"Unknown user '{acting_user_id}' cannot complete step '{node.label}'",
            step_id=node.id,
            user_id=acting_user_id,
        )
    if node.assignee_id and node.assignee_id != user.id:
        raise StepPermissionError(
            f"Access denied: step '{node.label}' is assigned to another user",
            step_id=node.id,
            user_id=user.id,
            assignee_id=node.assignee_id,
        )
    return user


def can_complete(case: Case, document: WorkflowDocument, user_id: Optional[str],
                 resolve_user: ResolveUser) -> bool:
    """Whether ``user_id`` may act on the case's current step right now."""
    node = document.get_node(case.current_workflow_step_id)
    if node is None or node.type == NodeType.END:
        return False
    try:
        authorize_step(node, user_id, resolve_user)
    except StepPermissionError:
        return False
    return True


def complete_step(case: Case, document: WorkflowDocument, from_step_id: str, acting_user_id: str,
                  chosen_next_step_id: Optional[str] = None, now: Optional[datetime] = None,
                  resolve_user: Optional[ResolveUser] = None, strict: bool = False) -> Case:
    """
    Move a case along an edge leaving ``from_step_id``.

    Appends one history entry for the step being left, moves the case to the
    resolved next step, closes it when that step is an End node and hands it
    to the next step's assignee when one is set.

    Returns:
        Case: The updated case; ``case`` itself is not modified
    """
    from_node = _require_step(document, from_step_id)
    if from_node.type == NodeType.END:
        raise CaseClosedError(
            f"Case '{case.id}' is closed at '{from_node.label}' and accepts no further transitions",
            step_id=from_step_id,
            case_id=case.id,
        )

    next_step_id = resolve_next_step(document, from_step_id, chosen_next_step_id, strict=strict)
    next_node = document.get_node(next_step_id)

    assignee_id = case.assignee_id
    if next_node.assignee_id:
        if resolve_user is None or resolve_user(next_node.assignee_id) is not None:
            assignee_id = next_node.assignee_id
        else:
            logger.warning(f"Step {next_step_id} is assigned to unknown user {next_node.assignee_id}; "
                           f"keeping assignee {case.assignee_id}")

    event = WorkflowEvent(step_id=from_step_id, user_id=acting_user_id, completed_at=now or utcnow())
    return case.model_copy(update={
        "current_workflow_step_id": next_step_id,
        "workflow_history": [*case.workflow_history, event],
        "status": CaseStatus.CLOSED if next_node.type == NodeType.END else case.status,
        "assignee_id": assignee_id,
    })


def set_step(case: Case, document: WorkflowDocument, new_step_id: str) -> Case:
    """Place a case directly on a step, bypassing edges and leaving history untouched."""
    node = _require_step(document, new_step_id)
    return case.model_copy(update={
        "current_workflow_step_id": node.id,
        "status": status_for_node(node),
    })


def step_display_status(case: Case, node_id: str) -> StepDisplayStatus:
    if case.current_workflow_step_id == node_id:
        return StepDisplayStatus.IN_PROGRESS
    if any(event.step_id == node_id for event in case.workflow_history):
        return StepDisplayStatus.COMPLETED
    return StepDisplayStatus.PENDING


def step_statuses(document: WorkflowDocument, case: Case) -> Dict[str, StepDisplayStatus]:
    """Display status of every node for one case, in document order."""
    return {node.id: step_display_status(case, node.id) for node in document.nodes}


class CaseProgressionEngine:
    """Applies transitions to cases and reports every updated case.

    A transition either applies completely (form data, history, step, status
    and assignee together) or raises and leaves the case as it was.
    """

    def __init__(self, resolve_user: ResolveUser, on_case_change: Optional[CaseCallback] = None,
                 strict_transitions: bool = False, clock: Clock = utcnow):
        self._resolve_user = resolve_user
        self._on_case_change = on_case_change
        self.strict_transitions = strict_transitions
        self._clock = clock

    def _notify(self, case: Case) -> None:
        if self._on_case_change is not None:
            self._on_case_change(case)

    def complete_step(self, case: Case, document: WorkflowDocument, from_step_id: str, acting_user_id: str,
                      chosen_next_step_id: Optional[str] = None,
                      form_values: Optional[Mapping[str, Any]] = None) -> Case:
        """
        Complete the case's current step on behalf of ``acting_user_id``.

        Args:
            case: The case being advanced
            document: The workflow of the case's app
            from_step_id: The step the caller believes the case is at
            acting_user_id: The user completing the step
            chosen_next_step_id: Decision target for steps with several outgoing edges
            form_values: Values submitted for the step's form

        Returns:
            Case: The updated case, already handed to the persistence callback

        Raises:
            StaleStepError: If the case is no longer at ``from_step_id``
            StepPermissionError: If the user may not complete the step
            WorkflowValidationError: If the form submission is invalid
            DeadEndError: If the step has no outgoing edge
        """
        try:
            updated = self._advance(case, document, from_step_id, acting_user_id,
                                    chosen_next_step_id, form_values)
        except WorkflowEngineError as e:
            events.log_rejected(case.id, from_step_id, e)
            raise

        self._notify(updated)
        events.log_transition(case.id, from_step_id, updated.current_workflow_step_id,
                              updated.status.value, user_id=acting_user_id)
        return updated

    def _advance(self, case: Case, document: WorkflowDocument, from_step_id: str, acting_user_id: str,
                 chosen_next_step_id: Optional[str], form_values: Optional[Mapping[str, Any]]) -> Case:
        if case.current_workflow_step_id != from_step_id:
            raise StaleStepError(
                f"Case '{case.id}' is at '{case.current_workflow_step_id}', not '{from_step_id}'",
                step_id=from_step_id,
                case_id=case.id,
                current_step_id=case.current_workflow_step_id,
            )

        from_node = _require_step(document, from_step_id)
        if from_node.type == NodeType.END:
            raise CaseClosedError(
                f"Case '{case.id}' is closed and accepts no further transitions",
                step_id=from_step_id,
                case_id=case.id,
            )
        authorize_step(from_node, acting_user_id, self._resolve_user)

        # Form values and the move land together or not at all
        working = case
        if from_node.form is not None:
            values = validate_submission(from_node.form, case.form_data, form_values)
            working = case.model_copy(update={"form_data": {**case.form_data, **values}})

        return complete_step(
            working,
            document,
            from_step_id,
            acting_user_id,
            chosen_next_step_id=chosen_next_step_id,
            now=self._clock(),
            resolve_user=self._resolve_user,
            strict=self.strict_transitions,
        )

    def set_step(self, case: Case, document: WorkflowDocument, new_step_id: str) -> Case:
        """Manual override used by board drag-and-drop; not recorded in history."""
        updated = set_step(case, document, new_step_id)
        self._notify(updated)
        events.log_transition(case.id, case.current_workflow_step_id, new_step_id,
                              updated.status.value, manual=True)
        return updated
