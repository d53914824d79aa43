"""Workflow graph editing.

Every command here is a pure function ``(document, ...) -> document``: it
builds a new :class:`WorkflowDocument` and never touches the one it was
given. :class:`WorkflowEditor` wraps the commands with the single side
effect of the authoring half, handing each new document to the persistence
callback.
"""

import uuid
from collections import deque
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from pydantic import ValidationError

from ..models.workflow import (
    FormField,
    FormFieldType,
    FormMode,
    NodeForm,
    NodeType,
    Position,
    ValidationResult,
    WorkflowDocument,
    WorkflowEdge,
    WorkflowNode,
)
from .exceptions import NodeReferenceError, WorkflowValidationError
from .logging import CaseEventLogger, get_logger

logger = get_logger(__name__)
events = CaseEventLogger("editor")

DocumentCallback = Callable[[WorkflowDocument], None]
PositionLike = Union[Position, Mapping[str, float], Tuple[float, float]]

_DEFAULT_LABELS: Dict[NodeType, str] = {
    NodeType.START: "Start",
    NodeType.END: "End",
    NodeType.TASK: "Task",
    NodeType.GATEWAY: "Gateway",
    NodeType.TIMER: "Timer",
    NodeType.MESSAGE: "Message",
}

_EDITABLE_NODE_KEYS = {"label", "description", "assignee_id", "form"}


def default_label(node_type: NodeType) -> str:
    """Label given to a freshly dropped node."""
    return _DEFAULT_LABELS[node_type]


def _rebuild(document: WorkflowDocument, nodes: Optional[List[WorkflowNode]] = None,
             edges: Optional[List[WorkflowEdge]] = None) -> WorkflowDocument:
    try:
        return WorkflowDocument(
            nodes=list(document.nodes) if nodes is None else nodes,
            edges=list(document.edges) if edges is None else edges,
        )
    except ValidationError as e:
        raise WorkflowValidationError(f"Invalid workflow document: {e}")


def _as_position(position: PositionLike) -> Position:
    if isinstance(position, Position):
        return position
    try:
        if isinstance(position, Mapping):
            return Position(**position)
        x, y = position
        return Position(x=x, y=y)
    except (TypeError, ValueError) as e:
        raise WorkflowValidationError(f"Invalid position {position!r}: {e}")


def _require_node(document: WorkflowDocument, node_id: str) -> WorkflowNode:
    node = document.get_node(node_id)
    if node is None:
        raise NodeReferenceError(f"Node '{node_id}' does not exist in the workflow", reference=node_id)
    return node


def _replace_node(document: WorkflowDocument, updated: WorkflowNode) -> WorkflowDocument:
    return _rebuild(document, nodes=[updated if n.id == updated.id else n for n in document.nodes])


def _unique_id(prefix: str, taken: Iterable[str]) -> str:
    taken = set(taken)
    while True:
        candidate = f"{prefix}-{uuid.uuid4().hex[:8]}"
        if candidate not in taken:
            return candidate


def _check_fields(document: WorkflowDocument, node_id: str, fields: List[FormField]) -> None:
    """Validate a node's prospective field list against the whole document."""
    others = {field_id for field_id, (owner, _) in document.field_index().items() if owner != node_id}
    seen: Set[str] = set()
    for form_field in fields:
        if form_field.id in others or form_field.id in seen:
            raise WorkflowValidationError(
                f"Field ID '{form_field.id}' is already used in this workflow",
                field_id=form_field.id,
                node_id=node_id,
            )
        seen.add(form_field.id)

    known = others | seen
    for form_field in fields:
        if form_field.type == FormFieldType.SELECT and not form_field.options:
            raise WorkflowValidationError(
                f"Select field '{form_field.label}' needs at least one option",
                field_id=form_field.id,
                node_id=node_id,
            )
        if form_field.type == FormFieldType.READONLY_TEXT and form_field.source_field_id:
            if form_field.source_field_id not in known or form_field.source_field_id == form_field.id:
                raise WorkflowValidationError(
                    f"Read-only field '{form_field.label}' references unknown field "
                    f"'{form_field.source_field_id}'",
                    field_id=form_field.id,
                    node_id=node_id,
                )


def _with_form(document: WorkflowDocument, node: WorkflowNode, form: NodeForm) -> WorkflowDocument:
    if node.type != NodeType.TASK:
        raise WorkflowValidationError(
            f"Only Task nodes can have a form, '{node.id}' is a {node.type.value} node",
            node_id=node.id,
        )
    _check_fields(document, node.id, form.fields)
    return _replace_node(document, node.model_copy(update={"form": form}))


def _require_form(node: WorkflowNode) -> NodeForm:
    if node.form is None:
        raise WorkflowValidationError(f"Node '{node.id}' has no form", node_id=node.id)
    return node.form


def _build_field(data: Union[FormField, Mapping[str, Any]]) -> FormField:
    if isinstance(data, FormField):
        return data
    try:
        return FormField(**data)
    except ValidationError as e:
        raise WorkflowValidationError(f"Invalid form field: {e}")


# Node commands

def add_node(document: WorkflowDocument, node_type: NodeType, position: PositionLike,
             node_id: Optional[str] = None, label: Optional[str] = None) -> Tuple[WorkflowDocument, WorkflowNode]:
    """Add a node; Task nodes start with an empty FILL form."""
    try:
        node_type = NodeType(node_type)
    except ValueError:
        raise WorkflowValidationError(f"Unknown node type: {node_type}")
    if node_id is not None and document.get_node(node_id) is not None:
        raise WorkflowValidationError(f"Node ID '{node_id}' already exists", node_id=node_id)

    try:
        node = WorkflowNode(
            id=node_id or _unique_id("node", document.node_ids()),
            type=node_type,
            label=label or default_label(node_type),
            position=_as_position(position),
            form=NodeForm(mode=FormMode.FILL, fields=[]) if node_type == NodeType.TASK else None,
        )
    except ValidationError as e:
        raise WorkflowValidationError(f"Invalid node: {e}")
    return _rebuild(document, nodes=[*document.nodes, node]), node


def move_node(document: WorkflowDocument, node_id: str, position: PositionLike) -> WorkflowDocument:
    node = _require_node(document, node_id)
    return _replace_node(document, node.model_copy(update={"position": _as_position(position)}))


def update_node(document: WorkflowDocument, node_id: str, patch: Mapping[str, Any]) -> WorkflowDocument:
    """Apply a partial update to a node's label, description, assignee or form."""
    node = _require_node(document, node_id)
    unknown = set(patch) - _EDITABLE_NODE_KEYS
    if unknown:
        raise WorkflowValidationError(
            f"Cannot update node attribute(s): {', '.join(sorted(unknown))}",
            node_id=node_id,
        )

    updates: Dict[str, Any] = {}
    if "label" in patch:
        label = (patch["label"] or "").strip()
        if not label:
            raise WorkflowValidationError("Node label cannot be empty", node_id=node_id)
        updates["label"] = label
    if "description" in patch:
        updates["description"] = patch["description"]
    if "assignee_id" in patch:
        assignee_id = patch["assignee_id"] or None
        if assignee_id and node.type != NodeType.TASK:
            raise WorkflowValidationError(
                f"Only Task nodes can be assigned, '{node_id}' is a {node.type.value} node",
                node_id=node_id,
            )
        updates["assignee_id"] = assignee_id

    updated = node.model_copy(update=updates)
    if "form" not in patch:
        return _replace_node(document, updated)

    form = patch["form"]
    if form is None:
        return _replace_node(document, updated.model_copy(update={"form": None}))
    if not isinstance(form, NodeForm):
        try:
            form = NodeForm(**form)
        except ValidationError as e:
            raise WorkflowValidationError(f"Invalid form: {e}", node_id=node_id)
    return _with_form(_replace_node(document, updated), updated, form)


def delete_node(document: WorkflowDocument, node_id: str) -> WorkflowDocument:
    """Remove a node together with every edge that touches it."""
    _require_node(document, node_id)
    return _rebuild(
        document,
        nodes=[n for n in document.nodes if n.id != node_id],
        edges=[e for e in document.edges if e.source != node_id and e.target != node_id],
    )


# Edge commands

def connect(document: WorkflowDocument, source_id: str, target_id: str,
            allow_self_loops: bool = False, label: Optional[str] = None) -> Tuple[WorkflowDocument, Optional[WorkflowEdge]]:
    """Connect two nodes.

    Returns the document unchanged and ``None`` when the ordered pair is
    already connected or when the edge would be a refused self-loop.
    """
    _require_node(document, source_id)
    _require_node(document, target_id)

    if source_id == target_id and not allow_self_loops:
        logger.debug(f"Refusing self-loop on node {source_id}")
        return document, None
    if any(e.source == source_id and e.target == target_id for e in document.edges):
        logger.debug(f"Edge {source_id} -> {target_id} already exists")
        return document, None

    edge_ids = {e.id for e in document.edges}
    edge_id = f"edge-{source_id}-{target_id}"
    if edge_id in edge_ids:
        edge_id = _unique_id(edge_id, edge_ids)
    edge = WorkflowEdge(id=edge_id, source=source_id, target=target_id, label=label)
    return _rebuild(document, edges=[*document.edges, edge]), edge


def delete_edge(document: WorkflowDocument, edge_id: str) -> WorkflowDocument:
    if document.get_edge(edge_id) is None:
        raise NodeReferenceError(f"Edge '{edge_id}' does not exist in the workflow", reference=edge_id, kind="edge")
    return _rebuild(document, edges=[e for e in document.edges if e.id != edge_id])


# Form commands

def set_form_mode(document: WorkflowDocument, node_id: str, mode: FormMode) -> WorkflowDocument:
    node = _require_node(document, node_id)
    try:
        mode = FormMode(mode)
    except ValueError:
        raise WorkflowValidationError(f"Unknown form mode: {mode}", node_id=node_id)
    form = node.form or NodeForm(mode=mode, fields=[])
    return _with_form(document, node, form.model_copy(update={"mode": mode}))


def add_form_field(document: WorkflowDocument, node_id: str,
                   form_field: Union[FormField, Mapping[str, Any]]) -> WorkflowDocument:
    """Append a field to a node's form; the field id must be new to the whole workflow."""
    node = _require_node(document, node_id)
    form = _require_form(node)
    new_field = _build_field(form_field)
    return _with_form(document, node, form.model_copy(update={"fields": [*form.fields, new_field]}))


def update_form_field(document: WorkflowDocument, node_id: str, field_id: str,
                      patch: Mapping[str, Any]) -> WorkflowDocument:
    node = _require_node(document, node_id)
    form = _require_form(node)
    existing = form.get_field(field_id)
    if existing is None:
        raise NodeReferenceError(
            f"Field '{field_id}' does not exist on node '{node_id}'", reference=field_id, kind="field"
        )
    updated = _build_field({**existing.model_dump(), **dict(patch)})
    fields = [updated if f.id == field_id else f for f in form.fields]
    return _with_form(document, node, form.model_copy(update={"fields": fields}))


def delete_form_field(document: WorkflowDocument, node_id: str, field_id: str) -> WorkflowDocument:
    node = _require_node(document, node_id)
    form = _require_form(node)
    if form.get_field(field_id) is None:
        raise NodeReferenceError(
            f"Field '{field_id}' does not exist on node '{node_id}'", reference=field_id, kind="field"
        )
    fields = [f for f in form.fields if f.id != field_id]
    return _replace_node(document, node.model_copy(update={"form": form.model_copy(update={"fields": fields})}))


# Validation

def _find_reachable_nodes(entry_points: List[str], edges: List[WorkflowEdge]) -> Set[str]:
    """Find all nodes reachable from the entry points."""
    edge_map: Dict[str, List[str]] = {}
    for edge in edges:
        edge_map.setdefault(edge.source, []).append(edge.target)

    reachable = set(entry_points)
    queue = deque(entry_points)
    while queue:
        current = queue.popleft()
        for neighbor in edge_map.get(current, []):
            if neighbor not in reachable:
                reachable.add(neighbor)
                queue.append(neighbor)
    return reachable


def validate_document(document: WorkflowDocument, known_user_ids: Optional[Iterable[str]] = None) -> ValidationResult:
    """
    Check a workflow document for structural problems.

    Dangling edge references are errors. Modelling smells that the engine
    tolerates at runtime (missing or duplicate Start nodes, unreachable
    nodes, dead ends, ambiguous FILL steps, projections of missing fields,
    edges back into a Start node, steps gated to unknown users) are reported
    as warnings.

    Args:
        document: The document to validate
        known_user_ids: Ids of existing users; assignees are only checked when given

    Returns:
        ValidationResult: Validation results with errors and warnings
    """
    errors: List[str] = []
    warnings: List[str] = []
    node_ids = set(document.node_ids())

    for edge in document.edges:
        if edge.source not in node_ids:
            errors.append(f"Edge '{edge.id}' references non-existent source node: '{edge.source}'")
        if edge.target not in node_ids:
            errors.append(f"Edge '{edge.id}' references non-existent target node: '{edge.target}'")

    starts = [node.id for node in document.start_nodes()]
    if not starts:
        warnings.append("Workflow has no Start node")
    elif len(starts) > 1:
        warnings.append(f"Workflow has several Start nodes: {', '.join(starts)}; cases begin at '{starts[0]}'")

    if starts:
        unreachable = node_ids - _find_reachable_nodes(starts, document.edges)
        if unreachable:
            warnings.append(f"Unreachable nodes detected: {', '.join(sorted(unreachable))}")

    users = set(known_user_ids) if known_user_ids is not None else None
    for node in document.nodes:
        outgoing = document.outgoing_edges(node.id)
        if node.type != NodeType.END and not outgoing:
            warnings.append(f"Node '{node.id}' has no outgoing edge")
        if node.form and node.form.mode == FormMode.FILL and len(outgoing) > 1:
            warnings.append(
                f"FILL step '{node.id}' has {len(outgoing)} outgoing edges; completion follows the first"
            )
        if node.type == NodeType.START and document.incoming_edges(node.id):
            warnings.append(f"Start node '{node.id}' has incoming edges; cases sent back keep their status")
        if users is not None and node.assignee_id and node.assignee_id not in users:
            warnings.append(f"Node '{node.id}' is assigned to unknown user '{node.assignee_id}'")

    index = document.field_index()
    for field_id, (node_id, form_field) in index.items():
        source = form_field.source_field_id
        if form_field.type == FormFieldType.READONLY_TEXT and source and source not in index:
            warnings.append(f"Read-only field '{field_id}' on '{node_id}' references unknown field '{source}'")

    logger.debug(f"Workflow validation completed. Errors: {len(errors)}, Warnings: {len(warnings)}")
    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


class WorkflowEditor:
    """Applies editing commands to a document and reports every new version.

    The editor owns nothing but the reference to the current document; the
    persistence callback receives the full new document after each change.
    """

    def __init__(self, document: WorkflowDocument, on_document_change: Optional[DocumentCallback] = None,
                 allow_self_loops: bool = False):
        self._document = document
        self._on_document_change = on_document_change
        self.allow_self_loops = allow_self_loops

    @property
    def document(self) -> WorkflowDocument:
        return self._document

    def _apply(self, new_document: WorkflowDocument, operation: str) -> WorkflowDocument:
        if new_document is self._document:
            return new_document
        if self._on_document_change is not None:
            self._on_document_change(new_document)
        self._document = new_document
        events.log_workflow_change(operation, len(new_document.nodes), len(new_document.edges))
        return new_document

    def add_node(self, node_type: NodeType, position: PositionLike, node_id: Optional[str] = None,
                 label: Optional[str] = None) -> WorkflowNode:
        document, node = add_node(self._document, node_type, position, node_id=node_id, label=label)
        self._apply(document, "add_node")
        return node

    def move_node(self, node_id: str, position: PositionLike) -> WorkflowDocument:
        return self._apply(move_node(self._document, node_id, position), "move_node")

    def connect(self, source_id: str, target_id: str, label: Optional[str] = None) -> Optional[WorkflowEdge]:
        document, edge = connect(self._document, source_id, target_id,
                                 allow_self_loops=self.allow_self_loops, label=label)
        self._apply(document, "connect")
        return edge

    def update_node(self, node_id: str, patch: Mapping[str, Any]) -> WorkflowDocument:
        return self._apply(update_node(self._document, node_id, patch), "update_node")

    def delete_node(self, node_id: str) -> WorkflowDocument:
        return self._apply(delete_node(self._document, node_id), "delete_node")

    def delete_edge(self, edge_id: str) -> WorkflowDocument:
        return self._apply(delete_edge(self._document, edge_id), "delete_edge")

    def set_form_mode(self, node_id: str, mode: FormMode) -> WorkflowDocument:
        return self._apply(set_form_mode(self._document, node_id, mode), "set_form_mode")

    def add_form_field(self, node_id: str, form_field: Union[FormField, Mapping[str, Any]]) -> WorkflowDocument:
        return self._apply(add_form_field(self._document, node_id, form_field), "add_form_field")

    def update_form_field(self, node_id: str, field_id: str, patch: Mapping[str, Any]) -> WorkflowDocument:
        return self._apply(update_form_field(self._document, node_id, field_id, patch), "update_form_field")

    def delete_form_field(self, node_id: str, field_id: str) -> WorkflowDocument:
        return self._apply(delete_form_field(self._document, node_id, field_id), "delete_form_field")

    def validate(self) -> ValidationResult:
        return validate_document(self._document)
