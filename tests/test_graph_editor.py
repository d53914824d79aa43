"""Tests for the workflow graph editor."""

import pytest

from casework.core.exceptions import NodeReferenceError, WorkflowValidationError
from casework.core.graph_editor import (
    WorkflowEditor,
    add_form_field,
    add_node,
    connect,
    default_label,
    delete_edge,
    delete_form_field,
    delete_node,
    move_node,
    set_form_mode,
    update_form_field,
    update_node,
    validate_document,
)
from casework.models import (
    FormFieldType,
    FormMode,
    NodeType,
    Position,
    WorkflowDocument,
    WorkflowEdge,
    WorkflowNode,
)


class TestNodeCommands:
    """Test cases for adding, moving, updating and deleting nodes."""

    @pytest.mark.parametrize("node_type", list(NodeType))
    def test_add_node_every_type(self, document, node_type):
        new_document, node = add_node(document, node_type, Position(x=10, y=20))

        assert node.type == node_type
        assert node.label == default_label(node_type)
        assert node.position == Position(x=10, y=20)
        assert new_document.get_node(node.id) == node
        assert len(document.nodes) == 6
        if node_type == NodeType.TASK:
            assert node.form is not None
            assert node.form.mode == FormMode.FILL
            assert node.form.fields == []
        else:
            assert node.form is None

    def test_add_node_generates_unique_ids(self, document):
        document, first = add_node(document, NodeType.TASK, (0, 0))
        document, second = add_node(document, NodeType.TASK, (0, 0))
        assert first.id != second.id

    def test_add_node_rejects_existing_id(self, document):
        with pytest.raises(WorkflowValidationError):
            add_node(document, NodeType.TASK, (0, 0), node_id="triage")

    def test_add_node_rejects_unknown_type(self, document):
        with pytest.raises(WorkflowValidationError):
            add_node(document, "Banana", (0, 0))

    def test_move_node_accepts_mapping_and_tuple(self, document):
        moved = move_node(document, "triage", {"x": 300, "y": 75})
        assert moved.get_node("triage").position == Position(x=300, y=75)

        moved = move_node(moved, "triage", (1, 2))
        assert moved.get_node("triage").position == Position(x=1, y=2)
        assert document.get_node("triage").position == Position(x=250, y=150)

    def test_move_unknown_node(self, document):
        with pytest.raises(NodeReferenceError):
            move_node(document, "nowhere", (0, 0))

    def test_delete_node_removes_touching_edges(self, document):
        trimmed = delete_node(document, "approval")

        assert trimmed.get_node("approval") is None
        assert [edge.id for edge in trimmed.edges] == ["e-start-triage", "e-investigate-end"]
        assert all("approval" not in (edge.source, edge.target) for edge in trimmed.edges)
        assert len(document.edges) == 5

    def test_update_node_label_and_assignee(self, document):
        updated = update_node(document, "approval", {"label": "Lead Approval", "assignee_id": "user-2"})
        node = updated.get_node("approval")
        assert node.label == "Lead Approval"
        assert node.assignee_id == "user-2"
        assert node.form == document.get_node("approval").form

        cleared = update_node(updated, "approval", {"assignee_id": None})
        assert cleared.get_node("approval").assignee_id is None

    def test_update_node_rejects_empty_label(self, document):
        with pytest.raises(WorkflowValidationError):
            update_node(document, "triage", {"label": "   "})

    def test_update_node_rejects_unknown_attributes(self, document):
        with pytest.raises(WorkflowValidationError):
            update_node(document, "triage", {"type": "End"})

    def test_only_tasks_can_be_assigned(self, document):
        with pytest.raises(WorkflowValidationError):
            update_node(document, "start", {"assignee_id": "user-1"})

    def test_update_node_replaces_form(self, document):
        updated = update_node(document, "investigate", {
            "form": {"mode": "APPROVAL", "fields": [{"id": "decision-notes", "label": "Decision Notes"}]}
        })
        form = updated.get_node("investigate").form
        assert form.mode == FormMode.APPROVAL
        assert [f.id for f in form.fields] == ["decision-notes"]


class TestEdgeCommands:
    """Test cases for connecting and disconnecting nodes."""

    def test_connect_adds_edge(self, document):
        connected, edge = connect(document, "triage", "end")

        assert edge is not None
        assert edge.source == "triage"
        assert edge.target == "end"
        assert connected.get_edge(edge.id) == edge
        assert len(connected.edges) == 6

    def test_connect_is_idempotent(self, document):
        connected, edge = connect(document, "triage", "end")
        again, duplicate = connect(connected, "triage", "end")

        assert duplicate is None
        assert again is connected
        assert len(again.outgoing_edges("triage")) == 2

    def test_reverse_direction_is_a_new_edge(self, document):
        connected, edge = connect(document, "approval", "triage")
        assert edge is not None
        assert len(connected.edges) == 6

    def test_self_loops_refused_by_default(self, document):
        same, edge = connect(document, "triage", "triage")
        assert edge is None
        assert same is document

        looped, edge = connect(document, "triage", "triage", allow_self_loops=True)
        assert edge is not None
        assert edge.source == edge.target == "triage"

    def test_connect_unknown_node(self, document):
        with pytest.raises(NodeReferenceError):
            connect(document, "triage", "nowhere")

    def test_delete_edge(self, document):
        trimmed = delete_edge(document, "e-approval-rejected")
        assert trimmed.get_edge("e-approval-rejected") is None
        assert [edge.target for edge in trimmed.outgoing_edges("approval")] == ["investigate"]

        with pytest.raises(NodeReferenceError):
            delete_edge(trimmed, "e-approval-rejected")


class TestFormCommands:
    """Test cases for editing node forms."""

    def test_set_form_mode(self, document):
        updated = set_form_mode(document, "approval", FormMode.FILL)
        assert updated.get_node("approval").form.mode == FormMode.FILL
        assert len(updated.get_node("approval").form.fields) == 2

    def test_set_form_mode_on_non_task(self, document):
        with pytest.raises(WorkflowValidationError):
            set_form_mode(document, "start", FormMode.APPROVAL)

    def test_add_form_field(self, document):
        updated = add_form_field(document, "investigate", {
            "id": "root-cause",
            "label": "Root Cause",
            "type": "select",
            "options": ["Hardware", "Software"],
        })
        fields = updated.get_node("investigate").form.fields
        assert [f.id for f in fields] == ["investigation-summary", "root-cause"]
        assert fields[1].type == FormFieldType.SELECT

    def test_field_ids_unique_across_workflow(self, document):
        with pytest.raises(WorkflowValidationError):
            add_form_field(document, "investigate", {"id": "triage-notes", "label": "Notes again"})

    def test_select_needs_options(self, document):
        with pytest.raises(WorkflowValidationError):
            add_form_field(document, "investigate", {"id": "pick", "label": "Pick", "type": "select"})

    def test_readonly_source_must_exist(self, document):
        with pytest.raises(WorkflowValidationError):
            add_form_field(document, "investigate", {
                "id": "copy", "label": "Copy", "type": "readonly-text", "source_field_id": "missing"
            })

        updated = add_form_field(document, "investigate", {
            "id": "copy", "label": "Copy", "type": "readonly-text", "source_field_id": "triage-notes"
        })
        assert updated.get_node("investigate").form.get_field("copy").source_field_id == "triage-notes"

    def test_add_field_to_node_without_form(self, document):
        with pytest.raises(WorkflowValidationError):
            add_form_field(document, "start", {"id": "x", "label": "X"})

    def test_update_form_field(self, document):
        updated = update_form_field(document, "triage", "triage-notes", {"label": "Notes", "required": False})
        form_field = updated.get_node("triage").form.get_field("triage-notes")
        assert form_field.label == "Notes"
        assert form_field.required is False
        assert form_field.type == FormFieldType.TEXTAREA

    def test_update_unknown_field(self, document):
        with pytest.raises(NodeReferenceError):
            update_form_field(document, "triage", "missing", {"label": "X"})

    def test_delete_form_field(self, document):
        updated = delete_form_field(document, "triage", "is-critical")
        assert [f.id for f in updated.get_node("triage").form.fields] == ["triage-notes"]

    def test_deleting_projected_field_leaves_warning(self, document):
        updated = delete_form_field(document, "triage", "triage-notes")
        result = validate_document(updated)
        assert result.is_valid
        assert any("readonly-triage-notes" in warning for warning in result.warnings)


class TestValidateDocument:
    """Test cases for structural validation."""

    def test_default_workflow_is_clean(self, document):
        result = validate_document(document)
        assert result.is_valid
        assert result.errors == []
        assert result.warnings == []

    def test_dangling_edges_are_errors(self):
        broken = WorkflowDocument(
            nodes=[WorkflowNode(id="start", type=NodeType.START, label="Start")],
            edges=[WorkflowEdge(id="e1", source="start", target="ghost")],
        )
        result = validate_document(broken)
        assert not result.is_valid
        assert "ghost" in result.errors[0]

    def test_orphan_task_warnings(self, document):
        updated, node = add_node(document, NodeType.TASK, (0, 400), node_id="orphan")
        result = validate_document(updated)
        assert result.is_valid
        assert any("Unreachable" in w and "orphan" in w for w in result.warnings)
        assert any("'orphan' has no outgoing edge" in w for w in result.warnings)

    def test_missing_start_warning(self, document):
        result = validate_document(delete_node(document, "start"))
        assert any("no Start node" in w for w in result.warnings)

    def test_several_starts_warning(self, document):
        updated, _ = add_node(document, NodeType.START, (0, 0), node_id="start-2")
        updated, _ = connect(updated, "start-2", "triage")
        result = validate_document(updated)
        assert any("several Start nodes" in w for w in result.warnings)

    def test_branching_fill_step_warning(self, document):
        updated, _ = connect(document, "triage", "rejected")
        result = validate_document(updated)
        assert any("FILL step 'triage'" in w for w in result.warnings)

    def test_edge_back_to_start_warning(self, document):
        updated, _ = connect(document, "triage", "start")
        result = validate_document(updated)
        assert any("Start node 'start' has incoming edges" in w for w in result.warnings)

    def test_unknown_assignee_warning(self, document):
        updated = update_node(document, "approval", {"assignee_id": "user-9"})

        assert validate_document(updated).warnings == []
        result = validate_document(updated, known_user_ids=["user-1", "user-2"])
        assert result.warnings == ["Node 'approval' is assigned to unknown user 'user-9'"]


class TestWorkflowEditor:
    """Test cases for the editor wrapper and its persistence callback."""

    def test_callback_receives_each_new_document(self, document):
        saved = []
        editor = WorkflowEditor(document, on_document_change=saved.append)

        node = editor.add_node(NodeType.TASK, (700, 300), node_id="review")
        editor.connect("approval", "review")
        editor.update_node("review", {"label": "Peer Review"})

        assert len(saved) == 3
        assert saved[-1] is editor.document
        assert editor.document.get_node("review").label == "Peer Review"
        assert node.label == "Task"
        assert document.get_node("review") is None

    def test_no_callback_for_refused_connect(self, document):
        saved = []
        editor = WorkflowEditor(document, on_document_change=saved.append)

        assert editor.connect("start", "triage") is None
        assert editor.connect("triage", "triage") is None
        assert saved == []

    def test_no_callback_when_command_fails(self, document):
        saved = []
        editor = WorkflowEditor(document, on_document_change=saved.append)

        with pytest.raises(NodeReferenceError):
            editor.delete_node("nowhere")
        assert saved == []
        assert editor.document is document

    def test_allow_self_loops(self, document):
        editor = WorkflowEditor(document, allow_self_loops=True)
        edge = editor.connect("investigate", "investigate")
        assert edge is not None
        assert editor.validate().is_valid
