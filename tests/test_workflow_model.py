"""Tests for the workflow document models."""

import pytest
from pydantic import ValidationError

from casework.models import (
    FormField,
    FormFieldType,
    FormMode,
    NodeForm,
    NodeType,
    WorkflowDocument,
    WorkflowEdge,
    WorkflowNode,
)


class TestWorkflowDocument:
    """Test cases for WorkflowDocument."""

    def test_default_workflow_shape(self, document):
        assert document.node_ids() == ["start", "triage", "approval", "investigate", "rejected", "end"]
        assert len(document.edges) == 5
        assert [n.id for n in document.start_nodes()] == ["start"]
        assert set(document.field_index()) == {
            "triage-notes",
            "is-critical",
            "readonly-triage-notes",
            "readonly-is-critical",
            "investigation-summary",
        }

    def test_outgoing_edges_keep_document_order(self, document):
        targets = [edge.target for edge in document.outgoing_edges("approval")]
        assert targets == ["investigate", "rejected"]
        assert document.outgoing_edges("end") == []
        assert [edge.source for edge in document.incoming_edges("triage")] == ["start"]

    def test_documents_are_frozen(self, document):
        with pytest.raises(ValidationError):
            document.nodes = []
        with pytest.raises(ValidationError):
            document.nodes[0].label = "Renamed"

    def test_duplicate_node_ids_rejected(self):
        with pytest.raises(ValidationError):
            WorkflowDocument(nodes=[
                WorkflowNode(id="a", type=NodeType.START, label="A"),
                WorkflowNode(id="a", type=NodeType.END, label="A again"),
            ])

    def test_duplicate_edge_ids_rejected(self):
        with pytest.raises(ValidationError):
            WorkflowDocument(
                nodes=[
                    WorkflowNode(id="a", type=NodeType.START, label="A"),
                    WorkflowNode(id="b", type=NodeType.END, label="B"),
                ],
                edges=[
                    WorkflowEdge(id="e", source="a", target="b"),
                    WorkflowEdge(id="e", source="b", target="a"),
                ],
            )

    def test_field_ids_unique_across_nodes(self):
        with pytest.raises(ValidationError):
            WorkflowDocument(nodes=[
                WorkflowNode(id="one", type=NodeType.TASK, label="One",
                             form=NodeForm(fields=[FormField(id="notes", label="Notes")])),
                WorkflowNode(id="two", type=NodeType.TASK, label="Two",
                             form=NodeForm(fields=[FormField(id="notes", label="Notes")])),
            ])

    def test_json_round_trip(self, document):
        restored = WorkflowDocument.model_validate(document.model_dump(mode="json"))
        assert restored == document


class TestWorkflowNode:
    """Test cases for nodes and form fields."""

    def test_only_tasks_carry_forms(self):
        with pytest.raises(ValidationError):
            WorkflowNode(id="s", type=NodeType.START, label="Start", form=NodeForm())

    def test_invalid_node_id(self):
        with pytest.raises(ValidationError):
            WorkflowNode(id="bad id!", type=NodeType.TASK, label="Task")

    def test_readonly_fields_are_never_required(self):
        form_field = FormField(id="copy", label="Copy", type=FormFieldType.READONLY_TEXT,
                               required=True, source_field_id="notes")
        assert form_field.required is False

    def test_blank_select_options_dropped(self):
        form_field = FormField(id="choice", label="Choice", type=FormFieldType.SELECT,
                               options=["a", " ", "", "b "])
        assert form_field.options == ["a", "b"]

    def test_form_defaults(self):
        form = NodeForm()
        assert form.mode == FormMode.FILL
        assert form.fields == []
        assert form.get_field("missing") is None
