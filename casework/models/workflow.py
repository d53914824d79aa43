"""Pydantic models for workflow documents."""

import re
from enum import Enum
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator


_ID_PATTERN = re.compile(r'^[a-zA-Z0-9_-]+$')


class NodeType(str, Enum):
    """Kinds of step a workflow node can represent."""
    START = "Start"
    END = "End"
    TASK = "Task"
    GATEWAY = "Gateway"
    TIMER = "Timer"
    MESSAGE = "Message"


class FormMode(str, Enum):
    """How a task's form completes the step."""
    FILL = "FILL"
    APPROVAL = "APPROVAL"


class FormFieldType(str, Enum):
    """Input types supported by node forms."""
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    DATE = "date"
    SELECT = "select"
    CHECKBOX = "checkbox"
    READONLY_TEXT = "readonly-text"


class ValidationResult(BaseModel):
    """Result of workflow document validation."""
    is_valid: bool = Field(..., description="Whether the document is valid")
    errors: List[str] = Field(default_factory=list, description="List of validation errors")
    warnings: List[str] = Field(default_factory=list, description="List of validation warnings")


class Position(BaseModel):
    """Authoring position of a node on the canvas."""
    model_config = ConfigDict(frozen=True)

    x: float = Field(0, description="Horizontal canvas coordinate")
    y: float = Field(0, description="Vertical canvas coordinate")


class FormField(BaseModel):
    """A single input rendered by a node form."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Field identifier, unique across the workflow")
    label: str = Field(..., description="Human readable label")
    type: FormFieldType = Field(FormFieldType.TEXT, description="Input type")
    required: bool = Field(False, description="Whether a value must be supplied")
    options: Optional[List[str]] = Field(None, description="Choices for select fields")
    source_field_id: Optional[str] = Field(None, description="Field projected by readonly-text fields")

    @field_validator('id')
    @classmethod
    def validate_id_format(cls, id_value):
        """Ensure field ID follows valid format."""
        if not id_value or not id_value.strip():
            raise ValueError("Field ID cannot be empty")
        if not _ID_PATTERN.match(id_value.strip()):
            raise ValueError("Field ID must contain only alphanumeric characters, underscores, and hyphens")
        return id_value.strip()

    @field_validator('required')
    @classmethod
    def validate_required(cls, required, info: ValidationInfo):
        """Readonly fields are never required."""
        if info.data.get('type') == FormFieldType.READONLY_TEXT:
            return False
        return required

    @field_validator('options')
    @classmethod
    def validate_options(cls, options):
        """Drop blank select options."""
        if options is None:
            return None
        return [opt.strip() for opt in options if opt and opt.strip()]


class NodeForm(BaseModel):
    """Form attached to a task node."""
    model_config = ConfigDict(frozen=True)

    mode: FormMode = Field(FormMode.FILL, description="Completion mode")
    fields: List[FormField] = Field(default_factory=list, description="Ordered form fields")

    def get_field(self, field_id: str) -> Optional[FormField]:
        return next((f for f in self.fields if f.id == field_id), None)


class WorkflowNode(BaseModel):
    """A step in a workflow graph."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique identifier for the node")
    type: NodeType = Field(..., description="Kind of step")
    label: str = Field(..., description="Display label")
    description: Optional[str] = Field(None, description="Optional longer description")
    position: Position = Field(default_factory=Position, description="Canvas position")
    assignee_id: Optional[str] = Field(None, description="User who alone may complete this step")
    form: Optional[NodeForm] = Field(None, description="Form presented at this step")

    @field_validator('id')
    @classmethod
    def validate_id_format(cls, id_value):
        """Ensure node ID follows valid format."""
        if not id_value or not id_value.strip():
            raise ValueError("Node ID cannot be empty")
        if not _ID_PATTERN.match(id_value.strip()):
            raise ValueError("Node ID must contain only alphanumeric characters, underscores, and hyphens")
        return id_value.strip()

    @model_validator(mode='after')
    def validate_form_owner(self):
        """Only task nodes carry forms."""
        if self.form is not None and self.type != NodeType.TASK:
            raise ValueError(f"Only Task nodes may carry a form, '{self.id}' is a {self.type.value} node")
        return self


class WorkflowEdge(BaseModel):
    """A directed transition between two nodes."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique identifier for the edge")
    source: str = Field(..., description="Source node ID")
    target: str = Field(..., description="Target node ID")
    label: Optional[str] = Field(None, description="Optional decision label")

    @field_validator('source', 'target')
    @classmethod
    def validate_node_ids(cls, node_id):
        """Ensure node IDs are valid."""
        if not node_id or not node_id.strip():
            raise ValueError("Node ID cannot be empty")
        return node_id.strip()


class WorkflowDocument(BaseModel):
    """Complete workflow graph owned by an app.

    Documents are values: editing operations build a new document and leave
    the previous one untouched.
    """
    model_config = ConfigDict(frozen=True)

    nodes: List[WorkflowNode] = Field(default_factory=list, description="Workflow steps")
    edges: List[WorkflowEdge] = Field(default_factory=list, description="Transitions between steps")

    @model_validator(mode='after')
    def validate_unique_ids(self):
        """Node, edge and form field ids must be unique within the document."""
        node_ids = [node.id for node in self.nodes]
        if len(node_ids) != len(set(node_ids)):
            raise ValueError("All node IDs must be unique")

        edge_ids = [edge.id for edge in self.edges]
        if len(edge_ids) != len(set(edge_ids)):
            raise ValueError("All edge IDs must be unique")

        seen = set()
        for node in self.nodes:
            for form_field in (node.form.fields if node.form else []):
                if form_field.id in seen:
                    raise ValueError(f"Field ID '{form_field.id}' is used more than once in the workflow")
                seen.add(form_field.id)
        return self

    def get_node(self, node_id: Optional[str]) -> Optional[WorkflowNode]:
        return next((n for n in self.nodes if n.id == node_id), None)

    def get_edge(self, edge_id: str) -> Optional[WorkflowEdge]:
        return next((e for e in self.edges if e.id == edge_id), None)

    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def outgoing_edges(self, node_id: str) -> List[WorkflowEdge]:
        """Edges leaving a node, in document order."""
        return [edge for edge in self.edges if edge.source == node_id]

    def incoming_edges(self, node_id: str) -> List[WorkflowEdge]:
        return [edge for edge in self.edges if edge.target == node_id]

    def start_nodes(self) -> List[WorkflowNode]:
        return [node for node in self.nodes if node.type == NodeType.START]

    def field_index(self) -> Dict[str, Tuple[str, FormField]]:
        """Flat map of every form field id to its owning node id and definition."""
        index: Dict[str, Tuple[str, FormField]] = {}
        for node in self.nodes:
            if node.form:
                for form_field in node.form.fields:
                    index[form_field.id] = (node.id, form_field)
        return index
