"""FastAPI REST endpoints for apps, workflows and cases."""

from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, status
from pydantic import BaseModel, Field

from ..core.app_manager import AppManager
from ..core.case_manager import CaseManager
from ..core.exceptions import NotFoundError, WorkflowValidationError
from ..core.form_interpreter import RenderedField, render_form
from ..core.geometry import document_layout
from ..core.identity import UserDirectory
from ..core.logging import get_logger
from ..core.progression import can_complete, step_statuses
from ..core.projections import (
    BoardColumn,
    build_board,
    cases_awaiting_user,
    group_cases_by_status,
    recent_cases,
)
from ..models.case import AppDefinition, Case, CasePriority, StepDisplayStatus, User, UserRole
from ..models.workflow import (
    FormMode,
    NodeType,
    Position,
    ValidationResult,
    WorkflowDocument,
    WorkflowEdge,
    WorkflowNode,
)

logger = get_logger(__name__)

# Create router
router = APIRouter(prefix="/api/v1", tags=["casework"])

# Global instances (initialized by the application factory)
_app_manager: Optional[AppManager] = None
_case_manager: Optional[CaseManager] = None
_user_directory: Optional[UserDirectory] = None


def init_dependencies(
    app_manager: AppManager,
    case_manager: CaseManager,
    user_directory: UserDirectory
):
    """Initialize the global dependencies."""
    global _app_manager, _case_manager, _user_directory
    _app_manager = app_manager
    _case_manager = case_manager
    _user_directory = user_directory


def get_app_manager() -> AppManager:
    """Dependency to get app manager."""
    if _app_manager is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="App manager not initialized"
        )
    return _app_manager


def get_case_manager() -> CaseManager:
    """Dependency to get case manager."""
    if _case_manager is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Case manager not initialized"
        )
    return _case_manager


def get_user_directory() -> UserDirectory:
    """Dependency to get user directory."""
    if _user_directory is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="User directory not initialized"
        )
    return _user_directory


def get_acting_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> Optional[str]:
    """The user on whose behalf the request is made."""
    return x_user_id


# Request/Response models

class InviteUserRequest(BaseModel):
    """Request model for inviting a user."""
    email: str = Field(..., description="Email address of the new user")
    role: UserRole = Field(UserRole.MEMBER, description="Role of the new user")
    name: Optional[str] = Field(None, description="Display name; defaults to the email's local part")


class UpdateUserRequest(BaseModel):
    """Request model for updating a user."""
    name: Optional[str] = Field(None, description="New display name")
    role: Optional[UserRole] = Field(None, description="New role")


class CreateAppRequest(BaseModel):
    """Request model for creating an app."""
    name: str = Field(..., description="App name")
    icon: str = Field("", description="Emoji or short icon text")
    theme_color: str = Field("blue", description="Theme color name")
    workflow: Optional[WorkflowDocument] = Field(None, description="Initial workflow; the default when omitted")


class UpdateAppRequest(BaseModel):
    """Request model for updating an app."""
    name: Optional[str] = Field(None, description="New app name")
    icon: Optional[str] = Field(None, description="New icon")
    theme_color: Optional[str] = Field(None, description="New theme color")


class AddNodeRequest(BaseModel):
    """Request model for adding a node to a workflow."""
    type: NodeType = Field(..., description="Node type")
    position: Position = Field(default_factory=Position, description="Canvas position")
    id: Optional[str] = Field(None, description="Node ID; generated when omitted")
    label: Optional[str] = Field(None, description="Label; derived from the type when omitted")


class ConnectRequest(BaseModel):
    """Request model for connecting two nodes."""
    source: str = Field(..., description="Source node ID")
    target: str = Field(..., description="Target node ID")
    label: Optional[str] = Field(None, description="Optional decision label")


class ConnectResponse(BaseModel):
    """Response model for a connect command."""
    created: bool = Field(..., description="Whether a new edge was added")
    edge: Optional[WorkflowEdge] = Field(None, description="The new edge")
    workflow: WorkflowDocument = Field(..., description="Workflow after the command")


class FormModeRequest(BaseModel):
    mode: FormMode = Field(..., description="Completion mode")


class SegmentResponse(BaseModel):
    """Boundary-to-boundary segment for drawing one edge."""
    edge_id: str
    x1: float
    y1: float
    x2: float
    y2: float


class CreateCaseRequest(BaseModel):
    """Request model for creating a case."""
    title: str = Field(..., description="Case title")
    description: str = Field("", description="Case description")
    priority: CasePriority = Field(CasePriority.MEDIUM, description="Priority")
    assignee_id: Optional[str] = Field(None, description="Initial assignee")
    client: str = Field("", description="Client the case is for")
    tags: List[str] = Field(default_factory=list, description="Free-form tags")


class CompleteStepRequest(BaseModel):
    """Request model for completing a case's current step."""
    from_step_id: str = Field(..., description="Step the caller believes the case is at")
    chosen_next_step_id: Optional[str] = Field(None, description="Decision target for multi-edge steps")
    form_values: Dict[str, Any] = Field(default_factory=dict, description="Submitted form values")


class SetStepRequest(BaseModel):
    """Request model for placing a case directly on a step."""
    step_id: str = Field(..., description="Target step")


class DecisionOption(BaseModel):
    """One outgoing transition offered at an approval step."""
    edge_id: str
    target: str
    label: str


class CaseFormResponse(BaseModel):
    """The form a case presents at its current step."""
    case_id: str
    step_id: Optional[str]
    step_label: Optional[str]
    step_type: Optional[NodeType]
    mode: Optional[FormMode]
    fields: List[RenderedField] = Field(default_factory=list)
    decisions: List[DecisionOption] = Field(default_factory=list)
    assignee: Optional[User] = Field(None, description="User the current step is gated to")
    can_complete: bool = False


class StepProgress(BaseModel):
    """Display status of one workflow step for a case."""
    step_id: str
    label: str
    type: NodeType
    status: StepDisplayStatus
    assignee: Optional[User] = None


# Users

@router.get("/users", response_model=List[User], summary="List users")
async def list_users(user_directory: UserDirectory = Depends(get_user_directory)) -> List[User]:
    return user_directory.list_users()


@router.post(
    "/users",
    response_model=User,
    status_code=status.HTTP_201_CREATED,
    summary="Invite a user",
    description="Add a user by email; only admins may manage users"
)
async def invite_user(
    request: InviteUserRequest,
    acting_user_id: Optional[str] = Depends(get_acting_user_id),
    user_directory: UserDirectory = Depends(get_user_directory)
) -> User:
    user_directory.require_admin(acting_user_id)
    return user_directory.invite_user(request.email, role=request.role, name=request.name)


@router.patch("/users/{user_id}", response_model=User, summary="Update a user")
async def update_user(
    user_id: str,
    request: UpdateUserRequest,
    acting_user_id: Optional[str] = Depends(get_acting_user_id),
    user_directory: UserDirectory = Depends(get_user_directory)
) -> User:
    user_directory.require_admin(acting_user_id)
    return user_directory.update_user(user_id, name=request.name, role=request.role)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a user")
async def delete_user(
    user_id: str,
    acting_user_id: Optional[str] = Depends(get_acting_user_id),
    user_directory: UserDirectory = Depends(get_user_directory)
):
    user_directory.require_admin(acting_user_id)
    if not user_directory.delete_user(user_id, acting_user_id=acting_user_id):
        raise NotFoundError(f"User with ID '{user_id}' not found", resource="user", resource_id=user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Apps

@router.get("/apps", response_model=List[AppDefinition], summary="List apps")
async def list_apps(app_manager: AppManager = Depends(get_app_manager)) -> List[AppDefinition]:
    return app_manager.list_apps()


@router.post(
    "/apps",
    response_model=AppDefinition,
    status_code=status.HTTP_201_CREATED,
    summary="Create an app",
    description="Create an app; its workflow starts as the default workflow unless one is given"
)
async def create_app(
    request: CreateAppRequest,
    app_manager: AppManager = Depends(get_app_manager)
) -> AppDefinition:
    logger.info(f"Creating new app: {request.name}")
    return app_manager.create_app(
        request.name,
        icon=request.icon,
        theme_color=request.theme_color,
        workflow=request.workflow
    )


@router.get("/apps/{app_id}", response_model=AppDefinition, summary="Get an app")
async def get_app(app_id: str, app_manager: AppManager = Depends(get_app_manager)) -> AppDefinition:
    return app_manager.get_app(app_id)


@router.patch("/apps/{app_id}", response_model=AppDefinition, summary="Update an app")
async def update_app(
    app_id: str,
    request: UpdateAppRequest,
    app_manager: AppManager = Depends(get_app_manager)
) -> AppDefinition:
    return app_manager.update_app(app_id, name=request.name, icon=request.icon, theme_color=request.theme_color)


@router.delete(
    "/apps/{app_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an app",
    description="Delete an app together with all of its cases"
)
async def delete_app(app_id: str, app_manager: AppManager = Depends(get_app_manager)):
    if not app_manager.delete_app(app_id):
        raise NotFoundError(f"App with ID '{app_id}' not found", resource="app", resource_id=app_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Workflow documents

@router.get("/apps/{app_id}/workflow", response_model=WorkflowDocument, summary="Get an app's workflow")
async def get_workflow(app_id: str, app_manager: AppManager = Depends(get_app_manager)) -> WorkflowDocument:
    return app_manager.get_workflow(app_id)


@router.put("/apps/{app_id}/workflow", response_model=ValidationResult, summary="Replace an app's workflow")
async def replace_workflow(
    app_id: str,
    document: WorkflowDocument,
    app_manager: AppManager = Depends(get_app_manager)
) -> ValidationResult:
    return app_manager.replace_workflow(app_id, document)


@router.get("/apps/{app_id}/workflow/validate", response_model=ValidationResult, summary="Validate a workflow")
async def validate_workflow(
    app_id: str,
    app_manager: AppManager = Depends(get_app_manager),
    user_directory: UserDirectory = Depends(get_user_directory)
) -> ValidationResult:
    known_user_ids = [user.id for user in user_directory.list_users()]
    return app_manager.validate_workflow(app_id, known_user_ids=known_user_ids)


@router.get(
    "/apps/{app_id}/workflow/layout",
    response_model=List[SegmentResponse],
    summary="Edge geometry",
    description="Boundary-to-boundary segments for drawing every edge of the workflow"
)
async def get_workflow_layout(app_id: str, app_manager: AppManager = Depends(get_app_manager)) -> List[SegmentResponse]:
    return [
        SegmentResponse(edge_id=seg.edge_id, x1=seg.start.x, y1=seg.start.y, x2=seg.end.x, y2=seg.end.y)
        for seg in document_layout(app_manager.get_workflow(app_id))
    ]


@router.post(
    "/apps/{app_id}/workflow/nodes",
    response_model=WorkflowNode,
    status_code=status.HTTP_201_CREATED,
    summary="Add a node"
)
async def add_node(
    app_id: str,
    request: AddNodeRequest,
    app_manager: AppManager = Depends(get_app_manager)
) -> WorkflowNode:
    editor = app_manager.editor_for(app_id)
    return editor.add_node(request.type, request.position, node_id=request.id, label=request.label)


@router.patch("/apps/{app_id}/workflow/nodes/{node_id}", response_model=WorkflowDocument, summary="Update a node")
async def update_node(
    app_id: str,
    node_id: str,
    patch: Dict[str, Any],
    app_manager: AppManager = Depends(get_app_manager),
    user_directory: UserDirectory = Depends(get_user_directory)
) -> WorkflowDocument:
    assignee_id = patch.get("assignee_id")
    if assignee_id and user_directory.resolve_user(assignee_id) is None:
        raise WorkflowValidationError(
            f"Cannot assign node '{node_id}' to unknown user '{assignee_id}'",
            node_id=node_id,
            assignee_id=assignee_id
        )
    return app_manager.editor_for(app_id).update_node(node_id, patch)


@router.put(
    "/apps/{app_id}/workflow/nodes/{node_id}/position",
    response_model=WorkflowDocument,
    summary="Move a node"
)
async def move_node(
    app_id: str,
    node_id: str,
    position: Position,
    app_manager: AppManager = Depends(get_app_manager)
) -> WorkflowDocument:
    return app_manager.editor_for(app_id).move_node(node_id, position)


@router.delete(
    "/apps/{app_id}/workflow/nodes/{node_id}",
    response_model=WorkflowDocument,
    summary="Delete a node",
    description="Delete a node together with every edge touching it"
)
async def delete_node(app_id: str, node_id: str, app_manager: AppManager = Depends(get_app_manager)) -> WorkflowDocument:
    return app_manager.editor_for(app_id).delete_node(node_id)


@router.post("/apps/{app_id}/workflow/edges", response_model=ConnectResponse, summary="Connect two nodes")
async def connect_nodes(
    app_id: str,
    request: ConnectRequest,
    response: Response,
    app_manager: AppManager = Depends(get_app_manager)
) -> ConnectResponse:
    editor = app_manager.editor_for(app_id)
    edge = editor.connect(request.source, request.target, label=request.label)
    if edge is not None:
        response.status_code = status.HTTP_201_CREATED
    return ConnectResponse(created=edge is not None, edge=edge, workflow=editor.document)


@router.delete("/apps/{app_id}/workflow/edges/{edge_id}", response_model=WorkflowDocument, summary="Delete an edge")
async def delete_edge(app_id: str, edge_id: str, app_manager: AppManager = Depends(get_app_manager)) -> WorkflowDocument:
    return app_manager.editor_for(app_id).delete_edge(edge_id)


@router.put(
    "/apps/{app_id}/workflow/nodes/{node_id}/form/mode",
    response_model=WorkflowDocument,
    summary="Set a task's form mode"
)
async def set_form_mode(
    app_id: str,
    node_id: str,
    request: FormModeRequest,
    app_manager: AppManager = Depends(get_app_manager)
) -> WorkflowDocument:
    return app_manager.editor_for(app_id).set_form_mode(node_id, request.mode)


@router.post(
    "/apps/{app_id}/workflow/nodes/{node_id}/form/fields",
    response_model=WorkflowDocument,
    status_code=status.HTTP_201_CREATED,
    summary="Add a form field"
)
async def add_form_field(
    app_id: str,
    node_id: str,
    form_field: Dict[str, Any],
    app_manager: AppManager = Depends(get_app_manager)
) -> WorkflowDocument:
    return app_manager.editor_for(app_id).add_form_field(node_id, form_field)


@router.patch(
    "/apps/{app_id}/workflow/nodes/{node_id}/form/fields/{field_id}",
    response_model=WorkflowDocument,
    summary="Update a form field"
)
async def update_form_field(
    app_id: str,
    node_id: str,
    field_id: str,
    patch: Dict[str, Any],
    app_manager: AppManager = Depends(get_app_manager)
) -> WorkflowDocument:
    return app_manager.editor_for(app_id).update_form_field(node_id, field_id, patch)


@router.delete(
    "/apps/{app_id}/workflow/nodes/{node_id}/form/fields/{field_id}",
    response_model=WorkflowDocument,
    summary="Delete a form field"
)
async def delete_form_field(
    app_id: str,
    node_id: str,
    field_id: str,
    app_manager: AppManager = Depends(get_app_manager)
) -> WorkflowDocument:
    return app_manager.editor_for(app_id).delete_form_field(node_id, field_id)


# Board and case lists

@router.get(
    "/apps/{app_id}/board",
    response_model=List[BoardColumn],
    summary="Board columns",
    description="Start, Task and End steps left to right, each with the cases sitting at it"
)
async def get_board(
    app_id: str,
    app_manager: AppManager = Depends(get_app_manager),
    case_manager: CaseManager = Depends(get_case_manager)
) -> List[BoardColumn]:
    document = app_manager.get_workflow(app_id)
    return build_board(document, case_manager.list_cases(app_id))


@router.get("/apps/{app_id}/cases", response_model=List[Case], summary="List an app's cases")
async def list_app_cases(
    app_id: str,
    app_manager: AppManager = Depends(get_app_manager),
    case_manager: CaseManager = Depends(get_case_manager)
) -> List[Case]:
    app_manager.get_app(app_id)
    return case_manager.list_cases(app_id)


@router.get(
    "/apps/{app_id}/cases/by-status",
    response_model=Dict[str, List[Case]],
    summary="Cases grouped by status"
)
async def list_cases_by_status(
    app_id: str,
    app_manager: AppManager = Depends(get_app_manager),
    case_manager: CaseManager = Depends(get_case_manager)
) -> Dict[str, List[Case]]:
    app_manager.get_app(app_id)
    groups = group_cases_by_status(case_manager.list_cases(app_id))
    return {case_status.value: cases for case_status, cases in groups.items()}


@router.get(
    "/apps/{app_id}/cases/awaiting-me",
    response_model=List[Case],
    summary="Cases waiting on the acting user"
)
async def list_cases_awaiting_user(
    app_id: str,
    acting_user_id: Optional[str] = Depends(get_acting_user_id),
    app_manager: AppManager = Depends(get_app_manager),
    case_manager: CaseManager = Depends(get_case_manager)
) -> List[Case]:
    if not acting_user_id:
        return []
    document = app_manager.get_workflow(app_id)
    return cases_awaiting_user(case_manager.list_cases(app_id), document, acting_user_id)


@router.post(
    "/apps/{app_id}/cases",
    response_model=Case,
    status_code=status.HTTP_201_CREATED,
    summary="Create a case",
    description="Create a case at the app's Start step"
)
async def create_case(
    app_id: str,
    request: CreateCaseRequest,
    case_manager: CaseManager = Depends(get_case_manager)
) -> Case:
    return case_manager.create_case(
        app_id,
        request.title,
        description=request.description,
        priority=request.priority,
        assignee_id=request.assignee_id,
        client=request.client,
        tags=request.tags
    )


@router.get("/cases/recent", response_model=List[Case], summary="Most recent cases across all apps")
async def list_recent_cases(
    limit: int = Query(4, ge=1, le=100, description="Maximum number of cases"),
    case_manager: CaseManager = Depends(get_case_manager)
) -> List[Case]:
    return recent_cases(case_manager.list_cases(), limit=limit)


# Single cases

@router.get("/cases/{case_id}", response_model=Case, summary="Get a case")
async def get_case(case_id: str, case_manager: CaseManager = Depends(get_case_manager)) -> Case:
    return case_manager.get_case(case_id)


@router.get(
    "/cases/{case_id}/form",
    response_model=CaseFormResponse,
    summary="Current step form",
    description="The form, decisions and permission of the case's current step for the acting user"
)
async def get_case_form(
    case_id: str,
    acting_user_id: Optional[str] = Depends(get_acting_user_id),
    app_manager: AppManager = Depends(get_app_manager),
    case_manager: CaseManager = Depends(get_case_manager),
    user_directory: UserDirectory = Depends(get_user_directory)
) -> CaseFormResponse:
    case = case_manager.get_case(case_id)
    document = app_manager.get_workflow(case.app_id)
    node = document.get_node(case.current_workflow_step_id)
    if node is None:
        return CaseFormResponse(case_id=case.id, step_id=case.current_workflow_step_id,
                                step_label=None, step_type=None, mode=None)

    decisions = []
    if node.form is not None and node.form.mode == FormMode.APPROVAL:
        for edge in document.outgoing_edges(node.id):
            target = document.get_node(edge.target)
            label = edge.label or (target.label if target is not None else edge.target)
            decisions.append(DecisionOption(edge_id=edge.id, target=edge.target, label=label))

    return CaseFormResponse(
        case_id=case.id,
        step_id=node.id,
        step_label=node.label,
        step_type=node.type,
        mode=node.form.mode if node.form is not None else None,
        fields=render_form(node.form, case.form_data) if node.form is not None else [],
        decisions=decisions,
        assignee=user_directory.resolve_user(node.assignee_id),
        can_complete=can_complete(case, document, acting_user_id, user_directory.resolve_user)
    )


@router.get("/cases/{case_id}/progress", response_model=List[StepProgress], summary="Per-step progress of a case")
async def get_case_progress(
    case_id: str,
    app_manager: AppManager = Depends(get_app_manager),
    case_manager: CaseManager = Depends(get_case_manager),
    user_directory: UserDirectory = Depends(get_user_directory)
) -> List[StepProgress]:
    case = case_manager.get_case(case_id)
    document = app_manager.get_workflow(case.app_id)
    statuses = step_statuses(document, case)
    return [
        StepProgress(
            step_id=node.id,
            label=node.label,
            type=node.type,
            status=statuses[node.id],
            assignee=user_directory.resolve_user(node.assignee_id)
        )
        for node in document.nodes
    ]


@router.post(
    "/cases/{case_id}/complete",
    response_model=Case,
    summary="Complete the current step",
    description="Submit the current step's form and move the case along the chosen or only transition"
)
async def complete_step(
    case_id: str,
    request: CompleteStepRequest,
    acting_user_id: Optional[str] = Depends(get_acting_user_id),
    case_manager: CaseManager = Depends(get_case_manager)
) -> Case:
    logger.info(f"Completing step {request.from_step_id} of case {case_id} as {acting_user_id}")
    return case_manager.complete_step(
        case_id,
        request.from_step_id,
        acting_user_id,
        chosen_next_step_id=request.chosen_next_step_id,
        form_values=request.form_values
    )


@router.put(
    "/cases/{case_id}/step",
    response_model=Case,
    summary="Move a case to a step",
    description="Manual override used by the board; the workflow history is not changed"
)
async def set_case_step(
    case_id: str,
    request: SetStepRequest,
    case_manager: CaseManager = Depends(get_case_manager)
) -> Case:
    return case_manager.set_step(case_id, request.step_id)
