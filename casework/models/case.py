"""Pydantic models for apps, cases and users."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .workflow import WorkflowDocument


class CaseStatus(str, Enum):
    """Lifecycle status of a case."""
    NEW = "New"
    IN_PROGRESS = "In Progress"
    REVIEW = "In Review"
    CLOSED = "Closed"


class CasePriority(str, Enum):
    """Priority of a case."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


class UserRole(str, Enum):
    """Role of a user across all apps."""
    ADMIN = "Admin"
    MEMBER = "Member"


class StepDisplayStatus(str, Enum):
    """Progress of a single workflow step for one case."""
    COMPLETED = "Completed"
    IN_PROGRESS = "In Progress"
    PENDING = "Pending"


class User(BaseModel):
    """A person who can act on cases."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="User ID")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Email address")
    role: UserRole = Field(UserRole.MEMBER, description="User role")
    avatar_url: Optional[str] = Field(None, description="Avatar image URL")


class WorkflowEvent(BaseModel):
    """History entry appended whenever a case leaves a step."""
    model_config = ConfigDict(frozen=True)

    step_id: str = Field(..., description="Step the case left")
    user_id: str = Field(..., description="User who completed the step")
    completed_at: datetime = Field(..., description="Completion timestamp")


class Case(BaseModel):
    """A unit of work moving through an app's workflow."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Case ID")
    app_id: str = Field(..., description="Owning app ID")
    title: str = Field(..., description="Case title")
    description: str = Field("", description="Case description")
    status: CaseStatus = Field(CaseStatus.NEW, description="Lifecycle status")
    priority: CasePriority = Field(CasePriority.MEDIUM, description="Priority")
    assignee_id: Optional[str] = Field(None, description="User currently responsible for the case")
    client: str = Field("", description="Client the case is for")
    tags: List[str] = Field(default_factory=list, description="Free-form tags")
    created_at: datetime = Field(..., description="Creation timestamp")
    current_workflow_step_id: Optional[str] = Field(None, description="Node the case is sitting at")
    workflow_history: List[WorkflowEvent] = Field(default_factory=list, description="Completed steps, oldest first")
    form_data: Dict[str, Any] = Field(default_factory=dict, description="Values recorded across all steps")

    @field_validator('title')
    @classmethod
    def validate_title(cls, title):
        """Ensure case title is not empty."""
        if not title or not title.strip():
            raise ValueError("Case title cannot be empty")
        return title.strip()

    @field_validator('tags')
    @classmethod
    def validate_tags(cls, tags):
        return [tag.strip() for tag in tags if tag and tag.strip()]


class AppDefinition(BaseModel):
    """A tenant app owning one workflow document and its cases."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="App ID")
    name: str = Field(..., description="App name")
    icon: str = Field("", description="Emoji or short icon text")
    theme_color: str = Field("blue", description="Theme color name")
    workflow: WorkflowDocument = Field(default_factory=WorkflowDocument, description="Workflow document")

    @field_validator('name')
    @classmethod
    def validate_name_not_empty(cls, name):
        """Ensure app name is not empty."""
        if not name or not name.strip():
            raise ValueError("App name cannot be empty")
        return name.strip()
