"""Seed data: the canonical default workflow and demo users, apps and cases."""

from datetime import datetime, timezone
from typing import List, Tuple

from .case import Case, CasePriority, CaseStatus, User, UserRole, WorkflowEvent
from .workflow import (
    FormField,
    FormFieldType,
    FormMode,
    NodeForm,
    NodeType,
    Position,
    WorkflowDocument,
    WorkflowEdge,
    WorkflowNode,
)


def default_workflow() -> WorkflowDocument:
    """Start -> Triage (fill) -> Approval (branches) -> Investigate -> End, or Rejected."""
    return WorkflowDocument(
        nodes=[
            WorkflowNode(id="start", type=NodeType.START, label="Case Created", position=Position(x=50, y=150)),
            WorkflowNode(
                id="triage",
                type=NodeType.TASK,
                label="Initial Triage",
                position=Position(x=250, y=150),
                form=NodeForm(
                    mode=FormMode.FILL,
                    fields=[
                        FormField(id="triage-notes", label="Triage Notes", type=FormFieldType.TEXTAREA, required=True),
                        FormField(id="is-critical", label="Is Critical?", type=FormFieldType.CHECKBOX),
                    ],
                ),
            ),
            WorkflowNode(
                id="approval",
                type=NodeType.TASK,
                label="Manager Approval",
                position=Position(x=450, y=150),
                form=NodeForm(
                    mode=FormMode.APPROVAL,
                    fields=[
                        FormField(
                            id="readonly-triage-notes",
                            label="Triage Notes",
                            type=FormFieldType.READONLY_TEXT,
                            source_field_id="triage-notes",
                        ),
                        FormField(
                            id="readonly-is-critical",
                            label="Is Critical?",
                            type=FormFieldType.READONLY_TEXT,
                            source_field_id="is-critical",
                        ),
                    ],
                ),
            ),
            WorkflowNode(
                id="investigate",
                type=NodeType.TASK,
                label="Further Investigation",
                position=Position(x=650, y=50),
                form=NodeForm(
                    mode=FormMode.FILL,
                    fields=[
                        FormField(
                            id="investigation-summary",
                            label="Investigation Summary",
                            type=FormFieldType.TEXTAREA,
                            required=True,
                        ),
                    ],
                ),
            ),
            WorkflowNode(id="rejected", type=NodeType.END, label="Close as Rejected", position=Position(x=650, y=250)),
            WorkflowNode(id="end", type=NodeType.END, label="Case Closed", position=Position(x=850, y=50)),
        ],
        edges=[
            WorkflowEdge(id="e-start-triage", source="start", target="triage"),
            WorkflowEdge(id="e-triage-approval", source="triage", target="approval"),
            WorkflowEdge(id="e-approval-investigate", source="approval", target="investigate"),
            WorkflowEdge(id="e-approval-rejected", source="approval", target="rejected"),
            WorkflowEdge(id="e-investigate-end", source="investigate", target="end"),
        ],
    )


DEFAULT_USERS: List[User] = [
    User(id="user-1", name="Alina Petrova", email="alina.petrova@example.com", role=UserRole.ADMIN,
         avatar_url="https://picsum.photos/id/1027/100/100"),
    User(id="user-2", name="Ben Carter", email="ben.carter@example.com", role=UserRole.MEMBER,
         avatar_url="https://picsum.photos/id/1005/100/100"),
    User(id="user-3", name="Chen Lin", email="chen.lin@example.com", role=UserRole.MEMBER,
         avatar_url="https://picsum.photos/id/1011/100/100"),
]

# (id, name, icon, theme color)
DEMO_APPS = [
    ("app-1", "Support Desk", "📞", "blue"),
    ("app-2", "Dev Projects", "💻", "purple"),
    ("app-3", "HR Onboarding", "👥", "green"),
]


def _at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 7, day, hour, minute, tzinfo=timezone.utc)


def _history(*events: Tuple[str, str, datetime]) -> List[WorkflowEvent]:
    return [WorkflowEvent(step_id=step_id, user_id=user_id, completed_at=at) for step_id, user_id, at in events]


DEMO_CASES: List[Case] = [
    Case(
        id="case-1",
        app_id="app-1",
        title="Client Portal Login Failure on Mobile",
        description="Users on iOS devices are unable to log in to the client portal. The login button is "
                    "unresponsive on Safari for iOS 17 and later; Android and desktop browsers are unaffected.",
        status=CaseStatus.NEW,
        priority=CasePriority.HIGH,
        assignee_id="user-1",
        client="Innovate Corp",
        tags=["bug", "mobile", "portal"],
        created_at=_at(28, 10),
        current_workflow_step_id="start",
    ),
    Case(
        id="case-2",
        app_id="app-2",
        title="Deploy Staging Environment for Q3 Features",
        description="Provision servers, configure the database and set up CI/CD pipelines for a staging "
                    "environment that the Q3 feature releases can be tested on.",
        status=CaseStatus.NEW,
        priority=CasePriority.MEDIUM,
        assignee_id="user-2",
        client="Internal",
        tags=["devops", "infrastructure"],
        created_at=_at(28, 11, 30),
        current_workflow_step_id="start",
    ),
    Case(
        id="case-3",
        app_id="app-1",
        title="API Rate Limiting Investigation",
        description="The customer API returns intermittent 429 responses. Find the source of the traffic "
                    "spikes and check whether the current rate limits are appropriate.",
        status=CaseStatus.IN_PROGRESS,
        priority=CasePriority.URGENT,
        assignee_id="user-3",
        client="Apex Solutions",
        tags=["api", "performance", "investigation"],
        created_at=_at(27, 14),
        current_workflow_step_id="triage",
        workflow_history=_history(("start", "user-2", _at(27, 15))),
    ),
    Case(
        id="case-4",
        app_id="app-3",
        title="Onboard New Marketing Team Member",
        description="A new marketing specialist starts next Monday. Prepare hardware, create the usual "
                    "accounts and schedule introductory meetings.",
        status=CaseStatus.IN_PROGRESS,
        priority=CasePriority.LOW,
        assignee_id="user-2",
        client="Internal",
        tags=["onboarding", "hr"],
        created_at=_at(26, 9),
        current_workflow_step_id="approval",
        workflow_history=_history(("start", "user-1", _at(26, 10)), ("triage", "user-1", _at(26, 11))),
        form_data={
            "triage-notes": "New hire setup requested by HR. Standard hardware and software access needed.",
            "is-critical": False,
        },
    ),
    Case(
        id="case-5",
        app_id="app-3",
        title="Review and Approve Q2 Financial Report",
        description="The Q2 financial report is ready for management review. Verify all figures and "
                    "approve by end of day Friday.",
        status=CaseStatus.REVIEW,
        priority=CasePriority.HIGH,
        assignee_id="user-1",
        client="Internal",
        tags=["finance", "report", "review"],
        created_at=_at(25, 16, 45),
        current_workflow_step_id="approval",
        workflow_history=_history(("start", "user-2", _at(25, 17)), ("triage", "user-2", _at(25, 18))),
        form_data={
            "triage-notes": "Finance team has submitted the Q2 report for final sign-off.",
            "is-critical": True,
        },
    ),
    Case(
        id="case-6",
        app_id="app-2",
        title="Update Third-Party SSL Certificate",
        description="The wildcard API certificate expires in 14 days. Deploy the newly procured certificate "
                    "across all production load balancers.",
        status=CaseStatus.CLOSED,
        priority=CasePriority.MEDIUM,
        assignee_id="user-3",
        client="Global Tech",
        tags=["security", "ssl", "completed"],
        created_at=_at(15, 12),
        current_workflow_step_id="end",
        workflow_history=_history(
            ("start", "user-2", _at(15, 12, 30)),
            ("triage", "user-2", _at(15, 13)),
            ("approval", "user-1", _at(15, 14)),
            ("investigate", "user-3", _at(16, 9)),
        ),
        form_data={
            "triage-notes": "SSL cert expiring soon. Coordinated with vendor.",
            "is-critical": True,
            "investigation-summary": "Certificate rolled out to every load balancer.",
        },
    ),
]
