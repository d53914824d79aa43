"""Tests for the storage-backed managers."""

import pytest

from casework.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    StaleStepError,
    WorkflowValidationError,
)
from casework.core.graph_editor import delete_node
from casework.models import (
    CasePriority,
    CaseStatus,
    NodeType,
    UserRole,
    WorkflowDocument,
    WorkflowEdge,
    WorkflowNode,
)


class TestUserDirectory:
    """Test cases for UserDirectory."""

    def test_seed_is_idempotent(self, user_directory):
        assert [user.id for user in user_directory.list_users()] == ["user-1", "user-2", "user-3"]
        assert user_directory.seed() == 0

    def test_resolve_user(self, user_directory):
        assert user_directory.resolve_user("user-1").role == UserRole.ADMIN
        assert user_directory.resolve_user("ghost") is None
        assert user_directory.resolve_user(None) is None
        with pytest.raises(NotFoundError):
            user_directory.get_user("ghost")

    def test_invite_user(self, user_directory):
        user = user_directory.invite_user("dana.ortiz@example.com")

        assert user.name == "dana.ortiz"
        assert user.role == UserRole.MEMBER
        assert user.avatar_url.endswith("dana.ortiz@example.com")
        assert user_directory.resolve_user(user.id) == user

    def test_invite_rejects_duplicates_and_bad_email(self, user_directory):
        with pytest.raises(WorkflowValidationError, match="already exists"):
            user_directory.invite_user("Ben.Carter@Example.com")
        with pytest.raises(WorkflowValidationError):
            user_directory.invite_user("not-an-email")

    def test_update_user(self, user_directory):
        updated = user_directory.update_user("user-2", name="Benjamin Carter", role=UserRole.ADMIN)
        assert updated.name == "Benjamin Carter"
        assert user_directory.resolve_user("user-2").role == UserRole.ADMIN

        with pytest.raises(NotFoundError):
            user_directory.update_user("ghost", name="Nobody")

    def test_delete_user(self, user_directory):
        with pytest.raises(PermissionDeniedError):
            user_directory.delete_user("user-1", acting_user_id="user-1")

        assert user_directory.delete_user("user-3", acting_user_id="user-1")
        assert user_directory.resolve_user("user-3") is None
        assert not user_directory.delete_user("user-3", acting_user_id="user-1")

    def test_require_admin(self, user_directory):
        assert user_directory.require_admin("user-1").id == "user-1"
        with pytest.raises(PermissionDeniedError):
            user_directory.require_admin("user-2")
        with pytest.raises(PermissionDeniedError):
            user_directory.require_admin(None)


class TestAppManager:
    """Test cases for AppManager."""

    def test_create_app_with_default_workflow(self, app_manager, support_app, document):
        assert support_app.id == "app-1"
        assert support_app.workflow == document

        stored = app_manager.get_app("app-1")
        assert stored.name == "Support Desk"
        assert stored.icon == "📞"
        assert stored.workflow == document

    def test_duplicate_app_id(self, app_manager, support_app):
        with pytest.raises(WorkflowValidationError):
            app_manager.create_app("Again", app_id="app-1")

    def test_invalid_app(self, app_manager):
        with pytest.raises(WorkflowValidationError):
            app_manager.create_app("   ")

        broken = WorkflowDocument(
            nodes=[WorkflowNode(id="start", type=NodeType.START, label="Start")],
            edges=[WorkflowEdge(id="e1", source="start", target="ghost")],
        )
        with pytest.raises(WorkflowValidationError):
            app_manager.create_app("Broken", workflow=broken)

    def test_get_unknown_app(self, app_manager):
        with pytest.raises(NotFoundError):
            app_manager.get_app("app-missing")

    def test_list_and_update_apps(self, app_manager):
        assert app_manager.seed_demo_apps() == 3
        assert app_manager.seed_demo_apps() == 0
        assert [app.id for app in app_manager.list_apps()] == ["app-1", "app-2", "app-3"]

        updated = app_manager.update_app("app-2", name="Engineering", theme_color="red")
        assert updated.name == "Engineering"
        assert updated.icon == "💻"
        assert app_manager.get_app("app-2").theme_color == "red"

    def test_editor_persists_every_change(self, app_manager, support_app):
        editor = app_manager.editor_for("app-1")
        editor.add_node(NodeType.TASK, (650, 400), node_id="escalate")
        editor.connect("approval", "escalate")

        stored = app_manager.get_workflow("app-1")
        assert stored.get_node("escalate") is not None
        assert [edge.target for edge in stored.outgoing_edges("approval")] == ["investigate", "rejected", "escalate"]

    def test_replace_workflow(self, app_manager, support_app, document):
        result = app_manager.replace_workflow("app-1", delete_node(document, "investigate"))
        assert result.is_valid
        assert app_manager.get_workflow("app-1").get_node("investigate") is None
        assert app_manager.validate_workflow("app-1").is_valid

    def test_delete_app_deletes_cases(self, app_manager, case_manager, support_app):
        case = case_manager.create_case("app-1", "Doomed")

        assert app_manager.delete_app("app-1")
        assert not app_manager.delete_app("app-1")
        with pytest.raises(NotFoundError):
            case_manager.get_case(case.id)
        assert case_manager.list_cases() == []


class TestCaseManager:
    """Test cases for CaseManager."""

    def test_create_case(self, case_manager, support_app, clock):
        case = case_manager.create_case("app-1", "Printer on fire", priority=CasePriority.URGENT,
                                        assignee_id="user-2", client="Acme", tags=["hardware", " "])

        assert case.current_workflow_step_id == "start"
        assert case.status == CaseStatus.NEW
        assert case.created_at == clock.readings[0]
        assert case.tags == ["hardware"]
        assert case_manager.get_case(case.id) == case

    def test_create_case_errors(self, case_manager, support_app):
        with pytest.raises(NotFoundError):
            case_manager.create_case("app-missing", "Lost")
        with pytest.raises(WorkflowValidationError):
            case_manager.create_case("app-1", "Nobody", assignee_id="ghost")
        with pytest.raises(WorkflowValidationError):
            case_manager.create_case("app-1", "  ")

    def test_list_cases_newest_first(self, case_manager, app_manager, support_app):
        app_manager.create_app("Other", app_id="app-2")
        first = case_manager.create_case("app-1", "First")
        second = case_manager.create_case("app-2", "Second")
        third = case_manager.create_case("app-1", "Third")

        assert [c.id for c in case_manager.list_cases()] == [third.id, second.id, first.id]
        assert [c.id for c in case_manager.list_cases("app-1")] == [third.id, first.id]

    def test_progress_is_persisted(self, case_manager, support_app):
        case = case_manager.create_case("app-1", "Printer on fire")
        case_manager.complete_step(case.id, "start", "user-1")
        case_manager.complete_step(case.id, "triage", "user-1",
                                   form_values={"triage-notes": "investigated", "is-critical": True})

        stored = case_manager.get_case(case.id)
        assert stored.current_workflow_step_id == "approval"
        assert stored.form_data == {"triage-notes": "investigated", "is-critical": True}
        assert [e.step_id for e in stored.workflow_history] == ["start", "triage"]
        assert all(e.completed_at.tzinfo is not None for e in stored.workflow_history)

        closed = case_manager.complete_step(case.id, "approval", "user-1", chosen_next_step_id="rejected")
        assert closed == case_manager.get_case(case.id)
        assert closed.status == CaseStatus.CLOSED

    def test_failed_completion_changes_nothing(self, case_manager, support_app):
        case = case_manager.create_case("app-1", "Printer on fire")
        at_triage = case_manager.complete_step(case.id, "start", "user-1")

        with pytest.raises(WorkflowValidationError):
            case_manager.complete_step(case.id, "triage", "user-1", form_values={"is-critical": True})
        with pytest.raises(StaleStepError):
            case_manager.complete_step(case.id, "start", "user-1")

        assert case_manager.get_case(case.id) == at_triage

    def test_seed_demo_cases(self, case_manager, app_manager):
        app_manager.seed_demo_apps()

        assert case_manager.seed_demo_cases() == 6
        assert case_manager.seed_demo_cases() == 0
        assert [c.id for c in case_manager.list_cases("app-3")] == ["case-4", "case-5"]

        closed = case_manager.get_case("case-6")
        assert closed.status == CaseStatus.CLOSED
        assert [e.step_id for e in closed.workflow_history] == ["start", "triage", "approval", "investigate"]

        moved = case_manager.complete_step("case-3", "triage", "user-3", form_values={"triage-notes": "Bot traffic"})
        assert moved.current_workflow_step_id == "approval"
        assert len(moved.workflow_history) == 2

    def test_seed_demo_cases_skips_missing_apps(self, case_manager, support_app):
        assert case_manager.seed_demo_cases() == 2
        assert {c.id for c in case_manager.list_cases()} == {"case-1", "case-3"}

    def test_set_step(self, case_manager, support_app):
        case = case_manager.create_case("app-1", "Printer on fire")

        moved = case_manager.set_step(case.id, "end")
        assert moved.status == CaseStatus.CLOSED
        assert case_manager.get_case(case.id).current_workflow_step_id == "end"
        assert case_manager.get_case(case.id).workflow_history == []

    def test_workflow_edits_apply_to_existing_cases(self, case_manager, app_manager, support_app):
        case = case_manager.create_case("app-1", "Printer on fire")
        app_manager.editor_for("app-1").update_node("approval", {"assignee_id": "user-3"})

        case_manager.complete_step(case.id, "start", "user-1")
        at_approval = case_manager.complete_step(case.id, "triage", "user-1",
                                                 form_values={"triage-notes": "seen"})
        assert at_approval.assignee_id == "user-3"
