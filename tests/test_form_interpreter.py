"""Tests for form rendering and submission validation."""

from datetime import date

import pytest

from casework.core.exceptions import WorkflowValidationError
from casework.core.form_interpreter import (
    NOT_PROVIDED,
    display_value,
    render_form,
    validate_submission,
)
from casework.models import FormField, FormFieldType, NodeForm


@pytest.fixture
def triage_form(document):
    return document.get_node("triage").form


@pytest.fixture
def approval_form(document):
    return document.get_node("approval").form


@pytest.fixture
def typed_form():
    return NodeForm(fields=[
        FormField(id="amount", label="Amount", type=FormFieldType.NUMBER),
        FormField(id="due", label="Due Date", type=FormFieldType.DATE),
        FormField(id="tier", label="Tier", type=FormFieldType.SELECT, options=["Gold", "Silver"]),
        FormField(id="urgent", label="Urgent", type=FormFieldType.CHECKBOX),
    ])


class TestRenderForm:
    """Test cases for rendering a form against recorded data."""

    def test_empty_fill_form(self, triage_form):
        rendered = render_form(triage_form, {})

        assert [f.id for f in rendered] == ["triage-notes", "is-critical"]
        assert rendered[0].value == ""
        assert rendered[0].required is True
        assert rendered[1].value is False
        assert not any(f.read_only for f in rendered)

    def test_readonly_fields_project_source_values(self, approval_form):
        rendered = render_form(approval_form, {"triage-notes": "investigated", "is-critical": True})

        assert all(f.read_only for f in rendered)
        assert [f.display_value for f in rendered] == ["investigated", "Yes"]

    def test_readonly_missing_and_false_values(self, approval_form):
        rendered = render_form(approval_form, {"is-critical": False})
        assert [f.display_value for f in rendered] == [NOT_PROVIDED, "No"]

    def test_typed_values_decoded(self, typed_form):
        rendered = render_form(typed_form, {"amount": "12", "due": "2024-03-01", "urgent": "yes"})
        values = {f.id: f.value for f in rendered}

        assert values["amount"] == 12
        assert values["due"] == date(2024, 3, 1)
        assert values["tier"] == ""
        assert values["urgent"] is True

    def test_display_value(self):
        assert display_value(True) == "Yes"
        assert display_value(None) == NOT_PROVIDED
        assert display_value("") == NOT_PROVIDED
        assert display_value(0) == "0"


class TestValidateSubmission:
    """Test cases for validating submitted values."""

    def test_missing_required_field(self, triage_form):
        with pytest.raises(WorkflowValidationError) as exc_info:
            validate_submission(triage_form, {}, {"triage-notes": ""})
        assert "Triage Notes" in exc_info.value.message
        assert exc_info.value.context["field_id"] == "triage-notes"

    def test_valid_submission(self, triage_form):
        values = validate_submission(triage_form, {}, {"triage-notes": "investigated", "is-critical": True})
        assert values == {"triage-notes": "investigated", "is-critical": True}

    def test_recorded_values_fill_gaps(self, triage_form):
        values = validate_submission(triage_form, {"triage-notes": "from before"}, {"is-critical": "true"})
        assert values == {"triage-notes": "from before", "is-critical": True}

    def test_submitted_values_win(self, triage_form):
        values = validate_submission(triage_form, {"triage-notes": "old"}, {"triage-notes": "new"})
        assert values["triage-notes"] == "new"

    def test_readonly_and_unknown_values_ignored(self, approval_form):
        values = validate_submission(approval_form, {}, {"readonly-triage-notes": "tampered", "other": 1})
        assert values == {}

    def test_typed_coercion(self, typed_form):
        values = validate_submission(typed_form, {}, {
            "amount": "4.5",
            "due": date(2024, 5, 6),
            "tier": "Gold",
            "urgent": 0,
        })
        assert values == {"amount": 4.5, "due": "2024-05-06", "tier": "Gold", "urgent": False}

    @pytest.mark.parametrize("submitted", [
        {"amount": "lots"},
        {"amount": True},
        {"due": "03/01/2024"},
        {"tier": "Bronze"},
        {"urgent": "maybe"},
    ])
    def test_malformed_values(self, typed_form, submitted):
        with pytest.raises(WorkflowValidationError):
            validate_submission(typed_form, {}, submitted)
