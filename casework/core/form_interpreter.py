"""Rendering and validation of node forms against a case's recorded data."""

from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from ..models.workflow import FormField, FormFieldType, NodeForm
from .exceptions import WorkflowValidationError
from .logging import get_logger

logger = get_logger(__name__)

NOT_PROVIDED = "Not provided"

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off", ""}


class RenderedField(BaseModel):
    """A form field paired with the value to show for one case."""
    id: str = Field(..., description="Field ID")
    label: str = Field(..., description="Field label")
    type: FormFieldType = Field(..., description="Field type")
    required: bool = Field(False, description="Whether a value must be supplied")
    read_only: bool = Field(False, description="Whether the value is a projection of another field")
    options: Optional[List[str]] = Field(None, description="Choices for select fields")
    value: Any = Field(None, description="Decoded value")
    display_value: str = Field("", description="Human readable value")


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def display_value(value: Any) -> str:
    """Format a recorded value for read-only display."""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if _is_empty(value):
        return NOT_PROVIDED
    return str(value)


# Decoding of recorded values; lenient, since stored data predates any schema edits.

def _decode_text(value: Any) -> Any:
    return "" if value is None else str(value)


def _decode_number(value: Any) -> Any:
    if _is_empty(value) or isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        return value
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return float(value)
        except (TypeError, ValueError):
            return value


def _decode_date(value: Any) -> Any:
    if _is_empty(value):
        return ""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        return value


def _decode_checkbox(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


_DECODERS: Dict[FormFieldType, Callable[[Any], Any]] = {
    FormFieldType.TEXT: _decode_text,
    FormFieldType.TEXTAREA: _decode_text,
    FormFieldType.NUMBER: _decode_number,
    FormFieldType.DATE: _decode_date,
    FormFieldType.SELECT: _decode_text,
    FormFieldType.CHECKBOX: _decode_checkbox,
    FormFieldType.READONLY_TEXT: lambda value: value,
}


def default_value(form_field: FormField) -> Any:
    """Initial value of an unanswered field."""
    return False if form_field.type == FormFieldType.CHECKBOX else ""


def decode_value(form_field: FormField, form_data: Mapping[str, Any]) -> Any:
    """Typed value of a field for one case; readonly fields read their source field."""
    if form_field.type == FormFieldType.READONLY_TEXT:
        if not form_field.source_field_id:
            return None
        return form_data.get(form_field.source_field_id)
    if form_field.id not in form_data or form_data[form_field.id] is None:
        return default_value(form_field)
    return _DECODERS[form_field.type](form_data[form_field.id])


def render_form(form: NodeForm, form_data: Mapping[str, Any]) -> List[RenderedField]:
    """Pair every field of ``form`` with its current value from ``form_data``."""
    rendered = []
    for form_field in form.fields:
        value = decode_value(form_field, form_data)
        read_only = form_field.type == FormFieldType.READONLY_TEXT
        rendered.append(RenderedField(
            id=form_field.id,
            label=form_field.label,
            type=form_field.type,
            required=form_field.required and not read_only,
            read_only=read_only,
            options=form_field.options,
            value=value,
            display_value=display_value(value) if read_only else ("" if _is_empty(value) else str(value)),
        ))
    return rendered


# Coercion of submitted values into the JSON-safe form stored on the case.

def _coerce_text(form_field: FormField, value: Any) -> Any:
    return "" if value is None else str(value)


def _coerce_number(form_field: FormField, value: Any) -> Any:
    if _is_empty(value):
        return ""
    if isinstance(value, bool):
        raise WorkflowValidationError(f"{form_field.label} must be a number", field_id=form_field.id)
    if isinstance(value, (int, float)):
        return value
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        try:
            return float(text)
        except ValueError:
            raise WorkflowValidationError(f"{form_field.label} must be a number", field_id=form_field.id)


def _coerce_date(form_field: FormField, value: Any) -> Any:
    if _is_empty(value):
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value).strip()).isoformat()
    except ValueError:
        raise WorkflowValidationError(
            f"{form_field.label} must be a date in YYYY-MM-DD format", field_id=form_field.id
        )


def _coerce_select(form_field: FormField, value: Any) -> Any:
    if _is_empty(value):
        return ""
    value = str(value)
    if form_field.options and value not in form_field.options:
        raise WorkflowValidationError(
            f"{form_field.label} must be one of: {', '.join(form_field.options)}", field_id=form_field.id
        )
    return value


def _coerce_checkbox(form_field: FormField, value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    if isinstance(value, int):
        return bool(value)
    raise WorkflowValidationError(f"{form_field.label} must be true or false", field_id=form_field.id)


_COERCERS: Dict[FormFieldType, Callable[[FormField, Any], Any]] = {
    FormFieldType.TEXT: _coerce_text,
    FormFieldType.TEXTAREA: _coerce_text,
    FormFieldType.NUMBER: _coerce_number,
    FormFieldType.DATE: _coerce_date,
    FormFieldType.SELECT: _coerce_select,
    FormFieldType.CHECKBOX: _coerce_checkbox,
}


def validate_submission(form: NodeForm, form_data: Mapping[str, Any],
                        submitted: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """
    Validate a form submission and return the values to record.

    Submitted values take precedence over previously recorded ones. Every
    required field must end up with a truthy value; the first one that does
    not is reported by label. Read-only fields are never written.

    Args:
        form: The form being submitted
        form_data: Values already recorded on the case
        submitted: Values entered by the acting user

    Returns:
        Dict[str, Any]: Coerced values keyed by field id

    Raises:
        WorkflowValidationError: If a value is malformed or a required field is missing
    """
    submitted = submitted or {}
    known_ids = {f.id for f in form.fields}
    ignored = sorted(set(submitted) - known_ids)
    if ignored:
        logger.debug(f"Ignoring values for fields outside the form: {', '.join(ignored)}")

    values: Dict[str, Any] = {}
    for form_field in form.fields:
        if form_field.type == FormFieldType.READONLY_TEXT:
            continue
        if form_field.id in submitted:
            raw = submitted[form_field.id]
        else:
            raw = form_data.get(form_field.id, default_value(form_field))
        value = _COERCERS[form_field.type](form_field, raw)
        if form_field.required and not value:
            raise WorkflowValidationError(
                f"Please fill out the required field: {form_field.label}",
                field_id=form_field.id,
            )
        values[form_field.id] = value
    return values
