"""WTForms schemas applied to JSON payloads before any write."""
from __future__ import annotations

from typing import Mapping, Type

from wtforms import Form, IntegerField, StringField
from wtforms.validators import AnyOf, DataRequired, Length, ValidationError

from models import COMPLAINT_CATEGORIES, COMPLAINT_PRIORITIES, DEFAULT_PRIORITY
from utils.errors import ValidationFailed
from utils.workflow import normalize_status


def strip_value(value):
    return value.strip() if isinstance(value, str) else value


def normalize_email(value):
    return value.strip().lower() if isinstance(value, str) else value


class ComplaintForm(Form):
    title = StringField(
        "Title",
        filters=[strip_value],
        validators=[DataRequired(message="Title is required"), Length(max=100, message="Title cannot exceed 100 characters")],
    )
    description = StringField(
        "Description",
        filters=[strip_value],
        validators=[
            DataRequired(message="Description is required"),
            Length(min=10, max=1000, message="Description must be between 10 and 1000 characters"),
        ],
    )
    category = StringField(
        "Category",
        filters=[strip_value],
        validators=[DataRequired(message="Category is required"), AnyOf(COMPLAINT_CATEGORIES, message="Invalid category")],
    )
    priority = StringField(
        "Priority",
        default=DEFAULT_PRIORITY,
        filters=[strip_value],
        validators=[AnyOf(COMPLAINT_PRIORITIES, message="Priority must be one of Low, Medium, High, Critical")],
    )
    location = StringField(
        "Location",
        filters=[strip_value],
        validators=[DataRequired(message="Location is required"), Length(max=200, message="Location cannot exceed 200 characters")],
    )


class StatusUpdateForm(Form):
    status = StringField("Status", filters=[strip_value], validators=[DataRequired(message="Status is required")])
    note = StringField("Note", filters=[strip_value], validators=[Length(max=500, message="Note cannot exceed 500 characters")])
    version = IntegerField("Version")

    def validate_status(self, field):
        if normalize_status(field.data) is None:
            raise ValidationError("Invalid status value")


class HistoryNoteForm(Form):
    note = StringField(
        "Note",
        filters=[strip_value],
        validators=[DataRequired(message="Note is required"), Length(max=500, message="Note cannot exceed 500 characters")],
    )


def _is_scalar(value) -> bool:
    return isinstance(value, (str, int, float)) and not isinstance(value, bool)


def bind_form(form_cls: Type[Form], payload: Mapping | None) -> Form:
    """Build ``form_cls`` from a JSON mapping, ignoring unknown keys and nulls.

    Objects, arrays and booleans are rejected per field instead of being
    stringified into the form.
    """
    if payload is not None and not isinstance(payload, Mapping):
        raise ValidationFailed("Request body must be a JSON object")
    fields = form_cls()._fields
    data = {}
    errors: dict[str, list[str]] = {}
    for key, value in (payload or {}).items():
        field = fields.get(key)
        if field is None or value is None:
            continue
        if not _is_scalar(value):
            errors[key] = ["Must be a single text or number value"]
        elif isinstance(field, IntegerField) or isinstance(value, str):
            data[key] = value
        else:
            data[key] = str(value)
    if errors:
        raise ValidationFailed("Validation failed", errors=errors)
    return form_cls(data=data)


def validate_payload(form_cls: Type[Form], payload: Mapping | None) -> dict:
    """Validate ``payload`` and return the cleaned field data or raise ValidationFailed."""
    form = bind_form(form_cls, payload)
    if not form.validate():
        raise ValidationFailed("Validation failed", errors={name: list(messages) for name, messages in form.errors.items()})
    return dict(form.data)
