"""Schema-less editing of relational rows.

A row fetched from storage is turned into a list of typed fields, a form
state holding the in-progress values, and finally a partial update that only
carries editable columns.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .models import Record

SYSTEM_FIELDS = frozenset({"id", "created_at", "updated_at"})

FormValue = Union[str, bool]
FormState = Dict[str, FormValue]
UpdatePayload = Dict[str, Any]

_NUMBER_PREFIX = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class FieldType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class EditableField:
    key: str
    label: str
    type: FieldType


class InvalidUpdate(ValueError):
    """Raised when an update request does not carry a mapping of column values."""


def humanize_key(key: str) -> str:
    """``marketing_consent`` -> ``Marketing Consent``."""
    words = key.replace("_", " ").split(" ")
    return " ".join(word[:1].upper() + word[1:] for word in words)


def infer_field_type(value: Any) -> Optional[FieldType]:
    """Map a column value to the kind of input used to edit it.

    ``None`` when the value cannot be edited (nested objects, arrays...).
    """
    if value is None or isinstance(value, str):
        return FieldType.TEXT
    # bool is a subclass of int, test it first.
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, (int, float)):
        return FieldType.NUMBER
    return None


def derive_editable_fields(record: Mapping[str, Any]) -> List[EditableField]:
    fields: List[EditableField] = []
    for key, value in record.items():
        if key in SYSTEM_FIELDS:
            continue
        field_type = infer_field_type(value)
        if field_type is None:
            continue
        fields.append(EditableField(key=key, label=humanize_key(key), type=field_type))
    return fields


def _format_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_form_state(record: Mapping[str, Any], fields: Sequence[EditableField]) -> FormState:
    state: FormState = {}
    for field in fields:
        value = record.get(field.key)
        if field.type is FieldType.BOOLEAN:
            state[field.key] = bool(value)
        elif value is None:
            state[field.key] = ""
        elif field.type is FieldType.NUMBER:
            state[field.key] = _format_number(value)
        else:
            state[field.key] = str(value)
    return state


def parse_number(text: str) -> Optional[Union[int, float]]:
    """Parse the leading numeric literal of ``text``.

    Trailing garbage is ignored (``"12kg"`` -> ``12``); text without a leading
    number, or one that overflows, yields ``None``.  Integer literals are parsed
    exactly, so bigint columns keep every digit; integral decimal or exponent
    forms also come back as ``int``.
    """
    match = _NUMBER_PREFIX.match(text.strip())
    if match is None:
        return None
    literal = match.group(0)
    if literal.lstrip("+-").isdigit():
        return int(literal)
    number = float(literal)
    if not math.isfinite(number):
        return None
    if number.is_integer():
        return int(number)
    return number


def _text_value(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    return str(value).strip()


def build_update_payload(
    form_state: Mapping[str, Any], fields: Sequence[EditableField]
) -> UpdatePayload:
    payload: UpdatePayload = {}
    for field in fields:
        if field.key in SYSTEM_FIELDS:
            continue
        raw = form_state.get(field.key)
        if field.type is FieldType.BOOLEAN:
            payload[field.key] = bool(raw)
            continue
        text = _text_value(raw)
        if not text:
            payload[field.key] = None
        elif field.type is FieldType.NUMBER:
            payload[field.key] = parse_number(text)
        else:
            payload[field.key] = text
    return payload


def read_form_submission(
    form: Mapping[str, Any], fields: Sequence[EditableField]
) -> FormState:
    """Convert a submitted HTML form into form state.

    Unchecked checkboxes are absent from the submission, so boolean fields are
    ``True`` only when their key was posted.
    """
    state: FormState = {}
    for field in fields:
        if field.type is FieldType.BOOLEAN:
            state[field.key] = field.key in form
        else:
            value = form.get(field.key)
            state[field.key] = "" if value is None else str(value)
    return state


def sanitize_updates(updates: Any) -> UpdatePayload:
    """Drop system columns from an update received from a client."""
    if not isinstance(updates, Mapping):
        raise InvalidUpdate("The update payload is invalid.")
    return {
        str(key): value
        for key, value in updates.items()
        if str(key) not in SYSTEM_FIELDS
    }


class RecordEditor:
    """Editing session over a single fetched row."""

    def __init__(self, record: Record) -> None:
        self._record = dict(record)
        self.fields = derive_editable_fields(self._record)
        self.form_state = build_form_state(self._record, self.fields)

    @property
    def record(self) -> Record:
        return dict(self._record)

    @property
    def record_id(self) -> Optional[str]:
        value = self._record.get("id")
        return None if value is None else str(value)

    @property
    def nothing_editable(self) -> bool:
        return not self.fields

    def reset(self) -> FormState:
        self.form_state = build_form_state(self._record, self.fields)
        return self.form_state

    def apply(self, form: Mapping[str, Any]) -> FormState:
        self.form_state = read_form_submission(form, self.fields)
        return self.form_state

    def payload(self) -> UpdatePayload:
        return build_update_payload(self.form_state, self.fields)


__all__ = [
    "EditableField",
    "FieldType",
    "FormState",
    "InvalidUpdate",
    "RecordEditor",
    "SYSTEM_FIELDS",
    "UpdatePayload",
    "build_form_state",
    "build_update_payload",
    "derive_editable_fields",
    "humanize_key",
    "infer_field_type",
    "parse_number",
    "read_form_submission",
    "sanitize_updates",
]
