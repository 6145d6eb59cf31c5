"""Resource definitions for the record store.

Each REST resource maps to one table. Validation of the required fields lives
here and is applied by the store before anything is written.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple


class ValidationError(ValueError):
    """A single record violates its resource's field rules."""


@dataclass(frozen=True)
class ResourceSpec:
    name: str  # URL segment, e.g. "classes"
    table: str
    label: str  # singular, used in messages
    fields: Tuple[str, ...]
    required: Tuple[str, ...] = ()
    json_fields: Tuple[str, ...] = ()
    int_fields: Tuple[str, ...] = ()
    float_fields: Tuple[str, ...] = ()

    @property
    def columns(self) -> Tuple[str, ...]:
        return ("id",) + self.fields

    @property
    def text_fields(self) -> Tuple[str, ...]:
        typed = set(self.json_fields) | set(self.int_fields) | set(self.float_fields)
        return tuple(f for f in self.fields if f not in typed)


STUDENTS = ResourceSpec(
    name="students",
    table="students",
    label="student",
    fields=("name", "email", "phone", "classes"),
    required=("name", "email"),
    json_fields=("classes",),
)

TUTORS = ResourceSpec(
    name="tutors",
    table="tutors",
    label="tutor",
    fields=("name", "email", "phone", "classes", "rating"),
    required=("name", "email"),
    json_fields=("classes",),
    float_fields=("rating",),
)

SCHOOLS = ResourceSpec(
    name="schools",
    table="schools",
    label="school",
    fields=("name", "address"),
    required=("name",),
)

# A class carries either the catalog term ("Fall 2024") or semester + year.
CLASSES = ResourceSpec(
    name="classes",
    table="classes",
    label="class",
    fields=("name", "description", "number", "section", "term", "semester", "year", "instructor"),
    required=("name", "number", "section"),
    int_fields=("year",),
)

RESOURCES: Dict[str, ResourceSpec] = {r.name: r for r in (STUDENTS, TUTORS, SCHOOLS, CLASSES)}


def get_resource(name: str) -> ResourceSpec:
    try:
        return RESOURCES[name]
    except KeyError:
        raise KeyError(f"Unknown resource: {name}") from None


# Postgres INTEGER column bounds.
INT_MIN = -(2**31)
INT_MAX = 2**31 - 1


def _coerce_text(field: str, value: Any) -> str:
    """Cast a scalar to text; objects and arrays are rejected."""
    if isinstance(value, bool):
        value = "true" if value else "false"
    elif isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        raise ValidationError(f"{field.capitalize()} must be a string")
    if "\x00" in value:
        raise ValidationError(f"{field.capitalize()} must not contain NUL characters")
    return value


def _coerce_int(field: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field.capitalize()} must be an integer")
    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and value.is_integer():
        number = int(value)
    elif isinstance(value, str) and value.strip().lstrip("-").isascii() and value.strip().lstrip("-").isdigit():
        number = int(value.strip())
    else:
        raise ValidationError(f"{field.capitalize()} must be an integer")
    if not INT_MIN <= number <= INT_MAX:
        raise ValidationError(f"{field.capitalize()} is out of range")
    return number


def _coerce_float(field: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{field.capitalize()} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{field.capitalize()} must be a number") from None
    if not math.isfinite(number):
        raise ValidationError(f"{field.capitalize()} must be a finite number")
    return number


def _check_class_term(record: Mapping[str, Any]) -> None:
    if record.get("term") is not None:
        return
    if record.get("semester") is not None and record.get("year") is not None:
        return
    raise ValidationError("Term (or semester and year) is required")


def validate_record(res: ResourceSpec, data: Mapping[str, Any]) -> Dict[str, Any]:
    """Return the record restricted to known fields, or raise ValidationError.

    Unknown keys are dropped. Required fields must be present and not None.
    """
    record: Dict[str, Any] = {f: data.get(f) for f in res.fields}

    for f in res.required:
        if record.get(f) is None:
            raise ValidationError(f"{f.capitalize()} is required")
    if res is CLASSES:
        _check_class_term(record)

    for f in res.text_fields:
        if record.get(f) is not None:
            record[f] = _coerce_text(f, record[f])
    for f in res.int_fields:
        if record.get(f) is not None:
            record[f] = _coerce_int(f, record[f])
    for f in res.float_fields:
        if record.get(f) is not None:
            record[f] = _coerce_float(f, record[f])
    for f in res.json_fields:
        if record.get(f) is not None and not isinstance(record[f], list):
            raise ValidationError(f"{f.capitalize()} must be an array")
    return record


def check_update_body(res: ResourceSpec, changes: Mapping[str, Any]) -> None:
    """An update body must restate every required field, like a create body."""
    for f in res.required:
        if changes.get(f) is None:
            raise ValidationError(f"{f.capitalize()} is required")
    if res is CLASSES:
        _check_class_term(changes)


def merge_changes(res: ResourceSpec, current: Mapping[str, Any], changes: Mapping[str, Any]) -> Dict[str, Any]:
    """Apply a partial update: only known keys with non-null values replace the current ones."""
    merged = {f: current.get(f) for f in res.fields}
    for f in res.fields:
        if changes.get(f) is not None:
            merged[f] = changes[f]
    return merged


def parse_record_id(record_id: Any) -> Optional[int]:
    """Positive integer id, or None when the value cannot be an id."""
    if isinstance(record_id, bool):
        return None
    if isinstance(record_id, int):
        return record_id if record_id > 0 else None
    s = str(record_id or "").strip()
    if not (s.isascii() and s.isdigit()):
        return None
    rid = int(s)
    return rid if 0 < rid < 2**63 else None
