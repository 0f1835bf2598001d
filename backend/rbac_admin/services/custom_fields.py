from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any, Iterable, Optional

from rbac_admin.schemas.custom_field import FIELD_TYPES

_FIELD_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
_EMAIL = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_PHONE = re.compile(r"^[1-9]\d{0,15}$")
_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%m/%d/%Y", "%Y/%m/%d")
_BOOLEAN_VALUES = {"true", "false", "1", "0"}
_CHOICE_TYPES = {"select", "multiselect"}


class FieldValidationError(ValueError):
    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


def validate_field_definition(
    name: str, label: str, field_type: str, options: Optional[Iterable[str]]
) -> None:
    if not name:
        raise FieldValidationError("name", "Field name is required")
    if not _FIELD_NAME.match(name):
        raise FieldValidationError(
            "name",
            "Field name must start with a letter and contain only letters, numbers, and underscores",
        )
    if not label or not label.strip():
        raise FieldValidationError("label", "Field label is required")
    if field_type not in FIELD_TYPES:
        raise FieldValidationError("type", "Invalid field type")
    if field_type in _CHOICE_TYPES and not options:
        raise FieldValidationError("options", "Options are required for select fields")


def _parse_date(value: str) -> bool:
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
        return True
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            datetime.strptime(value, fmt)
            return True
        except ValueError:
            continue
    return False


def _validate_text(value: str, rules: dict) -> None:
    min_length = rules.get("min_length")
    max_length = rules.get("max_length")
    pattern = rules.get("pattern")
    if min_length is not None and len(value) < min_length:
        raise FieldValidationError("value", f"Must be at least {min_length} characters")
    if max_length is not None and len(value) > max_length:
        raise FieldValidationError("value", f"Must be at most {max_length} characters")
    if pattern:
        try:
            matched = re.search(pattern, value)
        except re.error:
            raise FieldValidationError("value", "Invalid regex pattern")
        if not matched:
            raise FieldValidationError("value", "Does not match required pattern")


def _validate_number(value: str, rules: dict) -> None:
    try:
        number = float(value)
    except ValueError:
        raise FieldValidationError("value", "Must be a valid number")
    if rules.get("min") is not None and number < rules["min"]:
        raise FieldValidationError("value", f"Must be at least {rules['min']:g}")
    if rules.get("max") is not None and number > rules["max"]:
        raise FieldValidationError("value", f"Must be at most {rules['max']:g}")


def _validate_file(value: str, rules: dict) -> None:
    pattern = rules.get("pattern")
    if pattern:
        try:
            matched = re.search(pattern, value)
        except re.error:
            raise FieldValidationError("value", "Invalid file pattern")
        if not matched:
            raise FieldValidationError("value", "File type not allowed")
    max_length = rules.get("max_length")
    if max_length is not None and len(value) > max_length:
        raise FieldValidationError("value", f"File name too long (max {max_length} characters)")


def validate_field_value(field, value: Any) -> None:
    """Check ``value`` against a ``CustomField`` definition. Raises ``FieldValidationError``."""
    if value is None or value == "":
        if field.required:
            raise FieldValidationError("value", "This field is required")
        return

    rules = field.validation or {}
    options = field.options or []
    text = value if isinstance(value, str) else stringify_value(value)

    if field.type in ("text", "textarea"):
        _validate_text(text, rules)
    elif field.type == "number":
        _validate_number(text, rules)
    elif field.type == "email":
        if not _EMAIL.match(text):
            raise FieldValidationError("value", "Must be a valid email address")
    elif field.type == "phone":
        cleaned = text.replace(" ", "").replace("-", "").replace("+", "")
        if not _PHONE.match(cleaned):
            raise FieldValidationError("value", "Must be a valid phone number")
    elif field.type == "date":
        if not _parse_date(text):
            raise FieldValidationError("value", "Must be a valid date")
    elif field.type == "boolean":
        if text.lower() not in _BOOLEAN_VALUES:
            raise FieldValidationError("value", "Must be a boolean value")
    elif field.type == "select":
        if not options:
            raise FieldValidationError("value", "No options available")
        if text not in options:
            raise FieldValidationError("value", "Invalid option selected")
    elif field.type == "multiselect":
        if not options:
            raise FieldValidationError("value", "No options available")
        if not isinstance(value, list):
            raise FieldValidationError("value", "Must be an array of values")
        for item in value:
            if not isinstance(item, str):
                raise FieldValidationError("value", "All values must be strings")
            if item not in options:
                raise FieldValidationError("value", f"Invalid option: {item}")
    elif field.type == "file":
        _validate_file(text, rules)
    else:
        raise FieldValidationError("type", "Unknown field type")


def stringify_value(value: Any) -> Optional[str]:
    """Storage form of a submitted value (``user_custom_field_values.value`` is text)."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return str(value)
