"""Field-level validation for tool input forms."""

from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Optional, Sequence

from .base import FieldType, ToolInputField


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set)):
        return not value
    return False


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _fmt(number: float) -> str:
    return str(int(number)) if float(number).is_integer() else str(number)


def validate_field(field_def: ToolInputField, value: Any) -> Optional[str]:
    """Return the error for one field, or None when the value is acceptable."""

    if is_blank(value):
        return f"{field_def.label} is required" if field_def.required else None

    rules = field_def.validation
    if field_def.type is FieldType.NUMBER:
        number = _as_number(value)
        if number is None or number != number:
            return f"{field_def.label} must be a valid number"
        if rules is not None and rules.min is not None and number < rules.min:
            return f"{field_def.label} must be at least {_fmt(rules.min)}"
        if rules is not None and rules.max is not None and number > rules.max:
            return f"{field_def.label} must be at most {_fmt(rules.max)}"
        return None

    if field_def.type is FieldType.TEXT and rules is not None:
        text = str(value)
        if rules.min_length is not None and len(text) < rules.min_length:
            return f"{field_def.label} must be at least {rules.min_length} characters"
        if rules.max_length is not None and len(text) > rules.max_length:
            return f"{field_def.label} must be at most {rules.max_length} characters"
        if rules.pattern and not re.search(rules.pattern, text):
            return f"{field_def.label} format is invalid"
    return None


def validate_inputs(fields: Sequence[ToolInputField], values: Mapping[str, Any]) -> Dict[str, str]:
    """Map of field name to error message; empty when the form can be submitted."""

    errors: Dict[str, str] = {}
    for field_def in fields:
        error = validate_field(field_def, values.get(field_def.name))
        if error:
            errors[field_def.name] = error
    return errors


def coerce_inputs(fields: Sequence[ToolInputField], values: Mapping[str, Any]) -> Dict[str, Any]:
    """Convert submitted strings to the declared field types; blanks are dropped."""

    by_name = {field_def.name: field_def for field_def in fields}
    coerced: Dict[str, Any] = {}
    for name, value in values.items():
        if is_blank(value):
            continue
        field_def = by_name.get(name)
        if field_def is None:
            coerced[name] = value
        elif field_def.type is FieldType.NUMBER:
            number = _as_number(value)
            coerced[name] = int(number) if number is not None and number.is_integer() else number
        elif field_def.type is FieldType.BOOLEAN and isinstance(value, str):
            coerced[name] = value.strip().lower() in ("1", "true", "yes", "on")
        elif field_def.type is FieldType.MULTISELECT and isinstance(value, str):
            coerced[name] = [item.strip() for item in value.split(",") if item.strip()]
        else:
            coerced[name] = value.strip() if isinstance(value, str) else value
    return coerced


__all__ = ["coerce_inputs", "is_blank", "validate_field", "validate_inputs"]
