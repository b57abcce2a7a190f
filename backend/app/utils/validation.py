"""
Validation utilities for scheduling inputs.
"""
from typing import Any

from .error_handlers import ValidationError
from ..models.interview import OPPORTUNITY_TYPES


def validate_string_field(
    value: Any,
    field_name: str,
    min_length: int = 1,
    max_length: int = 1000,
    required: bool = True,
) -> str | None:
    """Validate a string field with common rules."""
    if value is None:
        if required:
            raise ValidationError(f"{field_name} is required")
        return None

    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string")

    value = value.strip()

    if required and not value:
        raise ValidationError(f"{field_name} cannot be empty")

    if len(value) < min_length:
        raise ValidationError(f"{field_name} must be at least {min_length} characters")

    if len(value) > max_length:
        raise ValidationError(f"{field_name} must not exceed {max_length} characters")

    return value


def validate_integer_field(
    value: Any,
    field_name: str,
    min_value: int | None = None,
    max_value: int | None = None,
    required: bool = True,
) -> int | None:
    """Validate an integer field."""
    if value is None:
        if required:
            raise ValidationError(f"{field_name} is required")
        return None

    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a valid integer")

    if not isinstance(value, int):
        try:
            value = int(value)
        except (ValueError, TypeError):
            raise ValidationError(f"{field_name} must be a valid integer")

    if min_value is not None and value < min_value:
        raise ValidationError(f"{field_name} must be at least {min_value}")

    if max_value is not None and value > max_value:
        raise ValidationError(f"{field_name} must not exceed {max_value}")

    return value


def validate_id(value: Any, field_name: str = "ID") -> int:
    return validate_integer_field(value, field_name, min_value=1, required=True)


def validate_opportunity_type(opportunity_type: Any) -> str:
    """Validate the opportunity type a student is queueing for."""
    value = validate_string_field(opportunity_type, "Opportunity type", max_length=20)
    value = value.lower()
    if value not in OPPORTUNITY_TYPES:
        raise ValidationError(
            f"Invalid opportunity type. Must be one of: {', '.join(OPPORTUNITY_TYPES)}"
        )
    return value
