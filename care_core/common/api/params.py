from __future__ import annotations

from datetime import date
from uuid import UUID

from rest_framework.exceptions import ValidationError as DRFValidationError


def uuid_or_none(value: str | None, field_name: str) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise DRFValidationError({field_name: "Invalid UUID"})


def date_or_none(value: str | None, field_name: str) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise DRFValidationError({field_name: "Invalid date, expected YYYY-MM-DD"})


def int_or_default(value: str | None, field_name: str, default: int) -> int:
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise DRFValidationError({field_name: "Invalid integer"})
