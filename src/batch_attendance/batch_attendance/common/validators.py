from __future__ import annotations

from typing import Any, Optional

from ..core.enums import AttendanceStatus
from ..core.exceptions import ValidationError


def require_non_empty(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise ValidationError(f"{field_name} is required")
    return value.strip()


def require_positive_int(value: Any, field_name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if number <= 0:
        raise ValidationError(f"{field_name} must be a number")
    return number


def require_status(value: Any) -> AttendanceStatus:
    status = AttendanceStatus.coerce(value)
    if status is None:
        allowed = ", ".join(AttendanceStatus.values())
        raise ValidationError(f"Invalid status {value!r}; expected one of: {allowed}")
    return status


def optional_text(value: Optional[str]) -> Optional[str]:
    v = (value or "").strip()
    return v or None
