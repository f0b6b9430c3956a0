from __future__ import annotations

from enum import Enum
from typing import Optional


class Role(str, Enum):
    """Account role used for authorization."""

    USER = "user"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"

    @property
    def is_admin(self) -> bool:
        return self in (Role.ADMIN, Role.SUPERADMIN)


class AttendanceStatus(str, Enum):
    """Canonical attendance statuses stored in the database."""

    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    HALF_DAY = "half-day"

    @classmethod
    def values(cls) -> tuple[str, ...]:
        return tuple(s.value for s in cls)

    @classmethod
    def coerce(cls, value: object) -> Optional["AttendanceStatus"]:
        """Return the canonical status for ``value`` or None for anything else."""

        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return None


class BatchStatus(str, Enum):
    UPCOMING = "upcoming"
    RUNNING = "running"
    COMPLETED = "completed"
