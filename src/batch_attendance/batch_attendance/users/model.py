from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from ..core.enums import Role


@dataclass(frozen=True)
class AttendanceStats:
    """Denormalized attendance counters kept on the user row.

    This is a cache: the attendance records are the source of truth and the
    reconciliation service rebuilds it from scratch.
    """

    present: int = 0
    absent: int = 0
    late: int = 0
    half_day: int = 0
    percentage: int = 0

    @property
    def total(self) -> int:
        return self.present + self.absent + self.late + self.half_day


@dataclass(frozen=True)
class User:
    """Domain entity: User.

    Note: plain data object (no DB access code).
    """

    user_id: int
    full_name: str
    username: str
    password_hash: str
    role: Role
    batch_id: Optional[int]
    profile_image_url: Optional[str] = None
    is_active: bool = True
    attendance_stats: AttendanceStats = field(default_factory=AttendanceStats)
