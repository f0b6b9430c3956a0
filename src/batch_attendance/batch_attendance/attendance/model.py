from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from ..core.enums import AttendanceStatus


@dataclass(frozen=True)
class PhotoRef:
    url: str
    storage_id: str


@dataclass(frozen=True)
class Location:
    lat: float
    long: float


@dataclass(frozen=True)
class CheckPoint:
    """One check-in or check-out event. ``time`` is write-once on a record."""

    time: datetime
    photo: PhotoRef
    device_info: str
    location: Optional[Location] = None
    face_match_confidence: Optional[float] = None


@dataclass(frozen=True)
class Activity:
    description: str
    timestamp: datetime


@dataclass(frozen=True)
class AttendanceRecord:
    """Domain entity: one attendance record per (user, calendar day).

    ``status`` is kept as the raw stored string: legacy rows may hold values
    outside ``AttendanceStatus`` until cleanup coerces them.
    """

    attendance_id: int
    user_id: int
    batch_id: int
    work_date: date
    status: str
    check_in: Optional[CheckPoint] = None
    check_out: Optional[CheckPoint] = None
    remarks: Optional[str] = None
    activities: tuple[Activity, ...] = ()

    @property
    def canonical_status(self) -> Optional[AttendanceStatus]:
        return AttendanceStatus.coerce(self.status)

    @property
    def has_checked_in(self) -> bool:
        return self.check_in is not None and self.check_in.time is not None

    @property
    def has_checked_out(self) -> bool:
        return self.check_out is not None and self.check_out.time is not None


@dataclass(frozen=True)
class AttendanceReportRow:
    """Read-model for batch listings and exports (flattened for queries)."""

    attendance_id: int
    user_id: int
    full_name: str
    username: str
    batch_id: int
    work_date: date
    status: str
    check_in_time: Optional[datetime]
    check_out_time: Optional[datetime]
    remarks: Optional[str] = None
