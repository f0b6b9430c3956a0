from __future__ import annotations

import calendar
from collections import Counter
from dataclasses import dataclass
from datetime import date

from ..attendance.repository import AttendanceRepository
from ..attendance.stats_service import attendance_percentage
from ..batches.model import Batch
from ..batches.repository import BatchRepository
from ..core.enums import AttendanceStatus
from ..core.exceptions import BatchNotFound, ValidationError
from ..users.repository import UserRepository


@dataclass(frozen=True)
class ReportData:
    batch: Batch
    year: int
    month: int
    rows: list[dict]

    @property
    def filename(self) -> str:
        return f"attendance_{self.batch.batch_code}_{self.year}_{self.month:02d}.csv"


REPORT_FIELDS = [
    "user_id",
    "full_name",
    "username",
    "present",
    "late",
    "half_day",
    "absent",
    "total",
    "percentage",
]


class AttendanceReportService:
    def __init__(self, attendance: AttendanceRepository, users: UserRepository, batches: BatchRepository):
        self._attendance = attendance
        self._users = users
        self._batches = batches

    def build_batch_month_report(self, batch_id: int, year: int, month: int) -> ReportData:
        if not 1 <= int(month) <= 12:
            raise ValidationError("month must be between 1 and 12")

        batch = self._batches.get_by_id(batch_id)
        if not batch:
            raise BatchNotFound("Batch not found")

        start = date(int(year), int(month), 1)
        end = date(int(year), int(month), calendar.monthrange(int(year), int(month))[1])
        query_rows = self._attendance.get_report_rows(batch_id=batch.batch_id, start_date=start, end_date=end)

        counts: dict[int, Counter] = {}
        for r in query_rows:
            status = AttendanceStatus.coerce(r.status)
            if status is None:
                continue
            counts.setdefault(r.user_id, Counter())[status] += 1

        rows: list[dict] = []
        for user in self._users.list_by_batch(batch.batch_id):
            c = counts.get(user.user_id, Counter())
            present = c[AttendanceStatus.PRESENT]
            late = c[AttendanceStatus.LATE]
            half_day = c[AttendanceStatus.HALF_DAY]
            absent = c[AttendanceStatus.ABSENT]
            rows.append(
                {
                    "user_id": user.user_id,
                    "full_name": user.full_name,
                    "username": user.username,
                    "present": present,
                    "late": late,
                    "half_day": half_day,
                    "absent": absent,
                    "total": present + late + half_day + absent,
                    "percentage": attendance_percentage(
                        present=present, absent=absent, late=late, half_day=half_day
                    ),
                }
            )

        rows.sort(key=lambda x: x["full_name"])
        return ReportData(batch=batch, year=int(year), month=int(month), rows=rows)
