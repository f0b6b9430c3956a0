from __future__ import annotations

from datetime import date
from typing import Optional, Protocol, Sequence

from ..core.enums import AttendanceStatus
from .model import Activity, AttendanceRecord, AttendanceReportRow, CheckPoint


class AttendanceRepository(Protocol):
    """Durable store of attendance records.

    Implementations must enforce the (user_id, work_date) unique key and raise
    ``DuplicateRecordError`` when it is violated. Check-in/check-out setters
    are conditional writes: they only succeed while the field is still unset.
    """

    def get_by_id(self, attendance_id: int) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def get_for_user_and_date(self, user_id: int, work_date: date) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def get_recent_for_user(self, user_id: int, limit: int) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def create_record(
        self,
        *,
        user_id: int,
        batch_id: int,
        work_date: date,
        status: AttendanceStatus,
        activity: Activity,
        check_in: Optional[CheckPoint] = None,
        remarks: Optional[str] = None,
    ) -> int:
        raise NotImplementedError

    def set_check_in(
        self,
        *,
        attendance_id: int,
        check_in: CheckPoint,
        status: AttendanceStatus,
        activity: Activity,
    ) -> bool:
        """Fill check-in on an existing record; False if it was already set."""

        raise NotImplementedError

    def set_check_out(
        self,
        *,
        attendance_id: int,
        check_out: CheckPoint,
        status: AttendanceStatus,
        activity: Activity,
    ) -> bool:
        """Fill check-out; False if already set or the record has no check-in."""

        raise NotImplementedError

    def update_status(
        self,
        *,
        attendance_id: int,
        status: AttendanceStatus,
        remarks: Optional[str],
        activity: Activity,
    ) -> bool:
        raise NotImplementedError

    def delete(self, attendance_id: int) -> bool:
        raise NotImplementedError

    def list_statuses_for_user(self, user_id: int) -> Sequence[str]:
        """Raw status of every record of the user (full history)."""

        raise NotImplementedError

    def count_invalid_statuses(self, valid: Sequence[str]) -> int:
        raise NotImplementedError

    def coerce_invalid_statuses(self, *, valid: Sequence[str], replacement: AttendanceStatus, activity: Activity) -> int:
        """Set every record whose status is not in ``valid`` to ``replacement``.

        ``activity.description`` may contain ``{status}``, replaced by the old value.
        Returns the number of records changed.
        """

        raise NotImplementedError

    def list_for_batch(
        self,
        *,
        batch_id: int,
        work_date: Optional[date] = None,
        status: Optional[str] = None,
    ) -> Sequence[AttendanceReportRow]:
        raise NotImplementedError

    def get_report_rows(self, *, batch_id: int, start_date: date, end_date: date) -> Sequence[AttendanceReportRow]:
        raise NotImplementedError
