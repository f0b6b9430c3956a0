from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Sequence

from ..batches.model import Batch
from ..batches.repository import BatchRepository
from ..common.datetime_utils import format_clock, minutes_between, now_local
from ..common.validators import optional_text, require_status
from ..core.constants import DEFAULT_DEVICE_INFO, DEFAULT_HISTORY_LIMIT, LOW_FACE_MATCH_CONFIDENCE
from ..core.enums import AttendanceStatus
from ..core.exceptions import (
    BatchNotFound,
    BatchNotRunning,
    DuplicateCheckIn,
    DuplicateCheckOut,
    DuplicateRecordError,
    NoBatchAssigned,
    NoCheckInFound,
    PhotoRequired,
    PhotoUploadFailed,
    RecordNotFound,
    UserNotFound,
    ValidationError,
)
from ..media.face_scorer import FaceMatch, FaceVerifier
from ..media.photo_store import PhotoPayload, PhotoStore, PhotoUploadError, StoredPhoto
from ..users.model import User
from ..users.repository import UserRepository
from .factory import AttendanceStrategyFactory, classify_on_check_in, reclassify_on_check_out
from .model import Activity, AttendanceRecord, AttendanceReportRow, CheckPoint, Location, PhotoRef
from .repository import AttendanceRepository
from .stats_service import AttendanceStatsService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckInResult:
    record: AttendanceRecord
    face_match: FaceMatch


@dataclass(frozen=True)
class CheckOutResult:
    record: AttendanceRecord
    face_match: FaceMatch
    duration_minutes: float


@dataclass(frozen=True)
class MarkResult:
    record: AttendanceRecord
    created: bool


def _with_remarks(text: str, remarks: Optional[str]) -> str:
    return f"{text} - {remarks}" if remarks else text


class AttendanceService:
    """Check-in/check-out workflow and admin corrections.

    Every write that changes the record set ends with a synchronous stats
    reconciliation for the affected user.
    """

    def __init__(
        self,
        attendance: AttendanceRepository,
        users: UserRepository,
        batches: BatchRepository,
        stats: AttendanceStatsService,
        photos: PhotoStore,
        faces: FaceVerifier | None = None,
        *,
        strategy_factory: AttendanceStrategyFactory | None = None,
        timezone: str | None = None,
    ):
        self._attendance = attendance
        self._users = users
        self._batches = batches
        self._stats = stats
        self._photos = photos
        self._faces = faces or FaceVerifier()
        self._factory = strategy_factory or AttendanceStrategyFactory()
        self._timezone = timezone

    def _now(self, now: datetime | None) -> datetime:
        return now or now_local(self._timezone)

    def _get_user(self, user_id: int) -> User:
        user = self._users.get_by_id(user_id)
        if not user:
            raise UserNotFound("User not found")
        return user

    def _get_batch(self, batch_id: int) -> Batch:
        batch = self._batches.get_by_id(batch_id)
        if not batch:
            raise BatchNotFound("Batch not found")
        return batch

    def _get_record(self, attendance_id: int) -> AttendanceRecord:
        record = self._attendance.get_by_id(attendance_id)
        if not record:
            raise RecordNotFound("Attendance record not found")
        return record

    def _store_photo(self, photo: PhotoPayload | None, phase: str) -> StoredPhoto:
        if not photo:
            raise PhotoRequired(f"Photo is required for {phase}")
        if not isinstance(photo, (str, bytes)):
            raise ValidationError(f"Photo for {phase} must be a base64-encoded image")
        try:
            return self._photos.store(photo)
        except PhotoUploadError as exc:
            raise PhotoUploadFailed(f"Failed to upload {phase} photo: {exc}") from exc

    def _verify_face(self, user: User, photo: StoredPhoto, phase: str) -> FaceMatch:
        match = self._faces.verify(user.profile_image_url, photo.url)
        if match.is_below(LOW_FACE_MATCH_CONFIDENCE):
            logger.warning(
                "Low face match confidence (%.1f%%) for user %s during %s",
                match.confidence,
                user.user_id,
                phase,
            )
        return match

    def _reconcile(self, user_id: int) -> None:
        # the record write is already committed at this point
        try:
            self._stats.recompute_stats_for_user(user_id)
        except Exception:
            logger.exception("Attendance saved but stats reconciliation failed for user %s", user_id)

    @staticmethod
    def _duplicate_check_in(record: AttendanceRecord | None) -> DuplicateCheckIn:
        when = format_clock(record.check_in.time) if record and record.check_in else "an earlier time"
        return DuplicateCheckIn(f"Already checked in today at {when}. You can only check in once per day.")

    @staticmethod
    def _duplicate_check_out(record: AttendanceRecord | None) -> DuplicateCheckOut:
        when = format_clock(record.check_out.time) if record and record.check_out else "an earlier time"
        return DuplicateCheckOut(f"Already checked out today at {when}. You can only check out once per day.")

    def check_in(
        self,
        user_id: int,
        *,
        photo: PhotoPayload | None,
        location: Location | None = None,
        device_info: str | None = None,
        now: datetime | None = None,
    ) -> CheckInResult:
        now = self._now(now)
        today = now.date()

        user = self._get_user(user_id)
        if not user.batch_id:
            raise NoBatchAssigned("User is not assigned to any batch")

        batch = self._get_batch(user.batch_id)
        if not batch.is_running:
            raise BatchNotRunning(f"Batch is {batch.status.value}, not active")

        existing = self._attendance.get_for_user_and_date(user.user_id, today)
        if existing and existing.has_checked_in:
            raise self._duplicate_check_in(existing)

        stored = self._store_photo(photo, "check-in")
        match = self._verify_face(user, stored, "check-in")

        decision = classify_on_check_in(now=now, timing=batch.class_timing, factory=self._factory)
        check_in = CheckPoint(
            time=now,
            photo=PhotoRef(url=stored.url, storage_id=stored.storage_id),
            device_info=device_info or DEFAULT_DEVICE_INFO,
            location=location,
            face_match_confidence=match.confidence,
        )
        activity = Activity(description=f"Checked in at {now:%H:%M:%S} ({decision.status.value})", timestamp=now)

        if existing is None:
            try:
                attendance_id = self._attendance.create_record(
                    user_id=user.user_id,
                    batch_id=batch.batch_id,
                    work_date=today,
                    status=decision.status,
                    activity=activity,
                    check_in=check_in,
                )
            except DuplicateRecordError:
                # Lost the insert race: someone else created today's record first.
                existing = self._attendance.get_for_user_and_date(user.user_id, today)
                if existing is None or existing.has_checked_in:
                    raise self._duplicate_check_in(existing)

        if existing is not None:
            filled = self._attendance.set_check_in(
                attendance_id=existing.attendance_id,
                check_in=check_in,
                status=decision.status,
                activity=activity,
            )
            if not filled:
                raise self._duplicate_check_in(self._attendance.get_by_id(existing.attendance_id))
            attendance_id = existing.attendance_id

        logger.info("User %s checked in at %s as %s %s", user.user_id, now, decision.status.value, decision.note or "")
        self._reconcile(user.user_id)
        return CheckInResult(record=self._get_record(attendance_id), face_match=match)

    def check_out(
        self,
        user_id: int,
        *,
        photo: PhotoPayload | None,
        location: Location | None = None,
        device_info: str | None = None,
        now: datetime | None = None,
    ) -> CheckOutResult:
        now = self._now(now)
        today = now.date()

        user = self._get_user(user_id)
        record = self._attendance.get_for_user_and_date(user.user_id, today)
        if not record:
            raise NoCheckInFound("No check-in record found for today")
        if not record.has_checked_in:
            raise NoCheckInFound("Must check in before checking out")
        if record.has_checked_out:
            raise self._duplicate_check_out(record)

        batch = self._get_batch(record.batch_id)

        stored = self._store_photo(photo, "check-out")
        match = self._verify_face(user, stored, "check-out")

        # An unrecognised legacy status is treated like absent: never upgraded here.
        current = record.canonical_status or AttendanceStatus.ABSENT
        decision = reclassify_on_check_out(
            current=current,
            check_in_time=record.check_in.time,
            check_out_time=now,
            timing=batch.class_timing,
            factory=self._factory,
        )
        check_out = CheckPoint(
            time=now,
            photo=PhotoRef(url=stored.url, storage_id=stored.storage_id),
            device_info=device_info or DEFAULT_DEVICE_INFO,
            location=location,
            face_match_confidence=match.confidence,
        )
        activity = Activity(description=f"Checked out at {now:%H:%M:%S} ({decision.status.value})", timestamp=now)

        filled = self._attendance.set_check_out(
            attendance_id=record.attendance_id,
            check_out=check_out,
            status=decision.status,
            activity=activity,
        )
        if not filled:
            raise self._duplicate_check_out(self._attendance.get_by_id(record.attendance_id))

        logger.info("User %s checked out at %s as %s %s", user.user_id, now, decision.status.value, decision.note or "")
        self._reconcile(user.user_id)
        return CheckOutResult(
            record=self._get_record(record.attendance_id),
            face_match=match,
            duration_minutes=minutes_between(record.check_in.time, now),
        )

    def mark_attendance(
        self,
        *,
        user_id: int,
        batch_id: int,
        work_date: date,
        status: str | AttendanceStatus,
        remarks: str | None = None,
        now: datetime | None = None,
    ) -> MarkResult:
        """Admin upsert of a day's status. Bypasses time-of-day classification."""

        now = self._now(now)
        status = require_status(status)
        remarks = optional_text(remarks)

        user = self._get_user(user_id)
        batch = self._get_batch(batch_id)

        existing = self._attendance.get_for_user_and_date(user.user_id, work_date)
        created = False
        if existing is None:
            try:
                attendance_id = self._attendance.create_record(
                    user_id=user.user_id,
                    batch_id=batch.batch_id,
                    work_date=work_date,
                    status=status,
                    remarks=remarks,
                    activity=Activity(
                        description=_with_remarks(f"Attendance manually marked as {status.value}", remarks),
                        timestamp=now,
                    ),
                )
                created = True
            except DuplicateRecordError:
                existing = self._attendance.get_for_user_and_date(user.user_id, work_date)
                if existing is None:
                    raise

        if existing is not None:
            if existing.batch_id != batch.batch_id:
                raise ValidationError(
                    f"Attendance for {work_date:%Y-%m-%d} is already recorded under batch {existing.batch_id}"
                )
            self._attendance.update_status(
                attendance_id=existing.attendance_id,
                status=status,
                remarks=remarks if remarks is not None else existing.remarks,
                activity=Activity(
                    description=_with_remarks(f"Attendance manually updated to {status.value}", remarks),
                    timestamp=now,
                ),
            )
            attendance_id = existing.attendance_id

        self._reconcile(user.user_id)
        return MarkResult(record=self._get_record(attendance_id), created=created)

    def update_attendance(
        self,
        attendance_id: int,
        *,
        status: str | AttendanceStatus | None = None,
        remarks: str | None = None,
        now: datetime | None = None,
    ) -> AttendanceRecord:
        now = self._now(now)
        record = self._get_record(attendance_id)

        new_status = require_status(status) if status else record.canonical_status
        if new_status is None:
            raise ValidationError(f"Record has unrecognised status {record.status!r}; a new status is required")
        # Absent remarks keep the current text; a blank string clears it.
        new_remarks = record.remarks if remarks is None else optional_text(remarks)

        changes = [f"status={new_status.value}"]
        if new_remarks != record.remarks:
            changes.append(f"remarks={new_remarks}" if new_remarks is not None else "remarks cleared")

        if not self._attendance.update_status(
            attendance_id=record.attendance_id,
            status=new_status,
            remarks=new_remarks,
            activity=Activity(description=f"Attendance updated by admin: {', '.join(changes)}", timestamp=now),
        ):
            raise RecordNotFound("Attendance record not found")

        self._reconcile(record.user_id)
        return self._get_record(record.attendance_id)

    def delete_attendance(self, attendance_id: int) -> AttendanceRecord:
        record = self._get_record(attendance_id)
        if not self._attendance.delete(record.attendance_id):
            raise RecordNotFound("Attendance record not found")

        logger.info("Deleted attendance record %s of user %s", record.attendance_id, record.user_id)
        self._reconcile(record.user_id)
        return record

    def get_today_record(self, user_id: int, *, now: datetime | None = None) -> Optional[AttendanceRecord]:
        return self._attendance.get_for_user_and_date(user_id, self._now(now).date())

    def get_history(self, user_id: int, *, limit: int = DEFAULT_HISTORY_LIMIT) -> Sequence[AttendanceRecord]:
        return self._attendance.get_recent_for_user(user_id, limit)

    def get_record(self, attendance_id: int) -> AttendanceRecord:
        return self._get_record(attendance_id)

    def get_batch(self, batch_id: int) -> Optional[Batch]:
        return self._batches.get_by_id(batch_id)

    def get_batch_attendance(
        self,
        batch_id: int,
        *,
        work_date: date | None = None,
        status: str | None = None,
    ) -> Sequence[AttendanceReportRow]:
        return self._attendance.list_for_batch(batch_id=batch_id, work_date=work_date, status=status or None)
