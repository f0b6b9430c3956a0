from __future__ import annotations

import logging
import threading
from datetime import datetime

import pytest

from src.batch_attendance.batch_attendance.attendance.model import Location
from src.batch_attendance.batch_attendance.core.exceptions import (
    BatchNotRunning,
    DomainError,
    DuplicateCheckIn,
    NoBatchAssigned,
    PhotoRequired,
    PhotoUploadFailed,
    UserNotFound,
    ValidationError,
)

TRAINEE_ID = 1
UNASSIGNED_ID = 3
FINISHED_BATCH_TRAINEE_ID = 4


def test_on_time_check_in_creates_present_record(service, attendance_repo, fixed_now):
    result = service.check_in(
        TRAINEE_ID,
        photo="aGVsbG8=",
        location=Location(lat=10.77, long=106.69),
        device_info="Pixel 8",
        now=fixed_now,
    )

    record = result.record
    assert record.status == "present"
    assert record.work_date == fixed_now.date()
    assert record.batch_id == 1
    assert record.check_in.time == fixed_now
    assert record.check_in.device_info == "Pixel 8"
    assert record.check_in.location == Location(lat=10.77, long=106.69)
    assert record.check_in.photo.url == "/uploads/attendance-photos/1.jpg"
    assert record.check_out is None
    assert [a.description for a in record.activities] == ["Checked in at 09:10:00 (present)"]
    assert attendance_repo.get_by_id(record.attendance_id) == record


def test_check_in_after_threshold_is_late(service, fixed_now):
    result = service.check_in(TRAINEE_ID, photo="aGVsbG8=", now=fixed_now.replace(minute=20))

    assert result.record.status == "late"
    assert result.record.activities[-1].description == "Checked in at 09:20:00 (late)"


def test_check_in_defaults_device_info(service, fixed_now):
    result = service.check_in(TRAINEE_ID, photo="aGVsbG8=", now=fixed_now)

    assert result.record.check_in.device_info == "Unknown device"


def test_check_in_reconciles_stats(service, users_repo, fixed_now):
    service.check_in(TRAINEE_ID, photo="aGVsbG8=", now=fixed_now)

    stats = users_repo.get_by_id(TRAINEE_ID).attendance_stats
    assert (stats.present, stats.total, stats.percentage) == (1, 1, 100)


def test_second_check_in_same_day_is_rejected(service, photo_store, fixed_now):
    service.check_in(TRAINEE_ID, photo="aGVsbG8=", now=fixed_now)

    with pytest.raises(DuplicateCheckIn) as exc:
        service.check_in(TRAINEE_ID, photo="aGVsbG8=", now=fixed_now.replace(hour=10))

    assert "09:10:00" in str(exc.value)
    # rejected before the photo is stored
    assert len(photo_store.stored) == 1


def test_check_in_next_day_is_a_new_record(service, fixed_now):
    first = service.check_in(TRAINEE_ID, photo="aGVsbG8=", now=fixed_now)
    second = service.check_in(TRAINEE_ID, photo="aGVsbG8=", now=fixed_now.replace(day=3))

    assert first.record.attendance_id != second.record.attendance_id


@pytest.mark.parametrize(
    "user_id, error",
    [
        (404, UserNotFound),
        (UNASSIGNED_ID, NoBatchAssigned),
        (FINISHED_BATCH_TRAINEE_ID, BatchNotRunning),
    ],
)
def test_check_in_preconditions(service, attendance_repo, fixed_now, user_id, error):
    with pytest.raises(error):
        service.check_in(user_id, photo="aGVsbG8=", now=fixed_now)

    assert attendance_repo.get_for_user_and_date(user_id, fixed_now.date()) is None


def test_batch_not_running_message_names_status(service, fixed_now):
    with pytest.raises(BatchNotRunning, match="completed"):
        service.check_in(FINISHED_BATCH_TRAINEE_ID, photo="aGVsbG8=", now=fixed_now)


@pytest.mark.parametrize("photo", [None, ""])
def test_check_in_requires_photo(service, attendance_repo, fixed_now, photo):
    with pytest.raises(PhotoRequired):
        service.check_in(TRAINEE_ID, photo=photo, now=fixed_now)

    assert attendance_repo.get_for_user_and_date(TRAINEE_ID, fixed_now.date()) is None


@pytest.mark.parametrize("photo", [{"data": "aGVsbG8="}, 123, ["aGVsbG8="]])
def test_check_in_rejects_non_string_photo(service, attendance_repo, photo_store, fixed_now, photo):
    with pytest.raises(ValidationError, match="base64-encoded image") as exc:
        service.check_in(TRAINEE_ID, photo=photo, now=fixed_now)

    assert exc.value.http_status == 400
    assert attendance_repo.get_for_user_and_date(TRAINEE_ID, fixed_now.date()) is None
    assert not photo_store.stored


def test_photo_store_failure_writes_nothing(service, attendance_repo, photo_store, fixed_now):
    photo_store.fail = True

    with pytest.raises(PhotoUploadFailed) as exc:
        service.check_in(TRAINEE_ID, photo="aGVsbG8=", now=fixed_now)

    assert isinstance(exc.value, DomainError)
    assert exc.value.http_status == 502
    assert attendance_repo.get_for_user_and_date(TRAINEE_ID, fixed_now.date()) is None


def test_face_confidence_is_recorded(service, fixed_now):
    result = service.check_in(TRAINEE_ID, photo="aGVsbG8=", now=fixed_now)

    assert result.face_match.confidence == 92.5
    assert result.record.check_in.face_match_confidence == 92.5


def test_low_face_confidence_is_logged_but_not_blocking(service, face_scorer, fixed_now, caplog):
    face_scorer.confidence = 41.0

    with caplog.at_level(logging.WARNING):
        result = service.check_in(TRAINEE_ID, photo="aGVsbG8=", now=fixed_now)

    assert result.record.status == "present"
    assert "Low face match confidence (41.0%) for user 1 during check-in" in caplog.text


def test_face_scorer_failure_is_not_blocking(service, face_scorer, fixed_now):
    face_scorer.error = RuntimeError("model not loaded")

    result = service.check_in(TRAINEE_ID, photo="aGVsbG8=", now=fixed_now)

    assert result.face_match.confidence is None
    assert result.record.check_in.face_match_confidence is None


def test_check_in_fills_record_pre_created_by_admin(service, fixed_now):
    marked = service.mark_attendance(
        user_id=TRAINEE_ID, batch_id=1, work_date=fixed_now.date(), status="absent", now=fixed_now.replace(hour=8)
    )

    result = service.check_in(TRAINEE_ID, photo="aGVsbG8=", now=fixed_now)

    assert result.record.attendance_id == marked.record.attendance_id
    assert result.record.status == "present"
    assert result.record.check_in.time == fixed_now
    assert len(result.record.activities) == 2


def test_stats_failure_after_check_in_is_logged_not_raised(service, users_repo, fixed_now, caplog):
    users_repo.fail_stats_for.add(TRAINEE_ID)

    with caplog.at_level(logging.ERROR):
        result = service.check_in(TRAINEE_ID, photo="aGVsbG8=", now=fixed_now)

    assert result.record.status == "present"
    assert "stats reconciliation failed for user 1" in caplog.text


def test_concurrent_check_ins_create_exactly_one_record(service, attendance_repo, photo_store, fixed_now):
    # Both requests pass the pre-check before either writes.
    photo_store.barrier = threading.Barrier(2)
    outcomes: list[object] = []

    def attempt():
        try:
            outcomes.append(service.check_in(TRAINEE_ID, photo="aGVsbG8=", now=fixed_now))
        except DuplicateCheckIn as exc:
            outcomes.append(exc)

    threads = [threading.Thread(target=attempt) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert len(outcomes) == 2
    assert sum(isinstance(o, DuplicateCheckIn) for o in outcomes) == 1
    assert len(attendance_repo.get_recent_for_user(TRAINEE_ID, 10)) == 1


def test_history_is_most_recent_first(service, fixed_now):
    for day in (2, 3, 4):
        service.check_in(TRAINEE_ID, photo="aGVsbG8=", now=datetime(2026, 3, day, 9, 0))

    history = service.get_history(TRAINEE_ID, limit=2)

    assert [r.work_date.day for r in history] == [4, 3]
