from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from datetime import date, time
from typing import Optional

import pytest
from werkzeug.security import generate_password_hash

from src.batch_attendance.batch_attendance.attendance.model import AttendanceRecord, AttendanceReportRow
from src.batch_attendance.batch_attendance.batches.model import Batch, ClassTiming
from src.batch_attendance.batch_attendance.container import wire_container
from src.batch_attendance.batch_attendance.core.enums import BatchStatus, Role
from src.batch_attendance.batch_attendance.core.exceptions import DuplicateRecordError
from src.batch_attendance.batch_attendance.media.photo_store import PhotoUploadError, StoredPhoto
from src.batch_attendance.batch_attendance.users.model import AttendanceStats, User

TRAINEE_ID = 1
SECOND_TRAINEE_ID = 2
UNASSIGNED_ID = 3
FINISHED_BATCH_TRAINEE_ID = 4
ADMIN_ID = 9

RUNNING_BATCH_ID = 1
COMPLETED_BATCH_ID = 2


@dataclass
class InMemoryUsers:
    users_by_id: dict[int, User]
    fail_stats_for: set[int] = field(default_factory=set)

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.users_by_id.get(user_id)

    def get_by_username(self, username: str) -> Optional[User]:
        return next((u for u in self.users_by_id.values() if u.username == username), None)

    def list_ids_by_role(self, role: Role):
        return sorted(u.user_id for u in self.users_by_id.values() if u.role == role)

    def list_by_batch(self, batch_id: int):
        users = [u for u in self.users_by_id.values() if u.batch_id == batch_id and u.role == Role.USER]
        return sorted(users, key=lambda u: u.full_name)

    def update_attendance_stats(self, user_id: int, stats: AttendanceStats) -> Optional[AttendanceStats]:
        if user_id in self.fail_stats_for:
            raise RuntimeError(f"stats write failed for user {user_id}")
        user = self.users_by_id.get(user_id)
        if not user:
            return None
        self.users_by_id[user_id] = replace(user, attendance_stats=stats)
        return stats


@dataclass
class InMemoryBatches:
    batches: dict[int, Batch]

    def get_by_id(self, batch_id: int) -> Optional[Batch]:
        return self.batches.get(batch_id)


class InMemoryAttendance:
    """Mirrors the MySQL repository: unique (user, day) and write-once check-in/out."""

    def __init__(self, users: InMemoryUsers):
        self._users = users
        self._records: dict[int, AttendanceRecord] = {}
        self._lock = threading.Lock()
        self._id = 0

    def add(self, *, user_id: int, batch_id: int, work_date: date, status: str, **kwargs) -> AttendanceRecord:
        """Seed a record directly, bypassing validation (e.g. legacy statuses)."""

        with self._lock:
            self._id += 1
            record = AttendanceRecord(
                attendance_id=self._id,
                user_id=user_id,
                batch_id=batch_id,
                work_date=work_date,
                status=status,
                **kwargs,
            )
            self._records[record.attendance_id] = record
            return record

    def get_by_id(self, attendance_id: int) -> Optional[AttendanceRecord]:
        return self._records.get(attendance_id)

    def get_for_user_and_date(self, user_id: int, work_date: date) -> Optional[AttendanceRecord]:
        return next(
            (r for r in self._records.values() if r.user_id == user_id and r.work_date == work_date),
            None,
        )

    def get_recent_for_user(self, user_id: int, limit: int):
        items = [r for r in self._records.values() if r.user_id == user_id]
        items.sort(key=lambda r: r.work_date, reverse=True)
        return items[:limit]

    def create_record(self, *, user_id, batch_id, work_date, status, activity, check_in=None, remarks=None) -> int:
        with self._lock:
            if any(r.user_id == user_id and r.work_date == work_date for r in self._records.values()):
                raise DuplicateRecordError(f"Attendance already exists for user {user_id} on {work_date}")
            self._id += 1
            self._records[self._id] = AttendanceRecord(
                attendance_id=self._id,
                user_id=user_id,
                batch_id=batch_id,
                work_date=work_date,
                status=status.value,
                check_in=check_in,
                remarks=remarks,
                activities=(activity,),
            )
            return self._id

    def set_check_in(self, *, attendance_id, check_in, status, activity) -> bool:
        with self._lock:
            record = self._records.get(attendance_id)
            if record is None or record.check_in is not None:
                return False
            self._records[attendance_id] = replace(
                record, check_in=check_in, status=status.value, activities=record.activities + (activity,)
            )
            return True

    def set_check_out(self, *, attendance_id, check_out, status, activity) -> bool:
        with self._lock:
            record = self._records.get(attendance_id)
            if record is None or record.check_in is None or record.check_out is not None:
                return False
            self._records[attendance_id] = replace(
                record, check_out=check_out, status=status.value, activities=record.activities + (activity,)
            )
            return True

    def update_status(self, *, attendance_id, status, remarks, activity) -> bool:
        with self._lock:
            record = self._records.get(attendance_id)
            if record is None:
                return False
            self._records[attendance_id] = replace(
                record, status=status.value, remarks=remarks, activities=record.activities + (activity,)
            )
            return True

    def delete(self, attendance_id: int) -> bool:
        with self._lock:
            return self._records.pop(attendance_id, None) is not None

    def list_statuses_for_user(self, user_id: int):
        return [r.status for r in self._records.values() if r.user_id == user_id]

    def count_invalid_statuses(self, valid) -> int:
        return sum(1 for r in self._records.values() if r.status not in valid)

    def coerce_invalid_statuses(self, *, valid, replacement, activity) -> int:
        updated = 0
        with self._lock:
            for attendance_id, record in list(self._records.items()):
                if record.status in valid:
                    continue
                note = replace(activity, description=activity.description.replace("{status}", record.status))
                self._records[attendance_id] = replace(
                    record, status=replacement.value, activities=record.activities + (note,)
                )
                updated += 1
        return updated

    def _row(self, r: AttendanceRecord) -> AttendanceReportRow:
        user = self._users.get_by_id(r.user_id)
        return AttendanceReportRow(
            attendance_id=r.attendance_id,
            user_id=r.user_id,
            full_name=user.full_name,
            username=user.username,
            batch_id=r.batch_id,
            work_date=r.work_date,
            status=r.status,
            check_in_time=r.check_in.time if r.check_in else None,
            check_out_time=r.check_out.time if r.check_out else None,
            remarks=r.remarks,
        )

    def list_for_batch(self, *, batch_id, work_date=None, status=None):
        rows = [
            self._row(r)
            for r in self._records.values()
            if r.batch_id == batch_id
            and (work_date is None or r.work_date == work_date)
            and (not status or r.status == status)
        ]
        rows.sort(key=lambda x: (x.work_date, x.full_name))
        rows.reverse()
        return rows

    def get_report_rows(self, *, batch_id, start_date, end_date):
        return [
            self._row(r)
            for r in self._records.values()
            if r.batch_id == batch_id and start_date <= r.work_date <= end_date
        ]


class FakePhotoStore:
    def __init__(self):
        self.stored: list[str] = []
        self.fail = False
        self.barrier: Optional[threading.Barrier] = None

    def store(self, payload) -> StoredPhoto:
        if self.fail:
            raise PhotoUploadError("storage offline")
        if self.barrier is not None:
            self.barrier.wait(timeout=5)
        storage_id = f"attendance-photos/{len(self.stored) + 1}.jpg"
        self.stored.append(storage_id)
        return StoredPhoto(url=f"/uploads/{storage_id}", storage_id=storage_id)


class FakeFaceScorer:
    def __init__(self, confidence: float = 92.5):
        self.confidence = confidence
        self.error: Optional[Exception] = None

    def score(self, reference_url: str, candidate_url: str) -> float:
        if self.error is not None:
            raise self.error
        return self.confidence


def _user(user_id: int, username: str, role: Role, batch_id: Optional[int], password: str = "secret123") -> User:
    return User(
        user_id=user_id,
        full_name=f"{username.title()} Demo",
        username=username,
        password_hash=generate_password_hash(password),
        role=role,
        batch_id=batch_id,
        profile_image_url=f"/uploads/profiles/{username}.jpg",
    )


@pytest.fixture
def running_batch() -> Batch:
    return Batch(
        batch_id=RUNNING_BATCH_ID,
        batch_code="FS-2026-A",
        program_name="Full-Stack Bootcamp",
        status=BatchStatus.RUNNING,
        class_timing=ClassTiming(start_time=time(9, 0), end_time=time(17, 0), late_threshold_minutes=15),
    )


@pytest.fixture
def users_repo() -> InMemoryUsers:
    return InMemoryUsers(
        users_by_id={
            TRAINEE_ID: _user(TRAINEE_ID, "alice", Role.USER, RUNNING_BATCH_ID),
            SECOND_TRAINEE_ID: _user(SECOND_TRAINEE_ID, "bob", Role.USER, RUNNING_BATCH_ID),
            UNASSIGNED_ID: _user(UNASSIGNED_ID, "carol", Role.USER, None),
            FINISHED_BATCH_TRAINEE_ID: _user(FINISHED_BATCH_TRAINEE_ID, "dave", Role.USER, COMPLETED_BATCH_ID),
            ADMIN_ID: _user(ADMIN_ID, "admin", Role.ADMIN, None, password="admin123"),
        }
    )


@pytest.fixture
def batches_repo(running_batch) -> InMemoryBatches:
    completed = replace(running_batch, batch_id=COMPLETED_BATCH_ID, batch_code="DA-2025", status=BatchStatus.COMPLETED)
    return InMemoryBatches(batches={RUNNING_BATCH_ID: running_batch, COMPLETED_BATCH_ID: completed})


@pytest.fixture
def attendance_repo(users_repo) -> InMemoryAttendance:
    return InMemoryAttendance(users_repo)


@pytest.fixture
def photo_store() -> FakePhotoStore:
    return FakePhotoStore()


@pytest.fixture
def face_scorer() -> FakeFaceScorer:
    return FakeFaceScorer()


@pytest.fixture
def container(users_repo, batches_repo, attendance_repo, photo_store, face_scorer):
    return wire_container(
        users_repo=users_repo,
        batches_repo=batches_repo,
        attendance_repo=attendance_repo,
        photo_store=photo_store,
        face_scorer=face_scorer,
    )


@pytest.fixture
def service(container):
    return container.attendance_service


@pytest.fixture
def stats_service(container):
    return container.stats_service


@pytest.fixture
def app(container, monkeypatch, tmp_path):
    monkeypatch.setenv("APP_ENV", "testing")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path))

    from src.batch_attendance.batch_attendance.main import create_app

    flask_app = create_app(container)
    flask_app.config["ATTENDANCE_TIMEZONE"] = None
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


def _login(client, username: str, password: str):
    return client.post("/api/auth/login", json={"username": username, "password": password})


@pytest.fixture
def login_as(client):
    return lambda username, password: _login(client, username, password)


@pytest.fixture
def trainee_client(client):
    assert _login(client, "alice", "secret123").status_code == 200
    return client


@pytest.fixture
def admin_client(client):
    assert _login(client, "admin", "admin123").status_code == 200
    return client
