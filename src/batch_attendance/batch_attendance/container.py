from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .attendance.factory import AttendanceStrategyFactory
from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.repository import AttendanceRepository
from .attendance.service import AttendanceService
from .attendance.stats_service import AttendanceStatsService
from .batches.mysql_batch_repository import MySQLBatchRepository
from .batches.repository import BatchRepository
from .database.connection import DBConfig, DatabaseConnection
from .media.face_scorer import FaceScorer, FaceVerifier
from .media.photo_store import LocalPhotoStore, PhotoStore
from .reports.service import AttendanceReportService
from .users.mysql_user_repository import MySQLUserRepository
from .users.repository import UserRepository
from .users.service import AuthService


@dataclass(frozen=True)
class Container:
    conn: Optional[DatabaseConnection]

    users_repo: UserRepository
    batches_repo: BatchRepository
    attendance_repo: AttendanceRepository
    photo_store: PhotoStore

    auth_service: AuthService
    attendance_service: AttendanceService
    stats_service: AttendanceStatsService
    report_service: AttendanceReportService


def wire_container(
    *,
    users_repo: UserRepository,
    batches_repo: BatchRepository,
    attendance_repo: AttendanceRepository,
    photo_store: PhotoStore,
    face_scorer: FaceScorer | None = None,
    timezone: str | None = None,
    conn: DatabaseConnection | None = None,
) -> Container:
    stats_service = AttendanceStatsService(attendance_repo, users_repo, timezone=timezone)
    attendance_service = AttendanceService(
        attendance_repo,
        users_repo,
        batches_repo,
        stats_service,
        photo_store,
        FaceVerifier(face_scorer),
        strategy_factory=AttendanceStrategyFactory(),
        timezone=timezone,
    )

    return Container(
        conn=conn,
        users_repo=users_repo,
        batches_repo=batches_repo,
        attendance_repo=attendance_repo,
        photo_store=photo_store,
        auth_service=AuthService(users_repo),
        attendance_service=attendance_service,
        stats_service=stats_service,
        report_service=AttendanceReportService(attendance_repo, users_repo, batches_repo),
    )


def build_container(
    *,
    db_config: dict,
    upload_dir: str,
    upload_base_url: str = "/uploads",
    timezone: str | None = None,
    face_match_enabled: bool = False,
) -> Container:
    conn = DatabaseConnection.get_instance(DBConfig.from_dict(db_config))
    photo_store = LocalPhotoStore(upload_dir, base_url=upload_base_url)

    face_scorer = None
    if face_match_enabled:
        # optional extra: face_recognition pulls in dlib
        from .media.face_recognition_scorer import FaceRecognitionScorer

        face_scorer = FaceRecognitionScorer(photo_store.resolve_path)

    return wire_container(
        users_repo=MySQLUserRepository(conn),
        batches_repo=MySQLBatchRepository(conn),
        attendance_repo=MySQLAttendanceRepository(conn),
        photo_store=photo_store,
        face_scorer=face_scorer,
        timezone=timezone,
        conn=conn,
    )
