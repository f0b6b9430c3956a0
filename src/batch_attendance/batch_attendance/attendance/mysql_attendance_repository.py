from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional, Sequence

import mysql.connector

from ..core.enums import AttendanceStatus
from ..core.exceptions import DuplicateRecordError
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause, is_duplicate_key
from .model import Activity, AttendanceRecord, AttendanceReportRow, CheckPoint, Location, PhotoRef
from .repository import AttendanceRepository

_RECORD_COLUMNS = """
    attendance_id, user_id, batch_id, work_date, status, remarks,
    check_in_time, check_in_photo_url, check_in_photo_id, check_in_lat, check_in_long,
    check_in_device, check_in_face_confidence,
    check_out_time, check_out_photo_url, check_out_photo_id, check_out_lat, check_out_long,
    check_out_device, check_out_face_confidence
"""


def _checkpoint_from_row(r: Dict[str, Any], prefix: str) -> Optional[CheckPoint]:
    when = r.get(f"{prefix}_time")
    if when is None:
        return None

    lat, long = r.get(f"{prefix}_lat"), r.get(f"{prefix}_long")
    confidence = r.get(f"{prefix}_face_confidence")
    return CheckPoint(
        time=when,
        photo=PhotoRef(url=r.get(f"{prefix}_photo_url") or "", storage_id=r.get(f"{prefix}_photo_id") or ""),
        device_info=r.get(f"{prefix}_device") or "",
        location=Location(lat=float(lat), long=float(long)) if lat is not None and long is not None else None,
        face_match_confidence=float(confidence) if confidence is not None else None,
    )


def _checkpoint_params(cp: Optional[CheckPoint]) -> tuple:
    if cp is None:
        return (None, None, None, None, None, None, None)
    return (
        cp.time,
        cp.photo.url,
        cp.photo.storage_id,
        cp.location.lat if cp.location else None,
        cp.location.long if cp.location else None,
        cp.device_info,
        cp.face_match_confidence,
    )


def _report_row(r: Dict[str, Any]) -> AttendanceReportRow:
    return AttendanceReportRow(
        attendance_id=int(r["attendance_id"]),
        user_id=int(r["user_id"]),
        full_name=r["full_name"],
        username=r["username"],
        batch_id=int(r["batch_id"]),
        work_date=r["work_date"],
        status=r["status"],
        check_in_time=r.get("check_in_time"),
        check_out_time=r.get("check_out_time"),
        remarks=r.get("remarks"),
    )


class MySQLAttendanceRepository(AttendanceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    @staticmethod
    def _insert_activity(cur, attendance_id: int, activity: Activity) -> None:
        cur.execute(
            "INSERT INTO attendance_activities(attendance_id, description, created_at) VALUES(%s,%s,%s)",
            (attendance_id, activity.description, activity.timestamp),
        )

    @staticmethod
    def _load_activities(cur, attendance_ids: Sequence[int]) -> dict[int, list[Activity]]:
        out: dict[int, list[Activity]] = {i: [] for i in attendance_ids}
        if not attendance_ids:
            return out
        cur.execute(
            f"""
            SELECT attendance_id, description, created_at
            FROM attendance_activities
            WHERE attendance_id IN ({in_clause(attendance_ids)})
            ORDER BY created_at, activity_id
            """,
            tuple(attendance_ids),
        )
        for r in fetchall(cur):
            out[int(r["attendance_id"])].append(Activity(description=r["description"], timestamp=r["created_at"]))
        return out

    def _to_records(self, cur, rows: list[Dict[str, Any]]) -> list[AttendanceRecord]:
        activities = self._load_activities(cur, [int(r["attendance_id"]) for r in rows])
        return [
            AttendanceRecord(
                attendance_id=int(r["attendance_id"]),
                user_id=int(r["user_id"]),
                batch_id=int(r["batch_id"]),
                work_date=r["work_date"],
                status=r["status"],
                check_in=_checkpoint_from_row(r, "check_in"),
                check_out=_checkpoint_from_row(r, "check_out"),
                remarks=r.get("remarks"),
                activities=tuple(activities[int(r["attendance_id"])]),
            )
            for r in rows
        ]

    def get_by_id(self, attendance_id: int) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_RECORD_COLUMNS} FROM attendance_records WHERE attendance_id=%s", (int(attendance_id),))
            row = fetchone(cur)
            if not row:
                return None
            return self._to_records(cur, [row])[0]

    def get_for_user_and_date(self, user_id: int, work_date: date) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_RECORD_COLUMNS} FROM attendance_records WHERE user_id=%s AND work_date=%s",
                (int(user_id), work_date),
            )
            row = fetchone(cur)
            if not row:
                return None
            return self._to_records(cur, [row])[0]

    def get_recent_for_user(self, user_id: int, limit: int) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_RECORD_COLUMNS}
                FROM attendance_records
                WHERE user_id=%s
                ORDER BY work_date DESC
                LIMIT %s
                """,
                (int(user_id), int(limit)),
            )
            return self._to_records(cur, fetchall(cur))

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
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO attendance_records(
                        user_id, batch_id, work_date, status, remarks,
                        check_in_time, check_in_photo_url, check_in_photo_id, check_in_lat, check_in_long,
                        check_in_device, check_in_face_confidence
                    )
                    VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (int(user_id), int(batch_id), work_date, status.value, remarks, *_checkpoint_params(check_in)),
                )
                attendance_id = int(cur.lastrowid)
                self._insert_activity(cur, attendance_id, activity)
                return attendance_id
        except mysql.connector.Error as exc:
            if is_duplicate_key(exc):
                raise DuplicateRecordError(f"Attendance already exists for user {user_id} on {work_date}") from exc
            raise

    def set_check_in(
        self,
        *,
        attendance_id: int,
        check_in: CheckPoint,
        status: AttendanceStatus,
        activity: Activity,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE attendance_records
                SET check_in_time=%s, check_in_photo_url=%s, check_in_photo_id=%s, check_in_lat=%s,
                    check_in_long=%s, check_in_device=%s, check_in_face_confidence=%s, status=%s
                WHERE attendance_id=%s AND check_in_time IS NULL
                """,
                (*_checkpoint_params(check_in), status.value, int(attendance_id)),
            )
            if cur.rowcount == 0:
                return False
            self._insert_activity(cur, int(attendance_id), activity)
            return True

    def set_check_out(
        self,
        *,
        attendance_id: int,
        check_out: CheckPoint,
        status: AttendanceStatus,
        activity: Activity,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE attendance_records
                SET check_out_time=%s, check_out_photo_url=%s, check_out_photo_id=%s, check_out_lat=%s,
                    check_out_long=%s, check_out_device=%s, check_out_face_confidence=%s, status=%s
                WHERE attendance_id=%s AND check_in_time IS NOT NULL AND check_out_time IS NULL
                """,
                (*_checkpoint_params(check_out), status.value, int(attendance_id)),
            )
            if cur.rowcount == 0:
                return False
            self._insert_activity(cur, int(attendance_id), activity)
            return True

    def update_status(
        self,
        *,
        attendance_id: int,
        status: AttendanceStatus,
        remarks: Optional[str],
        activity: Activity,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            # rowcount is 0 for an unchanged row, so existence is checked first.
            cur.execute("SELECT attendance_id FROM attendance_records WHERE attendance_id=%s FOR UPDATE", (int(attendance_id),))
            if not fetchone(cur):
                return False
            cur.execute(
                "UPDATE attendance_records SET status=%s, remarks=%s WHERE attendance_id=%s",
                (status.value, remarks, int(attendance_id)),
            )
            self._insert_activity(cur, int(attendance_id), activity)
            return True

    def delete(self, attendance_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM attendance_records WHERE attendance_id=%s", (int(attendance_id),))
            return cur.rowcount > 0

    def list_statuses_for_user(self, user_id: int) -> Sequence[str]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT status FROM attendance_records WHERE user_id=%s", (int(user_id),))
            return [r["status"] for r in fetchall(cur)]

    def count_invalid_statuses(self, valid: Sequence[str]) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT COUNT(*) AS n FROM attendance_records WHERE BINARY status NOT IN ({in_clause(valid)})",
                tuple(valid),
            )
            row = fetchone(cur)
            return int(row["n"]) if row else 0

    def coerce_invalid_statuses(self, *, valid: Sequence[str], replacement: AttendanceStatus, activity: Activity) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                INSERT INTO attendance_activities(attendance_id, description, created_at)
                SELECT attendance_id, REPLACE(%s, '{{status}}', status), %s
                FROM attendance_records
                WHERE BINARY status NOT IN ({in_clause(valid)})
                """,
                (activity.description, activity.timestamp, *valid),
            )
            cur.execute(
                f"UPDATE attendance_records SET status=%s WHERE BINARY status NOT IN ({in_clause(valid)})",
                (replacement.value, *valid),
            )
            return int(cur.rowcount)

    def list_for_batch(
        self,
        *,
        batch_id: int,
        work_date: Optional[date] = None,
        status: Optional[str] = None,
    ) -> Sequence[AttendanceReportRow]:
        clauses = ["ar.batch_id=%s"]
        params: list[object] = [int(batch_id)]

        if work_date is not None:
            clauses.append("ar.work_date=%s")
            params.append(work_date)
        if status:
            clauses.append("ar.status=%s")
            params.append(status)

        return self._report_query(" AND ".join(clauses), params)

    def get_report_rows(self, *, batch_id: int, start_date: date, end_date: date) -> Sequence[AttendanceReportRow]:
        return self._report_query(
            "ar.batch_id=%s AND ar.work_date BETWEEN %s AND %s",
            [int(batch_id), start_date, end_date],
        )

    def _report_query(self, where: str, params: list[object]) -> list[AttendanceReportRow]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT
                    ar.attendance_id, ar.user_id, u.full_name, u.username, ar.batch_id,
                    ar.work_date, ar.status, ar.check_in_time, ar.check_out_time, ar.remarks
                FROM attendance_records ar
                JOIN users u ON u.user_id = ar.user_id
                WHERE {where}
                ORDER BY ar.work_date DESC, u.full_name ASC
                """,
                tuple(params),
            )
            return [_report_row(r) for r in fetchall(cur)]
