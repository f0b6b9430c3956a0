from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

from ..core.enums import Role
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone
from .model import AttendanceStats, User
from .repository import UserRepository

logger = logging.getLogger(__name__)

_USER_COLUMNS = """
    user_id, full_name, username, password_hash, role, batch_id, profile_image_url, is_active,
    stats_present, stats_absent, stats_late, stats_half_day, stats_percentage
"""


def _stats_from_row(r: Dict[str, Any]) -> AttendanceStats:
    return AttendanceStats(
        present=int(r.get("stats_present") or 0),
        absent=int(r.get("stats_absent") or 0),
        late=int(r.get("stats_late") or 0),
        half_day=int(r.get("stats_half_day") or 0),
        percentage=int(r.get("stats_percentage") or 0),
    )


def _role_from_db(value: Any) -> Role:
    try:
        return Role(str(value or "").strip().lower())
    except ValueError:
        logger.warning("Unknown role %r in users table; treating as %s", value, Role.USER.value)
        return Role.USER


def _user_from_row(r: Dict[str, Any]) -> User:
    return User(
        user_id=int(r["user_id"]),
        full_name=r["full_name"],
        username=r["username"],
        password_hash=r["password_hash"],
        role=_role_from_db(r["role"]),
        batch_id=int(r["batch_id"]) if r.get("batch_id") is not None else None,
        profile_image_url=r.get("profile_image_url") or None,
        is_active=bool(r.get("is_active", True)),
        attendance_stats=_stats_from_row(r),
    )


class MySQLUserRepository(UserRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, user_id: int) -> Optional[User]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE user_id=%s", (int(user_id),))
            row = fetchone(cur)
            return _user_from_row(row) if row else None

    def get_by_username(self, username: str) -> Optional[User]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE username=%s", (username,))
            row = fetchone(cur)
            return _user_from_row(row) if row else None

    def list_ids_by_role(self, role: Role) -> Sequence[int]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT user_id FROM users WHERE role=%s ORDER BY user_id", (role.value,))
            return [int(r["user_id"]) for r in fetchall(cur)]

    def list_by_batch(self, batch_id: int) -> Sequence[User]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE batch_id=%s AND role=%s ORDER BY full_name",
                (int(batch_id), Role.USER.value),
            )
            return [_user_from_row(r) for r in fetchall(cur)]

    def update_attendance_stats(self, user_id: int, stats: AttendanceStats) -> Optional[AttendanceStats]:
        # Single UPDATE + read-back in one transaction; never read-modify-write.
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE users
                SET stats_present=%s, stats_absent=%s, stats_late=%s,
                    stats_half_day=%s, stats_percentage=%s
                WHERE user_id=%s
                """,
                (stats.present, stats.absent, stats.late, stats.half_day, stats.percentage, int(user_id)),
            )
            cur.execute(
                """
                SELECT stats_present, stats_absent, stats_late, stats_half_day, stats_percentage
                FROM users
                WHERE user_id=%s
                """,
                (int(user_id),),
            )
            row = fetchone(cur)
            return _stats_from_row(row) if row else None
