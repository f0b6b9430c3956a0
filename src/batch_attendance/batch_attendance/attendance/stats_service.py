from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Sequence

from ..common.datetime_utils import now_local
from ..core.constants import DEFAULT_RECENT_LIMIT
from ..core.enums import AttendanceStatus, Role
from ..core.exceptions import UserNotFound
from ..users.model import AttendanceStats
from ..users.repository import UserRepository
from .model import Activity, AttendanceRecord
from .repository import AttendanceRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecalculationSummary:
    attempted: int
    updated: int
    failed_user_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class CleanupSummary:
    found: int
    updated: int
    recalculation: RecalculationSummary


@dataclass(frozen=True)
class StatsReport:
    """Cached stats next to a fresh recomputation (drift diagnostics)."""

    stored: AttendanceStats
    calculated: AttendanceStats
    total_records: int
    ignored_records: int
    recent: Sequence[AttendanceRecord] = field(default_factory=tuple)

    @property
    def stats_match(self) -> bool:
        return self.stored == self.calculated


def attendance_percentage(*, present: int, absent: int, late: int, half_day: int) -> int:
    total = present + absent + late + half_day
    if total == 0:
        return 0
    effective = present + late + half_day * 0.5
    # round half up, not Python's banker's rounding
    return int(math.floor(100 * effective / total + 0.5))


def compute_stats(statuses: Iterable[str]) -> tuple[AttendanceStats, int]:
    """Tally canonical statuses; returns (stats, number of ignored values)."""

    counts: Counter = Counter()
    ignored = 0
    for raw in statuses:
        status = AttendanceStatus.coerce(raw)
        if status is None:
            ignored += 1
            continue
        counts[status] += 1

    present = counts[AttendanceStatus.PRESENT]
    absent = counts[AttendanceStatus.ABSENT]
    late = counts[AttendanceStatus.LATE]
    half_day = counts[AttendanceStatus.HALF_DAY]
    stats = AttendanceStats(
        present=present,
        absent=absent,
        late=late,
        half_day=half_day,
        percentage=attendance_percentage(present=present, absent=absent, late=late, half_day=half_day),
    )
    return stats, ignored


class AttendanceStatsService:
    """Rebuilds the per-user attendance counters from the attendance records.

    Every recomputation starts from scratch, so it is idempotent and safe to
    re-run after a crash or a concurrent write; the last writer reads the
    latest record set.
    """

    def __init__(self, attendance: AttendanceRepository, users: UserRepository, *, timezone: Optional[str] = None):
        self._attendance = attendance
        self._users = users
        self._timezone = timezone

    def recompute_stats_for_user(self, user_id: int) -> AttendanceStats:
        statuses = self._attendance.list_statuses_for_user(user_id)
        stats, ignored = compute_stats(statuses)
        if ignored:
            logger.warning(
                "User %s has %s attendance record(s) with a non-canonical status; run cleanup",
                user_id,
                ignored,
            )

        persisted = self._users.update_attendance_stats(user_id, stats)
        if persisted is None:
            raise UserNotFound(f"User {user_id} not found")

        logger.debug("Attendance stats for user %s: %s", user_id, persisted)
        return persisted

    def recompute_all_users(self) -> RecalculationSummary:
        user_ids = list(self._users.list_ids_by_role(Role.USER))
        failed: list[int] = []

        for user_id in user_ids:
            # each user is its own unit of work; one failure must not stop the sweep
            try:
                self.recompute_stats_for_user(user_id)
            except Exception:
                logger.exception("Failed to recompute attendance stats for user %s", user_id)
                failed.append(user_id)

        summary = RecalculationSummary(
            attempted=len(user_ids),
            updated=len(user_ids) - len(failed),
            failed_user_ids=tuple(failed),
        )
        logger.info("Recalculated attendance stats for %s/%s users", summary.updated, summary.attempted)
        return summary

    def cleanup_invalid_records(self, *, now: Optional[datetime] = None) -> CleanupSummary:
        now = now or now_local(self._timezone)
        valid = AttendanceStatus.values()

        found = self._attendance.count_invalid_statuses(valid)
        updated = 0
        if found:
            updated = self._attendance.coerce_invalid_statuses(
                valid=valid,
                replacement=AttendanceStatus.ABSENT,
                activity=Activity(description="Status '{status}' reset to absent during cleanup", timestamp=now),
            )

        recalculation = self.recompute_all_users()
        logger.info("Attendance cleanup: %s invalid record(s) found, %s corrected", found, updated)
        return CleanupSummary(found=found, updated=updated, recalculation=recalculation)

    def stats_report(self, user_id: int, *, recalculate: bool = False, force: bool = False) -> StatsReport:
        user = self._users.get_by_id(user_id)
        if not user:
            raise UserNotFound("User not found")

        stored = user.attendance_stats
        if recalculate:
            stored = self.recompute_stats_for_user(user_id)

        statuses = self._attendance.list_statuses_for_user(user_id)
        calculated, ignored = compute_stats(statuses)

        if force and stored != calculated:
            try:
                stored = self.recompute_stats_for_user(user_id)
            except Exception:
                logger.exception("Forced stats repair failed for user %s", user_id)

        return StatsReport(
            stored=stored,
            calculated=calculated,
            total_records=len(statuses),
            ignored_records=ignored,
            recent=tuple(self._attendance.get_recent_for_user(user_id, DEFAULT_RECENT_LIMIT)),
        )
