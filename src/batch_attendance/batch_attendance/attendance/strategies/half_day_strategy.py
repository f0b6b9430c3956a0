from __future__ import annotations

from datetime import datetime

from ...batches.model import ClassTiming
from ...core.enums import AttendanceStatus
from .base import AttendanceStrategy, StatusDecision


class HalfDayStrategy(AttendanceStrategy):
    """Short session on check-out. Overrides both present and late."""

    def decide_checkin(self, *, now: datetime, timing: ClassTiming) -> StatusDecision:
        raise ValueError("Half-day is only decided at check-out")

    def decide_checkout(self, *, duration_minutes: float, timing: ClassTiming, current: AttendanceStatus) -> StatusDecision:
        return StatusDecision(
            status=AttendanceStatus.HALF_DAY,
            note=f"session {int(duration_minutes)} min < {int(timing.half_day_threshold_minutes)} min",
        )
