from __future__ import annotations

from datetime import datetime

from ...batches.model import ClassTiming
from ...common.datetime_utils import clock_minutes
from ...core.enums import AttendanceStatus
from .base import AttendanceStrategy, StatusDecision


class LateStrategy(AttendanceStrategy):
    """Check-in after the batch's late threshold."""

    def decide_checkin(self, *, now: datetime, timing: ClassTiming) -> StatusDecision:
        minutes_late = clock_minutes(now) - clock_minutes(timing.start_time)
        return StatusDecision(status=AttendanceStatus.LATE, note=f"{minutes_late} min late")

    def decide_checkout(self, *, duration_minutes: float, timing: ClassTiming, current: AttendanceStatus) -> StatusDecision:
        return StatusDecision(status=current)
