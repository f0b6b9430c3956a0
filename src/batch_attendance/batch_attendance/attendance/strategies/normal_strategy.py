from __future__ import annotations

from datetime import datetime

from ...batches.model import ClassTiming
from ...core.enums import AttendanceStatus
from .base import AttendanceStrategy, StatusDecision


class NormalStrategy(AttendanceStrategy):
    """On-time check-in, check-out that keeps the check-in status."""

    def decide_checkin(self, *, now: datetime, timing: ClassTiming) -> StatusDecision:
        return StatusDecision(status=AttendanceStatus.PRESENT)

    def decide_checkout(self, *, duration_minutes: float, timing: ClassTiming, current: AttendanceStatus) -> StatusDecision:
        return StatusDecision(status=current)
