from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..batches.model import ClassTiming
from ..common.datetime_utils import clock_minutes, minutes_between
from ..core.enums import AttendanceStatus
from .strategies.base import AttendanceStrategy, StatusDecision
from .strategies.half_day_strategy import HalfDayStrategy
from .strategies.late_strategy import LateStrategy
from .strategies.normal_strategy import NormalStrategy


@dataclass
class AttendanceStrategyFactory:
    """Factory Pattern: choose appropriate strategy based on rules.

    Transitions:
        (none)        -- check-in, on time --> present
        (none)        -- check-in, late -----> late
        present/late  -- check-out, short ---> half-day
        anything else -- check-out ----------> unchanged
    """

    def for_checkin(self, *, now: datetime, timing: ClassTiming) -> AttendanceStrategy:
        minutes_late = clock_minutes(now) - clock_minutes(timing.start_time)
        if minutes_late > timing.late_threshold_minutes:
            return LateStrategy()
        return NormalStrategy()

    def for_checkout(self, *, duration_minutes: float, timing: ClassTiming, current: AttendanceStatus) -> AttendanceStrategy:
        # half-day never overrides absent
        if duration_minutes < timing.half_day_threshold_minutes and current != AttendanceStatus.ABSENT:
            return HalfDayStrategy()
        return NormalStrategy()


def classify_on_check_in(
    *,
    now: datetime,
    timing: ClassTiming,
    factory: AttendanceStrategyFactory | None = None,
) -> StatusDecision:
    factory = factory or AttendanceStrategyFactory()
    return factory.for_checkin(now=now, timing=timing).decide_checkin(now=now, timing=timing)


def reclassify_on_check_out(
    *,
    current: AttendanceStatus,
    check_in_time: datetime,
    check_out_time: datetime,
    timing: ClassTiming,
    factory: AttendanceStrategyFactory | None = None,
) -> StatusDecision:
    factory = factory or AttendanceStrategyFactory()
    duration = minutes_between(check_in_time, check_out_time)
    strategy = factory.for_checkout(duration_minutes=duration, timing=timing, current=current)
    return strategy.decide_checkout(duration_minutes=duration, timing=timing, current=current)
