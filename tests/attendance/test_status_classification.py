from datetime import datetime, time

import pytest

from src.batch_attendance.batch_attendance.attendance.factory import (
    AttendanceStrategyFactory,
    classify_on_check_in,
    reclassify_on_check_out,
)
from src.batch_attendance.batch_attendance.attendance.strategies.half_day_strategy import HalfDayStrategy
from src.batch_attendance.batch_attendance.attendance.strategies.late_strategy import LateStrategy
from src.batch_attendance.batch_attendance.attendance.strategies.normal_strategy import NormalStrategy
from src.batch_attendance.batch_attendance.batches.model import ClassTiming
from src.batch_attendance.batch_attendance.core.enums import AttendanceStatus

TIMING = ClassTiming(start_time=time(9, 0), end_time=time(17, 0), late_threshold_minutes=15)


def test_class_timing_derives_half_day_threshold():
    assert TIMING.class_minutes == 480
    assert TIMING.half_day_threshold_minutes == 240


def test_factory_checkin_within_threshold_is_normal():
    factory = AttendanceStrategyFactory()
    strategy = factory.for_checkin(now=datetime(2026, 3, 2, 9, 15, 59), timing=TIMING)

    assert isinstance(strategy, NormalStrategy)


def test_factory_checkin_after_threshold_is_late():
    factory = AttendanceStrategyFactory()
    strategy = factory.for_checkin(now=datetime(2026, 3, 2, 9, 16, 0), timing=TIMING)

    assert isinstance(strategy, LateStrategy)


@pytest.mark.parametrize(
    "clock, expected",
    [
        (time(8, 30), AttendanceStatus.PRESENT),
        (time(9, 10), AttendanceStatus.PRESENT),
        (time(9, 15), AttendanceStatus.PRESENT),
        (time(9, 20), AttendanceStatus.LATE),
        (time(16, 0), AttendanceStatus.LATE),
    ],
)
def test_classify_on_check_in(clock, expected):
    decision = classify_on_check_in(now=datetime.combine(datetime(2026, 3, 2).date(), clock), timing=TIMING)

    assert decision.status == expected


def test_late_decision_carries_minutes_late():
    decision = classify_on_check_in(now=datetime(2026, 3, 2, 9, 20), timing=TIMING)

    assert decision.note == "20 min late"


def test_short_session_downgrades_present_to_half_day():
    decision = reclassify_on_check_out(
        current=AttendanceStatus.PRESENT,
        check_in_time=datetime(2026, 3, 2, 9, 0),
        check_out_time=datetime(2026, 3, 2, 11, 30),
        timing=TIMING,
    )

    assert decision.status == AttendanceStatus.HALF_DAY


def test_half_day_overrides_late():
    decision = reclassify_on_check_out(
        current=AttendanceStatus.LATE,
        check_in_time=datetime(2026, 3, 2, 9, 30),
        check_out_time=datetime(2026, 3, 2, 12, 0),
        timing=TIMING,
    )

    assert decision.status == AttendanceStatus.HALF_DAY


def test_half_day_never_overrides_absent():
    factory = AttendanceStrategyFactory()
    strategy = factory.for_checkout(duration_minutes=30, timing=TIMING, current=AttendanceStatus.ABSENT)

    assert isinstance(strategy, NormalStrategy)
    assert strategy.decide_checkout(duration_minutes=30, timing=TIMING, current=AttendanceStatus.ABSENT).status == (
        AttendanceStatus.ABSENT
    )


@pytest.mark.parametrize("current", [AttendanceStatus.PRESENT, AttendanceStatus.LATE])
def test_full_session_keeps_check_in_status(current):
    decision = reclassify_on_check_out(
        current=current,
        check_in_time=datetime(2026, 3, 2, 9, 0),
        check_out_time=datetime(2026, 3, 2, 13, 0),
        timing=TIMING,
    )

    assert decision.status == current


def test_half_day_is_not_a_check_in_outcome():
    with pytest.raises(ValueError):
        HalfDayStrategy().decide_checkin(now=datetime(2026, 3, 2, 9, 0), timing=TIMING)
