from __future__ import annotations

from dataclasses import dataclass
from datetime import time

from ..common.datetime_utils import clock_minutes
from ..core.constants import DEFAULT_LATE_THRESHOLD_MINUTES, HALF_DAY_RATIO
from ..core.enums import BatchStatus


@dataclass(frozen=True)
class ClassTiming:
    """Daily class window of a batch plus its late-arrival allowance."""

    start_time: time
    end_time: time
    late_threshold_minutes: int = DEFAULT_LATE_THRESHOLD_MINUTES

    @property
    def class_minutes(self) -> int:
        return clock_minutes(self.end_time) - clock_minutes(self.start_time)

    @property
    def half_day_threshold_minutes(self) -> float:
        return self.class_minutes * HALF_DAY_RATIO


@dataclass(frozen=True)
class Batch:
    """Domain entity: a batch (cohort) and its attendance policy."""

    batch_id: int
    batch_code: str
    program_name: str
    status: BatchStatus
    class_timing: ClassTiming

    @property
    def is_running(self) -> bool:
        return self.status == BatchStatus.RUNNING
