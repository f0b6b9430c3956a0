from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ...batches.model import ClassTiming
from ...core.enums import AttendanceStatus


@dataclass(frozen=True)
class StatusDecision:
    status: AttendanceStatus
    note: Optional[str] = None


class AttendanceStrategy(ABC):
    """Strategy Pattern: encapsulate how we decide an attendance status."""

    @abstractmethod
    def decide_checkin(self, *, now: datetime, timing: ClassTiming) -> StatusDecision:
        raise NotImplementedError

    @abstractmethod
    def decide_checkout(self, *, duration_minutes: float, timing: ClassTiming, current: AttendanceStatus) -> StatusDecision:
        raise NotImplementedError
