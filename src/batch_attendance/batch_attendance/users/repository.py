from __future__ import annotations

from typing import Optional, Protocol, Sequence

from ..core.enums import Role
from .model import AttendanceStats, User


class UserRepository(Protocol):
    """Repository interface for User.

    Note (DIP): services depend on this interface, not on a concrete database.
    """

    def get_by_id(self, user_id: int) -> Optional[User]:
        raise NotImplementedError

    def get_by_username(self, username: str) -> Optional[User]:
        raise NotImplementedError

    def list_ids_by_role(self, role: Role) -> Sequence[int]:
        raise NotImplementedError

    def list_by_batch(self, batch_id: int) -> Sequence[User]:
        raise NotImplementedError

    def update_attendance_stats(self, user_id: int, stats: AttendanceStats) -> Optional[AttendanceStats]:
        """Overwrite the stats columns and return what is now persisted.

        Returns None when the user does not exist.
        """

        raise NotImplementedError
