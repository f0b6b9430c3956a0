from __future__ import annotations

from typing import Optional, Protocol

from .model import Batch


class BatchRepository(Protocol):
    """Read-only lookup of batch policy (timing + status)."""

    def get_by_id(self, batch_id: int) -> Optional[Batch]:
        raise NotImplementedError
